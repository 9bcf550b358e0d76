import time

import pytest
import requests

from ecfr.core.exceptions import FetchError, TransientFetchError
from ecfr.core.http import HttpClient


class FakeSession:
    """Stands in for requests.Session, replaying a scripted list of outcomes."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return make_response(outcome)


def make_response(status_code: int, body: bytes = b"{}") -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = body
    return response


def make_client(outcomes, **kwargs) -> HttpClient:
    return HttpClient(session=FakeSession(outcomes), initial_delay=0, max_delay=0, **kwargs)


class TestRetryClassification:
    def test_success(self):
        client = make_client([200])

        response = client.get("https://example.test/ok")

        assert response.status_code == 200
        assert len(client.session.calls) == 1

    @pytest.mark.parametrize(
        "outcome",
        [
            requests.exceptions.ReadTimeout("read timed out"),
            requests.exceptions.ConnectTimeout("connect timed out"),
            504,
        ],
    )
    def test_transient_failures_retried_until_budget_spent(self, outcome):
        client = make_client([outcome])

        with pytest.raises(TransientFetchError) as exc_info:
            client.get("https://example.test/slow")

        assert len(client.session.calls) == 3
        assert exc_info.value.url == "https://example.test/slow"

    def test_transient_failure_then_success(self):
        client = make_client([504, requests.exceptions.ReadTimeout("slow"), 200])

        assert client.get("https://example.test/flaky").status_code == 200
        assert len(client.session.calls) == 3

    @pytest.mark.parametrize("status_code", [400, 404, 500, 502, 503])
    def test_http_errors_not_retried(self, status_code):
        client = make_client([status_code])

        with pytest.raises(FetchError) as exc_info:
            client.get("https://example.test/missing")

        assert not isinstance(exc_info.value, TransientFetchError)
        assert exc_info.value.status_code == status_code
        assert len(client.session.calls) == 1

    def test_connection_refused_not_retried(self):
        client = make_client([requests.exceptions.ConnectionError("refused")])

        with pytest.raises(FetchError) as exc_info:
            client.get("https://example.test/down")

        assert not isinstance(exc_info.value, TransientFetchError)
        assert len(client.session.calls) == 1

    def test_retry_budget_is_configurable(self):
        client = make_client([504], max_retries=5)

        with pytest.raises(TransientFetchError):
            client.get("https://example.test/slow")

        assert len(client.session.calls) == 5

    def test_default_and_explicit_timeout(self):
        client = make_client([200], timeout=42)

        client.get("https://example.test/a")
        client.get("https://example.test/b", timeout=600)

        assert client.session.calls[0][2]["timeout"] == 42
        assert client.session.calls[1][2]["timeout"] == 600


class TestBackoff:
    @pytest.fixture
    def sleeps(self, monkeypatch):
        recorded = []
        monkeypatch.setattr(time, "sleep", recorded.append)
        return recorded

    def test_default_backoff_starts_at_a_minute_and_doubles(self, sleeps):
        client = HttpClient(session=FakeSession([504, 504, 200]))

        assert client.get("https://example.test/slow").status_code == 200
        assert sleeps == [60, 120]

    def test_backoff_is_capped(self, sleeps):
        client = HttpClient(session=FakeSession([504]), max_retries=6)

        with pytest.raises(TransientFetchError):
            client.get("https://example.test/slow")

        assert sleeps == [60, 120, 240, 480, 600]


class TestCaching:
    def test_get_responses_cached(self, tmp_path):
        client = make_client([200], enable_cache=True, cache_dir=str(tmp_path))

        first = client.get("https://example.test/titles.json")
        second = client.get("https://example.test/titles.json", timeout=10)

        assert first.content == second.content
        assert len(client.session.calls) == 1

    def test_cache_bypassed_per_request(self, tmp_path):
        client = make_client([200], enable_cache=True, cache_dir=str(tmp_path))

        client.get("https://example.test/titles.json", cache=False)
        client.get("https://example.test/titles.json", cache=False)

        assert len(client.session.calls) == 2
        assert "cache" not in client.session.calls[0][2]

    def test_cache_keyed_by_url_and_params(self, tmp_path):
        client = make_client([200], enable_cache=True, cache_dir=str(tmp_path))

        client.get("https://example.test/a")
        client.get("https://example.test/b")
        client.get("https://example.test/a", params={"page": 2})

        assert len(client.session.calls) == 3

    def test_failures_not_cached(self, tmp_path):
        client = make_client([404, 200], enable_cache=True, cache_dir=str(tmp_path))

        with pytest.raises(FetchError):
            client.get("https://example.test/later")

        assert client.get("https://example.test/later").status_code == 200

    def test_cache_info_and_clear(self, tmp_path):
        client = make_client([200], enable_cache=True, cache_dir=str(tmp_path), cache_ttl=60)
        client.get("https://example.test/a")

        info = client.get_cache_info()
        assert info["enabled"] is True
        assert info["ttl"] == 60

        client.clear_cache()
        client.get("https://example.test/a")
        assert len(client.session.calls) == 2

    def test_cache_disabled(self):
        assert make_client([200]).get_cache_info() == {"enabled": False}
