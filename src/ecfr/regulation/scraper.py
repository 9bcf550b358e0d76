import logging
from datetime import date
from typing import Any, Dict, Iterator, List, Optional

from ecfr.core.exceptions import FetchError
from ecfr.core.http import HttpClient
from ecfr.core.loader import TitleSource
from ecfr.regulation.models import AgencyInfo, ChapterInfo, TitleInfo
from ecfr.settings import (
    ADMIN_API_URL,
    FETCH_INITIAL_DELAY,
    FETCH_MAX_DELAY,
    FETCH_MAX_RETRIES,
    FETCH_TIMEOUT,
    HTTP_CACHE_DIR,
    HTTP_CACHE_ENABLED,
    HTTP_CACHE_TTL,
    METADATA_TIMEOUT,
    VERSIONER_API_URL,
)

logger = logging.getLogger(__name__)


def default_http_client() -> HttpClient:
    return HttpClient(
        max_retries=FETCH_MAX_RETRIES,
        initial_delay=FETCH_INITIAL_DELAY,
        max_delay=FETCH_MAX_DELAY,
        timeout=METADATA_TIMEOUT,
        enable_cache=HTTP_CACHE_ENABLED,
        cache_dir=HTTP_CACHE_DIR,
        cache_ttl=HTTP_CACHE_TTL,
    )


class EcfrScraper(TitleSource):
    """Client for the eCFR versioner and admin APIs."""

    def __init__(
        self,
        http_client: Optional[HttpClient] = None,
        versioner_url: str = VERSIONER_API_URL,
        admin_url: str = ADMIN_API_URL,
        fetch_timeout: float = FETCH_TIMEOUT,
    ):
        self.http_client = http_client or default_http_client()
        self.versioner_url = versioner_url.rstrip("/")
        self.admin_url = admin_url.rstrip("/")
        self.fetch_timeout = fetch_timeout

    def _get_json(self, url: str, cache: bool = True) -> Dict[str, Any]:
        response = self.http_client.get(url, cache=cache)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"Malformed JSON response from {url}", url=url) from e

    def list_titles(self) -> List[TitleInfo]:
        # Listings change when a new issue is published, so they are never cached
        data = self._get_json(f"{self.versioner_url}/titles.json", cache=False)
        return [TitleInfo(**title) for title in data.get("titles", [])]

    def get_chapters(self, title_number: int, issue_date: date) -> List[ChapterInfo]:
        """Chapters of a title from its structure document, including those nested in subtitles."""
        url = f"{self.versioner_url}/structure/{issue_date.isoformat()}/title-{title_number}.json"
        structure = self._get_json(url)
        return [ChapterInfo(**node) for node in _iter_structure_nodes(structure, "chapter")]

    def list_versions(self, title_number: int) -> List[date]:
        """Distinct issue dates on which a title changed, oldest first."""
        url = f"{self.versioner_url}/versions/title-{title_number}.json"
        data = self._get_json(url, cache=False)
        versions = data.get("content_versions") or data.get("versions") or []

        dates = set()
        for version in versions:
            value = version.get("issue_date") or version.get("date")
            if not value:
                continue
            try:
                dates.add(date.fromisoformat(value[:10]))
            except ValueError as e:
                raise FetchError(f"Malformed version date {value!r} in response from {url}", url=url) from e

        return sorted(dates)

    def list_agencies(self) -> List[AgencyInfo]:
        data = self._get_json(f"{self.admin_url}/agencies.json", cache=False)
        return [AgencyInfo(**agency) for agency in data.get("agencies", [])]

    def title_xml_url(self, title_number: int, issue_date: date) -> str:
        return f"{self.versioner_url}/full/{issue_date.isoformat()}/title-{title_number}.xml"

    def load_title_xml(self, title_number: int, effective_date: Optional[date] = None) -> bytes:
        """Download the full XML for a title as of an issue date.

        Raises:
            ValueError: If no date is given; the full-text endpoint requires one
            TransientFetchError: If every attempt timed out
            FetchError: On any other failure
        """
        if effective_date is None:
            raise ValueError("An issue date is required to fetch a title from the API")

        url = self.title_xml_url(title_number, effective_date)
        logger.info(
            f"Fetching Title {title_number} for {effective_date}",
            extra={"title_number": title_number, "effective_date": str(effective_date), "url": url},
        )
        response = self.http_client.get(url, timeout=self.fetch_timeout)
        return response.content


def _iter_structure_nodes(node: Dict[str, Any], node_type: str) -> Iterator[Dict[str, Any]]:
    """Find structure nodes of a type, without descending into matches."""
    for child in node.get("children") or []:
        if child.get("type") == node_type:
            yield child
        else:
            yield from _iter_structure_nodes(child, node_type)
