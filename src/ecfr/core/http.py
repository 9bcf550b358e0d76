import logging
import os
import shutil
from typing import Any, Dict, Optional, Union

import requests
from diskcache import FanoutCache
from tenacity import (
    RetryError,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ecfr.core.exceptions import FetchError, TransientFetchError

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {504}


class HttpClient:
    """HTTP client with bounded exponential backoff for transient failures and an optional disk cache.

    Only timeouts and gateway timeouts are retried. Everything else (4xx, other 5xx,
    refused connections) fails on the first attempt.
    """

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 60.0,
        max_delay: float = 600.0,
        timeout: Optional[Union[float, tuple]] = 600,
        session: Optional[requests.Session] = None,
        enable_cache: bool = False,
        cache_dir: Optional[str] = None,
        cache_size_limit: int = 5_000_000_000,  # 5GB, full titles are large
        cache_ttl: int = 86400,
    ):
        """
        Initialize the HTTP client.

        Args:
            max_retries: Total number of attempts for transient failures
            initial_delay: Delay before the first retry in seconds, doubled per attempt
            max_delay: Upper bound on a single backoff delay in seconds
            timeout: Default timeout for requests
            session: Optional requests.Session to use
            enable_cache: Whether to cache successful GET responses on disk
            cache_dir: Directory for cache storage. Defaults to ./data/cache/http
            cache_size_limit: Maximum cache size in bytes
            cache_ttl: Time to live for cached items in seconds
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.enable_cache = enable_cache
        self.cache_ttl = cache_ttl
        self.cache_size_limit = cache_size_limit

        self._retry_decorator = retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(
                multiplier=self.initial_delay,
                min=self.initial_delay,
                max=self.max_delay,
            ),
            retry=retry_if_exception_type(TransientFetchError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )

        if self.enable_cache:
            if cache_dir is None:
                cache_dir = os.path.join(os.getcwd(), "data", "cache", "http")
            os.makedirs(cache_dir, exist_ok=True)
            self._cache = FanoutCache(
                directory=cache_dir,
                size_limit=cache_size_limit,
                timeout=60,
                shards=8,
            )
            logger.debug(f"FanoutCache initialized at {cache_dir} with 8 shards")

    def _make_request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Make a single attempt, converting failures into classified fetch errors."""
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method=method, url=url, **kwargs)
        except requests.exceptions.Timeout as e:
            # ConnectTimeout is also a ConnectionError, so timeouts are checked first
            raise TransientFetchError(f"Request timed out: {url}", url=url) from e
        except requests.exceptions.ConnectionError as e:
            raise FetchError(f"Connection failed for {url}: {e}", url=url) from e
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Request failed for {url}: {e}", url=url) from e

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientFetchError(
                f"Gateway timeout ({response.status_code}) for {url}",
                url=url,
                status_code=response.status_code,
            )

        if response.status_code >= 400:
            raise FetchError(
                f"HTTP {response.status_code} for {url}",
                url=url,
                status_code=response.status_code,
            )

        return response

    def _make_request_with_retry(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self._retry_decorator(self._make_request)(method, url, **kwargs)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(
                f"Failed to fetch {url} after {self.max_retries} attempts",
                extra={
                    "event_type": "fetch_failed",
                    "url": url,
                    "attempts": self.max_retries,
                },
            )
            raise TransientFetchError(
                f"Failed to fetch {url} after {self.max_retries} attempts",
                url=url,
                status_code=getattr(last_error, "status_code", None),
            ) from last_error

    def _get_cache_key(self, method: str, url: str, **kwargs: Any) -> str:
        """Generate a cache key from the request parameters."""
        sorted_kwargs = sorted(
            [(k, v) for k, v in kwargs.items() if k not in ["data", "json", "files", "timeout"]]
        )
        return f"{method}:{url}:{str(sorted_kwargs)}"

    def request(self, method: str, url: str, cache: bool = True, **kwargs: Any) -> requests.Response:
        """
        Make an HTTP request with retry logic and optional caching.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: URL to request
            cache: Whether a cached response may be served and stored for this request
            **kwargs: Additional arguments to pass to requests

        Returns:
            requests.Response: The response object

        Raises:
            TransientFetchError: If every attempt timed out
            FetchError: On any non-transient failure
        """
        if not self.enable_cache or not cache or method != "GET":
            return self._make_request_with_retry(method, url, **kwargs)

        cache_key = self._get_cache_key(method, url, **kwargs)

        try:
            cached_response = self._cache.get(cache_key)
            if cached_response is not None:
                logger.debug(f"Cache hit for {url}")
                return cached_response
        except Exception as e:
            if "database disk image is malformed" in str(e):
                logger.warning(f"Cache corrupted, recreating: {e}")
                self._recreate_cache()
            else:
                logger.warning(f"Cache read error for {url}: {e}. Continuing without cache.")

        response = self._make_request_with_retry(method, url, **kwargs)

        try:
            self._cache.set(cache_key, response, expire=self.cache_ttl)
            logger.debug(f"Cached response for {url}")
        except Exception as e:
            logger.warning(f"Cache write error for {url}: {e}. Response returned without caching.")

        return response

    def get(self, url: str, cache: bool = True, **kwargs: Any) -> requests.Response:
        """Make a GET request with caching."""
        return self.request("GET", url, cache=cache, **kwargs)

    def clear_cache(self) -> None:
        """Clear the entire cache."""
        if self.enable_cache:
            try:
                self._cache.clear()
                logger.debug("Cache cleared")
            except Exception as e:
                logger.error(f"Failed to clear cache: {e}. Attempting to recreate cache.")
                self._recreate_cache()

    def _recreate_cache(self) -> None:
        """Recreate the cache directory if corrupted."""
        cache_dir = self._cache.directory
        try:
            self._cache.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing corrupted cache: {e}")

        try:
            shutil.rmtree(cache_dir)
            logger.info(f"Removed corrupted cache directory: {cache_dir}")
        except OSError as e:
            logger.error(f"Failed to remove cache directory: {e}")

        os.makedirs(cache_dir, exist_ok=True)
        self._cache = FanoutCache(
            directory=cache_dir,
            size_limit=self.cache_size_limit,
            timeout=60,
            shards=8,
        )
        logger.info("FanoutCache recreated successfully")

    def get_cache_info(self) -> Dict[str, Any]:
        """
        Get information about the current cache state.

        Returns:
            Dict containing cache statistics
        """
        if not self.enable_cache:
            return {"enabled": False}

        return {
            "enabled": True,
            "size": self._cache.volume(),
            "size_limit": self.cache_size_limit,
            "directory": self._cache.directory,
            "ttl": self.cache_ttl,
        }
