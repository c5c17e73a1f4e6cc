"""Cursor-paginated client for the balldontlie NFL feed.

The provider answers `GET /<resource>?cursor=<opaque>&per_page=<n>` with
`{"data": [...], "meta": {"next_cursor": <opaque|null>}}`. A missing or null
`next_cursor` is the only end-of-feed signal; an empty `data` list with a
cursor is a valid mid-stream page.

Transient failures (any requests network error, 5xx, 429) are retried with
exponential backoff. Every retry sends the same cursor. When retries run out
the call fails with FeedUnavailable carrying the cursor it was requesting.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import (
    BDL_API_KEY,
    BDL_BASE_URL,
    DEFAULT_PER_PAGE,
    FEED_BACKOFF_MAX,
    FEED_BACKOFF_MULTIPLIER,
    FEED_MAX_ATTEMPTS,
    FEED_TIMEOUT,
    MAX_PER_PAGE,
)
from .errors import FeedUnavailable
from .models import FeedPage


USER_AGENT = "nfl-sync-pipeline/0.1"

# Resource type -> provider endpoint path
RESOURCE_ENDPOINTS: Dict[str, str] = {
    "teams": "teams",
    "players": "players",
    "stats": "stats",
    "games": "games",
}

# API rate limiting configuration
DEFAULT_API_DELAY = 0.2  # Default delay between API calls in seconds
MIN_API_DELAY = 0.0
MAX_API_DELAY = 2.0

logger = logging.getLogger(__name__)


class TransientFeedError(Exception):
    """A retryable provider response (5xx or rate limited)."""

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"HTTP {status}: {message}")


# Any requests-level failure, a truncated body included, is retried.
TRANSIENT_EXCEPTIONS = (
    TransientFeedError,
    requests.exceptions.RequestException,
)


class RateLimiter:
    """Minimum spacing between provider calls, shared by every job using a client."""

    def __init__(self, base_delay: float = DEFAULT_API_DELAY) -> None:
        self.base_delay = max(MIN_API_DELAY, min(base_delay, MAX_API_DELAY))
        self.last_call_time = 0.0
        self._lock = threading.Lock()

    def wait_if_needed(self) -> None:
        """Wait if needed to respect rate limits."""
        with self._lock:
            current_time = time.time()
            time_since_last_call = current_time - self.last_call_time

            if time_since_last_call < self.base_delay:
                sleep_time = self.base_delay - time_since_last_call
                logger.debug(f"Rate limiting: sleeping for {sleep_time:.3f}s")
                time.sleep(sleep_time)

            self.last_call_time = time.time()


def clamp_page_size(page_size: Optional[int]) -> int:
    """Apply the default page size and the provider's maximum."""
    if page_size is None:
        page_size = DEFAULT_PER_PAGE
    return max(1, min(int(page_size), MAX_PER_PAGE))


class FeedClient:
    """Explicitly constructed provider client, injected into each sync job.

    Args:
        base_url: Provider base URL (default from BALLDONTLIE_NFL_BASE_URL)
        api_key: Value for the Authorization header
        session: Optional requests.Session; when omitted each thread gets its own
        max_attempts: Total attempts per page, including the first
        backoff_multiplier: Exponential backoff multiplier in seconds
        backoff_max: Upper bound for a single backoff sleep
        timeout: Per-request timeout in seconds
        rate_limiter: Shared RateLimiter; a default one is created when omitted
        sleep: Sleep function used between retries
    """

    def __init__(
        self,
        base_url: str = BDL_BASE_URL,
        api_key: str = BDL_API_KEY,
        *,
        session: Optional[requests.Session] = None,
        max_attempts: int = FEED_MAX_ATTEMPTS,
        backoff_multiplier: float = FEED_BACKOFF_MULTIPLIER,
        backoff_max: float = FEED_BACKOFF_MAX,
        timeout: float = FEED_TIMEOUT,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.max_attempts = max(1, max_attempts)
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max = backoff_max
        self.timeout = timeout
        self.rate_limiter = rate_limiter or RateLimiter()
        self._session = session
        self._local = threading.local()
        self._sleep = sleep

    @property
    def session(self) -> requests.Session:
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def _headers(self) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = self.api_key
        return headers

    def _url(self, resource_type: str) -> str:
        try:
            endpoint = RESOURCE_ENDPOINTS[resource_type]
        except KeyError:
            raise ValueError(
                f"Unknown resource type: {resource_type}. "
                f"Available resources: {', '.join(sorted(RESOURCE_ENDPOINTS))}"
            ) from None
        return f"{self.base_url}/{endpoint}"

    def fetch_page(
        self,
        resource_type: str,
        cursor: Optional[Any] = None,
        page_size: Optional[int] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> FeedPage:
        """Fetch one page of a resource.

        Args:
            resource_type: One of RESOURCE_ENDPOINTS
            cursor: Cursor from the previous page, or None for the first page
            page_size: Requested page size; default applied and clamped to the provider max
            params: Extra provider filters (e.g. {"seasons[]": [2024]})

        Returns:
            FeedPage with the raw records and the next cursor (None at the end)

        Raises:
            FeedUnavailable: If the page could not be fetched after retries
            ValueError: If the resource type is unknown
        """
        url = self._url(resource_type)
        query: Dict[str, Any] = dict(params or {})
        query["per_page"] = clamp_page_size(page_size)
        if cursor is not None:
            query["cursor"] = cursor

        retryer = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max),
            retry=retry_if_exception_type(TRANSIENT_EXCEPTIONS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

        try:
            payload = retryer(self._get_once, resource_type, cursor, url, query)
        except TransientFeedError as e:
            logger.error(
                f"Feed {resource_type} gave up after {self.max_attempts} attempts: {e}"
            )
            raise FeedUnavailable(resource_type, cursor, e.message, status=e.status) from e
        except requests.exceptions.RequestException as e:
            logger.error(
                f"Feed {resource_type} gave up after {self.max_attempts} attempts: {e}"
            )
            raise FeedUnavailable(resource_type, cursor, str(e)) from e

        return self._parse_page(resource_type, cursor, payload)

    def _get_once(
        self,
        resource_type: str,
        cursor: Optional[Any],
        url: str,
        query: Dict[str, Any],
    ) -> Any:
        self.rate_limiter.wait_if_needed()
        logger.debug(f"GET {url} params={query}")
        resp = self.session.get(url, params=query, headers=self._headers(), timeout=self.timeout)

        status = resp.status_code
        if status == 429 or status >= 500:
            raise TransientFeedError(status, _response_message(resp))
        if status >= 400:
            raise FeedUnavailable(resource_type, cursor, _response_message(resp), status=status)

        try:
            return resp.json()
        except ValueError as e:
            raise FeedUnavailable(
                resource_type, cursor, f"Response body is not JSON: {e}", status=status
            ) from e

    def _parse_page(self, resource_type: str, cursor: Optional[Any], payload: Any) -> FeedPage:
        if not isinstance(payload, dict):
            raise FeedUnavailable(resource_type, cursor, "Response is not a JSON object")

        data = payload.get("data")
        if data is None:
            data = []
        if not isinstance(data, list):
            raise FeedUnavailable(resource_type, cursor, "Response 'data' is not a list")

        meta = payload.get("meta") or {}
        next_cursor = meta.get("next_cursor", meta.get("nextCursor")) if isinstance(meta, dict) else None
        if next_cursor == "":
            next_cursor = None

        return FeedPage(records=data, next_cursor=next_cursor)


def _response_message(resp: requests.Response) -> str:
    text = (getattr(resp, "text", "") or "").strip()
    reason = getattr(resp, "reason", "") or ""
    return (text[:200] if text else reason) or f"HTTP {resp.status_code}"


__all__ = [
    "FeedClient",
    "RateLimiter",
    "RESOURCE_ENDPOINTS",
    "TRANSIENT_EXCEPTIONS",
    "TransientFeedError",
    "clamp_page_size",
    "DEFAULT_API_DELAY",
    "MIN_API_DELAY",
    "MAX_API_DELAY",
]
