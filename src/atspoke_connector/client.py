"""
atSpoke API Client

Synchronous HTTP client with:
- Static Api-Key authentication
- Offset pagination, one page in flight at a time
- Incremental cutoff for requests (last run watermark + 14 day ceiling)
- Request/response logging

Failures are not retried here. Any non-200 response or transport failure
surfaces as AtSpokeAuthenticationError and aborts the calling operation.
"""

import time
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

import httpx
import structlog

from atspoke_connector.models import (
    AtSpokeModel,
    AtSpokeRequest,
    AtSpokeRequestType,
    AtSpokeResultsPage,
    AtSpokeTeam,
    AtSpokeUser,
    AtSpokeWebhook,
    AtSpokeWhoAmI,
    parse_timestamp,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=AtSpokeModel)
ItemHandler = Callable[[T], None]

BASE_URL = "https://api.askspoke.com/api/v1"

# Do not increase: the provider breaks on larger pages when ai=true
USERS_PAGE_SIZE = 25
TEAMS_PAGE_SIZE = 25
REQUEST_TYPES_PAGE_SIZE = 25
# Provider maximum for /requests
REQUESTS_PAGE_SIZE = 100

# /requests returns only OPEN by default
REQUEST_STATUS_FILTER = "OPEN,RESOLVED,PENDING,LOCKED,AUTO_RESOLVED"

LOOKBACK_WINDOW = timedelta(days=14)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class AtSpokeAPIError(Exception):
    """Base exception for atSpoke API errors."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        status_text: str | None = None,
    ):
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code
        self.status_text = status_text

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code:
            return f"{base} (HTTP {self.status_code}: {self.status_text})"
        if self.status_text:
            return f"{base} ({self.status_text})"
        return base


class AtSpokeAuthenticationError(AtSpokeAPIError):
    """
    Raised for any failed call to the provider.

    Covers non-200 responses as well as DNS, TLS, timeout and connection
    failures. `cause` holds the underlying exception when there is one.
    """

    def __init__(
        self,
        endpoint: str,
        status_code: int | None = None,
        status_text: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(
            f"Provider authentication failed for {endpoint}",
            endpoint=endpoint,
            status_code=status_code,
            status_text=status_text,
        )
        self.cause = cause


# ---------------------------------------------------------------------------
# Incremental cutoff
# ---------------------------------------------------------------------------

def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def default_watermark(now: datetime | None = None) -> datetime:
    """Watermark used when no previous run succeeded."""
    now = _as_utc(now) if now else datetime.now(timezone.utc)
    return now - LOOKBACK_WINDOW


def should_stop_fetching_requests(
    requests: Sequence[AtSpokeRequest],
    last_execution_time: datetime,
    now: datetime | None = None,
) -> bool:
    """
    Decide whether another page of requests is worth fetching.

    Pages come back most-recent-first, so the last request on a page is the
    oldest one seen so far. Stop when:
    - the page is empty
    - the oldest request has no parseable updatedAt
    - it is not newer than the last execution time
    - it is older than the 14 day lookback window, whatever the watermark
    """
    if not requests:
        return True

    updated_on = parse_timestamp(requests[-1].updated_at)
    if updated_on is None:
        return True

    if not updated_on > _as_utc(last_execution_time):
        return True

    if updated_on < default_watermark(now):
        return True

    return False


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class AtSpokeClient:
    """
    atSpoke API client.

    Every iterate_* method hands items to `handler` one at a time, in page
    order, and only requests the next page once the handler has returned
    for every item on the current one.

    Example:
        client = AtSpokeClient(api_key="your-key")

        with client:
            client.iterate_users(lambda user: print(user.email))
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: atSpoke API key, sent as the Api-Key header
            base_url: API root, overridable for tests
            timeout: Transport timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        if not api_key:
            raise ValueError("API key is required")

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

        # Request counters for observability
        self._request_count = 0
        self._error_count = 0

        self._log = logger.bind(base_url=self.base_url)

    def _build_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Api-Key": self.api_key,
                "Content-Type": "application/json",
                "User-Agent": "atspoke-graph-connector/1.0",
            },
        )

    def __enter__(self) -> "AtSpokeClient":
        if self._client is None:
            self._client = self._build_client()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    @property
    def client(self) -> httpx.Client:
        """Get HTTP client, creating if needed."""
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _make_request(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        GET `endpoint` and return the decoded JSON body.

        Anything other than HTTP 200 with a JSON body raises
        AtSpokeAuthenticationError.
        """
        url = f"{self.base_url}{endpoint}"
        log = self._log.bind(endpoint=endpoint)

        self._request_count += 1
        request_id = self._request_count
        log.debug("API request", request_id=request_id, params=params)

        start_time = time.monotonic()
        try:
            response = self.client.get(url, params=params)
        except httpx.HTTPError as e:
            self._error_count += 1
            log.warning("API request failed", request_id=request_id, error=str(e))
            raise AtSpokeAuthenticationError(
                endpoint=url,
                status_text=str(e) or type(e).__name__,
                cause=e,
            ) from e
        elapsed = time.monotonic() - start_time

        log.debug(
            "API response",
            request_id=request_id,
            status_code=response.status_code,
            elapsed_ms=round(elapsed * 1000),
        )

        if response.status_code != 200:
            self._error_count += 1
            raise AtSpokeAuthenticationError(
                endpoint=url,
                status_code=response.status_code,
                status_text=f"Received HTTP status {response.status_code}",
            )

        try:
            return response.json()
        except ValueError as e:
            self._error_count += 1
            raise AtSpokeAuthenticationError(
                endpoint=url,
                status_code=response.status_code,
                status_text=f"Invalid JSON response: {e}",
                cause=e,
            ) from e

    def _fetch_results(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        data = self._make_request(endpoint, params)
        return AtSpokeResultsPage.model_validate(data).results

    def _paginate(
        self,
        endpoint: str,
        page_size: int,
        model: type[T],
        handler: ItemHandler[T],
        extra_params: dict[str, Any] | None = None,
        stop_condition: Callable[[list[T]], bool] | None = None,
        max_records: int | None = None,
    ) -> int:
        """
        Walk `endpoint` page by page using start/limit offsets.

        Paging ends when a page comes back short, when `stop_condition`
        returns True for the page just delivered, or once `max_records`
        items have been handed to `handler`.

        Returns the number of items delivered.
        """
        if max_records is not None and max_records <= 0:
            return 0

        delivered = 0
        start = 0  # 0 is the most recent record

        while True:
            params: dict[str, Any] = {"start": start, "limit": page_size}
            if extra_params:
                params.update(extra_params)

            items = [model.model_validate(r) for r in self._fetch_results(endpoint, params)]

            for item in items:
                if max_records is not None and delivered >= max_records:
                    break
                handler(item)
                delivered += 1

            self._log.info(
                "Fetched page",
                endpoint=endpoint,
                start=start,
                count=len(items),
                delivered=delivered,
            )

            if len(items) < page_size:
                break
            if max_records is not None and delivered >= max_records:
                self._log.info("Record cap reached", endpoint=endpoint, max_records=max_records)
                break
            if stop_condition is not None and stop_condition(items):
                self._log.info("Cutoff reached", endpoint=endpoint, start=start)
                break

            start += page_size

        return delivered

    # -------------------------------------------------------------------------
    # Account
    # -------------------------------------------------------------------------

    def get_account_info(self) -> AtSpokeWhoAmI:
        return AtSpokeWhoAmI.model_validate(self._make_request("/whoami"))

    def verify_authentication(self) -> None:
        """Cheapest authenticated call; raises if the key is rejected."""
        self._make_request("/whoami")

    # -------------------------------------------------------------------------
    # Resources
    # -------------------------------------------------------------------------

    def iterate_users(self, handler: ItemHandler[AtSpokeUser]) -> int:
        return self._paginate("/users", USERS_PAGE_SIZE, AtSpokeUser, handler)

    def iterate_teams(self, handler: ItemHandler[AtSpokeTeam]) -> int:
        return self._paginate("/teams", TEAMS_PAGE_SIZE, AtSpokeTeam, handler)

    def iterate_webhooks(self, handler: ItemHandler[AtSpokeWebhook]) -> int:
        """Webhooks come back in a single unpaged response."""
        webhooks = [AtSpokeWebhook.model_validate(r) for r in self._fetch_results("/webhooks")]
        for webhook in webhooks:
            handler(webhook)
        return len(webhooks)

    def iterate_request_types(self, handler: ItemHandler[AtSpokeRequestType]) -> int:
        return self._paginate(
            "/request_types", REQUEST_TYPES_PAGE_SIZE, AtSpokeRequestType, handler
        )

    def iterate_requests(
        self,
        last_execution_time: datetime,
        handler: ItemHandler[AtSpokeRequest],
        max_records: int | None = None,
    ) -> int:
        """
        Iterate requests in every status, newest first.

        Args:
            last_execution_time: Start of the last successful run; paging stops
                once requests are no newer than this
            handler: Called for each request
            max_records: Optional cap on requests delivered this run
        """
        return self._paginate(
            "/requests",
            REQUESTS_PAGE_SIZE,
            AtSpokeRequest,
            handler,
            extra_params={"status": REQUEST_STATUS_FILTER},
            stop_condition=lambda page: should_stop_fetching_requests(page, last_execution_time),
            max_records=max_records,
        )

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Get client statistics for monitoring."""
        return {
            "base_url": self.base_url,
            "request_count": self._request_count,
            "error_count": self._error_count,
            "error_rate": round(self._error_count / max(1, self._request_count), 4),
        }
