"""HTTP polling-cursor listing feed.

Polls ``GET <url>?cursor=<cursor>&limit=<page_size>`` which answers::

    {"events": [{"listing_id": ..., "change_kind": ..., "listing": {...}}],
     "next_cursor": "..."}

The cursor and feed health live in the feed_status table so a restarted
engine resumes where it stopped.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from alert_engine.config.models import ListingFeedConfig
from alert_engine.domain.models import ListingEvent
from alert_engine.logging import get_logger
from alert_engine.persistence import FeedStatusRepository, get_session
from alert_engine.utils.timestamps import utc_now

from .base import BaseListingSource, parse_event
from .exceptions import (
    ListingSourceError,
    ListingSourceHTTPError,
    ListingSourceResponseError,
    ListingSourceTimeoutError,
)

logger = get_logger(__name__, component="source")


class HttpListingFeed(BaseListingSource):
    """Cursor-based HTTP change feed over the external listing store."""

    def __init__(
        self,
        config: ListingFeedConfig,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Args:
            config: Feed URL, page size, timeout and user agent
            token: Optional bearer token (LISTING_FEED_TOKEN)
            session: requests session (creates one if None)
        """
        if not config.url:
            raise ValueError("HttpListingFeed requires listing_feed.url")

        self.name = config.name
        self.url = config.url
        self.page_size = config.page_size
        self.timeout = config.timeout

        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": config.user_agent})
        if token:
            self._session.headers.update({"Authorization": f"Bearer {token}"})

        self._pending_cursor: Optional[str] = None

    def poll(self) -> List[ListingEvent]:
        """Fetch the page after the stored cursor.

        Raises:
            ListingSourceError: On HTTP, timeout or payload errors. The error
                is recorded in feed_status before it is raised.
        """
        cursor = self._load_cursor()
        params: Dict[str, Any] = {"limit": self.page_size}
        if cursor:
            params["cursor"] = cursor

        try:
            payload = self._make_request(params)
            events, next_cursor = self._parse_page(payload)
        except ListingSourceError as e:
            self._record_error(str(e))
            raise

        self._pending_cursor = next_cursor
        logger.info(
            f"Polled {len(events)} listing events from {self.name}",
            extra={
                "event": "source.poll.completed",
                "feed": self.name,
                "count": len(events),
                "cursor": cursor,
                "next_cursor": next_cursor,
            },
        )
        return events

    def acknowledge(self) -> None:
        """Persist the cursor returned by the last successful poll."""
        with get_session() as session:
            FeedStatusRepository(session).update_success(
                self.name, utc_now(), self._pending_cursor
            )
        self._pending_cursor = None

    def _load_cursor(self) -> Optional[str]:
        with get_session() as session:
            return FeedStatusRepository(session).get_cursor(self.name)

    def _record_error(self, message: str) -> None:
        with get_session() as session:
            FeedStatusRepository(session).update_error(self.name, utc_now(), message)

    def _parse_page(self, payload: Any):
        if not isinstance(payload, dict) or not isinstance(payload.get("events", []), list):
            raise ListingSourceResponseError(
                f"Unexpected feed payload from {self.url}: expected an object with an 'events' list"
            )

        events = []
        for raw in payload.get("events", []):
            event = parse_event(raw)
            if event is not None:
                events.append(event)

        next_cursor = payload.get("next_cursor")
        return events, str(next_cursor) if next_cursor is not None else None

    def _make_request(self, params: Dict[str, Any]) -> Any:
        """GET the feed page, classifying failures like the other HTTP clients."""
        try:
            logger.debug(
                f"HTTP GET request to {self.url}",
                extra={"event": "source.fetch.request", "url": self.url, "timeout": self.timeout},
            )
            response = self._session.get(self.url, params=params, timeout=self.timeout)

            if response.status_code >= 400:
                is_retryable = response.status_code >= 500 or response.status_code == 429
                logger.log(
                    logging.WARNING if is_retryable else logging.ERROR,
                    f"HTTP {response.status_code} error from {self.url}",
                    extra={
                        "event": "source.fetch.retryable_error" if is_retryable else "source.fetch.error",
                        "status_code": response.status_code,
                        "url": self.url,
                    },
                )
                raise ListingSourceHTTPError(
                    f"HTTP {response.status_code}: {response.reason}",
                    status_code=response.status_code,
                    url=self.url,
                )

            try:
                return response.json()
            except ValueError as e:
                raise ListingSourceResponseError(
                    f"Failed to parse JSON response from {self.url}: {e}"
                ) from e

        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {self.url} timed out after {self.timeout} seconds",
                extra={"event": "source.fetch.retryable_error", "error_type": "Timeout"},
            )
            raise ListingSourceTimeoutError(
                f"Request to {self.url} timed out after {self.timeout} seconds", url=self.url
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(
                f"Request to {self.url} failed: {e}",
                extra={"event": "source.fetch.error", "error_type": type(e).__name__},
            )
            raise ListingSourceHTTPError(
                f"Request to {self.url} failed: {e}", status_code=0, url=self.url
            ) from e
