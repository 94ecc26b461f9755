# ABOUTME: Async RSS/Atom feed fetcher for a single feed source.
# ABOUTME: Uses httpx for download and feedparser for parsing into RawFeedItem models.

import contextlib
from datetime import UTC, datetime
from typing import Any

import feedparser
import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from feed_pulse.config import Settings, get_settings
from feed_pulse.errors import SourceFetchError
from feed_pulse.models import FeedSource, FetchedFeed, RawFeedItem
from feed_pulse.utils.text import html_to_text, normalize_whitespace

log = structlog.get_logger()


class FeedFetcher:
    """Fetches and parses the feed of one source per call."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialized HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.request_timeout,
                headers={"User-Agent": self.settings.user_agent},
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "FeedFetcher":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def fetch_feed(self, source: FeedSource) -> FetchedFeed:
        """Download and parse the feed of `source`.

        Raises:
            SourceFetchError: On HTTP failure or an unparseable body.
        """
        log.debug("fetching_feed", source=source.name, url=source.url)

        try:
            response = await self._get(source.url)
        except httpx.HTTPError as e:
            raise SourceFetchError(source.name, source.url, f"{type(e).__name__}: {e}") from e

        feed = parse_feed(response.content, source)
        log.info("feed_fetched", source=source.name, items=len(feed.items))
        return feed

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
        before_sleep=lambda retry_state: log.warning(
            "feed_fetch_retry",
            attempt=retry_state.attempt_number,
            wait=retry_state.next_action.sleep,
        ),
    )
    async def _get(self, url: str) -> httpx.Response:
        response = await self.client.get(url)
        response.raise_for_status()
        return response


def parse_feed(body: bytes | str, source: FeedSource) -> FetchedFeed:
    """Parse a feed body into a FetchedFeed.

    Entries without a link are skipped. A body that feedparser flags as
    broken and that yields no entries is treated as a failed source.

    Raises:
        SourceFetchError: If the body is not a usable feed.
    """
    parsed = feedparser.parse(body)

    if parsed.bozo and not parsed.entries:
        reason = parsed.get("bozo_exception") or "not a feed"
        raise SourceFetchError(source.name, source.url, f"parse error: {reason}")

    items: list[RawFeedItem] = []
    for entry in parsed.entries:
        item = _entry_to_item(entry, source)
        if item is not None:
            items.append(item)

    return FetchedFeed(
        source=source,
        title=parsed.feed.get("title"),
        link=parsed.feed.get("link"),
        items=items,
    )


def _entry_to_item(entry: Any, source: FeedSource) -> RawFeedItem | None:
    link = entry.get("link")
    if not link:
        log.warning("feed_entry_without_link", source=source.name, title=entry.get("title"))
        return None

    content_snippet = None
    if entry.get("content"):
        content_snippet = html_to_text(entry.content[0].get("value")) or None

    creator = entry.get("author")

    return RawFeedItem(
        link=link,
        title=normalize_whitespace(entry.get("title", "")),
        source=source,
        guid=entry.get("id") or None,
        published_at=_entry_published_at(entry),
        summary=html_to_text(entry.get("summary")) or None,
        content_snippet=content_snippet,
        categories=[tag["term"] for tag in entry.get("tags", []) if tag.get("term")],
        creator=creator if isinstance(creator, str) and creator else None,
    )


def _entry_published_at(entry: Any) -> datetime | None:
    """Publish date of an entry in UTC, falling back to its updated date."""
    parsed_time = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed_time:
        return None
    with contextlib.suppress(ValueError, TypeError):
        return datetime(*parsed_time[:6], tzinfo=UTC)
    return None
