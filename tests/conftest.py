# ABOUTME: Pytest fixtures and configuration for feed-pulse tests.
# ABOUTME: Provides mock settings, sample sources and items, and fake HTTP collaborators.

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import httpx
import pytest

from feed_pulse.config import Settings
from feed_pulse.errors import EnrichmentLookupError, SourceFetchError
from feed_pulse.models import (
    EnrichmentResult,
    FeedSource,
    FetchedFeed,
    OgImage,
    RawFeedItem,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


SAMPLE_RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>Example Blog</title>
    <link>https://blog.example.com/</link>
    <description>Engineering notes</description>
    <item>
      <title>First &amp; Best</title>
      <link>https://blog.example.com/posts/1</link>
      <guid>https://blog.example.com/?p=1</guid>
      <pubDate>Mon, 05 Oct 2026 10:00:00 +0000</pubDate>
      <description>&lt;p&gt;Hello   &lt;b&gt;world&lt;/b&gt;&lt;/p&gt;</description>
      <category>python</category>
      <category>async</category>
      <dc:creator>Alice</dc:creator>
    </item>
    <item>
      <title>Undated</title>
      <link>https://blog.example.com/posts/2</link>
      <description>Body</description>
    </item>
    <item>
      <title>No link here</title>
      <pubDate>Tue, 06 Oct 2026 10:00:00 +0000</pubDate>
    </item>
  </channel>
</rss>
"""

SAMPLE_ATOM = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Blog</title>
  <link href="https://atom.example.com/"/>
  <id>urn:uuid:atom-blog</id>
  <updated>2026-10-06T08:30:00Z</updated>
  <entry>
    <title>Atom post</title>
    <link href="https://atom.example.com/a"/>
    <id>tag:atom.example.com,2026:a</id>
    <updated>2026-10-06T08:30:00Z</updated>
    <summary>Short summary</summary>
    <content type="html">&lt;p&gt;Long content&lt;/p&gt;</content>
    <author><name>Bob</name></author>
  </entry>
</feed>
"""


@pytest.fixture
def mock_settings(tmp_path: Path) -> Settings:
    """Create mock settings for testing."""
    return Settings(
        feed_fetch_concurrency=50,
        og_fetch_concurrency=20,
        retention_days=14,
        request_timeout=5,
        share_count_api_url="https://counts.example.com/count/entries",
        share_count_batch_size=50,
        max_feed_description_length=200,
        max_feed_content_length=500,
        site_url="https://feeds.example.com/",
        feed_title="Test Feed",
        feed_description="Test feed description",
        feed_language="en",
        feed_copyright="Test",
        feed_generator="feed-pulse-test",
        feed_sources_file=tmp_path / "feed_sources.toml",
        feeds_dir=tmp_path / "site" / "feeds",
        blog_feeds_dir=tmp_path / "site" / "blog-feeds",
        image_cache_dir=tmp_path / "site" / "images" / "og",
        log_level="DEBUG",
    )


def make_source(name: str = "example") -> FeedSource:
    """Build a FeedSource whose URLs derive from `name`."""
    return FeedSource(
        name=name,
        url=f"https://{name}.example.com/feed",
        blog_title=f"{name.title()} Blog",
        blog_link=f"https://{name}.example.com/",
    )


def make_item(
    source: FeedSource | None = None,
    slug: str = "post",
    published_at: datetime | None = NOW - timedelta(days=1),
    **overrides,
) -> RawFeedItem:
    """Build a RawFeedItem of `source` with sensible defaults."""
    source = source or make_source()
    fields = {
        "link": f"{source.blog_link}{slug}",
        "title": f"Post {slug}",
        "source": source,
        "published_at": published_at,
        "summary": f"Summary of {slug}",
    }
    fields.update(overrides)
    return RawFeedItem(**fields)


@pytest.fixture
def sample_source() -> FeedSource:
    """Create a sample FeedSource for testing."""
    return make_source()


@pytest.fixture
def sample_item(sample_source: FeedSource) -> RawFeedItem:
    """Create a sample RawFeedItem for testing."""
    return make_item(sample_source, categories=["python"], creator="Alice")


@pytest.fixture
def sample_og_result(sample_item: RawFeedItem) -> EnrichmentResult:
    """Open Graph result with an image for the sample item."""
    return EnrichmentResult(
        url=sample_item.link,
        og_image=OgImage(url="https://cdn.example.com/og/post.png", type="image/png"),
        og_title="Post",
    )


class FakeFetcher:
    """Stands in for FeedFetcher; serves canned feeds and tracks concurrency."""

    def __init__(
        self,
        feeds: dict[str, list[RawFeedItem]] | None = None,
        failing: set[str] | None = None,
        delay: float = 0,
        slow: set[str] | None = None,
    ) -> None:
        self.feeds = feeds or {}
        self.failing = failing or set()
        self.slow = slow or set()
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def fetch_feed(self, source: FeedSource) -> FetchedFeed:
        self.calls.append(source.name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(1 if source.name in self.slow else self.delay)
            if source.name in self.failing:
                raise SourceFetchError(source.name, source.url, "HTTPStatusError: 500")
            return FetchedFeed(
                source=source,
                title=source.blog_title,
                link=source.blog_link,
                items=self.feeds.get(source.name, []),
            )
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


class FakeEnrichmentClient:
    """Stands in for EnrichmentClient; images for every URL except the failing ones."""

    def __init__(
        self,
        failing_urls: set[str] | None = None,
        share_counts: dict[str, int] | None = None,
        fail_share_counts: bool = False,
        delay: float = 0,
        with_images: bool = True,
    ) -> None:
        self.failing_urls = failing_urls or set()
        self.with_images = with_images
        self.share_counts = share_counts or {}
        self.fail_share_counts = fail_share_counts
        self.delay = delay
        self.og_calls: list[str] = []
        self.share_count_batches: list[list[str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def fetch_og(self, url: str) -> EnrichmentResult:
        self.og_calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if url in self.failing_urls:
                raise EnrichmentLookupError(url, "HTTPStatusError: 404")
            if not self.with_images:
                return EnrichmentResult(url=url)
            return EnrichmentResult(
                url=url,
                og_image=OgImage(url=f"{url.rstrip('/')}/og.png", type="image/png"),
            )
        finally:
            self.in_flight -= 1

    async def fetch_share_counts(self, urls: list[str]) -> dict[str, int]:
        self.share_count_batches.append(list(urls))
        if self.fail_share_counts:
            raise EnrichmentLookupError("https://counts.example.com", "HTTPStatusError: 503")
        return {url: self.share_counts[url] for url in urls if url in self.share_counts}

    async def aclose(self) -> None:
        self.closed = True


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by `handler`."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
