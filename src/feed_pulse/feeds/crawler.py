# ABOUTME: Crawls all configured feed sources and enriches the recent items.
# ABOUTME: Two bounded-concurrency phases: feed fetching, then Open Graph and share-count lookups.

from collections.abc import Sequence
from datetime import datetime

import structlog

from feed_pulse.concurrency import ConcurrencyLimiter, collect_results
from feed_pulse.config import Settings, get_settings
from feed_pulse.enrichment.client import EnrichmentClient
from feed_pulse.errors import ConfigurationError, CrawlFailedError
from feed_pulse.feeds.fetcher import FeedFetcher
from feed_pulse.models import (
    CrawlResult,
    EnrichmentResult,
    FeedSource,
    FetchedFeed,
    RawFeedItem,
)

log = structlog.get_logger()


class FeedCrawler:
    """Fetches every source feed, filters stale items and collects enrichment data."""

    def __init__(
        self,
        settings: Settings | None = None,
        fetcher: FeedFetcher | None = None,
        enrichment_client: EnrichmentClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.fetcher = fetcher or FeedFetcher(self.settings)
        self.enrichment_client = enrichment_client or EnrichmentClient(self.settings)

    async def aclose(self) -> None:
        """Close the HTTP clients of the fetcher and the enrichment client."""
        await self.fetcher.aclose()
        await self.enrichment_client.aclose()

    async def __aenter__(self) -> "FeedCrawler":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def crawl_feeds(
        self,
        sources: Sequence[FeedSource],
        feed_fetch_concurrency: int,
        og_fetch_concurrency: int,
        cutoff: datetime,
    ) -> CrawlResult:
        """Fetch all feeds and enrichment data for one run.

        Args:
            sources: Feed sources to crawl, in their configured order.
            feed_fetch_concurrency: Max feed downloads in flight.
            og_fetch_concurrency: Max enrichment lookups in flight.
            cutoff: Items published before this instant are dropped.

        Returns:
            CrawlResult with the recent items (newest first) and the
            per-link enrichment maps.

        Raises:
            ConfigurationError: If no sources are given, a limit is not positive
                or the cutoff is naive.
            CrawlFailedError: If every source failed.
        """
        if not sources:
            raise ConfigurationError("no feed sources configured")
        if cutoff.tzinfo is None:
            raise ConfigurationError(f"cutoff must be timezone-aware, got {cutoff.isoformat()}")
        if feed_fetch_concurrency <= 0 or og_fetch_concurrency <= 0:
            raise ConfigurationError(
                "concurrency limits must be positive, got "
                f"feed={feed_fetch_concurrency} og={og_fetch_concurrency}"
            )

        log.info("crawl_start", sources=len(sources), cutoff=cutoff.isoformat())

        feeds = await self.fetch_feeds(sources, feed_fetch_concurrency)
        if not feeds:
            raise CrawlFailedError(f"all {len(sources)} feed sources failed")

        items = filter_recent_items(drop_duplicate_items(flatten_feed_items(feeds)), cutoff)

        item_links = _distinct(item.link for item in items)
        blog_links = _distinct(feed.source.blog_link for feed in feeds)

        og_results = await self.fetch_og_results(item_links, og_fetch_concurrency)
        blog_og_results = await self.fetch_og_results(blog_links, og_fetch_concurrency)
        share_counts = await self.fetch_share_counts(item_links, og_fetch_concurrency)

        log.info(
            "crawl_complete",
            feeds=len(feeds),
            failed_feeds=len(sources) - len(feeds),
            items=len(items),
            og_results=len(og_results),
            blog_og_results=len(blog_og_results),
            share_counts=len(share_counts),
        )

        return CrawlResult(
            items=items,
            og_results=og_results,
            blog_og_results=blog_og_results,
            share_counts=share_counts,
            raw_feeds=feeds,
        )

    async def fetch_feeds(
        self, sources: Sequence[FeedSource], concurrency: int
    ) -> list[FetchedFeed]:
        """Fetch every source; failed sources are logged and left out."""
        limiter = ConcurrencyLimiter(concurrency, timeout=self.settings.task_timeout)
        outcomes = await limiter.map(self.fetcher.fetch_feed, sources)

        feeds: list[FetchedFeed] = []
        for source, outcome in zip(sources, outcomes, strict=True):
            if not outcome.ok:
                log.warning(
                    "feed_fetch_failed",
                    source=source.name,
                    url=source.url,
                    error=str(outcome.error),
                )
                continue
            feeds.append(outcome.value)

        log.info("feeds_fetched", succeeded=len(feeds), failed=len(sources) - len(feeds))
        return feeds

    async def fetch_og_results(
        self, urls: Sequence[str], concurrency: int
    ) -> dict[str, EnrichmentResult]:
        """Open Graph lookup per URL; failed lookups have no entry."""
        limiter = ConcurrencyLimiter(concurrency, timeout=self.settings.task_timeout)
        outcomes = await limiter.map(self.enrichment_client.fetch_og, urls)
        return collect_results(urls, outcomes, phase="og_fetch")

    async def fetch_share_counts(self, urls: Sequence[str], concurrency: int) -> dict[str, int]:
        """Share counts for all URLs, looked up in batches; failed batches have no entries."""
        batch_size = self.settings.share_count_batch_size
        batches = [list(urls[i : i + batch_size]) for i in range(0, len(urls), batch_size)]

        limiter = ConcurrencyLimiter(concurrency, timeout=self.settings.task_timeout)
        outcomes = await limiter.map(self.enrichment_client.fetch_share_counts, batches)

        share_counts: dict[str, int] = {}
        for batch_counts in collect_results(
            list(range(len(batches))), outcomes, phase="share_count_fetch"
        ).values():
            share_counts.update(batch_counts)
        return share_counts


def flatten_feed_items(feeds: Sequence[FetchedFeed]) -> list[RawFeedItem]:
    """All items of all feeds, in source order then per-source order."""
    return [item for feed in feeds for item in feed.items]


def drop_duplicate_items(items: Sequence[RawFeedItem]) -> list[RawFeedItem]:
    """Keep the first item per id (guid or link), in flatten order."""
    seen: set[str] = set()
    unique: list[RawFeedItem] = []
    for item in items:
        if item.item_id in seen:
            log.info(
                "feed_item_duplicate_id",
                id=item.item_id,
                source=item.source.name,
                title=item.title,
            )
            continue
        seen.add(item.item_id)
        unique.append(item)
    return unique


def filter_recent_items(items: Sequence[RawFeedItem], cutoff: datetime) -> list[RawFeedItem]:
    """Keep dated items published at or after `cutoff`, newest first.

    The sort is stable, so items with equal dates keep their flatten order.
    """
    recent: list[RawFeedItem] = []
    for item in items:
        if item.published_at is None:
            log.warning("feed_item_missing_date", link=item.link, title=item.title)
            continue
        if item.published_at < cutoff:
            continue
        recent.append(item)

    recent.sort(key=lambda item: item.published_at, reverse=True)
    log.info("feed_items_filtered", total=len(items), recent=len(recent))
    return recent


def _distinct(values) -> list[str]:
    return list(dict.fromkeys(values))
