# ABOUTME: End-to-end feed generation run: crawl, generate, validate, store.
# ABOUTME: Any configuration, crawl or validation failure aborts before files are written.

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from feed_pulse.config import Settings, get_settings
from feed_pulse.errors import ConfigurationError, CrawlFailedError
from feed_pulse.feeds.crawler import FeedCrawler
from feed_pulse.models import CrawlResult, FeedSource
from feed_pulse.output.generator import FeedGenerator, GenerateFeedResult
from feed_pulse.output.storer import FeedStorer, StoreResult
from feed_pulse.output.validator import FeedValidator

log = structlog.get_logger()


@dataclass(frozen=True)
class PipelineResult:
    """What one run produced."""

    crawl: CrawlResult
    generated: GenerateFeedResult
    stored: StoreResult | None


def check_run_configuration(settings: Settings, sources: Sequence[FeedSource]) -> None:
    """Reject runs that cannot succeed before any network call is made.

    Raises:
        ConfigurationError: On an empty source list or invalid limits.
    """
    if not sources:
        raise ConfigurationError("no feed sources configured")
    limits = {
        "feed_fetch_concurrency": settings.feed_fetch_concurrency,
        "og_fetch_concurrency": settings.og_fetch_concurrency,
        "max_feed_description_length": settings.max_feed_description_length,
        "max_feed_content_length": settings.max_feed_content_length,
        "retention_days": settings.retention_days,
    }
    for name, value in limits.items():
        if value <= 0:
            raise ConfigurationError(f"{name} must be positive, got {value}")
    if settings.max_feed_description_length >= settings.max_feed_content_length:
        raise ConfigurationError(
            "max_feed_description_length must be below max_feed_content_length"
        )


async def run_pipeline(
    settings: Settings | None = None,
    sources: Sequence[FeedSource] = (),
    *,
    crawler: FeedCrawler | None = None,
    generator: FeedGenerator | None = None,
    validator: FeedValidator | None = None,
    storer: FeedStorer | None = None,
    now: datetime | None = None,
    dry_run: bool = False,
) -> PipelineResult:
    """Run one complete aggregation.

    Args:
        settings: Run configuration. Defaults to the cached settings.
        sources: Feed sources to aggregate.
        crawler, generator, validator, storer: Optional collaborators, mainly for tests.
        now: Reference time for the cutoff and the feed's "updated" field.
        dry_run: Generate and validate without writing anything.

    Returns:
        PipelineResult; `stored` is None on a dry run.

    Raises:
        ConfigurationError: Invalid sources or limits, or a naive `now`.
        CrawlFailedError: No source succeeded or no recent item was found.
        FeedValidationError: A serialization is malformed.
    """
    settings = settings or get_settings()
    check_run_configuration(settings, sources)

    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        raise ConfigurationError(f"now must be timezone-aware, got {now.isoformat()}")
    cutoff = settings.cutoff_date(now)
    log.info("pipeline_start", sources=len(sources), cutoff=cutoff.isoformat(), dry_run=dry_run)

    crawler = crawler or FeedCrawler(settings)
    async with crawler:
        crawl_result = await crawler.crawl_feeds(
            sources,
            settings.feed_fetch_concurrency,
            settings.og_fetch_concurrency,
            cutoff,
        )

    if not crawl_result.items:
        raise CrawlFailedError(f"no items published since {cutoff.isoformat()}")

    og_results = {**crawl_result.og_results, **crawl_result.blog_og_results}

    generator = generator or FeedGenerator(settings)
    generated = generator.generate_feeds(
        crawl_result.items,
        og_results,
        crawl_result.share_counts,
        settings.max_feed_description_length,
        settings.max_feed_content_length,
        now=now,
    )

    validator = validator or FeedValidator()
    validator.assert_valid_feeds(generated.feed_distribution_set)

    stored = None
    if dry_run:
        log.info("pipeline_dry_run_complete", items=len(generated.aggregated_feed.items))
    else:
        storer = storer or FeedStorer(settings)
        async with storer:
            stored = await storer.store_feeds(
                generated.feed_distribution_set,
                settings.feeds_dir,
                crawl_result.raw_feeds,
                og_results,
                crawl_result.share_counts,
                settings.blog_feeds_dir,
            )

    log.info("pipeline_complete", items=len(generated.aggregated_feed.items))
    return PipelineResult(crawl=crawl_result, generated=generated, stored=stored)
