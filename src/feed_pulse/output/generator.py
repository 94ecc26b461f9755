# ABOUTME: Builds the aggregated feed from crawled items and enrichment maps.
# ABOUTME: Emits the Atom, RSS and JSON Feed serializations as one distribution set.

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from feed_pulse.config import Settings, get_settings
from feed_pulse.errors import ConfigurationError
from feed_pulse.models import (
    AggregatedFeed,
    AggregatedFeedItem,
    FeedDistributionSet,
    FeedEnvelope,
    FeedItemExtension,
    OgResultMap,
    RawFeedItem,
    ShareCountMap,
)
from feed_pulse.output.serializers import to_atom, to_json_feed, to_rss
from feed_pulse.utils.text import (
    escape_text_for_xml,
    normalize_whitespace,
    strip_invalid_xml_chars,
    text_to_md5_hash,
    truncate_text,
)

log = structlog.get_logger()


@dataclass(frozen=True)
class GenerateFeedResult:
    """The merged feed document and its serializations."""

    aggregated_feed: AggregatedFeed
    feed_distribution_set: FeedDistributionSet


class FeedGenerator:
    """Merges crawled items with enrichment data into one output feed."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def generate_feeds(
        self,
        items: Sequence[RawFeedItem],
        og_results: OgResultMap,
        share_counts: ShareCountMap,
        max_description_length: int,
        max_content_length: int,
        now: datetime | None = None,
    ) -> GenerateFeedResult:
        """Build the aggregated feed and serialize it three ways.

        Items keep the order they are given in (the crawler sorts them newest
        first). Only the first item per id is kept. Given the same inputs and
        `now`, the output is byte-identical.

        Args:
            items: Crawled items.
            og_results: Open Graph results keyed by exact link.
            share_counts: Share counts keyed by exact link.
            max_description_length: Length cap for item descriptions.
            max_content_length: Length cap for item content; must exceed the description cap.
            now: Timestamp for the feed's "updated" field. Defaults to the current time.

        Raises:
            ConfigurationError: If the length limits are not positive and increasing.
        """
        if not 0 < max_description_length < max_content_length:
            raise ConfigurationError(
                "expected 0 < description limit < content limit, got "
                f"{max_description_length} and {max_content_length}"
            )

        aggregated_feed = self.generate_aggregated_feed(
            items,
            og_results,
            share_counts,
            max_description_length,
            max_content_length,
            now=now,
        )

        return GenerateFeedResult(
            aggregated_feed=aggregated_feed,
            feed_distribution_set=FeedDistributionSet(
                # ElementTree already escapes; this only catches stray bare ampersands
                atom=escape_text_for_xml(to_atom(aggregated_feed)),
                rss=escape_text_for_xml(to_rss(aggregated_feed)),
                json=to_json_feed(aggregated_feed),
            ),
        )

    def generate_aggregated_feed(
        self,
        items: Sequence[RawFeedItem],
        og_results: OgResultMap,
        share_counts: ShareCountMap,
        max_description_length: int,
        max_content_length: int,
        now: datetime | None = None,
    ) -> AggregatedFeed:
        """Build the feed document without serializing it."""
        feed = AggregatedFeed(envelope=self.build_envelope(now or datetime.now(UTC)))

        seen_ids: set[str] = set()
        for item in items:
            if item.published_at is None:
                log.warning("feed_item_missing_date", link=item.link, title=item.title)
                continue
            if item.item_id in seen_ids:
                log.info("feed_item_duplicate_id", id=item.item_id, title=item.title)
                continue
            seen_ids.add(item.item_id)

            log.debug(
                "create_feed_item",
                published_at=item.published_at.isoformat(),
                title=item.title,
            )
            feed.items.append(
                build_feed_item(
                    item,
                    og_results,
                    share_counts,
                    max_description_length,
                    max_content_length,
                )
            )

        log.info(
            "aggregated_feed_created",
            items=len(feed.items),
            skipped=len(items) - len(feed.items),
        )
        return feed

    def build_envelope(self, updated: datetime) -> FeedEnvelope:
        """Channel metadata from settings."""
        stem = self.settings.site_url_stem
        return FeedEnvelope(
            title=self.settings.feed_title,
            description=self.settings.feed_description,
            language=self.settings.feed_language,
            id=f"{stem}/",
            link=f"{stem}/",
            feed_links=self.settings.feed_links,
            image=f"{stem}/images/icon.png",
            favicon=f"{stem}/images/favicon.ico",
            copyright=self.settings.feed_copyright,
            generator=self.settings.feed_generator,
            updated=updated,
        )


def build_feed_item(
    item: RawFeedItem,
    og_results: OgResultMap,
    share_counts: ShareCountMap,
    max_description_length: int,
    max_content_length: int,
) -> AggregatedFeedItem:
    """Merge one dated item with its enrichment data."""
    if item.published_at is None:
        raise ValueError(f"item without publish date: {item.link}")

    body = normalize_whitespace(item.summary or item.content_snippet or "")
    body = strip_invalid_xml_chars(body)

    og_result = og_results.get(item.link)
    image = og_result.og_image if og_result and og_result.og_image else None

    return AggregatedFeedItem(
        id=item.item_id,
        # "<title> | <blog title>"
        title=f"{item.title} | {item.blog_title}",
        description=truncate_text(body, max_description_length),
        content=truncate_text(body, max_content_length),
        link=item.link,
        categories=list(item.categories),
        author=item.creator or None,
        image=image,
        published_at=item.published_at,
        extension=FeedItemExtension(
            share_count=share_counts.get(item.link, 0),
            original_title=item.title,
            blog_title=item.blog_title,
            blog_link=item.blog_link,
            blog_link_hash=text_to_md5_hash(item.blog_link),
        ),
    )
