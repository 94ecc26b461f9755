# ABOUTME: Pydantic models for feed sources, crawled items, enrichment and output feeds.
# ABOUTME: Defines the item shapes flowing from crawler to generator to storer.

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class FeedSource(BaseModel):
    """One upstream RSS/Atom endpoint plus its display metadata."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    blog_title: str
    blog_link: str


class RawFeedItem(BaseModel):
    """Item parsed from one source feed, tagged with the source it came from."""

    model_config = ConfigDict(frozen=True)

    link: str
    title: str
    source: FeedSource
    guid: str | None = None
    published_at: datetime | None = None
    summary: str | None = None
    content_snippet: str | None = None
    categories: list[str] = Field(default_factory=list)
    creator: str | None = None

    @property
    def item_id(self) -> str:
        """Identity in the aggregated feed: the guid if present, else the link."""
        return self.guid or self.link

    @property
    def blog_title(self) -> str:
        return self.source.blog_title

    @property
    def blog_link(self) -> str:
        return self.source.blog_link


class FetchedFeed(BaseModel):
    """A successfully fetched and parsed source feed."""

    model_config = ConfigDict(frozen=True)

    source: FeedSource
    title: str | None = None
    link: str | None = None
    items: list[RawFeedItem] = Field(default_factory=list)


class OgImage(BaseModel):
    """Open Graph image reference."""

    model_config = ConfigDict(frozen=True)

    url: str
    type: str | None = None


class EnrichmentResult(BaseModel):
    """Open Graph metadata found for one URL."""

    model_config = ConfigDict(frozen=True)

    url: str
    og_image: OgImage | None = None
    og_title: str | None = None
    og_description: str | None = None
    og_site_name: str | None = None


OgResultMap = Mapping[str, EnrichmentResult]
ShareCountMap = Mapping[str, int]


@dataclass(frozen=True)
class CrawlResult:
    """Everything one crawl produced; read-only once built."""

    items: list[RawFeedItem]
    og_results: OgResultMap
    blog_og_results: OgResultMap
    share_counts: ShareCountMap
    raw_feeds: list[FetchedFeed] = field(default_factory=list)


class FeedItemExtension(BaseModel):
    """Custom fields attached to each aggregated item."""

    model_config = ConfigDict(frozen=True)

    share_count: int = 0
    original_title: str
    blog_title: str
    blog_link: str
    blog_link_hash: str


class AggregatedFeedItem(BaseModel):
    """Output-ready item of the aggregated feed."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    content: str
    link: str
    published_at: datetime
    extension: FeedItemExtension
    categories: list[str] = Field(default_factory=list)
    author: str | None = None
    image: OgImage | None = None


class FeedEnvelope(BaseModel):
    """Channel-level metadata of the aggregated feed."""

    model_config = ConfigDict(frozen=True)

    title: str
    description: str
    language: str
    id: str
    link: str
    feed_links: dict[str, str]
    image: str
    favicon: str
    copyright: str
    generator: str
    updated: datetime


class AggregatedFeed(BaseModel):
    """The merged feed document before serialization."""

    envelope: FeedEnvelope
    items: list[AggregatedFeedItem] = Field(default_factory=list)


@dataclass(frozen=True)
class FeedDistributionSet:
    """The three serialized forms of one aggregated feed."""

    atom: str
    rss: str
    json: str
