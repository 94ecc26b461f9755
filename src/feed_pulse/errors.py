# ABOUTME: Exception hierarchy for the feed aggregation pipeline.
# ABOUTME: Per-source and per-link errors are recovered; the rest abort the run.


class FeedPulseError(Exception):
    """Base class for all feed-pulse errors."""


class ConfigurationError(FeedPulseError):
    """Invalid run configuration (no sources, non-positive limits)."""


class SourceFetchError(FeedPulseError):
    """Fetching or parsing one feed source failed."""

    def __init__(self, source_name: str, url: str, reason: str) -> None:
        self.source_name = source_name
        self.url = url
        self.reason = reason
        super().__init__(f"{source_name} ({url}): {reason}")


class EnrichmentLookupError(FeedPulseError):
    """An Open Graph or share-count lookup failed for one URL."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}")


class CrawlFailedError(FeedPulseError):
    """The crawl produced nothing usable (no source succeeded or no item survived)."""


class FeedValidationError(FeedPulseError):
    """A serialized feed is malformed."""

    def __init__(self, feed_format: str, message: str) -> None:
        self.feed_format = feed_format
        self.message = message
        super().__init__(f"invalid {feed_format} feed: {message}")
