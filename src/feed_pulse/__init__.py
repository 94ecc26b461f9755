# ABOUTME: Main package for the feed-pulse blog feed aggregator.
# ABOUTME: Exports settings, core models and the pipeline entry point.

from feed_pulse.config import Settings, get_settings
from feed_pulse.models import (
    AggregatedFeedItem,
    EnrichmentResult,
    FeedDistributionSet,
    FeedSource,
    RawFeedItem,
)
from feed_pulse.pipeline import run_pipeline

__all__ = [
    "AggregatedFeedItem",
    "EnrichmentResult",
    "FeedDistributionSet",
    "FeedSource",
    "RawFeedItem",
    "Settings",
    "get_settings",
    "run_pipeline",
]
