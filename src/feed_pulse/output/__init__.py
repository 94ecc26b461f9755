# ABOUTME: Output module for generating, validating and storing the aggregated feed.
# ABOUTME: Exports FeedGenerator, FeedValidator and FeedStorer.

from feed_pulse.output.generator import FeedGenerator, GenerateFeedResult
from feed_pulse.output.storer import FeedStorer, StoreResult
from feed_pulse.output.validator import FeedValidator

__all__ = [
    "FeedGenerator",
    "FeedStorer",
    "FeedValidator",
    "GenerateFeedResult",
    "StoreResult",
]
