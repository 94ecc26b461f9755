# ABOUTME: Feed acquisition module for fetching and crawling source feeds.
# ABOUTME: Exports the single-source fetcher and the multi-source crawler.

from feed_pulse.feeds.crawler import FeedCrawler
from feed_pulse.feeds.fetcher import FeedFetcher, parse_feed

__all__ = ["FeedCrawler", "FeedFetcher", "parse_feed"]
