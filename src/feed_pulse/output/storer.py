# ABOUTME: Persists the validated feeds, the per-blog index and the Open Graph image cache.
# ABOUTME: Only runs after validation; image cache misses are logged and skipped.

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog

from feed_pulse.concurrency import ConcurrencyLimiter
from feed_pulse.config import Settings, get_settings
from feed_pulse.models import FeedDistributionSet, FetchedFeed, OgResultMap, ShareCountMap
from feed_pulse.output.serializers import format_rfc3339
from feed_pulse.utils.text import text_to_md5_hash

log = structlog.get_logger()

ATOM_FILE_NAME = "atom.xml"
RSS_FILE_NAME = "rss.xml"
JSON_FILE_NAME = "feed.json"
BLOG_FEEDS_FILE_NAME = "blog-feeds.json"

_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".avif"}


@dataclass
class StoreResult:
    """Files written by one store run."""

    feed_paths: list[Path] = field(default_factory=list)
    blog_feeds_path: Path | None = None
    cached_images: list[Path] = field(default_factory=list)
    failed_images: list[str] = field(default_factory=list)


class FeedStorer:
    """Writes output files and populates the image cache."""

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

    async def __aenter__(self) -> "FeedStorer":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def store_feeds(
        self,
        feed_distribution_set: FeedDistributionSet,
        feeds_dir: Path,
        raw_feeds: Sequence[FetchedFeed],
        og_results: OgResultMap,
        share_counts: ShareCountMap,
        blog_feeds_dir: Path,
    ) -> StoreResult:
        """Write the three feeds, the blog index and cache referenced images.

        Args:
            feed_distribution_set: Validated serializations.
            feeds_dir: Directory for atom.xml, rss.xml and feed.json.
            raw_feeds: Successfully fetched source feeds.
            og_results: Open Graph results for item and blog links.
            share_counts: Share counts keyed by item link.
            blog_feeds_dir: Directory for blog-feeds.json.

        Returns:
            StoreResult listing the written files.
        """
        result = StoreResult()
        result.feed_paths = self.write_feeds(feed_distribution_set, feeds_dir)
        result.blog_feeds_path = self.write_blog_feeds(
            raw_feeds, og_results, share_counts, blog_feeds_dir
        )

        image_urls = list(
            dict.fromkeys(og.og_image.url for og in og_results.values() if og.og_image is not None)
        )
        result.cached_images, result.failed_images = await self.cache_images(image_urls)

        log.info(
            "feeds_stored",
            feeds_dir=str(feeds_dir),
            blog_feeds=str(result.blog_feeds_path),
            cached_images=len(result.cached_images),
            failed_images=len(result.failed_images),
        )
        return result

    def write_feeds(
        self, feed_distribution_set: FeedDistributionSet, feeds_dir: Path
    ) -> list[Path]:
        """Write atom.xml, rss.xml and feed.json.

        All three are staged before any is replaced, so a failed write leaves
        the previous set in place.
        """
        feeds_dir.mkdir(parents=True, exist_ok=True)
        return replace_files(
            {
                feeds_dir / ATOM_FILE_NAME: feed_distribution_set.atom,
                feeds_dir / RSS_FILE_NAME: feed_distribution_set.rss,
                feeds_dir / JSON_FILE_NAME: feed_distribution_set.json,
            }
        )

    def write_blog_feeds(
        self,
        raw_feeds: Sequence[FetchedFeed],
        og_results: OgResultMap,
        share_counts: ShareCountMap,
        blog_feeds_dir: Path,
    ) -> Path:
        """Write blog-feeds.json: one entry per source blog with its items."""
        blog_feeds_dir.mkdir(parents=True, exist_ok=True)
        blogs = [
            build_blog_feed_entry(feed, og_results, share_counts, self.image_cache_path)
            for feed in raw_feeds
        ]
        path = blog_feeds_dir / BLOG_FEEDS_FILE_NAME
        replace_files({path: json.dumps(blogs, ensure_ascii=False, indent=2)})
        return path

    async def cache_images(self, image_urls: Sequence[str]) -> tuple[list[Path], list[str]]:
        """Download images not cached yet; returns (cached paths, failed urls)."""
        cache_dir = self.settings.image_cache_dir
        cache_dir.mkdir(parents=True, exist_ok=True)

        limiter = ConcurrencyLimiter(
            self.settings.og_fetch_concurrency, timeout=self.settings.task_timeout
        )
        outcomes = await limiter.map(self._cache_image, image_urls)

        cached: list[Path] = []
        failed: list[str] = []
        for url, outcome in zip(image_urls, outcomes, strict=True):
            if outcome.ok:
                cached.append(outcome.value)
            else:
                log.warning("image_cache_failed", url=url, error=str(outcome.error))
                failed.append(url)
        return cached, failed

    def image_cache_path(self, image_url: str) -> Path:
        """Cache location of an image: MD5 of its URL plus its extension."""
        return self.settings.image_cache_dir / (
            text_to_md5_hash(image_url) + _image_extension(image_url)
        )

    async def _cache_image(self, image_url: str) -> Path:
        path = self.image_cache_path(image_url)
        if path.exists():
            return path

        response = await self.client.get(image_url)
        response.raise_for_status()
        content_type = response.headers.get("Content-Type", "")
        if content_type and not content_type.startswith("image/"):
            raise ValueError(f"not an image: {content_type}")

        path.write_bytes(response.content)
        log.debug("image_cached", url=image_url, path=str(path))
        return path


def build_blog_feed_entry(
    feed: FetchedFeed,
    og_results: OgResultMap,
    share_counts: ShareCountMap,
    image_cache_path=None,
) -> dict[str, Any]:
    """Index entry for one blog, as consumed by the site renderer."""
    source = feed.source

    def _image_url(link: str) -> str | None:
        og = og_results.get(link)
        return og.og_image.url if og is not None and og.og_image is not None else None

    def _cached_image(image_url: str | None) -> str | None:
        if image_url is None or image_cache_path is None:
            return None
        return image_cache_path(image_url).name

    blog_image_url = _image_url(source.blog_link)
    items = []
    for item in feed.items:
        item_image_url = _image_url(item.link)
        items.append(
            {
                "title": item.title,
                "link": item.link,
                "publishedAt": format_rfc3339(item.published_at) if item.published_at else None,
                "shareCount": share_counts.get(item.link, 0),
                "ogImageUrl": item_image_url,
                "cachedImage": _cached_image(item_image_url),
            }
        )

    return {
        "name": source.name,
        "title": source.blog_title,
        "link": source.blog_link,
        "linkHash": text_to_md5_hash(source.blog_link),
        "feedUrl": source.url,
        "feedTitle": feed.title,
        "ogImageUrl": blog_image_url,
        "cachedImage": _cached_image(blog_image_url),
        "items": items,
    }


def replace_files(contents: dict[Path, str]) -> list[Path]:
    """Write each file to a hidden temporary sibling, then move them all into place."""
    staged: list[tuple[Path, Path]] = []
    try:
        for path, content in contents.items():
            tmp_path = path.with_name(f".{path.name}.tmp")
            tmp_path.write_text(content, encoding="utf-8")
            staged.append((tmp_path, path))
    except OSError:
        for tmp_path, _ in staged:
            tmp_path.unlink(missing_ok=True)
        raise

    for tmp_path, path in staged:
        tmp_path.replace(path)
        log.debug("feed_file_written", path=str(path), size=len(contents[path]))
    return [path for _, path in staged]


def _image_extension(image_url: str) -> str:
    suffix = PurePosixPath(urlparse(image_url).path).suffix.lower()
    return suffix if suffix in _IMAGE_EXTENSIONS else ".img"
