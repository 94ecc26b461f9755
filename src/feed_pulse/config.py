# ABOUTME: Centralized configuration using Pydantic Settings.
# ABOUTME: Loads pipeline limits, output paths and feed metadata from env and .env file.

from datetime import datetime, timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FEED_PULSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Crawling
    feed_fetch_concurrency: int = Field(default=50, gt=0)
    og_fetch_concurrency: int = Field(default=20, gt=0)
    retention_days: int = Field(default=14, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)
    task_timeout: float = Field(default=120.0, gt=0)  # per fetch or lookup, retries included
    user_agent: str = (
        "Mozilla/5.0 (compatible; feed-pulse/0.1; +https://github.com/feed-pulse/feed-pulse)"
    )
    feed_sources_file: Path = Path("config/feed_sources.toml")

    # Share counts (Hatena Bookmark count API)
    share_count_api_url: str = "https://bookmark.hatenaapis.com/count/entries"
    share_count_batch_size: int = Field(default=50, gt=0)

    # Aggregated feed
    max_feed_description_length: int = Field(default=200, gt=0)
    max_feed_content_length: int = Field(default=500, gt=0)
    site_url: str = "https://feed-pulse.github.io/feed-pulse"
    feed_title: str = "Feed Pulse"
    feed_description: str = "Latest articles from engineering blogs, in one feed"
    feed_language: str = "ja"
    feed_copyright: str = "Feed Pulse"
    feed_generator: str = "feed-pulse"

    # Paths
    feeds_dir: Path = Path("site/feeds")
    blog_feeds_dir: Path = Path("site/blog-feeds")
    image_cache_dir: Path = Path("site/images/og")

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # "console" or "json"

    @model_validator(mode="after")
    def _check_truncation_limits(self) -> "Settings":
        if self.max_feed_description_length >= self.max_feed_content_length:
            raise ValueError("max_feed_description_length must be below max_feed_content_length")
        return self

    @property
    def site_url_stem(self) -> str:
        """Site URL without a trailing slash."""
        return self.site_url.rstrip("/")

    @property
    def feed_links(self) -> dict[str, str]:
        """Public URLs of the three serialized feeds."""
        stem = self.site_url_stem
        return {
            "atom": f"{stem}/feeds/atom.xml",
            "rss": f"{stem}/feeds/rss.xml",
            "json": f"{stem}/feeds/feed.json",
        }

    def cutoff_date(self, now: datetime) -> datetime:
        """Oldest publish date kept in the aggregated feed."""
        return now - timedelta(days=self.retention_days)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded from FEED_PULSE_* environment variables and the .env file.
    """
    return Settings()
