# ABOUTME: Loads the static list of feed sources from a TOML file.
# ABOUTME: Validates each entry into a FeedSource and rejects empty or duplicate lists.

import tomllib
from pathlib import Path

import structlog
from pydantic import ValidationError

from feed_pulse.errors import ConfigurationError
from feed_pulse.models import FeedSource

log = structlog.get_logger()


def parse_feed_sources(data: dict) -> list[FeedSource]:
    """Build FeedSource objects from the decoded `[[sources]]` tables.

    Raises:
        ConfigurationError: If there are no sources, an entry is invalid,
            or two entries share a feed URL.
    """
    entries = data.get("sources", [])
    if not entries:
        raise ConfigurationError("no feed sources configured")

    sources: list[FeedSource] = []
    seen_urls: set[str] = set()
    for index, entry in enumerate(entries):
        try:
            source = FeedSource.model_validate(entry)
        except ValidationError as e:
            raise ConfigurationError(f"invalid feed source #{index}: {e}") from e
        if source.url in seen_urls:
            raise ConfigurationError(f"duplicate feed source url: {source.url}")
        seen_urls.add(source.url)
        sources.append(source)

    return sources


def load_feed_sources(path: Path) -> list[FeedSource]:
    """Read and validate the feed source list at `path`."""
    if not path.exists():
        raise ConfigurationError(f"feed sources file not found: {path}")

    with path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"cannot parse {path}: {e}") from e

    sources = parse_feed_sources(data)
    log.info("feed_sources_loaded", path=str(path), count=len(sources))
    return sources
