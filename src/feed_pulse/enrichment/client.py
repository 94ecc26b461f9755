# ABOUTME: Enrichment lookups for feed items and blogs.
# ABOUTME: Fetches Open Graph metadata from pages and share counts from the Hatena Bookmark API.

import mimetypes
from collections.abc import Sequence
from urllib.parse import urljoin, urlparse

import httpx
import structlog
from bs4 import BeautifulSoup

from feed_pulse.config import Settings, get_settings
from feed_pulse.errors import EnrichmentLookupError
from feed_pulse.models import EnrichmentResult, OgImage

log = structlog.get_logger()

_HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


class EnrichmentClient:
    """Stateless lookups of Open Graph data and share counts, one URL (or batch) per call."""

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

    async def __aenter__(self) -> "EnrichmentClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def fetch_og(self, url: str) -> EnrichmentResult:
        """Fetch a page and read its Open Graph meta tags.

        Args:
            url: Page URL (an item link or a blog link).

        Returns:
            EnrichmentResult; fields are None when the page has no such tag.

        Raises:
            EnrichmentLookupError: If the page cannot be downloaded.
        """
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise EnrichmentLookupError(url, f"{type(e).__name__}: {e}") from e

        content_type = response.headers.get("Content-Type", "")
        if content_type and not content_type.startswith(_HTML_CONTENT_TYPES):
            log.debug("og_skipped_non_html", url=url, content_type=content_type)
            return EnrichmentResult(url=url)

        return parse_open_graph(response.text, url, base_url=str(response.url))

    async def fetch_share_counts(self, urls: Sequence[str]) -> dict[str, int]:
        """Look up share counts for a batch of URLs in one API call.

        URLs the API does not report have no entry; callers default them to 0.

        Raises:
            EnrichmentLookupError: If the API call fails or returns garbage.
        """
        if not urls:
            return {}

        api_url = self.settings.share_count_api_url
        try:
            response = await self.client.get(api_url, params=[("url", url) for url in urls])
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise EnrichmentLookupError(api_url, f"{type(e).__name__}: {e}") from e

        if not isinstance(data, dict):
            raise EnrichmentLookupError(api_url, f"unexpected payload type {type(data).__name__}")

        requested = set(urls)
        counts: dict[str, int] = {}
        for url, count in data.items():
            if url not in requested:
                continue
            try:
                counts[url] = int(count)
            except (TypeError, ValueError):
                log.warning("share_count_invalid", url=url, count=count)
        return counts


def parse_open_graph(html: str, url: str, base_url: str | None = None) -> EnrichmentResult:
    """Extract Open Graph fields from an HTML document.

    Relative image URLs are resolved against `base_url` (the final URL after
    redirects), falling back to `url`.
    """
    soup = BeautifulSoup(html, "html.parser")

    def _meta(prop: str) -> str | None:
        tag = soup.find("meta", attrs={"property": prop}) or soup.find(
            "meta", attrs={"name": prop}
        )
        if tag is None:
            return None
        content = tag.get("content")
        return content.strip() if isinstance(content, str) and content.strip() else None

    og_image = None
    image_url = _meta("og:image:secure_url") or _meta("og:image") or _meta("og:image:url")
    if image_url:
        image_url = urljoin(base_url or url, image_url)
        image_type = _meta("og:image:type") or guess_image_type(image_url)
        og_image = OgImage(url=image_url, type=image_type)

    return EnrichmentResult(
        url=url,
        og_image=og_image,
        og_title=_meta("og:title"),
        og_description=_meta("og:description"),
        og_site_name=_meta("og:site_name"),
    )


def guess_image_type(image_url: str) -> str | None:
    """Guess an image MIME type from the URL path extension."""
    mime_type, _ = mimetypes.guess_type(urlparse(image_url).path)
    if mime_type and mime_type.startswith("image/"):
        return mime_type
    return None
