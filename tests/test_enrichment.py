# ABOUTME: Tests for Open Graph and share-count lookups.
# ABOUTME: Uses httpx MockTransport to stand in for blog pages and the count API.

import httpx
import pytest
from conftest import mock_client

from feed_pulse.config import Settings
from feed_pulse.enrichment.client import EnrichmentClient, guess_image_type, parse_open_graph
from feed_pulse.errors import EnrichmentLookupError

OG_PAGE = """<!doctype html>
<html><head>
  <meta property="og:title" content="A post">
  <meta property="og:description" content="  What it is about ">
  <meta property="og:site_name" content="Example Blog">
  <meta property="og:image" content="/images/cover.jpg">
</head><body></body></html>
"""


class TestParseOpenGraph:
    """Tests for parse_open_graph."""

    def test_reads_og_fields(self) -> None:
        """Title, description and site name come from og meta tags."""
        result = parse_open_graph(OG_PAGE, "https://blog.example.com/posts/1")

        assert result.url == "https://blog.example.com/posts/1"
        assert result.og_title == "A post"
        assert result.og_description == "What it is about"
        assert result.og_site_name == "Example Blog"

    def test_relative_image_resolved_against_base(self) -> None:
        """Relative image URLs resolve against the final page URL."""
        result = parse_open_graph(
            OG_PAGE,
            "https://blog.example.com/posts/1",
            base_url="https://www.example.com/blog/posts/1",
        )

        assert result.og_image is not None
        assert result.og_image.url == "https://www.example.com/images/cover.jpg"
        assert result.og_image.type == "image/jpeg"

    def test_secure_url_and_explicit_type_preferred(self) -> None:
        """og:image:secure_url wins over og:image and og:image:type over guessing."""
        html = """<html><head>
          <meta property="og:image" content="http://cdn.example.com/a.jpg">
          <meta property="og:image:secure_url" content="https://cdn.example.com/a">
          <meta property="og:image:type" content="image/webp">
        </head></html>"""

        result = parse_open_graph(html, "https://blog.example.com/")

        assert result.og_image is not None
        assert result.og_image.url == "https://cdn.example.com/a"
        assert result.og_image.type == "image/webp"

    def test_name_attribute_fallback(self) -> None:
        """Pages using name= instead of property= are understood."""
        html = '<html><head><meta name="og:image" content="https://cdn.example.com/b.png"></head>'

        result = parse_open_graph(html, "https://blog.example.com/")

        assert result.og_image is not None
        assert result.og_image.url == "https://cdn.example.com/b.png"

    def test_page_without_og_tags(self) -> None:
        """A page without og tags gives an empty result, not an error."""
        result = parse_open_graph("<html><head><title>x</title></head></html>", "https://a/")

        assert result.og_image is None
        assert result.og_title is None


class TestGuessImageType:
    """Tests for guess_image_type."""

    def test_known_extension(self) -> None:
        """Image extensions map to MIME types; query strings are ignored."""
        assert guess_image_type("https://cdn.example.com/a.png?w=1200") == "image/png"

    def test_unknown_extension(self) -> None:
        """Non-image or missing extensions give None."""
        assert guess_image_type("https://cdn.example.com/image") is None
        assert guess_image_type("https://cdn.example.com/page.html") is None


class TestEnrichmentClientOg:
    """Tests for EnrichmentClient.fetch_og."""

    @pytest.mark.asyncio
    async def test_fetch_og_success(self, mock_settings: Settings) -> None:
        """HTML pages are downloaded and parsed."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, text=OG_PAGE, headers={"Content-Type": "text/html; charset=utf-8"}
            )

        async with EnrichmentClient(mock_settings, client=mock_client(handler)) as client:
            result = await client.fetch_og("https://blog.example.com/posts/1")

        assert result.og_title == "A post"
        assert result.og_image is not None
        assert result.og_image.url == "https://blog.example.com/images/cover.jpg"

    @pytest.mark.asyncio
    async def test_fetch_og_non_html(self, mock_settings: Settings) -> None:
        """Non-HTML responses give an empty result."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"%PDF", headers={"Content-Type": "application/pdf"})

        async with EnrichmentClient(mock_settings, client=mock_client(handler)) as client:
            result = await client.fetch_og("https://blog.example.com/paper.pdf")

        assert result.og_image is None

    @pytest.mark.asyncio
    async def test_fetch_og_http_error(self, mock_settings: Settings) -> None:
        """HTTP failures raise EnrichmentLookupError for that URL."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        async with EnrichmentClient(mock_settings, client=mock_client(handler)) as client:
            with pytest.raises(EnrichmentLookupError) as exc_info:
                await client.fetch_og("https://blog.example.com/missing")

        assert exc_info.value.url == "https://blog.example.com/missing"


class TestEnrichmentClientShareCounts:
    """Tests for EnrichmentClient.fetch_share_counts."""

    @pytest.mark.asyncio
    async def test_batch_lookup(self, mock_settings: Settings) -> None:
        """All URLs go in one request; the response is filtered to requested URLs."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "https://a.example.com/1": 12,
                    "https://a.example.com/2": "3",
                    "https://other.example.com/": 99,
                },
            )

        async with EnrichmentClient(mock_settings, client=mock_client(handler)) as client:
            counts = await client.fetch_share_counts(
                ["https://a.example.com/1", "https://a.example.com/2", "https://a.example.com/3"]
            )

        assert len(requests) == 1
        assert requests[0].url.params.get_list("url") == [
            "https://a.example.com/1",
            "https://a.example.com/2",
            "https://a.example.com/3",
        ]
        assert counts == {"https://a.example.com/1": 12, "https://a.example.com/2": 3}

    @pytest.mark.asyncio
    async def test_invalid_count_skipped(self, mock_settings: Settings) -> None:
        """Counts that are not integers are dropped."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"https://a.example.com/1": "many"})

        async with EnrichmentClient(mock_settings, client=mock_client(handler)) as client:
            counts = await client.fetch_share_counts(["https://a.example.com/1"])

        assert counts == {}

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_request(self, mock_settings: Settings) -> None:
        """An empty batch returns immediately."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with EnrichmentClient(mock_settings, client=mock_client(handler)) as client:
            assert await client.fetch_share_counts([]) == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "body"),
        [
            (503, b""),
            (200, b"not json"),
            (200, b"[1, 2, 3]"),
        ],
    )
    async def test_bad_responses_raise(
        self, mock_settings: Settings, status: int, body: bytes
    ) -> None:
        """Failed or malformed API responses raise EnrichmentLookupError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, content=body)

        async with EnrichmentClient(mock_settings, client=mock_client(handler)) as client:
            with pytest.raises(EnrichmentLookupError):
                await client.fetch_share_counts(["https://a.example.com/1"])
