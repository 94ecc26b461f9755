# ABOUTME: Well-formedness and structure checks for the serialized feeds.
# ABOUTME: Fails fast with FeedValidationError on the first malformed serialization.

from datetime import datetime
from email.utils import parsedate_to_datetime
from xml.etree.ElementTree import Element, ParseError, fromstring

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from feed_pulse.errors import FeedValidationError
from feed_pulse.models import FeedDistributionSet
from feed_pulse.output.serializers import ATOM_NS

log = structlog.get_logger()

_ATOM = f"{{{ATOM_NS}}}"


class JsonFeedItem(BaseModel):
    """Subset of the JSON Feed item schema that consumers rely on."""

    model_config = ConfigDict(extra="allow")

    id: str
    url: str | None = None
    title: str | None = None
    content_text: str | None = None
    content_html: str | None = None
    date_published: datetime | None = None

    @model_validator(mode="after")
    def _has_content(self) -> "JsonFeedItem":
        if self.content_text is None and self.content_html is None:
            raise ValueError("item needs content_text or content_html")
        return self


class JsonFeedDocument(BaseModel):
    """Subset of the JSON Feed top-level schema."""

    model_config = ConfigDict(extra="allow")

    version: str
    title: str
    items: list[JsonFeedItem]

    @model_validator(mode="after")
    def _known_version(self) -> "JsonFeedDocument":
        if not self.version.startswith("https://jsonfeed.org/version/"):
            raise ValueError(f"unknown JSON Feed version {self.version!r}")
        return self


class FeedValidator:
    """Checks the three serializations before anything is written to disk."""

    def assert_valid_feeds(self, feed_distribution_set: FeedDistributionSet) -> None:
        """Validate Atom, then RSS, then JSON.

        Raises:
            FeedValidationError: On the first malformed serialization.
        """
        self.assert_valid_atom(feed_distribution_set.atom)
        self.assert_valid_rss(feed_distribution_set.rss)
        self.assert_valid_json(feed_distribution_set.json)
        log.info("feeds_validated")

    def assert_valid_atom(self, text: str) -> None:
        root = _parse_xml("atom", text)
        if root.tag != f"{_ATOM}feed":
            raise FeedValidationError("atom", f"unexpected root element {root.tag}")
        for tag in ("id", "title", "updated"):
            _require_child("atom", root, f"{_ATOM}{tag}", "feed")
        _require_rfc3339("atom", root.findtext(f"{_ATOM}updated"), "feed")

        entries = list(root.iter(f"{_ATOM}entry"))
        for index, entry in enumerate(entries):
            where = f"entry #{index}"
            for tag in ("id", "title", "updated"):
                _require_child("atom", entry, f"{_ATOM}{tag}", where)
            _require_rfc3339("atom", entry.findtext(f"{_ATOM}updated"), where)
            if entry.find(f"{_ATOM}link") is None:
                raise FeedValidationError("atom", f"{where} has no link")
        _require_unique_ids("atom", [entry.findtext(f"{_ATOM}id") for entry in entries])

    def assert_valid_rss(self, text: str) -> None:
        root = _parse_xml("rss", text)
        if root.tag != "rss" or root.get("version") != "2.0":
            raise FeedValidationError("rss", "root element must be <rss version=\"2.0\">")
        channel = root.find("channel")
        if channel is None:
            raise FeedValidationError("rss", "missing <channel>")
        for tag in ("title", "link", "description"):
            _require_child("rss", channel, tag, "channel")

        for index, item in enumerate(channel.iter("item")):
            where = f"item #{index}"
            if not (item.findtext("title") or item.findtext("description")):
                raise FeedValidationError("rss", f"{where} needs a title or description")
            pub_date = item.findtext("pubDate")
            if pub_date is not None:
                try:
                    parsedate_to_datetime(pub_date)
                except (TypeError, ValueError) as e:
                    raise FeedValidationError(
                        "rss", f"{where} has invalid pubDate {pub_date!r}"
                    ) from e
        guids = [item.findtext("guid") for item in channel.iter("item")]
        _require_unique_ids("rss", [guid for guid in guids if guid])

    def assert_valid_json(self, text: str) -> None:
        try:
            document = JsonFeedDocument.model_validate_json(text)
        except ValidationError as e:
            raise FeedValidationError("json", str(e)) from e
        _require_unique_ids("json", [item.id for item in document.items])


def _parse_xml(feed_format: str, text: str) -> Element:
    try:
        return fromstring(text.encode("utf-8"))
    except ParseError as e:
        raise FeedValidationError(feed_format, f"not well-formed XML: {e}") from e


def _require_child(feed_format: str, parent: Element, tag: str, where: str) -> None:
    if not parent.findtext(tag):
        name = tag.removeprefix(_ATOM)
        raise FeedValidationError(feed_format, f"{where} is missing <{name}>")


def _require_unique_ids(feed_format: str, ids: list[str | None]) -> None:
    seen: set[str | None] = set()
    for item_id in ids:
        if item_id in seen:
            raise FeedValidationError(feed_format, f"duplicate item id {item_id!r}")
        seen.add(item_id)


def _require_rfc3339(feed_format: str, value: str | None, where: str) -> None:
    try:
        datetime.fromisoformat(value or "")
    except ValueError as e:
        raise FeedValidationError(feed_format, f"{where} has invalid date {value!r}") from e
