# ABOUTME: Serializers turning an AggregatedFeed into Atom 1.0, RSS 2.0 and JSON Feed 1.1.
# ABOUTME: XML is built with ElementTree, so text and attributes are escaped by the writer.

import json
from datetime import UTC, datetime
from email.utils import format_datetime
from typing import Any
from xml.etree.ElementTree import Element, SubElement, tostring

from feed_pulse.models import AggregatedFeed, AggregatedFeedItem
from feed_pulse.utils.text import strip_invalid_xml_chars

ATOM_NS = "http://www.w3.org/2005/Atom"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
DC_NS = "http://purl.org/dc/elements/1.1/"
JSON_FEED_VERSION = "https://jsonfeed.org/version/1.1"
JSON_FEED_EXTENSION_KEY = "_custom"

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>\n'


def format_rfc3339(value: datetime) -> str:
    """Atom / JSON Feed timestamp, always in UTC."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_rfc822(value: datetime) -> str:
    """RSS 2.0 timestamp, always in GMT."""
    return format_datetime(value.astimezone(UTC), usegmt=True)


def _text(parent: Element, tag: str, value: str, **attrs: str) -> Element:
    element = SubElement(parent, tag, attrs)
    element.text = strip_invalid_xml_chars(value)
    return element


def _attrs(**attrs: str | None) -> dict[str, str]:
    """Drop unset attributes; ElementTree cannot write None."""
    return {key: strip_invalid_xml_chars(value) for key, value in attrs.items() if value}


def to_atom(feed: AggregatedFeed) -> str:
    """Serialize to an Atom 1.0 document."""
    envelope = feed.envelope

    root = Element("feed", xmlns=ATOM_NS)
    _text(root, "id", envelope.id)
    _text(root, "title", envelope.title)
    _text(root, "updated", format_rfc3339(envelope.updated))
    _text(root, "generator", envelope.generator)
    SubElement(root, "link", _attrs(rel="alternate", href=envelope.link))
    SubElement(
        root,
        "link",
        _attrs(rel="self", href=envelope.feed_links.get("atom"), type="application/atom+xml"),
    )
    _text(root, "subtitle", envelope.description)
    _text(root, "logo", envelope.image)
    _text(root, "icon", envelope.favicon)
    _text(root, "rights", envelope.copyright)

    for item in feed.items:
        _atom_entry(root, item)

    return XML_DECLARATION + tostring(root, encoding="unicode")


def _atom_entry(root: Element, item: AggregatedFeedItem) -> None:
    entry = SubElement(root, "entry")
    _text(entry, "title", item.title)
    _text(entry, "id", item.id)
    SubElement(entry, "link", _attrs(href=item.link))
    _text(entry, "updated", format_rfc3339(item.published_at))
    _text(entry, "published", format_rfc3339(item.published_at))
    _text(entry, "summary", item.description)
    _text(entry, "content", item.content)
    if item.author:
        author = SubElement(entry, "author")
        _text(author, "name", item.author)
    for category in item.categories:
        SubElement(entry, "category", _attrs(term=category))
    if item.image:
        SubElement(
            entry, "link", _attrs(rel="enclosure", href=item.image.url, type=item.image.type)
        )


def to_rss(feed: AggregatedFeed) -> str:
    """Serialize to an RSS 2.0 document."""
    envelope = feed.envelope

    rss = Element("rss", version="2.0")
    rss.set("xmlns:atom", ATOM_NS)
    rss.set("xmlns:content", CONTENT_NS)
    rss.set("xmlns:dc", DC_NS)

    channel = SubElement(rss, "channel")
    _text(channel, "title", envelope.title)
    _text(channel, "link", envelope.link)
    _text(channel, "description", envelope.description)
    _text(channel, "language", envelope.language)
    _text(channel, "lastBuildDate", format_rfc822(envelope.updated))
    _text(channel, "docs", "https://validator.w3.org/feed/docs/rss2.html")
    _text(channel, "generator", envelope.generator)
    _text(channel, "copyright", envelope.copyright)

    image = SubElement(channel, "image")
    _text(image, "url", envelope.image)
    _text(image, "title", envelope.title)
    _text(image, "link", envelope.link)

    # Atom self-link for feed validation
    SubElement(
        channel,
        "atom:link",
        _attrs(href=envelope.feed_links.get("rss"), rel="self", type="application/rss+xml"),
    )

    for item_data in feed.items:
        item = SubElement(channel, "item")
        _text(item, "title", item_data.title)
        _text(item, "link", item_data.link)
        _text(item, "guid", item_data.id, isPermaLink="false")
        _text(item, "pubDate", format_rfc822(item_data.published_at))
        _text(item, "description", item_data.description)
        _text(item, "content:encoded", item_data.content)
        if item_data.author:
            _text(item, "dc:creator", item_data.author)
        for category in item_data.categories:
            _text(item, "category", category)
        if item_data.image:
            SubElement(
                item,
                "enclosure",
                _attrs(url=item_data.image.url, length="0", type=item_data.image.type),
            )

    return XML_DECLARATION + tostring(rss, encoding="unicode")


def to_json_feed(feed: AggregatedFeed) -> str:
    """Serialize to a JSON Feed 1.1 document."""
    envelope = feed.envelope
    document: dict[str, Any] = {
        "version": JSON_FEED_VERSION,
        "title": envelope.title,
        "home_page_url": envelope.link,
        "feed_url": envelope.feed_links.get("json"),
        "description": envelope.description,
        "icon": envelope.image,
        "favicon": envelope.favicon,
        "language": envelope.language,
        "items": [_json_item(item) for item in feed.items],
    }
    return json.dumps(document, ensure_ascii=False, indent=2)


def _json_item(item: AggregatedFeedItem) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": item.id,
        "url": item.link,
        "title": item.title,
        "summary": item.description,
        "content_text": item.content,
        "date_published": format_rfc3339(item.published_at),
        "date_modified": format_rfc3339(item.published_at),
    }
    if item.categories:
        data["tags"] = list(item.categories)
    if item.author:
        data["authors"] = [{"name": item.author}]
    if item.image:
        data["image"] = item.image.url

    extension = item.extension
    data[JSON_FEED_EXTENSION_KEY] = {
        "shareCount": extension.share_count,
        "originalTitle": extension.original_title,
        "blogTitle": extension.blog_title,
        "blogLink": extension.blog_link,
        "blogLinkHash": extension.blog_link_hash,
    }
    return data
