# ABOUTME: Text helpers for feed item bodies and serialized XML.
# ABOUTME: Whitespace collapsing, truncation, HTML stripping, XML escaping and hashing.

import hashlib
import re

from bs4 import BeautifulSoup

ELLIPSIS = "..."

_WHITESPACE_RE = re.compile(r"\s+")

# Characters outside the XML 1.0 Char production
_INVALID_XML_CHARS_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")

# Ampersand not starting a named, decimal or hex character reference
_BARE_AMPERSAND_RE = re.compile(r"&(?!(?:[A-Za-z][A-Za-z0-9]*|#[0-9]+|#[xX][0-9A-Fa-f]+);)")


def normalize_whitespace(text: str) -> str:
    """Collapse newlines, tabs and whitespace runs into single spaces."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def strip_invalid_xml_chars(text: str) -> str:
    """Remove control characters that XML 1.0 cannot represent."""
    return _INVALID_XML_CHARS_RE.sub("", text)


def truncate_text(text: str, max_length: int) -> str:
    """Cut text to at most max_length characters, ending with an ellipsis when cut.

    Args:
        text: Plain text (not yet escaped for any serialization).
        max_length: Maximum length of the result, ellipsis included.

    Returns:
        The text unchanged if short enough, otherwise a prefix plus "...".
    """
    if len(text) <= max_length:
        return text
    if max_length <= len(ELLIPSIS):
        return text[:max_length]
    return text[: max_length - len(ELLIPSIS)].rstrip() + ELLIPSIS


def html_to_text(html_content: str | None) -> str:
    """Strip markup from an HTML fragment and normalize its whitespace."""
    if not html_content:
        return ""
    if "<" not in html_content and "&" not in html_content:
        return normalize_whitespace(html_content)
    soup = BeautifulSoup(html_content, "html.parser")
    return normalize_whitespace(soup.get_text(separator=" "))


def escape_text_for_xml(xml_text: str) -> str:
    """Escape ampersands that are not part of a character or entity reference.

    Safe to apply to already escaped output: valid references are left
    untouched, so the result never contains a double escape.
    """
    return _BARE_AMPERSAND_RE.sub("&amp;", xml_text)


def text_to_md5_hash(text: str) -> str:
    """Hex MD5 digest of a UTF-8 string, used as a stable short identifier."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()
