"""SEO-oriented metadata extraction from archived HTML.

Uses BeautifulSoup with the stdlib ``html.parser`` backend.  Every field of
:class:`ParsedContent` has a neutral default (empty string / empty list), so
a page missing a tag simply yields an empty value rather than an error.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

# Elements whose text is never page content.
_NON_CONTENT_TAGS: tuple[str, ...] = (
    "script",
    "style",
    "nav",
    "header",
    "footer",
    "aside",
    "noscript",
    "iframe",
    "svg",
)

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class ParsedLink:
    """An absolute ``http(s)`` link found on a page."""

    href: str
    is_external: bool


@dataclass
class ParsedContent:
    """Metadata and text extracted from one HTML document.

    Attributes:
        title: Text of the first ``<title>``.
        meta_description: ``<meta name="description">`` content.
        meta_keywords: ``<meta name="keywords">`` content.
        canonical_url: ``<link rel="canonical">`` href.
        og_title: ``<meta property="og:title">`` content.
        og_description: ``<meta property="og:description">`` content.
        h1: Non-empty ``<h1>`` texts in document order.
        h2: Non-empty ``<h2>`` texts in document order.
        robots: ``<meta name="robots">`` content.
        text_content: Body text without navigation, scripts and similar
            chrome, whitespace collapsed.
        links: Absolute ``http(s)`` links with an external flag.
        structured_data: Parsed JSON-LD blocks; invalid JSON is skipped.
        word_count: Number of whitespace-separated words in ``text_content``.
    """

    title: str = ""
    meta_description: str = ""
    meta_keywords: str = ""
    canonical_url: str = ""
    og_title: str = ""
    og_description: str = ""
    h1: list[str] = field(default_factory=list)
    h2: list[str] = field(default_factory=list)
    robots: str = ""
    text_content: str = ""
    links: list[ParsedLink] = field(default_factory=list)
    structured_data: list[Any] = field(default_factory=list)
    word_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _attr(soup: BeautifulSoup, name: str, attrs: dict[str, str], attribute: str) -> str:
    tag = soup.find(name, attrs=attrs)
    if not isinstance(tag, Tag):
        return ""
    value = tag.get(attribute)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def _headings(soup: BeautifulSoup, name: str) -> list[str]:
    texts = (tag.get_text().strip() for tag in soup.find_all(name))
    return [text for text in texts if text]


def _extract_links(soup: BeautifulSoup, base_url: str) -> list[ParsedLink]:
    base_host = urlparse(base_url).hostname or ""
    links: list[ParsedLink] = []
    for tag in soup.find_all("a", href=True):
        href = tag.get("href")
        if not isinstance(href, str) or not href.strip():
            continue
        try:
            absolute = urljoin(base_url, href.strip())
            parsed = urlparse(absolute)
        except ValueError:
            continue
        if not parsed.scheme.startswith("http"):
            continue
        host = parsed.hostname or ""
        links.append(ParsedLink(href=absolute, is_external=bool(base_host) and host != base_host))
    return links


def _extract_structured_data(soup: BeautifulSoup) -> list[Any]:
    items: list[Any] = []
    for tag in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = tag.string or tag.get_text()
        if not raw or not raw.strip():
            continue
        try:
            items.append(json.loads(raw))
        except ValueError:
            logger.debug("wayback: skipping invalid JSON-LD block")
    return items


def _extract_text(soup: BeautifulSoup) -> str:
    # Mutates the tree; must run after every other field is collected.
    root = soup.body or soup
    for tag in root.find_all(list(_NON_CONTENT_TAGS)):
        # Nested matches are already gone with their ancestor.
        if not tag.decomposed:
            tag.decompose()
    return _WHITESPACE_RE.sub(" ", root.get_text(" ")).strip()


def parse_html(html: str, base_url: str) -> ParsedContent:
    """Parse *html* and extract SEO-relevant fields.

    Args:
        html: Raw HTML document.
        base_url: Address of the page; relative links are resolved against
            it and its host decides which links count as external.

    Returns:
        A populated :class:`ParsedContent`.
    """
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    title = title_tag.get_text().strip() if isinstance(title_tag, Tag) else ""

    parsed = ParsedContent(
        title=title,
        meta_description=_attr(soup, "meta", {"name": "description"}, "content"),
        meta_keywords=_attr(soup, "meta", {"name": "keywords"}, "content"),
        canonical_url=_attr(soup, "link", {"rel": "canonical"}, "href"),
        og_title=_attr(soup, "meta", {"property": "og:title"}, "content"),
        og_description=_attr(soup, "meta", {"property": "og:description"}, "content"),
        h1=_headings(soup, "h1"),
        h2=_headings(soup, "h2"),
        robots=_attr(soup, "meta", {"name": "robots"}, "content"),
        links=_extract_links(soup, base_url),
        structured_data=_extract_structured_data(soup),
    )

    parsed.text_content = _extract_text(soup)
    parsed.word_count = len(parsed.text_content.split())
    return parsed


def truncate_text(text: str, max_length: int) -> str:
    """Cut *text* to *max_length* characters, appending ``...`` when cut."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def structured_data_types(items: list[Any]) -> list[str]:
    """Collect the ``@type`` names declared by JSON-LD items."""
    types: list[str] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        declared = item.get("@type")
        if isinstance(declared, str):
            types.append(declared)
        elif isinstance(declared, list):
            types.extend(value for value in declared if isinstance(value, str))
    return types
