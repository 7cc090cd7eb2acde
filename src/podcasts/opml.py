"""OPML subscription list import/export."""

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable

from pydantic import BaseModel

from podcasts.utils.errors import ParseError

logger = logging.getLogger(__name__)

# Attribute spellings seen in exports from different podcast apps
URL_ATTRIBUTES = ["xmlUrl", "xmlurl", "url", "feedUrl", "feedurl"]
HTML_URL_ATTRIBUTES = ["htmlUrl", "htmlurl", "link"]
TITLE_ATTRIBUTES = ["title", "text"]


class OpmlFeed(BaseModel):
    """One subscription in an OPML document."""

    feed_url: str
    title: str | None = None
    homepage_url: str | None = None


def parse_opml(content: str | bytes) -> list[OpmlFeed]:
    """Extract feed subscriptions from an OPML document.

    Nested outlines (folders) are flattened. Outlines without a feed URL
    are skipped, and a URL listed twice is returned once.

    Raises:
        ParseError: If the document is not well-formed OPML
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise ParseError(f"Invalid OPML: {e}") from e

    if root.tag.lower() != "opml":
        raise ParseError(f"Invalid OPML: root element is '{root.tag}', expected 'opml'")

    body = root.find("body")
    if body is None:
        raise ParseError("Invalid OPML: missing body element")

    feeds: dict[str, OpmlFeed] = {}
    skipped = 0
    for outline in body.iter("outline"):
        feed_url = _first_attribute(outline, URL_ATTRIBUTES)
        if not feed_url:
            if len(outline) == 0:
                skipped += 1
            continue
        if feed_url in feeds:
            continue
        feeds[feed_url] = OpmlFeed(
            feed_url=feed_url,
            title=_first_attribute(outline, TITLE_ATTRIBUTES),
            homepage_url=_first_attribute(outline, HTML_URL_ATTRIBUTES),
        )

    if skipped:
        logger.info(f"Skipped {skipped} OPML outlines without a feed URL")
    return list(feeds.values())


def build_opml(feeds: Iterable[OpmlFeed], title: str = "Podcast subscriptions") -> str:
    """Render subscriptions as an OPML 2.0 document."""
    root = ET.Element("opml", version="2.0")
    head = ET.SubElement(root, "head")
    ET.SubElement(head, "title").text = title
    body = ET.SubElement(root, "body")

    for feed in feeds:
        attributes = {"type": "rss", "xmlUrl": feed.feed_url}
        if feed.title:
            attributes["text"] = feed.title
            attributes["title"] = feed.title
        if feed.homepage_url:
            attributes["htmlUrl"] = feed.homepage_url
        ET.SubElement(body, "outline", attributes)

    ET.indent(root)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"


def _first_attribute(element: ET.Element, names: list[str]) -> str | None:
    for name in names:
        value = (element.get(name) or "").strip()
        if value:
            return value
    return None
