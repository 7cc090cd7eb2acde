"""RSS/Atom feed parser using feedparser.

Only the fields the metadata store consumes are extracted. The document
is checked for well-formedness with ElementTree first, which also gives
access to structure that feedparser flattens (nested iTunes categories).
"""

import calendar
import logging
import re
import xml.etree.ElementTree as ET
from typing import Any

import feedparser

from podcasts.feeds.models import Enclosure, ParsedEpisode, ParsedFeed
from podcasts.utils.errors import ParseError

logger = logging.getLogger(__name__)

ITUNES_NS = "http://www.itunes.com/dtds/podcast-1.0.dtd"
CATEGORY_SEPARATOR = ">"
FEED_ROOT_TAGS = frozenset({"rss", "feed", "RDF"})


def parse_duration(value: Any) -> int | None:
    """Parse an episode duration into seconds.

    Handles plain seconds ("3793", "3793.4") and colon-separated forms,
    where each part is multiplied by 60 to the power of its position from
    the right: "1:03:13" -> 3793, "5:30" -> 330.

    Args:
        value: Duration as found in the feed

    Returns:
        Duration in whole seconds, or None if it cannot be parsed
    """
    if value is None or value == "":
        return None

    text = str(value).strip()
    if not text:
        return None

    try:
        return int(float(text))
    except ValueError:
        pass

    parts = text.split(":")
    total = 0
    try:
        for position, part in enumerate(reversed(parts)):
            total += int(float(part or 0)) * 60**position
    except ValueError:
        logger.debug(f"Unparseable duration: {text!r}")
        return None
    return total


def parse_document(document: bytes | str) -> ET.Element:
    """Parse raw feed markup into an element tree.

    Raises:
        ParseError: If the document is not well-formed feed markup
    """
    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        raise ParseError(f"Feed is not well-formed XML: {e}") from e

    if _local_name(root.tag) not in FEED_ROOT_TAGS:
        raise ParseError(f"Unexpected root element '{_local_name(root.tag)}', expected RSS or Atom")
    return root


class FeedParser:
    """Parses podcast feed documents into ParsedFeed objects.

    Example:
        >>> parser = FeedParser()
        >>> feed = parser.parse(document)
        >>> [episode.identity for episode in feed.episodes]
    """

    def parse(self, document: bytes | str) -> ParsedFeed:
        """Parse a fetched feed document.

        Episodes without an enclosure are dropped.

        Args:
            document: Raw feed bytes (or text)

        Returns:
            ParsedFeed with podcast metadata and playable episodes

        Raises:
            ParseError: If the document is not well-formed feed markup
        """
        root = parse_document(document)

        raw = document.encode("utf-8") if isinstance(document, str) else document
        parsed = feedparser.parse(raw)
        if parsed.bozo:
            logger.debug(f"Feed parser warning: {parsed.get('bozo_exception')}")

        f = parsed.feed
        channel = root.find("channel")

        feed = ParsedFeed(
            title=_clean(f.get("title")) or "Untitled Podcast",
            description=_clean(f.get("subtitle") or f.get("summary") or f.get("description")),
            homepage_url=f.get("link"),
            image_url=_image_url(f),
            language=f.get("language"),
            author=f.get("author") or f.get("itunes_author"),
            explicit=_parse_explicit(f.get("itunes_explicit")),
            categories=extract_categories(channel) if channel is not None else [],
        )

        for entry in parsed.entries:
            episode = self._parse_episode(entry)
            if episode is not None:
                feed.episodes.append(episode)

        logger.debug(f"Parsed '{feed.title}' with {len(feed.episodes)} episodes")
        return feed

    def _parse_episode(self, entry: Any) -> ParsedEpisode | None:
        """Convert a feedparser entry, or None if it has no enclosure."""
        title = _clean(entry.get("title")) or "Untitled Episode"
        guid = entry.get("id") or None

        enclosure = _extract_enclosure(entry)
        if enclosure is None:
            logger.info(f'Ignoring "{title}" (GUID: {guid}), no enclosure found')
            return None

        content = entry.get("content") or [{}]
        description = _first_non_empty(
            entry.get("summary"),
            content[0].get("value"),
            entry.get("subtitle"),
        )

        return ParsedEpisode(
            guid=guid,
            title=title,
            description=_clean(description),
            homepage_url=entry.get("link"),
            published_at_ms=_timestamp_ms(entry.get("published_parsed") or entry.get("updated_parsed")),
            duration_seconds=parse_duration(entry.get("itunes_duration")),
            explicit=_parse_explicit(entry.get("itunes_explicit")),
            categories=[tag["term"] for tag in entry.get("tags", []) if tag.get("term")],
            enclosure=enclosure,
        )


def extract_categories(channel: ET.Element) -> list[str]:
    """Flatten nested iTunes categories into separator-joined paths.

    A nested category replaces the previous entry when that entry is
    exactly its top-level name, so ``Technology > Podcasting`` is recorded
    once instead of alongside a bare ``Technology``. The result is
    de-duplicated preserving order.
    """
    categories: list[str] = []

    def visit(element: ET.Element, path: list[str]) -> None:
        for child in element.findall(f"{{{ITUNES_NS}}}category"):
            text = (child.get("text") or "").strip()
            if not text:
                continue
            child_path = [*path, text]
            joined = CATEGORY_SEPARATOR.join(child_path)
            if categories and categories[-1] == child_path[0]:
                categories[-1] = joined
            else:
                categories.append(joined)
            visit(child, child_path)

    visit(channel, [])
    return list(dict.fromkeys(categories))


def _extract_enclosure(entry: Any) -> Enclosure | None:
    for enclosure in entry.get("enclosures", []):
        url = enclosure.get("href") or enclosure.get("url")
        if not url:
            continue
        length = None
        if enclosure.get("length"):
            try:
                length = max(int(enclosure["length"]), 0)
            except (ValueError, TypeError):
                pass
        return Enclosure(url=url, mime_type=enclosure.get("type") or None, length=length)
    return None


def _image_url(feed: Any) -> str | None:
    image = feed.get("image")
    if isinstance(image, dict):
        return image.get("href") or image.get("url")
    return None


def _parse_explicit(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("yes", "true", "explicit"):
        return True
    if text in ("no", "false", "clean"):
        return False
    return None


def _timestamp_ms(parsed_time: Any) -> int | None:
    if not parsed_time:
        return None
    try:
        return calendar.timegm(parsed_time) * 1000
    except (TypeError, ValueError, OverflowError):
        return None


def _first_non_empty(*values: str | None) -> str | None:
    for value in values:
        if value and value.strip():
            return value
    return None


def _clean(text: str | None) -> str | None:
    """Strip markup and collapse whitespace."""
    if not text:
        return None
    clean = re.sub(r"<[^>]+>", " ", text)
    clean = re.sub(r"\s+", " ", clean).strip()
    return clean or None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]
