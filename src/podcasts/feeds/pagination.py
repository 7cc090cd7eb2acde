"""Next-page resolution for paged feeds (RFC 5005 style ``rel="next"`` links)."""

import logging
import xml.etree.ElementTree as ET
from urllib.parse import urljoin

from podcasts.utils.errors import PaginationResolutionError

logger = logging.getLogger(__name__)

ATOM_NS = "http://www.w3.org/2005/Atom"


def get_next_page_url(document: bytes | str, base_url: str | None = None) -> str | None:
    """Extract the next-page link from a feed document.

    Looks for ``<atom:link rel="next">`` directly under the RSS channel, or
    ``<link rel="next">`` at the top level of an Atom feed.

    Args:
        document: Raw feed document
        base_url: URL the document was fetched from, used to resolve
            relative links

    Returns:
        Absolute URL of the next page, or None if the feed is not paged

    Raises:
        PaginationResolutionError: If the document cannot be inspected
    """
    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        raise PaginationResolutionError(f"Unable to read paging metadata: {e}") from e

    container = root.find("channel")
    if container is None:
        container = root

    for link in container.findall(f"{{{ATOM_NS}}}link"):
        if link.get("rel") != "next":
            continue
        href = (link.get("href") or "").strip()
        if not href:
            raise PaginationResolutionError("Next-page link has no href")
        next_url = urljoin(base_url, href) if base_url else href
        logger.debug(f"Next page: {next_url}")
        return next_url

    return None
