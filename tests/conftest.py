"""Shared fixtures: feed documents, a scripted fetcher, and fake time."""

import asyncio
from collections.abc import Callable
from pathlib import Path
from xml.sax.saxutils import escape

import pytest

from podcasts.storage.metadata import MetadataStore
from podcasts.utils.errors import TransportError

FEED_URL = "https://example.com/feed.xml"
DAY_MS = 24 * 60 * 60 * 1000
START_MS = 1_700_000_000_000


def build_rss(
    episodes: list[dict] | None = None,
    title: str = "Test Podcast",
    description: str = "A podcast for tests",
    link: str = "https://example.com",
    next_url: str | None = None,
    extra_channel: str = "",
) -> bytes:
    """Render an RSS 2.0 document.

    Each episode dict may have: guid, title, url, duration, description,
    pub_date, link, type. Without ``url`` the item has no enclosure.
    """
    items = []
    for episode in episodes or []:
        parts = [f"<title>{escape(episode.get('title', 'Episode'))}</title>"]
        if "guid" in episode:
            parts.append(f"<guid>{escape(episode['guid'])}</guid>")
        if "description" in episode:
            parts.append(f"<description>{escape(episode['description'])}</description>")
        if "link" in episode:
            parts.append(f"<link>{escape(episode['link'])}</link>")
        if "pub_date" in episode:
            parts.append(f"<pubDate>{episode['pub_date']}</pubDate>")
        if "duration" in episode:
            parts.append(f"<itunes:duration>{episode['duration']}</itunes:duration>")
        if "url" in episode:
            mime = episode.get("type", "audio/mpeg")
            parts.append(
                f'<enclosure url="{escape(episode["url"])}" type="{mime}" length="1000"/>'
            )
        items.append("<item>" + "".join(parts) + "</item>")

    paging = f'<atom:link rel="next" href="{escape(next_url)}"/>' if next_url else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd" '
        'xmlns:atom="http://www.w3.org/2005/Atom">'
        "<channel>"
        f"<title>{escape(title)}</title>"
        f"<link>{escape(link)}</link>"
        f"<description>{escape(description)}</description>"
        f"{paging}{extra_channel}"
        + "".join(items)
        + "</channel></rss>"
    ).encode("utf-8")


def episode(guid: str, **fields) -> dict:
    """Episode dict with a GUID and an enclosure derived from it."""
    return {"guid": guid, "title": f"Episode {guid}", "url": f"https://cdn.example.com/{guid}.mp3", **fields}


class ScriptedFetcher:
    """Serves canned documents by URL and records every request."""

    def __init__(self, pages: dict[str, bytes | Exception] | None = None) -> None:
        self.pages: dict[str, bytes | Exception] = dict(pages or {})
        self.requests: list[str] = []

    async def fetch(self, url: str) -> bytes:
        self.requests.append(url)
        await asyncio.sleep(0)
        page = self.pages.get(url)
        if page is None:
            raise TransportError(f"Failed to fetch {url}: HTTP status 404", url=url, status_code=404)
        if isinstance(page, Exception):
            raise page
        return page

    async def aclose(self) -> None:
        pass


class FakeClock:
    """Clock whose time only moves when told to."""

    def __init__(self, now_ms: int = START_MS) -> None:
        self.current = now_ms

    def now_ms(self) -> int:
        return self.current

    def advance(self, ms: int) -> None:
        self.current += ms


class ManualHandle:
    def __init__(self) -> None:
        self.active = True

    def cancel(self) -> None:
        self.active = False


class ManualScheduler:
    """Scheduler that records timers; tests fire them explicitly."""

    def __init__(self) -> None:
        self.later: list[tuple[float, Callable, ManualHandle]] = []
        self.every: list[tuple[float, Callable, ManualHandle]] = []

    def call_later(self, delay: float, callback: Callable) -> ManualHandle:
        handle = ManualHandle()
        self.later.append((delay, callback, handle))
        return handle

    def call_every(self, interval: float, callback: Callable) -> ManualHandle:
        handle = ManualHandle()
        self.every.append((interval, callback, handle))
        return handle

    def pending(self) -> list[Callable]:
        return [callback for _, callback, handle in self.later if handle.active]

    async def run_pending(self) -> None:
        for _, callback, handle in list(self.later):
            if handle.active:
                handle.active = False
                result = callback()
                if asyncio.iscoroutine(result):
                    await result

    def close(self) -> None:
        for _, _, handle in self.later + self.every:
            handle.cancel()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fetcher() -> ScriptedFetcher:
    return ScriptedFetcher()


@pytest.fixture
def store(tmp_path: Path, fetcher: ScriptedFetcher, clock: FakeClock) -> MetadataStore:
    """Metadata store in a temporary directory with scripted HTTP and fake time."""
    return MetadataStore(storage_dir=tmp_path / "data", fetcher=fetcher, clock=clock)
