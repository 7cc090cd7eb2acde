"""Metadata store: feed refresh, merge, staleness and persistence.

Owns the local and roaming tables. Every mutation goes through this
class and is persisted before the mutating call returns. Entries are
immutable snapshots, so a reader never observes a half-merged podcast.

Example:
    >>> store = MetadataStore(storage_dir=Path("~/.local/share/podcasts"))
    >>> await store.load_metadata()
    >>> view = await store.fetch_podcast(url, update_if_older_than_ms=WEEK_MS)
    >>> await store.star_podcast(url, True)
"""

import asyncio
import functools
import json
import logging
from pathlib import Path

import aiofiles
from pydantic import BaseModel, ValidationError

from podcasts.feeds.fetcher import FeedFetcher
from podcasts.feeds.pagination import get_next_page_url
from podcasts.feeds.parser import FeedParser
from podcasts.storage import merge
from podcasts.storage.models import (
    DownloadRecord,
    EpisodeView,
    HistoryEntry,
    LocalMetadata,
    LocalPodcast,
    PodcastView,
    RoamingEpisode,
    RoamingMetadata,
    RoamingPodcast,
)
from podcasts.utils.errors import (
    MetadataLoadError,
    NotFoundError,
    PaginationResolutionError,
    ParseError,
    StorageError,
    TransportError,
)
from podcasts.utils.scheduling import Clock

logger = logging.getLogger(__name__)

LOCAL_METADATA_FILENAME = "local.json"
ROAMING_METADATA_FILENAME = "roaming.json"
ENCLOSURES_DIRNAME = "enclosures"
DEFAULT_PURGE_AFTER_DAYS = 30
DAY_MS = 24 * 60 * 60 * 1000


class MetadataStore:
    """Owner of the local and roaming metadata tables."""

    def __init__(
        self,
        storage_dir: Path,
        roaming_path: Path | None = None,
        fetcher: FeedFetcher | None = None,
        parser: FeedParser | None = None,
        clock: Clock | None = None,
        purge_after_days: int = DEFAULT_PURGE_AFTER_DAYS,
    ) -> None:
        """Initialize the store.

        Args:
            storage_dir: Device-local directory for local metadata and enclosures
            roaming_path: Roaming metadata file (default: ``<storage_dir>/roaming.json``)
            fetcher: Feed fetcher (default: a new FeedFetcher owned by the store)
            parser: Feed parser
            clock: Time source for refresh and playback timestamps
            purge_after_days: Inactivity window for purging local entries
        """
        self.storage_dir = storage_dir
        self.local_metadata_path = storage_dir / LOCAL_METADATA_FILENAME
        self.roaming_metadata_path = roaming_path or storage_dir / ROAMING_METADATA_FILENAME
        self.enclosures_dir = storage_dir / ENCLOSURES_DIRNAME
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.enclosures_dir.mkdir(parents=True, exist_ok=True)

        self._owns_fetcher = fetcher is None
        self._fetcher = fetcher or FeedFetcher()
        self._parser = parser or FeedParser()
        self._clock = clock or Clock()
        self.purge_after_days = purge_after_days

        self._local: dict[str, LocalPodcast] = {}
        self._roaming: dict[str, RoamingPodcast] = {}
        self._refreshes: dict[str, asyncio.Task] = {}
        # One writer at a time per metadata file
        self._save_locks: dict[Path, asyncio.Lock] = {}

        # Epoch ms of the last roaming write made by this process
        self.last_roaming_save_ms: int | None = None

    # Persistence

    async def load_metadata(self, local: bool = True, roaming: bool = True) -> None:
        """(Re)load the requested tables from disk. Missing files load as empty.

        Raises:
            MetadataLoadError: If a file exists but cannot be read or validated
        """
        if local:
            data = await self._read_json(self.local_metadata_path, LocalMetadata)
            self._local = dict(data.podcasts) if data else {}
        if roaming:
            data = await self._read_json(self.roaming_metadata_path, RoamingMetadata)
            self._roaming = dict(data.podcasts) if data else {}

    async def save_metadata(self, local: bool = True, roaming: bool = True) -> None:
        """Persist the requested tables atomically (temp file, then rename).

        Old local entries are purged before every local write. Concurrent
        saves of the same file are serialized, each writing the tables as
        they are when its turn comes.
        """
        if local:
            path = self.local_metadata_path
            async with self._save_lock(path):
                self.purge_old_metadata()
                logger.debug(f"Saving local metadata to {path}")
                await self._write_json(path, LocalMetadata(podcasts=self._local))
        if roaming:
            path = self.roaming_metadata_path
            async with self._save_lock(path):
                logger.debug(f"Saving roaming metadata to {path}")
                await self._write_json(path, RoamingMetadata(podcasts=self._roaming))
                self.last_roaming_save_ms = self._clock.now_ms()

    def purge_old_metadata(self) -> list[str]:
        """Remove local entries with no downloads, not starred, and not refreshed recently.

        Returns:
            Feed URLs that were purged
        """
        threshold = self._clock.now_ms() - self.purge_after_days * DAY_MS
        purged = [
            url
            for url, podcast in self._local.items()
            if merge.is_purgeable(podcast, self.is_starred_podcast(url), threshold)
        ]
        for url in purged:
            logger.info(f"Purging old feed metadata for {url}")
            del self._local[url]
        return purged

    async def set_roaming_path(self, roaming_path: Path) -> None:
        """Switch to a different roaming metadata file and load it."""
        self.roaming_metadata_path = roaming_path
        self.last_roaming_save_ms = None
        await self.load_metadata(local=False, roaming=True)

    async def aclose(self) -> None:
        if self._owns_fetcher:
            await self._fetcher.aclose()

    # Reads

    def has_local_podcast(self, url: str) -> bool:
        return url in self._local

    def get_podcast(self, url: str) -> PodcastView:
        return PodcastView(local=self._local.get(url), roaming=self._roaming.get(url))

    def get_episode(self, feed_url: str, guid: str) -> EpisodeView:
        podcast = self.get_podcast(feed_url)
        return EpisodeView(
            local=podcast.local.episodes.get(guid) if podcast.local else None,
            roaming=podcast.roaming.episodes.get(guid) if podcast.roaming else None,
        )

    def get_starred_podcast_urls(self) -> list[str]:
        return [url for url, podcast in self._roaming.items() if podcast.starred]

    def is_starred_podcast(self, url: str) -> bool:
        podcast = self._roaming.get(url)
        return podcast is not None and podcast.starred

    def is_episode_downloaded(self, feed_url: str, guid: str) -> bool:
        podcast = self._local.get(feed_url)
        return podcast is not None and guid in podcast.downloaded

    def get_download_path(self, feed_url: str, guid: str) -> Path | None:
        podcast = self._local.get(feed_url)
        if podcast is None or guid not in podcast.downloaded:
            return None
        return self.enclosures_dir / podcast.downloaded[guid].local_filename

    def get_last_listening_position(self, feed_url: str, guid: str) -> float:
        roaming = self.get_episode(feed_url, guid).roaming
        if roaming is None or not roaming.last_position_seconds:
            return 0
        return roaming.last_position_seconds

    def get_episode_duration(self, feed_url: str, guid: str) -> int | None:
        local = self.get_episode(feed_url, guid).local
        return local.duration_seconds if local else None

    def listening_history(self) -> list[HistoryEntry]:
        """Played episodes that resolve against local metadata, most recent first.

        Episodes whose feed was never fetched on this device (or which no
        longer appear in the feed) are skipped.
        """
        now = self._clock.now_ms()
        entries: list[HistoryEntry] = []
        for feed_url, roaming in self._roaming.items():
            local = self._local.get(feed_url)
            if local is None:
                continue
            for guid, status in roaming.episodes.items():
                episode = local.episodes.get(guid)
                if episode is None:
                    continue
                entries.append(
                    HistoryEntry(
                        feed_url=feed_url,
                        guid=guid,
                        podcast_title=local.title,
                        episode=episode,
                        status=status,
                        downloaded=guid in local.downloaded,
                    )
                )
        entries.sort(key=lambda e: e.status.last_played_at_ms or now, reverse=True)
        return entries

    # Feed refresh

    async def fetch_podcast(self, url: str, update_if_older_than_ms: int | None = None) -> PodcastView:
        """Read-through cache for a feed.

        Args:
            url: Feed URL
            update_if_older_than_ms: Staleness tolerance. The cached copy is
                used if present and refreshed within this many milliseconds;
                with None any cached copy is used.

        Raises:
            TransportError: If a needed refresh fails on the first page
            ParseError: If a needed refresh gets a malformed first page
        """
        cached = self._local.get(url)
        if cached is not None:
            now = self._clock.now_ms()
            if update_if_older_than_ms is None or cached.last_refreshed_at_ms >= now - update_if_older_than_ms:
                logger.debug(f"Using cached podcast metadata for {url}")
                return self.get_podcast(url)
        return await self.update_podcast(url)

    async def update_podcast(self, url: str) -> PodcastView:
        """Unconditionally refresh a feed.

        Concurrent calls for the same URL share one in-flight refresh.
        On first-page failure the cached entry is left untouched.
        """
        task = self._refreshes.get(url)
        if task is None:
            task = asyncio.ensure_future(self._refresh(url))
            self._refreshes[url] = task
            task.add_done_callback(functools.partial(self._refresh_done, url))
        else:
            logger.debug(f"Joining in-flight refresh of {url}")
        return await asyncio.shield(task)

    def _refresh_done(self, url: str, task: asyncio.Task) -> None:
        if self._refreshes.get(url) is task:
            del self._refreshes[url]
        if not task.cancelled():
            # Mark the exception retrieved; callers that were cancelled never await it
            task.exception()

    async def _refresh(self, url: str) -> PodcastView:
        old = self._local.get(url)
        logger.info(f"Updating podcast from {url}")

        feed: LocalPodcast | None = None
        reached_last_page = False
        requested: set[str] = set()
        next_url: str | None = url

        while next_url:
            if next_url in requested:
                logger.warning(f"Paging loop detected at {next_url}, stopping")
                break
            requested.add(next_url)

            try:
                page, following = await self._load_page(next_url)
            except (TransportError, ParseError) as e:
                if feed is None:
                    raise
                logger.warning(
                    f"Failed to load page {next_url}, keeping {len(feed.episodes)} episodes: {e}"
                )
                break

            # The head page always continues; a later page that reaches known
            # episodes is the last new page.
            feed = merge.append_page(feed, page)
            if len(requested) > 1 and merge.pages_overlap(page, old):
                break
            next_url = following
        else:
            reached_last_page = True

        if feed is None:
            raise TransportError(f"No feed document loaded from {url!r}", url=url)

        # Merge against the latest stored snapshot, which may have gained
        # downloads or durations while pages were being fetched. Unless every
        # page was read, episodes missing from the collected pages are kept.
        previous = self._local.get(url)
        if not reached_last_page and previous is not None:
            feed = merge.merge_into_previous(feed, previous)
        feed = merge.carry_over_downloads(feed, previous)
        feed = feed.model_copy(update={"last_refreshed_at_ms": self._clock.now_ms()})

        orphans = merge.orphaned_downloads(feed)
        orphan_files = [feed.downloaded[guid].local_filename for guid in orphans]
        feed = merge.without_downloads(feed, orphans)

        self._local[url] = feed

        for guid, filename in zip(orphans, orphan_files):
            logger.info(f"Downloaded episode {guid} does not appear in feed anymore, deleting")
            await self._delete_enclosure_file(filename)

        await self.save_metadata(local=True, roaming=False)
        return self.get_podcast(url)

    async def _load_page(self, url: str) -> tuple[LocalPodcast, str | None]:
        """Fetch and parse one page; a pagination failure means no next page."""
        document = await self._fetcher.fetch(url)
        parsed = self._parser.parse(document)
        page = merge.page_from_feed(parsed, self._clock.now_ms())

        try:
            next_url = get_next_page_url(document, base_url=url)
        except PaginationResolutionError as e:
            logger.warning(f"Error extracting paging metadata in {url}: {e}")
            next_url = None

        return page, next_url

    # Roaming mutations

    async def star_podcast(self, url: str, starred: bool) -> None:
        podcast = self._roaming.get(url) or RoamingPodcast()
        self._roaming[url] = podcast.model_copy(update={"starred": starred})
        await self.save_metadata(local=False, roaming=True)

    async def store_listening_status(
        self,
        feed_url: str,
        guid: str,
        completed: bool,
        position: float | None = None,
    ) -> None:
        """Record playback progress. Works without any local snapshot of the feed."""
        podcast = self._roaming.get(feed_url) or RoamingPodcast()
        episode = RoamingEpisode(
            completed=completed,
            last_position_seconds=position,
            last_played_at_ms=self._clock.now_ms(),
        )
        self._roaming[feed_url] = podcast.model_copy(
            update={"episodes": {**podcast.episodes, guid: episode}}
        )
        await self.save_metadata(local=False, roaming=True)

    # Download records

    async def register_download(
        self,
        feed_url: str,
        guid: str,
        filename: str,
        duration_seconds: int | None = None,
    ) -> None:
        """Commit a completed download, optionally filling in a missing duration.

        Raises:
            NotFoundError: If the episode is no longer in the local snapshot
        """
        podcast = self._local.get(feed_url)
        if podcast is None or guid not in podcast.episodes:
            raise NotFoundError("Episode", f"{guid} in {feed_url}")

        episodes = podcast.episodes
        if duration_seconds is not None and episodes[guid].duration_seconds is None:
            patched = episodes[guid].model_copy(update={"duration_seconds": duration_seconds})
            episodes = {**episodes, guid: patched}

        self._local[feed_url] = podcast.model_copy(
            update={
                "episodes": episodes,
                "downloaded": {**podcast.downloaded, guid: DownloadRecord(local_filename=filename)},
            }
        )
        await self.save_metadata(local=True, roaming=False)

    async def remove_download(self, feed_url: str, guid: str, save: bool = True) -> bool:
        """Drop a download record and delete its file.

        Never triggers a feed fetch.

        Returns:
            True if the file was deleted, False if deletion failed

        Raises:
            NotFoundError: If the episode has no download record
        """
        podcast = self._local.get(feed_url)
        if podcast is None or guid not in podcast.downloaded:
            raise NotFoundError("Download", f"{guid} in {feed_url}")

        filename = podcast.downloaded[guid].local_filename
        self._local[feed_url] = merge.without_downloads(podcast, [guid])
        deleted = await self._delete_enclosure_file(filename)
        if save:
            await self.save_metadata(local=True, roaming=False)
        return deleted

    async def _delete_enclosure_file(self, filename: str) -> bool:
        path = self.enclosures_dir / filename
        logger.info(f"Deleting downloaded episode {path}")
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete {path}: {e}")
            return False
        return True

    # File helpers

    def _save_lock(self, path: Path) -> asyncio.Lock:
        return self._save_locks.setdefault(path, asyncio.Lock())

    async def _read_json(self, path: Path, model: type[BaseModel]) -> BaseModel | None:
        if not path.exists():
            return None
        logger.info(f"Loading metadata from {path}")
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
            return model.model_validate(json.loads(content))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise MetadataLoadError(f"Invalid metadata in {path}: {e}") from e

    async def _write_json(self, path: Path, data: BaseModel) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data.model_dump(mode="json"), indent=2))
            await asyncio.to_thread(temp_path.replace, path)
        except OSError as e:
            if temp_path.exists():
                await asyncio.to_thread(temp_path.unlink, missing_ok=True)
            raise StorageError(f"Failed to save metadata to {path}: {e}") from e
