"""Enclosure store: downloads, reuses and deletes episode audio files."""

import asyncio
import functools
import logging
import secrets
from collections.abc import Callable
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from podcasts.audio.downloader import EnclosureDownloader, ProgressCallback
from podcasts.audio.duration import probe_duration
from podcasts.storage.metadata import MetadataStore
from podcasts.utils.cancellation import CancellationToken
from podcasts.utils.errors import NotFoundError, ProbeError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".mp3"


def extension_for_url(url: str) -> str:
    """File extension from the URL path, or ``.mp3`` when there is none."""
    suffix = PurePosixPath(urlparse(url).path).suffix
    if len(suffix) < 2 or not suffix[1:].isalnum():
        return DEFAULT_EXTENSION
    return suffix.lower()


class EnclosureStore:
    """Maps (feed URL, episode GUID) to a downloaded audio file.

    Files live in the metadata store's enclosures directory under random
    names; the only way to find one is through the episode's download record.
    """

    def __init__(
        self,
        store: MetadataStore,
        downloader: EnclosureDownloader | None = None,
        prober: Callable[[Path], int] = probe_duration,
    ) -> None:
        self._store = store
        self._owns_downloader = downloader is None
        self._downloader = downloader or EnclosureDownloader()
        self._prober = prober
        self._downloads: dict[tuple[str, str], asyncio.Task] = {}
        self._waiters: dict[tuple[str, str], int] = {}

    async def fetch_enclosure(
        self,
        feed_url: str,
        guid: str,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Path:
        """Return the local file for an episode, downloading it if needed.

        A second request for an episode that is already downloading joins
        the first one; its progress callback and token are not used.
        Cancelling a caller stops the transfer once no other caller waits on it.

        Raises:
            NotFoundError: If the episode is not in the local metadata
            DownloadError: If the transfer fails; nothing is registered
            DownloadCancelled: If cancelled; nothing is registered or left on disk
        """
        existing = self._store.get_download_path(feed_url, guid)
        if existing is not None:
            logger.debug(f"Episode {guid} already downloaded at {existing}")
            return existing

        key = (feed_url, guid)
        task = self._downloads.get(key)
        if task is None:
            task = asyncio.ensure_future(self._download(feed_url, guid, on_progress, cancel_token))
            self._downloads[key] = task
            task.add_done_callback(functools.partial(self._download_done, key))
        else:
            logger.debug(f"Joining in-flight download of {guid}")

        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # The last interested caller gave up; stop the transfer too
            if self._waiters[key] == 1 and not task.done():
                logger.info(f"Cancelling download of {guid}")
                task.cancel()
            raise
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]

    async def delete_enclosure(self, feed_url: str, guid: str) -> bool:
        """Delete the file and its download record. Never fetches the feed.

        Raises:
            NotFoundError: If the episode has no download
        """
        return await self._store.remove_download(feed_url, guid)

    async def aclose(self) -> None:
        if self._owns_downloader:
            await self._downloader.aclose()

    def _download_done(self, key: tuple[str, str], task: asyncio.Task) -> None:
        if self._downloads.get(key) is task:
            del self._downloads[key]
        if not task.cancelled():
            task.exception()

    async def _download(
        self,
        feed_url: str,
        guid: str,
        on_progress: ProgressCallback | None,
        cancel_token: CancellationToken | None,
    ) -> Path:
        episode = self._store.get_episode(feed_url, guid).local
        if episode is None:
            raise NotFoundError("Episode", f"{guid} in {feed_url}")

        filename = self._new_filename(episode.enclosure_url)
        dest = self._store.enclosures_dir / filename
        await self._downloader.download(episode.enclosure_url, dest, on_progress, cancel_token)

        try:
            duration = await self._probe_if_missing(feed_url, guid, dest)
        except asyncio.CancelledError:
            await asyncio.to_thread(dest.unlink, missing_ok=True)
            raise

        try:
            await self._store.register_download(feed_url, guid, filename, duration)
        except NotFoundError:
            logger.warning(f"Episode {guid} disappeared from {feed_url} during download")
            await asyncio.to_thread(dest.unlink, missing_ok=True)
            raise

        logger.info(f"Downloaded episode {guid} to {dest}")
        return dest

    async def _probe_if_missing(self, feed_url: str, guid: str, path: Path) -> int | None:
        if self._store.get_episode_duration(feed_url, guid) is not None:
            return None
        try:
            return await asyncio.to_thread(self._prober, path)
        except ProbeError as e:
            logger.warning(f"Could not determine duration of {path}: {e}")
            return None

    def _new_filename(self, enclosure_url: str) -> str:
        extension = extension_for_url(enclosure_url)
        while True:
            filename = secrets.token_hex(8) + extension
            if not (self._store.enclosures_dir / filename).exists():
                return filename
