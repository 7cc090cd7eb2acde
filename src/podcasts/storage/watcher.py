"""Watches the roaming metadata file for changes made by other processes."""

import asyncio
import inspect
import logging

from podcasts.storage.metadata import MetadataStore
from podcasts.utils.errors import MetadataLoadError
from podcasts.utils.scheduling import Callback, Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class RoamingFileWatcher:
    """Polls the roaming file's modification time and reloads on external edits.

    A change counts as external when the mtime differs from the last one
    observed and is later than the store's own last roaming save plus a
    grace window. Bursts of changes (a sync tool writing in chunks) are
    debounced into a single reload.

    Example:
        >>> watcher = RoamingFileWatcher(store, Scheduler(), on_reload=redraw)
        >>> watcher.start()
    """

    def __init__(
        self,
        store: MetadataStore,
        scheduler: Scheduler,
        poll_interval: float = 2.0,
        grace_seconds: float = 5.0,
        debounce_seconds: float = 0.5,
        on_reload: Callback | None = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self.poll_interval = poll_interval
        self.grace_ms = int(grace_seconds * 1000)
        self.debounce_seconds = debounce_seconds
        self._on_reload = on_reload

        self._last_mtime_ms = self._read_mtime_ms()
        self._poll_handle: TimerHandle | None = None
        self._reload_handle: TimerHandle | None = None

    @property
    def running(self) -> bool:
        return self._poll_handle is not None and self._poll_handle.active

    def start(self) -> None:
        if self.running:
            return
        logger.debug(f"Watching {self._store.roaming_metadata_path}")
        self._last_mtime_ms = self._read_mtime_ms()
        self._poll_handle = self._scheduler.call_every(self.poll_interval, self.check)

    def stop(self) -> None:
        for handle in (self._poll_handle, self._reload_handle):
            if handle is not None:
                handle.cancel()
        self._poll_handle = None
        self._reload_handle = None

    async def check(self) -> bool:
        """Poll once.

        Returns:
            True if an external change was detected and a reload scheduled
        """
        mtime_ms = await asyncio.to_thread(self._read_mtime_ms)
        if mtime_ms is None or mtime_ms == self._last_mtime_ms:
            return False
        self._last_mtime_ms = mtime_ms

        last_save = self._store.last_roaming_save_ms
        if last_save is not None and mtime_ms <= last_save + self.grace_ms:
            logger.debug("Ignoring roaming metadata change caused by our own save")
            return False

        logger.info(f"Roaming metadata changed externally: {self._store.roaming_metadata_path}")
        if self._reload_handle is not None:
            self._reload_handle.cancel()
        self._reload_handle = self._scheduler.call_later(self.debounce_seconds, self.reload)
        return True

    async def reload(self) -> None:
        """Reload the roaming table and notify the listener."""
        try:
            await self._store.load_metadata(local=False, roaming=True)
        except MetadataLoadError as e:
            logger.error(f"Failed to reload roaming metadata: {e}")
            return

        if self._on_reload is not None:
            result = self._on_reload()
            if inspect.isawaitable(result):
                await result

    def _read_mtime_ms(self) -> int | None:
        try:
            return int(self._store.roaming_metadata_path.stat().st_mtime * 1000)
        except FileNotFoundError:
            return None
