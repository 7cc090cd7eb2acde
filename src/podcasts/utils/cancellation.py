"""Cooperative cancellation for long-running transfers."""

import asyncio

from podcasts.utils.errors import DownloadCancelled


class CancellationToken:
    """Signal shared between a caller and a cancellable operation.

    The operation polls ``cancelled`` (or calls ``raise_if_cancelled``)
    between units of work. To interrupt a transfer that is blocked on the
    network, cancel its asyncio task instead.

    Example:
        >>> token = CancellationToken()
        >>> task = asyncio.create_task(store.fetch_enclosure(url, guid, cancel_token=token))
        >>> token.cancel()
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise DownloadCancelled if cancellation was requested."""
        if self._event.is_set():
            raise DownloadCancelled("Operation was cancelled")
