"""Streaming enclosure downloader using httpx."""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

import aiofiles
import httpx

from podcasts.feeds.fetcher import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT
from podcasts.utils.cancellation import CancellationToken
from podcasts.utils.errors import DownloadCancelled, DownloadError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[float], None]


class EnclosureDownloader:
    """Download enclosure audio to a local path.

    The body is streamed into ``<dest>.part`` and renamed to ``dest`` only
    once complete, so ``dest`` never holds a partial file.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize the downloader.

        Args:
            client: Optional shared client (left open by ``aclose()``)
            timeout: Connect/read timeout in seconds
            user_agent: User-Agent header
            chunk_size: Bytes read per chunk; cancellation is checked between chunks
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": user_agent},
        )
        self.chunk_size = chunk_size

    async def download(
        self,
        url: str,
        dest: Path,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """Download ``url`` to ``dest``.

        Args:
            url: Enclosure URL
            dest: Final file path
            on_progress: Called with the completed fraction (0.0 to 1.0) when
                the response declares its length
            cancel_token: Cooperative cancellation signal

        Raises:
            DownloadError: On network failure or non-2xx status
            DownloadCancelled: If cancelled; no file is left behind
        """
        partial = dest.with_name(dest.name + ".part")
        logger.info(f"Downloading {url} to {dest}")

        try:
            async with self._client.stream("GET", url) as response:
                if not response.is_success:
                    raise DownloadError(
                        f"Failed to download {url}: HTTP status {response.status_code}", url=url
                    )

                total = _content_length(response)
                received = 0
                async with aiofiles.open(partial, "wb") as f:
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        if cancel_token is not None:
                            cancel_token.raise_if_cancelled()
                        await f.write(chunk)
                        received += len(chunk)
                        if on_progress and total:
                            on_progress(min(received / total, 1.0))

            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            await asyncio.to_thread(partial.replace, dest)

        except DownloadCancelled:
            logger.info(f"Download of {url} cancelled")
            await _remove(partial)
            raise
        except asyncio.CancelledError:
            logger.info(f"Download of {url} cancelled")
            await _remove(partial)
            raise
        except DownloadError:
            await _remove(partial)
            raise
        except httpx.HTTPError as e:
            await _remove(partial)
            raise DownloadError(f"Failed to download {url}: {e}", url=url) from e
        except OSError as e:
            await _remove(partial)
            raise DownloadError(f"Failed to write {dest}: {e}", url=url) from e

        if on_progress:
            on_progress(1.0)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _content_length(response: httpx.Response) -> int | None:
    try:
        length = int(response.headers.get("content-length", ""))
    except ValueError:
        return None
    return length if length > 0 else None


async def _remove(path: Path) -> None:
    try:
        await asyncio.to_thread(path.unlink, missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to remove partial download {path}: {e}")
