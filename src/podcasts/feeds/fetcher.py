"""HTTP retrieval of feed documents."""

import logging
from types import TracebackType

import httpx

from podcasts.utils.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "podcasts-cli/0.1"
DEFAULT_TIMEOUT = 30.0


class FeedFetcher:
    """Fetches feed documents over HTTP(S).

    No retries happen here; a failure is reported to the caller, which
    decides whether the whole update is aborted.

    Example:
        >>> async with FeedFetcher() as fetcher:
        ...     document = await fetcher.fetch("https://example.com/feed.xml")
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        """Initialize the fetcher.

        Args:
            client: Optional shared client. A client created here is closed
                by ``aclose()``; a client passed in is left open.
            timeout: Request timeout in seconds
            user_agent: User-Agent header sent with every request
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": user_agent},
        )

    async def fetch(self, url: str) -> bytes:
        """Fetch a feed document.

        Args:
            url: Feed (or feed page) URL

        Returns:
            Response body

        Raises:
            TransportError: On network failure or non-2xx status
        """
        logger.info(f"Requesting {url}")
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            logger.warning(f"HTTP error fetching {url}: {e}")
            raise TransportError(f"Failed to fetch {url}: {e}", url=url) from e

        if not response.is_success:
            logger.warning(f"HTTP status {response.status_code} fetching {url}")
            raise TransportError(
                f"Failed to fetch {url}: HTTP status {response.status_code}",
                url=url,
                status_code=response.status_code,
            )

        return response.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "FeedFetcher":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
