"""Custom exceptions for the podcasts package."""


class PodcastsError(Exception):
    """Base exception for all podcasts errors."""

    pass


class ConfigError(PodcastsError):
    """Configuration-related errors."""

    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration data."""

    pass


class FeedError(PodcastsError):
    """Feed retrieval and parsing errors."""

    pass


class TransportError(FeedError):
    """Network or HTTP failure while fetching a feed."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ParseError(FeedError):
    """Feed document is not well-formed feed markup."""

    pass


class PaginationResolutionError(FeedError):
    """Next-page link could not be resolved.

    Recoverable: callers treat it as the end of pagination.
    """

    pass


class StorageError(PodcastsError):
    """Metadata storage errors."""

    pass


class MetadataLoadError(StorageError):
    """Persisted metadata could not be read or validated."""

    pass


class NotFoundError(StorageError):
    """Podcast or episode has never been fetched."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} not found: {resource_id}")
        self.resource_type = resource_type
        self.resource_id = resource_id


class EnclosureError(PodcastsError):
    """Enclosure download and file errors."""

    pass


class DownloadError(EnclosureError):
    """Enclosure download failed. No download is registered."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class ProbeError(EnclosureError):
    """Audio duration could not be read from a downloaded file."""

    pass


class DownloadCancelled(PodcastsError):
    """Download was cancelled by the caller.

    Cancellation is a normal outcome and is not a DownloadError.
    """

    pass
