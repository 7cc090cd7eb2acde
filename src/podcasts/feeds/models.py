"""Data models for parsed podcast feeds."""

from pydantic import BaseModel, Field


class Enclosure(BaseModel):
    """Downloadable audio payload attached to an episode."""

    url: str
    mime_type: str | None = None
    length: int | None = Field(default=None, ge=0)


class ParsedEpisode(BaseModel):
    """Represents a single episode as found in a feed document."""

    guid: str | None = None
    title: str
    description: str | None = None
    homepage_url: str | None = None
    published_at_ms: int | None = None
    duration_seconds: int | None = None
    explicit: bool | None = None
    categories: list[str] = Field(default_factory=list)
    enclosure: Enclosure

    @property
    def identity(self) -> str:
        """Stable key across refreshes: the feed GUID, else the enclosure URL."""
        return self.guid or self.enclosure.url


class ParsedFeed(BaseModel):
    """Podcast metadata and episodes parsed from one feed document (page)."""

    title: str
    description: str | None = None
    homepage_url: str | None = None
    image_url: str | None = None
    language: str | None = None
    author: str | None = None
    explicit: bool | None = None
    categories: list[str] = Field(default_factory=list)
    episodes: list[ParsedEpisode] = Field(default_factory=list)
