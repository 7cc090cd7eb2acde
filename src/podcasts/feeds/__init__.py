"""Feed retrieval, parsing and pagination."""

from podcasts.feeds.fetcher import FeedFetcher
from podcasts.feeds.models import Enclosure, ParsedEpisode, ParsedFeed
from podcasts.feeds.pagination import get_next_page_url
from podcasts.feeds.parser import FeedParser, parse_duration

__all__ = [
    "FeedFetcher",
    "FeedParser",
    "Enclosure",
    "ParsedEpisode",
    "ParsedFeed",
    "get_next_page_url",
    "parse_duration",
]
