"""Pure functions for merging fetched feed pages into local snapshots.

None of these functions mutate their arguments; each returns a new
snapshot. The metadata store only assigns the final result into its table.
"""

from collections.abc import Iterable

from podcasts.feeds.models import ParsedEpisode, ParsedFeed
from podcasts.storage.models import LocalEpisode, LocalPodcast


def episode_from_parsed(episode: ParsedEpisode) -> LocalEpisode:
    return LocalEpisode(
        title=episode.title,
        description=episode.description,
        homepage_url=episode.homepage_url,
        duration_seconds=episode.duration_seconds,
        published_at_ms=episode.published_at_ms,
        enclosure_url=episode.enclosure.url,
    )


def page_from_feed(feed: ParsedFeed, now_ms: int) -> LocalPodcast:
    """Build a local snapshot from a single parsed page.

    Episodes are keyed by identity (GUID, else enclosure URL). If a page
    repeats an identity, the first occurrence wins.
    """
    episodes: dict[str, LocalEpisode] = {}
    for episode in feed.episodes:
        episodes.setdefault(episode.identity, episode_from_parsed(episode))

    return LocalPodcast(
        title=feed.title,
        description=feed.description,
        homepage_url=feed.homepage_url,
        episodes=episodes,
        last_refreshed_at_ms=now_ms,
    )


def pages_overlap(page: LocalPodcast, other: LocalPodcast | None) -> bool:
    """True if any episode identity of ``page`` is already in ``other``."""
    if other is None:
        return False
    return not page.episodes.keys().isdisjoint(other.episodes.keys())


def append_page(accumulated: LocalPodcast | None, page: LocalPodcast) -> LocalPodcast:
    """Append a later page to the pages collected so far.

    Podcast-level fields come from the first page. Episodes already
    collected win over the same identity on a later page.
    """
    if accumulated is None:
        return page
    new_episodes = {guid: ep for guid, ep in page.episodes.items() if guid not in accumulated.episodes}
    return accumulated.model_copy(update={"episodes": {**accumulated.episodes, **new_episodes}})


def merge_into_previous(current: LocalPodcast, previous: LocalPodcast) -> LocalPodcast:
    """Merge the previously stored snapshot into freshly fetched pages.

    The previous snapshot wins on conflicting identities, since it may
    carry patched-up data such as probed durations.
    """
    return current.model_copy(update={"episodes": {**current.episodes, **previous.episodes}})


def carry_over_downloads(current: LocalPodcast, previous: LocalPodcast | None) -> LocalPodcast:
    """Copy the download records of ``previous`` verbatim into ``current``."""
    if previous is None:
        return current
    return current.model_copy(update={"downloaded": dict(previous.downloaded)})


def orphaned_downloads(podcast: LocalPodcast) -> list[str]:
    """Identities of download records whose episode is no longer in the feed."""
    return [guid for guid in podcast.downloaded if guid not in podcast.episodes]


def without_downloads(podcast: LocalPodcast, guids: Iterable[str]) -> LocalPodcast:
    dropped = set(guids)
    downloaded = {guid: rec for guid, rec in podcast.downloaded.items() if guid not in dropped}
    return podcast.model_copy(update={"downloaded": downloaded})


def is_purgeable(podcast: LocalPodcast, starred: bool, threshold_ms: int) -> bool:
    """Eligible for purge: no downloads, not starred, refreshed before ``threshold_ms``."""
    return not starred and not podcast.downloaded and podcast.last_refreshed_at_ms < threshold_ms
