"""Unit tests for snapshot merge functions."""

from podcasts.feeds.models import Enclosure, ParsedEpisode, ParsedFeed
from podcasts.storage import merge
from podcasts.storage.models import DownloadRecord, LocalEpisode, LocalPodcast

NOW = 1_700_000_000_000


def local_episode(guid: str, **fields) -> LocalEpisode:
    return LocalEpisode(title=f"Episode {guid}", enclosure_url=f"https://cdn/{guid}.mp3", **fields)


def podcast(*guids: str, title: str = "Show", downloaded: tuple[str, ...] = (), refreshed: int = NOW) -> LocalPodcast:
    return LocalPodcast(
        title=title,
        episodes={guid: local_episode(guid) for guid in guids},
        downloaded={guid: DownloadRecord(local_filename=f"{guid}.mp3") for guid in downloaded},
        last_refreshed_at_ms=refreshed,
    )


class TestPageFromFeed:
    """Tests for page_from_feed."""

    def test_keys_by_identity(self) -> None:
        feed = ParsedFeed(
            title="Show",
            episodes=[
                ParsedEpisode(guid="g1", title="One", enclosure=Enclosure(url="https://cdn/1.mp3")),
                ParsedEpisode(title="Two", enclosure=Enclosure(url="https://cdn/2.mp3")),
            ],
        )

        page = merge.page_from_feed(feed, NOW)

        assert list(page.episodes) == ["g1", "https://cdn/2.mp3"]
        assert page.episodes["g1"].enclosure_url == "https://cdn/1.mp3"
        assert page.last_refreshed_at_ms == NOW
        assert page.downloaded == {}

    def test_first_duplicate_wins(self) -> None:
        feed = ParsedFeed(
            title="Show",
            episodes=[
                ParsedEpisode(guid="g1", title="First", enclosure=Enclosure(url="https://cdn/1.mp3")),
                ParsedEpisode(guid="g1", title="Second", enclosure=Enclosure(url="https://cdn/1b.mp3")),
            ],
        )

        page = merge.page_from_feed(feed, NOW)

        assert page.episodes["g1"].title == "First"


class TestAppendPage:
    """Tests for append_page."""

    def test_first_page(self) -> None:
        page = podcast("a")

        assert merge.append_page(None, page) is page

    def test_earlier_pages_win(self) -> None:
        first = podcast("a", "b", title="Page one")
        second = LocalPodcast(
            title="Page two",
            episodes={"b": local_episode("b", duration_seconds=99), "c": local_episode("c")},
            last_refreshed_at_ms=NOW,
        )

        result = merge.append_page(first, second)

        assert list(result.episodes) == ["a", "b", "c"]
        assert result.episodes["b"].duration_seconds is None
        assert result.title == "Page one"

    def test_inputs_not_mutated(self) -> None:
        first = podcast("a")
        merge.append_page(first, podcast("b"))

        assert list(first.episodes) == ["a"]


class TestMergeIntoPrevious:
    def test_previous_wins(self) -> None:
        current = podcast("b", "c")
        previous = LocalPodcast(
            title="Old title",
            episodes={"a": local_episode("a"), "b": local_episode("b", duration_seconds=1800)},
            last_refreshed_at_ms=NOW - 1000,
        )

        result = merge.merge_into_previous(current, previous)

        assert set(result.episodes) == {"a", "b", "c"}
        assert result.episodes["b"].duration_seconds == 1800
        assert result.title == "Show"


class TestDownloads:
    """Tests for download carry-over and orphan detection."""

    def test_carry_over(self) -> None:
        previous = podcast("a", downloaded=("a",))

        result = merge.carry_over_downloads(podcast("a", "b"), previous)

        assert result.downloaded == previous.downloaded

    def test_carry_over_without_previous(self) -> None:
        current = podcast("a")

        assert merge.carry_over_downloads(current, None) is current

    def test_orphans(self) -> None:
        current = LocalPodcast(
            title="Show",
            episodes={"a": local_episode("a")},
            downloaded={
                "a": DownloadRecord(local_filename="a.mp3"),
                "gone": DownloadRecord(local_filename="gone.mp3"),
            },
            last_refreshed_at_ms=NOW,
        )

        assert merge.orphaned_downloads(current) == ["gone"]
        assert list(merge.without_downloads(current, ["gone"]).downloaded) == ["a"]


class TestOverlapAndPurge:
    def test_pages_overlap(self) -> None:
        assert merge.pages_overlap(podcast("b", "c"), podcast("a", "b"))
        assert not merge.pages_overlap(podcast("c", "d"), podcast("a", "b"))
        assert not merge.pages_overlap(podcast("a"), None)

    def test_is_purgeable(self) -> None:
        threshold = NOW
        old = podcast("a", refreshed=NOW - 1)

        assert merge.is_purgeable(old, starred=False, threshold_ms=threshold)
        assert not merge.is_purgeable(old, starred=True, threshold_ms=threshold)
        assert not merge.is_purgeable(
            podcast("a", downloaded=("a",), refreshed=NOW - 1), starred=False, threshold_ms=threshold
        )
        assert not merge.is_purgeable(podcast("a", refreshed=NOW), starred=False, threshold_ms=threshold)
