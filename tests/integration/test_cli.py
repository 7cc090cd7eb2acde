"""Integration tests for CLI commands."""

import json
from pathlib import Path

import pytest
from conftest import FEED_URL, ScriptedFetcher, build_rss, episode
from typer.testing import CliRunner

from podcasts.cli import app
from podcasts.config.manager import ConfigManager
from podcasts.config.schema import GlobalConfig, StorageConfig
from podcasts.storage.metadata import MetadataStore
from podcasts.storage.models import PodcastView

runner = CliRunner()

OTHER_URL = "https://other.example.com/rss"


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """Config directory whose data directory lives under tmp_path."""
    config_dir = tmp_path / "config"
    ConfigManager(config_dir).save_config(
        GlobalConfig(storage=StorageConfig(data_dir=tmp_path / "data"))
    )
    return config_dir


@pytest.fixture
def feeds(monkeypatch: pytest.MonkeyPatch) -> dict[str, bytes]:
    """Feed documents served to the CLI instead of the network."""
    pages: dict[str, bytes] = {}

    class FakeFeedFetcher(ScriptedFetcher):
        def __init__(self, **kwargs) -> None:
            super().__init__()
            self.pages = pages

        async def __aenter__(self) -> "FakeFeedFetcher":
            return self

        async def __aexit__(self, *exc_info) -> None:
            await self.aclose()

    monkeypatch.setattr("podcasts.cli.FeedFetcher", FakeFeedFetcher)
    return pages


def invoke(config_dir: Path, *args: str):
    return runner.invoke(app, ["--config-dir", str(config_dir), *args])


def roaming_data(tmp_path: Path) -> dict:
    return json.loads((tmp_path / "data" / "roaming.json").read_text())


class TestCLIVersion:
    """Tests for version command."""

    def test_version_command(self) -> None:
        """Test version command displays version."""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "podcasts" in result.stdout
        assert "0.1.0" in result.stdout


class TestCLIAdd:
    """Tests for add, star and unstar."""

    def test_add_fetches_and_stars(self, tmp_path: Path, config_dir: Path, feeds: dict) -> None:
        feeds[FEED_URL] = build_rss([episode("a"), episode("b")], title="Test Podcast")

        result = invoke(config_dir, "add", FEED_URL)

        assert result.exit_code == 0
        assert "Test Podcast" in result.stdout
        assert "2 episodes" in result.stdout
        assert roaming_data(tmp_path)["podcasts"][FEED_URL]["starred"] is True
        assert (tmp_path / "data" / "local.json").exists()

    def test_add_unreachable_feed(self, tmp_path: Path, config_dir: Path, feeds: dict) -> None:
        """Test that a transport failure gives a concise message and exit code 1."""
        result = invoke(config_dir, "add", FEED_URL)

        assert result.exit_code == 1
        assert "Failed to fetch" in result.stdout
        assert not (tmp_path / "data" / "roaming.json").exists()

    def test_add_malformed_feed(self, config_dir: Path, feeds: dict) -> None:
        feeds[FEED_URL] = b"<html>nope</html>"

        result = invoke(config_dir, "add", FEED_URL)

        assert result.exit_code == 1
        assert "expected RSS or Atom" in result.stdout

    def test_star_and_unstar(self, tmp_path: Path, config_dir: Path, feeds: dict) -> None:
        result = invoke(config_dir, "star", FEED_URL)
        assert result.exit_code == 0
        assert roaming_data(tmp_path)["podcasts"][FEED_URL]["starred"] is True

        result = invoke(config_dir, "unstar", FEED_URL)
        assert result.exit_code == 0
        assert "Unstarred" in result.stdout
        assert roaming_data(tmp_path)["podcasts"][FEED_URL]["starred"] is False

    def test_unstar_not_starred(self, config_dir: Path, feeds: dict) -> None:
        result = invoke(config_dir, "unstar", FEED_URL)

        assert result.exit_code == 0
        assert "Not starred" in result.stdout


class TestCLIStarred:
    """Tests for the starred list."""

    def test_empty(self, config_dir: Path, feeds: dict) -> None:
        result = invoke(config_dir, "starred")

        assert result.exit_code == 0
        assert "No starred podcasts yet" in result.stdout

    def test_lists_and_fetches_starred(self, config_dir: Path, feeds: dict) -> None:
        feeds[FEED_URL] = build_rss([episode("a")], title="Alpha")
        invoke(config_dir, "star", FEED_URL)
        invoke(config_dir, "star", OTHER_URL)

        result = invoke(config_dir, "starred")

        assert result.exit_code == 0
        assert "Alpha" in result.stdout
        assert "could not be loaded" in result.stdout


class TestCLIEpisodes:
    """Tests for show, progress, history and delete."""

    def test_show(self, config_dir: Path, feeds: dict) -> None:
        feeds[FEED_URL] = build_rss([episode("a"), episode("b")], title="Show Me")

        result = invoke(config_dir, "show", FEED_URL)

        assert result.exit_code == 0
        assert "Show Me" in result.stdout
        assert "Episode a" in result.stdout
        assert "not starred" in result.stdout

    def test_refresh_failure(self, config_dir: Path, feeds: dict) -> None:
        result = invoke(config_dir, "refresh", FEED_URL)

        assert result.exit_code == 1

    def test_progress_and_history(self, tmp_path: Path, config_dir: Path, feeds: dict) -> None:
        feeds[FEED_URL] = build_rss([episode("a", duration="30:00")], title="Hist")
        invoke(config_dir, "add", FEED_URL)

        result = invoke(config_dir, "progress", FEED_URL, "a", "--position", "600")
        assert result.exit_code == 0
        status = roaming_data(tmp_path)["podcasts"][FEED_URL]["episodes"]["a"]
        assert status["last_position_seconds"] == 600
        assert status["completed"] is False

        result = invoke(config_dir, "history")
        assert result.exit_code == 0
        assert "Episode a" in result.stdout
        assert "10 min / 30 min" in result.stdout

    def test_history_empty(self, config_dir: Path, feeds: dict) -> None:
        result = invoke(config_dir, "history")

        assert result.exit_code == 0
        assert "No listening history yet" in result.stdout

    def test_delete_without_download(self, config_dir: Path, feeds: dict) -> None:
        result = invoke(config_dir, "delete", FEED_URL, "a")

        assert result.exit_code == 1
        assert "Download not found" in result.stdout

    def test_purge(self, config_dir: Path, feeds: dict) -> None:
        result = invoke(config_dir, "purge")

        assert result.exit_code == 0
        assert "Purged 0 feed(s)" in result.stdout


class TestCLIOpml:
    """Tests for OPML import and export."""

    def test_export(self, tmp_path: Path, config_dir: Path, feeds: dict) -> None:
        feeds[FEED_URL] = build_rss([episode("a")], title="Exported", link="https://exported.example.com")
        invoke(config_dir, "add", FEED_URL)
        invoke(config_dir, "star", OTHER_URL)
        output = tmp_path / "out" / "subscriptions.opml"

        result = invoke(config_dir, "export-opml", str(output))

        assert result.exit_code == 0
        assert "Exported 2 podcast(s)" in result.stdout
        document = output.read_text()
        assert f'xmlUrl="{FEED_URL}"' in document
        assert 'title="Exported"' in document
        assert f'xmlUrl="{OTHER_URL}"' in document

    def test_import(self, tmp_path: Path, config_dir: Path, feeds: dict) -> None:
        """Test that reachable feeds are starred and failures are counted."""
        feeds[FEED_URL] = build_rss([episode("a")])
        opml = tmp_path / "subs.opml"
        opml.write_text(
            "<opml version='2.0'><body>"
            f"<outline type='rss' text='Good' xmlUrl='{FEED_URL}'/>"
            f"<outline type='rss' text='Bad' xmlUrl='{OTHER_URL}'/>"
            "</body></opml>"
        )

        result = invoke(config_dir, "import-opml", str(opml))

        assert result.exit_code == 0
        assert "Imported 1 podcast(s)" in result.stdout
        assert "1 feed(s) failed to import" in result.stdout
        podcasts = roaming_data(tmp_path)["podcasts"]
        assert podcasts[FEED_URL]["starred"] is True
        assert OTHER_URL not in podcasts

    def test_import_invalid_file(self, tmp_path: Path, config_dir: Path, feeds: dict) -> None:
        opml = tmp_path / "subs.opml"
        opml.write_text("not xml at all")

        result = invoke(config_dir, "import-opml", str(opml))

        assert result.exit_code == 1
        assert "Invalid OPML" in result.stdout


class TestCLIRoamingPath:
    def test_switch_roaming_file(self, tmp_path: Path, config_dir: Path, feeds: dict) -> None:
        synced = tmp_path / "cloud" / "roaming.json"
        synced.parent.mkdir()
        synced.write_text(json.dumps({"podcasts": {OTHER_URL: {"starred": True}}}))

        result = invoke(config_dir, "roaming-path", str(synced))

        assert result.exit_code == 0
        assert "Roaming metadata now at" in result.stdout
        assert ConfigManager(config_dir).load_config().storage.roaming_path == synced


class TestCLIMissingLocalData:
    """Tests for commands that get no local snapshot back."""

    @pytest.fixture(autouse=True)
    def no_local_snapshot(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def fetch_podcast(self, url, update_if_older_than_ms=None):
            return PodcastView()

        monkeypatch.setattr(MetadataStore, "fetch_podcast", fetch_podcast)

    def test_show(self, config_dir: Path, feeds: dict) -> None:
        result = invoke(config_dir, "show", FEED_URL)

        assert result.exit_code == 1
        assert "Podcast not found" in result.stdout

    def test_add(self, config_dir: Path, feeds: dict) -> None:
        result = invoke(config_dir, "add", FEED_URL)

        assert result.exit_code == 1
        assert "Podcast not found" in result.stdout
