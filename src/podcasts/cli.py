"""CLI entry point for podcasts."""

import asyncio
import logging
import sys
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from podcasts.audio.downloader import EnclosureDownloader
from podcasts.audio.enclosures import EnclosureStore
from podcasts.config.logging import setup_logging
from podcasts.config.manager import ConfigManager, resolve_storage_paths
from podcasts.config.schema import GlobalConfig
from podcasts.feeds.fetcher import FeedFetcher
from podcasts.opml import OpmlFeed, build_opml, parse_opml
from podcasts.storage.metadata import MetadataStore
from podcasts.storage.models import PodcastView
from podcasts.storage.watcher import RoamingFileWatcher
from podcasts.utils.display import to_human_duration, to_human_time_ago, truncate_text
from podcasts.utils.errors import NotFoundError, PodcastsError
from podcasts.utils.scheduling import Clock, Scheduler

logger = logging.getLogger(__name__)

HOUR_MS = 60 * 60 * 1000

app = typer.Typer(
    name="podcasts",
    help="Subscribe to, download and track podcasts",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose (DEBUG) logging"
    ),
    log_file: Path | None = typer.Option(
        None, "--log-file", help="Write logs to file"
    ),
    config_dir: Path | None = typer.Option(
        None, "--config-dir", envvar="PODCASTS_CONFIG_DIR", help="Configuration directory"
    ),
) -> None:
    """Podcasts - subscribe, download and keep listening progress in sync."""
    # Initialize logging before any command runs
    setup_logging(verbose=verbose, log_file=log_file)
    ctx.obj = ConfigManager(config_dir)


@asynccontextmanager
async def open_store(config: GlobalConfig) -> AsyncIterator[MetadataStore]:
    """Metadata store loaded from disk, with an HTTP fetcher closed on exit."""
    data_dir, roaming_path = resolve_storage_paths(config)
    async with FeedFetcher(
        timeout=config.network.timeout_seconds,
        user_agent=config.network.user_agent,
    ) as fetcher:
        store = MetadataStore(
            storage_dir=data_dir,
            roaming_path=roaming_path,
            fetcher=fetcher,
            purge_after_days=config.storage.purge_after_days,
        )
        await store.load_metadata()
        yield store


def run_command(coro: Coroutine[Any, Any, None]) -> None:
    """Run a command coroutine, turning errors into a message and exit status."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        sys.exit(130)
    except PodcastsError as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)


def _max_age_ms(hours: int | None) -> int | None:
    return None if hours is None else hours * HOUR_MS


@app.command("version")
def show_version() -> None:
    """Show version information."""
    from podcasts import __version__

    console.print(f"[bold cyan]podcasts[/bold cyan] v{__version__}")


@app.command("add")
def add_podcast(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="RSS feed URL"),
) -> None:
    """Fetch a feed and star it.

    Examples:
        podcasts add https://example.com/feed.rss
    """

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            view = await store.fetch_podcast(url)
            await store.star_podcast(url, True)

        if view.local is None:
            raise NotFoundError("Podcast", url)
        console.print(
            f"[green]✓[/green] Starred '[bold]{view.local.title}[/bold]' "
            f"({len(view.local.episodes)} episodes)"
        )

    run_command(run())


@app.command("star")
def star_podcast(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="RSS feed URL"),
) -> None:
    """Star a feed without fetching it."""

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            await store.star_podcast(url, True)
        console.print(f"[green]✓[/green] Starred {url}")

    run_command(run())


@app.command("unstar")
def unstar_podcast(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="RSS feed URL"),
) -> None:
    """Remove the star from a feed."""

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            if not store.is_starred_podcast(url):
                console.print(f"[yellow]Not starred:[/yellow] {url}")
                return
            await store.star_podcast(url, False)
        console.print(f"[green]✓[/green] Unstarred {url}")

    run_command(run())


@app.command("starred")
def list_starred(ctx: typer.Context) -> None:
    """List starred podcasts, fetching any that are not cached yet."""

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            urls = store.get_starred_podcast_urls()
            if not urls:
                console.print("[yellow]No starred podcasts yet.[/yellow]")
                console.print("\nAdd one: [cyan]podcasts add <url>[/cyan]")
                return

            max_age = _max_age_ms(config.refresh.starred_max_age_hours)
            results = await asyncio.gather(
                *(store.fetch_podcast(url, max_age) for url in urls),
                return_exceptions=True,
            )

        table = Table(title="[bold]Starred Podcasts[/bold]")
        table.add_column("Title", style="cyan")
        table.add_column("Episodes", justify="right")
        table.add_column("Downloaded", justify="right", style="green")
        table.add_column("URL", style="blue")

        failures = 0
        for url, result in zip(urls, results):
            if isinstance(result, PodcastsError):
                failures += 1
                logger.warning(f"Failed to load {url}: {result}")
                table.add_row("[red]failed to load[/red]", "-", "-", url)
            elif isinstance(result, BaseException):
                raise result
            elif result.local is not None:
                table.add_row(
                    truncate_text(result.local.title, 50),
                    str(len(result.local.episodes)),
                    str(len(result.local.downloaded)),
                    url,
                )

        console.print(table)
        if failures:
            console.print(f"[yellow]{failures} feed(s) could not be loaded[/yellow]")

    run_command(run())


def _print_podcast(url: str, view: PodcastView, now_ms: int) -> None:
    if view.local is None:
        raise NotFoundError("Podcast", url)
    local = view.local
    roaming = view.roaming

    table = Table(title=f"[bold]{local.title}[/bold]")
    table.add_column("", justify="center")
    table.add_column("Title", style="cyan")
    table.add_column("Published", style="dim")
    table.add_column("Duration", justify="right")
    table.add_column("GUID", style="dim", overflow="fold")

    episodes = sorted(
        local.episodes.items(),
        key=lambda item: item[1].published_at_ms or 0,
        reverse=True,
    )
    for guid, episode in episodes:
        status = roaming.episodes.get(guid) if roaming else None
        if status is not None and status.completed:
            marker = "[green]✓[/green]"
        elif status is not None and status.last_position_seconds:
            marker = "[yellow]…[/yellow]"
        else:
            marker = ""
        if guid in local.downloaded:
            marker += "[blue]↓[/blue]"

        published = (
            to_human_time_ago(episode.published_at_ms, now_ms) if episode.published_at_ms else "-"
        )
        table.add_row(
            marker,
            truncate_text(episode.title),
            published,
            to_human_duration(episode.duration_seconds, unknown="-"),
            guid,
        )

    console.print(table)
    if local.description:
        console.print(f"[dim]{truncate_text(local.description, 200)}[/dim]")
    starred = "starred" if roaming is not None and roaming.starred else "not starred"
    console.print(
        f"\n[dim]{url} · {starred} · refreshed "
        f"{to_human_time_ago(local.last_refreshed_at_ms, now_ms)}[/dim]"
    )


@app.command("show")
def show_podcast(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="RSS feed URL"),
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Refresh the feed first"),
) -> None:
    """Show the episodes of a podcast."""

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            if refresh:
                view = await store.update_podcast(url)
            else:
                max_age = _max_age_ms(config.refresh.episode_list_max_age_hours)
                view = await store.fetch_podcast(url, max_age)
        _print_podcast(url, view, Clock().now_ms())

    run_command(run())


@app.command("refresh")
def refresh_podcasts(
    ctx: typer.Context,
    url: str | None = typer.Argument(None, help="Feed URL (default: all starred)"),
) -> None:
    """Refresh one feed, or every starred feed."""

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            urls = [url] if url else store.get_starred_podcast_urls()
            results = await asyncio.gather(
                *(store.update_podcast(u) for u in urls),
                return_exceptions=True,
            )

        failures = 0
        for feed_url, result in zip(urls, results):
            if isinstance(result, PodcastsError):
                failures += 1
                console.print(f"[red]✗[/red] {feed_url}: {result}")
            elif isinstance(result, BaseException):
                raise result
            elif result.local is not None:
                console.print(
                    f"[green]✓[/green] {result.local.title} ({len(result.local.episodes)} episodes)"
                )
        if failures:
            sys.exit(1)

    run_command(run())


@app.command("download")
def download_episode(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="RSS feed URL"),
    guid: str = typer.Argument(..., help="Episode GUID (see 'podcasts show')"),
) -> None:
    """Download an episode's audio. Ctrl-C cancels without leaving a partial file."""

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            max_age = _max_age_ms(config.refresh.episode_list_max_age_hours)
            await store.fetch_podcast(url, max_age)

            downloader = EnclosureDownloader(
                timeout=config.network.timeout_seconds,
                user_agent=config.network.user_agent,
                chunk_size=config.network.chunk_size,
            )
            enclosures = EnclosureStore(store, downloader)
            try:
                with Progress(
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TaskProgressColumn(),
                    console=console,
                ) as progress:
                    task = progress.add_task("Downloading...", total=1.0)
                    path = await enclosures.fetch_enclosure(
                        url,
                        guid,
                        on_progress=lambda fraction: progress.update(task, completed=fraction),
                    )
            finally:
                await downloader.aclose()

        console.print(f"[green]✓[/green] Saved to {path}")

    run_command(run())


@app.command("delete")
def delete_episode(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="RSS feed URL"),
    guid: str = typer.Argument(..., help="Episode GUID"),
) -> None:
    """Delete a downloaded episode."""

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            enclosures = EnclosureStore(store)
            try:
                deleted = await enclosures.delete_enclosure(url, guid)
            finally:
                await enclosures.aclose()
        if deleted:
            console.print(f"[green]✓[/green] Deleted download of {guid}")
        else:
            console.print("[yellow]Download record removed, file could not be deleted[/yellow]")

    run_command(run())


@app.command("progress")
def record_progress(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="RSS feed URL"),
    guid: str = typer.Argument(..., help="Episode GUID"),
    position: float | None = typer.Option(None, "--position", "-p", help="Position in seconds"),
    completed: bool = typer.Option(False, "--completed", "-c", help="Mark as completed"),
) -> None:
    """Record listening progress for an episode."""

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            await store.store_listening_status(url, guid, completed, position)
        state = "completed" if completed else f"at {to_human_duration(position, unknown='start')}"
        console.print(f"[green]✓[/green] Recorded {guid} {state}")

    run_command(run())


@app.command("history")
def show_history(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", help="Number of entries"),
) -> None:
    """Show recently played episodes."""

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            entries = store.listening_history()[:limit]

        if not entries:
            console.print("[yellow]No listening history yet.[/yellow]")
            return

        now = Clock().now_ms()
        table = Table(title="[bold]Listening History[/bold]")
        table.add_column("Podcast", style="cyan")
        table.add_column("Episode")
        table.add_column("Played", style="dim")
        table.add_column("Progress", justify="right")

        for entry in entries:
            if entry.status.completed:
                progress = "[green]completed[/green]"
            else:
                position = to_human_duration(entry.status.last_position_seconds, unknown="0 min")
                total = to_human_duration(entry.episode.duration_seconds, unknown="?")
                progress = f"{position} / {total}"
            played = (
                to_human_time_ago(entry.status.last_played_at_ms, now)
                if entry.status.last_played_at_ms
                else "-"
            )
            table.add_row(
                truncate_text(entry.podcast_title, 30),
                truncate_text(entry.episode.title, 50),
                played,
                progress,
            )

        console.print(table)

    run_command(run())


@app.command("purge")
def purge_metadata(ctx: typer.Context) -> None:
    """Remove cached feeds that are old, unstarred and have no downloads."""

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            purged = store.purge_old_metadata()
            await store.save_metadata(local=True, roaming=False)
        console.print(f"[green]✓[/green] Purged {len(purged)} feed(s)")

    run_command(run())


@app.command("import-opml")
def import_opml(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="OPML file"),
) -> None:
    """Fetch and star every feed in an OPML file."""

    async def run() -> None:
        config = ctx.obj.load_config()
        feeds = parse_opml(path.read_bytes())

        imported = 0
        failures = 0
        async with open_store(config) as store:
            for feed in feeds:
                try:
                    await store.fetch_podcast(feed.feed_url)
                    await store.star_podcast(feed.feed_url, True)
                    imported += 1
                except PodcastsError as e:
                    failures += 1
                    logger.warning(f"Failed to import {feed.feed_url}: {e}")

        console.print(f"[green]✓[/green] Imported {imported} podcast(s)")
        if failures:
            console.print(f"[yellow]{failures} feed(s) failed to import[/yellow]")

    run_command(run())


@app.command("export-opml")
def export_opml(
    ctx: typer.Context,
    path: Path = typer.Argument(..., dir_okay=False, help="Output OPML file"),
) -> None:
    """Write starred feeds to an OPML file."""

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            feeds = []
            for url in store.get_starred_podcast_urls():
                local = store.get_podcast(url).local
                feeds.append(
                    OpmlFeed(
                        feed_url=url,
                        title=local.title if local else None,
                        homepage_url=local.homepage_url if local else None,
                    )
                )

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(build_opml(feeds), encoding="utf-8")
        console.print(f"[green]✓[/green] Exported {len(feeds)} podcast(s) to {path}")

    run_command(run())


@app.command("roaming-path")
def set_roaming_path(
    ctx: typer.Context,
    path: Path = typer.Argument(..., dir_okay=False, help="Roaming metadata file"),
) -> None:
    """Keep starred feeds and listening progress in a different (e.g. synced) file."""

    async def run() -> None:
        config = ctx.obj.load_config()
        async with open_store(config) as store:
            await store.set_roaming_path(path.expanduser())
            starred = len(store.get_starred_podcast_urls())
        ctx.obj.set_roaming_path(path.expanduser())
        console.print(
            f"[green]✓[/green] Roaming metadata now at {path} ({starred} starred podcast(s))"
        )

    run_command(run())


@app.command("watch")
def watch_roaming(ctx: typer.Context) -> None:
    """Watch the roaming metadata file and report changes made elsewhere."""

    async def run() -> None:
        config = ctx.obj.load_config()
        if not config.watch.enabled:
            console.print("[yellow]Watching is disabled in the configuration[/yellow]")
            return

        async with open_store(config) as store:
            scheduler = Scheduler()

            def on_reload() -> None:
                starred = len(store.get_starred_podcast_urls())
                console.print(f"[cyan]→[/cyan] Roaming metadata reloaded ({starred} starred)")

            watcher = RoamingFileWatcher(
                store,
                scheduler,
                poll_interval=config.watch.poll_interval_seconds,
                grace_seconds=config.watch.grace_seconds,
                debounce_seconds=config.watch.debounce_seconds,
                on_reload=on_reload,
            )
            watcher.start()
            console.print(f"Watching {store.roaming_metadata_path} (Ctrl-C to stop)")
            try:
                await asyncio.Event().wait()
            finally:
                watcher.stop()
                scheduler.close()

    run_command(run())


if __name__ == "__main__":
    app()
