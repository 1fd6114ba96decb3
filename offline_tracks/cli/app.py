"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
from pathlib import Path

import aiofiles
import typer
from pathvalidate import sanitize_filename
from rich.console import Console
from rich.logging import RichHandler

from offline_tracks import __version__
from offline_tracks.core.controller import TrackController
from offline_tracks.core.coordinator import PlaybackCoordinator
from offline_tracks.exceptions import DownloadCancelled, TransportFailed
from offline_tracks.media.downloader import close_connection_pool, make_downloader_factory
from offline_tracks.media.playback import ClockPlaybackEngine
from offline_tracks.models.config import (
    COLLECTION_BLOBS,
    COLLECTION_POSITIONS,
    PlayerConfig,
)
from offline_tracks.models.track import TrackInfo
from offline_tracks.storage.config_manager import ConfigManager
from offline_tracks.storage.playlist import find_track, load_playlist
from offline_tracks.storage.store import ABSENT, PersistentStore, open_store
from offline_tracks.utils.structured_logger import StructuredLogger, TrackEventLogger

from .formatters import print_config, print_status_table, print_tracks_table
from .progress_manager import PlaybackDisplay, ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("offline_tracks")

# Track events go to the JSON log; the console only echoes them with -vv
EVENTS_LOGGER = "offline_tracks.events"

app = typer.Typer(
    name="offline-tracks",
    help=(
        "Download audio tracks once and play them back offline, resuming where"
        " you left off. Use 'offline-tracks <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "offline-tracks"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


class Session:
    """Per-invocation settings gathered by the top-level callback."""

    def __init__(self, config_file: Path, log_dir: Path | None):
        self.config_file = config_file
        self.log_dir = log_dir
        self._structured: StructuredLogger | None = None

    def load_config(self) -> PlayerConfig:
        return ConfigManager(self.config_file).load_config()

    def observe(self, controller: TrackController) -> None:
        """Records the controller's events in the JSON log, when enabled."""
        if self.log_dir is None:
            return
        if self._structured is None:
            self._structured = StructuredLogger(EVENTS_LOGGER, log_dir=self.log_dir)
        TrackEventLogger(self._structured, controller)

    def close(self) -> None:
        if self._structured is not None:
            self._structured.close()


def _session(ctx: typer.Context) -> Session:
    if ctx.obj is None:
        ctx.obj = Session(CONFIG_FILE, None)
    return ctx.obj


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    config_file: Path = typer.Option(  # noqa: B008
        CONFIG_FILE, "--config", help="Path of the configuration file."
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    log_dir: Path | None = typer.Option(  # noqa: B008
        None, "--log-dir", help="Also write track events as JSON lines into this directory."
    ),
):
    """Offline Tracks CLI"""
    if version:
        console.print(f"[bold]offline-tracks[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("offline_tracks").setLevel(log_level)
    logging.getLogger(EVENTS_LOGGER).setLevel("DEBUG" if verbose >= 2 else "WARNING")

    log.debug(f"Using configuration file '{config_file}'.")
    session = Session(config_file, log_dir)
    ctx.obj = session
    ctx.call_on_close(session.close)

    if show_config:
        if not config_file.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]offline-tracks init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        print_config(config_file, session.load_config())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    ctx: typer.Context,
    store_dir: Path | None = typer.Option(  # noqa: B008
        None, "--store-dir", help="Directory of the offline store database."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Create a configuration file with default settings."""
    session = _session(ctx)
    if (
        session.config_file.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {}
    if store_dir is not None:
        settings["store_dir"] = str(store_dir.expanduser())
    ConfigManager(session.config_file).save_new_config(settings)
    console.print(
        f"[bold green]✓ Configuration saved to '{session.config_file}'[/bold green]"
    )


async def _open_configured_store(config: PlayerConfig) -> PersistentStore:
    return await open_store(
        Path(config.store_dir).expanduser(), config.store_name, config.store_version
    )


async def _confirm_prompt(message: str) -> bool:
    console.print(f"\n{message}\n")
    return await asyncio.to_thread(typer.confirm, "Proceed?", default=False)


def _make_controller(
    session: Session,
    config: PlayerConfig,
    track: TrackInfo,
    store: PersistentStore,
    assume_yes: bool = False,
) -> TrackController:
    confirm = None
    if config.confirm_downloads and not assume_yes:
        confirm = _confirm_prompt
    controller = TrackController(
        track,
        store,
        engine=ClockPlaybackEngine(tick_interval=config.tick_interval),
        downloader_factory=make_downloader_factory(config),
        confirm=confirm,
        await_payload_write=config.await_payload_write,
    )
    session.observe(controller)
    return controller


@app.command(name="list")
def list_command(
    ctx: typer.Context,
    playlist: Path = typer.Argument(..., help="Playlist file (INI, one section per track)."),  # noqa: B008
):
    """Show the playlist with each track's cache state and resume position."""
    session = _session(ctx)

    async def _list_async():
        config = session.load_config()
        tracks = load_playlist(playlist)
        store = await _open_configured_store(config)
        rows = []
        for track in tracks:
            controller = _make_controller(session, config, track, store)
            await controller.initialize()
            rows.append(
                {
                    "key": track.key,
                    "label": track.label,
                    "state": controller.state,
                    "position": controller.engine.current_time,
                    "duration": controller.engine.duration,
                }
            )
            await controller.aclose()
        print_tracks_table(rows, config.theme)

    asyncio.run(_list_async())


@app.command()
def download(
    ctx: typer.Context,
    playlist: Path = typer.Argument(..., help="Playlist file."),  # noqa: B008
    keys: list[str] = typer.Argument(..., help="Keys of the tracks to download."),  # noqa: B008
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Download tracks into the offline store."""
    session = _session(ctx)

    async def _download_async():
        config = session.load_config()
        tracks = load_playlist(playlist)
        selected = [find_track(tracks, key) for key in keys]
        store = await _open_configured_store(config)
        failures = 0

        async with ProgressManager(console, config.theme) as progress_manager:
            try:
                for track in selected:
                    controller = _make_controller(session, config, track, store, yes)
                    progress_manager.attach(controller)
                    await controller.initialize()
                    if controller.downloaded:
                        console.print(
                            f"  [yellow]○ Skipping:[/] {track.label} (already cached)"
                        )
                        continue
                    try:
                        if not await controller.request_download():
                            console.print(f"  [dim]Not downloading {track.label}.[/dim]")
                    except (TransportFailed, DownloadCancelled) as e:
                        failures += 1
                        console.print(f"  [red]✗ Failed:[/] {track.label} ({e})")
                    finally:
                        await controller.aclose()
            finally:
                await close_connection_pool()

        if failures:
            raise typer.Exit(code=1)

    asyncio.run(_download_async())


@app.command()
def play(
    ctx: typer.Context,
    playlist: Path = typer.Argument(..., help="Playlist file."),  # noqa: B008
    keys: list[str] | None = typer.Argument(  # noqa: B008
        None, help="Tracks to play in order (default: every cached track)."
    ),
    seconds: float = typer.Option(
        0, "--seconds", "-s", help="Stop after this many seconds of playback (0 = no limit)."
    ),
):
    """Play cached tracks one after another, resuming where each was left."""
    session = _session(ctx)

    async def _play_async():
        config = session.load_config()
        tracks = load_playlist(playlist)
        selected = [find_track(tracks, key) for key in keys] if keys else tracks
        store = await _open_configured_store(config)

        coordinator = PlaybackCoordinator()
        controllers = []
        for track in selected:
            controller = _make_controller(session, config, track, store)
            await controller.initialize()
            if not controller.downloaded:
                console.print(f"  [yellow]○ Not cached:[/] {track.label}")
                await controller.aclose()
                continue
            coordinator.add(controller)
            controllers.append(controller)

        if not controllers:
            console.print("[red]✗ Nothing to play.[/] Download some tracks first.")
            raise typer.Exit(code=1)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + seconds if seconds > 0 else None
        try:
            async with PlaybackDisplay(console, config.theme) as display:
                for controller in controllers:
                    ended = asyncio.Event()
                    unsubscribe = controller.engine.events.subscribe("ended", ended.set)
                    display.show(controller)
                    try:
                        await controller.play()
                        timeout = None if deadline is None else deadline - loop.time()
                        await asyncio.wait_for(ended.wait(), timeout=timeout)
                    except asyncio.TimeoutError:
                        controller.pause()
                        break
                    finally:
                        unsubscribe()
        finally:
            for controller in controllers:
                await controller.aclose()

    asyncio.run(_play_async())


@app.command()
def export(
    ctx: typer.Context,
    playlist: Path = typer.Argument(..., help="Playlist file."),  # noqa: B008
    key: str = typer.Argument(..., help="Key of the cached track."),
    destination: Path = typer.Argument(..., help="Output file or directory."),  # noqa: B008
):
    """Write a cached payload to a file."""
    session = _session(ctx)

    async def _export_async():
        config = session.load_config()
        track = find_track(load_playlist(playlist), key)
        store = await _open_configured_store(config)
        payload = await store.get_collection(COLLECTION_BLOBS).fetch(track.key)
        if payload is ABSENT:
            console.print(f"[red]✗ '{track.label}' is not cached.[/red]")
            raise typer.Exit(code=1)

        target = destination
        if destination.is_dir():
            suffix = Path(track.url.split("?", 1)[0]).suffix
            target = destination / sanitize_filename(f"{track.label}{suffix}")
        async with aiofiles.open(target, "wb") as f:
            await f.write(payload)
        console.print(f"[green]✓ Exported[/green] '{track.label}' to [dim]{target}[/dim]")

    asyncio.run(_export_async())


@app.command()
def status(ctx: typer.Context):
    """Show what the offline store holds."""
    session = _session(ctx)

    async def _status_async():
        config = session.load_config()
        store = await _open_configured_store(config)
        status_data = {
            "db_path": store.db_path,
            "db_size": store.db_path.stat().st_size if store.db_path.exists() else 0,
            "blobs": await store.get_collection(COLLECTION_BLOBS).count(),
            "positions": await store.get_collection(COLLECTION_POSITIONS).count(),
        }
        print_status_table(status_data, config.theme)

    asyncio.run(_status_async())
