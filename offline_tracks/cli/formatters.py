"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from offline_tracks.models.config import PlayerConfig, Theme
from offline_tracks.models.track import TrackState
from offline_tracks.utils.formatting import format_size, human_readable_time


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "StoreUnavailable": [
            "• Check that the store directory exists and is writable.",
            "• Another program may hold a lock on the database file.",
            "• Use `offline-tracks --show-config` to see the configured `store_dir`.",
        ],
        "ReadFailed": [
            "• The store database may be damaged or locked by another process.",
            "• Try again once other players have exited.",
        ],
        "WriteFailed": [
            "• The disk may be full or the store directory read-only.",
            "• The track stays pending; run `download` again once fixed.",
        ],
        "TransportFailed": [
            "• A network connection issue occurred.",
            "• Check that the track URL in the playlist is reachable.",
            "• Downloads are never retried automatically; run `download` again.",
        ],
        "DownloadCancelled": [
            "• The download was interrupted; nothing was stored.",
        ],
        "NoSourceConfigured": [
            "• This track has not been downloaded yet.",
            "• Run `offline-tracks download <PLAYLIST> <KEY>` first.",
        ],
        "ConfigurationError": [
            "• Run `offline-tracks init` to create a configuration file.",
            "• Check the playlist: every section needs a `label` and a `url`.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config: PlayerConfig):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in config.model_dump(exclude={"config_path", "theme"}).items():
        content += f"{key} = {value}\n"
    for key, value in config.theme.model_dump().items():
        content += f"theme.{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style=config.theme.main_color,
        )
    )


STATE_STYLES = {
    TrackState.PENDING_DOWNLOAD: ("○ not cached", "yellow"),
    TrackState.DOWNLOADING: ("↓ downloading", "cyan"),
    TrackState.DOWNLOADED: ("✓ cached", "green"),
    TrackState.PLAYING: ("▶ playing", "bold green"),
    TrackState.PAUSED: ("⏸ paused", "green"),
}


def print_tracks_table(rows: list[dict[str, Any]], theme: Theme):
    """
    Displays the playlist with each track's cache state and resume position.

    Each row carries `key`, `label`, `state` (TrackState), `position` (seconds)
    and `duration` (seconds or None).
    """
    console = Console()
    table = Table(
        box=box.SIMPLE_HEAVY,
        header_style=f"bold {theme.main_color}",
        padding=(0, theme.padding),
    )
    table.add_column("Key", style=theme.secondary_color)
    table.add_column("Label", style=theme.text_color)
    table.add_column("State")
    table.add_column("Resume at", justify="right")

    for row in rows:
        text, style = STATE_STYLES.get(row["state"], (row["state"].value, "dim"))
        position = row.get("position") or 0
        duration = row.get("duration")
        resume = human_readable_time(position)
        if duration is not None:
            resume = f"{resume} / {human_readable_time(duration)}"
        table.add_row(
            row["key"], row["label"], f"[{style}]{text}[/{style}]", resume
        )

    console.print(table)


def print_status_table(status: dict[str, Any], theme: Theme):
    """Displays a summary of the persistent store."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style=f"bold {theme.main_color}")
    table.add_column()

    table.add_row("Store:", f"[dim]{status['db_path']}[/dim]")
    table.add_row("Database size:", format_size(status["db_size"]))
    table.add_row("Cached payloads:", f"[green]{status['blobs']}[/green]")
    table.add_row("Saved positions:", f"[cyan]{status['positions']}[/cyan]")

    console.print(
        Panel(
            table,
            title="[bold]Offline Store[/bold]",
            border_style=theme.main_color,
            expand=False,
        )
    )
