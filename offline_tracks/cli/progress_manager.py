"""
Rich displays bound to track controllers: a progress bar while a payload is
downloading and a live transport readout while a track plays.
"""

import logging
from collections.abc import Callable

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.text import Text

from offline_tracks.core.controller import TrackController
from offline_tracks.models.config import Theme
from offline_tracks.models.track import DownloadProgress, TrackState

log = logging.getLogger("offline_tracks")

PLAY_SYMBOL = "▶"
PAUSE_SYMBOL = "⏸"


class ProgressManager:
    """Shows a download progress bar for each attached controller."""

    def __init__(self, console: Console, theme: Theme):
        self.console = console
        self.theme = theme
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30, complete_style=theme.main_color),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            DownloadColumn(),
            "•",
            TransferSpeedColumn(),
            "•",
            TimeRemainingColumn(),
            console=console,
            transient=False,
        )
        self._tasks: dict[str, TaskID] = {}
        self._detachers: list[Callable[[], None]] = []
        self._started = False

    def attach(self, controller: TrackController) -> None:
        """Follows a controller's download through its events."""

        def on_state_change(old: TrackState, new: TrackState) -> None:
            if new is TrackState.DOWNLOADING:
                self._add_task(controller)
            elif old is TrackState.DOWNLOADING:
                self._remove_task(controller, success=new is TrackState.DOWNLOADED)

        def on_progress(progress: DownloadProgress) -> None:
            self.update_task_progress(controller.key, progress)

        self._detachers.append(controller.events.subscribe("statechange", on_state_change))
        self._detachers.append(controller.events.subscribe("progress", on_progress))

    def _add_task(self, controller: TrackController) -> None:
        description = controller.label
        if len(description) > 40:
            description = description[:38] + "…"
        self._tasks[controller.key] = self.progress.add_task(
            description, total=None, start=True
        )
        if not self._started:
            self.progress.start()
            self._started = True

    def update_task_progress(self, key: str, progress: DownloadProgress) -> None:
        task_id = self._tasks.get(key)
        if task_id is None:
            return
        total = progress.total if progress.computable else None
        self.progress.update(task_id, completed=progress.loaded, total=total)

    def _remove_task(self, controller: TrackController, success: bool) -> None:
        task_id = self._tasks.pop(controller.key, None)
        if task_id is None:
            return
        if success:
            self.progress.update(task_id, description=f"[green]✓[/] {controller.label}")
        else:
            self.progress.update(task_id, description=f"[red]✗[/] {controller.label}")
        self.progress.stop_task(task_id)

    def close(self) -> None:
        for detach in self._detachers:
            detach()
        self._detachers = []
        if self._started:
            self.progress.stop()
            self._started = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()


class PlaybackDisplay:
    """A live one-panel readout of the controller currently shown."""

    def __init__(self, console: Console, theme: Theme):
        self.console = console
        self.theme = theme
        self._controller: TrackController | None = None
        self._detachers: list[Callable[[], None]] = []
        self._live: Live | None = None

    def _render(self) -> Panel:
        controller = self._controller
        if controller is None:
            return Panel(Text("Nothing playing", style="dim italic"))

        symbol = PAUSE_SYMBOL if controller.playing else PLAY_SYMBOL
        body = Text()
        body.append(f"{symbol} ", style=f"bold {self.theme.secondary_color}")
        body.append(controller.time_display or "0s", style=self.theme.text_color)
        body.append(f"   [{controller.state.value}]", style="dim")
        border = self.theme.main_color if controller.playing else "dim"
        return Panel(
            body,
            title=f"[bold]{controller.label}[/bold]",
            border_style=border,
            padding=(0, self.theme.padding),
            expand=False,
        )

    def _refresh(self, *args) -> None:
        if self._live is not None:
            self._live.update(self._render())

    def show(self, controller: TrackController) -> None:
        """Switches the readout to another controller."""
        for detach in self._detachers:
            detach()
        self._controller = controller
        self._detachers = [
            controller.events.subscribe("timeupdate", self._refresh),
            controller.events.subscribe("statechange", self._refresh),
        ]
        self._refresh()

    async def __aenter__(self):
        self._live = Live(self._render(), console=self.console, refresh_per_second=8)
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        for detach in self._detachers:
            detach()
        self._detachers = []
        if self._live is not None:
            self._live.update(self._render())
            self._live.stop()
            self._live = None
