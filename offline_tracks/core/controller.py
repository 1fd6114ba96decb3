"""
The per-track caching and playback state machine.

A `TrackController` checks the persistent store for a cached payload, downloads
it on a confirmed user request when it is missing, configures the playback
engine against it and resumes at the last recorded position. Lifecycle:

    constructed -> initialized -> pending-download -> downloading -> downloaded
                               `-> downloaded (already cached)
    downloaded -> loading -> playing <-> paused (through loading)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from offline_tracks.core.events import EventEmitter
from offline_tracks.exceptions import (
    DownloadCancelled,
    IllegalTransition,
    NoSourceConfigured,
)
from offline_tracks.media.downloader import Downloader
from offline_tracks.media.playback import ClockPlaybackEngine, PlaybackEngine
from offline_tracks.models.config import COLLECTION_BLOBS, COLLECTION_POSITIONS
from offline_tracks.models.track import DownloadProgress, TrackInfo, TrackState
from offline_tracks.storage.store import ABSENT, Collection, PersistentStore
from offline_tracks.utils.formatting import human_readable_time

log = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], Awaitable[bool]]
DownloaderFactory = Callable[[str], Downloader]

TRANSITIONS: dict[TrackState, frozenset[TrackState]] = {
    TrackState.CONSTRUCTED: frozenset({TrackState.INITIALIZED}),
    TrackState.INITIALIZED: frozenset(
        {TrackState.PENDING_DOWNLOAD, TrackState.DOWNLOADED}
    ),
    TrackState.PENDING_DOWNLOAD: frozenset({TrackState.DOWNLOADING}),
    # Failed and cancelled downloads fall back to pending-download
    TrackState.DOWNLOADING: frozenset(
        {TrackState.DOWNLOADED, TrackState.PENDING_DOWNLOAD}
    ),
    TrackState.DOWNLOADED: frozenset({TrackState.LOADING}),
    TrackState.LOADING: frozenset(
        {TrackState.PLAYING, TrackState.PAUSED, TrackState.DOWNLOADED}
    ),
    TrackState.PLAYING: frozenset({TrackState.PAUSED}),
    TrackState.PAUSED: frozenset({TrackState.LOADING}),
}


def download_confirm_message(track: TrackInfo) -> str:
    """Builds the question asked before a payload is downloaded."""
    return (
        "Start downloading this file?\n\n"
        f"« {track.label} »\n\n"
        "This is not recommended on mobile networks."
    )


async def _approve(message: str) -> bool:
    return True


def _completed() -> asyncio.Future:
    future = asyncio.get_running_loop().create_future()
    future.set_result(None)
    return future


class TrackController:
    """
    Drives one track through download, caching and playback.

    Events emitted on `events`:
        statechange(old, new), progress(DownloadProgress), timeupdate(seconds),
        play(controller), pause(controller).
    """

    def __init__(
        self,
        track: TrackInfo,
        store: PersistentStore,
        *,
        engine: PlaybackEngine | None = None,
        downloader_factory: DownloaderFactory = Downloader,
        confirm: ConfirmCallback | None = None,
        await_payload_write: bool = True,
    ):
        self._state = TrackState.CONSTRUCTED
        self.track = track
        self.store = store
        self.engine = engine or ClockPlaybackEngine()
        self.events = EventEmitter()
        self.await_payload_write = await_payload_write
        self.progress = DownloadProgress()
        self.time_display = ""

        self._downloader_factory = downloader_factory
        self._confirm = confirm or _approve
        self._blobs: Collection | None = None
        self._positions: Collection | None = None
        self._downloader: Downloader | None = None
        self._download_task: asyncio.Task | None = None
        self._cancel_requested = False
        self._play_task: asyncio.Future | None = None
        self._play_attempt = 0
        self._unsubscribe_engine: Callable[[], None] | None = None
        self._latest_position: float | None = None
        self._position_writer: asyncio.Task | None = None
        self._pending_writes: set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return f"TrackController(key={self.key!r}, state={self._state.value!r})"

    @property
    def key(self) -> str:
        return self.track.key

    @property
    def label(self) -> str:
        return self.track.label

    @property
    def url(self) -> str:
        return self.track.url

    @property
    def state(self) -> TrackState:
        return self._state

    @property
    def constructed(self) -> bool:
        return self._state is TrackState.CONSTRUCTED

    @property
    def initialized(self) -> bool:
        return self._state is TrackState.INITIALIZED

    @property
    def pending_download(self) -> bool:
        return self._state is TrackState.PENDING_DOWNLOAD

    @property
    def downloading(self) -> bool:
        return self._state is TrackState.DOWNLOADING

    @property
    def downloaded(self) -> bool:
        return self._state is TrackState.DOWNLOADED

    @property
    def loading(self) -> bool:
        return self._state is TrackState.LOADING

    @property
    def playing(self) -> bool:
        return self._state is TrackState.PLAYING

    @property
    def paused(self) -> bool:
        return self._state is TrackState.PAUSED

    def _set_state(self, new_state: TrackState) -> None:
        old_state = self._state
        if new_state not in TRANSITIONS[old_state]:
            raise IllegalTransition(
                f"Track '{self.key}' cannot go from '{old_state.value}' "
                f"to '{new_state.value}'."
            )
        self._state = new_state
        log.debug(f"Track '{self.key}': {old_state.value} -> {new_state.value}")
        self.events.emit("statechange", old_state, new_state)

    async def initialize(self) -> None:
        """
        Opens the store and decides whether the track still needs downloading.

        Raises:
            StoreUnavailable: If the store cannot be opened. The controller then
                stays `constructed` and is unusable.
            ReadFailed: If the cached payload cannot be read.
        """
        if self._state is not TrackState.CONSTRUCTED:
            return

        await self.store.open()
        self._blobs = self.store.get_collection(COLLECTION_BLOBS)
        self._positions = self.store.get_collection(COLLECTION_POSITIONS)
        self._set_state(TrackState.INITIALIZED)

        payload = await self._blobs.fetch(self.key)
        if payload is ABSENT:
            self._set_state(TrackState.PENDING_DOWNLOAD)
            self._prepare_downloader()
            return

        log.debug(f"Track '{self.key}' found in cache ({len(payload)} bytes).")
        await self._set_up_playback(payload)

    def _prepare_downloader(self) -> None:
        self._downloader = self._downloader_factory(self.url)
        self._downloader.events.subscribe("progress", self._on_download_progress)
        self.progress = DownloadProgress()

    def _discard_downloader(self) -> None:
        if self._downloader is not None:
            self._downloader.events.unsubscribe("progress", self._on_download_progress)
            self._downloader = None
        self.progress = DownloadProgress()

    def _on_download_progress(self, progress: DownloadProgress) -> None:
        self.progress = progress
        self.events.emit("progress", progress)

    def _abandon_download(self) -> None:
        """Returns to pending-download with a fresh downloader."""
        self._discard_downloader()
        self._set_state(TrackState.PENDING_DOWNLOAD)
        self._prepare_downloader()

    def download_confirm_message(self) -> str:
        return download_confirm_message(self.track)

    async def request_download(self) -> bool:
        """
        Asks for confirmation, then downloads, stores and configures the payload.

        Returns:
            True if the track was downloaded; False if the request was ignored
            (not pending a download, or already downloading) or declined.

        Raises:
            TransportFailed: If the download fails. The track is pending again.
            WriteFailed: If the payload cannot be stored while writes are awaited.
            DownloadCancelled: If `cancel_download` interrupted the transfer.
        """
        if not self.pending_download:
            log.debug(f"Ignoring download request for '{self.key}' ({self._state.value}).")
            return False

        confirmed = await self._confirm(self.download_confirm_message())
        if not confirmed or not self.pending_download:
            log.debug(f"Download of '{self.key}' not confirmed.")
            return False

        self._set_state(TrackState.DOWNLOADING)
        log.info(f"Downloading '{self.label}'...")
        self._cancel_requested = False
        self._download_task = asyncio.create_task(self._downloader.fetch())
        try:
            payload = await self._download_task
        except asyncio.CancelledError:
            self._abandon_download()
            if not self._cancel_requested:
                raise
            log.info(f"[yellow]Download of '{self.label}' cancelled.[/yellow]")
            raise DownloadCancelled(f"Download of '{self.key}' was cancelled.") from None
        except Exception as e:
            log.warning(f"[red]✗ Download of '{self.label}' failed:[/] {e}")
            self._abandon_download()
            raise
        finally:
            self._download_task = None

        self._discard_downloader()
        try:
            if self.await_payload_write:
                await self._blobs.put(self.key, payload)
            else:
                self._spawn_write(self._blobs.put(self.key, payload))
            await self._set_up_playback(payload)
        except Exception as e:
            log.error(f"[red]✗ Could not cache '{self.label}':[/] {e}")
            self._abandon_download()
            raise

        log.info(f"[green]✓ Cached '{self.label}'[/green] ({len(payload)} bytes)")
        return True

    def cancel_download(self) -> bool:
        """Cancels the in-flight download. Returns False if none is running."""
        if self._download_task is None or self._download_task.done():
            return False
        self._cancel_requested = True
        self._download_task.cancel()
        return True

    async def _set_up_playback(self, payload: bytes) -> None:
        # The engine only receives the payload once the position has been read
        position = await self._positions.fetch(self.key)
        self.engine.load(payload)
        if position:
            self.engine.current_time = position
        if self._unsubscribe_engine is None:
            self._unsubscribe_engine = self.engine.events.subscribe(
                "timeupdate", self._on_time_update
            )
        self._refresh_time_display()
        self._set_state(TrackState.DOWNLOADED)

    def play(self) -> asyncio.Future:
        """
        Starts playback.

        The state moves to `loading` immediately; the returned awaitable resolves
        once the engine has started and the state is `playing`.

        Raises:
            NoSourceConfigured: Synchronously, if no payload is configured yet.
        """
        if not self.engine.has_source:
            raise NoSourceConfigured(
                f"Track '{self.key}' has no payload to play ({self._state.value})."
            )
        if self._state is TrackState.PLAYING:
            return _completed()
        if self._state is TrackState.LOADING and self._play_task is not None:
            return self._play_task

        previous_state = self._state
        self._set_state(TrackState.LOADING)
        self._play_attempt += 1
        self._play_task = asyncio.ensure_future(
            self._start_playback(previous_state, self._play_attempt)
        )
        return self._play_task

    async def _start_playback(self, previous_state: TrackState, attempt: int) -> None:
        try:
            await self.engine.play()
        except Exception:
            if attempt == self._play_attempt and self._state is TrackState.LOADING:
                self._set_state(previous_state)
            raise
        finally:
            if attempt == self._play_attempt:
                self._play_task = None

        if attempt != self._play_attempt:
            # Superseded by a newer play request
            return
        if self._state is not TrackState.LOADING:
            # Paused while the engine was starting up
            self.engine.pause()
            return

        self._set_state(TrackState.PLAYING)
        self.events.emit("play", self)

    def pause(self) -> bool:
        """Pauses playback. A no-op returning False unless playing or loading."""
        if self._state not in (TrackState.PLAYING, TrackState.LOADING):
            return False
        self.engine.pause()
        self._set_state(TrackState.PAUSED)
        self._persist_position(self.engine.current_time)
        self.events.emit("pause", self)
        return True

    def toggle(self) -> asyncio.Future:
        """Plays when not playing, pauses otherwise."""
        if not self.playing:
            return self.play()
        self.pause()
        return _completed()

    def _on_time_update(self, current_time: float) -> None:
        if self._state is not TrackState.PLAYING:
            return
        self._persist_position(current_time)
        self._refresh_time_display()
        self.events.emit("timeupdate", current_time)

    def _refresh_time_display(self) -> None:
        elapsed = human_readable_time(self.engine.current_time)
        duration = self.engine.duration
        if duration is None:
            self.time_display = elapsed
        else:
            self.time_display = f"{elapsed} / {human_readable_time(duration)}"

    def _persist_position(self, seconds: float) -> None:
        """Records the position without waiting for the write to commit."""
        self._latest_position = seconds
        if self._position_writer is None or self._position_writer.done():
            self._position_writer = self._spawn_write(self._write_positions())

    async def _write_positions(self) -> None:
        # Writes are serialized so the last reported position is the one stored
        written = None
        while self._latest_position != written:
            written = self._latest_position
            await self._positions.put(self.key, written)

    def _spawn_write(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._pending_writes.add(task)
        task.add_done_callback(self._on_write_done)
        return task

    def _on_write_done(self, task: asyncio.Task) -> None:
        self._pending_writes.discard(task)
        if task.cancelled():
            return
        if exc := task.exception():
            log.warning(f"[yellow]Background write for '{self.key}' failed:[/] {exc}")

    async def drain(self) -> None:
        """Waits for every outstanding background write to finish."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancels any download, pauses playback and flushes pending writes."""
        self.cancel_download()
        self.pause()
        if self._unsubscribe_engine is not None:
            self._unsubscribe_engine()
            self._unsubscribe_engine = None
        await self.drain()
