"""
Playback primitives consumed by the track controller.

`PlaybackEngine` is the contract of the host's decode/playback engine. The
`ClockPlaybackEngine` shipped here keeps the transport position on a real-time
asyncio clock; it does not decode audio, which keeps the controller logic
independent of any audio output stack.
"""

import asyncio
import io
import logging
import math
from abc import ABC, abstractmethod

from mutagen import File as MutagenFile
from mutagen import MutagenError

from offline_tracks.core.events import EventEmitter
from offline_tracks.exceptions import NoSourceConfigured

log = logging.getLogger(__name__)


def probe_duration(payload: bytes) -> float | None:
    """
    Reads the duration of an audio payload from its stream info.

    Returns:
        The length in seconds, or None if the payload is not a recognised audio
        file or carries no length.
    """
    try:
        audio = MutagenFile(io.BytesIO(payload))
    except MutagenError as e:
        log.debug(f"Could not probe payload duration: {e}")
        return None
    except Exception as e:
        log.debug(f"Payload probe failed with unexpected error: {e}")
        return None
    if audio is None or not audio.info or not audio.info.length:
        return None
    return float(audio.info.length)


class PlaybackEngine(ABC):
    """
    Abstract playback primitive.

    Engines emit `timeupdate` (with the current time in seconds) while the
    position advances, and `ended` once the end of the media is reached.
    """

    def __init__(self) -> None:
        self.events = EventEmitter()
        self._source: bytes | None = None
        self._current_time = 0.0
        self._duration: float | None = None

    @property
    def has_source(self) -> bool:
        return self._source is not None

    @property
    def duration(self) -> float | None:
        return self._duration

    @property
    def current_time(self) -> float:
        return self._current_time

    @current_time.setter
    def current_time(self, value: float) -> None:
        value = float(value)
        if not math.isfinite(value) or value < 0:
            value = 0.0
        if self._duration is not None:
            value = min(value, self._duration)
        self._current_time = value

    def load(self, payload: bytes) -> None:
        """Configures the engine against a payload and rewinds to the start."""
        self._source = payload
        self._duration = probe_duration(payload)
        self._current_time = 0.0

    @property
    @abstractmethod
    def is_playing(self) -> bool: ...

    @abstractmethod
    async def play(self) -> None:
        """Starts playback, resolving once the position actually advances."""

    @abstractmethod
    def pause(self) -> None:
        """Stops the position from advancing."""


class ClockPlaybackEngine(PlaybackEngine):
    """A playback engine whose transport position follows the event loop clock."""

    def __init__(self, tick_interval: float = 0.25):
        super().__init__()
        self.tick_interval = tick_interval
        self._playing = False
        self._ticker: asyncio.Task | None = None

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def ended(self) -> bool:
        return self._duration is not None and self._current_time >= self._duration

    async def play(self) -> None:
        if not self.has_source:
            raise NoSourceConfigured("The playback engine has no source loaded.")
        if self._playing:
            return
        if self.ended:
            self._current_time = 0.0
        self._playing = True
        self._ticker = asyncio.create_task(self._run())
        # Let the ticker get scheduled before reporting the start
        await asyncio.sleep(0)

    def pause(self) -> None:
        self._playing = False
        ticker, self._ticker = self._ticker, None
        if ticker and not ticker.done() and ticker is not asyncio.current_task():
            ticker.cancel()

    def advance(self, seconds: float) -> None:
        """Moves the position forward and notifies `timeupdate` subscribers."""
        self.current_time = self._current_time + seconds
        self.events.emit("timeupdate", self._current_time)
        if self.ended:
            self._playing = False
            self._ticker = None
            log.debug("Playback reached the end of the media.")
            self.events.emit("ended")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        last = loop.time()
        try:
            while self._playing:
                await asyncio.sleep(self.tick_interval)
                now = loop.time()
                if self._playing:
                    self.advance(now - last)
                last = now
        except asyncio.CancelledError:
            log.debug("Playback clock stopped.")
            raise
