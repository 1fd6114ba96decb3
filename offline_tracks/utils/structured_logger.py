"""
Structured logging of track events.
Writes JSON-lines entries alongside the regular console log.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from offline_tracks.models.track import DownloadProgress, TrackState

if TYPE_CHECKING:
    from offline_tracks.core.controller import TrackController


class StructuredLogger:
    """
    Logger that outputs both human-readable and machine-parseable entries.

    Usage:
        logger = StructuredLogger("offline_tracks", log_dir=Path("logs"))
        logger.info("track_playback_started", key="episode-01", position_s=12.5)
    """

    def __init__(self, name: str, log_dir: Path | None = None):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            log_dir: Directory for JSON log files (None = console only)
        """
        self.name = name
        self.log_dir = log_dir
        self._logger = logging.getLogger(name)

        self._json_file = None
        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            json_log_path = log_dir / f"offline_tracks_{timestamp}.jsonl"
            self._json_file = open(json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
        }

    @property
    def json_path(self) -> Path | None:
        return Path(self._json_file.name) if self._json_file else None

    def _format_message(self, event: str, **context) -> str:
        parts = [f"[{event}]"]
        parts.extend(f"{key}={value}" for key, value in context.items())
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        if not self._json_file or self._json_file.closed:
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }

        try:
            self._json_file.write(json.dumps(entry) + "\n")
            self._json_file.flush()
        except (OSError, TypeError, ValueError) as e:
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def log(self, level: int, event: str, **context) -> None:
        self._logger.log(level, self._format_message(event, **context))
        self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        self.log(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        self.log(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        self.log(logging.WARNING, event, **context)

    def close(self) -> None:
        """Close JSON log file."""
        if self._json_file and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class TrackEventLogger:
    """Records the events of one track controller through a StructuredLogger."""

    def __init__(self, logger: StructuredLogger, controller: "TrackController"):
        self.logger = logger
        self.controller = controller
        self._last_percent: int | None = None
        events = controller.events
        self._unsubscribers = [
            events.subscribe("statechange", self.state_changed),
            events.subscribe("progress", self.download_progress),
            events.subscribe("play", self.playback_started),
            events.subscribe("pause", self.playback_paused),
        ]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def state_changed(self, old: TrackState, new: TrackState) -> None:
        self.logger.debug(
            "track_state_changed",
            key=self.controller.key,
            old=old.value,
            new=new.value,
        )

    def download_progress(self, progress: DownloadProgress) -> None:
        # Only whole-percent steps are logged
        if progress.fraction is None:
            return
        percent = int(progress.fraction * 100)
        if percent == self._last_percent:
            return
        self._last_percent = percent
        self.logger.debug(
            "track_download_progress",
            key=self.controller.key,
            loaded=progress.loaded,
            total=progress.total,
            percent=percent,
        )

    def playback_started(self, controller: "TrackController") -> None:
        self.logger.info(
            "track_playback_started",
            key=controller.key,
            label=controller.label,
            position_s=round(controller.engine.current_time, 2),
        )

    def playback_paused(self, controller: "TrackController") -> None:
        self.logger.info(
            "track_playback_paused",
            key=controller.key,
            position_s=round(controller.engine.current_time, 2),
        )
