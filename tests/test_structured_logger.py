"""Tests for the JSON-lines structured logger and track event logging."""

from __future__ import annotations

import json

import pytest
from conftest import PAYLOAD

from offline_tracks.models.config import COLLECTION_BLOBS
from offline_tracks.utils.structured_logger import StructuredLogger, TrackEventLogger


def _entries(logger: StructuredLogger) -> list[dict]:
    lines = logger.json_path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


class TestStructuredLogger:
    def test_console_only(self) -> None:
        logger = StructuredLogger("offline_tracks.test")

        logger.info("nothing_written", key="a")

        assert logger.json_path is None
        logger.close()

    def test_json_entries(self, tmp_path) -> None:
        with StructuredLogger("offline_tracks.test", log_dir=tmp_path / "logs") as logger:
            logger.info("track_playback_started", key="episode-01", position_s=12.5)
            logger.warning("track_download_failed", key="episode-02")
            entries = _entries(logger)

        assert logger.json_path.parent == tmp_path / "logs"
        assert [entry["event"] for entry in entries] == [
            "track_playback_started",
            "track_download_failed",
        ]
        assert entries[0]["level"] == "INFO"
        assert entries[0]["position_s"] == 12.5
        assert entries[1]["level"] == "WARNING"
        assert entries[0]["session_id"] == entries[1]["session_id"]

    def test_writes_after_close_are_dropped(self, tmp_path) -> None:
        logger = StructuredLogger("offline_tracks.test", log_dir=tmp_path)
        logger.close()

        logger.info("too_late")

        assert logger.json_path.read_text(encoding="utf-8") == ""


class TestTrackEventLogger:
    @pytest.mark.asyncio
    async def test_records_controller_events(
        self, tmp_path, make_controller, track
    ) -> None:
        logger = StructuredLogger("offline_tracks.test", log_dir=tmp_path)
        controller = make_controller(track)
        event_logger = TrackEventLogger(logger, controller)

        await controller.initialize()
        await controller.request_download()
        await controller.play()
        controller.pause()
        event_logger.detach()
        await controller.play()
        logger.close()

        events = [entry["event"] for entry in _entries(logger)]
        assert events.count("track_playback_started") == 1
        assert events.count("track_playback_paused") == 1
        assert "track_state_changed" in events
        assert "track_download_progress" in events
        progress = [
            entry for entry in _entries(logger) if entry["event"] == "track_download_progress"
        ]
        assert progress[-1]["percent"] == 100
        assert len({entry["percent"] for entry in progress}) == len(progress)

    @pytest.mark.asyncio
    async def test_cached_track_logs_no_progress(
        self, tmp_path, store, make_controller, track
    ) -> None:
        await store.get_collection(COLLECTION_BLOBS).put(track.key, PAYLOAD)
        logger = StructuredLogger("offline_tracks.test", log_dir=tmp_path)
        controller = make_controller(track)
        TrackEventLogger(logger, controller)

        await controller.initialize()
        logger.close()

        events = [entry["event"] for entry in _entries(logger)]
        assert "track_download_progress" not in events
        assert events.count("track_state_changed") == 2
