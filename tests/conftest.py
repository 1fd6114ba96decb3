"""Shared fixtures for the offline track tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
import pytest_asyncio

from offline_tracks.core.controller import TrackController
from offline_tracks.core.events import EventEmitter
from offline_tracks.exceptions import TransportFailed
from offline_tracks.media.playback import ClockPlaybackEngine
from offline_tracks.models.track import DownloadProgress, TrackInfo
from offline_tracks.storage.store import PersistentStore, close_stores

PAYLOAD = bytes(range(256)) * 16


class FakeDownloader:
    """Stands in for the HTTP downloader; every fetch is scripted by the test."""

    def __init__(self, url: str, payload: bytes = PAYLOAD, fail: bool = False):
        self.url = url
        self.payload = payload
        self.fail = fail
        self.events = EventEmitter()
        self.progress = DownloadProgress()
        self.started = asyncio.Event()
        self.gate: asyncio.Event | None = None
        self.fetch_count = 0

    async def fetch(self) -> bytes:
        self.fetch_count += 1
        total = len(self.payload)
        self.progress = DownloadProgress(0, total, True)
        self.events.emit("progress", self.progress)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise TransportFailed(f"Server answered 503 for '{self.url}'")
        self.progress = DownloadProgress(total, total, True)
        self.events.emit("progress", self.progress)
        return self.payload


class DownloaderFactory:
    """Creates FakeDownloaders and remembers them, newest last."""

    def __init__(self):
        self.created: list[FakeDownloader] = []
        self.fail = False
        self.gated = False

    def __call__(self, url: str) -> FakeDownloader:
        downloader = FakeDownloader(url, fail=self.fail)
        if self.gated:
            downloader.gate = asyncio.Event()
        self.created.append(downloader)
        return downloader

    @property
    def latest(self) -> FakeDownloader:
        return self.created[-1]


@pytest.fixture
def track() -> TrackInfo:
    return TrackInfo(
        key="episode-01",
        label="First episode",
        url="https://media.example.org/episode-01.mp3",
    )


@pytest.fixture
def other_track() -> TrackInfo:
    return TrackInfo(
        key="episode-02",
        label="Second episode",
        url="https://media.example.org/episode-02.mp3",
    )


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    return tmp_path / "store"


@pytest_asyncio.fixture
async def store(store_dir: Path):
    """An opened store in a temporary directory."""
    persistent_store = PersistentStore(store_dir)
    await persistent_store.open()
    yield persistent_store
    close_stores()


@pytest.fixture
def downloader_factory() -> DownloaderFactory:
    return DownloaderFactory()


@pytest_asyncio.fixture
async def make_controller(store, downloader_factory):
    """Builds controllers on the shared store and closes them after the test."""
    controllers: list[TrackController] = []

    def _make(track_info: TrackInfo, **kwargs) -> TrackController:
        kwargs.setdefault("engine", ClockPlaybackEngine(tick_interval=60))
        kwargs.setdefault("downloader_factory", downloader_factory)
        controller = TrackController(track_info, store, **kwargs)
        controllers.append(controller)
        return controller

    yield _make

    for controller in controllers:
        await controller.aclose()


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Yields to the event loop until `predicate()` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(0.001)
