"""Tests for the HTTP Downloader against a local aiohttp server."""

from __future__ import annotations

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from offline_tracks.core.controller import TrackController
from offline_tracks.exceptions import TransportFailed
from offline_tracks.media.downloader import (
    Downloader,
    close_connection_pool,
    get_connection_pool,
    make_downloader_factory,
    timeout_from_config,
)
from offline_tracks.models.config import COLLECTION_BLOBS, PlayerConfig
from offline_tracks.models.track import DownloadProgress, TrackInfo

BODY = bytes(range(256)) * 64  # 16 KB


@pytest_asyncio.fixture
async def media_server():
    async def track(request: web.Request) -> web.Response:
        return web.Response(body=BODY, content_type="audio/mpeg")

    async def streamed(request: web.Request) -> web.StreamResponse:
        response = web.StreamResponse()
        response.content_type = "audio/mpeg"
        await response.prepare(request)
        await response.write(BODY[:5000])
        await response.write(BODY[5000:])
        await response.write_eof()
        return response

    async def missing(request: web.Request) -> web.Response:
        raise web.HTTPNotFound()

    app = web.Application()
    app.router.add_get("/track.mp3", track)
    app.router.add_get("/streamed.mp3", streamed)
    app.router.add_get("/missing.mp3", missing)

    server = test_utils.TestServer(app)
    await server.start_server()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession(headers={"Accept-Encoding": "identity"}) as client:
        yield client


class TestDownloader:
    @pytest.mark.asyncio
    async def test_fetch_with_known_length(self, media_server, session) -> None:
        downloader = Downloader(
            str(media_server.make_url("/track.mp3")), chunk_size=4096, session=session
        )
        reports = []
        downloader.events.subscribe("progress", reports.append)

        payload = await downloader.fetch()

        assert payload == BODY
        assert reports[0].loaded == 0
        assert reports[0].total == len(BODY)
        assert all(report.computable for report in reports)
        loaded = [report.loaded for report in reports]
        assert loaded == sorted(loaded)
        assert reports[-1].loaded == len(BODY)
        assert downloader.progress.fraction == 1.0

    @pytest.mark.asyncio
    async def test_fetch_without_length_is_not_computable(
        self, media_server, session
    ) -> None:
        downloader = Downloader(str(media_server.make_url("/streamed.mp3")), session=session)
        reports = []
        downloader.events.subscribe("progress", reports.append)

        payload = await downloader.fetch()

        assert payload == BODY
        assert not any(report.computable for report in reports)
        assert reports[-1].loaded == len(BODY)
        assert reports[-1].fraction is None

    @pytest.mark.asyncio
    async def test_http_error_raises_transport_failed(self, media_server, session) -> None:
        downloader = Downloader(str(media_server.make_url("/missing.mp3")), session=session)

        with pytest.raises(TransportFailed, match="404"):
            await downloader.fetch()

    @pytest.mark.asyncio
    async def test_connection_error_raises_transport_failed(self, session) -> None:
        downloader = Downloader("http://127.0.0.1:9/unreachable.mp3", session=session)

        with pytest.raises(TransportFailed):
            await downloader.fetch()

    @pytest.mark.asyncio
    async def test_shared_pool_is_reused(self) -> None:
        try:
            first = await get_connection_pool()
            assert await get_connection_pool() is first
        finally:
            await close_connection_pool()
        assert first.closed


class TestFactory:
    def test_timeouts_follow_config(self, tmp_path) -> None:
        config = PlayerConfig(
            store_dir=str(tmp_path), connect_timeout=5, read_timeout=0, download_timeout=600
        )

        timeout = timeout_from_config(config)

        assert timeout.sock_connect == 5
        assert timeout.sock_read is None
        assert timeout.total == 600

    def test_factory_applies_chunk_size(self, tmp_path) -> None:
        config = PlayerConfig(store_dir=str(tmp_path), chunk_size=8192)

        downloader = make_downloader_factory(config)("https://media.example.org/a.mp3")

        assert isinstance(downloader, Downloader)
        assert downloader.chunk_size == 8192
        assert downloader.url == "https://media.example.org/a.mp3"


class TestDownloadIntoStore:
    @pytest.mark.asyncio
    async def test_controller_downloads_over_http(self, media_server, session, store) -> None:
        config = PlayerConfig(store_dir=str(store.directory))
        track = TrackInfo(
            key="episode-01",
            label="First episode",
            url=str(media_server.make_url("/track.mp3")),
        )
        controller = TrackController(
            track, store, downloader_factory=make_downloader_factory(config, session)
        )
        await controller.initialize()

        assert await controller.request_download() is True

        assert controller.downloaded
        assert controller.progress == DownloadProgress()
        assert await store.get_collection(COLLECTION_BLOBS).fetch(track.key) == BODY
        await controller.aclose()
