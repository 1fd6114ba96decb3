"""
Fetches a remote media payload in full over HTTP, reporting progress as it goes.
"""

import asyncio
import functools
import logging
from collections.abc import Callable

import aiohttp

from offline_tracks.core.events import EventEmitter
from offline_tracks.exceptions import TransportFailed
from offline_tracks.models.config import PlayerConfig
from offline_tracks.models.track import DownloadProgress

log = logging.getLogger(__name__)

_connection_pool: aiohttp.ClientSession | None = None
_pool_lock = asyncio.Lock()


async def get_connection_pool() -> aiohttp.ClientSession:
    """
    Gets or creates a shared aiohttp ClientSession for downloads.

    This function ensures that only one connection pool is created for the
    lifetime of the application run.
    """
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=8,
            ttl_dns_cache=600,  # 10 minutes
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        _connection_pool = aiohttp.ClientSession(
            connector=connector,
            # Payloads are stored byte for byte, and progress totals must match
            headers={"Accept-Encoding": "identity"},
        )
        log.debug("Created shared download pool.")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared global connection pool."""
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            _connection_pool = None
            log.debug("Shared downloader connection pool closed.")


def timeout_from_config(config: PlayerConfig) -> aiohttp.ClientTimeout:
    """Builds client timeouts from the configuration; zero disables a limit."""
    return aiohttp.ClientTimeout(
        total=config.download_timeout or None,
        sock_connect=config.connect_timeout or None,
        sock_read=config.read_timeout or None,
    )


class Downloader:
    """
    Downloads one URL into memory.

    Emits a `progress` event carrying a `DownloadProgress` after the response
    headers arrive and after every chunk. A download is all or nothing: `fetch`
    either returns the complete payload or raises `TransportFailed`.
    """

    DEFAULT_CHUNK_SIZE = 65536  # 64 KB

    def __init__(
        self,
        url: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: aiohttp.ClientTimeout | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.url = url
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.events = EventEmitter()
        self.progress = DownloadProgress()
        self._session = session

    def _report(self, loaded: int, total: int, computable: bool) -> None:
        self.progress = DownloadProgress(loaded, total, computable)
        self.events.emit("progress", self.progress)

    async def fetch(self) -> bytes:
        """
        Downloads the whole resource.

        Returns:
            The binary payload.

        Raises:
            TransportFailed: On HTTP errors, connection failures or timeouts.
        """
        session = self._session or await get_connection_pool()
        request_kwargs = {"allow_redirects": True}
        if self.timeout is not None:
            request_kwargs["timeout"] = self.timeout

        buffer = bytearray()
        try:
            async with session.get(self.url, **request_kwargs) as response:
                response.raise_for_status()

                content_length = response.content_length
                computable = content_length is not None
                total = content_length or 0
                self._report(0, total, computable)

                async for chunk in response.content.iter_chunked(self.chunk_size):
                    buffer.extend(chunk)
                    self._report(len(buffer), total, computable)
        except aiohttp.ClientResponseError as e:
            raise TransportFailed(
                f"Server answered {e.status} for '{self.url}': {e.message}"
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportFailed(f"Download of '{self.url}' failed: {e!r}") from e

        log.debug(f"Fetched {len(buffer)} bytes from '{self.url}'.")
        return bytes(buffer)


def make_downloader_factory(
    config: PlayerConfig, session: aiohttp.ClientSession | None = None
) -> Callable[[str], Downloader]:
    """Returns a callable creating downloaders tuned by the configuration."""
    return functools.partial(
        Downloader,
        chunk_size=config.chunk_size,
        timeout=timeout_from_config(config),
        session=session,
    )
