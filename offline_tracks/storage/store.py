"""
A SQLite-backed key-value store partitioned into named collections.

Each collection is its own table keyed by a unique `key` column. Every `put` and
`fetch` runs in its own short transaction on a worker thread, so callers on the
event loop are never blocked.
"""

import asyncio
import logging
import re
import sqlite3
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from offline_tracks.exceptions import (
    ReadFailed,
    StoreError,
    StoreUnavailable,
    WriteFailed,
)
from offline_tracks.models.config import STORE_COLLECTIONS, STORE_NAME, STORE_VERSION

log = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class _Absent:
    """Marker returned by `Collection.fetch` for keys that hold no value."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


class Collection:
    """A handle bound to one named collection of a `PersistentStore`."""

    def __init__(self, store: "PersistentStore", name: str):
        self.store = store
        self.name = name

    def __repr__(self) -> str:
        return f"Collection({self.name!r}, db={str(self.store.db_path)!r})"

    def _put_sync(self, key: str, value: Any) -> None:
        with self.store._get_connection() as conn:
            conn.execute(
                f'INSERT OR REPLACE INTO "{self.name}" (key, value) VALUES (?, ?)',
                (key, value),
            )
            conn.commit()

    async def put(self, key: str, value: Any) -> None:
        """Inserts or replaces the value stored under `key`, resolving on commit."""
        try:
            await self.store._run_in_executor(self._put_sync, key, value)
        except sqlite3.Error as e:
            log.debug(f"Write to '{self.name}' failed for key '{key}': {e}")
            raise WriteFailed(
                f"Could not write key '{key}' to collection '{self.name}': {e}"
            ) from e

    def _fetch_sync(self, key: str) -> Any:
        with self.store._get_connection() as conn:
            row = conn.execute(
                f'SELECT value FROM "{self.name}" WHERE key = ?', (key,)
            ).fetchone()
        return ABSENT if row is None else row[0]

    async def fetch(self, key: str) -> Any:
        """
        Reads the value stored under `key`.

        Returns:
            The stored value, or `ABSENT` if the key holds nothing.

        Raises:
            ReadFailed: If the read transaction itself fails.
        """
        try:
            return await self.store._run_in_executor(self._fetch_sync, key)
        except sqlite3.Error as e:
            raise ReadFailed(
                f"Could not read key '{key}' from collection '{self.name}': {e}"
            ) from e

    async def has(self, key: str) -> bool:
        return await self.fetch(key) is not ABSENT

    def _keys_sync(self) -> list[str]:
        with self.store._get_connection() as conn:
            cursor = conn.execute(f'SELECT key FROM "{self.name}" ORDER BY key')
            return [row[0] for row in cursor.fetchall()]

    async def keys(self) -> list[str]:
        """Lists every key present in the collection."""
        try:
            return await self.store._run_in_executor(self._keys_sync)
        except sqlite3.Error as e:
            raise ReadFailed(f"Could not list collection '{self.name}': {e}") from e

    def _count_sync(self) -> int:
        with self.store._get_connection() as conn:
            return conn.execute(f'SELECT COUNT(*) FROM "{self.name}"').fetchone()[0]

    async def count(self) -> int:
        try:
            return await self.store._run_in_executor(self._count_sync)
        except sqlite3.Error as e:
            raise ReadFailed(f"Could not count collection '{self.name}': {e}") from e


class PersistentStore:
    """
    A durable mapping of (collection, key) to an opaque value.

    The store is versioned: opening it with a higher version than the one on disk
    creates any missing collections without touching existing data, while opening
    it with the same or a lower version leaves the schema alone.
    """

    def __init__(
        self,
        directory: Path,
        name: str = STORE_NAME,
        version: int = STORE_VERSION,
        collection_names: Iterable[str] = STORE_COLLECTIONS,
        pool_size: int = 5,
    ):
        self.directory = Path(directory)
        self.name = name
        self.version = version
        self.collection_names = tuple(collection_names)
        for collection_name in self.collection_names:
            if not _IDENTIFIER.match(collection_name):
                raise ValueError(f"Invalid collection name: '{collection_name}'")

        self.db_path = self.directory / f"{name}.sqlite"
        self._connection_semaphore = asyncio.Semaphore(pool_size)
        self._open_lock = asyncio.Lock()
        self._opened = False
        self._collections: dict[str, Collection] = {}

    @property
    def is_open(self) -> bool:
        return self._opened

    def _get_connection(self) -> sqlite3.Connection:
        """Gets a new database connection with optimized PRAGMA settings."""
        conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    async def _run_in_executor(self, func, *args):
        """Runs a synchronous database function within the connection pool semaphore."""
        async with self._connection_semaphore:
            return await asyncio.to_thread(func, *args)

    def _open_sync(self) -> None:
        """Creates the database file and upgrades the schema if needed."""
        self.directory.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS _schema (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    version INTEGER NOT NULL
                );
                """
            )
            row = conn.execute("SELECT version FROM _schema WHERE id = 1").fetchone()
            current_version = row[0] if row else 0

            if self.version > current_version:
                for collection_name in self.collection_names:
                    conn.execute(
                        f'CREATE TABLE IF NOT EXISTS "{collection_name}" ('
                        "key TEXT PRIMARY KEY NOT NULL, value)"
                    )
                conn.execute(
                    "INSERT OR REPLACE INTO _schema (id, version) VALUES (1, ?)",
                    (self.version,),
                )
                log.debug(
                    f"Upgraded store '{self.name}' from version {current_version} "
                    f"to {self.version}."
                )
            conn.commit()

    async def open(self) -> "PersistentStore":
        """
        Opens the store, creating the database and missing collections on first use.

        Safe to call repeatedly; only the first call does any work.

        Raises:
            StoreUnavailable: If the database cannot be created or opened.
        """
        async with self._open_lock:
            if self._opened:
                return self
            try:
                await self._run_in_executor(self._open_sync)
            except (sqlite3.Error, OSError) as e:
                log.error(f"Failed to open store at '{self.db_path}': {e}")
                raise StoreUnavailable(
                    f"Cannot open store '{self.name}' at '{self.db_path}': {e}"
                ) from e
            self._opened = True
            log.debug(f"Opened store '{self.name}' (version {self.version}).")
        return self

    def get_collection(self, name: str) -> Collection:
        """Returns the (cached) handle of a collection declared by this store."""
        if not self._opened:
            raise StoreUnavailable(f"Store '{self.name}' has not been opened yet.")
        if name not in self.collection_names:
            raise StoreError(f"Store '{self.name}' has no collection named '{name}'.")
        if name not in self._collections:
            self._collections[name] = Collection(self, name)
        return self._collections[name]


_stores: dict[Path, PersistentStore] = {}
_stores_lock = asyncio.Lock()


async def open_store(
    directory: Path,
    name: str = STORE_NAME,
    version: int = STORE_VERSION,
    collection_names: Iterable[str] = STORE_COLLECTIONS,
) -> PersistentStore:
    """
    Gets or opens the shared store for a database path.

    Every caller naming the same directory and store name receives the same
    handle, so the database is only opened once per process.
    """
    db_path = (Path(directory) / f"{name}.sqlite").resolve()
    async with _stores_lock:
        store = _stores.get(db_path)
        if store is None or store.version < version:
            store = PersistentStore(directory, name, version, collection_names)
            await store.open()
            _stores[db_path] = store
    return store


def close_stores() -> None:
    """Forgets every shared store handle."""
    _stores.clear()
