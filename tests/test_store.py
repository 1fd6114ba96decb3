"""Tests for the SQLite-backed PersistentStore and its collections."""

from __future__ import annotations

import sqlite3

import pytest

from offline_tracks.exceptions import ReadFailed, StoreError, StoreUnavailable, WriteFailed
from offline_tracks.models.config import COLLECTION_BLOBS, COLLECTION_POSITIONS
from offline_tracks.storage.store import ABSENT, PersistentStore, close_stores, open_store


class TestCollections:
    """Tests for put/fetch on opened collections."""

    @pytest.mark.asyncio
    async def test_put_then_fetch(self, store) -> None:
        blobs = store.get_collection(COLLECTION_BLOBS)
        positions = store.get_collection(COLLECTION_POSITIONS)

        await blobs.put("episode-01", b"\x00\x01payload")
        await positions.put("episode-01", 12.5)

        assert await blobs.fetch("episode-01") == b"\x00\x01payload"
        assert await positions.fetch("episode-01") == 12.5

    @pytest.mark.asyncio
    async def test_missing_key_is_absent(self, store) -> None:
        blobs = store.get_collection(COLLECTION_BLOBS)

        value = await blobs.fetch("nothing-here")

        assert value is ABSENT
        assert not value
        assert await blobs.has("nothing-here") is False

    @pytest.mark.asyncio
    async def test_put_replaces_previous_value(self, store) -> None:
        positions = store.get_collection(COLLECTION_POSITIONS)

        await positions.put("episode-01", 1.0)
        await positions.put("episode-01", 2.0)

        assert await positions.fetch("episode-01") == 2.0
        assert await positions.count() == 1

    @pytest.mark.asyncio
    async def test_collections_are_isolated(self, store) -> None:
        await store.get_collection(COLLECTION_BLOBS).put("episode-01", b"data")

        positions = store.get_collection(COLLECTION_POSITIONS)
        assert await positions.fetch("episode-01") is ABSENT

    @pytest.mark.asyncio
    async def test_keys_and_count(self, store) -> None:
        blobs = store.get_collection(COLLECTION_BLOBS)
        for key in ("b", "a", "c"):
            await blobs.put(key, b"x")

        assert await blobs.keys() == ["a", "b", "c"]
        assert await blobs.count() == 3

    @pytest.mark.asyncio
    async def test_collection_handles_are_cached(self, store) -> None:
        assert store.get_collection(COLLECTION_BLOBS) is store.get_collection(
            COLLECTION_BLOBS
        )

    @pytest.mark.asyncio
    async def test_failed_reads_raise_read_failed(self, store) -> None:
        positions = store.get_collection(COLLECTION_POSITIONS)
        with sqlite3.connect(store.db_path) as conn:
            conn.execute(f'DROP TABLE "{COLLECTION_POSITIONS}"')

        with pytest.raises(ReadFailed):
            await positions.fetch("episode-01")
        with pytest.raises(ReadFailed):
            await positions.keys()
        with pytest.raises(ReadFailed):
            await positions.count()

    @pytest.mark.asyncio
    async def test_unknown_collection(self, store) -> None:
        with pytest.raises(StoreError):
            store.get_collection("artwork")


class TestOpening:
    """Tests for opening, versioning and sharing stores."""

    def test_collection_before_open(self, store_dir) -> None:
        with pytest.raises(StoreUnavailable):
            PersistentStore(store_dir).get_collection(COLLECTION_BLOBS)

    def test_invalid_collection_name(self, store_dir) -> None:
        with pytest.raises(ValueError):
            PersistentStore(store_dir, collection_names=("blobs", "drop table"))

    @pytest.mark.asyncio
    async def test_open_creates_database(self, store_dir) -> None:
        store = PersistentStore(store_dir)

        assert await store.open() is store
        assert store.is_open
        assert store.db_path == store_dir / "offline-tracks.sqlite"
        assert store.db_path.is_file()

        await store.open()

    @pytest.mark.asyncio
    async def test_open_failure_is_reported(self, tmp_path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        store = PersistentStore(blocker / "store")
        with pytest.raises(StoreUnavailable):
            await store.open()
        assert not store.is_open

    @pytest.mark.asyncio
    async def test_higher_version_adds_collections_and_keeps_data(
        self, store_dir
    ) -> None:
        v1 = PersistentStore(store_dir, version=1, collection_names=("blobs",))
        await v1.open()
        await v1.get_collection("blobs").put("episode-01", b"kept")

        v2 = PersistentStore(store_dir, version=2, collection_names=("blobs", "positions"))
        await v2.open()
        await v2.get_collection("positions").put("episode-01", 3.0)

        assert await v2.get_collection("blobs").fetch("episode-01") == b"kept"
        assert await v2.get_collection("positions").fetch("episode-01") == 3.0

    @pytest.mark.asyncio
    async def test_same_version_leaves_schema_alone(self, store_dir) -> None:
        first = PersistentStore(store_dir, version=1, collection_names=("blobs",))
        await first.open()

        widened = PersistentStore(
            store_dir, version=1, collection_names=("blobs", "positions")
        )
        await widened.open()

        with pytest.raises(WriteFailed):
            await widened.get_collection("positions").put("episode-01", 1.0)

    @pytest.mark.asyncio
    async def test_open_store_shares_handles(self, store_dir) -> None:
        try:
            first = await open_store(store_dir)
            second = await open_store(store_dir)
            assert first is second
            assert first.is_open

            upgraded = await open_store(store_dir, version=2)
            assert upgraded is not first
            assert upgraded.version == 2
            assert await open_store(store_dir) is upgraded
        finally:
            close_stores()
