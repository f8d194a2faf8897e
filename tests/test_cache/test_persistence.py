"""SQLite 条目存储测试"""

import sqlite3

import pytest

from dashcache.cache.entry import EntryStatus
from dashcache.cache.errors import InvalidInput, StorageNotConfigured, StorageUnavailable
from dashcache.cache.persistence import (
    DisabledEntryStore,
    SQLiteEntryStore,
    open_entry_store,
)
from dashcache.cache.resources import ResourceType
from dashcache.settings import CacheSettings


class TestSQLiteEntryStore:
    """SQLiteEntryStore 单元测试"""

    def test_get_missing_returns_none(self, sqlite_store):
        assert sqlite_store.get("nope") is None

    def test_upsert_sets_timestamps(self, sqlite_store, clock):
        start = clock()
        sqlite_store.upsert("fp1", '{"a": 1}', 3600, subject_id="user1")

        entry = sqlite_store.get("fp1")
        assert entry.payload == '{"a": 1}'
        assert entry.written_at == start
        assert entry.expires_at == start + 3600
        assert entry.status is EntryStatus.COMPLETE
        assert entry.subject_id == "user1"
        assert entry.error is None

    def test_upsert_overwrites_in_place(self, sqlite_store, clock, db_path):
        start = clock()
        sqlite_store.upsert("fp1", '"first"', 60)
        clock.advance(10)
        sqlite_store.upsert("fp1", '"second"', 120)

        entry = sqlite_store.get("fp1")
        assert entry.payload == '"second"'
        assert entry.written_at == start + 10
        assert entry.expires_at == start + 130

        with sqlite3.connect(db_path) as conn:
            count = conn.execute("SELECT COUNT(*) FROM competitor_cache").fetchone()[0]
        assert count == 1

    def test_exact_match_only(self, sqlite_store):
        sqlite_store.upsert("abc", '"x"', 60)
        assert sqlite_store.get("ab") is None
        assert sqlite_store.get("abcd") is None

    def test_failed_status_round_trip(self, sqlite_store):
        sqlite_store.upsert("fp1", None, 60, status=EntryStatus.FAILED, error="timeout")
        entry = sqlite_store.get("fp1")
        assert entry.status is EntryStatus.FAILED
        assert entry.payload is None
        assert entry.error == "timeout"

    def test_negative_ttl_rejected(self, sqlite_store):
        with pytest.raises(InvalidInput):
            sqlite_store.upsert("fp1", '"x"', -1)

    @pytest.mark.parametrize("ttl", [float("nan"), float("inf"), "60", None])
    def test_non_finite_ttl_rejected(self, sqlite_store, ttl):
        with pytest.raises(InvalidInput):
            sqlite_store.upsert("fp1", '"x"', ttl)
        # 参数错误不影响连接
        assert sqlite_store.get("fp1") is None

    def test_bytes_payload_kept_as_blob(self, sqlite_store, db_path):
        raw = b"\x89PNG\r\n\x00"
        sqlite_store.upsert("fp1", raw, 60)

        entry = sqlite_store.get("fp1")
        assert entry.payload == raw
        assert isinstance(entry.payload, bytes)

        with sqlite3.connect(db_path) as conn:
            kind = conn.execute("SELECT typeof(payload) FROM competitor_cache").fetchone()[0]
        assert kind == "blob"

    def test_non_blob_payload_rejected(self, sqlite_store):
        with pytest.raises(InvalidInput):
            sqlite_store.upsert("fp1", {"a": 1}, 60)

    def test_delete(self, sqlite_store):
        sqlite_store.upsert("fp1", '"x"', 60)
        assert sqlite_store.delete("fp1") is True
        assert sqlite_store.delete("fp1") is False
        assert sqlite_store.get("fp1") is None

    def test_delete_expired(self, sqlite_store, clock):
        sqlite_store.upsert("short", '"x"', 10)
        sqlite_store.upsert("long", '"y"', 1000)
        clock.advance(11)

        assert sqlite_store.delete_expired() == 1
        assert sqlite_store.get("short") is None
        assert sqlite_store.get("long") is not None
        assert sqlite_store.delete_expired() == 0

    def test_delete_expired_with_cutoff(self, sqlite_store, clock):
        sqlite_store.upsert("fp1", '"x"', 10)
        clock.advance(20)
        # 保留期内不删除
        assert sqlite_store.delete_expired(before=clock() - 60) == 0
        assert sqlite_store.delete_expired(before=clock()) == 1

    def test_delete_by_subject(self, sqlite_store):
        sqlite_store.upsert("a", '"x"', 60, subject_id="user1")
        sqlite_store.upsert("b", '"x"', 60, subject_id="user1")
        sqlite_store.upsert("c", '"x"', 60, subject_id="user2")

        assert sqlite_store.delete_by_subject("user1") == 2
        assert sqlite_store.get("c") is not None

    def test_stats(self, sqlite_store, clock):
        sqlite_store.upsert("a", '"x"', 10, subject_id="user1")
        sqlite_store.upsert("b", '"x"', 100, subject_id="user1")
        sqlite_store.upsert("c", None, 100, subject_id="user2", status=EntryStatus.FAILED)
        clock.advance(50)

        assert sqlite_store.stats() == {"total": 3, "fresh": 2, "expired": 1, "failed": 1}
        assert sqlite_store.stats("user1") == {"total": 2, "fresh": 1, "expired": 1, "failed": 0}
        assert sqlite_store.stats("nobody") == {"total": 0, "fresh": 0, "expired": 0, "failed": 0}

    def test_tables_are_independent(self, db_path, clock):
        competitor = SQLiteEntryStore(db_path, "competitor_cache", clock=clock)
        backlinks = SQLiteEntryStore(db_path, "se_ranking_cache", clock=clock)
        try:
            competitor.upsert("fp1", '"competitor"', 60)
            backlinks.upsert("fp1", '"backlinks"', 60)
            assert competitor.get("fp1").payload == '"competitor"'
            assert backlinks.get("fp1").payload == '"backlinks"'
        finally:
            competitor.close()
            backlinks.close()

    def test_data_survives_reopen(self, db_path, clock):
        store = SQLiteEntryStore(db_path, "competitor_cache", clock=clock)
        store.upsert("fp1", '"x"', 60)
        store.close()

        reopened = SQLiteEntryStore(db_path, "competitor_cache", clock=clock)
        try:
            assert reopened.get("fp1").payload == '"x"'
        finally:
            reopened.close()

    def test_invalid_table_name(self, db_path):
        with pytest.raises(ValueError):
            SQLiteEntryStore(db_path, "cache; DROP TABLE x")


class TestStorageErrors:
    """存储层错误统一转换为 StorageUnavailable"""

    def test_unreachable_path(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("file")
        store = SQLiteEntryStore(blocker / "cache.db", "competitor_cache")

        with pytest.raises(StorageUnavailable):
            store.get("fp1")
        with pytest.raises(StorageUnavailable):
            store.upsert("fp1", '"x"', 60)

    def test_corrupt_database(self, tmp_path):
        db_file = tmp_path / "cache.db"
        db_file.write_bytes(b"this is not a sqlite database" * 100)
        store = SQLiteEntryStore(db_file, "competitor_cache")

        with pytest.raises(StorageUnavailable) as exc_info:
            store.get("fp1")
        assert isinstance(exc_info.value.__cause__, sqlite3.Error)

    def test_recovers_after_outage(self, tmp_path, clock):
        blocker = tmp_path / "data"
        blocker.write_text("file")
        store = SQLiteEntryStore(blocker / "cache.db", "competitor_cache", clock=clock)
        with pytest.raises(StorageUnavailable):
            store.get("fp1")

        blocker.unlink()
        try:
            store.upsert("fp1", '"x"', 60)
            assert store.get("fp1").payload == '"x"'
        finally:
            store.close()

    def test_disabled_store(self):
        store = DisabledEntryStore("competitor_cache")
        with pytest.raises(StorageNotConfigured):
            store.get("fp1")
        with pytest.raises(StorageUnavailable):
            store.upsert("fp1", '"x"', 60)


class TestOpenEntryStore:
    def test_enabled(self, db_path):
        store = open_entry_store(ResourceType.BACKLINKS, settings=CacheSettings(db_path=db_path))
        assert isinstance(store, SQLiteEntryStore)
        assert store.table == "se_ranking_cache"
        assert store.db_path == db_path

    def test_disabled(self, db_path):
        store = open_entry_store(
            "competitor", settings=CacheSettings(enabled=False, db_path=db_path)
        )
        assert isinstance(store, DisabledEntryStore)
