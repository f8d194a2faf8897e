"""Root-level test configuration and shared fixtures.

Module-specific fixtures should be placed in their respective conftest.py files.
"""

from pathlib import Path
from typing import Optional

import pytest

from dashcache.cache.entry import CacheEntry, EntryStatus
from dashcache.cache.errors import StorageUnavailable
from dashcache.cache.persistence import EntryStore, SQLiteEntryStore

# 固定的起始时间，方便断言 written_at / expires_at
START_TIME = 1_700_000_000.0


class FakeClock:
    """可手动推进的时钟，替代 time.time"""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingEntryStore(EntryStore):
    """所有操作都抛出 StorageUnavailable 的存储，模拟数据库宕机"""

    table = "failing_cache"

    def __init__(self) -> None:
        self.calls = []

    def _fail(self, operation: str) -> StorageUnavailable:
        self.calls.append(operation)
        return StorageUnavailable(f"simulated outage during {operation}")

    def get(self, fingerprint: str) -> Optional[CacheEntry]:
        raise self._fail("get")

    def upsert(self, fingerprint, payload, ttl, *, subject_id=None,
               status=EntryStatus.COMPLETE, error=None) -> None:
        raise self._fail("upsert")

    def delete(self, fingerprint: str) -> bool:
        raise self._fail("delete")

    def delete_expired(self, before=None) -> int:
        raise self._fail("delete_expired")

    def delete_by_subject(self, subject_id: str) -> int:
        raise self._fail("delete_by_subject")

    def stats(self, subject_id=None):
        raise self._fail("stats")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_path(tmp_path) -> Path:
    """临时 SQLite 数据库路径"""
    return tmp_path / "cache.db"


@pytest.fixture
def sqlite_store(db_path, clock):
    """测试用竞品缓存表"""
    store = SQLiteEntryStore(db_path, "competitor_cache", clock=clock)
    yield store
    store.close()


@pytest.fixture
def failing_store() -> FailingEntryStore:
    return FailingEntryStore()
