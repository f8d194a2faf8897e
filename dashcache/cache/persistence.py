"""
基于 SQLite 的缓存条目存储层。

每种资源类型一张表，每行以 fingerprint 为主键:
- payload: 序列化后的数据 (str 或 bytes)，存储层不解析
- status: complete / failed
- written_at / expires_at: 最近一次写入时间与过期时间 (expires_at >= written_at)

存储层是唯一的事实来源，不做进程内缓存；所有驱动层错误统一转换为
StorageUnavailable 抛给上层，由 CacheService 决定如何降级。

线程安全策略：单连接 + threading.Lock 互斥访问，配合 WAL 模式减少写锁冲突。
"""
from __future__ import annotations

import math
import re
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from dashcache.cache.entry import CacheEntry, EntryStatus
from dashcache.cache.errors import InvalidInput, StorageNotConfigured, StorageUnavailable
from dashcache.cache.resources import ResourceType, resolve_resource
from dashcache.core.utils.logger import setup_logger
from dashcache.settings import CacheSettings, get_cache_settings

logger = setup_logger("cache_store")

_TABLE_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]*$")

# str 按 TEXT 存储，bytes 按 BLOB 原样存储，读取时类型不变
Payload = Union[str, bytes]


class EntryStore(ABC):
    """缓存条目存储接口"""

    table: str = ""

    @abstractmethod
    def get(self, fingerprint: str) -> Optional[CacheEntry]:
        """按 fingerprint 精确查询，不存在时返回 None"""

    @abstractmethod
    def upsert(
        self,
        fingerprint: str,
        payload: Optional[Payload],
        ttl: float,
        *,
        subject_id: Optional[str] = None,
        status: EntryStatus = EntryStatus.COMPLETE,
        error: Optional[str] = None,
    ) -> None:
        """写入或覆盖条目，written_at = now，expires_at = now + ttl"""

    @abstractmethod
    def delete(self, fingerprint: str) -> bool:
        """删除条目，返回删除前是否存在"""

    @abstractmethod
    def delete_expired(self, before: Optional[float] = None) -> int:
        """删除 expires_at < before 的条目 (默认 before = now)，返回删除数量"""

    @abstractmethod
    def delete_by_subject(self, subject_id: str) -> int:
        """删除某个用户的全部条目"""

    @abstractmethod
    def stats(self, subject_id: Optional[str] = None) -> Dict[str, int]:
        """条目统计: total / fresh / expired / failed"""

    def close(self) -> None:
        pass


class SQLiteEntryStore(EntryStore):
    """基于 SQLite 的条目存储，一个实例对应一张资源表。

    连接在首次使用时建立，失败后下一次调用会重新尝试，
    因此数据库暂时不可达不会影响实例构造。
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        table: str,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not _TABLE_NAME_RE.match(table):
            raise ValueError(f"非法表名: {table!r}")
        self.db_path = Path(db_path)
        self.table = table
        self.timeout = timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # check_same_thread=False 允许多线程共用同一连接，由 _lock 保证安全
        conn = sqlite3.connect(
            str(self.db_path), timeout=self.timeout, check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                # WAL 模式：允许读写并发，清理任务不会阻塞读取
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
            self._init_schema(conn)
        except sqlite3.Error:
            conn.close()
            raise
        logger.debug(f"已连接缓存库: {self.db_path} ({self.table})")
        return conn

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        """初始化资源表结构 (幂等)"""
        with conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    fingerprint TEXT PRIMARY KEY,
                    subject_id TEXT,
                    payload BLOB,
                    status TEXT NOT NULL DEFAULT 'complete',
                    error TEXT,
                    written_at REAL NOT NULL,
                    expires_at REAL NOT NULL,
                    CHECK (expires_at >= written_at)
                )
                """
            )
            # 清理任务按过期时间删除
            conn.execute(
                f"""
                CREATE INDEX IF NOT EXISTS idx_{self.table}_expires_at
                ON {self.table}(expires_at)
                """
            )
            # 按用户清空缓存
            conn.execute(
                f"""
                CREATE INDEX IF NOT EXISTS idx_{self.table}_subject
                ON {self.table}(subject_id)
                """
            )

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """加锁获取连接，驱动层错误转换为 StorageUnavailable"""
        with self._lock:
            try:
                if self._conn is None:
                    self._conn = self._connect()
                yield self._conn
            except (sqlite3.Error, OSError) as e:
                # 丢弃可能已损坏的连接，下次调用重新建立
                self._discard_connection()
                raise StorageUnavailable(f"缓存存储不可用 ({self.table}): {e}") from e

    def _discard_connection(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error as e:
                logger.debug(f"关闭连接失败: {e}")
            self._conn = None

    def get(self, fingerprint: str) -> Optional[CacheEntry]:
        with self._session() as conn:
            row = conn.execute(
                f"SELECT * FROM {self.table} WHERE fingerprint = ?", (fingerprint,)
            ).fetchone()
        if not row:
            return None
        return CacheEntry.from_row(row)

    def upsert(
        self,
        fingerprint: str,
        payload: Optional[Payload],
        ttl: float,
        *,
        subject_id: Optional[str] = None,
        status: EntryStatus = EntryStatus.COMPLETE,
        error: Optional[str] = None,
    ) -> None:
        """插入或覆盖条目。

        使用 INSERT ... ON CONFLICT DO UPDATE 实现 upsert 语义，
        并发写同一 fingerprint 时后写者胜出。
        """
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
            raise InvalidInput(f"ttl 必须是数字: {ttl!r}")
        if not math.isfinite(ttl) or ttl < 0:
            raise InvalidInput(f"ttl 必须是非负有限数: {ttl}")
        if payload is not None and not isinstance(payload, (str, bytes)):
            raise InvalidInput(f"payload 必须是 str 或 bytes: {type(payload).__name__}")
        now = self._clock()
        with self._session() as conn, conn:
            conn.execute(
                f"""
                INSERT INTO {self.table} (
                    fingerprint, subject_id, payload, status, error,
                    written_at, expires_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(fingerprint) DO UPDATE SET
                    subject_id=excluded.subject_id,
                    payload=excluded.payload,
                    status=excluded.status,
                    error=excluded.error,
                    written_at=excluded.written_at,
                    expires_at=excluded.expires_at
                """,
                (
                    fingerprint,
                    subject_id,
                    payload,
                    EntryStatus(status).value,
                    error,
                    now,
                    now + ttl,
                ),
            )

    def delete(self, fingerprint: str) -> bool:
        with self._session() as conn, conn:
            cursor = conn.execute(
                f"DELETE FROM {self.table} WHERE fingerprint = ?", (fingerprint,)
            )
        return cursor.rowcount > 0

    def delete_expired(self, before: Optional[float] = None) -> int:
        cutoff = self._clock() if before is None else before
        with self._session() as conn, conn:
            cursor = conn.execute(
                f"DELETE FROM {self.table} WHERE expires_at < ?", (cutoff,)
            )
        return cursor.rowcount

    def delete_by_subject(self, subject_id: str) -> int:
        with self._session() as conn, conn:
            cursor = conn.execute(
                f"DELETE FROM {self.table} WHERE subject_id = ?", (subject_id,)
            )
        return cursor.rowcount

    def stats(self, subject_id: Optional[str] = None) -> Dict[str, int]:
        now = self._clock()
        where_clause = "WHERE subject_id = ?" if subject_id is not None else ""
        params: List[Any] = [now, now, EntryStatus.FAILED.value]
        if subject_id is not None:
            params.append(subject_id)

        with self._session() as conn:
            row = conn.execute(
                f"""
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(CASE WHEN expires_at > ? THEN 1 ELSE 0 END), 0) AS fresh,
                    COALESCE(SUM(CASE WHEN expires_at <= ? THEN 1 ELSE 0 END), 0) AS expired,
                    COALESCE(SUM(CASE WHEN status = ? THEN 1 ELSE 0 END), 0) AS failed
                FROM {self.table}
                {where_clause}
                """,
                params,
            ).fetchone()

        return {key: int(row[key]) for key in ("total", "fresh", "expired", "failed")}

    def close(self) -> None:
        with self._lock:
            self._discard_connection()


class DisabledEntryStore(EntryStore):
    """缓存禁用时使用的占位存储，所有操作抛出 StorageNotConfigured"""

    def __init__(self, table: str = "disabled") -> None:
        self.table = table

    def _fail(self) -> StorageNotConfigured:
        return StorageNotConfigured(f"缓存未启用 ({self.table})")

    def get(self, fingerprint: str) -> Optional[CacheEntry]:
        raise self._fail()

    def upsert(self, fingerprint, payload, ttl, *, subject_id=None,
               status=EntryStatus.COMPLETE, error=None) -> None:
        raise self._fail()

    def delete(self, fingerprint: str) -> bool:
        raise self._fail()

    def delete_expired(self, before: Optional[float] = None) -> int:
        raise self._fail()

    def delete_by_subject(self, subject_id: str) -> int:
        raise self._fail()

    def stats(self, subject_id: Optional[str] = None) -> Dict[str, int]:
        raise self._fail()


def open_entry_store(
    resource: Union[ResourceType, str],
    settings: Optional[CacheSettings] = None,
    clock: Callable[[], float] = time.time,
) -> EntryStore:
    """按配置为资源类型创建存储实例；缓存禁用时返回 DisabledEntryStore"""
    resource = resolve_resource(resource)
    settings = settings or get_cache_settings()
    if not settings.enabled:
        logger.info(f"缓存已禁用: {resource.table_name}")
        return DisabledEntryStore(resource.table_name)
    return SQLiteEntryStore(
        settings.db_path,
        resource.table_name,
        timeout=settings.timeout_seconds,
        clock=clock,
    )
