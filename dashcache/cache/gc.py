"""缓存 GC 清理模块

按过期时间删除条目，与读流量无关:
- 删除 expires_at < now - retention_seconds 的条目
- 保留期内的过期条目仍可被 ALLOW_STALE 查询读取
- 不持有任何阻塞读写的锁，与并发读写交错执行是安全的
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

from dashcache.cache.errors import StorageNotConfigured, StorageUnavailable
from dashcache.cache.persistence import EntryStore, open_entry_store
from dashcache.cache.resources import ResourceType
from dashcache.core.utils.logger import setup_logger
from dashcache.settings import CacheSettings, JanitorSettings, get_janitor_settings

logger = setup_logger("cache_gc")


class CacheJanitor:
    """过期条目清理器"""

    def __init__(
        self,
        stores: Iterable[EntryStore],
        retention_seconds: float = 0,
        clock: Callable[[], float] = time.time,
    ):
        self.stores: List[EntryStore] = list(stores)
        if retention_seconds < 0:
            raise ValueError(f"retention_seconds 不能为负数: {retention_seconds}")
        self.retention_seconds = retention_seconds
        self._clock = clock

        self._stop_event = threading.Event()
        self._gc_thread: Optional[threading.Thread] = None

    def start_background(self, interval: float) -> None:
        """启动后台清理线程"""
        if self._gc_thread and self._gc_thread.is_alive():
            return

        self._stop_event.clear()

        def gc_loop():
            while not self._stop_event.wait(interval):
                try:
                    self.sweep()
                except Exception as e:
                    logger.error(f"缓存清理失败: {e}")

        self._gc_thread = threading.Thread(target=gc_loop, daemon=True, name="cache-janitor")
        self._gc_thread.start()
        logger.info(f"缓存清理已启动，间隔 {interval} 秒")

    def stop(self, timeout: Optional[float] = None) -> None:
        """停止清理线程"""
        self._stop_event.set()
        if self._gc_thread is not None:
            self._gc_thread.join(timeout)
            self._gc_thread = None

    @property
    def running(self) -> bool:
        return self._gc_thread is not None and self._gc_thread.is_alive()

    def run_gc(self) -> Dict[str, Dict[str, object]]:
        """执行一次清理

        Returns:
            按表名统计: {"deleted": int, "available": bool}
        """
        cutoff = self._clock() - self.retention_seconds
        stats: Dict[str, Dict[str, object]] = {}

        for store in self.stores:
            try:
                deleted = store.delete_expired(before=cutoff)
            except StorageNotConfigured:
                stats[store.table] = {"deleted": 0, "available": False}
                continue
            except StorageUnavailable as e:
                logger.warning(f"清理跳过不可用的存储: {store.table} ({e})")
                stats[store.table] = {"deleted": 0, "available": False}
                continue

            stats[store.table] = {"deleted": deleted, "available": True}
            if deleted:
                logger.debug(f"清理过期条目: {store.table} {deleted} 条")

        total = sum(item["deleted"] for item in stats.values())
        if total > 0:
            logger.info(f"清理完成: 共删除 {total} 条过期缓存")

        return stats

    def sweep(self) -> int:
        """执行一次清理，返回删除的条目总数"""
        return sum(item["deleted"] for item in self.run_gc().values())

    def close(self) -> None:
        self.stop()
        for store in self.stores:
            store.close()


def open_janitor(
    settings: Optional[JanitorSettings] = None,
    cache_settings: Optional[CacheSettings] = None,
    resources: Optional[Iterable[ResourceType]] = None,
) -> CacheJanitor:
    """为所有 (或指定的) 资源类型创建清理器"""
    settings = settings or get_janitor_settings()
    stores = [
        open_entry_store(resource, settings=cache_settings)
        for resource in (resources or list(ResourceType))
    ]
    return CacheJanitor(stores, retention_seconds=settings.retention_seconds)
