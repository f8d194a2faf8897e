"""缓存服务层

调用方唯一使用的入口: 查询 / 写入 / 失效。

存储层不可用时一律降级: lookup 返回未命中，写入返回 False，
缓存只是性能优化，不能成为硬依赖。
"""

from __future__ import annotations

import json
import math
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple, Union

from dashcache.cache.cache_key import Fingerprint, KeyKind, normalize
from dashcache.cache.entry import EntryStatus
from dashcache.cache.errors import InvalidInput, StorageNotConfigured, StorageUnavailable
from dashcache.cache.persistence import EntryStore, open_entry_store
from dashcache.cache.policy import DecisionKind, LookupMode, decide
from dashcache.cache.resources import ResourceType, get_ttl_for_resource, resolve_resource
from dashcache.core.utils.logger import setup_logger
from dashcache.settings import CacheSettings

logger = setup_logger("cache_service")

FingerprintLike = Union[Fingerprint, str]
TTLLike = Union[int, float, timedelta]


@dataclass
class CacheLookupResult:
    """缓存查询结果

    status 区分 fresh / stale，调用方可据此提示"显示的是 N 小时前的缓存"。
    """

    status: DecisionKind
    fingerprint: Optional[str] = None
    payload: Any = None
    age_seconds: Optional[float] = None
    written_at: Optional[float] = None
    expires_at: Optional[float] = None
    error: Optional[str] = None

    @property
    def hit(self) -> bool:
        return self.status in (DecisionKind.FRESH, DecisionKind.STALE)

    @property
    def is_fresh(self) -> bool:
        return self.status is DecisionKind.FRESH

    @property
    def is_stale(self) -> bool:
        return self.status is DecisionKind.STALE

    @property
    def is_miss(self) -> bool:
        return self.status is DecisionKind.MISS

    @property
    def is_failed(self) -> bool:
        return self.status is DecisionKind.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hit": self.hit,
            "status": self.status.value,
            "fingerprint": self.fingerprint,
            "payload": self.payload,
            "stale": self.is_stale,
            "age_seconds": self.age_seconds,
            "written_at": self.written_at,
            "expires_at": self.expires_at,
            "error": self.error,
        }


class CacheService:
    """缓存服务

    无状态: 所有状态都在 EntryStore 中，同一 fingerprint 的并发写入由存储层
    upsert 决定后写者胜出。
    """

    def __init__(
        self,
        entry_store: EntryStore,
        resource: Optional[Union[ResourceType, str]] = None,
        default_ttl: Optional[TTLLike] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.entry_store = entry_store
        self.resource = resolve_resource(resource) if resource is not None else None
        if default_ttl is None and self.resource is not None:
            default_ttl = get_ttl_for_resource(self.resource)
        self.default_ttl = default_ttl
        self._clock = clock

    @property
    def name(self) -> str:
        if self.resource is not None:
            return self.resource.table_name
        return self.entry_store.table or self.entry_store.__class__.__name__

    def _resolve_fingerprint(self, fingerprint: FingerprintLike) -> Tuple[str, Optional[str]]:
        if isinstance(fingerprint, Fingerprint):
            return fingerprint.key, fingerprint.subject_id
        key = normalize(fingerprint, KeyKind.TEXT)
        if key is None:
            raise InvalidInput("fingerprint 不能为空")
        return key, None

    def _resolve_ttl(self, ttl: Optional[TTLLike]) -> float:
        if ttl is None:
            ttl = self.default_ttl
        if ttl is None:
            raise InvalidInput(f"未指定 ttl，且 {self.name} 没有默认 TTL")
        if isinstance(ttl, timedelta):
            ttl = ttl.total_seconds()
        if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
            raise InvalidInput(f"ttl 必须是数字或 timedelta: {ttl!r}")
        if not math.isfinite(ttl) or ttl <= 0:
            raise InvalidInput(f"ttl 必须是大于 0 的有限数: {ttl}")
        return float(ttl)

    def _log_degrade(self, action: str, key: str, error: StorageUnavailable) -> None:
        if isinstance(error, StorageNotConfigured):
            logger.debug(f"缓存未启用，跳过{action}: {self.name} {key}")
        else:
            logger.warning(f"缓存{action}失败，降级为无缓存: {self.name} {key} ({error})")

    @staticmethod
    def _encode(payload: Any) -> Union[str, bytes]:
        """bytes 原样存储，其余值编码为 JSON

        JSON 往返后不相等的值 (tuple、非字符串键等) 直接拒绝，
        保证 lookup 取回的数据与写入时一致。
        """
        if isinstance(payload, (bytes, bytearray, memoryview)):
            return bytes(payload)
        try:
            blob = json.dumps(payload, ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"payload 无法序列化: {e}") from e
        if json.loads(blob) != payload:
            raise InvalidInput(f"payload 经 JSON 往返后会改变: {type(payload).__name__}")
        return blob

    @staticmethod
    def _decode(blob: Union[str, bytes]) -> Any:
        if isinstance(blob, bytes):
            return blob
        return json.loads(blob)

    def lookup(
        self,
        fingerprint: FingerprintLike,
        mode: LookupMode = LookupMode.NORMAL,
    ) -> CacheLookupResult:
        """查询缓存

        Args:
            fingerprint: 指纹或其 key
            mode: NORMAL / FORCE_REFRESH / ALLOW_STALE

        Returns:
            CacheLookupResult，存储不可用时为未命中
        """
        key, _ = self._resolve_fingerprint(fingerprint)
        mode = LookupMode(mode)

        try:
            entry = self.entry_store.get(key)
        except StorageUnavailable as e:
            self._log_degrade("读取", key, e)
            return CacheLookupResult(status=DecisionKind.MISS, fingerprint=key)

        decision = decide(entry, self._clock(), mode)

        if decision.kind is DecisionKind.MISS:
            logger.debug(f"缓存未命中: {self.name} {key} (mode={mode.value})")
            return CacheLookupResult(status=DecisionKind.MISS, fingerprint=key)

        if decision.kind is DecisionKind.FAILED:
            logger.info(f"命中失败记录: {self.name} {key} ({decision.error})")
            return CacheLookupResult(
                status=DecisionKind.FAILED,
                fingerprint=key,
                age_seconds=decision.age,
                written_at=entry.written_at,
                expires_at=entry.expires_at,
                error=decision.error,
            )

        try:
            payload = self._decode(decision.payload)
        except (TypeError, ValueError) as e:
            logger.warning(f"缓存数据解析失败，按未命中处理: {self.name} {key} ({e})")
            return CacheLookupResult(status=DecisionKind.MISS, fingerprint=key)

        if decision.kind is DecisionKind.STALE:
            logger.info(
                f"使用过期缓存兜底: {self.name} {key} [age={decision.age / 3600:.1f}h]"
            )
        else:
            logger.info(f"缓存命中: {self.name} {key} [age={decision.age:.0f}s]")

        return CacheLookupResult(
            status=decision.kind,
            fingerprint=key,
            payload=payload,
            age_seconds=decision.age,
            written_at=entry.written_at,
            expires_at=entry.expires_at,
        )

    def store(
        self,
        fingerprint: FingerprintLike,
        payload: Any,
        ttl: Optional[TTLLike] = None,
    ) -> bool:
        """写入缓存 (覆盖同 fingerprint 的旧值)

        Args:
            fingerprint: 指纹或其 key
            payload: bytes (原样存储) 或 JSON 往返不变的数据
            ttl: 秒数或 timedelta，缺省使用资源类型的默认 TTL

        Returns:
            是否写入成功，存储不可用时返回 False

        Raises:
            InvalidInput: ttl 不是大于 0 的有限数，或 payload 无法无损序列化
        """
        key, subject_id = self._resolve_fingerprint(fingerprint)
        ttl_seconds = self._resolve_ttl(ttl)
        blob = self._encode(payload)

        try:
            self.entry_store.upsert(key, blob, ttl_seconds, subject_id=subject_id)
        except StorageUnavailable as e:
            self._log_degrade("写入", key, e)
            return False

        logger.info(f"写入缓存: {self.name} {key} (ttl={ttl_seconds:.0f}s)")
        return True

    def store_failure(
        self,
        fingerprint: FingerprintLike,
        error: Any,
        ttl: Optional[TTLLike] = None,
    ) -> bool:
        """记录上游拉取失败，TTL 内的普通查询返回 FAILED，避免反复重试"""
        key, subject_id = self._resolve_fingerprint(fingerprint)
        ttl_seconds = self._resolve_ttl(ttl)

        try:
            self.entry_store.upsert(
                key,
                None,
                ttl_seconds,
                subject_id=subject_id,
                status=EntryStatus.FAILED,
                error=str(error),
            )
        except StorageUnavailable as e:
            self._log_degrade("写入", key, e)
            return False

        logger.info(f"记录失败条目: {self.name} {key} ({error})")
        return True

    def invalidate(self, fingerprint: FingerprintLike) -> bool:
        """删除缓存条目，返回条目是否存在"""
        key, _ = self._resolve_fingerprint(fingerprint)
        try:
            deleted = self.entry_store.delete(key)
        except StorageUnavailable as e:
            self._log_degrade("删除", key, e)
            return False

        if deleted:
            logger.info(f"删除缓存: {self.name} {key}")
        return deleted

    def clear_subject(self, subject_id: Any) -> int:
        """清空某个用户在该资源类型下的全部缓存"""
        subject = normalize(subject_id, KeyKind.TEXT)
        if subject is None:
            raise InvalidInput("subject_id 不能为空")
        try:
            count = self.entry_store.delete_by_subject(subject)
        except StorageUnavailable as e:
            self._log_degrade("清空", subject, e)
            return 0

        logger.info(f"清空用户缓存: {self.name} {subject} ({count} 条)")
        return count

    def get_stats(self, subject_id: Optional[str] = None) -> Dict[str, Any]:
        """获取缓存统计信息"""
        stats: Dict[str, Any] = {
            "resource": self.name,
            "default_ttl": self.default_ttl,
        }
        try:
            stats.update(self.entry_store.stats(subject_id))
        except StorageUnavailable as e:
            self._log_degrade("统计", subject_id or "*", e)
            stats["available"] = False
            return stats

        stats["available"] = True
        return stats

    def close(self) -> None:
        self.entry_store.close()


def open_cache(
    resource: Union[ResourceType, str],
    settings: Optional[CacheSettings] = None,
    clock: Callable[[], float] = time.time,
) -> CacheService:
    """按配置创建某个资源类型的 CacheService"""
    resource = resolve_resource(resource)
    entry_store = open_entry_store(resource, settings=settings, clock=clock)
    return CacheService(entry_store, resource=resource, clock=clock)
