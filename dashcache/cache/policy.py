"""新鲜度策略

纯函数，无 I/O。所有资源类型共用同一张判定表，仅 TTL 不同:

| 条目      | 模式                  | 结果    |
|-----------|-----------------------|---------|
| 不存在    | 任意                  | MISS    |
| 未过期    | NORMAL / ALLOW_STALE  | FRESH   |
| 未过期    | FORCE_REFRESH         | MISS    |
| 已过期    | NORMAL / FORCE_REFRESH| MISS    |
| 已过期    | ALLOW_STALE           | STALE   |

状态为 failed 的条目没有 payload: 未过期时返回 FAILED (FORCE_REFRESH 除外)，
过期后一律 MISS。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from dashcache.cache.entry import CacheEntry, EntryStatus


class LookupMode(str, Enum):
    """查询模式"""

    NORMAL = "normal"
    # 用户要求强制刷新，忽略未过期条目
    FORCE_REFRESH = "force_refresh"
    # 上游失败后的兜底读取，允许返回过期条目
    ALLOW_STALE = "allow_stale"


class DecisionKind(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    MISS = "miss"
    FAILED = "failed"


@dataclass(frozen=True)
class Decision:
    """策略判定结果"""

    kind: DecisionKind
    payload: Optional[str] = None
    age: Optional[float] = None
    error: Optional[str] = None

    @classmethod
    def fresh(cls, payload: Optional[str], age: Optional[float] = None) -> "Decision":
        return cls(DecisionKind.FRESH, payload=payload, age=age)

    @classmethod
    def stale(cls, payload: Optional[str], age: float) -> "Decision":
        return cls(DecisionKind.STALE, payload=payload, age=age)

    @classmethod
    def miss(cls) -> "Decision":
        return cls(DecisionKind.MISS)

    @classmethod
    def failed(cls, error: Optional[str], age: float) -> "Decision":
        return cls(DecisionKind.FAILED, error=error, age=age)


def decide(entry: Optional[CacheEntry], now: float, mode: LookupMode) -> Decision:
    """根据条目与模式给出判定

    Args:
        entry: 存储层返回的条目，未找到时为 None
        now: 当前时间戳
        mode: 查询模式

    Returns:
        Decision
    """
    if entry is None:
        return Decision.miss()

    mode = LookupMode(mode)
    age = entry.age(now)

    if not entry.is_expired(now):
        if mode is LookupMode.FORCE_REFRESH:
            return Decision.miss()
        if entry.status is EntryStatus.FAILED:
            return Decision.failed(entry.error, age)
        return Decision.fresh(entry.payload, age)

    if mode is LookupMode.ALLOW_STALE and entry.status is EntryStatus.COMPLETE:
        return Decision.stale(entry.payload, age)

    return Decision.miss()
