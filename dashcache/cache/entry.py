"""缓存条目数据结构"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Union


class EntryStatus(str, Enum):
    """缓存条目状态"""

    COMPLETE = "complete"
    # 上游拉取失败，仅记录错误，不带 payload
    FAILED = "failed"


@dataclass(frozen=True)
class CacheEntry:
    """单条缓存记录，每个 fingerprint 在每种资源表中至多一条"""

    fingerprint: str
    payload: Optional[Union[str, bytes]]
    written_at: float
    expires_at: float
    status: EntryStatus = EntryStatus.COMPLETE
    subject_id: Optional[str] = None
    error: Optional[str] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now

    def age(self, now: float) -> float:
        """距上次写入的秒数"""
        return max(0.0, now - self.written_at)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CacheEntry":
        return cls(
            fingerprint=row["fingerprint"],
            payload=row["payload"],
            written_at=float(row["written_at"]),
            expires_at=float(row["expires_at"]),
            status=EntryStatus(row["status"] or EntryStatus.COMPLETE.value),
            subject_id=row["subject_id"],
            error=row["error"],
        )
