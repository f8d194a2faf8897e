"""新鲜度策略测试"""

import pytest

from dashcache.cache.entry import CacheEntry, EntryStatus
from dashcache.cache.policy import Decision, DecisionKind, LookupMode, decide

NOW = 1_000_000.0
TTL = 3600.0


def make_entry(expired: bool, status: EntryStatus = EntryStatus.COMPLETE, **kwargs) -> CacheEntry:
    written_at = NOW - (TTL + 60 if expired else 600)
    defaults = dict(
        fingerprint="fp",
        payload='{"score": 85}' if status is EntryStatus.COMPLETE else None,
        written_at=written_at,
        expires_at=written_at + TTL,
        status=status,
    )
    defaults.update(kwargs)
    return CacheEntry(**defaults)


# (条目是否存在, 是否过期, 模式) -> 判定结果
FRESHNESS_TABLE = [
    (False, False, LookupMode.NORMAL, DecisionKind.MISS),
    (False, False, LookupMode.FORCE_REFRESH, DecisionKind.MISS),
    (False, False, LookupMode.ALLOW_STALE, DecisionKind.MISS),
    (False, True, LookupMode.NORMAL, DecisionKind.MISS),
    (False, True, LookupMode.FORCE_REFRESH, DecisionKind.MISS),
    (False, True, LookupMode.ALLOW_STALE, DecisionKind.MISS),
    (True, False, LookupMode.NORMAL, DecisionKind.FRESH),
    (True, False, LookupMode.FORCE_REFRESH, DecisionKind.MISS),
    (True, False, LookupMode.ALLOW_STALE, DecisionKind.FRESH),
    (True, True, LookupMode.NORMAL, DecisionKind.MISS),
    (True, True, LookupMode.FORCE_REFRESH, DecisionKind.MISS),
    (True, True, LookupMode.ALLOW_STALE, DecisionKind.STALE),
]


@pytest.mark.parametrize("present, expired, mode, expected", FRESHNESS_TABLE)
def test_freshness_table(present, expired, mode, expected):
    entry = make_entry(expired) if present else None
    decision = decide(entry, NOW, mode)
    assert decision.kind is expected
    if expected in (DecisionKind.FRESH, DecisionKind.STALE):
        assert decision.payload == entry.payload
    else:
        assert decision.payload is None


def test_stale_reports_age_since_write():
    entry = make_entry(expired=True)
    decision = decide(entry, NOW, LookupMode.ALLOW_STALE)
    assert decision == Decision.stale(entry.payload, TTL + 60)


def test_expiry_boundary_is_expired():
    """expires_at == now 视为已过期"""
    entry = make_entry(expired=False, expires_at=NOW)
    assert decide(entry, NOW, LookupMode.NORMAL).kind is DecisionKind.MISS
    assert decide(entry, NOW, LookupMode.ALLOW_STALE).kind is DecisionKind.STALE


def test_mode_accepts_string_value():
    entry = make_entry(expired=True)
    assert decide(entry, NOW, "allow_stale").kind is DecisionKind.STALE


class TestFailedEntries:
    """失败记录: 无 payload 的负缓存"""

    @pytest.mark.parametrize("mode", [LookupMode.NORMAL, LookupMode.ALLOW_STALE])
    def test_unexpired_failure_is_reported(self, mode):
        entry = make_entry(False, EntryStatus.FAILED, error="upstream 429")
        decision = decide(entry, NOW, mode)
        assert decision.kind is DecisionKind.FAILED
        assert decision.error == "upstream 429"
        assert decision.age == 600

    def test_force_refresh_ignores_failure(self):
        entry = make_entry(False, EntryStatus.FAILED, error="boom")
        assert decide(entry, NOW, LookupMode.FORCE_REFRESH).kind is DecisionKind.MISS

    @pytest.mark.parametrize("mode", list(LookupMode))
    def test_expired_failure_is_miss(self, mode):
        entry = make_entry(True, EntryStatus.FAILED, error="boom")
        assert decide(entry, NOW, mode).kind is DecisionKind.MISS
