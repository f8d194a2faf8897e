"""缓存模块 - 第三方数据源结果缓存

提供:
- 标识规范化与指纹计算
- 条目存储 (SQLite，每种资源一张表)
- 新鲜度策略 (normal / force_refresh / allow_stale)
- 缓存服务层 (查询/写入/失效，存储故障时降级)
- 过期条目清理
"""

from dashcache.cache.cache_key import (
    Fingerprint,
    KeyKind,
    build_fingerprint,
    competitor_fingerprint,
    normalize,
    normalize_domain,
    normalize_handle,
)
from dashcache.cache.entry import CacheEntry, EntryStatus
from dashcache.cache.errors import (
    CacheError,
    InvalidInput,
    StorageNotConfigured,
    StorageUnavailable,
)
from dashcache.cache.persistence import (
    DisabledEntryStore,
    EntryStore,
    SQLiteEntryStore,
    open_entry_store,
)
from dashcache.cache.policy import Decision, DecisionKind, LookupMode, decide
from dashcache.cache.resources import DEFAULT_TTL_SECONDS, ResourceType, get_ttl_for_resource
from dashcache.cache.cache_service import CacheLookupResult, CacheService, open_cache
from dashcache.cache.gc import CacheJanitor, open_janitor

__all__ = [
    "normalize",
    "normalize_domain",
    "normalize_handle",
    "KeyKind",
    "Fingerprint",
    "build_fingerprint",
    "competitor_fingerprint",
    "CacheEntry",
    "EntryStatus",
    "CacheError",
    "InvalidInput",
    "StorageUnavailable",
    "StorageNotConfigured",
    "EntryStore",
    "SQLiteEntryStore",
    "DisabledEntryStore",
    "open_entry_store",
    "LookupMode",
    "Decision",
    "DecisionKind",
    "decide",
    "ResourceType",
    "DEFAULT_TTL_SECONDS",
    "get_ttl_for_resource",
    "CacheService",
    "CacheLookupResult",
    "open_cache",
    "CacheJanitor",
    "open_janitor",
]
