"""
资源类型与默认 TTL。

每种资源类型对应一张独立的缓存表，新鲜度规则相同，只有 TTL 不同。
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Union

from dashcache.settings import CacheTTLSettings, get_ttl_settings

HOUR = 3600
DAY = 24 * HOUR


class ResourceType(str, Enum):
    """缓存资源类型，值即表名"""

    SEARCH_CONSOLE = "search_console_cache"
    GOOGLE_ANALYTICS = "google_analytics_cache"
    PERFORMANCE = "lighthouse_cache"
    BACKLINKS = "se_ranking_cache"
    COMPETITOR = "competitor_cache"
    SOCIAL_MEDIA = "social_media_cache"

    @property
    def table_name(self) -> str:
        return self.value

    @property
    def setting_name(self) -> str:
        """CacheTTLSettings 中对应的字段名"""
        return self.name.lower()


# 默认 TTL（秒）
DEFAULT_TTL_SECONDS: Dict[ResourceType, int] = {
    ResourceType.SEARCH_CONSOLE: HOUR,        # 1 小时
    ResourceType.GOOGLE_ANALYTICS: HOUR,      # 1 小时
    ResourceType.PERFORMANCE: HOUR,           # 性能快照 1 小时
    ResourceType.BACKLINKS: DAY,              # 外链汇总 24 小时
    ResourceType.COMPETITOR: 7 * DAY,         # 竞品对比 7 天
    ResourceType.SOCIAL_MEDIA: 30 * 60,       # 社媒指标 30 分钟
}


def resolve_resource(resource: Union[ResourceType, str]) -> ResourceType:
    """接受枚举、枚举名或表名"""
    if isinstance(resource, ResourceType):
        return resource
    try:
        return ResourceType(resource)
    except ValueError:
        pass
    try:
        return ResourceType[str(resource).upper()]
    except KeyError:
        raise ValueError(f"未知的资源类型: {resource}") from None


def get_ttl_for_resource(
    resource: Union[ResourceType, str],
    settings: Optional[CacheTTLSettings] = None,
) -> int:
    """获取资源类型的 TTL，环境变量覆盖优先"""
    resource = resolve_resource(resource)
    settings = settings or get_ttl_settings()
    override = getattr(settings, resource.setting_name, None)
    if override:
        return override
    return DEFAULT_TTL_SECONDS[resource]
