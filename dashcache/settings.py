"""
缓存配置模块，基于 pydantic-settings 实现。

各配置类通过环境变量注入参数值，每个类拥有独立的环境变量前缀，
使用 lru_cache 保证配置对象在进程生命周期内只实例化一次。
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from dashcache.config import DEFAULT_DB_PATH


class CacheSettings(BaseSettings):
    """缓存存储配置，环境变量前缀为 CACHE_。"""

    model_config = SettingsConfigDict(env_prefix="CACHE_", extra="ignore")

    # 关闭后所有读写都按未命中处理，调用方直接走上游
    enabled: bool = True
    # SQLite 数据库文件路径
    db_path: Path = DEFAULT_DB_PATH
    # 等待数据库锁的超时（秒），超时视为存储不可用
    timeout_seconds: float = Field(default=5.0, gt=0)


class CacheTTLSettings(BaseSettings):
    """按资源类型覆盖默认 TTL（秒），环境变量前缀为 CACHE_TTL_。

    未设置的字段沿用 resources.DEFAULT_TTL_SECONDS 中的默认值。
    """

    model_config = SettingsConfigDict(env_prefix="CACHE_TTL_", extra="ignore")

    search_console: Optional[int] = Field(default=None, gt=0)
    google_analytics: Optional[int] = Field(default=None, gt=0)
    performance: Optional[int] = Field(default=None, gt=0)
    backlinks: Optional[int] = Field(default=None, gt=0)
    competitor: Optional[int] = Field(default=None, gt=0)
    social_media: Optional[int] = Field(default=None, gt=0)


class JanitorSettings(BaseSettings):
    """过期清理配置，环境变量前缀为 CACHE_JANITOR_。"""

    model_config = SettingsConfigDict(env_prefix="CACHE_JANITOR_", extra="ignore")

    # 两次清理之间的间隔
    interval_seconds: int = Field(default=3600, ge=1)
    # 过期后继续保留的时长，保留期内的条目仍可作为兜底数据读取
    retention_seconds: int = Field(default=0, ge=0)


# --- 单例工厂函数 ---


@lru_cache
def get_cache_settings() -> CacheSettings:
    return CacheSettings()


@lru_cache
def get_ttl_settings() -> CacheTTLSettings:
    return CacheTTLSettings()


@lru_cache
def get_janitor_settings() -> JanitorSettings:
    return JanitorSettings()


__all__ = [
    "CacheSettings",
    "CacheTTLSettings",
    "JanitorSettings",
    "get_cache_settings",
    "get_janitor_settings",
    "get_ttl_settings",
]
