"""Cache Key 计算模块

提供:
- 标识规范化 (域名 / 社交账号 / 普通文本)
- 指纹 (Fingerprint) 构造: 用户 + 域名对 + 可选社交账号区分符
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from dashcache.cache.errors import InvalidInput
from dashcache.core.utils.logger import setup_logger

logger = setup_logger("cache_key")

# 指纹格式版本，变更组成规则时递增，旧条目自然失配
FINGERPRINT_VERSION = "v1"

SOCIAL_PLATFORMS = ("instagram", "facebook")

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_HOST_END_RE = re.compile(r"[/?#]")
_WWW_PREFIX = "www."


class KeyKind(str, Enum):
    """标识类型，决定规范化规则"""

    DOMAIN = "domain"
    HANDLE = "handle"
    TEXT = "text"


def _strip_prefixes(value: str) -> str:
    """反复移除开头的 scheme 与 www."""
    while True:
        stripped = _SCHEME_RE.sub("", value, count=1).strip()
        if stripped.startswith(_WWW_PREFIX):
            stripped = stripped[len(_WWW_PREFIX):].strip()
        if stripped == value:
            return value
        value = stripped


def _clean_once(value: str, kind: KeyKind) -> str:
    value = _strip_prefixes(value.strip().lower())
    if kind is KeyKind.DOMAIN:
        # 只保留 host 部分
        value = _HOST_END_RE.split(value, maxsplit=1)[0].strip()
    else:
        if value.endswith("/"):
            value = value[:-1].strip()
        value = value.lstrip("@").strip()
    return value


def normalize(raw: Any, kind: KeyKind = KeyKind.DOMAIN) -> Optional[str]:
    """规范化标识

    - 移除 http:// / https:// 与 www. 前缀
    - 移除尾部斜杠，域名只保留 host
    - 统一小写，社交账号去掉开头的 @
    - 空值/纯空白返回 None (表示"缺省")，而不是空字符串

    结果幂等: normalize(normalize(x)) == normalize(x)
    """
    if raw is None:
        return None

    value = str(raw).strip()
    if not value:
        return None

    if kind is KeyKind.TEXT:
        return value

    # 规则全部是删除操作，迭代到不动点即可保证幂等
    previous = None
    while value != previous:
        previous = value
        value = _clean_once(value, kind)

    return value or None


def normalize_domain(raw: Any) -> Optional[str]:
    return normalize(raw, KeyKind.DOMAIN)


def normalize_handle(raw: Any) -> Optional[str]:
    return normalize(raw, KeyKind.HANDLE)


@dataclass(frozen=True)
class Fingerprint:
    """缓存指纹

    字段均已规范化; discriminators 按名称排序，缺省的区分符不出现在元组中。
    """

    subject_id: str
    primary: str
    secondary: Optional[str] = None
    discriminators: Tuple[Tuple[str, str], ...] = ()

    @property
    def key(self) -> str:
        """对外使用的缓存键 (SHA256)，跨进程稳定"""
        source = json.dumps(
            [
                FINGERPRINT_VERSION,
                self.subject_id,
                self.primary,
                self.secondary,
                [list(pair) for pair in self.discriminators],
            ],
            ensure_ascii=False,
            separators=(",", ":"),
        )
        return hashlib.sha256(source.encode("utf-8")).hexdigest()

    def describe(self) -> str:
        parts = [self.subject_id, self.primary]
        if self.secondary:
            parts[-1] = f"{self.primary} vs {self.secondary}"
        if self.discriminators:
            parts.append(",".join(f"{name}={value}" for name, value in self.discriminators))
        return " | ".join(parts)

    def __str__(self) -> str:
        return self.key


def build_fingerprint(
    subject_id: Any,
    primary_entity: Any,
    secondary_entity: Any = None,
    discriminators: Optional[Mapping[str, Any]] = None,
) -> Fingerprint:
    """构造缓存指纹

    Args:
        subject_id: 所属用户/账号标识 (必填)
        primary_entity: 主实体，如自己的域名 (必填)
        secondary_entity: 次实体，如竞品域名
        discriminators: 可选区分符，如 {"user_instagram": "@acme"}

    Returns:
        Fingerprint

    Raises:
        InvalidInput: 必填标识在规范化后为空，或区分符名称非法/重复
    """
    subject = normalize(subject_id, KeyKind.TEXT)
    if subject is None:
        raise InvalidInput("subject_id 不能为空")

    primary = normalize_domain(primary_entity)
    if primary is None:
        raise InvalidInput(f"primary_entity 无效: {primary_entity!r}")

    secondary = normalize_domain(secondary_entity)

    seen_names = set()
    pairs = {}
    for name, value in (discriminators or {}).items():
        clean_name = normalize(name, KeyKind.TEXT)
        if clean_name is None:
            raise InvalidInput("区分符名称不能为空")
        clean_name = clean_name.lower()
        if clean_name in seen_names:
            raise InvalidInput(f"区分符名称重复: {clean_name}")
        seen_names.add(clean_name)

        clean_value = normalize_handle(value)
        if clean_value is not None:
            pairs[clean_name] = clean_value

    fingerprint = Fingerprint(
        subject_id=subject,
        primary=primary,
        secondary=secondary,
        discriminators=tuple(sorted(pairs.items())),
    )
    logger.debug(f"构造指纹: {fingerprint.describe()} -> {fingerprint.key}")
    return fingerprint


def competitor_fingerprint(
    subject_id: Any,
    user_domain: Any,
    competitor_domain: Any,
    user_social: Optional[Mapping[str, Any]] = None,
    competitor_social: Optional[Mapping[str, Any]] = None,
) -> Fingerprint:
    """竞品对比缓存的指纹

    双方的 instagram / facebook 账号作为区分符参与匹配，
    同一域名对在不同社交账号下是不同的缓存条目。
    """
    discriminators = {}
    for side, handles in (("user", user_social or {}), ("competitor", competitor_social or {})):
        for platform in SOCIAL_PLATFORMS:
            discriminators[f"{side}_{platform}"] = handles.get(platform)

    return build_fingerprint(subject_id, user_domain, competitor_domain, discriminators)
