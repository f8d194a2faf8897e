"""缓存维护命令行

用法:
    python -m dashcache sweep
    python -m dashcache janitor --interval 600
    python -m dashcache invalidate competitor <fingerprint>
    python -m dashcache clear-subject user-42 --resource backlinks
    python -m dashcache stats --subject user-42
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from typing import List, Optional

from dotenv import load_dotenv

from dashcache.cache.cache_service import open_cache
from dashcache.cache.gc import open_janitor
from dashcache.cache.resources import ResourceType, resolve_resource
from dashcache.core.utils.logger import setup_logger
from dashcache.settings import get_janitor_settings

logger = setup_logger("cli")

RESOURCE_CHOICES = [resource.name.lower() for resource in ResourceType]


def _resources(name: Optional[str]) -> List[ResourceType]:
    if name:
        return [resolve_resource(name)]
    return list(ResourceType)


def _cmd_sweep(args: argparse.Namespace) -> int:
    janitor = open_janitor(resources=_resources(args.resource))
    try:
        stats = janitor.run_gc()
    finally:
        janitor.close()

    for table, item in stats.items():
        state = "正常" if item["available"] else "不可用"
        if not item["available"]:
            logger.warning(f"清理跳过不可用的表: {table}")
        print(f"{table}: 删除 {item['deleted']} 条 ({state})")
    total = sum(item["deleted"] for item in stats.values())
    print(f"共删除: {total} 条")
    return 0 if all(item["available"] for item in stats.values()) else 1


def _cmd_janitor(args: argparse.Namespace) -> int:
    interval = args.interval or get_janitor_settings().interval_seconds
    janitor = open_janitor(resources=_resources(args.resource))
    janitor.start_background(interval)
    print(f"定时清理已启动，间隔 {interval} 秒，Ctrl+C 停止")
    try:
        while janitor.running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        print("正在停止定时清理...")
        logger.info("定时清理被用户中断")
    finally:
        janitor.close()
    return 0


def _cmd_invalidate(args: argparse.Namespace) -> int:
    cache = open_cache(args.resource)
    try:
        deleted = cache.invalidate(args.fingerprint)
    finally:
        cache.close()
    print(f"{cache.name}: {'已删除' if deleted else '不存在'} {args.fingerprint}")
    return 0 if deleted else 1


def _cmd_clear_subject(args: argparse.Namespace) -> int:
    total = 0
    for resource in _resources(args.resource):
        cache = open_cache(resource)
        try:
            count = cache.clear_subject(args.subject_id)
        finally:
            cache.close()
        print(f"{resource.table_name}: 清空 {count} 条")
        total += count
    print(f"共清空: {total} 条")
    return 0


def _cmd_stats(args: argparse.Namespace) -> int:
    results = []
    for resource in _resources(args.resource):
        cache = open_cache(resource)
        try:
            results.append(cache.get_stats(args.subject))
        finally:
            cache.close()
    print(json.dumps(results, ensure_ascii=False, indent=2))
    return 0 if all(item["available"] for item in results) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dashcache",
        description="第三方数据缓存维护工具",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sweep = subparsers.add_parser("sweep", help="执行一次过期条目清理")
    sweep.add_argument("--resource", choices=RESOURCE_CHOICES, help="只处理该资源类型")
    sweep.set_defaults(func=_cmd_sweep)

    janitor = subparsers.add_parser("janitor", help="按固定间隔持续清理过期条目")
    janitor.add_argument(
        "--interval",
        type=int,
        default=None,
        help="清理间隔秒数 (默认取 CACHE_JANITOR_INTERVAL_SECONDS)",
    )
    janitor.add_argument("--resource", choices=RESOURCE_CHOICES, help="只处理该资源类型")
    janitor.set_defaults(func=_cmd_janitor)

    invalidate = subparsers.add_parser("invalidate", help="按 fingerprint 删除单条缓存")
    invalidate.add_argument("resource", choices=RESOURCE_CHOICES)
    invalidate.add_argument("fingerprint")
    invalidate.set_defaults(func=_cmd_invalidate)

    clear = subparsers.add_parser("clear-subject", help="清空某个用户的全部缓存")
    clear.add_argument("subject_id")
    clear.add_argument("--resource", choices=RESOURCE_CHOICES, help="只处理该资源类型")
    clear.set_defaults(func=_cmd_clear_subject)

    stats = subparsers.add_parser("stats", help="按资源类型显示条目统计")
    stats.add_argument("--subject", default=None, help="只统计该用户的条目")
    stats.add_argument("--resource", choices=RESOURCE_CHOICES, help="只处理该资源类型")
    stats.set_defaults(func=_cmd_stats)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
