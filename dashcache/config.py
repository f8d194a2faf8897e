import logging
import os
from pathlib import Path

VERSION = "v0.3.0"
APP_NAME = "dashcache"

# 核心路径
ROOT_PATH = Path(__file__).parent.parent

DATA_PATH = Path(os.getenv("DASHCACHE_DATA_PATH", str(ROOT_PATH / "AppData")))

LOG_PATH = DATA_PATH / "logs"
LOG_FILE = LOG_PATH / "dashcache.log"
DEFAULT_DB_PATH = DATA_PATH / "cache.db"

# 日志配置
LOG_LEVEL = logging.INFO
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
# 单个日志文件上限与保留份数
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3
