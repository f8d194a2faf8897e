"""日志工具，所有模块通过 setup_logger 获取 logger"""

import logging
from logging.handlers import RotatingFileHandler

from dashcache.config import (
    LOG_BACKUP_COUNT,
    LOG_FILE,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_MAX_BYTES,
)


def setup_logger(
    name: str,
    level: int = LOG_LEVEL,
    log_to_file: bool = True,
) -> logging.Logger:
    """获取配置好的 logger

    同名 logger 只添加一次 handler，模块导入时重复调用是安全的。

    Args:
        name: logger 名称，通常为模块短名
        level: 日志级别
        log_to_file: 是否同时写入 LOG_PATH 下的滚动日志文件

    Returns:
        logging.Logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_to_file:
        try:
            LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                LOG_FILE,
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning(f"日志文件不可用，仅输出到控制台: {e}")
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    logger.propagate = False
    return logger
