"""日志配置."""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from beansnews.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "beansnews.log"
LOG_BACKUP_DAYS = 7

# 第三方库日志过于冗长，单独压低级别
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite", "apscheduler")


def setup_logging(settings: Settings) -> None:
    """配置根日志（启动时调用一次）.

    控制台始终输出；设置了 ``log_dir`` 时额外写入按天轮转的日志文件，保留 7 天。
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            TimedRotatingFileHandler(
                log_dir / LOG_FILE_NAME,
                when="midnight",
                backupCount=LOG_BACKUP_DAYS,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        level=settings.log_level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    quiet_level = max(logging.getLevelName(settings.log_level), logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).debug(
        f"日志已配置: level={settings.log_level}, dir={settings.log_dir or '-'}"
    )
