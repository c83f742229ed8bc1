#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
统一的日志配置模块

- 每行日志带文件名、行号以及 trace / chat / device 上下文
- 控制台按 console_level 输出；给了 log_dir 时再写一份按大小轮转的文件日志
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .core.context import current

LOG_FILE_NAME = "device_relay.log"
LOG_FILE_MAX_BYTES = 50 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# 第三方库太吵，只看告警
_NOISY_LOGGERS = ("uvicorn.access", "urllib3", "httpx")


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for name, value in current().items():
            setattr(record, name, value or "-")
        return True


def _formatter() -> logging.Formatter:
    return logging.Formatter(
        "%(asctime)s - %(levelname)s - %(name)s - [%(filename)s:%(lineno)d] "
        "- trace=%(trace_id)s chat=%(chat_id)s device=%(device_id)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _attach(root: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(_formatter())
    handler.addFilter(_ContextFilter())
    root.addHandler(handler)


def setup_logging(log_dir: str | None = None, *, console_level: int = logging.INFO) -> logging.Logger:
    """配置根日志记录器；重复调用会替换掉之前的处理器。"""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    _attach(root_logger, logging.StreamHandler(), console_level)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=path / LOG_FILE_NAME,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        _attach(root_logger, file_handler, logging.DEBUG)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
