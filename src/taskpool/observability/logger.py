"""
observability/logger.py — taskpool Structured Logging

structlog routed through the stdlib logging tree:
  - the rotating file under log_dir always receives one JSON object per line
  - stderr receives coloured key=value lines, or JSON when json_format is set
  - every line carries timestamp, level, logger name and event, plus any
    context bound with bind_pool()

Usage:
    from taskpool.observability.logger import get_logger, setup_logging_from_settings

    setup_logging_from_settings(settings)   # once, before the first pool is built
    log = get_logger(__name__)
    log.info("pool.task_start", seq=3, running=2)
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

LOG_FILE_NAME = "taskpool.log"

# Applied to structlog events and to records from plain stdlib loggers alike.
_PRE_CHAIN: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=_PRE_CHAIN,
    )


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[str | Path] = "./data/logs",
    json_format: bool = True,
    console_output: bool = True,
    max_bytes: int = 100 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Install handlers on the root logger and point structlog at them.
    Safe to call again; the previous handlers are replaced.

    Args:
        level:          Minimum level name for both handlers.
        log_dir:        Where taskpool.log rotates. None means no file output.
        json_format:    JSON on stderr instead of the coloured dev renderer.
        console_output: False silences stderr entirely.
        max_bytes:      Rotation threshold for taskpool.log.
        backup_count:   Rotated files kept alongside taskpool.log.
    """
    threshold = getattr(logging, level.upper(), logging.INFO)
    handlers: list[logging.Handler] = []

    if log_dir is not None:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            filename=directory / LOG_FILE_NAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        rotating.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        handlers.append(rotating)

    if console_output:
        stderr = logging.StreamHandler(sys.stderr)
        console_renderer = (
            structlog.processors.JSONRenderer()
            if json_format
            else structlog.dev.ConsoleRenderer(colors=True)
        )
        stderr.setFormatter(_formatter(console_renderer))
        handlers.append(stderr)

    for handler in handlers:
        handler.setLevel(threshold)

    logging.basicConfig(format="%(message)s", level=threshold, handlers=handlers, force=True)

    structlog.configure(
        processors=_PRE_CHAIN + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def setup_logging_from_settings(settings) -> None:
    """Configure logging from a Settings instance's `logging` section."""
    cfg = settings.logging
    setup_logging(
        level=cfg.level,
        log_dir=cfg.log_dir,
        json_format=cfg.json_format,
        console_output=cfg.console_output,
        max_bytes=cfg.max_file_size_mb * 1024 * 1024,
        backup_count=cfg.backup_count,
    )


def get_logger(name: str = "taskpool", **context: Any) -> structlog.stdlib.BoundLogger:
    """
    Return a structlog logger named `name`, with `context` bound to every
    line it emits.

        log = get_logger(__name__, component="pool")
        log.info("pool.drained", finished=4)
        # {"event": "pool.drained", "finished": 4, "component": "pool",
        #  "logger": "taskpool.scheduler.pool", "level": "info", ...}
    """
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger


def bind_pool(pool_id: str) -> None:
    """
    Tag subsequent log lines in this async context with `pool_id`.

    Task bodies started afterwards inherit the binding, since asyncio copies
    the current context into every task it creates.
    """
    structlog.contextvars.bind_contextvars(pool_id=pool_id)


def clear_pool() -> None:
    structlog.contextvars.unbind_contextvars("pool_id")
