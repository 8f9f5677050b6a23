"""
observability/logger.py — Logging setup

structlog renders, stdlib logging routes. Every record lands as one JSON
object per line in `<log_dir>/tandem.log` (size-rotated). A copy can also
go to stdout: coloured key=value lines on an interactive terminal, JSON
when stdout is piped.

Context bound with bind_session() is merged into every line logged from
the same task and the tasks it creates:

    setup_logging(level="DEBUG", log_dir="./data/logs", console_output=False)
    bind_session("sess_1a2b", actor="planner")
    log = get_logger(__name__)
    log.info("scheduler.batch_start", calls=3)
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

LOG_FILE_NAME = "tandem.log"

# HTTP client libraries log every backend request at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "openai._base_client")

# Runs on structlog events and on plain stdlib records alike.
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
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_PRE_CHAIN,
    )


def setup_logging(
    level: str = "INFO",
    log_dir: str | Path = "./data/logs",
    json_format: Optional[bool] = None,
    console_output: bool = True,
    max_bytes: int = 100 * 1024 * 1024,
    backup_count: int = 5,
) -> Path:
    """
    Install the handlers and structlog configuration; returns the log file path.

    json_format only affects stdout (None picks pretty for a TTY, JSON
    otherwise). The file is always JSON. Calling again replaces the
    previous handlers.
    """
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / LOG_FILE_NAME

    threshold = getattr(logging, level.upper(), logging.INFO)
    if json_format is None:
        json_format = not sys.stdout.isatty()

    file_handler = logging.handlers.RotatingFileHandler(
        filename=log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    handlers: list[logging.Handler] = [file_handler]

    if console_output:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setFormatter(_formatter(
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(colors=True)
        ))
        handlers.append(stdout_handler)

    for handler in handlers:
        handler.setLevel(threshold)
    logging.basicConfig(level=threshold, handlers=handlers, force=True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=_PRE_CHAIN + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return log_file


def get_logger(name: str = "tandem", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Named logger, optionally pre-bound: get_logger(__name__, component="bus")."""
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


def bind_session(session_id: str, actor: str = "driver") -> None:
    """Tag every following line in this task with the session id and actor."""
    structlog.contextvars.bind_contextvars(session_id=session_id, actor=actor)


def clear_session() -> None:
    structlog.contextvars.clear_contextvars()
