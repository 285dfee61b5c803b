from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TextIO

from fivewhy.core.errors import ConfigError

from .json_formatter import JSONFormatter

_LOGGER_NAME = "fivewhy"
_CONFIGURED_ATTR = "_fivewhy_json_logging"
# Third-party loggers that share the fivewhy handlers, with the floor they log at.
_LIBRARY_LEVELS = {"apscheduler": logging.WARNING, "httpx": logging.WARNING}


def _parse_level(raw: str) -> int:
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _file_logging_enabled() -> bool:
    return os.getenv("FIVEWHY_LOG_TO_FILE", "off").strip().casefold() in {"1", "true", "yes", "on"}


def _ensure_handler(logger: logging.Logger, handler: logging.Handler) -> None:
    setattr(handler, _CONFIGURED_ATTR, True)
    logger.addHandler(handler)


def _rotating_handler(state_dir: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    log_dir = Path(os.getenv("FIVEWHY_LOG_DIR") or (state_dir / "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=log_dir / "fivewhy.log",
        maxBytes=_int_env("FIVEWHY_LOG_MAX_BYTES", 5_000_000),
        backupCount=_int_env("FIVEWHY_LOG_BACKUP_COUNT", 5),
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def configure_logging(state_dir: Path, level: str | None = None, stream: TextIO | None = None) -> logging.Logger:
    """Attach JSON handlers to the ``fivewhy`` logger; safe to call repeatedly.

    Scheduler and HTTP client libraries are routed through the same handlers
    at WARNING so job runs and retries do not flood the pipeline log.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(_parse_level(level or os.getenv("FIVEWHY_LOG_LEVEL", "INFO")))
    logger.propagate = False

    formatter = JSONFormatter()
    configured = [handler for handler in logger.handlers if getattr(handler, _CONFIGURED_ATTR, False)]

    if not any(not isinstance(handler, RotatingFileHandler) for handler in configured):
        stream_handler = logging.StreamHandler(stream=stream or sys.stdout)
        stream_handler.setFormatter(formatter)
        _ensure_handler(logger, stream_handler)

    if _file_logging_enabled() and not any(isinstance(handler, RotatingFileHandler) for handler in configured):
        _ensure_handler(logger, _rotating_handler(state_dir, formatter))

    for name, floor in _LIBRARY_LEVELS.items():
        library = logging.getLogger(name)
        library.setLevel(max(floor, logger.level))
        library.propagate = False
        library.handlers = [handler for handler in logger.handlers if getattr(handler, _CONFIGURED_ATTR, False)]

    return logger
