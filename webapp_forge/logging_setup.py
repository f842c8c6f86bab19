from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import List, Optional

from webapp_forge.config import APP_DIR_NAME

EVENT_LOGGER_NAME = "webapp_forge.events"
_HANDLER_TAG = "_webapp_forge_handler"


def _safe_mkdir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
        return True
    except OSError:
        # Logging falls back to stderr only.
        return False


def flag_from_env(var: str, default: bool) -> bool:
    value = os.getenv(var)
    if value is None:
        return default
    return str(value).strip().lower() not in {"0", "false", "off", "no", "none", ""}


def log_dir() -> Path:
    state_home = os.getenv("XDG_STATE_HOME") or str(Path.home() / ".local" / "state")
    return Path(state_home) / APP_DIR_NAME / "logs"


class _ConsoleFormatter(logging.Formatter):
    """``warning: message`` style lines, the way shell tools report."""

    def format(self, record: logging.LogRecord) -> str:
        return f"{record.levelname.lower()}: {record.getMessage()}"


def _tag(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_TAG, True)
    return handler


def _drop_own_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            logger.removeHandler(handler)
            handler.close()


def _file_handler(path: Path) -> Optional[logging.Handler]:
    if not _safe_mkdir(path.parent):
        return None
    try:
        handler = logging.handlers.RotatingFileHandler(
            path,
            maxBytes=1_000_000,
            backupCount=2,
            encoding="utf-8",
            delay=True,
        )
    except OSError:
        return None
    handler.setLevel(logging.INFO)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    )
    return handler


def setup_logging(verbose: bool = False, log_name: str = APP_DIR_NAME) -> None:
    """
    Console diagnostics on stderr plus a rotating log file.

    Warnings and errors always reach the console; ``info:`` lines only when
    ``verbose``. The file log is skipped when ``WEBAPP_LOG_FILE=0``. Calling
    this again replaces the handlers installed by a previous call.
    """
    root = logging.getLogger()
    _drop_own_handlers(root)
    handlers: List[logging.Handler] = []

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.INFO if verbose else logging.WARNING)
    console.setFormatter(_ConsoleFormatter())
    handlers.append(console)

    directory = log_dir()
    if flag_from_env("WEBAPP_LOG_FILE", True):
        file_handler = _file_handler(directory / f"{log_name}.log")
        if file_handler is not None:
            handlers.append(file_handler)

    for handler in handlers:
        root.addHandler(_tag(handler))
    root.setLevel(logging.INFO)

    # Dedicated structured event logger (JSON lines), file only.
    event_logger = logging.getLogger(EVENT_LOGGER_NAME)
    _drop_own_handlers(event_logger)
    event_logger.setLevel(logging.INFO)
    event_logger.propagate = False
    if flag_from_env("WEBAPP_LOG_FILE", True):
        event_handler = _file_handler(directory / f"{log_name}_events.log")
        if event_handler is not None:
            event_logger.addHandler(_tag(event_handler))


__all__ = ["EVENT_LOGGER_NAME", "flag_from_env", "log_dir", "setup_logging"]
