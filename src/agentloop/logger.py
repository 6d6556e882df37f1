"""Centralized logger for the agent runtime.

Writes a structured, always-on log to <workspace>/.agentloop/agentloop.log
so a task's timeline (parse failures, permission denials, diff failures,
truncations) can be reconstructed after the fact.

Usage in any module:
    from .logger import get_logger
    log = get_logger("dispatcher")
    log.info("tool denied: %s", name)

The log file rotates at 5 MB and keeps the last 5 files.
"""

import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_DIR_NAME = ".agentloop"
LOG_FILE_NAME = "agentloop.log"

# ── Singleton state ──────────────────────────────────────────

_initialized = False
_log_dir: Optional[Path] = None
_file_handler: Optional[RotatingFileHandler] = None

_FORMATTER = logging.Formatter(
    fmt="%(asctime)s.%(msecs)03d | %(levelname)-5s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _ensure_log_dir(workspace: Optional[str] = None) -> Path:
    """Return (and create) the log directory."""
    global _log_dir
    if workspace:
        _log_dir = Path(workspace) / LOG_DIR_NAME
    elif _log_dir is None:
        _log_dir = Path.cwd() / LOG_DIR_NAME
    _log_dir.mkdir(parents=True, exist_ok=True)
    return _log_dir


def _file_handler_for(log_path: Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=5 * 1024 * 1024,   # 5 MB per file
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(_FORMATTER)
    return handler


def init_logging(workspace: Optional[str] = None, level: int = logging.DEBUG) -> None:
    """Initialise the file logger.  Safe to call more than once.

    A later call with a different workspace moves the file handler there.
    """
    global _initialized, _file_handler

    previous_dir = _log_dir
    log_dir = _ensure_log_dir(workspace)
    root = logging.getLogger("agentloop")
    log_path = log_dir / LOG_FILE_NAME

    if _initialized:
        if _file_handler is not None and log_dir != previous_dir:
            root.removeHandler(_file_handler)
            _file_handler.close()
            _file_handler = _file_handler_for(log_path, level)
            root.addHandler(_file_handler)
            root.info("=== Log moved === log=%s", log_path)
        return
    _initialized = True

    root.setLevel(level)

    # Avoid duplicate handlers if an embedding application configured us
    if root.handlers:
        return

    _file_handler = _file_handler_for(log_path, level)
    root.addHandler(_file_handler)

    if os.environ.get("AGENTLOOP_DEBUG"):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.DEBUG)
        stderr_handler.setFormatter(_FORMATTER)
        root.addHandler(stderr_handler)

    root.info(
        "=== Logging initialised === pid=%d python=%s log=%s",
        os.getpid(),
        sys.version.split()[0],
        log_path,
    )


def get_log_path() -> Optional[Path]:
    """Path of the active log file, or None before initialisation."""
    return _log_dir / LOG_FILE_NAME if _log_dir is not None else None


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the 'agentloop' namespace.

    Initialises logging on first call so that modules imported before
    init_logging() still get a working logger.
    """
    if not _initialized:
        init_logging()
    return logging.getLogger(f"agentloop.{name}")


# ── Convenience helpers ──────────────────────────────────────

def log_exception(logger: logging.Logger, msg: str, exc: BaseException) -> None:
    """Log an exception with full traceback."""
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("%s: %s\n%s", msg, exc, "".join(tb))


def truncate(text: str, max_len: int = 200) -> str:
    """Truncate a string for log readability."""
    if not text:
        return "(empty)"
    text = text.replace("\n", "\\n")
    if len(text) <= max_len:
        return text
    return text[:max_len] + f"...[{len(text)} chars]"
