"""Runtime logging configuration."""
from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

_CONFIGURED = False


def _int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def configure_logging(level_name: str | None = None) -> None:
    """Configure console logging, plus a rotating file when CODEX_LOG_PATH is set.

    Runs once per process; later calls are ignored.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    name = (level_name or os.environ.get("CODEX_LOG_LEVEL", "WARNING")).strip().upper() or "WARNING"
    level = getattr(logging, name, logging.WARNING)
    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(stream_handler)

    log_path_raw = os.environ.get("CODEX_LOG_PATH", "").strip()
    if log_path_raw:
        log_path = Path(log_path_raw)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=log_path,
            maxBytes=_int_env("CODEX_LOG_MAX_BYTES", 1024 * 1024, minimum=64 * 1024, maximum=100 * 1024 * 1024),
            backupCount=_int_env("CODEX_LOG_BACKUP_COUNT", 3, minimum=1, maximum=50),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    _CONFIGURED = True
