"""DubSync logging utilities."""
from __future__ import annotations
import logging
import logging.handlers
from pathlib import Path
from typing import Iterable

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 5

# Modules under shared/ log here; every program also wants those records
SHARED_LOGGER = "dubsync.shared"


def _handlers(log_file: Path, level: int, console_level: int) -> list[logging.Handler]:
    fmt = logging.Formatter(LOG_FORMAT)
    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )
    file_handler.setLevel(level)
    console = logging.StreamHandler()
    console.setLevel(console_level)
    for handler in (file_handler, console):
        handler.setFormatter(fmt)
    return [file_handler, console]


def setup_rotating_logger(name: str, log_dir: Path, level: int = logging.DEBUG,
                          console_level: int = logging.INFO,
                          also: Iterable[str] = (SHARED_LOGGER,)) -> logging.Logger:
    """
    Log one program (`dubsync.server`, `dubsync.client`, ...) to
    `<log_dir>/<name>.log` and the console. Loggers listed in `also` get the
    same handlers unless something already configured them.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    handlers = _handlers(log_dir / f"{name}.log", level, console_level)
    for target in [logger, *(logging.getLogger(n) for n in also)]:
        if target is not logger and target.handlers:
            continue
        target.setLevel(level)
        for handler in handlers:
            target.addHandler(handler)
    return logger
