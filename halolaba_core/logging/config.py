# =============================================================================
# halolaba_core/logging/config.py
# Logging Configuration for HaloLaba
# =============================================================================
"""
The host app calls setup_logging() once at startup. Modules in this package
only ever ask for a logger; they never attach handlers themselves.
"""

import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_DIR = Path("logs")

# Overrides the level when setup_logging() is called without one
LEVEL_ENV = "HALOLABA_LOG_LEVEL"

# Every probe and every query logs a request line at INFO
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "hpack", "supabase", "postgrest")


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = os.environ.get(LEVEL_ENV, "INFO")
    if isinstance(level, int):
        return level

    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def setup_logging(
    level: Union[int, str, None] = None,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
) -> Optional[Path]:
    """
    Configure the root logger for the cashier app.

    Args:
        level: Level number or name; defaults to $HALOLABA_LOG_LEVEL, then INFO
        log_to_file: Also write to a dated file under LOG_DIR
        log_filename: File name inside LOG_DIR (default: halolaba_YYYY-MM-DD.log)

    Returns:
        Path of the log file, or None when logging to stdout only
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    log_path = None

    if log_to_file:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        log_path = LOG_DIR / (log_filename or f"halolaba_{datetime.now():%Y-%m-%d}.log")
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=_resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("halolaba_core").info(
        f"Logging initialized ({logging.getLevelName(logging.getLogger().level)})"
    )
    return log_path


def get_logger(name: str) -> logging.Logger:
    """
    Usage:
        from halolaba_core.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)


class LogContext:
    """
    Times a block and logs its start and outcome.

    The measured duration stays available as `elapsed` after the block exits.

    Usage:
        with LogContext(logger, "Replaying 5 queued operations") as ctx:
            ...
        state.last_duration = ctx.elapsed
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.elapsed: Optional[float] = None
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.monotonic()
        self.logger.log(self.level, f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.monotonic() - self._started

        if exc_type is None:
            self.logger.log(self.level, f"{self.operation}... completed ({self.elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.operation}... failed ({self.elapsed:.2f}s): {exc_val}",
                exc_info=True,
            )
        return False
