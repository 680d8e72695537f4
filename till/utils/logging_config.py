"""Logging for Till: one timestamped file per run plus an optional console stream."""

import logging
import os
import sys
import time
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Callable, Optional

LOG_DIR = Path.home() / ".till" / "logs"
LOG_FILE = LOG_DIR / f"till_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
LOG_GLOB = "till_*.log"

# Overrides the level passed to setup_logging, e.g. TILL_LOG_LEVEL=WARNING
LEVEL_ENV_VAR = "TILL_LOG_LEVEL"

SLOW_THRESHOLD_MS = 100
KEEP_LOG_FILES = 20

FILE_FORMAT = logging.Formatter(
    '%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)-24s | %(funcName)-18s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

CONSOLE_FORMAT = logging.Formatter('%(levelname)-7s %(message)s')


def _level_from_env(default: int) -> int:
    name = os.environ.get(LEVEL_ENV_VAR, "").strip().upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def setup_logging(level: int = logging.DEBUG, log_file: Optional[Path] = None,
                  console: bool = True, keep: int = KEEP_LOG_FILES) -> logging.Logger:
    """
    Configure the 'till' logger hierarchy.

    Args:
        level: Level for the 'till' logger, unless TILL_LOG_LEVEL is set.
        log_file: Log file to use instead of the timestamped default.
        console: Also echo INFO and above to stderr. Scheduled jobs pass
            False; cron mails anything written to stderr.
        keep: How many timestamped log files to retain in the log directory.

    Returns:
        The 'till' logger. Calling again only updates the level.
    """
    global LOG_FILE

    logger = logging.getLogger('till')
    logger.setLevel(_level_from_env(level))

    if logger.handlers:
        return logger

    if log_file is not None:
        LOG_FILE = Path(log_file)
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    prune_old_logs(LOG_FILE.parent, keep)

    file_handler = logging.FileHandler(LOG_FILE, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(FILE_FORMAT)
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(CONSOLE_FORMAT)
        logger.addHandler(console_handler)

    logger.debug(f"Logging to {LOG_FILE}")
    return logger


def prune_old_logs(directory: Path, keep: int = KEEP_LOG_FILES) -> list[Path]:
    """Delete all but the newest `keep` run logs. Returns the deleted paths."""
    if keep < 1:
        return []
    runs = sorted(Path(directory).glob(LOG_GLOB), key=lambda p: p.name, reverse=True)
    removed = []
    for path in runs[keep - 1:]:  # leave room for the file about to be opened
        try:
            path.unlink()
            removed.append(path)
        except OSError:
            continue
    return removed


def get_logger(name: str) -> logging.Logger:
    """Logger under the 'till' namespace, e.g. get_logger('cron') -> till.cron."""
    return logging.getLogger(f'till.{name}')


def timed(func: Optional[Callable] = None, *, threshold_ms: float = SLOW_THRESHOLD_MS):
    """
    Log how long a call took; slow calls are logged as warnings.

    Usable bare (@timed) or with a threshold (@timed(threshold_ms=500)).
    """
    def decorate(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            logger = get_logger('perf')
            start = time.perf_counter()
            try:
                result = fn(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                logger.error(f"{fn.__qualname__} failed after {elapsed:.2f}ms: {e}")
                raise
            elapsed = (time.perf_counter() - start) * 1000
            if elapsed > threshold_ms:
                logger.warning(f"SLOW: {fn.__qualname__} took {elapsed:.2f}ms")
            else:
                logger.debug(f"{fn.__qualname__} took {elapsed:.2f}ms")
            return result
        return wrapper

    if func is not None:
        return decorate(func)
    return decorate


class PerfTimer:
    """Times a block; used around external commands."""

    def __init__(self, name: str, logger: Optional[logging.Logger] = None,
                 threshold_ms: float = SLOW_THRESHOLD_MS):
        self.name = name
        self.logger = logger or get_logger('perf')
        self.threshold_ms = threshold_ms
        self.start: float = 0
        self.elapsed: float = 0

    def __enter__(self):
        self.start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.elapsed = (time.perf_counter() - self.start) * 1000
        if exc_type is not None:
            self.logger.debug(f"{self.name} raised {exc_type.__name__} after {self.elapsed:.2f}ms")
        elif self.elapsed > self.threshold_ms:
            self.logger.warning(f"SLOW: {self.name} took {self.elapsed:.2f}ms")
        else:
            self.logger.debug(f"{self.name} took {self.elapsed:.2f}ms")


def get_log_file_path() -> Path:
    return LOG_FILE


def get_recent_logs(lines: int = 100) -> str:
    """Last `lines` lines of the current log file."""
    try:
        with open(LOG_FILE, 'r', encoding='utf-8') as f:
            return ''.join(f.readlines()[-lines:])
    except OSError:
        return "Could not read log file"
