"""
Logging setup and log-file housekeeping for scheduled runs.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_PATTERN = "scrape-*.log"


def log_file_name(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"scrape-{now:%Y%m%d-%H%M}.log"


def prune_logs(log_dir: Path, retention_days: float, *, now: Optional[float] = None) -> List[Path]:
    """Delete ``scrape-*.log`` files older than *retention_days*; returns what was removed."""
    now = now if now is not None else time.time()
    cutoff = now - retention_days * 86400
    removed: List[Path] = []
    for path in sorted(log_dir.glob(LOG_PATTERN)):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed.append(path)
        except OSError as e:
            logging.getLogger(__name__).warning("Could not remove old log %s: %s", path, e)
    return removed


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Optional[Path] = None,
    retention_days: float = 7,
) -> Optional[Path]:
    """Configure root logging; with *log_dir* also tee into a timestamped file.

    Returns the path of the log file, if one was opened.
    """
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    log_file: Optional[Path] = None

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        prune_logs(log_dir, retention_days)
        log_file = log_dir / log_file_name()
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    return log_file
