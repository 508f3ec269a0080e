#!/usr/bin/env python3
"""
Tests for log setup and old log pruning.
"""

import logging
import os
import time
from datetime import datetime

from core.infra.logs import log_file_name, prune_logs, setup_logging

DAY = 86400


def test_log_file_name():
    assert log_file_name(datetime(2026, 3, 4, 5, 6)) == "scrape-20260304-0506.log"


def test_prune_logs_removes_only_old_scrape_logs(tmp_path):
    now = time.time()
    old = tmp_path / "scrape-20260101-0000.log"
    fresh = tmp_path / "scrape-20260110-0000.log"
    other = tmp_path / "notes.log"
    for path in (old, fresh, other):
        path.write_text("x")
    os.utime(old, (now - 8 * DAY, now - 8 * DAY))
    os.utime(fresh, (now - 2 * DAY, now - 2 * DAY))
    os.utime(other, (now - 30 * DAY, now - 30 * DAY))

    removed = prune_logs(tmp_path, 7, now=now)

    assert removed == [old]
    assert not old.exists()
    assert fresh.exists() and other.exists()


def test_setup_logging_tees_into_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        log_file = setup_logging(logging.INFO, log_dir=tmp_path / "logs")
        logging.getLogger("fragile").info("hello from the run")
        for handler in root.handlers:
            handler.flush()

        assert log_file is not None and log_file.parent == tmp_path / "logs"
        line = log_file.read_text(encoding="utf-8").strip()
        assert line.endswith("| fragile | INFO | hello from the run")
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)


def test_setup_logging_without_dir_returns_none():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        assert setup_logging(logging.WARNING) is None
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
