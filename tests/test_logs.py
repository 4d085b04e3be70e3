from __future__ import annotations

import logging
from datetime import date

import pytest

from flashcrawl.logs import log_file_paths, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def _file_handlers(root):
    return [h for h in root.handlers if isinstance(h, logging.FileHandler)]


def test_log_file_paths(tmp_path):
    info, error = log_file_paths(tmp_path, date(2024, 3, 9))
    assert info == tmp_path / "flashcrawl-2024-03-09.log"
    assert error == tmp_path / "flashcrawl-error-2024-03-09.log"


def test_daily_files_written(tmp_path, restore_root_logger):
    log_dir = tmp_path / "logs"
    setup_logging(False, str(log_dir))
    setup_logging(False, str(log_dir))

    handlers = _file_handlers(restore_root_logger)
    assert sorted(h.level for h in handlers) == [logging.INFO, logging.ERROR]

    logger = logging.getLogger("flashcrawl.test")
    logger.info("crawl finished")
    logger.error("crawl failed")
    for handler in handlers:
        handler.flush()

    info_path, error_path = log_file_paths(log_dir)
    assert "crawl finished" in info_path.read_text(encoding="utf-8")
    error_text = error_path.read_text(encoding="utf-8")
    assert "crawl failed" in error_text
    assert "crawl finished" not in error_text


def test_log_dir_from_environment(tmp_path, monkeypatch, restore_root_logger):
    monkeypatch.setenv("FLASHCRAWL_LOG_DIR", str(tmp_path))
    setup_logging(True)

    assert restore_root_logger.level == logging.DEBUG
    assert len(_file_handlers(restore_root_logger)) == 2
    assert logging.getLogger("httpx").level == logging.WARNING


def test_console_only_by_default(restore_root_logger):
    before = len(_file_handlers(restore_root_logger))
    setup_logging()
    assert len(_file_handlers(restore_root_logger)) == before
