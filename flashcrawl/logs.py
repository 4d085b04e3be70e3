"""Logging setup shared by the CLI and the MCP server."""

from __future__ import annotations

import logging
import os
from datetime import date
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
FILE_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def log_file_paths(log_dir: Path, today: Optional[date] = None) -> tuple[Path, Path]:
    stamp = (today or date.today()).isoformat()
    return (
        log_dir / f"flashcrawl-{stamp}.log",
        log_dir / f"flashcrawl-error-{stamp}.log",
    )


def setup_logging(verbose: bool = False, log_dir: Optional[str] = None) -> None:
    """Configure console logging and, when *log_dir* is set, daily log files.

    ``log_dir`` falls back to ``FLASHCRAWL_LOG_DIR``. Console output goes to
    stderr so stdio transports stay clean.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")
    root = logging.getLogger()
    root.setLevel(level)

    target = log_dir or os.getenv("FLASHCRAWL_LOG_DIR")
    if target:
        directory = Path(target).expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        info_path, error_path = log_file_paths(directory)
        existing = {
            getattr(handler, "baseFilename", None) for handler in root.handlers
        }
        formatter = logging.Formatter(FILE_LOG_FORMAT)
        for path, file_level in ((info_path, logging.INFO), (error_path, logging.ERROR)):
            if os.path.abspath(path) in existing:
                continue
            handler = logging.FileHandler(path, encoding="utf-8")
            handler.setLevel(file_level)
            handler.setFormatter(formatter)
            root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(
            logging.ERROR if name == "asyncio" else logging.WARNING
        )
