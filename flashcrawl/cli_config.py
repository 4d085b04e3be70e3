"""Configuration loading helpers for CLI entrypoints."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "flashcrawl"
CONFIG_ENV_FILE = CONFIG_DIR / ".env"


def load_config(
    *,
    config_dir: Path,
    config_env_file: Path,
    cwd: Path,
    load_env: Callable[[Path], bool],
    copy_file: Callable[[Path, Path], str],
    example_file: Optional[Path] = None,
) -> Optional[Path]:
    """Load .env configuration with fallback to the user config directory.

    Search order:
    1. .env in the current working directory
    2. ``config_env_file`` (``~/.config/flashcrawl/.env``)

    When neither exists, ``.env.example`` is copied to ``config_env_file`` as a
    starting point. Returns the file that was loaded, if any.
    """
    local_env = cwd / ".env"
    if local_env.is_file():
        load_env(local_env)
        return local_env

    if config_env_file.is_file():
        load_env(config_env_file)
        return config_env_file

    example = example_file or Path(__file__).parent.parent / ".env.example"
    if not example.is_file():
        return None

    try:
        config_dir.mkdir(parents=True, exist_ok=True)
        copy_file(example, config_env_file)
    except OSError as exc:
        LOGGER.debug("Could not seed %s: %s", config_env_file, exc)
        return None

    LOGGER.info(
        "Created config file at %s from .env.example. "
        "Edit it to set a session cookie or browser path.",
        config_env_file,
    )
    load_env(config_env_file)
    return config_env_file
