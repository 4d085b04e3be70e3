from __future__ import annotations

import shutil
from pathlib import Path
from typing import List

from flashcrawl.cli_config import load_config


class Recorder:
    def __init__(self) -> None:
        self.loaded: List[Path] = []

    def __call__(self, path: Path) -> bool:
        self.loaded.append(path)
        return True


def _layout(tmp_path: Path):
    cwd = tmp_path / "work"
    cwd.mkdir()
    config_dir = tmp_path / "config" / "flashcrawl"
    return cwd, config_dir, config_dir / ".env"


def test_prefers_cwd_env(tmp_path):
    cwd, config_dir, config_file = _layout(tmp_path)
    (cwd / ".env").write_text("FLASHCRAWL_NAV_ATTEMPTS=2\n")
    config_dir.mkdir(parents=True)
    config_file.write_text("FLASHCRAWL_NAV_ATTEMPTS=3\n")
    loader = Recorder()

    loaded = load_config(
        config_dir=config_dir,
        config_env_file=config_file,
        cwd=cwd,
        load_env=loader,
        copy_file=shutil.copy,
    )

    assert loaded == cwd / ".env"
    assert loader.loaded == [cwd / ".env"]


def test_falls_back_to_config_dir(tmp_path):
    cwd, config_dir, config_file = _layout(tmp_path)
    config_dir.mkdir(parents=True)
    config_file.write_text("FLASHCRAWL_NAV_ATTEMPTS=3\n")
    loader = Recorder()

    loaded = load_config(
        config_dir=config_dir,
        config_env_file=config_file,
        cwd=cwd,
        load_env=loader,
        copy_file=shutil.copy,
    )

    assert loaded == config_file
    assert loader.loaded == [config_file]


def test_seeds_config_from_example(tmp_path):
    cwd, config_dir, config_file = _layout(tmp_path)
    example = tmp_path / ".env.example"
    example.write_text("# FLASHCRAWL_SESSION_COOKIE=\n")
    loader = Recorder()

    loaded = load_config(
        config_dir=config_dir,
        config_env_file=config_file,
        cwd=cwd,
        load_env=loader,
        copy_file=shutil.copy,
        example_file=example,
    )

    assert loaded == config_file
    assert config_file.read_text() == "# FLASHCRAWL_SESSION_COOKIE=\n"
    assert loader.loaded == [config_file]


def test_nothing_to_load(tmp_path):
    cwd, config_dir, config_file = _layout(tmp_path)
    loader = Recorder()

    loaded = load_config(
        config_dir=config_dir,
        config_env_file=config_file,
        cwd=cwd,
        load_env=loader,
        copy_file=shutil.copy,
        example_file=tmp_path / "missing.example",
    )

    assert loaded is None
    assert loader.loaded == []
    assert not config_dir.exists()


def test_copy_failure_is_not_fatal(tmp_path):
    cwd, config_dir, config_file = _layout(tmp_path)
    example = tmp_path / ".env.example"
    example.write_text("X=1\n")
    loader = Recorder()

    def failing_copy(src, dst):
        raise PermissionError("read-only")

    loaded = load_config(
        config_dir=config_dir,
        config_env_file=config_file,
        cwd=cwd,
        load_env=loader,
        copy_file=failing_copy,
        example_file=example,
    )

    assert loaded is None
    assert loader.loaded == []
