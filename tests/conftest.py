"""Shared fixtures for patchlevel tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
import structlog

from patchlevel.checkpoint import JsonPreferenceStore
from patchlevel.config import Settings

StepFileFactory = Callable[..., Path]


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Keep structlog from holding on to a captured stdout between tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment, rooted in tmp_path."""
    install_root = tmp_path / "app"
    install_root.mkdir()
    return Settings(
        _env_file=None,
        install_root=install_root,
        preferences_path=tmp_path / "data" / "preferences.json",
        updater_subject="demo",
        updater_default_path="../updates",
    )


@pytest.fixture
def prefs(settings: Settings) -> JsonPreferenceStore:
    return JsonPreferenceStore(settings.preferences_path)


@pytest.fixture
def calls_log(tmp_path: Path) -> Path:
    """File that update files append their version to."""
    return tmp_path / "calls.log"


@pytest.fixture
def make_step_file(calls_log: Path) -> StepFileFactory:
    """Write an update file that records its version and returns *result*."""

    def _make(directory: Path, version: str, result: str = "True", suffix: str = ".py") -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{version}{suffix}"
        path.write_text(
            "from pathlib import Path\n"
            "\n"
            "\n"
            "def upgrade(context):\n"
            f"    with Path({str(calls_log)!r}).open('a', encoding='utf-8') as fh:\n"
            "        fh.write(f'{context.old}->{context.version}\\n')\n"
            f"    return {result}\n",
            encoding="utf-8",
        )
        return path

    return _make


@pytest.fixture
def read_calls(calls_log: Path) -> Callable[[], list[str]]:
    """Return the transitions recorded by update files so far."""

    def _read() -> list[str]:
        if not calls_log.exists():
            return []
        return calls_log.read_text(encoding="utf-8").splitlines()

    return _read
