"""Checkpoint persistence.

The runner only needs ``get(subject)`` and ``set(subject, version)``; a store
signals a failed write by returning False and an unreadable store by raising
``CheckpointReadError``. ``JsonPreferenceStore`` is the
durable host preference store (one JSON file of string preferences) and
``PreferenceCheckpointStore`` keeps checkpoints in it.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from patchlevel.constants import INITIAL_VERSION, PREF_CHECKPOINT_PREFIX
from patchlevel.exceptions import CheckpointReadError, ConfigurationError
from patchlevel.logging import get_logger

log = get_logger("patchlevel.checkpoint")


@runtime_checkable
class CheckpointStore(Protocol):
    """Last applied version per subject."""

    def get(self, subject: str) -> str: ...

    def set(self, subject: str, version: str) -> bool: ...


class MemoryCheckpointStore:
    """Process-local checkpoints, mostly for tests and dry runs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._versions: dict[str, str] = dict(initial or {})

    def get(self, subject: str) -> str:
        return self._versions.get(subject, INITIAL_VERSION)

    def set(self, subject: str, version: str) -> bool:
        self._versions[subject] = version
        return True


class JsonPreferenceStore:
    """String preferences persisted to a single JSON file.

    Every write re-reads the file, applies the change and atomically replaces
    it. Writes within one process are serialised; concurrent writers in
    separate processes are not coordinated.

    Only a missing file counts as empty. A file that cannot be read or parsed
    raises ``CheckpointReadError`` from every method and is never overwritten.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, name: str, default: str = "") -> str:
        value = self._load().get(name)
        return default if value is None else str(value)

    def names(self) -> list[str]:
        return sorted(self._load())

    def set(self, name: str, value: str) -> bool:
        with self._lock:
            data = self._load()
            data[name] = str(value)
            return self._save(data)

    def delete_prefix(self, prefix: str) -> int:
        """Delete every preference whose name starts with *prefix*."""
        with self._lock:
            data = self._load()
            doomed = [name for name in data if name.startswith(prefix)]
            if not doomed:
                return 0
            for name in doomed:
                del data[name]
            if not self._save(data):
                raise ConfigurationError(f"Unable to remove preferences from {self._path}")
            return len(doomed)

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            log.error("preferences_load_failed", path=str(self._path), error=str(exc))
            raise CheckpointReadError(
                f"Unable to read preferences from {self._path}: {exc}"
            ) from exc
        if not isinstance(data, dict):
            log.error("preferences_malformed", path=str(self._path))
            raise CheckpointReadError(f"Preferences in {self._path} are not a JSON object")
        return data

    def _save(self, data: dict[str, str]) -> bool:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError:
            log.exception("preferences_save_failed", path=str(self._path))
            return False
        return True


class PreferenceCheckpointStore:
    """Checkpoints kept as ``patchlevel_plugin.<subject>`` preferences."""

    def __init__(self, prefs: JsonPreferenceStore) -> None:
        self._prefs = prefs

    @staticmethod
    def key(subject: str) -> str:
        return f"{PREF_CHECKPOINT_PREFIX}{subject}"

    def get(self, subject: str) -> str:
        return self._prefs.get(self.key(subject), INITIAL_VERSION) or INITIAL_VERSION

    def set(self, subject: str, version: str) -> bool:
        return self._prefs.set(self.key(subject), version)
