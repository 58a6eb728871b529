"""Update steps and the sources that provide them.

A step is one version-tagged unit of work. Two kinds exist:

* ``CallableStep`` wraps a Python callable registered through a
  ``CallbackSource``.
* ``FileStep`` wraps an update file discovered by a ``FileSource``. The file
  is a Python module defining ``upgrade(context)``; it is only loaded when the
  step is applied.

Both return a ``StepOutcome``. A step body may return a ``StepOutcome``
directly; otherwise ``False`` means "deferred, try again later" and any other
value (including ``None``) means success.
"""

from __future__ import annotations

import importlib.util
import os
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from patchlevel.constants import STEP_FILE_ENTRYPOINT, STEP_FILE_EXTENSION
from patchlevel.exceptions import ConfigurationError, ReadError
from patchlevel.logging import get_logger
from patchlevel.versioning import version_key

log = get_logger("patchlevel.steps")


class StepOutcome(Enum):
    """Result of applying a single step."""

    SUCCESS = "success"
    DEFERRED = "deferred"


@dataclass(frozen=True)
class StepContext:
    """Arguments handed to a step body."""

    version: str  # the version this step moves the subject to
    old: str  # the version the subject is currently at

    def to_dict(self) -> dict[str, str]:
        return {"version": self.version, "old": self.old}


class Step(Protocol):
    """Anything the runner can apply."""

    version: str

    def apply(self, context: StepContext) -> StepOutcome: ...


def coerce_outcome(value: Any) -> StepOutcome:
    """Map a step body's return value onto a ``StepOutcome``."""
    if isinstance(value, StepOutcome):
        return value
    if value is False:
        return StepOutcome.DEFERRED
    return StepOutcome.SUCCESS


class CallableStep:
    """A step backed by an in-memory callable."""

    def __init__(self, version: str, func: Callable[[StepContext], Any]) -> None:
        self.version = version
        self.func = func

    def apply(self, context: StepContext) -> StepOutcome:
        return coerce_outcome(self.func(context))

    def __repr__(self) -> str:
        name = getattr(self.func, "__qualname__", repr(self.func))
        return f"CallableStep({self.version!r}, {name})"


class FileStep:
    """A step backed by an update file on disk."""

    def __init__(self, version: str, path: Path) -> None:
        self.version = version
        self.path = path

    def apply(self, context: StepContext) -> StepOutcome:
        module_name = f"patchlevel_step_{abs(hash(str(self.path)))}"
        spec = importlib.util.spec_from_file_location(module_name, self.path)
        if spec is None or spec.loader is None:
            raise ConfigurationError(f"Cannot load update file {self.path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        upgrade = getattr(module, STEP_FILE_ENTRYPOINT, None)
        if not callable(upgrade):
            raise ConfigurationError(
                f"Update file {self.path} does not define {STEP_FILE_ENTRYPOINT}(context)"
            )
        return coerce_outcome(upgrade(context))

    def __repr__(self) -> str:
        return f"FileStep({self.version!r}, {str(self.path)!r})"


def _sorted_by_version(steps: Mapping[str, Step]) -> dict[str, Step]:
    return dict(sorted(steps.items(), key=lambda item: version_key(item[0])))


class CallbackSource:
    """Steps registered as ``{version: callable}`` maps.

    Successive ``map()`` calls merge into the existing map; registering a
    version again replaces only that entry. The map is re-sorted after every
    merge.
    """

    def __init__(self) -> None:
        self._steps: dict[str, Step] = {}

    def map(self, callbacks: Mapping[str, Callable[[StepContext], Any]]) -> None:
        for version, func in callbacks.items():
            if not callable(func):
                raise ConfigurationError(f"Update for version {version!r} is not callable")
            self._steps[str(version)] = CallableStep(str(version), func)
        self._steps = _sorted_by_version(self._steps)

    def steps(self) -> list[Step]:
        return list(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)


def resolve_step_path(path: str | Path, install_root: Path) -> Path:
    """Resolve a step directory to an absolute path.

    ``./name`` is relative to *install_root* and ``../name`` to its parent.
    Anything else is taken as given, so relative paths follow the working
    directory.
    """
    raw = str(path)
    if raw.startswith("./"):
        candidate = install_root / raw[2:]
    elif raw.startswith("../"):
        candidate = install_root.resolve().parent / raw[3:]
    else:
        candidate = Path(raw)
    return candidate.expanduser().resolve()


class FileSource:
    """Steps discovered from update files in one or more directory trees.

    Every file with the step extension below a directory (recursively) is a
    step keyed by its base name. Directories read by separate or repeated
    ``read()`` calls accumulate into a single sorted map.
    """

    def __init__(self, install_root: Path | None = None, extension: str = STEP_FILE_EXTENSION) -> None:
        self._install_root = install_root or Path.cwd()
        self._extension = extension
        self._steps: dict[str, Step] = {}

    def read(self, paths: str | Path | Iterable[str | Path]) -> int:
        """Scan directories for update files.

        Returns the number of files discovered. Raises ``ReadError`` for the
        first path that cannot be used; nothing is registered in that case.
        """
        if isinstance(paths, str | Path):
            paths = [paths]

        directories = [self._check_directory(path) for path in paths]

        found = 0
        for directory in directories:
            for file in sorted(directory.rglob(f"*{self._extension}")):
                if not file.is_file() or not os.access(file, os.R_OK):
                    log.debug("step_file_skipped", path=str(file))
                    continue
                version = file.name[: -len(self._extension)]
                if version in self._steps:
                    log.warning(
                        "step_file_replaced",
                        version=version,
                        previous=str(getattr(self._steps[version], "path", "")),
                        path=str(file),
                    )
                self._steps[version] = FileStep(version, file)
                found += 1
            log.debug("step_directory_read", path=str(directory), total=len(self._steps))

        self._steps = _sorted_by_version(self._steps)
        return found

    def _check_directory(self, path: str | Path) -> Path:
        directory = resolve_step_path(path, self._install_root)
        if not directory.exists():
            raise ReadError(directory.name or str(directory), "does not exist")
        if not directory.is_dir():
            raise ReadError(directory.name, "not a directory")
        if not os.access(directory, os.R_OK | os.X_OK):
            raise ReadError(directory.name, "permission denied")
        return directory

    def steps(self) -> list[Step]:
        return list(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)
