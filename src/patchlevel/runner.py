"""Update runner: applies pending steps for one subject.

Lifecycle of ``execute()``:
1. Load the subject's checkpoint from the store
2. Callback pass: apply every registered callback newer than the checkpoint,
   in ascending version order
3. File pass: same, for update files discovered by ``read()``
4. After each successful step, record its version before moving on
5. Stop at the first step that raises, defers, or cannot be recorded

The callback pass always finishes before the file pass starts, so the two
sources are never interleaved by version.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from patchlevel.checkpoint import CheckpointStore
from patchlevel.exceptions import (
    CheckpointReadError,
    CheckpointWriteError,
    StepDeferred,
    StepFailure,
    UpdateHalted,
)
from patchlevel.logging import get_logger
from patchlevel.steps import (
    CallbackSource,
    FileSource,
    Step,
    StepContext,
    StepOutcome,
)
from patchlevel.versioning import is_newer

log = get_logger("patchlevel.runner")


class RunStatus(Enum):
    """Terminal status of a run."""

    COMPLETED = "completed"
    DEFERRED = "deferred"
    FAILED = "failed"
    CHECKPOINT_FAILED = "checkpoint_failed"


_HALT_ERRORS: dict[RunStatus, type[UpdateHalted]] = {
    RunStatus.DEFERRED: StepDeferred,
    RunStatus.FAILED: StepFailure,
    RunStatus.CHECKPOINT_FAILED: CheckpointWriteError,
}


@dataclass
class RunResult:
    """Outcome of one ``execute()`` call."""

    subject: str
    status: RunStatus
    start_version: str
    current_version: str
    target_version: str | None = None
    applied: list[str] = field(default_factory=list)
    error: str | None = None
    cause: BaseException | None = field(default=None, repr=False)
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    completed_at: str | None = None
    duration_seconds: float | None = None

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "status": self.status.value,
            "start_version": self.start_version,
            "current_version": self.current_version,
            "target_version": self.target_version,
            "applied": self.applied,
            "error": self.error,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_seconds": self.duration_seconds,
        }

    def to_exception(self) -> UpdateHalted | None:
        """The error describing this halt, or None for a completed run."""
        if self.ok:
            return None
        exc_type = _HALT_ERRORS[self.status]
        return exc_type(
            self.subject,
            self.current_version,
            self.target_version,
            self.error or "",
        )

    def raise_for_status(self) -> RunResult:
        """Raise the matching ``UpdateHalted`` subclass unless the run completed."""
        exc = self.to_exception()
        if exc is not None:
            raise exc from self.cause
        return self


class _Halt(Exception):
    """Internal signal that stops the current run."""

    def __init__(self, status: RunStatus, error: str, cause: BaseException | None = None) -> None:
        super().__init__(error)
        self.status = status
        self.error = error
        self.cause = cause


class UpdateRunner:
    """Applies pending update steps for one subject.

    Register steps with ``map()`` and ``read()``, then call ``run()``, which
    raises on any halt, or ``execute()``, which returns a ``RunResult``.
    """

    def __init__(
        self,
        subject: str,
        store: CheckpointStore,
        install_root: str | Path | None = None,
    ) -> None:
        self._subject = subject
        self._store = store
        self._callbacks = CallbackSource()
        self._files = FileSource(Path(install_root) if install_root else None)
        self._state = "idle"
        self._current_version: str | None = None
        self._target_version: str | None = None

    # ------------------------------------------------------------------
    # Public status surface
    # ------------------------------------------------------------------

    @property
    def subject(self) -> str:
        return self._subject

    @property
    def state(self) -> str:
        return self._state

    @property
    def current_version(self) -> str | None:
        return self._current_version

    @property
    def target_version(self) -> str | None:
        return self._target_version

    def pending(self) -> list[str]:
        """Versions that would run next, callbacks first, then files."""
        current = self._store.get(self._subject)
        versions: list[str] = []
        for source in (self._callbacks, self._files):
            for step in source.steps():
                if is_newer(step.version, current):
                    versions.append(step.version)
        return versions

    # ------------------------------------------------------------------
    # Step registration
    # ------------------------------------------------------------------

    def map(self, callbacks: Mapping[str, Callable[[StepContext], Any]]) -> None:
        """Register ``{version: callable}`` update callbacks."""
        self._callbacks.map(callbacks)

    def read(self, paths: str | Path | Iterable[str | Path]) -> int:
        """Register update files found under one or more directories."""
        return self._files.read(paths)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(self) -> RunResult:
        """Apply pending steps, raising ``UpdateHalted`` if the run stops early."""
        return self.execute().raise_for_status()

    def execute(self) -> RunResult:
        """Apply pending steps and report how far the run got.

        Raises ``CheckpointReadError`` without applying anything when the
        checkpoint cannot be loaded. Only ``Exception`` subclasses raised by a
        step count as step failures; ``SystemExit`` and ``KeyboardInterrupt``
        propagate after the runner is marked halted.
        """
        start = time.monotonic()
        self._state = "running"
        self._target_version = None
        try:
            self._current_version = self._store.get(self._subject)
        except CheckpointReadError:
            self._state = "halted"
            log.error("checkpoint_read_failed", subject=self._subject)
            raise

        result = RunResult(
            subject=self._subject,
            status=RunStatus.COMPLETED,
            start_version=self._current_version,
            current_version=self._current_version,
        )
        log.info(
            "update_run_started",
            subject=self._subject,
            current=self._current_version,
            callbacks=len(self._callbacks),
            files=len(self._files),
        )

        try:
            self._drain("callbacks", self._callbacks.steps(), result)
            self._drain("files", self._files.steps(), result)
        except _Halt as halt:
            result.status = halt.status
            result.error = halt.error
            result.cause = halt.cause
            self._state = "halted"
        else:
            self._state = "completed"
        finally:
            if self._state == "running":
                self._state = "halted"
            result.current_version = self._current_version
            result.target_version = self._target_version
            result.duration_seconds = round(time.monotonic() - start, 3)
            result.completed_at = datetime.now(UTC).isoformat()

        if result.ok:
            log.info(
                "update_run_completed",
                subject=self._subject,
                version=result.current_version,
                applied=result.applied,
            )
        else:
            log.warning(
                "update_run_halted",
                subject=self._subject,
                status=result.status.value,
                current=result.current_version,
                target=result.target_version,
                error=result.error,
            )
        return result

    def _drain(self, pass_name: str, steps: list[Step], result: RunResult) -> None:
        for step in steps:
            if not is_newer(step.version, self._current_version):
                continue
            self._apply(pass_name, step)
            result.applied.append(step.version)

    def _apply(self, pass_name: str, step: Step) -> None:
        current = self._current_version
        self._target_version = step.version
        context = StepContext(version=step.version, old=current)
        log.debug("step_started", subject=self._subject, source=pass_name, step=repr(step))

        try:
            outcome = step.apply(context)
        except Exception as exc:
            log.exception(
                "step_failed",
                subject=self._subject,
                version=step.version,
                old=current,
            )
            raise _Halt(RunStatus.FAILED, f"{type(exc).__name__}: {exc}", exc) from exc

        if outcome is StepOutcome.DEFERRED:
            log.info("step_deferred", subject=self._subject, version=step.version, old=current)
            raise _Halt(RunStatus.DEFERRED, "update not finished, retry later")

        try:
            recorded = self._store.set(self._subject, step.version)
        except CheckpointReadError as exc:
            log.error("checkpoint_write_failed", subject=self._subject, version=step.version)
            raise _Halt(RunStatus.CHECKPOINT_FAILED, str(exc), exc) from exc
        if not recorded:
            log.error(
                "checkpoint_write_failed",
                subject=self._subject,
                version=step.version,
            )
            raise _Halt(RunStatus.CHECKPOINT_FAILED, "checkpoint could not be recorded")

        self._current_version = step.version
        log.info("step_applied", subject=self._subject, version=step.version, old=current)
