"""Exception hierarchy for the update runner."""

from __future__ import annotations


class UpdaterError(Exception):
    """Base class for every error raised by patchlevel."""


class ConfigurationError(UpdaterError):
    """A step source could not be registered."""


class ReadError(ConfigurationError):
    """A step directory is missing, not a directory, or unreadable."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f'Unable to read "{path}" directory: {reason}')


class UpdateHalted(UpdaterError):
    """A run stopped before every pending step was applied.

    ``current`` is the version the subject is parked at, ``target`` the
    version that was being attempted when the run stopped.
    """

    def __init__(self, subject: str, current: str, target: str | None, detail: str = "") -> None:
        self.subject = subject
        self.current = current
        self.target = target
        self.detail = detail
        message = f'Unable to update "{subject}" from "{current}" to "{target}"'
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StepFailure(UpdateHalted):
    """A step raised while being applied."""


class StepDeferred(UpdateHalted):
    """A step reported that it is not finished yet; retry later."""


class CheckpointWriteError(UpdateHalted):
    """A step succeeded but its version could not be recorded.

    The step will run again on the next invocation, so step bodies must be
    safe to re-execute from the same starting version.
    """


class CheckpointReadError(ConfigurationError):
    """The checkpoint store exists but cannot be read or parsed."""
