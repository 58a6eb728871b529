"""patchlevel - versioned, checkpointed update runner.

Applies version-tagged update steps newer than a subject's recorded
checkpoint, strictly in ascending order, and records progress after every
successful step so the next run resumes where the previous one stopped.

Example::

    runner = UpdateRunner("my_plugin", store)
    runner.map({"1.0.0": migrate_settings})
    runner.read(["./updates"])
    runner.run()
"""

__version__ = "0.3.0"

from patchlevel.checkpoint import (
    CheckpointStore,
    JsonPreferenceStore,
    MemoryCheckpointStore,
    PreferenceCheckpointStore,
)
from patchlevel.exceptions import (
    CheckpointWriteError,
    ConfigurationError,
    ReadError,
    StepDeferred,
    StepFailure,
    UpdateHalted,
    UpdaterError,
)
from patchlevel.runner import RunResult, RunStatus, UpdateRunner
from patchlevel.steps import StepContext, StepOutcome
from patchlevel.versioning import compare_versions, is_newer

__all__ = [
    "CheckpointStore",
    "CheckpointWriteError",
    "ConfigurationError",
    "JsonPreferenceStore",
    "MemoryCheckpointStore",
    "PreferenceCheckpointStore",
    "ReadError",
    "RunResult",
    "RunStatus",
    "StepContext",
    "StepDeferred",
    "StepFailure",
    "StepOutcome",
    "UpdateHalted",
    "UpdateRunner",
    "UpdaterError",
    "__version__",
    "compare_versions",
    "is_newer",
]
