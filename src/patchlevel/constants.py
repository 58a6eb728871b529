"""Centralized constants for patchlevel."""

# Checkpoint used when a subject has never been updated
INITIAL_VERSION = "0.0.0"

# Update files discovered by directory scans
STEP_FILE_EXTENSION = ".py"

# Function an update file must define
STEP_FILE_ENTRYPOINT = "upgrade"

# Preference names
PREF_PREFIX = "patchlevel_"
PREF_CHECKPOINT_PREFIX = "patchlevel_plugin."
PREF_PATH = "patchlevel_path"
PREF_KEY = "patchlevel_key"

# Trigger endpoint
SECRET_HEADER = "X-Updater-Secret"
SECRET_QUERY_PARAM = "patchlevel"
