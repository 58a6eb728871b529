"""Install and uninstall hooks for the host preference store."""

from __future__ import annotations

from patchlevel.auth import generate_secret
from patchlevel.checkpoint import JsonPreferenceStore
from patchlevel.config import Settings
from patchlevel.constants import PREF_KEY, PREF_PATH, PREF_PREFIX
from patchlevel.exceptions import ConfigurationError
from patchlevel.logging import get_logger

log = get_logger("patchlevel.lifecycle")


def install(prefs: JsonPreferenceStore, settings: Settings) -> dict[str, str]:
    """Seed the step path and shared secret, keeping values that already exist."""
    defaults = {
        PREF_PATH: settings.updater_default_path,
        PREF_KEY: generate_secret(),
    }
    effective: dict[str, str] = {}
    for name, default in defaults.items():
        value = prefs.get(name) or default
        if not prefs.set(name, value):
            raise ConfigurationError(f"Unable to store preference {name}")
        effective[name] = value

    log.info("updater_installed", preferences=str(prefs.path), path=effective[PREF_PATH])
    return effective


def uninstall(prefs: JsonPreferenceStore) -> int:
    """Remove every updater preference, checkpoints included."""
    removed = prefs.delete_prefix(PREF_PREFIX)
    log.info("updater_uninstalled", removed=removed)
    return removed


def step_paths(prefs: JsonPreferenceStore) -> list[str]:
    """Configured step directories (comma-separated preference)."""
    raw = prefs.get(PREF_PATH)
    return [part.strip() for part in raw.split(",") if part.strip()]
