"""Command line entry point for patchlevel.

Usage:
    python -m patchlevel serve               # Start the trigger endpoint
    python -m patchlevel install             # Seed path and secret preferences
    python -m patchlevel uninstall           # Remove updater preferences
    python -m patchlevel run [PATH ...]      # Apply pending file updates once
    python -m patchlevel status              # Show the recorded checkpoint
    python -m patchlevel trigger             # Ask a running endpoint to update
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict

from patchlevel.checkpoint import JsonPreferenceStore, PreferenceCheckpointStore
from patchlevel.client import UpdaterClient
from patchlevel.config import Settings, get_settings
from patchlevel.exceptions import UpdaterError
from patchlevel.lifecycle import install, step_paths, uninstall
from patchlevel.logging import get_logger, setup_logging
from patchlevel.runner import RunStatus, UpdateRunner
from patchlevel.server import run_server

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_DEFERRED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="patchlevel",
        description="Versioned, checkpointed update runner",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Start the trigger endpoint")
    sub.add_parser("install", help="Seed updater preferences")
    sub.add_parser("uninstall", help="Remove updater preferences and checkpoints")
    run = sub.add_parser("run", help="Apply pending update files")
    run.add_argument("paths", nargs="*", help="Step directories (default: configured path)")
    run.add_argument("--subject", help="Subject to update (default: configured subject)")
    status = sub.add_parser("status", help="Show the recorded checkpoint")
    status.add_argument("--subject", help="Subject to inspect (default: configured subject)")
    sub.add_parser("trigger", help="Trigger a run on the configured endpoint")
    return parser


def _trigger(settings: Settings) -> int:
    if settings.updater_secret is None:
        print("error: UPDATER_SECRET is not set", file=sys.stderr)
        return EXIT_FAILED

    client = UpdaterClient(settings.updater_url, settings.updater_secret.get_secret_value())
    response = asyncio.run(client.trigger())
    print(json.dumps(asdict(response), indent=2))
    if response.success:
        return EXIT_OK
    print(f"error: {response.error}", file=sys.stderr)
    return EXIT_DEFERRED if response.deferred else EXIT_FAILED


def _dispatch(args: argparse.Namespace, settings: Settings) -> int:
    prefs = JsonPreferenceStore(settings.preferences_path)

    if args.command == "install":
        values = install(prefs, settings)
        print(json.dumps(values, indent=2))
        return EXIT_OK

    if args.command == "uninstall":
        print(f"Removed {uninstall(prefs)} preference(s)")
        return EXIT_OK

    subject = args.subject or settings.updater_subject
    store = PreferenceCheckpointStore(prefs)

    if args.command == "status":
        print(f"{subject}: {store.get(subject)}")
        return EXIT_OK

    runner = UpdateRunner(subject, store, install_root=settings.install_root)
    runner.read(args.paths or step_paths(prefs))
    result = runner.execute()
    print(json.dumps(result.to_dict(), indent=2))
    if result.ok:
        return EXIT_OK
    print(f"error: {result.to_exception()}", file=sys.stderr)
    return EXIT_DEFERRED if result.status is RunStatus.DEFERRED else EXIT_FAILED


def main(argv: list[str] | None = None) -> int:
    """Run the command line interface and return an exit code."""
    args = build_parser().parse_args(argv)
    setup_logging()
    log = get_logger("patchlevel.main")
    settings = get_settings()
    command = args.command or "serve"

    if command == "serve":
        try:
            asyncio.run(run_server(settings))
        except KeyboardInterrupt:
            log.info("shutdown_requested")
        return EXIT_OK

    if command == "trigger":
        return _trigger(settings)

    try:
        return _dispatch(args, settings)
    except UpdaterError as exc:
        log.error("command_failed", command=command, error=str(exc))
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
