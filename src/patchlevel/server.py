"""HTTP trigger endpoint for the updater.

Routes:
    GET  /health  - liveness, no auth
    POST /update  - run pending updates for the configured subject

The shared secret is read from the ``X-Updater-Secret`` header or the
``patchlevel`` query parameter and compared with the ``patchlevel_key``
preference seeded on install.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict

from aiohttp import web

from patchlevel import __version__
from patchlevel.auth import validate_secret
from patchlevel.checkpoint import JsonPreferenceStore, PreferenceCheckpointStore
from patchlevel.config import Settings, get_settings
from patchlevel.constants import PREF_KEY, SECRET_HEADER, SECRET_QUERY_PARAM
from patchlevel.exceptions import UpdaterError
from patchlevel.lifecycle import step_paths
from patchlevel.logging import get_logger
from patchlevel.runner import RunResult, RunStatus, UpdateRunner

log = get_logger("patchlevel.server")

PREFS_KEY = web.AppKey("prefs", JsonPreferenceStore)
SETTINGS_KEY = web.AppKey("settings", Settings)
LOCKS_KEY = web.AppKey("locks", defaultdict)


def run_update(prefs: JsonPreferenceStore, settings: Settings) -> RunResult:
    """Build a runner for the configured subject and execute it."""
    runner = UpdateRunner(
        settings.updater_subject,
        PreferenceCheckpointStore(prefs),
        install_root=settings.install_root,
    )
    runner.read(step_paths(prefs))
    return runner.execute()


def _request_secret(request: web.Request) -> str | None:
    return request.headers.get(SECRET_HEADER) or request.query.get(SECRET_QUERY_PARAM)


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "version": __version__})


async def handle_update(request: web.Request) -> web.Response:
    prefs = request.app[PREFS_KEY]
    settings = request.app[SETTINGS_KEY]
    subject = settings.updater_subject

    try:
        expected = prefs.get(PREF_KEY)
        paths = step_paths(prefs)
    except UpdaterError as exc:
        log.error("update_preferences_unreadable", error=str(exc))
        return web.json_response({"success": False, "error": "Updater unavailable"}, status=503)

    # An unset key never validates
    if not validate_secret(_request_secret(request), expected):
        log.warning("update_unauthorized", remote=request.remote)
        return web.json_response({"success": False, "error": "Unauthorized"}, status=401)

    if not paths:
        return web.json_response(
            {"success": False, "error": "Updater is not configured"}, status=503
        )

    lock: asyncio.Lock = request.app[LOCKS_KEY][subject]
    if lock.locked():
        return web.json_response(
            {"success": False, "error": "Update already in progress"}, status=409
        )

    async with lock:
        try:
            result = await asyncio.to_thread(run_update, prefs, settings)
        except UpdaterError as exc:
            log.error("update_rejected", subject=subject, error=str(exc))
            return web.json_response({"success": False, "error": str(exc)}, status=500)

    if result.ok:
        return web.json_response({"success": True, "version": result.current_version})

    message = str(result.to_exception())
    if result.status is RunStatus.DEFERRED:
        return web.json_response(
            {
                "success": False,
                "deferred": True,
                "error": message,
                "version": result.current_version,
            },
            status=202,
        )
    return web.json_response(
        {"success": False, "error": message, "version": result.current_version},
        status=500,
    )


def create_app(
    prefs: JsonPreferenceStore | None = None,
    settings: Settings | None = None,
) -> web.Application:
    """Create the aiohttp application."""
    settings = settings or get_settings()
    app = web.Application()
    app[SETTINGS_KEY] = settings
    app[PREFS_KEY] = prefs or JsonPreferenceStore(settings.preferences_path)
    app[LOCKS_KEY] = defaultdict(asyncio.Lock)
    app.router.add_get("/health", handle_health)
    app.router.add_post("/update", handle_update)
    return app


async def run_server(settings: Settings | None = None) -> None:
    """Serve the endpoint until cancelled."""
    settings = settings or get_settings()
    app = create_app(settings=settings)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.updater_host, settings.updater_port)
    await site.start()
    log.info(
        "updater_server_started",
        host=settings.updater_host,
        port=settings.updater_port,
        subject=settings.updater_subject,
    )
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
        log.info("updater_server_stopped")
