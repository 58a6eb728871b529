"""Tests for patchlevel.server - aiohttp trigger endpoint."""

from __future__ import annotations

from pathlib import Path

from aiohttp.test_utils import TestClient, TestServer

from patchlevel.checkpoint import JsonPreferenceStore, PreferenceCheckpointStore
from patchlevel.config import Settings
from patchlevel.server import LOCKS_KEY, create_app

SECRET = "test-secret"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _configure(prefs: JsonPreferenceStore, path: str = "../updates", key: str = SECRET) -> None:
    prefs.set("patchlevel_path", path)
    prefs.set("patchlevel_key", key)


async def _make_client(prefs: JsonPreferenceStore, settings: Settings) -> TestClient:
    app = create_app(prefs=prefs, settings=settings)
    client = TestClient(TestServer(app))
    await client.start_server()
    return client


def _updates_dir(settings: Settings) -> Path:
    return settings.install_root.resolve().parent / "updates"


# ---------------------------------------------------------------------------
# TestHealthEndpoint
# ---------------------------------------------------------------------------


class TestHealthEndpoint:
    """Tests for GET /health."""

    async def test_health_returns_200(self, prefs, settings) -> None:
        client = await _make_client(prefs, settings)
        try:
            resp = await client.get("/health")
            assert resp.status == 200
            data = await resp.json()
            assert data["status"] == "ok"
        finally:
            await client.close()


# ---------------------------------------------------------------------------
# TestUpdateEndpoint
# ---------------------------------------------------------------------------


class TestUpdateAuth:
    """Authentication and configuration checks for POST /update."""

    async def test_not_configured_returns_503(self, prefs, settings) -> None:
        prefs.set("patchlevel_key", SECRET)
        client = await _make_client(prefs, settings)
        try:
            resp = await client.post("/update", headers={"X-Updater-Secret": SECRET})
            assert resp.status == 503
            data = await resp.json()
            assert data["success"] is False
        finally:
            await client.close()

    async def test_unconfigured_without_key_returns_401(self, prefs, settings) -> None:
        client = await _make_client(prefs, settings)
        try:
            resp = await client.post("/update")
            assert resp.status == 401
            resp = await client.post("/update", headers={"X-Updater-Secret": SECRET})
            assert resp.status == 401
        finally:
            await client.close()

    async def test_unreadable_preferences_returns_503(self, prefs, settings) -> None:
        prefs.path.parent.mkdir(parents=True, exist_ok=True)
        prefs.path.write_text("{not json", encoding="utf-8")
        client = await _make_client(prefs, settings)
        try:
            resp = await client.post("/update", headers={"X-Updater-Secret": SECRET})
            assert resp.status == 503
            data = await resp.json()
            assert data == {"success": False, "error": "Updater unavailable"}
        finally:
            await client.close()

        assert prefs.path.read_text(encoding="utf-8") == "{not json"

    async def test_missing_secret_returns_401(self, prefs, settings) -> None:
        _configure(prefs)
        client = await _make_client(prefs, settings)
        try:
            resp = await client.post("/update")
            assert resp.status == 401
        finally:
            await client.close()

    async def test_wrong_secret_returns_401(self, prefs, settings) -> None:
        _configure(prefs)
        client = await _make_client(prefs, settings)
        try:
            resp = await client.post("/update", headers={"X-Updater-Secret": "wrong"})
            assert resp.status == 401
        finally:
            await client.close()

    async def test_busy_subject_returns_409(self, prefs, settings) -> None:
        _configure(prefs)
        client = await _make_client(prefs, settings)
        lock = client.server.app[LOCKS_KEY][settings.updater_subject]
        await lock.acquire()
        try:
            resp = await client.post("/update", headers={"X-Updater-Secret": SECRET})
            assert resp.status == 409
        finally:
            lock.release()
            await client.close()


class TestUpdateRun:
    """Run outcomes reported by POST /update."""

    async def test_success(self, prefs, settings, make_step_file, read_calls) -> None:
        _configure(prefs)
        make_step_file(_updates_dir(settings), "1.0")
        make_step_file(_updates_dir(settings), "1.1")
        client = await _make_client(prefs, settings)
        try:
            resp = await client.post("/update", headers={"X-Updater-Secret": SECRET})
            assert resp.status == 200
            data = await resp.json()
            assert data == {"success": True, "version": "1.1"}
        finally:
            await client.close()

        assert read_calls() == ["0.0.0->1.0", "1.0->1.1"]
        assert PreferenceCheckpointStore(prefs).get("demo") == "1.1"

    async def test_secret_in_query_parameter(self, prefs, settings, make_step_file) -> None:
        _configure(prefs)
        make_step_file(_updates_dir(settings), "1.0")
        client = await _make_client(prefs, settings)
        try:
            resp = await client.post("/update", params={"patchlevel": SECRET})
            assert resp.status == 200
        finally:
            await client.close()

    async def test_deferred_returns_202(self, prefs, settings, make_step_file) -> None:
        _configure(prefs)
        make_step_file(_updates_dir(settings), "1.0")
        make_step_file(_updates_dir(settings), "2.0", result="False")
        client = await _make_client(prefs, settings)
        try:
            resp = await client.post("/update", headers={"X-Updater-Secret": SECRET})
            assert resp.status == 202
            data = await resp.json()
            assert data["success"] is False
            assert data["deferred"] is True
            assert data["version"] == "1.0"
            assert 'from "1.0" to "2.0"' in data["error"]
        finally:
            await client.close()

    async def test_failure_returns_500(self, prefs, settings, make_step_file) -> None:
        _configure(prefs)
        make_step_file(_updates_dir(settings), "1.0", result="1 / 0")
        client = await _make_client(prefs, settings)
        try:
            resp = await client.post("/update", headers={"X-Updater-Secret": SECRET})
            assert resp.status == 500
            data = await resp.json()
            assert data["success"] is False
            assert "ZeroDivisionError" in data["error"]
        finally:
            await client.close()

        assert PreferenceCheckpointStore(prefs).get("demo") == "0.0.0"

    async def test_missing_directory_returns_500(self, prefs, settings) -> None:
        _configure(prefs, path="./does-not-exist")
        client = await _make_client(prefs, settings)
        try:
            resp = await client.post("/update", headers={"X-Updater-Secret": SECRET})
            assert resp.status == 500
            data = await resp.json()
            assert "does-not-exist" in data["error"]
        finally:
            await client.close()
