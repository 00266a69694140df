from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from apiprobe.api import routes as api_routes
from apiprobe.api.websocket import ProgressBroadcaster
from apiprobe.main import app
from apiprobe.models.report import LogEvent
from apiprobe.pipeline.orchestrator import PipelineOrchestrator

from conftest import make_factory, unreachable


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def offline_orchestrator(monkeypatch, tmp_path: Path, failing_backend):
    def build():
        return PipelineOrchestrator(
            backend=failing_backend,
            progress=api_routes.build_progress(),
            sandbox_context=make_factory(unreachable),
            http_context=make_factory(unreachable),
            workspace_root=tmp_path / "workspaces",
        )
    monkeypatch.setattr(api_routes, "build_orchestrator", build)


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


class TestDiscovery:

    def test_scan(self, client, sample_project: Path):
        resp = client.post("/api/scan", json={"project_path": str(sample_project)})
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 5
        assert body["endpoints"][4]["method"] == "POST"
        assert body["endpoints"][4]["path"] == "/api/users"
        assert body["endpoints"][4]["auth_required"] is True
        assert body["endpoints"][4]["middleware"] == ["authenticateToken"]

    def test_scan_missing_directory(self, client, tmp_path: Path):
        resp = client.post("/api/scan", json={"project_path": str(tmp_path / "nope")})
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_scan_requires_path(self, client):
        resp = client.post("/api/scan", json={"project_path": ""})
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("project_path")

    def test_detect_auth(self, client, sample_project: Path):
        resp = client.post("/api/detect-auth", json={"project_path": str(sample_project)})
        auth = resp.json()["auth"]
        assert auth["present"] is True
        assert auth["login_path"] == "/api/login"
        assert auth["token_field"] == "accessToken"

    def test_discover_endpoints_requires_url(self, client):
        assert client.post("/api/discover-endpoints", json={}).status_code == 400

    def test_discover_endpoints_bad_url(self, client):
        resp = client.post("/api/discover-endpoints", json={"openapi_url": "not a url"})
        assert resp.status_code == 400


class TestProbing:

    def test_security_requires_routes(self, client):
        resp = client.post("/api/security-test", json={"base_url": "http://localhost:3000"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "routes or openapi_url is required"}

    def test_performance_requires_base_url(self, client):
        resp = client.post("/api/performance-test", json={"routes": [{"method": "GET", "path": "/"}]})
        assert resp.status_code == 400


class TestFullScan:

    def test_full_scan_url_with_routes(self, client, offline_orchestrator):
        resp = client.post("/api/full-scan-url", json={
            "base_url": "http://target.test",
            "routes": [{"method": "get", "path": "/items"}],
        })
        assert resp.status_code == 200
        report = resp.json()
        assert report["route_count"] == 1
        assert report["routes"][0]["method"] == "GET"
        assert report["probe_count"] == 8
        assert report["execution"]["failed"] == 8
        assert report["stage_errors"] == []

    def test_full_scan_url_needs_a_source(self, client, offline_orchestrator):
        resp = client.post("/api/full-scan-url", json={"base_url": "http://target.test"})
        assert resp.status_code == 400

    def test_full_scan_project(self, client, offline_orchestrator, sample_project: Path):
        resp = client.post("/api/full-scan", json={
            "project_path": str(sample_project), "base_url": "http://target.test",
        })
        assert resp.status_code == 200
        assert resp.json()["route_count"] == 5
        assert (sample_project / "generated-probes").is_dir()

    def test_full_scan_missing_project(self, client, offline_orchestrator, tmp_path: Path):
        resp = client.post("/api/full-scan", json={"project_path": str(tmp_path / "nope")})
        assert resp.status_code == 400


class TestProgressBroadcaster:

    @pytest.mark.asyncio
    async def test_event_is_broadcast_and_dead_sockets_detached(self):
        live, dead = AsyncMock(), AsyncMock()
        dead.send_json.side_effect = RuntimeError("closed")
        hub = ProgressBroadcaster()
        await hub.attach(live)
        await hub.attach(dead)

        await hub.send_event(LogEvent(message="Found 3 endpoints", severity="success"))

        sent = live.send_json.await_args.args[0]
        assert sent["type"] == "log"
        assert sent["data"]["message"] == "Found 3 endpoints"
        assert sent["data"]["severity"] == "success"
        assert hub.clients == [live]

    @pytest.mark.asyncio
    async def test_late_client_gets_recent_events(self):
        hub = ProgressBroadcaster(replay_size=2)
        for message in ("one", "two", "three"):
            await hub.send_event(LogEvent(message=message))

        late = AsyncMock()
        await hub.attach(late)

        replayed = [c.args[0]["data"]["message"] for c in late.send_json.await_args_list]
        assert replayed == ["two", "three"]
        assert hub.clients == [late]

    @pytest.mark.asyncio
    async def test_event_during_replay_reaches_new_client(self):
        hub = ProgressBroadcaster(replay_size=2)
        await hub.send_event(LogEvent(message="old"))
        late = AsyncMock()

        async def on_send(message):
            if message["data"]["message"] == "old":
                await hub.send_event(LogEvent(message="new"))

        late.send_json.side_effect = on_send
        await hub.attach(late)

        delivered = [c.args[0]["data"]["message"] for c in late.send_json.await_args_list]
        assert delivered == ["old", "new"]
