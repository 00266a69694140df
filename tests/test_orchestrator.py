from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest

from apiprobe.config import GENERATED_PROBES_DIR
from apiprobe.errors import ScanError, SpecFormatError
from apiprobe.models.route import AuthProfile, RouteModel
from apiprobe.pipeline.orchestrator import PipelineOrchestrator, discover_project
from apiprobe.pipeline.progress import ProgressEmitter

from conftest import make_factory, unreachable

BASE = "http://target.test"
ROUTES = [
    RouteModel(method="GET", path="/a"),
    RouteModel(method="POST", path="/b", auth_required=True),
]


def offline(backend, tmp_path: Path, progress=None) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        backend=backend,
        progress=progress,
        sandbox_context=make_factory(unreachable),
        http_context=make_factory(unreachable),
        workspace_root=tmp_path / "workspaces",
    )


def outcome(report) -> dict:
    """Report content minus timings and timestamps."""
    return {
        "routes": [r.key for r in report.routes],
        "probes": report.probe_count,
        "execution": [(r.probe.name, r.passed, r.error_kind) for r in report.execution.results],
        "issues": [(i.route, i.probe_category, i.kind, i.severity) for i in report.analysis.issues],
        "security": report.security.model_dump(),
        "performance": [(m.path, m.status, m.failed_requests) for m in report.performance.metrics],
        "stage_errors": report.stage_errors,
    }


class TestUnreachableTarget:

    @pytest.mark.asyncio
    async def test_every_probe_fails_and_is_reported(self, tmp_path: Path, failing_backend):
        report = await offline(failing_backend, tmp_path).run_routes(ROUTES, BASE, AuthProfile(present=True))

        assert report.route_count == 2
        assert report.probe_count == 17
        assert (report.execution.total, report.execution.failed) == (17, 17)
        assert {r.error_kind for r in report.execution.results} == {"network"}
        assert len(report.analysis.issues) == 17
        assert report.analysis.fixed == 0
        assert report.security.total == 0
        assert [m.status for m in report.performance.metrics] == ["unreachable", "unreachable"]
        assert report.stage_errors == []

    @pytest.mark.asyncio
    async def test_runs_are_repeatable(self, tmp_path: Path, failing_backend):
        orchestrator = offline(failing_backend, tmp_path)
        first = await orchestrator.run_routes(ROUTES, BASE)
        second = await orchestrator.run_routes(ROUTES, BASE)
        assert outcome(first) == outcome(second)

    @pytest.mark.asyncio
    async def test_workspace_is_removed(self, tmp_path: Path, failing_backend):
        await offline(failing_backend, tmp_path).run_routes(ROUTES, BASE)
        assert list((tmp_path / "workspaces").iterdir()) == []

    @pytest.mark.asyncio
    async def test_progress_ends_with_completion(self, tmp_path: Path, failing_backend):
        progress = ProgressEmitter()
        await offline(failing_backend, tmp_path, progress).run_routes(ROUTES[:1], BASE)
        assert progress.events[0].message == "Generating probes for GET /a..."
        assert progress.events[-1].message == "Full scan completed"
        assert progress.events[-1].severity == "success"


class TestStageErrors:

    @pytest.mark.asyncio
    async def test_failed_stage_is_recorded_and_run_continues(self, tmp_path: Path):
        backend = AsyncMock()
        backend.complete.side_effect = RuntimeError("model exploded")
        progress = ProgressEmitter()
        report = await offline(backend, tmp_path, progress).run_routes(ROUTES, BASE)

        assert report.stage_errors == ["synthesis: model exploded"]
        assert report.probe_count == 0
        assert report.execution.total == 0
        assert len(report.performance.metrics) == 2
        assert any(e.severity == "error" and "model exploded" in e.message for e in progress.events)


class TestProjectRun:

    def test_discover_project(self, sample_project: Path):
        routes, profile = discover_project(sample_project)
        assert [r.key for r in routes] == [
            "GET /health",
            "POST /api/login",
            "GET /api/users",
            "GET /api/users/:id",
            "POST /api/users",
        ]
        assert profile.present is True

    def test_discover_missing_project(self, tmp_path: Path):
        with pytest.raises(ScanError):
            discover_project(tmp_path / "missing")

    @pytest.mark.asyncio
    async def test_probes_land_in_the_project(self, sample_project: Path, failing_backend):
        report = await offline(failing_backend, sample_project.parent).run_project(sample_project, BASE)
        files = list((sample_project / GENERATED_PROBES_DIR).iterdir())
        assert report.route_count == 5
        assert report.probe_count == len(files) > 0
        assert report.auth.login_path == "/api/login"

    @pytest.mark.asyncio
    async def test_generated_probes_are_not_rescanned(self, sample_project: Path, failing_backend):
        orchestrator = offline(failing_backend, sample_project.parent)
        first = await orchestrator.run_project(sample_project, BASE)
        second = await orchestrator.run_project(sample_project, BASE)
        assert second.route_count == first.route_count
        assert outcome(first) == outcome(second)


class TestDocumentRun:

    @pytest.mark.asyncio
    async def test_document_routes(self, tmp_path: Path, failing_backend):
        doc = {"paths": {"/pets": {"get": {}}}}
        orchestrator = offline(failing_backend, tmp_path)
        orchestrator.document_transport = httpx.MockTransport(lambda r: httpx.Response(200, json=doc))
        report = await orchestrator.run_document("http://docs.test/openapi.json", BASE)
        assert [r.key for r in report.routes] == ["GET /pets"]
        assert report.probe_count == 8

    @pytest.mark.asyncio
    async def test_bad_document_aborts(self, tmp_path: Path, failing_backend):
        orchestrator = offline(failing_backend, tmp_path)
        orchestrator.document_transport = httpx.MockTransport(lambda r: httpx.Response(200, text="paths: {}"))
        with pytest.raises(SpecFormatError):
            await orchestrator.run_document("http://docs.test/openapi.yaml", BASE)


class TestProgressEmitter:

    @pytest.mark.asyncio
    async def test_sinks_receive_events(self):
        received = []

        async def sink(event):
            received.append(event.message)

        progress = ProgressEmitter([sink])
        await progress.emit("hello")
        assert received == ["hello"]

    @pytest.mark.asyncio
    async def test_failing_sink_is_dropped(self):
        async def broken(event):
            raise ConnectionError("socket closed")

        progress = ProgressEmitter([broken])
        event = await progress.emit("one", "warning")
        await progress.emit("two")
        assert event.severity == "warning"
        assert progress.sinks == []
        assert [e.message for e in progress.events] == ["one", "two"]
