"""
End-to-end run: discovery, synthesis, execution, remediation, then the
security and performance stages.

Only discovery can abort a run (``ScanError`` / ``SpecFormatError``).  Every
later stage is wrapped: a failure is logged, emitted as an ``error`` event,
recorded in ``report.stage_errors`` and the run moves on with an empty
result for that stage.
"""

import logging
import shutil
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Awaitable, Callable, Iterator, Optional, TypeVar

import httpx

from apiprobe.config import GENERATED_PROBES_DIR, WORKSPACE_ROOT
from apiprobe.discovery.auth_profiler import AuthProfiler
from apiprobe.discovery.extractor import EndpointExtractor
from apiprobe.discovery.openapi import discover_routes
from apiprobe.discovery.scanner import SourceScanner
from apiprobe.injectors.engine import SecurityProbeEngine
from apiprobe.llm.client import TextCompletion, build_backend
from apiprobe.models.probe import AnalysisResult, ProbeSpec, RunSummary
from apiprobe.models.report import PerformanceReport, RunReport, SecurityReport
from apiprobe.models.route import AuthProfile, RouteModel
from apiprobe.performance.engine import PerformanceProbeEngine
from apiprobe.pipeline.context import RunContext
from apiprobe.pipeline.progress import ProgressEmitter
from apiprobe.remediation.loop import RemediationLoop
from apiprobe.sandbox.executor import ExecutionSandbox
from apiprobe.synthesis.synthesizer import ProbeSynthesizer
from apiprobe.transport import ContextFactory, httpx_context, playwright_context

log = logging.getLogger(__name__)

T = TypeVar("T")


def discover_project(project_path: str | Path) -> tuple[list[RouteModel], AuthProfile]:
    """Routes and auth profile of a local project. Raises ``ScanError``."""
    scanner = SourceScanner(project_path)
    files = scanner.scan()
    extractor = EndpointExtractor()
    routes: list[RouteModel] = []
    for path in files:
        routes.extend(extractor.extract_from_file(path))
    profile = AuthProfiler(project_path, scanner=scanner).profile(files)
    return routes, profile


class PipelineOrchestrator:
    def __init__(
        self,
        backend: Optional[TextCompletion] = None,
        progress: Optional[ProgressEmitter] = None,
        sandbox_context: ContextFactory = playwright_context,
        http_context: ContextFactory = httpx_context,
        document_transport: Optional[httpx.AsyncBaseTransport] = None,
        workspace_root: Path = WORKSPACE_ROOT,
    ) -> None:
        self.backend = backend if backend is not None else build_backend()
        self.progress = progress or ProgressEmitter()
        self.sandbox_context = sandbox_context
        self.http_context = http_context
        self.document_transport = document_transport
        self.workspace_root = Path(workspace_root)

    # ── Entry points ───────────────────────────────────────────────

    async def run_project(self, project_path: str | Path, base_url: str) -> RunReport:
        await self.progress.emit(f"Scanning project: {project_path}")
        routes, profile = discover_project(project_path)
        await self.progress.emit(f"Found {len(routes)} endpoints", "success")
        if profile.present:
            await self.progress.emit(
                f"Authentication detected: {profile.effective_login_method} "
                f"{profile.effective_login_path}", "success",
            )
        probes_dir = Path(project_path) / GENERATED_PROBES_DIR
        return await self.execute(RunContext(base_url, tuple(routes), profile, probes_dir))

    async def run_document(self, openapi_url: str, base_url: str) -> RunReport:
        await self.progress.emit(f"Fetching interface document: {openapi_url}")
        routes = await discover_routes(openapi_url, transport=self.document_transport)
        await self.progress.emit(f"Found {len(routes)} endpoints", "success")
        return await self.run_routes(routes, base_url)

    async def run_routes(
        self,
        routes: list[RouteModel],
        base_url: str,
        auth_profile: Optional[AuthProfile] = None,
    ) -> RunReport:
        with self.temp_workspace() as workspace:
            ctx = RunContext(
                base_url=base_url,
                routes=tuple(routes),
                auth_profile=auth_profile or AuthProfile(),
                probes_dir=workspace / GENERATED_PROBES_DIR,
            )
            return await self.execute(ctx)

    @contextmanager
    def temp_workspace(self) -> Iterator[Path]:
        path = self.workspace_root / uuid.uuid4().hex
        path.mkdir(parents=True, exist_ok=True)
        log.debug("created workspace %s", path)
        try:
            yield path
        finally:
            shutil.rmtree(path, ignore_errors=True)
            log.debug("removed workspace %s", path)

    # ── Stages ─────────────────────────────────────────────────────

    async def execute(self, ctx: RunContext) -> RunReport:
        start = time.perf_counter()
        routes = list(ctx.routes)
        report = RunReport(
            base_url=ctx.base_url,
            route_count=len(routes),
            routes=routes,
            auth=ctx.auth_profile,
        )

        synthesizer = ProbeSynthesizer(ctx.probes_dir, self.backend, self.progress)
        probes: list[ProbeSpec] = await self._stage(
            report, "synthesis", lambda: synthesizer.synthesize(routes), [],
        )
        report.probe_count = len(probes)

        sandbox = ExecutionSandbox(ctx.base_url, ctx.auth_profile, self.sandbox_context, self.progress)
        report.execution = await self._stage(
            report, "execution", lambda: sandbox.run(probes), RunSummary(),
        )

        remediation = RemediationLoop(self.backend, progress=self.progress)
        report.analysis = await self._stage(
            report, "remediation", lambda: remediation.analyze(report.execution), AnalysisResult(),
        )

        security = SecurityProbeEngine(
            ctx.base_url, ctx.auth_profile, self.http_context, progress=self.progress,
        )
        report.security = await self._stage(
            report, "security", lambda: security.run(routes), SecurityReport(),
        )

        performance = PerformanceProbeEngine(
            ctx.base_url, ctx.auth_profile, self.http_context, progress=self.progress,
        )
        report.performance = await self._stage(
            report, "performance", lambda: performance.run(routes), PerformanceReport(),
        )

        report.duration_ms = int((time.perf_counter() - start) * 1000)
        await self.progress.emit("Full scan completed", "success")
        return report

    async def _stage(
        self,
        report: RunReport,
        name: str,
        run: Callable[[], Awaitable[T]],
        default: T,
    ) -> T:
        try:
            return await run()
        except Exception as e:
            log.error("%s stage failed: %s", name, e, exc_info=True)
            report.stage_errors.append(f"{name}: {e}")
            await self.progress.emit(f"{name.capitalize()} stage failed: {e}", "error")
            return default
