import logging
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from apiprobe.api.websocket import broadcaster
from apiprobe.discovery.auth_profiler import AuthProfiler
from apiprobe.discovery.openapi import discover_routes
from apiprobe.errors import ScanError, SpecFormatError
from apiprobe.injectors.engine import SecurityProbeEngine
from apiprobe.models.requests import DocumentRequest, ProjectRequest, TargetRequest
from apiprobe.models.route import AuthProfile, RouteModel
from apiprobe.performance.engine import PerformanceProbeEngine
from apiprobe.pipeline.orchestrator import PipelineOrchestrator, discover_project
from apiprobe.pipeline.progress import ProgressEmitter

log = logging.getLogger(__name__)
router = APIRouter()


def build_progress() -> ProgressEmitter:
    return ProgressEmitter([broadcaster.send_event])


def build_orchestrator() -> PipelineOrchestrator:
    return PipelineOrchestrator(progress=build_progress())


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def _invalid(e: ValidationError) -> JSONResponse:
    first = e.errors()[0]
    field = ".".join(str(p) for p in first.get("loc", ()))
    return _error(400, f"{field}: {first.get('msg', 'invalid value')}")


def _target_profile(req: TargetRequest) -> AuthProfile:
    return AuthProfile(
        present=req.auth_present or bool(req.login_path),
        login_path=req.login_path,
        token_field=req.token_field,
    )


async def _target_routes(req: TargetRequest) -> Optional[list[RouteModel]]:
    if req.routes:
        return [
            RouteModel(method=r.method.upper(), path=r.path, auth_required=r.auth_required)
            for r in req.routes
        ]
    if req.openapi_url:
        return await discover_routes(req.openapi_url)
    return None


# ──────────────────────────── Health ────────────────────────────────


@router.get("/health")
async def health():
    return {"status": "ok"}


# ──────────────────────────── Discovery ─────────────────────────────


@router.post("/scan")
async def scan_project(body: dict):
    try:
        req = ProjectRequest(**body)
    except ValidationError as e:
        return _invalid(e)
    try:
        routes, _ = discover_project(req.project_path)
    except ScanError as e:
        return _error(400, str(e))
    return {"endpoints": [r.model_dump(mode="json") for r in routes], "count": len(routes)}


@router.post("/detect-auth")
async def detect_auth(body: dict):
    try:
        req = ProjectRequest(**body)
    except ValidationError as e:
        return _invalid(e)
    try:
        profile = AuthProfiler(req.project_path).profile()
    except ScanError as e:
        return _error(400, str(e))
    return {"auth": profile.model_dump()}


@router.post("/discover-endpoints")
async def discover_endpoints(body: dict):
    try:
        req = DocumentRequest(**body)
    except ValidationError as e:
        return _invalid(e)
    try:
        routes = await discover_routes(req.openapi_url)
    except SpecFormatError as e:
        return _error(400, str(e))
    return {"endpoints": [r.model_dump(mode="json") for r in routes], "count": len(routes)}


# ──────────────────────────── Probing ───────────────────────────────


@router.post("/security-test")
async def security_test(body: dict):
    try:
        req = TargetRequest(**body)
    except ValidationError as e:
        return _invalid(e)
    try:
        routes = await _target_routes(req)
    except SpecFormatError as e:
        return _error(400, str(e))
    if not routes:
        return _error(400, "routes or openapi_url is required")
    engine = SecurityProbeEngine(req.base_url, _target_profile(req), progress=build_progress())
    report = await engine.run(routes)
    return report.model_dump()


@router.post("/performance-test")
async def performance_test(body: dict):
    try:
        req = TargetRequest(**body)
    except ValidationError as e:
        return _invalid(e)
    try:
        routes = await _target_routes(req)
    except SpecFormatError as e:
        return _error(400, str(e))
    if not routes:
        return _error(400, "routes or openapi_url is required")
    engine = PerformanceProbeEngine(req.base_url, _target_profile(req), progress=build_progress())
    report = await engine.run(routes)
    return report.model_dump()


# ──────────────────────────── Full runs ─────────────────────────────


@router.post("/full-scan")
async def full_scan(body: dict):
    try:
        req = ProjectRequest(**body)
    except ValidationError as e:
        return _invalid(e)
    try:
        report = await build_orchestrator().run_project(req.project_path, req.base_url)
    except ScanError as e:
        return _error(400, str(e))
    except Exception as e:
        log.error("full scan failed: %s", e, exc_info=True)
        return _error(500, str(e))
    return report.model_dump(mode="json")


@router.post("/full-scan-url")
async def full_scan_url(body: dict):
    try:
        req = TargetRequest(**body)
    except ValidationError as e:
        return _invalid(e)
    if not req.routes and not req.openapi_url:
        return _error(400, "routes or openapi_url is required")

    orchestrator = build_orchestrator()
    try:
        if req.routes:
            routes = await _target_routes(req)
            report = await orchestrator.run_routes(routes, req.base_url, _target_profile(req))
        else:
            report = await orchestrator.run_document(req.openapi_url, req.base_url)
    except SpecFormatError as e:
        return _error(400, str(e))
    except Exception as e:
        log.error("full scan failed: %s", e, exc_info=True)
        return _error(500, str(e))
    return report.model_dump(mode="json")
