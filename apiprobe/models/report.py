from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from apiprobe.models.probe import AnalysisResult, RunSummary
from apiprobe.models.route import AuthProfile, RouteModel


class SecurityFinding(BaseModel):
    """Classification of a single payload attempt against a route."""
    method: str
    path: str
    payload: str
    kind: str          # sql_injection, xss, path_traversal, large_payload, negative_value, unauthorized
    severity: str = "low"
    status: int = 0
    body: Optional[str] = None
    vulnerable: bool = False


class SecurityReport(BaseModel):
    total: int = 0
    findings: list[SecurityFinding] = []
    vulnerable_routes: list[str] = []


class PerformanceMetric(BaseModel):
    method: str
    path: str
    average_latency: float = 0.0
    min_latency: float = 0.0
    max_latency: float = 0.0
    p95_latency: float = 0.0
    p99_latency: float = 0.0
    requests_per_second: float = 0.0
    slow_requests: int = 0
    failed_requests: int = 0
    status: str = "fast"   # fast, moderate, slow, very_slow, unreachable


class PerformanceReport(BaseModel):
    metrics: list[PerformanceMetric] = []
    slow_routes: list[str] = []
    average_latency: float = 0.0


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class LogEvent(BaseModel):
    """Progress notification sent to external sinks."""
    message: str
    severity: str = "info"   # info, success, error, warning
    timestamp: str = Field(default_factory=_now)


class RunReport(BaseModel):
    """Aggregate result of one pipeline run, returned to the caller."""
    base_url: str
    started_at: str = Field(default_factory=_now)
    duration_ms: int = 0
    route_count: int = 0
    routes: list[RouteModel] = []
    auth: AuthProfile = AuthProfile()
    probe_count: int = 0
    execution: RunSummary = RunSummary()
    analysis: AnalysisResult = AnalysisResult()
    security: SecurityReport = SecurityReport()
    performance: PerformanceReport = PerformanceReport()
    stage_errors: list[str] = []
