from enum import Enum
from typing import Optional

from pydantic import BaseModel

from apiprobe.models.route import RouteModel


class ProbeCategory(str, Enum):
    HAPPY = "happy"
    MALFORMED = "malformed"
    MISSING_FIELDS = "missing_fields"
    WRONG_TYPES = "wrong_types"
    EXPIRED_TOKEN = "expired_token"
    SQLI = "sqli"
    XSS = "xss"
    LARGE_PAYLOAD = "large_payload"
    CONCURRENCY = "concurrency"


class SandboxState(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    EXECUTING = "executing"
    PASSED = "passed"
    FAILED = "failed"


class ProbeSpec(BaseModel):
    """A synthesized probe. ``code`` may be rewritten in place by remediation."""
    route: RouteModel
    category: ProbeCategory
    code: str
    file_path: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.route.key} [{self.category.value}]"


class ProbeResult(BaseModel):
    """Outcome of one sandboxed probe execution."""
    probe: ProbeSpec
    passed: bool
    error: Optional[str] = None
    error_kind: Optional[str] = None   # read | syntax | assertion | network
    duration_ms: int = 0
    state: SandboxState = SandboxState.IDLE


class RunSummary(BaseModel):
    passed: int = 0
    failed: int = 0
    total: int = 0
    duration_ms: int = 0
    results: list[ProbeResult] = []


class Issue(BaseModel):
    """A failed probe that remediation could not repair."""
    route: str
    probe_category: str
    severity: str = "medium"   # low, medium, high, critical
    kind: str = "failure"      # failure, security, performance, error
    message: str = ""
    suggestion: str = ""


class AnalysisResult(BaseModel):
    total: int = 0
    passed: int = 0
    failed: int = 0
    fixed: int = 0
    issues: list[Issue] = []
    recommendations: list[str] = []
