import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from apiprobe.config import PROBE_BODY_CAP
from apiprobe.models.report import SecurityFinding
from apiprobe.models.route import RouteModel
from apiprobe.transport import HttpResponse

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attempt:
    """One request an injector wants sent against a route."""
    label: str
    data: dict = field(default_factory=dict)
    with_credentials: bool = True


class BaseInjector(ABC):
    """
    Abstract base class for all security payload families.

    Subclass and implement:
      - generate_payloads()
      - analyze_response()

    The engine handles sending, pairing each response with its attempt,
    and collecting findings.
    """

    name: str = "base"
    kind: str = "base"
    description: str = ""
    severity: str = "medium"        # severity of a positive finding
    body_only: bool = False         # skipped for body-less methods
    keep_body: bool = True          # store the (capped) response body

    def applies_to(self, route: RouteModel) -> bool:
        return route.has_body or not self.body_only

    # ── Abstract interface ────────────────────────────────────────────

    @abstractmethod
    def generate_payloads(self, route: RouteModel) -> list[Attempt]:
        """Return the attempts to send against *route*."""
        ...

    @abstractmethod
    def analyze_response(self, resp: HttpResponse, attempt: Attempt) -> bool:
        """True when *resp* shows the route is vulnerable to *attempt*."""
        ...

    # ── Findings ──────────────────────────────────────────────────────

    def build_finding(self, route: RouteModel, attempt: Attempt, resp: HttpResponse) -> SecurityFinding:
        vulnerable = self.analyze_response(resp, attempt)
        if vulnerable:
            log.info("%s: %s vulnerable to %r", self.name, route.key, attempt.label)
        return SecurityFinding(
            method=route.method,
            path=route.path,
            payload=attempt.label,
            kind=self.kind,
            severity=self.severity if vulnerable else "low",
            status=resp.status,
            body=resp.text[:PROBE_BODY_CAP] if self.keep_body else None,
            vulnerable=vulnerable,
        )


class FieldInjector(BaseInjector):
    """Family that puts each payload into a fixed set of field names."""

    payloads: tuple[str, ...] = ()
    fields: tuple[str, ...] = ()

    def generate_payloads(self, route: RouteModel) -> list[Attempt]:
        return [Attempt(label=p, data={f: p for f in self.fields}) for p in self.payloads]
