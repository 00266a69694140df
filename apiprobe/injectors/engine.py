import asyncio
import logging
from typing import Optional

from apiprobe.errors import NetworkProbeError
from apiprobe.injectors.base import Attempt, BaseInjector
from apiprobe.injectors.path_traversal_injector import PathTraversalInjector
from apiprobe.injectors.payload_limit_injector import LargePayloadInjector, NegativeValueInjector
from apiprobe.injectors.sql_injector import SQLInjector
from apiprobe.injectors.unauthorized_injector import UnauthorizedInjector
from apiprobe.injectors.xss_injector import XSSInjector
from apiprobe.models.report import SecurityFinding, SecurityReport
from apiprobe.models.route import AuthProfile, RouteModel
from apiprobe.pipeline.progress import ProgressEmitter
from apiprobe.session import authenticate, credential_headers
from apiprobe.transport import ContextFactory, HttpResponse, Transport, httpx_context, join_url

log = logging.getLogger(__name__)

# ── Injector registry ──────────────────────────────────────────────
INJECTORS: dict[str, type[BaseInjector]] = {
    "sql_injection": SQLInjector,
    "xss": XSSInjector,
    "path_traversal": PathTraversalInjector,
    "large_payload": LargePayloadInjector,
    "negative_value": NegativeValueInjector,
    "unauthorized": UnauthorizedInjector,
}


class SecurityProbeEngine:
    """Runs every injector against every route on one client owned by the stage."""

    def __init__(
        self,
        base_url: str,
        auth_profile: Optional[AuthProfile] = None,
        context_factory: ContextFactory = httpx_context,
        injectors: Optional[list[BaseInjector]] = None,
        progress: Optional[ProgressEmitter] = None,
    ) -> None:
        self.base_url = base_url
        self.auth_profile = auth_profile or AuthProfile()
        self.context_factory = context_factory
        self.injectors = injectors if injectors is not None else [cls() for cls in INJECTORS.values()]
        self.progress = progress or ProgressEmitter()

    async def run(self, routes: list[RouteModel]) -> SecurityReport:
        token = await authenticate(self.auth_profile, self.base_url, self.context_factory)
        if token:
            await self.progress.emit("Authentication successful", "success")
        elif self.auth_profile.present:
            await self.progress.emit("Authentication failed, continuing without token", "warning")
        credentials = credential_headers(self.auth_profile, token)

        findings: list[SecurityFinding] = []
        async with self.context_factory() as transport:
            for route in routes:
                await self.progress.emit(f"Testing security for {route.key}...")
                findings.extend(await self.probe_route(transport, route, credentials))

        vulnerable = sorted({f"{f.method} {f.path}" for f in findings if f.vulnerable})
        if vulnerable:
            await self.progress.emit(f"Found {len(vulnerable)} vulnerable routes", "warning")
        return SecurityReport(total=len(findings), findings=findings, vulnerable_routes=vulnerable)

    async def probe_route(
        self,
        transport: Transport,
        route: RouteModel,
        credentials: dict,
    ) -> list[SecurityFinding]:
        """Send every applicable attempt for *route* concurrently.

        Each outcome comes back paired with the injector and attempt that
        produced it; an attempt whose request failed is dropped.
        """
        jobs = [
            (injector, attempt)
            for injector in self.injectors if injector.applies_to(route)
            for attempt in injector.generate_payloads(route)
        ]
        outcomes = await asyncio.gather(*(
            self._send(transport, route, injector, attempt, credentials)
            for injector, attempt in jobs
        ))

        findings = []
        for injector, attempt, resp in outcomes:
            if resp is not None:
                findings.append(injector.build_finding(route, attempt, resp))
        return findings

    async def _send(
        self,
        transport: Transport,
        route: RouteModel,
        injector: BaseInjector,
        attempt: Attempt,
        credentials: dict,
    ) -> tuple[BaseInjector, Attempt, Optional[HttpResponse]]:
        headers = {"Content-Type": "application/json"}
        if attempt.with_credentials and route.auth_required:
            headers.update(credentials)

        if route.has_body:
            json_body, params = attempt.data, None
        else:
            json_body, params = None, {k: str(v) for k, v in attempt.data.items()} or None

        try:
            resp = await transport.send(
                route.wire_method,
                join_url(self.base_url, route.path),
                headers=headers,
                json_body=json_body,
                params=params,
            )
        except NetworkProbeError as e:
            log.debug("%s attempt %r on %s dropped: %s", injector.name, attempt.label, route.key, e)
            return injector, attempt, None
        return injector, attempt, resp
