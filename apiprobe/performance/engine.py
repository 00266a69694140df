import asyncio
import logging
import time
from typing import Optional

from apiprobe.config import PERF_CONCURRENCY
from apiprobe.errors import NetworkProbeError
from apiprobe.models.report import PerformanceMetric, PerformanceReport
from apiprobe.models.route import AuthProfile, RouteModel
from apiprobe.performance.stats import summarize_latencies
from apiprobe.pipeline.progress import ProgressEmitter
from apiprobe.session import authenticate, credential_headers
from apiprobe.transport import ContextFactory, Transport, httpx_context, join_url

log = logging.getLogger(__name__)


def sample_payload(path: str) -> dict:
    """Synthetic body for a route, guessed from its path."""
    if "user" in path:
        return {"name": "Test User", "email": "test@example.com"}
    if "product" in path:
        return {"name": "Test Product", "price": 99.99}
    return {"test": "data"}


class PerformanceProbeEngine:
    """Fires one concurrent burst per route and reports latency statistics."""

    def __init__(
        self,
        base_url: str,
        auth_profile: Optional[AuthProfile] = None,
        context_factory: ContextFactory = httpx_context,
        concurrency: int = PERF_CONCURRENCY,
        progress: Optional[ProgressEmitter] = None,
    ) -> None:
        self.base_url = base_url
        self.auth_profile = auth_profile or AuthProfile()
        self.context_factory = context_factory
        self.concurrency = concurrency
        self.progress = progress or ProgressEmitter()

    async def run(self, routes: list[RouteModel]) -> PerformanceReport:
        token = await authenticate(self.auth_profile, self.base_url, self.context_factory)
        credentials = credential_headers(self.auth_profile, token)

        metrics: list[PerformanceMetric] = []
        async with self.context_factory() as transport:
            for route in routes:
                await self.progress.emit(f"Testing performance for {route.key}...")
                metric = await self.measure_route(transport, route, credentials)
                metrics.append(metric)
                if metric.status == "unreachable":
                    await self.progress.emit(f"{route.key} did not answer any request", "warning")

        slow = [f"{m.method} {m.path}" for m in metrics if m.status in ("slow", "very_slow")]
        average = sum(m.average_latency for m in metrics) / len(metrics) if metrics else 0.0
        return PerformanceReport(metrics=metrics, slow_routes=slow, average_latency=round(average, 2))

    async def measure_route(
        self,
        transport: Transport,
        route: RouteModel,
        credentials: dict,
    ) -> PerformanceMetric:
        headers = {"Content-Type": "application/json"}
        if route.auth_required:
            headers.update(credentials)
        url = join_url(self.base_url, route.path)
        body = sample_payload(route.path) if route.has_body else None

        async def timed() -> Optional[float]:
            start = time.perf_counter()
            try:
                await transport.send(route.wire_method, url, headers=headers, json_body=body)
            except NetworkProbeError as e:
                log.debug("performance request to %s failed: %s", route.key, e)
                return None
            return (time.perf_counter() - start) * 1000

        wall_start = time.perf_counter()
        samples = await asyncio.gather(*(timed() for _ in range(self.concurrency)))
        wall_ms = (time.perf_counter() - wall_start) * 1000

        latencies = [s for s in samples if s is not None]
        stats = summarize_latencies(
            latencies, self.concurrency, wall_ms, failed=len(samples) - len(latencies),
        )
        return PerformanceMetric(method=route.method, path=route.path, **stats)
