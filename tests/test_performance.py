import asyncio
import json
from contextlib import asynccontextmanager

import httpx
import pytest

from apiprobe.models.route import AuthProfile, RouteModel
from apiprobe.performance.engine import PerformanceProbeEngine, sample_payload
from apiprobe.performance.stats import percentile, speed_status, summarize_latencies
from apiprobe.transport import HttpResponse, Transport

from conftest import make_factory, unreachable

BASE = "http://target.test"
USERS = RouteModel(method="GET", path="/api/users")
CREATE = RouteModel(method="POST", path="/api/products", auth_required=True)


class TestStats:

    def test_uniform_burst(self):
        stats = summarize_latencies([100.0] * 20, concurrency=20, wall_ms=100.0)
        assert stats["average_latency"] == 100.0
        assert stats["p95_latency"] == 100.0
        assert stats["p99_latency"] == 100.0
        assert stats["min_latency"] == stats["max_latency"] == 100.0
        assert stats["requests_per_second"] == 200.0
        assert stats["slow_requests"] == 0
        assert stats["status"] == "fast"

    def test_percentiles_use_floor_index(self):
        values = [float(v) for v in range(1, 21)]
        assert percentile(values, 0.95) == 20.0   # index 19
        assert percentile(values, 0.5) == 11.0    # index 10
        assert percentile(values, 0.99) == 20.0
        assert percentile([], 0.95) == 0.0

    def test_slow_requests_above_target(self):
        stats = summarize_latencies([100.0, 600.0, 900.0], concurrency=3, wall_ms=900.0)
        assert stats["slow_requests"] == 2
        assert stats["average_latency"] == 533.33
        assert stats["status"] == "slow"

    def test_unreachable(self):
        stats = summarize_latencies([], concurrency=20, wall_ms=5.0, failed=20)
        assert stats["status"] == "unreachable"
        assert stats["failed_requests"] == 20
        assert stats["average_latency"] == 0.0

    @pytest.mark.parametrize("avg,status", [
        (0, "fast"), (199.9, "fast"), (200, "moderate"), (499, "moderate"),
        (500, "slow"), (999, "slow"), (1000, "very_slow"),
    ])
    def test_speed_status(self, avg, status):
        assert speed_status(avg) == status


def test_sample_payload():
    assert sample_payload("/api/users") == {"name": "Test User", "email": "test@example.com"}
    assert sample_payload("/api/products/1")["price"] == 99.99
    assert sample_payload("/orders") == {"test": "data"}


class SlowTransport(Transport):
    def __init__(self, delay: float) -> None:
        self.delay = delay

    async def send(self, method, url, headers=None, json_body=None, params=None) -> HttpResponse:
        await asyncio.sleep(self.delay)
        return HttpResponse(status=200)


def slow_factory(delay: float):
    @asynccontextmanager
    async def factory():
        yield SlowTransport(delay)
    return factory


class TestEngine:

    @pytest.mark.asyncio
    async def test_burst_per_route(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/login":
                return httpx.Response(200, json={"token": "tok"})
            body = json.loads(request.content) if request.content else None
            seen.append((request.method, request.url.path, request.headers.get("authorization"), body))
            return httpx.Response(200, json={})

        perf = PerformanceProbeEngine(
            BASE, auth_profile=AuthProfile(present=True), context_factory=make_factory(handler),
        )
        report = await perf.run([USERS, CREATE])

        assert seen.count(("GET", "/api/users", None, None)) == 20
        assert seen.count(("POST", "/api/products", "Bearer tok", {"name": "Test Product", "price": 99.99})) == 20
        assert [m.path for m in report.metrics] == ["/api/users", "/api/products"]
        assert all(m.failed_requests == 0 for m in report.metrics)
        assert all(m.status == "fast" for m in report.metrics)
        assert report.slow_routes == []

    @pytest.mark.asyncio
    async def test_unreachable_route(self):
        perf = PerformanceProbeEngine(BASE, context_factory=make_factory(unreachable), concurrency=5)
        report = await perf.run([USERS])
        metric = report.metrics[0]
        assert metric.status == "unreachable"
        assert metric.failed_requests == 5
        assert report.average_latency == 0.0
        assert perf.progress.events[-1].severity == "warning"

    @pytest.mark.asyncio
    async def test_slow_route_is_reported(self):
        perf = PerformanceProbeEngine(BASE, context_factory=slow_factory(0.6), concurrency=3)
        report = await perf.run([USERS])
        assert report.metrics[0].status == "slow"
        assert report.metrics[0].slow_requests == 3
        assert report.slow_routes == ["GET /api/users"]

    @pytest.mark.asyncio
    async def test_no_routes(self):
        report = await PerformanceProbeEngine(BASE, context_factory=make_factory(unreachable)).run([])
        assert report.metrics == []
        assert report.average_latency == 0.0
