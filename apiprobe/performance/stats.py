import math

from apiprobe.config import PERF_FAST_MS, PERF_MODERATE_MS, PERF_SLOW_MS, PERF_TARGET_LATENCY_MS


def percentile(sorted_values: list[float], fraction: float) -> float:
    """``sorted_values[floor(fraction * n)]``, clamped to the last element."""
    if not sorted_values:
        return 0.0
    idx = min(math.floor(len(sorted_values) * fraction), len(sorted_values) - 1)
    return sorted_values[idx]


def speed_status(average_ms: float) -> str:
    if average_ms < PERF_FAST_MS:
        return "fast"
    if average_ms < PERF_MODERATE_MS:
        return "moderate"
    if average_ms < PERF_SLOW_MS:
        return "slow"
    return "very_slow"


def summarize_latencies(
    latencies: list[float],
    concurrency: int,
    wall_ms: float,
    failed: int = 0,
    target_ms: float = PERF_TARGET_LATENCY_MS,
) -> dict:
    """Latency statistics for one burst, as PerformanceMetric fields.

    A burst with no successful request is reported as ``unreachable``.
    """
    if not latencies:
        return {
            "average_latency": 0.0,
            "min_latency": 0.0,
            "max_latency": 0.0,
            "p95_latency": 0.0,
            "p99_latency": 0.0,
            "requests_per_second": 0.0,
            "slow_requests": 0,
            "failed_requests": failed,
            "status": "unreachable",
        }

    ordered = sorted(latencies)
    average = sum(ordered) / len(ordered)
    return {
        "average_latency": round(average, 2),
        "min_latency": ordered[0],
        "max_latency": ordered[-1],
        "p95_latency": percentile(ordered, 0.95),
        "p99_latency": percentile(ordered, 0.99),
        "requests_per_second": round(concurrency / wall_ms * 1000, 2) if wall_ms > 0 else 0.0,
        "slow_requests": sum(1 for v in ordered if v > target_ms),
        "failed_requests": failed,
        "status": speed_status(average),
    }
