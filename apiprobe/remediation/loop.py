"""
Bounded repair of failed probes through the generative backend.

A candidate revision is accepted as soon as it passes the structural gate;
the repaired probe is not executed again against the live target.
"""

import logging
import re
from pathlib import Path
from typing import Optional

from apiprobe.config import HIGH_FAILURE_RATE, REMEDIATION_MAX_ATTEMPTS, SLOW_PROBE_THRESHOLD_MS
from apiprobe.errors import GenerationError
from apiprobe.llm.client import TextCompletion, strip_code_fences
from apiprobe.llm.prompts import REPAIR_SYSTEM, repair_prompt
from apiprobe.models.probe import AnalysisResult, Issue, ProbeResult, RunSummary
from apiprobe.pipeline.progress import ProgressEmitter
from apiprobe.sandbox.dsl import is_structurally_valid

log = logging.getLogger(__name__)

NO_ERROR_REASON = "No error message available"
EXHAUSTED_REASON = "Max retries exceeded"

# (keywords, kind, severity), applied in order; a later match overrides an earlier one
_CLASSIFIERS = [
    (("sql", "xss", "injection"), "security", "high"),
    (("timeout", "slow", "latency"), "performance", "medium"),
    (("500", "crash", "exception"), "error", "critical"),
]

# Test-name prefix the interpreter puts on assertion messages
_TEST_NAME_PREFIX = re.compile(r"^\[.*?\] (?=line \d+:)")


def classify_error(error: str) -> tuple[str, str]:
    """``(kind, severity)`` for an error text, by case-insensitive keyword match."""
    lowered = error.lower()
    kind, severity = "failure", "medium"
    for keywords, k, s in _CLASSIFIERS:
        if any(word in lowered for word in keywords):
            kind, severity = k, s
    return kind, severity


def make_issue(result: ProbeResult, reason: str) -> Issue:
    error = result.error or ""
    kind, severity = classify_error(_TEST_NAME_PREFIX.sub("", error, count=1))
    return Issue(
        route=result.probe.route.key,
        probe_category=result.probe.category.value,
        severity=severity,
        kind=kind,
        message=error,
        suggestion=reason,
    )


def build_recommendations(summary: RunSummary, issues: list[Issue]) -> list[str]:
    recommendations: list[str] = []

    if summary.results:
        average = sum(r.duration_ms for r in summary.results) / len(summary.results)
        if average > SLOW_PROBE_THRESHOLD_MS:
            recommendations.append(
                f"Probes average {average:.0f}ms, above {SLOW_PROBE_THRESHOLD_MS}ms. "
                "Consider optimizing endpoint performance."
            )

    security = [i for i in issues if i.kind == "security"]
    if security:
        recommendations.append(
            f"Found {len(security)} potential security vulnerabilities. "
            "Review and implement proper input validation."
        )

    critical = [i for i in issues if i.severity == "critical"]
    if critical:
        recommendations.append(
            f"Found {len(critical)} critical issues. "
            "These may indicate server crashes or unhandled exceptions."
        )

    if summary.total:
        failure_rate = summary.failed / summary.total
        if failure_rate > HIGH_FAILURE_RATE:
            recommendations.append(
                f"High failure rate ({failure_rate * 100:.1f}%). "
                "Review API implementation and probe cases."
            )

    return recommendations


class RemediationLoop:
    def __init__(
        self,
        backend: TextCompletion,
        max_attempts: int = REMEDIATION_MAX_ATTEMPTS,
        progress: Optional[ProgressEmitter] = None,
    ) -> None:
        self.backend = backend
        self.max_attempts = max_attempts
        self.progress = progress or ProgressEmitter()

    async def analyze(self, summary: RunSummary) -> AnalysisResult:
        issues: list[Issue] = []
        fixed = 0

        for result in summary.results:
            if result.passed:
                continue
            await self.progress.emit(f"Analyzing failure: {result.probe.name}")
            ok, reason = await self.remediate(result)
            if ok:
                fixed += 1
                await self.progress.emit(f"Fixed: {result.probe.name}", "success")
            else:
                issues.append(make_issue(result, reason))

        return AnalysisResult(
            total=summary.total,
            passed=summary.passed,
            failed=summary.failed,
            fixed=fixed,
            issues=issues,
            recommendations=build_recommendations(summary, issues),
        )

    async def remediate(self, result: ProbeResult) -> tuple[bool, str]:
        """Try to repair one failed probe. Returns ``(fixed, reason)``."""
        if not result.error:
            return False, NO_ERROR_REASON

        probe = result.probe
        context = {
            "route": probe.route.key,
            "category": probe.category.value,
            "duration_ms": result.duration_ms,
        }
        original = probe.code
        for attempt in range(1, self.max_attempts + 1):
            await self.progress.emit(f"Fix attempt {attempt}/{self.max_attempts} for {probe.name}")
            prompt = repair_prompt(original, result.error, context)
            try:
                raw = await self.backend.complete(prompt, system=REPAIR_SYSTEM)
            except GenerationError as e:
                log.warning("fix attempt %d for %s failed: %s", attempt, probe.name, e)
                if attempt == self.max_attempts:
                    await self.progress.emit(
                        f"Failed to fix after {self.max_attempts} attempts: {e}", "error",
                    )
                continue

            probe.code = strip_code_fences(raw)
            _persist(probe.file_path, probe.code)
            if is_structurally_valid(probe.code):
                return True, ""

        return False, EXHAUSTED_REASON


def _persist(file_path: Optional[str], code: str) -> None:
    if file_path is None:
        return
    try:
        Path(file_path).write_text(code, encoding="utf-8")
    except OSError as e:
        log.warning("could not write repaired probe to %s: %s", file_path, e)
