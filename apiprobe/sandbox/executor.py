import asyncio
import itertools
import logging
import time
from pathlib import Path
from typing import Optional

from apiprobe.errors import ProbeExecutionError, ProbeReadError
from apiprobe.models.probe import ProbeResult, ProbeSpec, RunSummary, SandboxState
from apiprobe.models.route import AuthProfile
from apiprobe.pipeline.progress import ProgressEmitter
from apiprobe.sandbox.dsl import parse
from apiprobe.sandbox.interpreter import run_program
from apiprobe.session import authenticate, credential_headers
from apiprobe.transport import ContextFactory, playwright_context

log = logging.getLogger(__name__)


class ExecutionSandbox:
    """Executes probes against the live target, one isolated context per probe.

    Per probe: IDLE -> LOADED -> EXECUTING -> PASSED | FAILED.  Every failure
    becomes a failed result; nothing is raised to the caller.
    """

    def __init__(
        self,
        base_url: str,
        auth_profile: Optional[AuthProfile] = None,
        context_factory: ContextFactory = playwright_context,
        progress: Optional[ProgressEmitter] = None,
    ) -> None:
        self.base_url = base_url
        self.auth_profile = auth_profile or AuthProfile()
        self.context_factory = context_factory
        self.progress = progress or ProgressEmitter()

    async def run(self, probes: list[ProbeSpec]) -> RunSummary:
        start = time.perf_counter()
        token = await authenticate(self.auth_profile, self.base_url, self.context_factory)
        credentials = credential_headers(self.auth_profile, token)

        results: list[ProbeResult] = []
        # Probes of one route are contiguous; routes run one after another
        for route, group in itertools.groupby(probes, key=lambda p: p.route):
            batch = list(group)
            await self.progress.emit(f"Running {len(batch)} probes for {route.key}...")
            outcomes = await asyncio.gather(*(self.execute(p, credentials) for p in batch))
            results.extend(outcomes)

        passed = sum(1 for r in results if r.passed)
        summary = RunSummary(
            passed=passed,
            failed=len(results) - passed,
            total=len(results),
            duration_ms=int((time.perf_counter() - start) * 1000),
            results=results,
        )
        await self.progress.emit(
            f"Probes finished: {summary.passed} passed, {summary.failed} failed",
            "success" if summary.failed == 0 else "warning",
        )
        return summary

    async def execute(self, probe: ProbeSpec, credentials: Optional[dict] = None) -> ProbeResult:
        """Run one probe; the returned result always carries its probe."""
        state = SandboxState.IDLE
        start = time.perf_counter()
        try:
            code = self._load(probe)
            state = SandboxState.LOADED
            program = parse(code, self.base_url)
            state = SandboxState.EXECUTING
            async with self.context_factory() as transport:
                await run_program(program, transport, credentials)
        except ProbeExecutionError as e:
            log.debug("probe %s failed in state %s: %s", probe.name, state.value, e)
            return ProbeResult(
                probe=probe,
                passed=False,
                error=str(e),
                error_kind=e.kind,
                duration_ms=_elapsed_ms(start),
                state=SandboxState.FAILED,
            )
        except Exception as e:
            log.warning("probe %s raised unexpectedly: %s", probe.name, e, exc_info=True)
            return ProbeResult(
                probe=probe,
                passed=False,
                error=f"{type(e).__name__}: {e}",
                error_kind="execution",
                duration_ms=_elapsed_ms(start),
                state=SandboxState.FAILED,
            )
        return ProbeResult(
            probe=probe,
            passed=True,
            duration_ms=_elapsed_ms(start),
            state=SandboxState.PASSED,
        )

    @staticmethod
    def _load(probe: ProbeSpec) -> str:
        if probe.file_path is None:
            return probe.code
        try:
            return Path(probe.file_path).read_text(encoding="utf-8")
        except OSError as e:
            raise ProbeReadError(f"cannot read probe file {probe.file_path}: {e}") from e


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
