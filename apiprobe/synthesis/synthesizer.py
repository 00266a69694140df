import asyncio
import logging
import re
from pathlib import Path
from typing import Optional

from apiprobe.config import LLM_CONCURRENCY
from apiprobe.errors import GenerationError
from apiprobe.llm.client import TextCompletion, strip_code_fences
from apiprobe.llm.prompts import GENERATE_SYSTEM, generate_prompt
from apiprobe.models.probe import ProbeCategory, ProbeSpec
from apiprobe.models.route import RouteModel
from apiprobe.pipeline.progress import ProgressEmitter
from apiprobe.sandbox.dsl import is_structurally_valid
from apiprobe.synthesis.templates import build_template, categories_for

log = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def probe_filename(route: RouteModel, category: ProbeCategory) -> str:
    sanitized = _NON_ALNUM.sub("_", route.path).strip("_")
    return f"{route.method.lower()}_{sanitized}_{category.value}.probe"


class ProbeSynthesizer:
    """Builds the probe catalog for each route and persists every body.

    With no backend the deterministic templates are used as-is.
    """

    def __init__(
        self,
        probes_dir: str | Path,
        backend: Optional[TextCompletion] = None,
        progress: Optional[ProgressEmitter] = None,
        concurrency: int = LLM_CONCURRENCY,
    ) -> None:
        self.probes_dir = Path(probes_dir)
        self.backend = backend
        self.progress = progress or ProgressEmitter()
        self._sem = asyncio.Semaphore(max(1, concurrency))
        self._used: set[str] = set()

    async def synthesize(self, routes: list[RouteModel]) -> list[ProbeSpec]:
        self.probes_dir.mkdir(parents=True, exist_ok=True)
        probes: list[ProbeSpec] = []
        for route in routes:
            await self.progress.emit(f"Generating probes for {route.key}...")
            route_probes = await self.synthesize_route(route)
            probes.extend(route_probes)
            await self.progress.emit(
                f"Generated {len(route_probes)} probes for {route.key}", "success",
            )
        return probes

    async def synthesize_route(self, route: RouteModel) -> list[ProbeSpec]:
        categories = categories_for(route)
        bodies = await asyncio.gather(*(self._body_for(route, c) for c in categories))
        probes = []
        for category, code in zip(categories, bodies):
            probe = ProbeSpec(route=route, category=category, code=code)
            self.persist(probe)
            probes.append(probe)
        return probes

    def persist(self, probe: ProbeSpec) -> None:
        """Write the probe body to its file, recording the path on first write.

        Duplicate routes get a numeric suffix so neither body is overwritten.
        """
        if probe.file_path is None:
            name = probe_filename(probe.route, probe.category)
            stem = name[: -len(".probe")]
            n = 2
            while name in self._used:
                name = f"{stem}_{n}.probe"
                n += 1
            self._used.add(name)
            probe.file_path = str(self.probes_dir / name)
        path = Path(probe.file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(probe.code, encoding="utf-8")

    async def _body_for(self, route: RouteModel, category: ProbeCategory) -> str:
        template = build_template(route, category)
        if self.backend is None:
            return template

        prompt = generate_prompt(
            route.wire_method, route.path, route.auth_required, category.value, template,
        )
        async with self._sem:
            try:
                raw = await self.backend.complete(prompt, system=GENERATE_SYSTEM)
            except GenerationError as e:
                log.debug("generation failed for %s %s, using template: %s",
                          route.key, category.value, e)
                return template

        candidate = strip_code_fences(raw)
        if is_structurally_valid(candidate):
            return candidate + ("" if candidate.endswith("\n") else "\n")
        log.debug("generated body for %s %s failed the structural gate", route.key, category.value)
        return template
