"""
Text-completion backends.

A backend takes a prompt plus an optional system instruction and returns the
completed text.  Every failure surfaces as ``GenerationError``; nothing here
retries (retrying is the remediation loop's job).
"""

import asyncio
import json
import logging
import re
import shutil
import sys
from typing import Optional, Protocol

import httpx

from apiprobe.config import (
    CLAUDE_MODEL,
    LLM_PROVIDER,
    LLM_TIMEOUT,
    OLLAMA_BASE_URL,
    OLLAMA_MODEL,
)
from apiprobe.errors import GenerationError

log = logging.getLogger(__name__)

_FENCE = re.compile(r"```[\w-]*[ \t]*\n(.*?)\n?[ \t]*```", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Return the body of the first markdown fence in *text*, or *text* stripped."""
    m = _FENCE.search(text)
    if m:
        return m.group(1).strip()
    return text.strip()


class TextCompletion(Protocol):
    async def complete(self, prompt: str, system: Optional[str] = None) -> str:
        ...


class OllamaBackend:
    """Ollama ``/api/generate`` over httpx, non-streaming."""

    def __init__(
        self,
        base_url: str = OLLAMA_BASE_URL,
        model: str = OLLAMA_MODEL,
        timeout: float = LLM_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._transport = transport

    async def complete(self, prompt: str, system: Optional[str] = None) -> str:
        full_prompt = f"{system}\n\n{prompt}" if system else prompt
        payload = {"model": self.model, "prompt": full_prompt, "stream": False}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}/api/generate", json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise GenerationError(f"ollama request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise GenerationError("ollama returned a non-JSON response") from e
        if not isinstance(data, dict) or not data.get("done"):
            raise GenerationError("ollama returned an incomplete response")
        return str(data.get("response", ""))


class ClaudeCliBackend:
    """Pipes the prompt to the ``claude`` CLI on stdin and reads JSON output."""

    def __init__(self, model: str = CLAUDE_MODEL, timeout: float = LLM_TIMEOUT) -> None:
        self.model = model
        self.timeout = timeout

    async def complete(self, prompt: str, system: Optional[str] = None) -> str:
        claude_cmd = shutil.which("claude")
        if not claude_cmd:
            raise GenerationError("Claude CLI not found. Make sure 'claude' is installed and in your PATH.")

        full_prompt = f"{system}\n\n{prompt}" if system else prompt
        # -p with no argument reads the prompt from stdin
        args = [claude_cmd, "--model", self.model, "--output-format", "json", "-p"]
        if sys.platform == "win32" and claude_cmd.lower().endswith(".cmd"):
            args = ["cmd", "/c", *args]

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise GenerationError(f"could not start claude: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(input=full_prompt.encode("utf-8")), timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise GenerationError(f"claude timed out after {self.timeout:.0f}s")

        raw_out = stdout.decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            raw_err = stderr.decode("utf-8", errors="replace").strip()
            log.error("claude subprocess failed (rc=%d): %s", proc.returncode, raw_err[:500])
            raise GenerationError(f"claude exited with code {proc.returncode}: {raw_err[:500]}")
        if not raw_out:
            raise GenerationError("claude returned empty output")
        return _unwrap_envelope(raw_out)


def _unwrap_envelope(raw: str) -> str:
    """``--output-format json`` wraps the text as ``{"result": "..."}``."""
    try:
        outer = json.loads(raw)
    except ValueError:
        return raw
    if isinstance(outer, dict) and "result" in outer:
        return str(outer["result"])
    return raw


def build_backend(provider: str = LLM_PROVIDER) -> TextCompletion:
    if provider == "claude":
        return ClaudeCliBackend()
    if provider != "ollama":
        log.warning("unknown LLM_PROVIDER %r, falling back to ollama", provider)
    return OllamaBackend()
