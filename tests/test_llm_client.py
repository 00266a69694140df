import json

import httpx
import pytest

from apiprobe.errors import GenerationError
from apiprobe.llm import client as llm_client
from apiprobe.llm.client import (
    ClaudeCliBackend,
    OllamaBackend,
    _unwrap_envelope,
    build_backend,
    strip_code_fences,
)


def ollama(handler) -> OllamaBackend:
    return OllamaBackend(base_url="http://ollama.test/", model="m", transport=httpx.MockTransport(handler))


class TestStripCodeFences:

    def test_fenced_block(self):
        text = "Here you go:\n```probe\nimport probe\n```\nEnjoy."
        assert strip_code_fences(text) == "import probe"

    def test_first_fence_wins(self):
        assert strip_code_fences("```\na\n```\n```\nb\n```") == "a"

    def test_plain_text_is_stripped(self):
        assert strip_code_fences("  import probe\n\n") == "import probe"


class TestOllamaBackend:

    @pytest.mark.asyncio
    async def test_completion(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "done text", "done": True})

        text = await ollama(handler).complete("write it", system="be terse")
        assert text == "done text"
        assert seen["url"] == "http://ollama.test/api/generate"
        assert seen["body"] == {"model": "m", "prompt": "be terse\n\nwrite it", "stream": False}

    @pytest.mark.asyncio
    async def test_incomplete_response(self):
        backend = ollama(lambda r: httpx.Response(200, json={"response": "partial", "done": False}))
        with pytest.raises(GenerationError):
            await backend.complete("x")

    @pytest.mark.asyncio
    async def test_http_error(self):
        backend = ollama(lambda r: httpx.Response(500, text="model not loaded"))
        with pytest.raises(GenerationError):
            await backend.complete("x")

    @pytest.mark.asyncio
    async def test_non_json_reply(self):
        backend = ollama(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(GenerationError):
            await backend.complete("x")


class TestClaudeCliBackend:

    @pytest.mark.asyncio
    async def test_missing_binary(self, monkeypatch):
        monkeypatch.setattr(llm_client.shutil, "which", lambda name: None)
        with pytest.raises(GenerationError, match="not found"):
            await ClaudeCliBackend().complete("x")

    def test_envelope(self):
        assert _unwrap_envelope(json.dumps({"result": "import probe"})) == "import probe"
        assert _unwrap_envelope("plain text") == "plain text"
        assert _unwrap_envelope("[1, 2]") == "[1, 2]"


def test_build_backend():
    assert isinstance(build_backend("claude"), ClaudeCliBackend)
    assert isinstance(build_backend("ollama"), OllamaBackend)
    assert isinstance(build_backend("gpt"), OllamaBackend)
