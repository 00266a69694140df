"""
Request contexts used to talk to the live target.

Every stage opens its own context through a *context factory*: a zero-arg
callable returning an async context manager that yields a ``Transport``.
The context is released when the ``async with`` block exits, whatever
the outcome.  Two implementations:

  - ``httpx_context``       httpx.AsyncClient (security / performance stages)
  - ``playwright_context``  playwright APIRequestContext (probe sandbox)
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Optional

import httpx
from pydantic import BaseModel

from apiprobe.config import PROBE_TIMEOUT
from apiprobe.errors import NetworkProbeError

log = logging.getLogger(__name__)


class HttpResponse(BaseModel):
    """Transport-neutral view of a live response."""
    status: int
    text: str = ""
    headers: dict = {}
    elapsed_ms: float = 0.0

    def json_body(self) -> Any:
        """Parsed JSON body; raises ``ValueError`` when the body is not JSON."""
        return json.loads(self.text)


class Transport(ABC):
    @abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[dict] = None,
        json_body: Any = None,
        params: Optional[dict] = None,
    ) -> HttpResponse:
        """Send one request. Raises ``NetworkProbeError`` if no response arrives."""
        ...


ContextFactory = Callable[[], AsyncContextManager[Transport]]


def join_url(base_url: str, path: str) -> str:
    if not path.startswith("/"):
        path = "/" + path
    return base_url.rstrip("/") + path


# ── httpx ────────────────────────────────────────────────────────────


class HttpxTransport(Transport):
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def send(self, method, url, headers=None, json_body=None, params=None) -> HttpResponse:
        start = time.perf_counter()
        try:
            resp = await self._client.request(
                method, url,
                params=params or None,
                headers=headers,
                json=json_body,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkProbeError(f"{method} {url} failed: {e!r}") from e
        elapsed = round((time.perf_counter() - start) * 1000, 2)
        return HttpResponse(
            status=resp.status_code,
            text=resp.text,
            headers=dict(resp.headers),
            elapsed_ms=elapsed,
        )


@asynccontextmanager
async def httpx_context(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = PROBE_TIMEOUT,
) -> AsyncIterator[Transport]:
    """Open an httpx client; *transport* lets tests plug in ``httpx.MockTransport``."""
    async with httpx.AsyncClient(verify=False, timeout=timeout, transport=transport) as client:
        yield HttpxTransport(client)


# ── playwright ───────────────────────────────────────────────────────


class PlaywrightTransport(Transport):
    def __init__(self, request_context) -> None:
        self._ctx = request_context

    async def send(self, method, url, headers=None, json_body=None, params=None) -> HttpResponse:
        from playwright.async_api import Error as PlaywrightError

        start = time.perf_counter()
        try:
            resp = await self._ctx.fetch(
                url,
                method=method,
                headers=headers,
                params=params,
                data=json.dumps(json_body) if json_body is not None else None,
            )
            text = await resp.text()
            status = resp.status
            resp_headers = dict(resp.headers)
            await resp.dispose()
        except PlaywrightError as e:
            raise NetworkProbeError(f"{method} {url} failed: {e.message}") from e
        elapsed = round((time.perf_counter() - start) * 1000, 2)
        return HttpResponse(status=status, text=text, headers=resp_headers, elapsed_ms=elapsed)


@asynccontextmanager
async def playwright_context(timeout: float = PROBE_TIMEOUT) -> AsyncIterator[Transport]:
    """Isolated playwright request context, disposed on exit."""
    # Deferred so that importing apiprobe never requires playwright browsers
    from playwright.async_api import async_playwright

    async with async_playwright() as p:
        ctx = await p.request.new_context(ignore_https_errors=True, timeout=timeout * 1000)
        try:
            yield PlaywrightTransport(ctx)
        finally:
            await ctx.dispose()
