"""Runs a parsed probe program against a live target through a Transport."""

import asyncio
import json
import logging
from typing import Any

from apiprobe.config import DEFAULT_HEADERS
from apiprobe.errors import NetworkProbeError, ProbeAssertionError, ProbeNetworkError
from apiprobe.sandbox.dsl import Expectation, Operand, ProbeProgram, RequestStep
from apiprobe.transport import HttpResponse, Transport

log = logging.getLogger(__name__)


class _Undefined:
    def __repr__(self) -> str:
        return "undefined"


UNDEFINED = _Undefined()


async def run_program(
    program: ProbeProgram,
    transport: Transport,
    credentials: dict[str, str] | None = None,
) -> None:
    """Execute every test in order; the first failure raises.

    Raises ``ProbeAssertionError`` or ``ProbeNetworkError``.
    """
    for test in program.tests:
        for step in test.steps:
            responses = await _dispatch(step, transport, credentials or {})
            for expectation in step.expectations:
                for resp in responses:
                    check(expectation, resp, test.name)


async def _dispatch(step: RequestStep, transport: Transport, credentials: dict) -> list[HttpResponse]:
    headers = {**DEFAULT_HEADERS, **step.headers}
    if step.use_auth:
        headers.update(credentials)

    async def one() -> HttpResponse:
        return await transport.send(
            step.method,
            step.url,
            headers=headers,
            json_body=step.body if step.has_body else None,
            params=step.params,
        )

    results = await asyncio.gather(*(one() for _ in range(step.repeat)), return_exceptions=True)
    responses: list[HttpResponse] = []
    for result in results:
        if isinstance(result, NetworkProbeError):
            raise ProbeNetworkError(f"{step.method} {step.url} failed: {result}") from result
        if isinstance(result, BaseException):
            raise result
        responses.append(result)
    return responses


def resolve(operand: Operand, resp: HttpResponse) -> Any:
    if operand.kind == "literal":
        return operand.value
    if operand.kind == "status":
        return resp.status
    if operand.kind == "text":
        return resp.text
    if operand.kind == "text_lower":
        return resp.text.lower()
    try:
        return resp.json_body()
    except ValueError:
        return UNDEFINED


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _show(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    text = json.dumps(value) if not isinstance(value, str) else repr(value)
    return text if len(text) <= 120 else text[:117] + "..."


def check(expectation: Expectation, resp: HttpResponse, test_name: str = "") -> None:
    """Evaluate one expectation against one response."""
    actual = resolve(expectation.subject, resp)
    expected = resolve(expectation.expected, resp) if expectation.expected else None
    pred = expectation.predicate

    if pred == "toBeDefined":
        ok = actual is not UNDEFINED
        wanted = "to be defined"
    elif pred == "toBe":
        if _is_number(actual) and _is_number(expected):
            ok = actual == expected
        else:
            ok = type(actual) is type(expected) and actual == expected
        wanted = f"to be {_show(expected)}"
    elif pred in ("toBeLessThan", "toBeGreaterThanOrEqual"):
        if not (_is_number(actual) and _is_number(expected)):
            _fail(expectation, test_name, f"{pred} needs numbers, got {_show(actual)} and {_show(expected)}")
        if pred == "toBeLessThan":
            ok = actual < expected
            wanted = f"to be less than {_show(expected)}"
        else:
            ok = actual >= expected
            wanted = f"to be greater than or equal to {_show(expected)}"
    else:
        ok = _contains(expectation, actual, expected, test_name)
        if expectation.negated:
            ok = not ok
        wanted = f"{'not ' if expectation.negated else ''}to contain {_show(expected)}"

    if not ok:
        _fail(expectation, test_name, f"expected {expectation.subject.describe()} {_show(actual)} {wanted}")


def _contains(expectation: Expectation, actual: Any, expected: Any, test_name: str) -> bool:
    if isinstance(actual, str):
        if not isinstance(expected, str):
            _fail(expectation, test_name, f"cannot look for {_show(expected)} in a string")
        return expected in actual
    if isinstance(actual, list):
        return expected in actual
    _fail(expectation, test_name, f"toContain needs a string or a list, got {_show(actual)}")
    return False


def _fail(expectation: Expectation, test_name: str, message: str) -> None:
    prefix = f"[{test_name}] " if test_name else ""
    raise ProbeAssertionError(f"{prefix}line {expectation.line}: {message}")
