"""
Parser for the probe language.

A probe body is a closed, line-oriented language::

    import probe
    test "GET /api/users happy path":
        send GET BASE_URL/api/users
        auth
        expect status toBeLessThan 400
        expect json toBeDefined

Statements inside a test: ``send``, ``header``, ``auth``, ``json``, ``query``,
``repeat`` and ``expect``.  Request modifiers apply to the most recent
``send`` and must precede its first ``expect``.  Indentation is free-form;
blank lines and ``#`` comments are ignored.  Nothing is ever evaluated as
Python.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from apiprobe.config import BASE_URL_PLACEHOLDER, PROBE_MAX_REPEAT
from apiprobe.errors import ProbeSyntaxError

IMPORT_MARKER = "import probe"
_IMPORT_LINE = re.compile(r"^\s*import\s+probe\s*$", re.MULTILINE)
_TEST_DECL = re.compile(r'^\s*test\s+"', re.MULTILINE)
_TEST_HEADER = re.compile(r'^test\s+"((?:[^"\\]|\\.)*)"\s*:$')
_HEADER_LINE = re.compile(r"^([A-Za-z0-9!#$%&'*+.^_`|~-]+)\s*:\s*(.*)$")

METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"})
SUBJECTS = frozenset({"status", "text", "text_lower", "json"})
PREDICATES = {
    # name -> takes an expected operand
    "toBe": True,
    "toBeLessThan": True,
    "toBeGreaterThanOrEqual": True,
    "toBeDefined": False,
    "toContain": True,
}

_decoder = json.JSONDecoder()


def is_structurally_valid(code: str) -> bool:
    """Structural gate: the framework import and at least one test declaration."""
    return bool(_IMPORT_LINE.search(code)) and bool(_TEST_DECL.search(code))


def substitute_base_url(code: str, base_url: str) -> str:
    return code.replace(BASE_URL_PLACEHOLDER, base_url.rstrip("/"))


@dataclass
class Operand:
    kind: str        # one of SUBJECTS, or "literal"
    value: Any = None

    def describe(self) -> str:
        if self.kind == "literal":
            return json.dumps(self.value)
        return self.kind


@dataclass
class Expectation:
    subject: Operand
    predicate: str
    negated: bool = False
    expected: Optional[Operand] = None
    line: int = 0


@dataclass
class RequestStep:
    method: str
    url: str
    line: int
    headers: dict[str, str] = field(default_factory=dict)
    use_auth: bool = False
    has_body: bool = False
    body: Any = None
    params: Optional[dict] = None
    repeat: int = 1
    expectations: list[Expectation] = field(default_factory=list)


@dataclass
class ProbeTest:
    name: str
    line: int
    steps: list[RequestStep] = field(default_factory=list)


@dataclass
class ProbeProgram:
    tests: list[ProbeTest]


def parse(code: str, base_url: str) -> ProbeProgram:
    """Substitute ``BASE_URL`` and parse *code* into a program.

    Raises ``ProbeSyntaxError`` on any malformed statement.
    """
    base = base_url.rstrip("/")
    text = substitute_base_url(code, base)
    parser = _Parser(base)
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parser.feed(line, lineno)
    return parser.finish()


class _Parser:
    def __init__(self, base: str) -> None:
        self.base = base
        self.imported = False
        self.tests: list[ProbeTest] = []

    @property
    def current_test(self) -> Optional[ProbeTest]:
        return self.tests[-1] if self.tests else None

    def feed(self, line: str, lineno: int) -> None:
        if _IMPORT_LINE.match(line):
            if self.tests:
                raise ProbeSyntaxError("'import probe' must precede all tests", lineno)
            self.imported = True
            return

        m = _TEST_HEADER.match(line)
        if m:
            if not self.imported:
                raise ProbeSyntaxError("missing 'import probe' before first test", lineno)
            self._close_test()
            self.tests.append(ProbeTest(name=m.group(1).replace('\\"', '"'), line=lineno))
            return

        test = self.current_test
        if test is None:
            raise ProbeSyntaxError(f"statement outside a test: {line!r}", lineno)

        keyword, _, rest = line.partition(" ")
        rest = rest.strip()
        handler = getattr(self, f"_stmt_{keyword}", None)
        if handler is None:
            raise ProbeSyntaxError(f"unknown statement {keyword!r}", lineno)
        handler(test, rest, lineno)

    def finish(self) -> ProbeProgram:
        if not self.imported:
            raise ProbeSyntaxError("missing 'import probe'")
        if not self.tests:
            raise ProbeSyntaxError("no test declared")
        self._close_test()
        return ProbeProgram(tests=self.tests)

    def _close_test(self) -> None:
        test = self.current_test
        if test is not None and not test.steps:
            raise ProbeSyntaxError(f"test {test.name!r} sends no request", test.line)

    # ── Statements ─────────────────────────────────────────────────

    def _stmt_send(self, test: ProbeTest, rest: str, lineno: int) -> None:
        parts = rest.split()
        if len(parts) != 2:
            raise ProbeSyntaxError("expected 'send <METHOD> <URL>'", lineno)
        method, url = parts[0].upper(), parts[1]
        if method not in METHODS:
            raise ProbeSyntaxError(f"unsupported method {parts[0]!r}", lineno)
        test.steps.append(RequestStep(method=method, url=self._resolve_url(url, lineno), line=lineno))

    def _stmt_header(self, test: ProbeTest, rest: str, lineno: int) -> None:
        step = self._modifiable_step(test, "header", lineno)
        m = _HEADER_LINE.match(rest)
        if not m:
            raise ProbeSyntaxError("expected 'header <Name>: <value>'", lineno)
        step.headers[m.group(1)] = m.group(2).strip()

    def _stmt_auth(self, test: ProbeTest, rest: str, lineno: int) -> None:
        step = self._modifiable_step(test, "auth", lineno)
        if rest:
            raise ProbeSyntaxError("'auth' takes no arguments", lineno)
        step.use_auth = True

    def _stmt_json(self, test: ProbeTest, rest: str, lineno: int) -> None:
        step = self._modifiable_step(test, "json", lineno)
        step.body = _parse_whole_json(rest, lineno)
        step.has_body = True

    def _stmt_query(self, test: ProbeTest, rest: str, lineno: int) -> None:
        step = self._modifiable_step(test, "query", lineno)
        params = _parse_whole_json(rest, lineno)
        if not isinstance(params, dict):
            raise ProbeSyntaxError("'query' expects a JSON object", lineno)
        step.params = {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in params.items()}

    def _stmt_repeat(self, test: ProbeTest, rest: str, lineno: int) -> None:
        step = self._modifiable_step(test, "repeat", lineno)
        if not rest.isdigit():
            raise ProbeSyntaxError("'repeat' expects a positive integer", lineno)
        n = int(rest)
        if not 1 <= n <= PROBE_MAX_REPEAT:
            raise ProbeSyntaxError(f"'repeat' must be between 1 and {PROBE_MAX_REPEAT}", lineno)
        step.repeat = n

    def _stmt_expect(self, test: ProbeTest, rest: str, lineno: int) -> None:
        if not test.steps:
            raise ProbeSyntaxError("'expect' before any 'send'", lineno)
        test.steps[-1].expectations.append(parse_expectation(rest, lineno))

    # ── Helpers ────────────────────────────────────────────────────

    def _modifiable_step(self, test: ProbeTest, keyword: str, lineno: int) -> RequestStep:
        if not test.steps:
            raise ProbeSyntaxError(f"'{keyword}' before any 'send'", lineno)
        step = test.steps[-1]
        if step.expectations:
            raise ProbeSyntaxError(f"'{keyword}' after the request was already checked", lineno)
        return step

    def _resolve_url(self, url: str, lineno: int) -> str:
        if url.startswith("/"):
            return self.base + url
        if url == self.base or url.startswith(self.base + "/") or url.startswith(self.base + "?"):
            return url
        raise ProbeSyntaxError(f"request URL {url!r} is outside the target {self.base!r}", lineno)


def _parse_whole_json(text: str, lineno: int) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise ProbeSyntaxError(f"invalid JSON: {e}", lineno) from e


def _parse_operand(text: str, lineno: int) -> tuple[Operand, str]:
    """Parse one operand from the front of *text*; return it and the remainder."""
    word = text.split(None, 1)[0] if text else ""
    if word in SUBJECTS:
        return Operand(word), text[len(word):].lstrip()
    try:
        value, end = _decoder.raw_decode(text)
    except ValueError:
        raise ProbeSyntaxError(f"expected an operand at {text[:30]!r}", lineno) from None
    return Operand("literal", value), text[end:].lstrip()


def parse_expectation(text: str, lineno: int = 0) -> Expectation:
    if not text:
        raise ProbeSyntaxError("empty 'expect'", lineno)
    subject, rest = _parse_operand(text, lineno)

    negated = False
    word, _, tail = rest.partition(" ")
    if word == "not":
        negated = True
        word, _, tail = tail.strip().partition(" ")
    if word not in PREDICATES:
        raise ProbeSyntaxError(f"unknown predicate {word!r}", lineno)
    if negated and word != "toContain":
        raise ProbeSyntaxError("'not' is only allowed before toContain", lineno)

    tail = tail.strip()
    expected = None
    if PREDICATES[word]:
        if not tail:
            raise ProbeSyntaxError(f"{word} needs a value", lineno)
        expected, tail = _parse_operand(tail, lineno)
    if tail:
        raise ProbeSyntaxError(f"unexpected trailing text {tail!r}", lineno)

    return Expectation(subject=subject, predicate=word, negated=negated, expected=expected, line=lineno)
