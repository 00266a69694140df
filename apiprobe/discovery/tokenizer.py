"""
Single-line tokenizer for route call sites.

Recognised grammar (everything else on the line is skipped):

    call_site := receiver "." verb "(" string
    receiver  := IDENT    router-style: IDENT ends with "router" (any case)
                          app-style:    IDENT is "app" or ends with "app"
    verb      := get | post | put | delete | patch | head | options | all
    string    := '...' | "..." | `...`   non-empty, no quote characters inside

Whitespace between tokens is ignored, so ``router.get ( '/x'`` and the
decorator form ``@app.get("/x")`` both match.  Matching is purely lexical:
a call site inside a comment or a string is still reported.
"""

from dataclasses import dataclass
from enum import Enum

HTTP_VERBS = frozenset({"get", "post", "put", "delete", "patch", "head", "options", "all"})
_QUOTES = "'\"`"


class TokenKind(str, Enum):
    IDENT = "ident"
    DOT = "dot"
    LPAREN = "lparen"
    STRING = "string"
    OTHER = "other"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    col: int


@dataclass(frozen=True)
class CallSite:
    receiver: str
    style: str      # "router" | "app"
    verb: str
    path: str
    col: int


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch in "_$"


def _is_ident_part(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


def tokenize_line(line: str) -> list[Token]:
    tokens: list[Token] = []
    i, n = 0, len(line)
    while i < n:
        ch = line[i]
        if ch.isspace():
            i += 1
        elif _is_ident_start(ch):
            start = i
            while i < n and _is_ident_part(line[i]):
                i += 1
            tokens.append(Token(TokenKind.IDENT, line[start:i], start))
        elif ch == ".":
            tokens.append(Token(TokenKind.DOT, ch, i))
            i += 1
        elif ch == "(":
            tokens.append(Token(TokenKind.LPAREN, ch, i))
            i += 1
        elif ch in _QUOTES:
            end = i + 1
            while end < n and line[end] != ch:
                end += 2 if line[end] == "\\" else 1
            if end >= n:
                # Unterminated literal, treat the quote as noise
                tokens.append(Token(TokenKind.OTHER, ch, i))
                i += 1
            else:
                tokens.append(Token(TokenKind.STRING, line[i + 1:end], i))
                i = end + 1
        else:
            tokens.append(Token(TokenKind.OTHER, ch, i))
            i += 1
    return tokens


def receiver_style(name: str) -> str | None:
    lowered = name.lower()
    if lowered.endswith("router"):
        return "router"
    if lowered == "app" or lowered.endswith("app"):
        return "app"
    return None


def find_call_sites(line: str) -> list[CallSite]:
    """Every route call site on *line*, left to right."""
    tokens = tokenize_line(line)
    sites: list[CallSite] = []
    for i in range(len(tokens) - 4):
        recv, dot, verb, paren, lit = tokens[i:i + 5]
        if (
            recv.kind is not TokenKind.IDENT
            or dot.kind is not TokenKind.DOT
            or verb.kind is not TokenKind.IDENT
            or paren.kind is not TokenKind.LPAREN
            or lit.kind is not TokenKind.STRING
        ):
            continue
        style = receiver_style(recv.value)
        if style is None or verb.value not in HTTP_VERBS:
            continue
        if not lit.value or any(q in lit.value for q in _QUOTES):
            continue
        sites.append(CallSite(recv.value, style, verb.value, lit.value, recv.col))
    return sites


def dotted_names(line: str) -> list[tuple[str, bool]]:
    """Dotted identifiers on *line* as ``(name, is_call)`` pairs, in order."""
    tokens = tokenize_line(line)
    names: list[tuple[str, bool]] = []
    i = 0
    while i < len(tokens):
        if tokens[i].kind is not TokenKind.IDENT:
            i += 1
            continue
        parts = [tokens[i].value]
        j = i + 1
        while (
            j + 1 < len(tokens)
            and tokens[j].kind is TokenKind.DOT
            and tokens[j + 1].kind is TokenKind.IDENT
        ):
            parts.append(tokens[j + 1].value)
            j += 2
        is_call = j < len(tokens) and tokens[j].kind is TokenKind.LPAREN
        names.append((".".join(parts), is_call))
        i = j
    return names
