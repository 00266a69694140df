"""
Deterministic probe templates, one per category.

Body-less methods (GET, DELETE, HEAD, OPTIONS) carry the category's fields as
query parameters instead of a JSON body.
"""

import json
from typing import Any

from apiprobe.config import BASE_URL_PLACEHOLDER
from apiprobe.models.probe import ProbeCategory
from apiprobe.models.route import RouteModel

EXPIRED_TOKEN = "Bearer expired_token_here"
LARGE_TEMPLATE_SIZE = 10_000
CONCURRENT_REQUESTS = 10

_TITLES = {
    ProbeCategory.HAPPY: "happy path - valid request",
    ProbeCategory.MALFORMED: "invalid input - malformed data",
    ProbeCategory.MISSING_FIELDS: "missing required fields",
    ProbeCategory.WRONG_TYPES: "wrong data types",
    ProbeCategory.EXPIRED_TOKEN: "expired token",
    ProbeCategory.SQLI: "SQL injection attempt",
    ProbeCategory.XSS: "XSS attempt",
    ProbeCategory.LARGE_PAYLOAD: "large payload",
    ProbeCategory.CONCURRENCY: "concurrent requests",
}

_PAYLOADS: dict[ProbeCategory, Any] = {
    ProbeCategory.MALFORMED: {"invalid": "data"},
    ProbeCategory.MISSING_FIELDS: {},
    ProbeCategory.WRONG_TYPES: {"id": "not-a-number", "name": 123},
    ProbeCategory.SQLI: {"query": "' OR 1=1 --"},
    ProbeCategory.XSS: {"input": "<script>alert(1)</script>"},
    ProbeCategory.LARGE_PAYLOAD: {"data": "x" * LARGE_TEMPLATE_SIZE},
}

_EXPECTATIONS = {
    ProbeCategory.HAPPY: ["status toBeLessThan 400", "json toBeDefined"],
    ProbeCategory.MALFORMED: ["status toBeGreaterThanOrEqual 400"],
    ProbeCategory.MISSING_FIELDS: ["status toBeGreaterThanOrEqual 400"],
    ProbeCategory.WRONG_TYPES: ["status toBeGreaterThanOrEqual 400"],
    ProbeCategory.EXPIRED_TOKEN: ["[401, 403] toContain status"],
    ProbeCategory.SQLI: ['text_lower not toContain "error"'],
    ProbeCategory.XSS: ['text not toContain "<script>"'],
    ProbeCategory.LARGE_PAYLOAD: ["[200, 400, 413, 422] toContain status"],
    ProbeCategory.CONCURRENCY: ["status toBeLessThan 500"],
}


def categories_for(route: RouteModel) -> list[ProbeCategory]:
    """Category catalog for *route*; expired-token only applies to protected routes."""
    return [
        c for c in ProbeCategory
        if c is not ProbeCategory.EXPIRED_TOKEN or route.auth_required
    ]


def sample_body(path: str) -> dict:
    """Plausible request body guessed from the path."""
    if "user" in path:
        return {"name": "Test User", "email": "test@example.com"}
    if "product" in path:
        return {"name": "Test Product", "price": 99.99, "description": "Test description"}
    return {}


def build_template(route: RouteModel, category: ProbeCategory) -> str:
    name = f"{route.key} {_TITLES[category]}".replace('"', "'")
    path = "/" + route.path.lstrip("/")
    lines = [
        "import probe",
        "",
        f'test "{name}":',
        f"    send {route.wire_method} {BASE_URL_PLACEHOLDER}{path}",
    ]

    if category is ProbeCategory.EXPIRED_TOKEN:
        lines.append(f"    header Authorization: {EXPIRED_TOKEN}")
    elif route.auth_required:
        lines.append("    auth")

    if category is ProbeCategory.HAPPY:
        payload = sample_body(route.path) if route.has_body else None
    else:
        payload = _PAYLOADS.get(category)

    if payload is not None:
        encoded = json.dumps(payload)
        if route.has_body:
            lines.append(f"    json {encoded}")
        elif payload:
            lines.append(f"    query {encoded}")

    if category is ProbeCategory.CONCURRENCY:
        lines.append(f"    repeat {CONCURRENT_REQUESTS}")

    lines.extend(f"    expect {e}" for e in _EXPECTATIONS[category])
    return "\n".join(lines) + "\n"
