import logging
from pathlib import Path
from typing import Any

from apiprobe.discovery.tokenizer import dotted_names, find_call_sites
from apiprobe.errors import SpecFormatError
from apiprobe.models.route import RouteModel

log = logging.getLogger(__name__)

# Substrings that mark a route as protected when they appear near its declaration
AUTH_MARKERS = (
    "passport.authenticate",
    "authenticate",
    "isAuthenticated",
    "requireAuth",
    "verifyToken",
    "login_required",
    "get_current_user",
    "jwt",
    "auth",
)
AUTH_WINDOW = 5

DOCUMENT_METHODS = ("get", "post", "put", "delete", "patch", "head", "options")


class EndpointExtractor:
    """Turns route declarations (source files or an OpenAPI document) into RouteModels.

    Source mode reports every syntactic occurrence: the same (method, path)
    declared twice yields two routes.
    """

    # ── Source mode ────────────────────────────────────────────────

    def extract_from_file(self, path: str | Path) -> list[RouteModel]:
        """Routes declared in *path*; an unreadable file yields an empty list."""
        try:
            text = Path(path).read_text(encoding="utf-8", errors="ignore")
        except OSError as e:
            log.warning("cannot read %s, skipping: %s", path, e)
            return []
        return self.extract_from_source(text, str(path))

    def extract_from_source(self, text: str, location: str = "<source>") -> list[RouteModel]:
        lines = text.splitlines()
        routes: list[RouteModel] = []
        for idx, line in enumerate(lines):
            for site in find_call_sites(line):
                auth_required, middleware = _infer_auth(lines, idx)
                routes.append(RouteModel(
                    method=site.verb.upper(),
                    path=site.path,
                    source_location=f"{location}:{idx + 1}",
                    line=idx + 1,
                    auth_required=auth_required,
                    middleware=middleware,
                ))
        return routes

    # ── Document mode ──────────────────────────────────────────────

    def extract_from_document(self, document: Any, location: str = "<document>") -> list[RouteModel]:
        """Routes of an OpenAPI-style JSON document.

        Raises ``SpecFormatError`` when there is no top-level ``paths`` mapping.
        """
        if not isinstance(document, dict):
            raise SpecFormatError("interface document must be a JSON object")
        paths = document.get("paths")
        if not isinstance(paths, dict):
            raise SpecFormatError('invalid interface document: missing or invalid "paths"')

        routes: list[RouteModel] = []
        for path, item in paths.items():
            if not isinstance(item, dict) or not str(path).startswith("/"):
                continue
            for method in DOCUMENT_METHODS:
                op = item.get(method)
                if not isinstance(op, dict):
                    continue
                security = op.get("security")
                routes.append(RouteModel(
                    method=method.upper(),
                    path=path,
                    source_location=location,
                    auth_required=isinstance(security, list) and len(security) > 0,
                ))
        log.info("document %s declares %d routes", location, len(routes))
        return routes


def _infer_auth(lines: list[str], idx: int) -> tuple[bool, frozenset[str]]:
    """Look ``AUTH_WINDOW`` lines around *idx* for auth markers."""
    start = max(0, idx - AUTH_WINDOW)
    end = min(len(lines), idx + AUTH_WINDOW + 1)
    for line in lines[start:end]:
        if not any(marker in line for marker in AUTH_MARKERS):
            continue
        name = _middleware_name(line)
        return True, frozenset({name}) if name else frozenset()
    return False, frozenset()


def _middleware_name(line: str) -> str | None:
    names = dotted_names(line)
    for name, _ in names:
        if any(marker in name for marker in AUTH_MARKERS):
            return name
    for name, is_call in names:
        if is_call:
            return name
    return None
