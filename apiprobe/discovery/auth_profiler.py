"""
Static inference of the target's login/token contract.

Each file is checked for five categories of evidence (login route, token
issuance, header read, secret, middleware definition).  Categories fill in
first-match-wins across files; scanning stops at the first file that declares
a login route.  Root entry-point files then fill whatever is still missing,
and dependency manifests are always inspected last: a known auth library is
enough to flag ``present`` on its own.
"""

import json
import logging
import re
from pathlib import Path
from typing import Optional

from apiprobe.discovery.scanner import SourceScanner
from apiprobe.discovery.tokenizer import find_call_sites
from apiprobe.models.route import AuthProfile

log = logging.getLogger(__name__)

LOGIN_PATH_PATTERN = re.compile(r"login|signin|auth", re.IGNORECASE)
LOGIN_VERBS = ("get", "post")

TOKEN_ISSUANCE_PATTERNS = [
    re.compile(r"\bjwt\.sign\s*\(", re.IGNORECASE),
    re.compile(r"\bjsonwebtoken\.sign\s*\(", re.IGNORECASE),
    re.compile(r"\bjwt\.encode\s*\("),
    re.compile(r"\bcreate_access_token\s*\("),
]

TOKEN_FIELD_PATTERNS = [
    re.compile(r"res\.(?:json|send)\s*\(\s*\{[^}]*?\b(\w+)\s*:\s*token\b"),
    re.compile(r"return\s*\{[^}]*?['\"](\w+)['\"]\s*:\s*(?:access_)?token\b"),
]

HEADER_READ_PATTERNS = [
    re.compile(r"req\.headers\[\s*['\"`]authorization['\"`]\s*\]", re.IGNORECASE),
    re.compile(r"req\.headers\.authorization", re.IGNORECASE),
    re.compile(r"Bearer\s+token", re.IGNORECASE),
    re.compile(r"request\.headers\.get\(\s*['\"]authorization['\"]", re.IGNORECASE),
    re.compile(r"\bHTTPBearer\b"),
]

SECRET_LITERAL_PATTERNS = [
    re.compile(r"\bJWT_SECRET['\"`]?\s*[:=]\s*['\"`]([^'\"`]+)['\"`]", re.IGNORECASE),
    re.compile(r"\bjwtSecret['\"`]?\s*[:=]\s*['\"`]([^'\"`]+)['\"`]"),
    re.compile(r"\bSECRET_KEY['\"`]?\s*[:=]\s*['\"`]([^'\"`]+)['\"`]"),
]
SECRET_ENV_PATTERNS = [
    re.compile(r"process\.env\.(\w*SECRET\w*)"),
    re.compile(r"os\.getenv\(\s*['\"](\w*SECRET\w*)['\"]"),
    re.compile(r"os\.environ(?:\.get\(\s*|\[\s*)['\"](\w*SECRET\w*)['\"]"),
]

MIDDLEWARE_PATTERNS = [
    re.compile(r"function\s+(\w*authenticate\w*)\s*\(", re.IGNORECASE),
    re.compile(r"const\s+(\w*authenticate\w*)\s*=", re.IGNORECASE),
    re.compile(r"const\s+(\w*auth\w*)\s*=\s*(?:async\s*)?\(", re.IGNORECASE),
    re.compile(r"def\s+(\w*(?:auth|current_user)\w*)\s*\("),
]

AUTH_LIBRARIES = frozenset({
    "jsonwebtoken", "jwt", "passport", "passport-jwt", "express-jwt",
    "pyjwt", "python-jose", "flask-jwt-extended", "djangorestframework-simplejwt",
    "authlib", "fastapi-users", "flask-login",
})

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")
_PYPROJECT_DEP = re.compile(r"['\"]\s*([A-Za-z0-9][A-Za-z0-9._-]*)")

_FIELDS = (
    "login_path", "login_method", "token_field", "token_header_name",
    "secret_hint", "middleware_name",
)


def analyze_source(text: str) -> dict:
    """Evidence found in one file, as a dict of AuthProfile fields.

    ``"issues_token"`` is set when a token-issuance call is present.
    """
    found: dict = {}

    for line in text.splitlines():
        for site in find_call_sites(line):
            if site.verb in LOGIN_VERBS and LOGIN_PATH_PATTERN.search(site.path):
                found["login_path"] = site.path
                found["login_method"] = site.verb.upper()
                break
        if "login_path" in found:
            break

    if any(p.search(text) for p in TOKEN_ISSUANCE_PATTERNS):
        found["issues_token"] = True
        for pattern in TOKEN_FIELD_PATTERNS:
            m = pattern.search(text)
            if m:
                found["token_field"] = m.group(1)
                break

    if any(p.search(text) for p in HEADER_READ_PATTERNS):
        found["token_header_name"] = "Authorization"

    for pattern in SECRET_LITERAL_PATTERNS:
        m = pattern.search(text)
        if m:
            found["secret_hint"] = m.group(1)
            break
    else:
        for pattern in SECRET_ENV_PATTERNS:
            m = pattern.search(text)
            if m:
                found["secret_hint"] = f"env:{m.group(1)}"
                break

    for pattern in MIDDLEWARE_PATTERNS:
        m = pattern.search(text)
        if m:
            found["middleware_name"] = m.group(1)
            break

    return found


def manifest_libraries(root: Path) -> set[str]:
    """Lower-cased dependency names declared in the project's manifests."""
    names: set[str] = set()

    package_json = root / "package.json"
    if package_json.is_file():
        try:
            data = json.loads(package_json.read_text(encoding="utf-8", errors="ignore"))
        except (OSError, ValueError) as e:
            log.warning("cannot parse %s: %s", package_json, e)
        else:
            if isinstance(data, dict):
                for key in ("dependencies", "devDependencies"):
                    deps = data.get(key)
                    if isinstance(deps, dict):
                        names.update(str(k).lower() for k in deps)

    for req in sorted(root.glob("requirements*.txt")):
        try:
            lines = req.read_text(encoding="utf-8", errors="ignore").splitlines()
        except OSError:
            continue
        for line in lines:
            if line.strip().startswith(("#", "-")):
                continue
            m = _REQUIREMENT_NAME.match(line)
            if m:
                names.add(m.group(1).lower())

    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        try:
            text = pyproject.read_text(encoding="utf-8", errors="ignore")
        except OSError:
            text = ""
        m = re.search(r"dependencies\s*=\s*\[(.*?)\]", text, re.DOTALL)
        if m:
            names.update(d.lower() for d in _PYPROJECT_DEP.findall(m.group(1)))

    return names


class AuthProfiler:
    def __init__(self, project_path: str | Path, scanner: Optional[SourceScanner] = None) -> None:
        self.scanner = scanner or SourceScanner(project_path)
        self.root = self.scanner.root

    def profile(self, files: Optional[list[Path]] = None) -> AuthProfile:
        if files is None:
            files = self.scanner.scan()

        merged: dict = {}
        evidence = False
        seen: set[Path] = set()

        for path in files:
            seen.add(path)
            found = self._analyze_file(path)
            evidence = self._merge(merged, found) or evidence
            if "login_path" in found:
                log.info("login route %s found in %s", found["login_path"], path)
                break

        for path in self.scanner.entry_points():
            if path in seen:
                continue
            evidence = self._merge(merged, self._analyze_file(path)) or evidence

        libs = manifest_libraries(self.root) & AUTH_LIBRARIES
        if libs:
            log.info("auth libraries declared: %s", ", ".join(sorted(libs)))

        present = evidence or bool(libs)
        profile = AuthProfile(present=present, **merged)
        log.info(
            "auth profile: present=%s login=%s %s",
            profile.present, profile.login_method, profile.login_path,
        )
        return profile

    @staticmethod
    def _analyze_file(path: Path) -> dict:
        try:
            return analyze_source(path.read_text(encoding="utf-8", errors="ignore"))
        except OSError as e:
            log.warning("cannot read %s, skipping: %s", path, e)
            return {}

    @staticmethod
    def _merge(merged: dict, found: dict) -> bool:
        """First match wins per field. Returns True if *found* shows auth is in use."""
        for name in _FIELDS:
            if name in found and name not in merged:
                merged[name] = found[name]
        return "login_path" in found or bool(found.get("issues_token"))
