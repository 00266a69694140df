"""
Centralised configuration, all tunables in one place.
Override via environment variables where noted.
"""

import os
import tempfile
from pathlib import Path

# ── Generative backend ─────────────────────────────────────────────
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "ollama")          # "ollama" | "claude"
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "deepseek-coder")
CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "sonnet")
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "120"))        # seconds per completion
LLM_CONCURRENCY = int(os.getenv("LLM_CONCURRENCY", "4"))    # in-flight completions per route

# ── Remediation ────────────────────────────────────────────────────
REMEDIATION_MAX_ATTEMPTS = 3
SLOW_PROBE_THRESHOLD_MS = 5_000
HIGH_FAILURE_RATE = 0.3

# ── Probing ────────────────────────────────────────────────────────
PROBE_TIMEOUT = float(os.getenv("PROBE_TIMEOUT", "30"))     # seconds per live request
PROBE_BODY_CAP = 500           # max chars kept per finding body
PROBE_MAX_REPEAT = 50          # upper bound for `repeat` in a probe body
BASE_URL_PLACEHOLDER = "BASE_URL"

# Applied to every outgoing probe request. Probe headers override these.
DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/plain, */*",
}

# ── Security ───────────────────────────────────────────────────────
LARGE_PAYLOAD_SIZE = 100_000

# ── Performance ────────────────────────────────────────────────────
PERF_CONCURRENCY = 20
PERF_TARGET_LATENCY_MS = 500
PERF_FAST_MS = 200
PERF_MODERATE_MS = 500
PERF_SLOW_MS = 1_000

# ── Auth defaults ──────────────────────────────────────────────────
# Used whenever the auth profile leaves a field unset.
DEFAULT_LOGIN_PATH = "/api/login"
DEFAULT_LOGIN_METHOD = "POST"
DEFAULT_TOKEN_FIELD = "token"
DEFAULT_TOKEN_HEADER = "Authorization"
PROBE_LOGIN_EMAIL = os.getenv("PROBE_LOGIN_EMAIL", "test@example.com")
PROBE_LOGIN_PASSWORD = os.getenv("PROBE_LOGIN_PASSWORD", "testpassword")

# ── Filesystem ─────────────────────────────────────────────────────
GENERATED_PROBES_DIR = "generated-probes"
WORKSPACE_ROOT = Path(os.getenv("APIPROBE_WORKSPACE", str(Path(tempfile.gettempdir()) / "apiprobe")))

# ── Interface document fetch ───────────────────────────────────────
DOCUMENT_FETCH_TIMEOUT = 15.0

# ── Service ────────────────────────────────────────────────────────
CORS_ORIGINS = [o.strip() for o in os.getenv("APIPROBE_CORS_ORIGINS", "*").split(",") if o.strip()]
PROGRESS_REPLAY_SIZE = 200     # recent events replayed to a newly attached client
