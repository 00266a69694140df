import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apiprobe.api.routes import router
from apiprobe.api.websocket import ws_router
from apiprobe.config import CORS_ORIGINS

# ── Logging ────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="API Probe",
    version="1.0.0",
    description="Route discovery, probe synthesis and execution, security and performance bursts.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials="*" not in CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST under /api, progress socket at /ws
app.include_router(router, prefix="/api")
app.include_router(ws_router)
