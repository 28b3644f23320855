"""
CertIssuer — Application Entry Point

FastAPI application. The lifespan owns the single Redis and blob-store
client instances and injects them into the issuance core.

`uvicorn certissuer.main:app`
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Load .env file before any configuration is loaded
load_dotenv()

from certissuer import __version__
from certissuer.api.routers.issuance import issuance_error_handler
from certissuer.api.routers.issuance import router as issuance_router
from certissuer.clients.blobstore import PinataClient
from certissuer.clients.redis import RedisClient
from certissuer.config import load_config
from certissuer.systems.issuance.errors import IssuanceError
from certissuer.systems.issuance.service import IssuanceService
from certissuer.telemetry.logging import setup_logging

logger = structlog.get_logger("certissuer.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown sequence."""
    # ── 1. Load configuration ─────────────────────────────────
    config_path = os.environ.get("CERTISSUER_CONFIG_PATH", "config/default.yaml")
    config = load_config(config_path)
    app.state.config = config

    # ── 2. Set up logging ─────────────────────────────────────
    setup_logging(config.logging)
    logger.info("certissuer_starting", config_path=config_path, version=__version__)

    # ── 3. Connect to the document and blob stores ────────────
    redis_client = RedisClient(config.redis)
    await redis_client.connect()
    app.state.redis = redis_client

    pinata_client = PinataClient(config.pinata)
    await pinata_client.connect()
    app.state.blob_store = pinata_client

    # ── 4. Issuance core ──────────────────────────────────────
    app.state.issuance = IssuanceService.from_clients(config, redis_client, pinata_client)
    logger.info("certissuer_ready", collection=config.redis.collection)

    yield

    # ── Shutdown ──────────────────────────────────────────────
    logger.info("certissuer_shutting_down")
    await pinata_client.close()
    await redis_client.close()


app = FastAPI(
    title="CertIssuer",
    description="Certificate request review and content-addressed issuance",
    version=__version__,
    lifespan=lifespan,
)

# CORS for the dashboard frontend
_cors_origins = ["http://localhost:3000"]
_extra_origins = os.environ.get("CORS_ALLOWED_ORIGINS", "")
if _extra_origins:
    _cors_origins.extend(o.strip() for o in _extra_origins.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(IssuanceError, issuance_error_handler)  # type: ignore[arg-type]
app.include_router(issuance_router)


@app.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Store connectivity and issuance session counts."""
    return {
        "issuance": await request.app.state.issuance.health(),
        "redis": await request.app.state.redis.health_check(),
        "blob_store": await request.app.state.blob_store.health_check(),
    }
