"""MeshMind API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map MeshError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database, shared HTTP client and provider registry built in the lifespan
      and released on shutdown

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Long-lived services on app.state, reached through api/deps.py
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meshmind import __version__
from meshmind.api.error_handlers import register_error_handlers
from meshmind.api.routes import health, mesh
from meshmind.config import get_settings
from meshmind.infrastructure.database import close_db, init_db
from meshmind.infrastructure.observability import setup_logging
from meshmind.services.provider_registry import build_provider_registry
from meshmind.services.web_content_service import build_web_content_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    http = httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
    app.state.provider_registry = build_provider_registry(settings, http)
    app.state.web_content_service = build_web_content_service(settings, http)
    logger.info(
        "MeshMind API started (execution mode: %s)", settings.mesh_execution_mode,
    )
    yield
    logger.info("MeshMind API shutting down")
    await app.state.provider_registry.aclose()
    await close_db()


app = FastAPI(title="MeshMind API", version=__version__, lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(mesh.router)

register_error_handlers(app)
