"""FastAPI application exposing the larder moderation service.

Run with ``uvicorn --factory web.backend.app.main:create_app``.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from larder import __version__
from larder.auth.store import SessionStore
from larder.config import load_settings
from larder.moderation.errors import PersistenceFault
from larder.moderation.service import ModerationService
from larder.storage.json_store import JsonStore
from web.backend.app.routers import moderation

logger = logging.getLogger(__name__)


def create_app(
    service: Optional[ModerationService] = None,
    sessions: Optional[SessionStore] = None,
) -> FastAPI:
    """Build the app. Without arguments the JSON stores from ``LARDER_*`` settings are used."""
    if service is None or sessions is None:
        settings = load_settings()
        sessions = sessions or SessionStore(str(settings.sessions_dir))
        service = service or ModerationService(JsonStore(str(settings.store_dir)), sessions, settings=settings)

    app = FastAPI(
        title="Larder API",
        description="REST API for recipe moderation, account status and the moderation log.",
        version=__version__,
    )
    app.state.service = service
    app.state.sessions = sessions

    # -----------------------------------------------------------------------
    # CORS middleware (allow all origins for development)
    # -----------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PersistenceFault)
    async def persistence_fault_handler(request: Request, exc: PersistenceFault):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Storage failure"})

    app.include_router(moderation.router)

    @app.get("/health", tags=["meta"])
    async def health():
        """Liveness probe."""
        return {"status": "ok"}

    return app
