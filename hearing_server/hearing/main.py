# hearing/main.py
# -*- coding: utf-8 -*-
"""
Hearing Server — FastAPI application entrypoint
-----------------------------------------------
This file wires everything together:

- Sets up central logging (so you see dialogue and tier logs in the console).
- Creates the FastAPI app.
- Adds middleware (CORS for dev).
- Mounts routers:
    * /sessions/*    (HTTP) → hearing sessions (create, answer, end, discard)
- Exposes an ASGI `app` object for uvicorn.

Typical run command (dev, from hearing_server/):

    uvicorn hearing.main:app --host 0.0.0.0 --port 8000 --reload

"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hearing.core.config import settings
from hearing.routers.sessions import router as sessions_router
from hearing.utils import setup_logging, get_logger


# ---------------------------------------------------------------------------
# Global logging config
# ---------------------------------------------------------------------------
# Configured once here. setup_logging() honours settings.debug, so in
# development you get DEBUG (per-call generation timings), and in
# production it stays at INFO.
# ---------------------------------------------------------------------------
setup_logging(debug=settings.debug)
logger = get_logger(__name__)
logger.info(
    "Hearing server starting (env=%s, tier1_enabled=%s, tier2_enabled=%s, redis=%s)",
    settings.environment,
    settings.tier1_enabled,
    settings.tier2_enabled,
    "on" if settings.redis_url else "off",
)


def create_app() -> FastAPI:
    """
    Application factory.

    Returns a configured FastAPI instance ready for uvicorn.
    """
    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # ------------------------------------------------------------------
    # CORS (the web client calls this API from a browser in development)
    # ------------------------------------------------------------------
    if settings.environment != "production":
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # ------------------------------------------------------------------
    # Routers
    # ------------------------------------------------------------------
    #   POST   /sessions
    #   GET    /sessions/{id}
    #   POST   /sessions/{id}/answers
    #   POST   /sessions/{id}/end
    #   DELETE /sessions/{id}
    app.include_router(sessions_router)

    # ------------------------------------------------------------------
    # Meta / health endpoints
    # ------------------------------------------------------------------

    @app.get("/", tags=["meta"])
    async def root():
        """Quick check that the server is alive."""
        return {
            "name": settings.app_name,
            "environment": settings.environment,
            "message": "Hearing server is running.",
        }

    @app.get("/health", tags=["meta"])
    async def health_check():
        return {
            "status": "ok",
            "environment": settings.environment,
            "debug": settings.debug,
            "tier1_enabled": settings.tier1_enabled,
            "tier2_enabled": settings.tier2_enabled,
            "session_store": "redis" if settings.redis_url else "memory",
        }

    logger.info("FastAPI app created (env=%s)", settings.environment)
    return app


# ASGI app for uvicorn / gunicorn
app = create_app()


if __name__ == "__main__":
    """
    Allow `python3 -m hearing.main` during development.

    In production you normally use:

        uvicorn hearing.main:app --host 0.0.0.0 --port 8000
    """
    import uvicorn

    uvicorn.run(
        "hearing.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=(settings.environment != "production"),
    )
