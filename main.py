"""
Connection service — application entry point.

Configuration is built before anything else; a process without provider
credentials, site origin, admin allow-list or state secret refuses to start.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import ConfigError, Settings, get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "asyncio"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    if settings.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    # Routers read settings at import, so they are imported after validation
    from api.middleware import register_middleware
    from auth.routes import router as auth_router
    from connectors.registry import ConnectorRegistry
    from connectors.routes import oauth_router
    from connectors.routes import router as connectors_router

    app = FastAPI(
        title="Connection Service",
        version="1.0.0",
        description="Third-party OAuth connections for assigned agents.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)

    # Routes
    app.include_router(auth_router, prefix="/api/v1/auth")
    app.include_router(connectors_router, prefix="/api/v1")
    app.include_router(oauth_router)

    @app.on_event("startup")
    async def on_startup():
        registry = ConnectorRegistry()
        registry.discover()
        logger.info(
            "Connectors ready: %s; OAuth redirect URI %s",
            ", ".join(p["provider"] for p in registry.list_providers()) or "none",
            settings.oauth_redirect_uri,
        )
        logger.info("Application ready to accept requests.")

    return app


try:
    app = create_app()
except ConfigError as exc:
    logger.critical("Refusing to start: %s", exc)
    raise SystemExit(1) from exc

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )
