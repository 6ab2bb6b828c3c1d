"""
Application entry point.
Run with:  uvicorn crm.main:app --reload
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crm.api.error_handling import register_exception_handlers
from crm.api.v1.router import api_router
from crm.core.config import Settings, settings
from crm.core.logging_config import configure_logging
from crm.db.database import init_db
from crm.repositories.token_store import RefreshTokenStore, build_token_store
from crm.services.session_service import Clock

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the database tables if they do not exist yet."""
    init_db(app.state.settings.DATABASE_URL)
    yield


def create_app(
    config: Optional[Settings] = None,
    token_store: Optional[RefreshTokenStore] = None,
    clock: Clock = time.time,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    The refresh token store is created here (or passed in) and shared by
    every request through ``app.state``.
    """
    config = config or settings
    logger = logging.getLogger(__name__)
    logger.info("Starting FastAPI application setup")
    app = FastAPI(
        title=config.APP_NAME,
        version=config.APP_VERSION,
        description="Backend API for the CRM: authentication and session management.",
        docs_url="/docs",
        redoc_url="/redoc",
        debug=config.DEBUG,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.clock = clock
    if token_store is None:
        token_store = build_token_store(config)
    app.state.token_store = token_store

    # ── Middleware ──────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Errors & routers ────────────────────────────────────────────────────
    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/api/health", tags=["Health"])
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
