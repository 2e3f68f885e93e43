"""
main.py
-------
FastAPI application factory and entry point.

Application lifecycle:
  1. App is created by create_application().
  2. lifespan context manager runs on startup / shutdown.
  3. Routers are registered with their URL prefixes.
  4. Global exception handlers map domain errors to status codes and
     normalise unexpected errors.

Run with:
    uvicorn main:app --reload              # development
    uvicorn main:app --workers 4           # production (no --reload)
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatdesk.api.routes import admin, auth, chat, documents, notifications, tenants, webhooks
from chatdesk.core.config import settings
from chatdesk.core.errors import ChatDeskError
from chatdesk.core.logging import configure_logging, get_logger
from chatdesk.db.session import engine
from chatdesk.services.mlflow_service import setup_mlflow

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup / shutdown lifecycle hook.

    Startup:
      - Configure structured logging
      - Point MLflow at its tracking store (no-op unless MLFLOW_ENABLED)

    Shutdown:
      - Dispose the async engine (graceful connection pool drain)
    """
    configure_logging()
    setup_mlflow()
    logger.info(
        "Starting up",
        app=settings.APP_NAME,
        env=settings.APP_ENV,
        debug=settings.DEBUG,
        workflow_configured=bool(settings.CHAT_WORKFLOW_URL),
        processor_configured=bool(settings.DOCUMENT_PROCESSOR_URL),
    )
    yield
    logger.info("Shutting down, disposing DB engine")
    await engine.dispose()


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Multi-tenant customer-service chat backend: tenant-scoped "
            "document libraries, AI workflow chat and strict tenant isolation."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(tenants.router)
    app.include_router(admin.router)
    app.include_router(documents.router)
    app.include_router(chat.router)
    app.include_router(notifications.router)
    app.include_router(webhooks.router)

    # ── Global Exception Handlers ─────────────────────────────────────────────

    @app.exception_handler(ChatDeskError)
    async def chatdesk_error_handler(
        request: Request, exc: ChatDeskError
    ) -> JSONResponse:
        logger.info(
            "Request rejected",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error=exc.__class__.__name__,
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    # ── Health Check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], summary="Service health check")
    async def health() -> dict:
        return {"status": "ok", "app": settings.APP_NAME, "env": settings.APP_ENV}

    return app


app = create_application()
