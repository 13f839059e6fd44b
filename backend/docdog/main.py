"""FastAPI application entry point."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from docdog.config import Settings, settings as default_settings
from docdog.services.documents.errors import (
    AuthFailure,
    BlobNotFound,
    BlobStoreError,
    DocDogError,
    DocumentExpired,
    IOFailure,
    LedgerUnavailable,
    NetworkFailure,
    RecordNotFound,
    UnsupportedExpireOption,
)
from docdog.services.reaper import reaper_loop, sweep_once
from docdog.services.registry import DocumentServices

logger = logging.getLogger(__name__)

# First match wins, so subclasses must come before their bases.
_ERROR_STATUS = [
    (IOFailure, 400),
    (RecordNotFound, 404),
    (BlobNotFound, 404),
    (DocumentExpired, 410),
    (UnsupportedExpireOption, 422),
    (AuthFailure, 502),
    (BlobStoreError, 502),
    (NetworkFailure, 503),
    (LedgerUnavailable, 503),
]


async def handle_docdog_error(request: Request, exc: DocDogError) -> JSONResponse:
    status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[DocumentServices] = None,
    engine: Optional[AsyncEngine] = None,
) -> FastAPI:
    settings = settings or default_settings

    if services is None:
        session_factory = None
        if settings.LEDGER_BACKEND == "database":
            from docdog.database import async_session, engine as db_engine
            session_factory = async_session
            engine = engine or db_engine
        services = DocumentServices(settings, session_factory=session_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create tables on startup, sweep expired documents, start the reaper."""
        if services.uses_database and engine is not None:
            from docdog.models import Base
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        # Sweep once before serving so documents that expired while the
        # process was down are gone before anyone asks for them
        try:
            summary = await sweep_once(services.ledgers_for_sweep, services.blob_store)
            logger.info(f"Startup sweep removed {len(summary.deleted)} expired document(s)")
        except Exception as e:
            logger.error(f"Startup sweep failed: {e}")

        reaper_task = asyncio.create_task(
            reaper_loop(services.ledgers_for_sweep, services.blob_store, settings.REAPER_INTERVAL_SECONDS)
        )

        yield

        # Cleanup
        reaper_task.cancel()
        await services.close()
        if services.uses_database and engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="DocDog API",
        version="1.0.0",
        description="Upload documents and share them through expiring links.",
        lifespan=lifespan,
    )
    app.state.documents = services
    app.add_exception_handler(DocDogError, handle_docdog_error)

    # CORS
    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health_check():
        """Verify API and, for the database ledger, database connectivity."""
        if not services.uses_database or engine is None:
            return {"status": "ok", "ledger": settings.LEDGER_BACKEND}
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "ok", "ledger": "database", "database": "connected"}
        except Exception as e:
            return {"status": "error", "ledger": "database", "database": str(e)}

    # Register routers
    from docdog.routes.documents import router as documents_router
    from docdog.routes.history import router as history_router
    from docdog.routes.blobs import router as blobs_router
    app.include_router(documents_router)
    app.include_router(history_router)
    app.include_router(blobs_router)

    return app


app = create_app()
