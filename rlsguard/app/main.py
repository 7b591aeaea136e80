"""FastAPI application bootstrap for rlsguard."""
from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import Settings, configure_logging
from .domain.errors import AccessDenied, RlsGuardError
from .infra.db import build_engine, build_sessionmaker, init_db
from .infra.storage import BlobStore
from .routers import admin, audit, blobs, debug, resources, sessions, therapy_sessions

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(app.state.engine)
    yield
    app.state.engine.dispose()


async def handle_domain_error(request: Request, exc: RlsGuardError) -> JSONResponse:
    if isinstance(exc, AccessDenied):
        # identical body for "missing" and "not yours"
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.public_detail})
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
        headers=headers,
    )


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors()), "error": "ValidationError"},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="rlsguard API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = build_engine(settings.database_url)
    app.state.sessionmaker = build_sessionmaker(app.state.engine)
    app.state.blob_store = BlobStore(settings.storage_root, settings.bucket_name)

    app.add_exception_handler(RlsGuardError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)

    app.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
    app.include_router(resources.router, prefix="/resources", tags=["resources"])
    app.include_router(therapy_sessions.router, prefix="/therapy-sessions", tags=["therapy-sessions"])
    app.include_router(blobs.router, prefix="/blobs", tags=["blobs"])
    app.include_router(audit.router, prefix="/audit", tags=["audit"])
    app.include_router(debug.router, prefix="/debug", tags=["debug"])
    app.include_router(admin.router, tags=["admin"])

    @app.get("/health", tags=["health"])
    def health() -> dict:
        return {"status": "ok", "bucket": settings.bucket_name}

    logger.info("rlsguard configured (bucket=%s)", settings.bucket_name)
    return app
