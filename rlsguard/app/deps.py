"""Dependency injection utilities."""
from collections.abc import Generator
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from ..config import Settings
from .domain.policy import PolicyContext
from .infra.db import session_scope
from .infra.storage import BlobStore
from .services.blobs import BlobService
from .services.identity import IdentityService
from .services.resources import ResourceService

bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def db_session(request: Request) -> Generator[Session, None, None]:
    """Provide a scoped DB session to FastAPI endpoints."""
    with session_scope(request.app.state.sessionmaker) as session:
        yield session


def bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    return credentials.credentials


def identity_service(
    session: Session = Depends(db_session),
    settings: Settings = Depends(get_settings),
) -> IdentityService:
    return IdentityService(session, ttl_seconds=settings.session_ttl_seconds)


def current_context(
    token: Optional[str] = Depends(bearer_token),
    identity: IdentityService = Depends(identity_service),
) -> PolicyContext:
    """Resolve the bearer token on every request; raises SessionExpired."""
    return identity.current_principal(token)


def resource_service(
    session: Session = Depends(db_session),
    settings: Settings = Depends(get_settings),
) -> ResourceService:
    return ResourceService(
        session,
        read_attempts=settings.read_retry_attempts,
        read_backoff_seconds=settings.read_retry_backoff_seconds,
    )


def blob_service(
    request: Request,
    session: Session = Depends(db_session),
    settings: Settings = Depends(get_settings),
) -> BlobService:
    store: BlobStore = request.app.state.blob_store
    return BlobService(
        session,
        store,
        allowed_content_types=settings.allowed_content_types,
        max_bytes=settings.max_blob_bytes,
        read_attempts=settings.read_retry_attempts,
        read_backoff_seconds=settings.read_retry_backoff_seconds,
    )


async def raw_body(request: Request) -> bytes:
    """Read the request body on the event loop so sync endpoints can take bytes."""
    return await request.body()
