"""Error taxonomy shared by the service and the client."""
from __future__ import annotations


class RlsGuardError(Exception):
    """Base class for every error raised on purpose by rlsguard."""

    status_code = 500
    public_detail = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_detail)
        self.message = message or self.public_detail


class InvalidCredentials(RlsGuardError):
    """Identifier/secret did not resolve to an active principal."""

    status_code = 401
    public_detail = "Invalid credentials"


class SessionExpired(RlsGuardError):
    """Missing, unknown, revoked or expired session token."""

    status_code = 401
    public_detail = "Session expired"


class AccessDenied(RlsGuardError):
    """Denied by policy. Surfaced exactly like a missing resource."""

    status_code = 404
    public_detail = "Not found"


class ValidationError(RlsGuardError):
    status_code = 400
    public_detail = "Invalid request"


class BackingStoreError(RlsGuardError):
    """Database or blob storage failure."""

    status_code = 503
    public_detail = "Backing store unavailable"


ERRORS_BY_NAME = {
    cls.__name__: cls
    for cls in (InvalidCredentials, SessionExpired, AccessDenied, ValidationError, BackingStoreError)
}
