"""Identity and session management."""
from __future__ import annotations

from datetime import timedelta
import logging
from typing import Optional

from sqlmodel import Session, select

from ..domain.credentials import (
    DUMMY_SECRET_HASH,
    hash_secret,
    new_session_token,
    token_digest,
    verify_secret,
)
from ..domain.errors import InvalidCredentials, SessionExpired, ValidationError
from ..domain.models import AuthSession, Principal, PrincipalRole, utcnow
from ..domain.policy import PolicyContext

logger = logging.getLogger(__name__)


class IssuedSession:
    """The clear token is only ever held here, never persisted."""

    def __init__(self, token: str, record: AuthSession) -> None:
        self.token = token
        self.record = record

    @property
    def expires_at(self):
        return self.record.expires_at


class IdentityService:
    def __init__(self, session: Session, ttl_seconds: int = 3600) -> None:
        self.session = session
        self.ttl = timedelta(seconds=ttl_seconds)

    def authenticate(self, identifier: str, secret: str) -> IssuedSession:
        principal = self._by_identifier(identifier)
        if principal is None:
            verify_secret(secret, DUMMY_SECRET_HASH)
            logger.info("sign-in rejected for unknown identifier")
            raise InvalidCredentials()
        if not verify_secret(secret, principal.secret_hash) or not principal.active:
            logger.info("sign-in rejected for principal %s", principal.id)
            raise InvalidCredentials()

        token = new_session_token()
        now = utcnow()
        record = AuthSession(
            token_digest=token_digest(token),
            principal_id=principal.id,
            role=principal.role,
            issued_at=now,
            expires_at=now + self.ttl,
        )
        principal.last_login = now
        self.session.add(record)
        self.session.add(principal)
        self.session.flush()
        logger.info("principal %s signed in, session expires %s", principal.id, record.expires_at)
        return IssuedSession(token, record)

    def invalidate(self, token: Optional[str]) -> None:
        """Revoke ``token``. Unknown or already revoked tokens are ignored."""
        if not token:
            return
        record = self.session.get(AuthSession, token_digest(token))
        if record is None or record.revoked_at is not None:
            return
        record.revoked_at = utcnow()
        self.session.add(record)
        self.session.flush()
        logger.info("principal %s signed out", record.principal_id)

    def current_session(self, token: Optional[str]) -> AuthSession:
        if not token:
            raise SessionExpired()
        record = self.session.get(AuthSession, token_digest(token))
        if record is None or record.revoked_at is not None:
            raise SessionExpired()
        if record.expires_at <= utcnow():
            raise SessionExpired()
        principal = self.session.get(Principal, record.principal_id)
        if principal is None or not principal.active:
            raise SessionExpired()
        return record

    def current_principal(self, token: Optional[str]) -> PolicyContext:
        record = self.current_session(token)
        return PolicyContext(subject_id=record.principal_id, role=record.role.value)

    def get(self, principal_id: str) -> Principal | None:
        return self.session.get(Principal, principal_id)

    # Out-of-band provisioning. Nothing reachable with a session token calls these.

    def provision_principal(
        self,
        identifier: str,
        secret: str,
        role: PrincipalRole = PrincipalRole.THERAPIST,
        display_name: str = "",
    ) -> Principal:
        identifier = identifier.strip().lower()
        if not identifier or not secret:
            raise ValidationError("identifier and secret are required")
        principal = self._by_identifier(identifier)
        if principal:
            principal.secret_hash = hash_secret(secret)
            principal.role = role
            principal.display_name = display_name or principal.display_name
        else:
            principal = Principal(
                identifier=identifier,
                secret_hash=hash_secret(secret),
                role=role,
                display_name=display_name,
            )
        self.session.add(principal)
        self.session.flush()
        self.session.refresh(principal)
        return principal

    def set_active(self, principal_id: str, active: bool) -> Principal:
        principal = self.session.get(Principal, principal_id)
        if principal is None:
            raise ValidationError("Unknown principal")
        principal.active = active
        self.session.add(principal)
        self.session.flush()
        return principal

    def _by_identifier(self, identifier: str) -> Principal | None:
        stmt = select(Principal).where(Principal.identifier == identifier.strip().lower())
        return self.session.exec(stmt).first()
