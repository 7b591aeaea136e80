"""Sign-in / sign-out endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from ..deps import bearer_token, identity_service
from ..domain.errors import SessionExpired
from ..domain.schemas import CurrentPrincipalOut, SessionCreateIn, SessionTokenOut
from ..services.identity import IdentityService

router = APIRouter()


@router.post("", response_model=SessionTokenOut)
def create_session(payload: SessionCreateIn, identity: IdentityService = Depends(identity_service)):
    issued = identity.authenticate(payload.identifier, payload.secret)
    return SessionTokenOut(session_token=issued.token, expires_at=issued.expires_at)


@router.delete("/current", status_code=status.HTTP_204_NO_CONTENT)
def delete_current_session(
    token: Optional[str] = Depends(bearer_token),
    identity: IdentityService = Depends(identity_service),
):
    identity.invalidate(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/current", response_model=CurrentPrincipalOut)
def get_current_session(
    token: Optional[str] = Depends(bearer_token),
    identity: IdentityService = Depends(identity_service),
):
    record = identity.current_session(token)
    principal = identity.get(record.principal_id)
    if principal is None:
        raise SessionExpired()
    return CurrentPrincipalOut(
        principal_id=principal.id,
        identifier=principal.identifier,
        role=record.role,
        display_name=principal.display_name,
        expires_at=record.expires_at,
    )
