"""Audit routes."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session, select

from ..deps import current_context, db_session
from ..domain.models import AccessLog, AccessLogRead
from ..domain.policy import PolicyContext

router = APIRouter()


@router.get("/logs", response_model=List[AccessLogRead])
def audit_logs(
    action: Optional[str] = Query(None),
    allowed: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    context: PolicyContext = Depends(current_context),
    session: Session = Depends(db_session),
) -> List[AccessLogRead]:
    """The caller's own audit trail; other principals' entries are never returned."""
    stmt = (
        select(AccessLog)
        .where(AccessLog.actor_id == context.subject_id)
        .order_by(AccessLog.created_at.desc())
        .limit(limit)
    )
    if action:
        stmt = stmt.where(AccessLog.action == action)
    if allowed is not None:
        stmt = stmt.where(AccessLog.allowed == allowed)
    return session.exec(stmt).all()
