"""Privileged operations.

These exist so escalation attempts go through the evaluator and get
logged; no session-issued role is allowed to perform them.
"""
from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..deps import current_context, db_session
from ..domain.errors import AccessDenied
from ..domain.policy import Operation, PolicyContext
from ..domain.schemas import PrincipalCreateIn, RpcCallIn
from ..services.abac import AccessEvaluator

router = APIRouter()

RPC_OPERATIONS = {
    "create_principal": Operation.CREATE_PRINCIPAL,
    "create_therapist": Operation.CREATE_PRINCIPAL,
    "alter_policy": Operation.ALTER_POLICY,
    "execute_sql": Operation.EXECUTE_SQL,
}


@router.post("/admin/principals")
def create_principal(
    payload: PrincipalCreateIn,
    context: PolicyContext = Depends(current_context),
    session: Session = Depends(db_session),
):
    AccessEvaluator(session).authorize(context, Operation.CREATE_PRINCIPAL, "principals")
    # no implementation sits behind this route
    raise AccessDenied()


@router.post("/rpc/{name}")
def call_rpc(
    name: str,
    body: RpcCallIn | None = None,
    context: PolicyContext = Depends(current_context),
    session: Session = Depends(db_session),
):
    operation = RPC_OPERATIONS.get(name, Operation.INVOKE_RPC)
    AccessEvaluator(session).authorize(context, operation, f"rpc/{name}")
    raise AccessDenied()
