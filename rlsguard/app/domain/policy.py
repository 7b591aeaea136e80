"""Ownership policy.

Every decision is a pure function of the resolved principal and the
resolved owner of the resource, so it can be evaluated on any request
thread without shared state.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Operation(str, Enum):
    READ = "read"
    CREATE = "create"
    DELETE = "delete"
    UPLOAD = "upload"
    DOWNLOAD = "download"
    CREATE_PRINCIPAL = "create_principal"
    ALTER_POLICY = "alter_policy"
    EXECUTE_SQL = "execute_sql"
    INVOKE_RPC = "invoke_rpc"


# No role is granted these through a session; provisioning happens out-of-band.
PRIVILEGED_OPERATIONS = frozenset(
    {
        Operation.CREATE_PRINCIPAL,
        Operation.ALTER_POLICY,
        Operation.EXECUTE_SQL,
        Operation.INVOKE_RPC,
    }
)


@dataclass(frozen=True)
class PolicyContext:
    subject_id: str
    role: str  # role granted when the session was issued


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str


def evaluate(
    context: Optional[PolicyContext],
    operation: Operation,
    resource_owner: Optional[str] = None,
) -> Decision:
    if context is None:
        return Decision(False, "unauthenticated")
    if operation in PRIVILEGED_OPERATIONS:
        return Decision(False, "privileged_operation")
    if resource_owner is None:
        return Decision(False, "unresolved_owner")
    if resource_owner != context.subject_id:
        return Decision(False, "not_owner")
    return Decision(True, "owner")
