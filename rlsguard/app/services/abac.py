"""Central authorization point with access logging.

Every service call that touches a resource goes through ``authorize`` or
``enforce`` on this class; denials are written to ``access_logs`` and the
application log, and surface to callers as ``AccessDenied``.
"""
import logging
from typing import Optional

from sqlmodel import Session

from ..domain.errors import AccessDenied
from ..domain.models import AccessLog
from ..domain.policy import Decision, Operation, PolicyContext, evaluate

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"


class AccessEvaluator:
    def __init__(self, session: Session) -> None:
        self.session = session

    def authorize(
        self,
        context: Optional[PolicyContext],
        operation: Operation,
        resource: str,
        resource_owner: Optional[str] = None,
    ) -> Decision:
        decision = evaluate(context, operation, resource_owner)
        actor_id = context.subject_id if context else ANONYMOUS
        role = context.role if context else ANONYMOUS
        self.session.add(
            AccessLog(
                actor_id=actor_id,
                role=role,
                action=operation.value,
                resource=resource,
                allowed=decision.allowed,
                reason=decision.reason,
            )
        )
        if decision.allowed:
            logger.debug("allow %s %s on %s", actor_id, operation.value, resource)
        else:
            logger.warning(
                "deny principal=%s role=%s operation=%s resource=%s reason=%s",
                actor_id,
                role,
                operation.value,
                resource,
                decision.reason,
            )
        return decision

    def enforce(
        self,
        context: Optional[PolicyContext],
        operation: Operation,
        resource: str,
        resource_owner: Optional[str] = None,
    ) -> None:
        if not self.authorize(context, operation, resource, resource_owner).allowed:
            raise AccessDenied()
