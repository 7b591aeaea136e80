import pytest

from rlsguard.app.domain.policy import (
    PRIVILEGED_OPERATIONS,
    Decision,
    Operation,
    PolicyContext,
    evaluate,
)

ALICE = PolicyContext(subject_id="alice", role="therapist")
ADMIN = PolicyContext(subject_id="root", role="admin")


def test_owner_is_allowed():
    assert evaluate(ALICE, Operation.READ, "alice") == Decision(True, "owner")


def test_other_owner_is_denied():
    assert evaluate(ALICE, Operation.READ, "bob") == Decision(False, "not_owner")


def test_missing_owner_is_denied():
    assert evaluate(ALICE, Operation.DOWNLOAD, None) == Decision(False, "unresolved_owner")


def test_no_context_is_denied():
    assert evaluate(None, Operation.READ, "alice") == Decision(False, "unauthenticated")


@pytest.mark.parametrize("operation", sorted(PRIVILEGED_OPERATIONS, key=lambda op: op.value))
@pytest.mark.parametrize("context", [ALICE, ADMIN])
def test_privileged_operations_denied_for_every_role(context, operation):
    decision = evaluate(context, operation, context.subject_id)
    assert not decision.allowed
    assert decision.reason == "privileged_operation"


def test_role_grants_no_data_access():
    assert evaluate(ADMIN, Operation.READ, "alice") == Decision(False, "not_owner")
    assert evaluate(ADMIN, Operation.UPLOAD, "alice") == Decision(False, "not_owner")


def test_repeated_evaluation_is_stable():
    decisions = {evaluate(ALICE, Operation.DOWNLOAD, "bob") for _ in range(50)}
    assert decisions == {Decision(False, "not_owner")}
