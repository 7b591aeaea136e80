"""Debug endpoint showing how the policy sees a storage path for the caller."""
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from ..deps import current_context, db_session
from ..domain.blob_keys import is_valid_code
from ..domain.policy import Operation, PolicyContext, evaluate
from ..services.ownership import OwnershipResolver

router = APIRouter()


@router.get("/storage-access")
def debug_storage_access(
    file_path: str = Query(..., min_length=1),
    context: PolicyContext = Depends(current_context),
    session: Session = Depends(db_session),
):
    """Report what the caller would be allowed to do with ``file_path``.

    Only the caller's own view is returned: whether a foreign patient code
    exists is indistinguishable from it not existing.
    """
    code = file_path.lstrip("/").split("/", 1)[0]
    owner = OwnershipResolver(session).owner_of_blob_key(file_path) if is_valid_code(code) else None
    decision = evaluate(context, Operation.DOWNLOAD, owner)
    return {
        "file_path": file_path,
        "patient_code": code,
        "current_user_id": context.subject_id,
        "role": context.role,
        "auth_context_valid": True,
        "owns_patient": decision.allowed,
    }
