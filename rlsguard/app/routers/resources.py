"""Patient (owned resource) routes."""
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, Request, status

from ..deps import current_context, resource_service
from ..domain.models import PatientRead
from ..domain.policy import PolicyContext
from ..services.resources import ResourceService

router = APIRouter()


@router.get("", response_model=List[PatientRead])
def list_resources(
    request: Request,
    context: PolicyContext = Depends(current_context),
    resources: ResourceService = Depends(resource_service),
):
    """List the caller's patients.

    Query parameters (``code=P001``, ``code_ne=P001``, ``gender=...``) only
    narrow the caller's own rows; unknown parameters are ignored.
    """
    return resources.list_patients(context, dict(request.query_params))


@router.post("", response_model=PatientRead, status_code=status.HTTP_201_CREATED)
def create_resource(
    payload: Dict[str, Any] = Body(...),
    context: PolicyContext = Depends(current_context),
    resources: ResourceService = Depends(resource_service),
):
    return resources.create_patient(context, payload)


@router.get("/{resource_id}", response_model=PatientRead)
def get_resource(
    resource_id: str,
    context: PolicyContext = Depends(current_context),
    resources: ResourceService = Depends(resource_service),
):
    return resources.read_patient(context, resource_id)
