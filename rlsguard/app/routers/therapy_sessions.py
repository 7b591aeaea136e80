"""Therapy session (dependent resource) routes."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from ..deps import current_context, resource_service
from ..domain.models import TherapySessionRead
from ..domain.policy import PolicyContext
from ..services.resources import ResourceService

router = APIRouter()


@router.get("", response_model=List[TherapySessionRead])
def list_therapy_sessions(
    patient_id: Optional[str] = Query(None),
    context: PolicyContext = Depends(current_context),
    resources: ResourceService = Depends(resource_service),
):
    return resources.list_therapy_sessions(context, patient_id)


@router.post("", response_model=TherapySessionRead, status_code=status.HTTP_201_CREATED)
def create_therapy_session(
    payload: Dict[str, Any] = Body(...),
    context: PolicyContext = Depends(current_context),
    resources: ResourceService = Depends(resource_service),
):
    return resources.create_therapy_session(context, payload)


@router.get("/{record_id}", response_model=TherapySessionRead)
def get_therapy_session(
    record_id: str,
    context: PolicyContext = Depends(current_context),
    resources: ResourceService = Depends(resource_service),
):
    return resources.read_therapy_session(context, record_id)
