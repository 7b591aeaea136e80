"""Patients and therapy sessions, scoped to the calling principal.

Listings carry the ownership predicate in the SQL itself. Caller filters
are ANDed on top, so they can narrow a result set but never widen it.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..domain.blob_keys import key_prefix
from ..domain.errors import SessionExpired, ValidationError
from ..domain.models import Patient, TherapySession, as_utc
from ..domain.policy import Operation, PolicyContext
from ..domain.schemas import OWNER_FIELDS, PatientIn, TherapySessionIn
from ..infra.db import retry_read
from .abac import AccessEvaluator
from .ownership import OwnershipResolver

logger = logging.getLogger(__name__)

FILTERABLE_FIELDS = {
    "code": Patient.code,
    "age_group": Patient.age_group,
    "gender": Patient.gender,
}


def _parse(schema, data: Mapping[str, Any]):
    forbidden = OWNER_FIELDS.intersection(data)
    if forbidden:
        raise ValidationError(f"Owner fields are not accepted: {', '.join(sorted(forbidden))}")
    try:
        return schema.model_validate(dict(data))
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"{location}: {first.get('msg')}") from exc


class ResourceService:
    def __init__(
        self,
        session: Session,
        read_attempts: int = 3,
        read_backoff_seconds: float = 0.2,
    ) -> None:
        self.session = session
        self.access = AccessEvaluator(session)
        self.owners = OwnershipResolver(session)
        self.read_attempts = read_attempts
        self.read_backoff_seconds = read_backoff_seconds

    def _read(self, operation: Callable[[], Any]) -> Any:
        return retry_read(
            operation,
            attempts=self.read_attempts,
            backoff_seconds=self.read_backoff_seconds,
            on_retry=self.session.rollback,
        )

    # patients

    def create_patient(self, context: Optional[PolicyContext], data: Mapping[str, Any]) -> Patient:
        if context is None:
            raise SessionExpired()
        payload = _parse(PatientIn, data)
        # the new row will belong to the caller, so the decision is made against them
        self.access.enforce(context, Operation.CREATE, f"patients/{payload.code}", context.subject_id)
        patient = Patient(
            code=payload.code,
            owner_id=context.subject_id,
            age_group=payload.age_group,
            gender=payload.gender,
        )
        self.session.add(patient)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValidationError("Resource code unavailable") from exc
        self.session.refresh(patient)
        logger.info("patient %s created by %s", patient.code, context.subject_id)
        return patient

    def read_patient(self, context: Optional[PolicyContext], patient_id: str) -> Patient:
        patient = self._read(lambda: self.session.get(Patient, patient_id))
        self.access.enforce(
            context, Operation.READ, f"patients/{patient_id}", self.owners.owner_of_patient(patient)
        )
        return patient

    def list_patients(
        self,
        context: Optional[PolicyContext],
        filters: Optional[Mapping[str, str]] = None,
    ) -> list[Patient]:
        if context is None:
            return []
        stmt = select(Patient).where(Patient.owner_id == context.subject_id)
        for name, value in (filters or {}).items():
            field, negate = (name[:-3], True) if name.endswith("_ne") else (name, False)
            column = FILTERABLE_FIELDS.get(field)
            if column is None:
                continue
            stmt = stmt.where(column != value if negate else column == value)
        stmt = stmt.order_by(Patient.code)
        return list(self._read(lambda: self.session.exec(stmt).all()))

    # therapy sessions

    def create_therapy_session(
        self, context: Optional[PolicyContext], data: Mapping[str, Any]
    ) -> TherapySession:
        if context is None:
            raise SessionExpired()
        payload = _parse(TherapySessionIn, data)
        patient = self.session.get(Patient, payload.patient_id)
        self.access.enforce(
            context,
            Operation.CREATE,
            f"patients/{payload.patient_id}/therapy_sessions",
            self.owners.owner_of_patient(patient),
        )
        if key_prefix(payload.file_path) != patient.code:
            raise ValidationError("file_path must start with the patient code")
        record = TherapySession(
            patient_id=patient.id,
            file_path=payload.file_path,
            notes=payload.notes,
        )
        if payload.recorded_at is not None:
            record.recorded_at = as_utc(payload.recorded_at)
        self.session.add(record)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValidationError("file_path already registered") from exc
        self.session.refresh(record)
        return record

    def read_therapy_session(self, context: Optional[PolicyContext], record_id: str) -> TherapySession:
        record = self._read(lambda: self.session.get(TherapySession, record_id))
        self.access.enforce(
            context,
            Operation.READ,
            f"therapy_sessions/{record_id}",
            self.owners.owner_of_therapy_session(record),
        )
        return record

    def list_therapy_sessions(
        self,
        context: Optional[PolicyContext],
        patient_id: Optional[str] = None,
    ) -> list[TherapySession]:
        if context is None:
            return []
        stmt = (
            select(TherapySession)
            .join(Patient, Patient.id == TherapySession.patient_id)
            .where(Patient.owner_id == context.subject_id)
        )
        if patient_id:
            stmt = stmt.where(TherapySession.patient_id == patient_id)
        stmt = stmt.order_by(TherapySession.recorded_at.desc())
        return list(self._read(lambda: self.session.exec(stmt).all()))
