"""Resolve any resource to the principal that (transitively) owns it."""
from typing import Optional

from sqlmodel import Session, select

from ..domain.blob_keys import key_prefix
from ..domain.errors import ValidationError
from ..domain.models import Patient, TherapySession


class OwnershipResolver:
    def __init__(self, session: Session) -> None:
        self.session = session

    def owner_of_patient(self, patient: Optional[Patient]) -> Optional[str]:
        return patient.owner_id if patient else None

    def owner_of_therapy_session(self, record: Optional[TherapySession]) -> Optional[str]:
        if record is None:
            return None
        return self.owner_of_patient(self.session.get(Patient, record.patient_id))

    def patient_for_code(self, code: str) -> Optional[Patient]:
        return self.session.exec(select(Patient).where(Patient.code == code)).first()

    def owner_of_blob_key(self, key: str) -> Optional[str]:
        """Owner of the patient whose code is the key's first segment."""
        try:
            code = key_prefix(key)
        except ValidationError:
            return None
        return self.owner_of_patient(self.patient_for_code(code))

    def owned_codes(self, principal_id: str) -> list[str]:
        stmt = select(Patient.code).where(Patient.owner_id == principal_id).order_by(Patient.code)
        return list(self.session.exec(stmt).all())
