"""Out-of-band tenant provisioning used by the seed script and tests."""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Iterable, List

from sqlmodel import Session, select

from ..domain.errors import ValidationError
from ..domain.models import Patient, Principal, PrincipalRole
from .identity import IdentityService

logger = logging.getLogger(__name__)


@dataclass
class TenantSeed:
    identifier: str
    secret: str
    display_name: str = ""
    patient_codes: List[str] = field(default_factory=list)
    role: PrincipalRole = PrincipalRole.THERAPIST


def demo_tenants(
    therapist1: tuple[str, str] = ("therapist1@example.com", "therapist1-password"),
    therapist2: tuple[str, str] = ("therapist2@example.com", "therapist2-password"),
) -> list[TenantSeed]:
    return [
        TenantSeed(therapist1[0], therapist1[1], "Therapist One", ["P001", "P003"]),
        TenantSeed(therapist2[0], therapist2[1], "Therapist Two", ["P002"]),
    ]


def seed_tenants(session: Session, tenants: Iterable[TenantSeed]) -> list[Principal]:
    """Idempotently create principals and their patients."""
    identity = IdentityService(session)
    principals = []
    for tenant in tenants:
        principal = identity.provision_principal(
            tenant.identifier, tenant.secret, tenant.role, tenant.display_name
        )
        for code in tenant.patient_codes:
            existing = session.exec(select(Patient).where(Patient.code == code)).first()
            if existing is None:
                session.add(Patient(code=code, owner_id=principal.id))
                session.flush()
            elif existing.owner_id != principal.id:
                raise ValidationError(f"Patient code {code} already belongs to another principal")
        logger.info("provisioned %s with patients %s", tenant.identifier, tenant.patient_codes)
        principals.append(principal)
    return principals
