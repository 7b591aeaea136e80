"""Domain models shared between API and persistence layers."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Column
from sqlalchemy.types import DateTime, TypeDecorator
from sqlmodel import Field as SQLField, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive values are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores UTC without tzinfo and hands back aware UTC datetimes.

    SQLite has no timezone support, so the column itself stays naive on
    every backend and the conversion happens here.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return as_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


def timestamp_column(nullable: bool = False, index: bool = False) -> Column:
    return Column(UTCDateTime(), nullable=nullable, index=index)


def new_id() -> str:
    return str(uuid4())


class PrincipalRole(str, Enum):
    THERAPIST = "therapist"
    ADMIN = "admin"


class Principal(SQLModel, table=True):
    """Authenticated actor. Provisioned out-of-band, identity never changes."""

    __tablename__ = "principals"

    id: str = SQLField(default_factory=new_id, primary_key=True, index=True)
    identifier: str = SQLField(index=True, unique=True)
    secret_hash: str
    role: PrincipalRole = SQLField(default=PrincipalRole.THERAPIST)
    display_name: str = SQLField(default="")
    active: bool = SQLField(default=True)
    created_at: datetime = SQLField(default_factory=utcnow, sa_column=timestamp_column())
    last_login: Optional[datetime] = SQLField(default=None, sa_column=timestamp_column(nullable=True))


class AuthSession(SQLModel, table=True):
    """Issued bearer session. Only the token digest is stored."""

    __tablename__ = "auth_sessions"

    token_digest: str = SQLField(primary_key=True)
    principal_id: str = SQLField(foreign_key="principals.id", index=True)
    role: PrincipalRole
    issued_at: datetime = SQLField(default_factory=utcnow, sa_column=timestamp_column())
    expires_at: datetime = SQLField(sa_column=timestamp_column(index=True))
    revoked_at: Optional[datetime] = SQLField(default=None, sa_column=timestamp_column(nullable=True))


class Patient(SQLModel, table=True):
    """Owned resource: one therapist per patient, fixed at creation."""

    __tablename__ = "patients"

    id: str = SQLField(default_factory=new_id, primary_key=True, index=True)
    code: str = SQLField(index=True, unique=True)
    owner_id: str = SQLField(foreign_key="principals.id", index=True)
    age_group: Optional[str] = SQLField(default=None)
    gender: Optional[str] = SQLField(default=None)
    created_at: datetime = SQLField(default_factory=utcnow, sa_column=timestamp_column())


class PatientRead(BaseModel):
    id: str
    code: str
    age_group: Optional[str]
    gender: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TherapySession(SQLModel, table=True):
    """Dependent resource: owned through its patient, no owner column."""

    __tablename__ = "therapy_sessions"

    id: str = SQLField(default_factory=new_id, primary_key=True, index=True)
    patient_id: str = SQLField(foreign_key="patients.id", index=True)
    file_path: str = SQLField(unique=True, index=True)
    recorded_at: datetime = SQLField(default_factory=utcnow, sa_column=timestamp_column())
    notes: Optional[str] = SQLField(default=None)
    created_at: datetime = SQLField(default_factory=utcnow, sa_column=timestamp_column())


class TherapySessionRead(BaseModel):
    id: str
    patient_id: str
    file_path: str
    recorded_at: datetime
    notes: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BlobObject(SQLModel, table=True):
    """Metadata for a stored file. The owner is derived from the key prefix."""

    __tablename__ = "blob_objects"

    key: str = SQLField(primary_key=True)
    size_bytes: int
    sha256: str
    content_type: str = SQLField(default="application/octet-stream")
    created_at: datetime = SQLField(default_factory=utcnow, sa_column=timestamp_column())


class BlobObjectRead(BaseModel):
    key: str
    size_bytes: int
    sha256: str
    content_type: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AccessLog(SQLModel, table=True):
    __tablename__ = "access_logs"

    id: str = SQLField(default_factory=new_id, primary_key=True, index=True)
    actor_id: str = SQLField(index=True)
    role: str
    action: str
    resource: str
    allowed: bool = SQLField(default=True)
    reason: str = SQLField(default="")
    created_at: datetime = SQLField(default_factory=utcnow, sa_column=timestamp_column(index=True))


class AccessLogRead(BaseModel):
    id: str
    actor_id: str
    role: str
    action: str
    resource: str
    allowed: bool
    reason: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
