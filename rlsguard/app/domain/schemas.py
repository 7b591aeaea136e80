"""API I/O schemas."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import BlobObjectRead, PrincipalRole

# Never accepted from callers: ownership is always the authenticated principal.
OWNER_FIELDS = frozenset({"owner_id", "therapist_id", "user_id", "owner"})


class SessionCreateIn(BaseModel):
    identifier: str = Field(..., min_length=1, max_length=320)
    secret: str = Field(..., min_length=1, max_length=1024)


class SessionTokenOut(BaseModel):
    session_token: str
    token_type: str = "bearer"
    expires_at: datetime


class CurrentPrincipalOut(BaseModel):
    principal_id: str
    identifier: str
    role: PrincipalRole
    display_name: str
    expires_at: datetime


class PatientIn(BaseModel):
    code: str = Field(..., pattern=r"^[A-Za-z0-9_-]{1,64}$")
    age_group: Optional[str] = Field(default=None, max_length=32)
    gender: Optional[str] = Field(default=None, max_length=32)

    model_config = ConfigDict(extra="forbid")


class TherapySessionIn(BaseModel):
    patient_id: str
    file_path: str = Field(..., min_length=3, max_length=512)
    recorded_at: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=2000)

    model_config = ConfigDict(extra="forbid")


class BlobUploadOut(BlobObjectRead):
    pass


class BlobListOut(BaseModel):
    prefix: str
    keys: List[str]


class PrincipalCreateIn(BaseModel):
    identifier: str
    secret: str
    role: PrincipalRole = PrincipalRole.THERAPIST


class RpcCallIn(BaseModel):
    params: Dict[str, Any] = Field(default_factory=dict)
