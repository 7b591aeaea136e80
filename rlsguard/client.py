"""HTTP client for the rlsguard API.

``AccessClient`` is the only client interface: the harness, the scripts
and the tests all go through it. It accepts any ``httpx.Client``, so the
same code runs against a deployed service or in-process through
FastAPI's ``TestClient``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .app.domain.c3d import validate_c3d_file
from .app.domain.errors import (
    ERRORS_BY_NAME,
    AccessDenied,
    BackingStoreError,
    RlsGuardError,
    SessionExpired,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass
class SignedInSession:
    identifier: str
    token: str
    expires_at: datetime


@dataclass
class UploadResult:
    key: str
    size_bytes: int
    sha256: str


def _error_for(response: httpx.Response) -> RlsGuardError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    detail = body.get("detail") if isinstance(body, dict) else None
    message = detail if isinstance(detail, str) else response.text[:200]
    name = body.get("error") if isinstance(body, dict) else None

    if response.status_code == 404:
        return AccessDenied()
    if response.status_code == 401:
        if name in ERRORS_BY_NAME:
            return ERRORS_BY_NAME[name](message)
        return SessionExpired(message)
    if response.status_code in (400, 409, 413, 422):
        return ValidationError(message)
    if response.status_code == 403:
        return AccessDenied()
    return BackingStoreError(f"HTTP {response.status_code}: {message}")


class AccessClient:
    def __init__(self, http: httpx.Client) -> None:
        self.http = http
        self.session: Optional[SignedInSession] = None

    @classmethod
    def connect(cls, base_url: str, timeout: float = DEFAULT_TIMEOUT) -> "AccessClient":
        return cls(httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout))

    def close(self) -> None:
        self.http.close()

    # transport

    def _headers(self, token: Optional[str] = None, authenticated: bool = True) -> Dict[str, str]:
        token = token if token is not None else (self.session.token if self.session else None)
        if authenticated and token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    def _request(
        self,
        method: str,
        path: str,
        *,
        authenticated: bool = True,
        token: Optional[str] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = {**self._headers(token, authenticated), **kwargs.pop("headers", {})}
        try:
            response = self.http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise BackingStoreError(f"{method} {path} failed: {exc}") from exc
        if response.is_error:
            raise _error_for(response)
        return response

    # identity

    def authenticate(self, identifier: str, secret: str) -> SignedInSession:
        response = self._request(
            "POST",
            "/sessions",
            authenticated=False,
            json={"identifier": identifier, "secret": secret},
        )
        body = response.json()
        self.session = SignedInSession(
            identifier=identifier,
            token=body["session_token"],
            expires_at=datetime.fromisoformat(body["expires_at"].replace("Z", "+00:00")),
        )
        logger.info("authenticated as %s", identifier)
        return self.session

    def sign_out(self) -> None:
        if self.session is None:
            return
        try:
            self._request("DELETE", "/sessions/current")
        finally:
            logger.info("signed out %s", self.session.identifier)
            self.session = None

    def whoami(self) -> Dict[str, Any]:
        return self._request("GET", "/sessions/current").json()

    # patients

    def list_resources(self, filters: Optional[Dict[str, str]] = None, authenticated: bool = True) -> List[Dict[str, Any]]:
        return self._request(
            "GET", "/resources", params=filters or {}, authenticated=authenticated
        ).json()

    def get_resource(self, resource_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/resources/{quote(resource_id, safe='')}").json()

    def create_resource(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/resources", json=data).json()

    # therapy sessions

    def list_therapy_sessions(self, patient_id: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"patient_id": patient_id} if patient_id else {}
        return self._request("GET", "/therapy-sessions", params=params).json()

    def get_therapy_session(self, record_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/therapy-sessions/{quote(record_id, safe='')}").json()

    def create_therapy_session(
        self,
        patient_id: str,
        file_path: str,
        recorded_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"patient_id": patient_id, "file_path": file_path}
        if recorded_at is not None:
            payload["recorded_at"] = recorded_at.isoformat()
        if notes:
            payload["notes"] = notes
        return self._request("POST", "/therapy-sessions", json=payload).json()

    # blobs

    def upload(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> UploadResult:
        body = self._request(
            "PUT",
            f"/blobs/{quote(key, safe='/')}",
            content=data,
            headers={"Content-Type": content_type},
        ).json()
        return UploadResult(key=body["key"], size_bytes=body["size_bytes"], sha256=body["sha256"])

    def download(self, key: str) -> bytes:
        return self._request("GET", f"/blobs/{quote(key, safe='/')}").content

    def delete_blob(self, key: str) -> None:
        self._request("DELETE", f"/blobs/{quote(key, safe='/')}")

    def list_blobs(self, prefix: str = "") -> List[str]:
        return self._request("GET", "/blobs", params={"prefix": prefix}).json()["keys"]

    def upload_file(self, patient_code: str, local_path: str | Path) -> UploadResult:
        """Upload a local file under ``<patient_code>/<file name>``.

        ``.c3d`` files are checked locally first and rejected with
        ``ValidationError`` if they do not look like C3D.
        """
        path = Path(local_path)
        if path.suffix.lower() == ".c3d":
            validation = validate_c3d_file(path)
            if not validation.is_valid:
                raise ValidationError(str(validation))
            for warning in validation.warnings:
                logger.warning("%s: %s", path.name, warning)
        return self.upload(f"{patient_code}/{path.name}", path.read_bytes())

    def upload_session_file(
        self,
        patient: Dict[str, Any],
        local_path: str | Path,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Upload a recording and register its therapy session metadata."""
        result = self.upload_file(patient["code"], local_path)
        return self.create_therapy_session(patient["id"], result.key, notes=notes)

    def debug_storage_access(self, file_path: str) -> Dict[str, Any]:
        return self._request(
            "GET", "/debug/storage-access", params={"file_path": file_path}
        ).json()

    # privileged

    def create_principal(self, identifier: str, secret: str, role: str = "therapist") -> Dict[str, Any]:
        return self._request(
            "POST",
            "/admin/principals",
            json={"identifier": identifier, "secret": secret, "role": role},
        ).json()

    def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request(
            "POST", f"/rpc/{quote(name, safe='')}", json={"params": params or {}}
        ).json()
