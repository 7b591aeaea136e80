"""Blob upload/download/list with ownership derived from the key prefix."""
from __future__ import annotations

import hashlib
import logging
from typing import Optional

from sqlalchemy import or_
from sqlmodel import Session, select

from ..domain.blob_keys import is_valid_code, owned_prefix, split_key
from ..domain.errors import AccessDenied, ValidationError
from ..domain.models import BlobObject
from ..domain.policy import Operation, PolicyContext
from ..infra.db import retry_read
from ..infra.storage import BlobStore
from .abac import AccessEvaluator
from .ownership import OwnershipResolver

logger = logging.getLogger(__name__)


class BlobService:
    def __init__(
        self,
        session: Session,
        store: BlobStore,
        allowed_content_types: tuple[str, ...] = ("application/octet-stream", "text/plain"),
        max_bytes: int = 5 * 1024 * 1024,
        read_attempts: int = 3,
        read_backoff_seconds: float = 0.2,
    ) -> None:
        self.session = session
        self.store = store
        self.access = AccessEvaluator(session)
        self.owners = OwnershipResolver(session)
        self.allowed_content_types = allowed_content_types
        self.max_bytes = max_bytes
        self.read_attempts = read_attempts
        self.read_backoff_seconds = read_backoff_seconds

    def _authorize_key(self, context: Optional[PolicyContext], operation: Operation, key: str) -> None:
        split_key(key)
        self.access.enforce(
            context, operation, f"blobs/{key}", self.owners.owner_of_blob_key(key)
        )

    def upload(
        self,
        context: Optional[PolicyContext],
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> BlobObject:
        # nothing is written before this returns
        self._authorize_key(context, Operation.UPLOAD, key)

        media_type = (content_type or "application/octet-stream").split(";")[0].strip().lower()
        if media_type not in self.allowed_content_types:
            raise ValidationError(f"Content type {media_type} is not allowed")
        if not data:
            raise ValidationError("Empty upload")
        if len(data) > self.max_bytes:
            raise ValidationError(f"Blob exceeds {self.max_bytes} bytes")
        if self.session.get(BlobObject, key) is not None:
            raise ValidationError("Blob already exists")
        if self._conflicts_with_existing(key):
            raise ValidationError("Blob key conflicts with an existing key")

        blob = BlobObject(
            key=key,
            size_bytes=len(data),
            sha256=hashlib.sha256(data).hexdigest(),
            content_type=media_type,
        )
        self.session.add(blob)
        self.session.flush()
        self.store.write(key, data)
        self.session.refresh(blob)
        logger.info("blob %s stored (%d bytes)", key, blob.size_bytes)
        return blob

    def _conflicts_with_existing(self, key: str) -> bool:
        """A key cannot be both a file and a folder in the bucket."""
        segments = split_key(key)
        ancestors = ["/".join(segments[:n]) for n in range(2, len(segments))]
        if ancestors:
            stmt = select(BlobObject.key).where(BlobObject.key.in_(ancestors)).limit(1)
            if self.session.exec(stmt).first() is not None:
                return True
        stmt = select(BlobObject.key).where(BlobObject.key.startswith(key + "/", autoescape=True)).limit(1)
        return self.session.exec(stmt).first() is not None

    def download(self, context: Optional[PolicyContext], key: str) -> tuple[BlobObject, bytes]:
        self._authorize_key(context, Operation.DOWNLOAD, key)
        blob = self._read(lambda: self.session.get(BlobObject, key))
        if blob is None:
            raise AccessDenied()
        data = self._read(lambda: self.store.read(key))
        return blob, data

    def delete(self, context: Optional[PolicyContext], key: str) -> None:
        self._authorize_key(context, Operation.DELETE, key)
        blob = self.session.get(BlobObject, key)
        if blob is None:
            raise AccessDenied()
        self.session.delete(blob)
        self.session.flush()
        self.store.delete(key)
        logger.info("blob %s deleted", key)

    def list_keys(self, context: Optional[PolicyContext], prefix: str = "") -> list[str]:
        """Keys under ``prefix`` restricted to the caller's own patient codes.

        An empty prefix lists everything the caller owns, never the bucket.
        """
        if context is None:
            return []
        prefix = (prefix or "").lstrip("/")
        codes = self.owners.owned_codes(context.subject_id)
        if prefix:
            head = prefix.split("/", 1)[0]
            if not is_valid_code(head):
                return []
            if "/" in prefix:
                codes = [code for code in codes if code == head]
            else:
                # a bare segment may still be the start of a longer code
                codes = [code for code in codes if code.startswith(head)]
        if not codes:
            return []

        stmt = select(BlobObject.key).where(
            or_(*[BlobObject.key.startswith(owned_prefix(code), autoescape=True) for code in codes])
        )
        if prefix:
            stmt = stmt.where(BlobObject.key.startswith(prefix, autoescape=True))
        stmt = stmt.order_by(BlobObject.key)
        return list(self._read(lambda: self.session.exec(stmt).all()))

    def _read(self, operation):
        return retry_read(
            operation,
            attempts=self.read_attempts,
            backoff_seconds=self.read_backoff_seconds,
            on_retry=self.session.rollback,
        )
