"""Filesystem bucket for blob bytes.

The store knows nothing about ownership; callers authorize first.
"""
import logging
import os
import tempfile
from pathlib import Path

from ..domain.blob_keys import split_key
from ..domain.errors import BackingStoreError, ValidationError

logger = logging.getLogger(__name__)

# Not a valid patient code, so no key can land here.
STAGING_DIR = ".tmp"


class BlobStore:
    def __init__(self, root: str | Path, bucket: str) -> None:
        self.root = Path(root).resolve() / bucket

    def _path(self, key: str) -> Path:
        target = self.root.joinpath(*split_key(key)).resolve()
        if self.root not in target.parents:
            raise ValidationError("Invalid blob key")
        return target

    def write(self, key: str, data: bytes) -> Path:
        target = self._path(key)
        staging = self.root / STAGING_DIR
        tmp_name = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            staging.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=staging, delete=False) as handle:
                tmp_name = handle.name
                handle.write(data)
            os.replace(tmp_name, target)
        except OSError as exc:
            logger.error("blob write failed for %s: %s", key, exc)
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise BackingStoreError() from exc
        return target

    def read(self, key: str) -> bytes:
        # OSError propagates so the caller can retry the read
        return self._path(key).read_bytes()

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
            # empty folders would block a later file with the same name
            parent = path.parent
            while parent != self.root and parent.is_dir() and not any(parent.iterdir()):
                parent.rmdir()
                parent = parent.parent
        except OSError as exc:
            raise BackingStoreError() from exc

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()
