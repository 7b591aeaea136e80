"""Storage key conventions.

A blob key is ``<patient code>/<name>[/<name>...]``. The first segment is
the only thing ownership is derived from.
"""
from __future__ import annotations

import re

from .errors import ValidationError

RESOURCE_CODE_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,64}")
MAX_KEY_LENGTH = 512


def is_valid_code(code: str) -> bool:
    return bool(RESOURCE_CODE_PATTERN.fullmatch(code or ""))


def split_key(key: str) -> list[str]:
    """Validate ``key`` and return its segments."""
    if not key or len(key) > MAX_KEY_LENGTH:
        raise ValidationError("Invalid blob key")
    if key.startswith("/") or "\\" in key or "\x00" in key:
        raise ValidationError("Invalid blob key")
    segments = key.split("/")
    if len(segments) < 2:
        raise ValidationError("Blob key must be '<code>/<name>'")
    if any(segment in ("", ".", "..") for segment in segments):
        raise ValidationError("Invalid blob key")
    if not is_valid_code(segments[0]):
        raise ValidationError("Invalid blob key prefix")
    return segments


def key_prefix(key: str) -> str:
    return split_key(key)[0]


def owned_prefix(code: str) -> str:
    return f"{code}/"
