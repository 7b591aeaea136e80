"""Light structural checks for C3D motion-capture files before upload."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List

MIN_FILE_SIZE = 512  # one header block
MAX_FILE_SIZE = 50 * 1024 * 1024
PARAMETER_SECTION_MARKER = 0x50


@dataclass
class C3DValidation:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def __str__(self) -> str:
        if self.is_valid:
            if self.warnings:
                return "Valid with warnings: " + "; ".join(self.warnings)
            return "Valid"
        return "Invalid: " + "; ".join(self.errors)


def validate_c3d(name: str, data: bytes) -> C3DValidation:
    result = C3DValidation()
    if not name.lower().endswith(".c3d"):
        result.errors.append(f"Invalid file extension. Expected .c3d, got {Path(name).suffix or 'none'}")
        return result
    if len(data) < MIN_FILE_SIZE:
        result.errors.append(
            f"File too small. C3D files must be at least {MIN_FILE_SIZE} bytes, got {len(data)} bytes"
        )
        return result
    if len(data) > MAX_FILE_SIZE:
        result.errors.append(
            f"File too large. Maximum size is {MAX_FILE_SIZE // (1024 * 1024)}MB"
        )
        return result

    if data[1] != PARAMETER_SECTION_MARKER:
        # Some writers use another value here; fall back to the parameter block.
        result.warnings.append(
            f"Unexpected header byte at position 1: 0x{data[1]:02X}. File may not be a valid C3D file."
        )
        indicator = data[MIN_FILE_SIZE] if len(data) > MIN_FILE_SIZE else 0
        if not 1 <= indicator <= 100:
            result.errors.append(
                f"Invalid parameter section indicator at byte 512: {indicator}. "
                "This does not appear to be a valid C3D file."
            )
    return result


def validate_c3d_file(path: str | Path) -> C3DValidation:
    target = Path(path)
    try:
        data = target.read_bytes()
    except OSError as exc:
        result = C3DValidation()
        result.errors.append(f"Could not open file for validation: {exc}")
        return result
    return validate_c3d(target.name, data)
