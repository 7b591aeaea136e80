"""Process configuration.

Settings are read once at process start and handed to the components that
need them (``create_app(settings)``, the harness scripts).
"""
from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_BUCKET = "emg_data"
PLACEHOLDER_MARKERS = ("your-project", "your-password", "changeme")


def _env(*names: str, default: Optional[str] = None) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


class Settings(BaseModel):
    database_url: str = "sqlite:///./rlsguard.db"
    storage_root: str = "./rlsguard-storage"
    bucket_name: str = DEFAULT_BUCKET
    allowed_content_types: tuple[str, ...] = ("application/octet-stream", "text/plain")
    max_blob_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    session_ttl_seconds: int = Field(default=3600, gt=0)
    read_retry_attempts: int = Field(default=3, ge=1)
    read_retry_backoff_seconds: float = Field(default=0.2, ge=0)
    log_level: str = "INFO"

    # harness side
    base_url: str = "http://localhost:8000"
    therapist1_email: Optional[str] = None
    therapist1_password: Optional[str] = None
    therapist2_email: Optional[str] = None
    therapist2_password: Optional[str] = None

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        """Build settings from the environment, after loading a ``.env`` file.

        Variables already present in the environment win over the file.
        """
        load_dotenv(dotenv_path)
        defaults = cls()
        return cls(
            database_url=_env("DATABASE_URL", default=defaults.database_url),
            storage_root=_env("STORAGE_ROOT", default=defaults.storage_root),
            bucket_name=_env("BUCKET_NAME", "DEFAULT_BUCKET", default=defaults.bucket_name),
            max_blob_bytes=int(_env("MAX_BLOB_BYTES", default=str(defaults.max_blob_bytes))),
            session_ttl_seconds=int(
                _env("SESSION_TTL_SECONDS", default=str(defaults.session_ttl_seconds))
            ),
            read_retry_attempts=int(
                _env("READ_RETRY_ATTEMPTS", default=str(defaults.read_retry_attempts))
            ),
            read_retry_backoff_seconds=float(
                _env(
                    "READ_RETRY_BACKOFF_SECONDS",
                    default=str(defaults.read_retry_backoff_seconds),
                )
            ),
            log_level=_env("LOG_LEVEL", default=defaults.log_level),
            base_url=_env("RLSGUARD_BASE_URL", default=defaults.base_url),
            therapist1_email=_env("THERAPIST1_EMAIL", "TEST_THERAPIST_EMAIL"),
            therapist1_password=_env("THERAPIST1_PASSWORD", "TEST_THERAPIST_PASSWORD"),
            therapist2_email=_env("THERAPIST2_EMAIL"),
            therapist2_password=_env("THERAPIST2_PASSWORD"),
        )

    def therapist_credentials(self) -> list[tuple[str, str]]:
        pairs = [
            (self.therapist1_email, self.therapist1_password),
            (self.therapist2_email, self.therapist2_password),
        ]
        return [(email, password) for email, password in pairs if email and password]

    def is_harness_ready(self) -> bool:
        """True when two usable therapist accounts are configured."""
        credentials = self.therapist_credentials()
        if len(credentials) < 2:
            return False
        for email, password in credentials:
            if any(marker in email or marker in password for marker in PLACEHOLDER_MARKERS):
                return False
        return True

    def status_message(self) -> str:
        if self.is_harness_ready():
            return f"Configuration loaded (URL: {self.base_url}, bucket: {self.bucket_name})"
        return (
            "Configuration incomplete. Set these in .env or the environment:\n"
            "   - THERAPIST1_EMAIL / THERAPIST1_PASSWORD\n"
            "   - THERAPIST2_EMAIL / THERAPIST2_PASSWORD\n"
            "   - RLSGUARD_BASE_URL (optional, defaults to http://localhost:8000)"
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
