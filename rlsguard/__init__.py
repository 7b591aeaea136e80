"""
rlsguard: a small multi-tenant access-control core and the harness that
proves it.

Therapists own patients; patients own therapy sessions and the stored
files whose key starts with the patient code. Every read, write and
listing is decided by one ownership policy at the data-access layer.
The harness signs in as several therapists and attacks each other's data
to show that policy holds.
"""

__version__ = "0.1.0"

__all__ = [
    "AccessClient",
    "IsolationHarness",
    "Settings",
]

from .client import AccessClient
from .config import Settings
from .harness import IsolationHarness
