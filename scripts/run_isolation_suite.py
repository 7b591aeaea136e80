#!/usr/bin/env python3
"""
Run the multi-therapist isolation harness.

Usage:
    python scripts/run_isolation_suite.py                  # against RLSGUARD_BASE_URL
    python scripts/run_isolation_suite.py --base-url http://localhost:8000
    python scripts/run_isolation_suite.py --in-process     # throwaway app, demo tenants

Exits non-zero if any scenario failed or could not run.
"""
from __future__ import annotations

import argparse
import sys
import tempfile

import httpx
from fastapi.testclient import TestClient

from rlsguard.app.infra.db import init_db, session_scope
from rlsguard.app.main import create_app
from rlsguard.app.services.provisioning import demo_tenants, seed_tenants
from rlsguard.client import AccessClient
from rlsguard.config import Settings, configure_logging
from rlsguard.harness import ERROR, FAIL, HarnessReport, IsolationHarness, PrincipalCredentials

# ANSI color codes
RESET = "\033[0m"
BOLD = "\033[1m"
CYAN = "\033[36m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"

STATUS_STYLE = {
    ERROR: f"{YELLOW}ERROR{RESET}",
    FAIL: f"{BOLD}{RED}FAIL{RESET}",
}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the tenant isolation harness.")
    parser.add_argument("--env-file", help="Optional .env file to load first")
    parser.add_argument("--base-url", help="Service URL; defaults to RLSGUARD_BASE_URL")
    parser.add_argument(
        "--in-process",
        action="store_true",
        help="Start a throwaway in-memory app seeded with the demo tenants",
    )
    parser.add_argument("--repeats", type=int, default=5, help="Attempts for the idempotent-denial check")
    return parser.parse_args()


def print_header(title: str) -> None:
    print(f"\n{BOLD}{CYAN}{'=' * 60}{RESET}")
    print(f"{BOLD}{CYAN}{title}{RESET}")
    print(f"{BOLD}{CYAN}{'=' * 60}{RESET}")


def print_report(report: HarnessReport) -> None:
    print_header("Isolation results")
    for result in report.results:
        status = STATUS_STYLE.get(result.status, f"{GREEN}PASS{RESET}")
        print(f"[{status}] {BOLD}{result.name}{RESET} ({result.actor})")
        print(f"    request:  {result.request}")
        print(f"    expected: {result.expected}")
        print(f"    actual:   {result.actual}")
    colour = GREEN if report.ok else RED
    print(f"\n{BOLD}{colour}{report.summary()}{RESET}")


def in_process_app(settings: Settings):
    storage = tempfile.mkdtemp(prefix="rlsguard-")
    local = settings.model_copy(update={"database_url": "sqlite://", "storage_root": storage})
    app = create_app(local)
    init_db(app.state.engine, attempts=1)
    with session_scope(app.state.sessionmaker) as db:
        seed_tenants(db, demo_tenants())
    principals = [
        PrincipalCredentials(tenant.identifier, tenant.secret, tenant.display_name)
        for tenant in demo_tenants()
    ]
    return app, principals


def main() -> int:
    args = parse_args()
    settings = Settings.from_env(args.env_file)
    configure_logging(settings.log_level)

    if args.in_process:
        app, principals = in_process_app(settings)
        http = TestClient(app)
    else:
        if not settings.is_harness_ready():
            print(f"{YELLOW}{settings.status_message()}{RESET}", file=sys.stderr)
            return 2
        principals = [
            PrincipalCredentials(identifier, secret, f"therapist{index}")
            for index, (identifier, secret) in enumerate(settings.therapist_credentials(), start=1)
        ]
        http = httpx.Client(base_url=(args.base_url or settings.base_url).rstrip("/"), timeout=30.0)

    print_header(f"rlsguard isolation harness (bucket: {settings.bucket_name})")
    with http:
        harness = IsolationHarness(
            lambda: AccessClient(http),
            principals,
            bucket=settings.bucket_name,
            denial_repeats=args.repeats,
        )
        report = harness.run()
    print_report(report)
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
