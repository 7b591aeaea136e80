#!/usr/bin/env python3
"""Provision the demo therapists and their patients out-of-band.

Usage:
    python scripts/seed_demo.py
    python scripts/seed_demo.py --database-url sqlite:///./rlsguard.db --env-file .env
"""
from __future__ import annotations

import argparse

from rlsguard.app.infra.db import build_engine, build_sessionmaker, init_db, session_scope
from rlsguard.app.services.provisioning import demo_tenants, seed_tenants
from rlsguard.config import Settings, configure_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed DB with demo therapists and patients")
    parser.add_argument("--env-file", help="Optional .env file to load first")
    parser.add_argument(
        "--database-url",
        help="Database URL (SQLAlchemy compatible); defaults to DATABASE_URL",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    settings = Settings.from_env(args.env_file)
    configure_logging(settings.log_level)
    engine = build_engine(args.database_url or settings.database_url)
    init_db(engine)

    credentials = settings.therapist_credentials()
    tenants = demo_tenants(*credentials) if len(credentials) == 2 else demo_tenants()
    with session_scope(build_sessionmaker(engine)) as db:
        principals = seed_tenants(db, tenants)
    for principal, tenant in zip(principals, tenants):
        print(f"{principal.identifier}: patients {', '.join(tenant.patient_codes)}")
    print(f"Seeded {len(principals)} principals.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
