#!/usr/bin/env python3
"""Delete harness-created files from a therapist's own patient folders.

Usage:
    python scripts/cleanup_blobs.py --identifier therapist1@example.com --secret ...
    python scripts/cleanup_blobs.py --therapist 2 --dry-run
"""
from __future__ import annotations

import argparse
import getpass
import sys

from rlsguard.app.domain.errors import RlsGuardError
from rlsguard.client import AccessClient
from rlsguard.config import Settings, configure_logging

HARNESS_MARKERS = ("_C3D-Test_",)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remove isolation-harness uploads.")
    parser.add_argument("--env-file", help="Optional .env file to load first")
    parser.add_argument("--base-url", help="Service URL; defaults to RLSGUARD_BASE_URL")
    parser.add_argument("--therapist", type=int, choices=(1, 2), help="Use THERAPISTn_* credentials")
    parser.add_argument("--identifier", help="Sign in with this identifier instead")
    parser.add_argument("--secret", help="Secret for --identifier (prompted if omitted)")
    parser.add_argument("--prefix", default="", help="Only consider keys under this prefix")
    parser.add_argument("--all", action="store_true", help="Delete every own key, not only harness files")
    parser.add_argument("--dry-run", action="store_true")
    return parser.parse_args()


def resolve_credentials(args: argparse.Namespace, settings: Settings) -> tuple[str, str] | None:
    if args.identifier:
        return args.identifier, args.secret or getpass.getpass(f"Secret for {args.identifier}: ")
    credentials = settings.therapist_credentials()
    index = (args.therapist or 1) - 1
    if index >= len(credentials):
        return None
    return credentials[index]


def main() -> int:
    args = parse_args()
    settings = Settings.from_env(args.env_file)
    configure_logging(settings.log_level)

    credentials = resolve_credentials(args, settings)
    if credentials is None:
        print(settings.status_message(), file=sys.stderr)
        return 2

    client = AccessClient.connect(args.base_url or settings.base_url)
    try:
        client.authenticate(*credentials)
        keys = client.list_blobs(args.prefix)
        targets = [key for key in keys if args.all or any(marker in key for marker in HARNESS_MARKERS)]
        for key in targets:
            if args.dry_run:
                print(f"would delete {key}")
                continue
            client.delete_blob(key)
            print(f"deleted {key}")
        print(f"{len(targets)} of {len(keys)} keys {'matched' if args.dry_run else 'removed'}.")
    except RlsGuardError as exc:
        print(f"[ERROR] {type(exc).__name__}: {exc}", file=sys.stderr)
        return 1
    finally:
        client.sign_out()
        client.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
