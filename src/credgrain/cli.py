"""CredGrain CLI — command-line interface for the Grain accounting engine.

Usage:
    credgrain grain
    credgrain grain --simulation
    credgrain accounts
    credgrain status
    credgrain check-ledger

The instance directory (holding config/, data/ and output/) defaults to
the current directory. It can be set with --instance or with the
CREDGRAIN_INSTANCE environment variable, which is also read from a .env
file in the working directory.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from credgrain.persistence.storage import DiskStorage
from credgrain.policy.resolver import PolicyResolver
from credgrain.service import RUN_ERRORS, GrainService


INSTANCE_ENV = "CREDGRAIN_INSTANCE"


def _die(message: str) -> int:
    print(f"fatal: {message}", file=sys.stderr)
    return 1


def _make_service(instance: Path) -> GrainService:
    """Create a GrainService backed by the instance directory."""
    resolver = PolicyResolver.from_config_dir(instance / "config")
    return GrainService(resolver, DiskStorage(instance))


def cmd_grain(args: argparse.Namespace) -> int:
    service = _make_service(args.instance)
    result = service.distribute(simulation=args.simulation)
    if result.success:
        print(result.data["report"])
        return 0
    return _die("; ".join(result.errors))


def cmd_accounts(args: argparse.Namespace) -> int:
    service = _make_service(args.instance)
    result = service.recompute_accounts()
    if result.success:
        print(result.data["report"])
        return 0
    return _die("; ".join(result.errors))


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args.instance)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_check_ledger(args: argparse.Namespace) -> int:
    """Replay the persisted ledger and run invariant checks."""
    from credgrain.tools import check_ledger
    return check_ledger.check(args.instance)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="credgrain",
        description="CredGrain — Grain distribution and ledger CLI",
    )
    parser.add_argument(
        "--instance",
        type=Path,
        default=None,
        help=f"Instance directory (default: ${INSTANCE_ENV} or the current directory)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command")

    # grain
    p_grain = sub.add_parser(
        "grain",
        help="Distribute Grain for completed epochs that have no distribution yet",
    )
    p_grain.add_argument(
        "-s", "--simulation",
        action="store_true",
        help="Compute and report distributions without changing the ledger",
    )

    # accounts
    sub.add_parser("accounts", help="Recompute output/accounts.json")

    # status
    sub.add_parser("status", help="Show ledger status")

    # check-ledger
    sub.add_parser("check-ledger", help="Replay the ledger and check its invariants")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv(Path.cwd() / ".env")
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.instance is None:
        args.instance = Path(os.getenv(INSTANCE_ENV) or Path.cwd())

    commands = {
        "grain": cmd_grain,
        "accounts": cmd_accounts,
        "status": cmd_status,
        "check-ledger": cmd_check_ledger,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except RUN_ERRORS as exc:
        return _die(str(exc))


if __name__ == "__main__":
    raise SystemExit(main())
