"""
Token management CLI for Analytics Gatekeeper.

Usage:
    analytics-gatekeeper create --name "Frontend API" --permissions read:insights,read:health
    analytics-gatekeeper create --name "Ops" --permissions manage:tokens --expires 30d
    analytics-gatekeeper list
    analytics-gatekeeper revoke --id <token_id>

The store is Redis, from --redis-url or GATEKEEPER_REDIS_URL.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence
from typing import TextIO

from analytics_gatekeeper.core.expiration import ExpirationParseError
from analytics_gatekeeper.engines.credential_store import (
    CredentialStore,
    CredentialStoreError,
    open_store,
)
from analytics_gatekeeper.engines.credentials import CredentialService, MalformedRequestError
from analytics_gatekeeper.engines.permissions import UnknownCapabilityError

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_STORE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="analytics-gatekeeper",
        description="Issue, list and revoke analytics API tokens",
    )
    parser.add_argument(
        "--redis-url",
        default=os.environ.get("GATEKEEPER_REDIS_URL"),
        help="Redis URL of the credential store (default: $GATEKEEPER_REDIS_URL)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Issue a new token")
    create.add_argument("--name", required=True, help="Token name")
    create.add_argument("--permissions", required=True, help="Comma-separated permissions")
    create.add_argument("--expires", default="", help="Expiration (e.g. 30d, 1y, 12h)")

    commands.add_parser("list", help="List tokens (metadata only)")

    revoke = commands.add_parser("revoke", help="Revoke a token")
    revoke.add_argument("--id", dest="token_id", required=True, help="Token ID")

    return parser


def split_permissions(raw: str) -> list[str]:
    """Split a comma-separated permission list, dropping blanks."""
    return [p.strip() for p in raw.split(",") if p.strip()]


def _create(service: CredentialService, args: argparse.Namespace, out: TextIO) -> int:
    issued = service.issue(args.name, split_permissions(args.permissions), args.expires or None)
    principal = issued.principal

    out.write("Generated API Token:\n")
    out.write(f"Token: {issued.secret}\n")
    out.write(f"ID: {principal.id}\n")
    out.write(f"Name: {principal.name}\n")
    out.write(f"Permissions: {','.join(principal.grant_values)}\n")
    expires = principal.expires_at.isoformat() if principal.expires_at else "never"
    out.write(f"Expires: {expires}\n")
    out.write("\nTo use this token, add it to your API requests:\n")
    out.write(f"  curl -H 'X-API-Key: {issued.secret}' http://localhost:8082/api/health\n")
    out.write("\nStore this token securely - it cannot be retrieved again!\n")
    return EXIT_OK


def _list(service: CredentialService, out: TextIO) -> int:
    principals = service.list_credentials()
    if not principals:
        out.write("No tokens.\n")
        return EXIT_OK

    for p in principals:
        state = "active" if p.is_usable(service.now()) else ("revoked" if not p.active else "expired")
        expires = p.expires_at.isoformat() if p.expires_at else "never"
        last_used = p.last_used.isoformat() if p.last_used else "never"
        out.write(
            f"{p.id}  {p.name}  [{','.join(p.grant_values)}]  {state}  "
            f"expires={expires}  last_used={last_used}\n"
        )
    return EXIT_OK


def _revoke(service: CredentialService, args: argparse.Namespace, out: TextIO) -> int:
    if not service.revoke(args.token_id):
        sys.stderr.write(f"Token not found: {args.token_id}\n")
        return EXIT_USAGE
    out.write(f"Token {args.token_id} revoked\n")
    return EXIT_OK


def main(
    argv: Sequence[str] | None = None,
    *,
    store: CredentialStore | None = None,
    out: TextIO | None = None,
) -> int:
    """
    CLI entry point.

    Args:
        argv: Arguments (defaults to sys.argv[1:])
        store: Store override (defaults to --redis-url)
        out: Output stream (defaults to stdout)

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)
    out = out or sys.stdout

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if store is None:
        if not args.redis_url:
            sys.stderr.write("No credential store: pass --redis-url or set GATEKEEPER_REDIS_URL\n")
            return EXIT_USAGE
        store = open_store(args.redis_url)

    service = CredentialService(store)

    try:
        if args.command == "create":
            return _create(service, args, out)
        if args.command == "list":
            return _list(service, out)
        return _revoke(service, args, out)
    except (MalformedRequestError, UnknownCapabilityError, ExpirationParseError) as e:
        sys.stderr.write(f"Error: {e}\n")
        return EXIT_USAGE
    except CredentialStoreError as e:
        sys.stderr.write(f"Credential store error: {e}\n")
        return EXIT_STORE


if __name__ == "__main__":
    sys.exit(main())
