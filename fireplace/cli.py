"""CLI entrypoints for credential and token checks."""

from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence
from pathlib import Path

from pydantic import ValidationError

from fireplace.auth import FirebaseAuth
from fireplace.config import Settings, configure_structlog, get_settings
from fireplace.credentials import CredentialStore
from fireplace.exceptions import FireplaceAuthError


def _load_credentials(settings: Settings, credentials_path: Path | None) -> CredentialStore:
    """Prefer an explicit --credentials path over configured credentials."""
    if credentials_path is not None:
        return CredentialStore.from_file(credentials_path)
    return settings.credentials.load_store()


async def _run_access_token(settings: Settings, credentials_path: Path | None) -> int:
    """Fetch an access token and print it with its Authorization header value."""
    credentials = _load_credentials(settings, credentials_path)
    async with FirebaseAuth(credentials, settings=settings) as auth:
        token = await auth.get_access_token()
    print(json.dumps({"access_token": token, "authorization": f"Bearer {token}"}))
    return 0


async def _run_verify_id_token(
    settings: Settings,
    credentials_path: Path | None,
    token: str,
    project_id: str | None,
) -> int:
    """Verify an ID token and print its claims."""
    credentials = _load_credentials(settings, credentials_path)
    async with FirebaseAuth(credentials, settings=settings) as auth:
        claims = await auth.verify_id_token(token, project_id=project_id)
    print(json.dumps(claims.to_dict(), sort_keys=True))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported commands."""
    parser = argparse.ArgumentParser(prog="fireplace-auth")
    parser.add_argument(
        "--credentials",
        type=Path,
        default=None,
        help="Service account JSON file. Defaults to FIREPLACE_CREDENTIALS__FILE.",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    subcommands.add_parser("access-token")

    verify_parser = subcommands.add_parser("verify-id-token")
    verify_parser.add_argument("token")
    verify_parser.add_argument(
        "--project-id",
        default=None,
        help="Expected project id. Defaults to the credential's project.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        settings = get_settings()
    except ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
        print(json.dumps({"detail": f"Invalid settings: {fields}.", "code": "invalid_settings"}))
        return 1
    configure_structlog(settings)
    try:
        if args.command == "access-token":
            return asyncio.run(_run_access_token(settings, args.credentials))
        if args.command == "verify-id-token":
            return asyncio.run(
                _run_verify_id_token(settings, args.credentials, args.token, args.project_id)
            )
    except FireplaceAuthError as exc:
        print(json.dumps({"detail": exc.detail, "code": exc.code}))
        return 1
    parser.error("Unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
