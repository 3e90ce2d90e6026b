#!/usr/bin/env python3
"""
Tokengate -- account signup, password login, and access/refresh token sessions.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py serve --reload
  python main.py create-account --email ops@example.com --first-name Ops --last-name Team --role admin

create-account is the operator path for bootstrapping accounts (typically the
first admin) without going through signup and the ADMIN_SECRET check. The
password is read interactively and never taken from argv, where it would land
in shell history and process listings.

Environment variables:
  JWT_SECRET    Required unless DEBUG=true. At least 32 characters.
  ADMIN_SECRET  Optional. Enables self-service admin signup.
  DATABASE_URL  Optional. Defaults to sqlite:///./tokengate.db
  See core/config.py for the full list.
"""

import argparse
import getpass
import sys

from auth.errors import DuplicateEmail
from auth.models import Role
from auth.store import AccountStore
from core.config import get_settings


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _read_password() -> str:
    password = getpass.getpass("Password: ")
    if not password:
        print("  [!] Password must not be empty.")
        return ""
    if getpass.getpass("Repeat password: ") != password:
        print("  [!] Passwords do not match.")
        return ""
    return password


def _create_account(args: argparse.Namespace) -> int:
    settings = get_settings()
    password = _read_password()
    if not password:
        return 1

    store = AccountStore(settings.database_url, bcrypt_rounds=settings.bcrypt_rounds)
    try:
        account = store.create(
            email=args.email,
            raw_password=password,
            first_name=args.first_name,
            last_name=args.last_name,
            role=args.role,
        )
    except DuplicateEmail:
        print(f"  [!] An account for '{args.email}' already exists.")
        return 1
    finally:
        store.close()

    print(f"  Created account {account.id} ({account.email}, role={account.role})")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tokengate",
        description="Credential authentication and session-token service.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only).")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-account", help="Create an account directly in the store.")
    create.add_argument("--email", required=True)
    create.add_argument("--first-name", required=True)
    create.add_argument("--last-name", required=True)
    create.add_argument("--role", choices=[r.value for r in Role], default=Role.user.value)
    create.set_defaults(func=_create_account)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
