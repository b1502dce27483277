#!/usr/bin/env python3
"""
Account service -- operator command line.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000 --reload
  python main.py create-user alice@example.com
  python main.py create-user admin@example.com --admin
  python main.py grant-role alice@example.com ADMIN
  python main.py list-users --page 2 --limit 20

Environment variables (or .env):
  DATABASE_URL           SQLAlchemy URL of the account database (required)
  JWT_PRIVATE_KEY_PATH   PEM private key used to sign tokens (required for serve)
  JWT_PUBLIC_KEY_PATH    PEM public key used to verify tokens (required for serve)
  NODE_ENV               development | production | test (required)

create-user goes through the same UserService as POST /auth/register, so the
new account gets the default USER role and a bcrypt hash. The password is read
with getpass and never appears in shell history.
"""

from __future__ import annotations

import argparse
import sys
from getpass import getpass
from typing import Optional

from auth.errors import AccountServiceError
from auth.models import Role
from auth.store import UserStore
from auth.users import UserService
from core.config import get_settings


def _prompt_password() -> Optional[str]:
    password = getpass("Password: ")
    if len(password) < 6:
        print("  [!] Password must be at least 6 characters.")
        return None
    if getpass("Confirm password: ") != password:
        print("  [!] Passwords do not match.")
        return None
    return password


def cmd_create_user(users: UserService, email: str, admin: bool = False) -> int:
    password = _prompt_password()
    if password is None:
        return 1
    user = users.create_user(email, password)
    if admin:
        user = users.store.add_role(user.id, Role.ADMIN)
    print(f"  Created {user.email} ({user.id}) roles={','.join(user.role_names)}")
    return 0


def cmd_grant_role(users: UserService, email: str, role: str) -> int:
    user = users.find_by_email(email)
    if user is None:
        print(f"  [!] No user with email {email!r}.")
        return 1
    user = users.store.add_role(user.id, Role(role))
    print(f"  {user.email} roles={','.join(user.role_names)}")
    return 0


def cmd_list_users(users: UserService, page: int = 1, limit: int = 10) -> int:
    result = users.get_users(page=page, limit=limit)
    print(f"  Page {result.page}/{max(result.total_pages, 1)} -- {result.total} user(s)")
    print("  " + "─" * 72)
    for user in result.users:
        print(f"  {user.id}  {user.email:<32} {','.join(user.role_names):<12} {user.created_at}")
    return 0


def cmd_serve(host: str, port: int, reload: bool) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=host, port=port, reload=reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="account-service",
        description="Run the account service or manage accounts from the command line.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")

    create = sub.add_parser("create-user", help="Create an account (prompts for the password)")
    create.add_argument("email", help="Email address of the new account")
    create.add_argument("--admin", action="store_true", help="Also grant the ADMIN role")

    grant = sub.add_parser("grant-role", help="Grant a role to an existing account")
    grant.add_argument("email", help="Email address of the account")
    grant.add_argument("role", choices=[r.value for r in Role], help="Role to grant")

    list_cmd = sub.add_parser("list-users", help="List accounts, newest first")
    list_cmd.add_argument("--page", type=int, default=1, help="1-indexed page number (default: 1)")
    list_cmd.add_argument("--limit", type=int, default=10, help="Users per page (default: 10)")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "serve":
        return cmd_serve(args.host, args.port, args.reload)

    store = UserStore(get_settings().database_url)
    users = UserService(store)
    try:
        if args.command == "create-user":
            return cmd_create_user(users, args.email, admin=args.admin)
        if args.command == "grant-role":
            return cmd_grant_role(users, args.email, args.role)
        if args.command == "list-users":
            return cmd_list_users(users, page=args.page, limit=args.limit)
    except AccountServiceError as exc:
        print(f"  [!] {exc.message}")
        return 1
    except ValueError as exc:
        print(f"  [!] {exc}")
        return 1
    finally:
        store.close()

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
