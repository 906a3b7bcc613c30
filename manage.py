#!/usr/bin/env python3
"""
manage.py -- Administrative commands for the account service.

The HTTP API never lets a caller register as ADMIN, so the first
administrator is created here, directly against the user store.

Usage:
  python manage.py create-admin alice alice@acme.io
  python manage.py create-admin alice alice@acme.io --password 'S3cure pass!'
  python manage.py create-admin bob bob@acme.io --role user
  python manage.py list-users
  python manage.py --database-url sqlite:///other.db list-users

Without --password the password is read from the terminal (twice, not echoed).

Environment variables:
  DATABASE_URL   Store to operate on (same setting the API reads).
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.models import Role
from auth.passwords import PASSWORD_RULES
from auth.service import AccountService
from auth.store import UserStore
from core.config import get_settings
from core.errors import AppError

logger = logging.getLogger("accounts.manage")


def _build_service(store: UserStore) -> AccountService:
    return AccountService.from_settings(get_settings(), store)


def _read_password() -> Optional[str]:
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Password (again): ")
    if first != second:
        print("  [!] Passwords do not match.", file=sys.stderr)
        return None
    return first


def cmd_create_admin(store: UserStore, args: argparse.Namespace) -> int:
    password = args.password if args.password is not None else _read_password()
    if password is None:
        return 1
    user = _build_service(store).create_account(args.name, args.email, password, args.role)
    logger.info("Created %s account id=%s from the command line", user.role.value, user.id)
    print(f"Created user '{user.name}' (id={user.id}) with role {user.role.value}.")
    return 0


def cmd_list_users(store: UserStore, args: argparse.Namespace) -> int:
    users = store.list_users()
    if not users:
        print("No users.")
        return 0
    for user in users:
        print(f"{user.id:>5}  {user.name:<30}  {user.email:<40}  {user.role.value}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Account service administration.")
    parser.add_argument("--database-url", help="SQLAlchemy URL of the user store (default: DATABASE_URL)")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser(
        "create-admin",
        help="Create an account with an explicit role (ADMIN by default)",
        epilog=PASSWORD_RULES,
    )
    create.add_argument("name", help="Username (3-100 chars)")
    create.add_argument("email", help="E-mail address")
    create.add_argument("--password", help="Password; prompted for when omitted")
    create.add_argument(
        "--role",
        default=Role.ADMIN.value,
        type=str.upper,
        choices=[r.value for r in Role],
        help="Role to grant (default: ADMIN)",
    )
    create.set_defaults(func=cmd_create_admin)

    listing = sub.add_parser("list-users", help="List every account")
    listing.set_defaults(func=cmd_list_users)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    store = UserStore(args.database_url or get_settings().database_url)
    try:
        return args.func(store, args)
    except AppError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s %(message)s")
    sys.exit(main())
