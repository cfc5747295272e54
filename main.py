#!/usr/bin/env python3
"""
RoleGate -- administration CLI.

Works directly against the configured store (DATABASE_URL), no running
server required.

Usage:
  python main.py init-db
  python main.py create-admin --email admin@example.com --password 's3cret!' --firstname Ada --lastname Lovelace
  python main.py assign-role --email someone@example.com --role admin
  python main.py list-roles
  python main.py list-users --page 1 --limit 20
  python main.py list-users --json

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the store. Default: sqlite:///rolegate.db
  SECRET_KEY     Required unless DEBUG=true (tokens are not minted here, but
                 settings are validated the same way as the server).
"""

import argparse
import getpass
import json
import sys
from types import SimpleNamespace

from api.main import init_state
from core.config import get_settings
from core.database import Database
from core.errors import RoleGateError
from notify.email import LogEmailSender


def _print_json(envelope) -> None:
    print(json.dumps(envelope.to_dict(), indent=2, default=str))


def _cmd_init_db(state, args) -> int:
    settings = get_settings()
    print(f"  [+] Schema ready. Roles seeded: {settings.default_role}, {settings.admin_role}")
    return 0


def _cmd_create_admin(state, args) -> int:
    password = args.password or getpass.getpass("  Password: ")
    if len(password) < 6:
        print("  [!] Password must be at least 6 characters.")
        return 1
    envelope = state.lifecycle.create_admin(args.firstname, args.lastname, args.email, password)
    account = envelope.data
    print(f"  [+] Admin account created: {account.email} (id={account.id})")
    return 0


def _cmd_assign_role(state, args) -> int:
    account = state.account_store.get_by_email(args.email.strip().lower())
    if account is None:
        print(f"  [!] No account with email '{args.email}'.")
        return 1
    role = state.rbac_store.get_role_by_name(args.role.strip().lower())
    if role is None:
        print(f"  [!] No role named '{args.role}'.")
        return 1
    state.lifecycle.assign_role(account.id, role.id)
    print(f"  [+] {account.email} now holds role '{role.name}'.")
    return 0


def _cmd_list_roles(state, args) -> int:
    envelope = state.role_catalog.list(page=args.page, limit=args.limit)
    if args.json:
        _print_json(envelope)
        return 0
    for role in envelope.data:
        actions = ", ".join(a.name for a in role.actions) or "-"
        status = "active" if role.is_active else "inactive"
        print(f"  {role.id:>4}  {role.name:<30} {status:<8} {actions}")
    meta = envelope.meta_data
    print(f"\n  page {meta['currentPage']}/{meta['totalPages']} ({meta['totalRoles']} roles)")
    return 0


def _cmd_list_users(state, args) -> int:
    envelope = state.lifecycle.list_accounts(page=args.page, limit=args.limit)
    if args.json:
        _print_json(envelope)
        return 0
    for account in envelope.data:
        print(f"  {account.id:>4}  {account.email:<40} {account.role or '-':<15} {account.state}")
    meta = envelope.meta_data
    print(f"\n  page {meta['currentPage']}/{meta['totalPages']} ({meta['totalUsers']} users)")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rolegate", description="RoleGate administration CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and seed the default roles")

    p = sub.add_parser("create-admin", help="Create a verified account holding the admin role")
    p.add_argument("--email", required=True)
    p.add_argument("--password", help="Prompted for when omitted")
    p.add_argument("--firstname", default="Admin")
    p.add_argument("--lastname", default="User")

    p = sub.add_parser("assign-role", help="Assign a role (by name) to an account (by email)")
    p.add_argument("--email", required=True)
    p.add_argument("--role", required=True)

    for name in ("list-roles", "list-users"):
        p = sub.add_parser(name)
        p.add_argument("--page", type=int, default=1)
        p.add_argument("--limit", type=int, default=20)
        p.add_argument("--json", action="store_true", help="Print the raw {data, metaData} envelope")

    return parser


_COMMANDS = {
    "init-db": _cmd_init_db,
    "create-admin": _cmd_create_admin,
    "assign-role": _cmd_assign_role,
    "list-roles": _cmd_list_roles,
    "list-users": _cmd_list_users,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    db = Database(settings.database_url)
    state = SimpleNamespace()
    try:
        init_state(state, db, LogEmailSender(), settings)
        return _COMMANDS[args.command](state, args)
    except RoleGateError as exc:
        print(f"  [!] {exc.message} ({exc.code})")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
