#!/usr/bin/env python3
"""
bridge-auth -- operator commands against the user directory.

Usage:
  python main.py create-admin --username admin --email admin@example.com
  python main.py confirm alice
  python main.py unlock a@x.com
  python main.py roles alice

Reads DATABASE_URL (and the rest of the settings) from the environment or
.env, the same way the API does. create-admin prompts for the password so it
never lands in shell history.
"""

import argparse
import getpass
import logging
import sys

from auth.errors import DirectoryError
from auth.models import Registration, User
from auth.store import UserStore
from core.config import get_settings


def _resolve(store: UserStore, identifier: str) -> User | None:
    return store.find_by_username(identifier) or store.find_by_email(identifier)


def _create_admin(store: UserStore, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    try:
        user = store.create(
            Registration(
                username=args.username,
                email=args.email,
                password=password,
                full_name=args.full_name,
            )
        )
    except DirectoryError as exc:
        errors = getattr(exc, "errors", [str(exc)])
        for err in errors:
            print(f"  [!] {err}")
        return 1
    try:
        store.assign_role(user.id, "Admin")
    except DirectoryError as exc:
        print(f"  [!] {exc}")
        store.delete(user.id)
        return 1
    store.confirm_email(user.id)
    print(f"  Created confirmed admin '{user.username}' ({user.id}).")
    return 0


def _confirm(store: UserStore, args: argparse.Namespace) -> int:
    user = _resolve(store, args.identifier)
    if user is None:
        print(f"  [!] No user '{args.identifier}'.")
        return 1
    store.confirm_email(user.id)
    print(f"  Email confirmed for '{user.username}'.")
    return 0


def _unlock(store: UserStore, args: argparse.Namespace) -> int:
    user = _resolve(store, args.identifier)
    if user is None:
        print(f"  [!] No user '{args.identifier}'.")
        return 1
    store.set_lockout(user.id, None)
    print(f"  Unlocked '{user.username}'.")
    return 0


def _roles(store: UserStore, args: argparse.Namespace) -> int:
    user = _resolve(store, args.identifier)
    if user is None:
        print(f"  [!] No user '{args.identifier}'.")
        return 1
    roles = store.roles_of(user.id)
    print(f"  {user.username}: {', '.join(roles) if roles else '(no roles)'}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="bridge-auth",
        description="Operator commands for the bridge-auth user directory.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-admin", help="Create a confirmed user with the Admin role")
    p.add_argument("--username", required=True)
    p.add_argument("--email", required=True)
    p.add_argument("--full-name", default="")
    p.add_argument("--password", help="Omit to be prompted (recommended)")
    p.set_defaults(handler=_create_admin)

    for name, handler, text in (
        ("confirm", _confirm, "Mark a user's email as confirmed"),
        ("unlock", _unlock, "Clear a user's lockout"),
        ("roles", _roles, "List a user's roles"),
    ):
        p = sub.add_parser(name, help=text)
        p.add_argument("identifier", help="Username or email")
        p.set_defaults(handler=handler)

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING, format="%(levelname)-5s %(name)s %(message)s")
    settings = get_settings()
    store = UserStore(
        db_url=settings.database_url,
        max_failed_attempts=settings.lockout_max_failed_attempts,
        lockout_minutes=settings.lockout_minutes,
    )
    try:
        return args.handler(store, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
