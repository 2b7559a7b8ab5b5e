#!/usr/bin/env python3
"""
SessionGuard -- account administration from the command line.

Usage:
  python main.py create-user alice alice@example.com --role admin
  python main.py create-user bob bob@example.com --password-stdin < pw.txt
  python main.py reset-password 2 --admin-id 1
  python main.py revoke-sessions 2 --reason incident-42

Passwords are read from an interactive prompt (twice, must match) or, with
--password-stdin, from the first line of standard input. They are never
accepted as command-line arguments.

Environment variables:
  SECRET_KEY, ENCRYPTION_KEY, DATABASE_URL and the rest of core/config.py.
"""

import argparse
import getpass
import logging
import sys

from auth.authenticator import Authenticator
from auth.models import ROLES
from auth.results import NotFound, PolicyViolation
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("sessionguard.cli")


def _read_password(from_stdin: bool, prompt: str = "Password: ") -> str:
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    first = getpass.getpass(prompt)
    second = getpass.getpass("Repeat: ")
    if first != second:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return first


def _print_violations(result: PolicyViolation) -> None:
    for error in result.errors:
        print(f"  [!] {error}")


def _cmd_create_user(auth: Authenticator, args: argparse.Namespace) -> int:
    password = _read_password(args.password_stdin)
    result = auth.create_user(
        args.username,
        args.email,
        password,
        role=args.role,
        display_name=args.display_name,
        created_by="cli",
    )
    if isinstance(result, PolicyViolation):
        _print_violations(result)
        return 1
    print(f"  Created user {result.username} (id={result.id}, role={result.role})")
    return 0


def _cmd_reset_password(auth: Authenticator, args: argparse.Namespace) -> int:
    password = _read_password(args.password_stdin, prompt="New password: ")
    result = auth.reset_password(args.user_id, password, args.admin_id)
    if isinstance(result, NotFound):
        print(f"  [!] No user with id {args.user_id}.")
        return 1
    if isinstance(result, PolicyViolation):
        _print_violations(result)
        return 1
    print(f"  Password reset. {result.sessions_revoked} session(s) revoked; change required at next login.")
    return 0


def _cmd_revoke_sessions(auth: Authenticator, args: argparse.Namespace) -> int:
    count = auth.revoke_all_sessions(args.user_id, args.reason, by="cli")
    print(f"  Revoked {count} session(s) for user id {args.user_id}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SessionGuard account administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create a local account")
    create.add_argument("username")
    create.add_argument("email")
    create.add_argument("--role", choices=ROLES, default="user")
    create.add_argument("--display-name", dest="display_name")
    create.add_argument("--password-stdin", action="store_true", help="Read the password from stdin")
    create.set_defaults(handler=_cmd_create_user)

    reset = sub.add_parser("reset-password", help="Set a new password for a user")
    reset.add_argument("user_id", type=int)
    reset.add_argument("--admin-id", dest="admin_id", required=True, help="Recorded as the actor")
    reset.add_argument("--password-stdin", action="store_true", help="Read the password from stdin")
    reset.set_defaults(handler=_cmd_reset_password)

    revoke = sub.add_parser("revoke-sessions", help="Revoke every session of a user")
    revoke.add_argument("user_id", type=int)
    revoke.add_argument("--reason", default="admin_action")
    revoke.set_defaults(handler=_cmd_revoke_sessions)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    settings = get_settings()
    logger.debug("Running %s", args.command)
    store = UserStore(settings.database_url)
    try:
        return args.handler(Authenticator(store, settings), args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
