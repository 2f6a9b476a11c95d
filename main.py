#!/usr/bin/env python3
"""
authcore admin CLI -- operate on the credential store without going through HTTP.

Reads the same settings as the API (environment variables or .env), so it
talks to the same database and code store.

Usage:
  python main.py register alice --password 's3cret-pass'
  python main.py create-role auditor
  python main.py set-role 42 admin
  python main.py get-role 42
  python main.py service-token billing

Exit status is 0 on success and 1 when the service rejects the request.
"""

import argparse
import getpass
from typing import Optional

from auth.service import CredentialService, build_service, close_service
from core.config import get_settings
from core.context import CallContext
from core.errors import AuthError


def _run(service: CredentialService, ctx: CallContext, args: argparse.Namespace) -> str:
    """Dispatch one subcommand and return the line to print."""
    if args.command == "register":
        password = args.password or getpass.getpass("Password: ")
        service.register(ctx, args.username, password)
        return f"Account '{args.username}' registered."
    if args.command == "create-role":
        role = service.create_role(ctx, args.title)
        return f"Role '{role.title}' created (id={role.id})."
    if args.command == "set-role":
        service.set_role(ctx, args.user_id, args.role)
        return f"Account {args.user_id} now has role '{args.role}'."
    if args.command == "get-role":
        return service.get_role(ctx, args.user_id)
    # service-token
    return service.generate_service_token(ctx, args.service_name)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authcore",
        description="Administer authcore accounts, roles and service tokens.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py register alice --password 's3cret-pass'
  python main.py set-role 42 admin
  python main.py service-token billing
  DATABASE_URL=postgresql://... python main.py get-role 42
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    register = sub.add_parser("register", help="Create an account with the default role")
    register.add_argument("username")
    register.add_argument(
        "--password",
        metavar="PASSWORD",
        help="Password for the new account (prompted for when omitted)",
    )

    create_role = sub.add_parser("create-role", help="Add a role to the role vocabulary")
    create_role.add_argument("title")

    set_role = sub.add_parser("set-role", help="Change an account's role")
    set_role.add_argument("user_id", type=int)
    set_role.add_argument("role")

    get_role = sub.add_parser("get-role", help="Print an account's role")
    get_role.add_argument("user_id", type=int)

    service_token = sub.add_parser("service-token", help="Print the token for a service, issuing it if needed")
    service_token.add_argument("service_name")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    service = build_service(settings)
    ctx = CallContext.with_timeout(f"cli.{args.command}", settings.request_timeout_seconds)
    try:
        print(_run(service, ctx, args))
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        close_service(service)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
