#!/usr/bin/env python3
"""
Operator CLI for the auth service.

Usage:
  python main.py create-admin admin@example.com
  python main.py purge
  python main.py serve --host 0.0.0.0 --port 8000

Configuration comes from the environment / .env (see core/config.py), the
same as the API: DATABASE_URL, SECRET_KEY, etc.
"""

import argparse
import getpass
import sys

from auth.errors import AuthError
from auth.mailer import build_email_sender
from auth.models import ROLE_ADMIN
from auth.schema import create_auth_engine
from auth.service import AuthService, build_auth_service
from core.config import get_settings


def _build_service() -> AuthService:
    settings = get_settings()
    engine = create_auth_engine(settings.database_url)
    return build_auth_service(settings, engine, build_email_sender(settings))


def create_admin(email: str) -> int:
    """Create a verified ADMIN account. The password is prompted, never passed on the command line."""
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        print("  [!] Passwords do not match.")
        return 1
    service = _build_service()
    try:
        account = service.create_verified_account(email, password, ROLE_ADMIN)
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        service.accounts.close()
    print(f"  Admin account created: id={account.id} email={account.email}")
    return 0


def purge() -> int:
    """Delete expired sessions once."""
    service = _build_service()
    try:
        removed = service.cleanup()
    finally:
        service.accounts.close()
    print(f"  Removed {removed} expired session(s).")
    return 0


def serve(host: str, port: int, reload: bool) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=host, port=port, reload=reload)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="appstore-auth",
        description="Account, session and token administration for the auth service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    admin = sub.add_parser("create-admin", help="Create a verified ADMIN account (password is prompted)")
    admin.add_argument("email", help="Email address of the new admin")

    sub.add_parser("purge", help="Delete expired sessions")

    run = sub.add_parser("serve", help="Run the API with uvicorn")
    run.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    run.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    run.add_argument("--reload", action="store_true", help="Reload on code changes (development)")

    args = parser.parse_args()

    if args.command == "create-admin":
        sys.exit(create_admin(args.email))
    elif args.command == "purge":
        sys.exit(purge())
    elif args.command == "serve":
        sys.exit(serve(args.host, args.port, args.reload))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
