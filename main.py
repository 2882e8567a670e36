#!/usr/bin/env python3
"""
SSO -- single sign-on identity provider.

Usage:
  python main.py serve
  python main.py create-app --id 1 --name billing --secret "<signing secret>"
  python main.py set-admin 42
  python main.py set-admin 42 --revoke

Environment variables (see core/config.py):
  ENV                local | dev | prod (log format and level)
  DATABASE_URL       SQLAlchemy URL, default sqlite:///./storage/sso.db
  TOKEN_TTL_SECONDS  lifetime of issued tokens, default 3600
  BCRYPT_ROUNDS      bcrypt cost factor, default 12
  HOST / PORT        listen address for `serve`, default 127.0.0.1:44044
"""

import argparse
import sys

from pydantic import ValidationError

from auth.bootstrap import BootstrapError, build_auth_service
from auth.errors import StorageError, UserMissingError
from auth.store import Storage
from core.config import get_settings
from core.log import setup_logging


def _serve(args: argparse.Namespace) -> int:
    """Run the API under uvicorn. SIGINT/SIGTERM trigger a graceful shutdown."""
    import uvicorn

    settings = get_settings()
    # Fatal configuration (unopenable storage, apps without a secret) exits
    # here with status 1 instead of inside uvicorn's startup.
    _, storage = build_auth_service(settings)
    storage.close()

    # Lifespan (api/main.py) configures logging; log_config=None keeps
    # uvicorn from installing its own handlers over ours.
    uvicorn.run("asgi:app", host=settings.host, port=settings.port, log_config=None)
    return 0


def _create_app(args: argparse.Namespace) -> int:
    if args.id == 0:
        print("  [!] --id must be non-zero; 0 means \"no application\" on the wire.")
        return 1
    if not args.secret:
        print("  [!] --secret must not be empty.")
        return 1
    storage = Storage(get_settings().database_url)
    try:
        storage.create_app(args.id, args.name, args.secret)
    finally:
        storage.close()
    print(f"  Application {args.id} ({args.name}) created.")
    return 0


def _set_admin(args: argparse.Namespace) -> int:
    storage = Storage(get_settings().database_url)
    try:
        storage.set_admin(args.user_id, not args.revoke)
    except UserMissingError:
        print(f"  [!] No user with id {args.user_id}.")
        return 1
    finally:
        storage.close()
    state = "revoked from" if args.revoke else "granted to"
    print(f"  Admin {state} user {args.user_id}.")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="sso",
        description="Single sign-on identity provider.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve
  python main.py create-app --id 1 --name billing --secret s3cr3t
  python main.py set-admin 42
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.set_defaults(func=_serve)

    create_app = sub.add_parser("create-app", help="Provision a relying application and its signing secret")
    create_app.add_argument("--id", type=int, required=True, help="Application id (non-zero)")
    create_app.add_argument("--name", required=True, help="Unique display name")
    create_app.add_argument("--secret", required=True, help="HS256 signing secret for this application's tokens")
    create_app.set_defaults(func=_create_app)

    set_admin = sub.add_parser("set-admin", help="Grant or revoke a user's admin flag")
    set_admin.add_argument("user_id", type=int, help="User id")
    set_admin.add_argument("--revoke", action="store_true", help="Clear the flag instead of setting it")
    set_admin.set_defaults(func=_set_admin)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    try:
        setup_logging(get_settings().env)
        return args.func(args)
    except ValidationError as exc:
        print(f"  [!] Invalid configuration:\n{exc}")
    except (BootstrapError, StorageError) as exc:
        print(f"  [!] {exc}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
