"""Command-line interface for the address book service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from typing import Sequence

from addressbook.config import MissingSecretError, Settings, load_settings
from addressbook.database import Database

logger = logging.getLogger("addressbook.main")

_MIN_PASSWORD_LENGTH = 8


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Address book service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the address book database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port for the API (default: 8000)")

    create_parser = subparsers.add_parser("create-user", help="Create a user account")
    create_parser.add_argument("name", help="Display name for the user")
    create_parser.add_argument("email", help="Unique email address for login")

    subparsers.add_parser("list-users", help="List registered users")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "create-user", "list-users"}
    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]
    return parser.parse_args(args_list)


def _load_settings() -> Settings:
    try:
        return load_settings()
    except MissingSecretError as exc:
        raise SystemExit(f"Invalid configuration: {exc}. Set ADDRESSBOOK_TOKEN_SECRET.") from exc
    except ValueError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc


def _initialise_database(settings: Settings) -> Database:
    database = Database.from_settings(settings)
    database.initialize()
    logger.info("Database initialised at %s", database.path)
    return database


def _serve(*, settings: Settings, database: Database, host: str, port: int) -> None:
    from addressbook.api import create_app
    import uvicorn

    logger.info("Starting address book API on http://%s:%s", host, port)
    app = create_app(settings=settings, database=database)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {_MIN_PASSWORD_LENGTH} characters): ")
        if len(password) < _MIN_PASSWORD_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(settings: Settings, database: Database, *, name: str, email: str) -> int:
    from addressbook.credentials import CredentialManager
    from addressbook.errors import ConflictError, InvalidPasswordError
    from addressbook.tokens import TokenIssuer

    password = _prompt_for_password()
    if password is None:
        print("Failed to set password after three attempts.", file=sys.stderr)
        return 1

    manager = CredentialManager(settings, database, TokenIssuer(settings))
    try:
        user = manager.create_user(email, password, name.strip())
    except (ConflictError, InvalidPasswordError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.name} <{user.email}>")
    return 0


def _list_users(settings: Settings, database: Database) -> int:
    from addressbook.credentials import CredentialManager
    from addressbook.tokens import TokenIssuer

    users = CredentialManager(settings, database, TokenIssuer(settings)).list_users()
    if not users:
        print("No users are currently registered.")
        return 0

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Email':<32}  Created")
    print("-" * 80)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:>4}  {user.name:<24}  {user.email:<32}  {created}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = _load_settings()
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings=settings, database=database, host=args.host, port=args.port)
    elif args.command == "create-user":
        return _create_user(settings, database, name=args.name, email=args.email)
    elif args.command == "list-users":
        return _list_users(settings, database)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
