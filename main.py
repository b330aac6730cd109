"""Command-line interface for the noticeboard service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

from noticeboard.config import Settings, load_settings
from noticeboard.database import Database
from noticeboard.errors import DuplicateUserError
from noticeboard.models import Role

logger = logging.getLogger("noticeboard.main")

PASSWORD_MIN_LENGTH = 8


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Noticeboard service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (default: NOTICEBOARD_CONFIG or config/noticeboard.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the noticeboard database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address (default from settings)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to listen on (default from settings)")

    create_parser = subparsers.add_parser("create-user", help="Create an account from the terminal")
    create_parser.add_argument("email", help="Unique email address for login")
    create_parser.add_argument(
        "--admin",
        action="store_true",
        help="Grant the admin role, allowing critical broadcasts",
    )

    subparsers.add_parser("list-users", help="List registered accounts")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "create-user", "list-users"}

    global_args: list[str] = []
    if args_list[:1] == ["--config"]:
        global_args, args_list = args_list[:2], args_list[2:]
    elif args_list and args_list[0].startswith("--config="):
        global_args, args_list = args_list[:1], args_list[1:]

    if not args_list:
        args_list = ["serve"]
    elif args_list[0] not in known_commands and args_list[0] not in ("-h", "--help"):
        if not any(flag in args_list for flag in ("-h", "--help")):
            args_list = ["serve", *args_list]

    return parser.parse_args([*global_args, *args_list])


def _load_settings(config: str | None) -> Settings:
    return load_settings(Path(config).expanduser() if config else None)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, database: Database, host: str | None, port: int | None) -> None:
    from noticeboard.service import create_app
    import uvicorn

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Starting noticeboard API on http://%s:%s%s", bind_host, bind_port, settings.api_prefix)

    app = create_app(settings=settings, database=database)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")


def _list_users(database: Database) -> None:
    users = database.list_users()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Email':<32}  {'Role':<6}  Created")
    print("-" * 72)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:>4}  {user.email:<32}  {user.role.value:<6}  {created}")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {PASSWORD_MIN_LENGTH} characters): ")
        if len(password) < PASSWORD_MIN_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_user(database: Database, email: str, *, admin: bool) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.", file=sys.stderr)
        return 1

    role = Role.ADMIN if admin else Role.USER
    try:
        user = database.create_user(email, password, role=role)
    except (DuplicateUserError, ValueError) as exc:
        print(f"Failed to create user: {exc}", file=sys.stderr)
        return 1

    print(f"Created {user.role.value} #{user.id}: <{user.email}>")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = _load_settings(args.config)
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(
            settings=settings,
            database=database,
            host=getattr(args, "host", None),
            port=getattr(args, "port", None),
        )
    elif args.command == "create-user":
        return _create_user(database, args.email, admin=args.admin)
    elif args.command == "list-users":
        _list_users(database)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
