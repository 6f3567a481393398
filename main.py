"""Command-line interface for the UwUntu key issuance service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

from uwuntu_api.auth import AdminAuthService
from uwuntu_api.config import Settings, load_settings
from uwuntu_api.database import Database
from uwuntu_api.errors import UwuntuError
from uwuntu_api.management import AdminManagementService
from uwuntu_api.sessions import InMemorySessionStore

logger = logging.getLogger("uwuntu.main")

PASSWORD_MIN_LENGTH = 8


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="UwUntu API utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: UWUNTU_HOST or 0.0.0.0)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Listening port (default: UWUNTU_PORT or 3000)",
    )

    admin_parser = subparsers.add_parser("create-admin", help="Register an administrator account")
    admin_parser.add_argument("email", help="Unique email address used to log in")

    export_parser = subparsers.add_parser("export-csv", help="Export users and API keys as CSV")
    export_parser.add_argument(
        "--output",
        default=None,
        help="File to write (default: standard output)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "create-admin", "export-csv"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, database: Database, settings: Settings, host: str | None, port: int | None) -> None:
    from uwuntu_api.service import create_app
    import uvicorn

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Starting UwUntu API on http://%s:%s", bind_host, bind_port)

    app = create_app(database=database, settings=settings)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")


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


def _create_admin(database: Database, email: str) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Failed to set password after three attempts.", file=sys.stderr)
        return 1

    auth = AdminAuthService(database, InMemorySessionStore())
    try:
        admin_id = auth.register(email, password)
    except UwuntuError as exc:
        print(f"Failed to create admin: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created admin #{admin_id}: {email.strip().lower()}")
    return 0


def _export_csv(database: Database, output: str | None) -> int:
    management = AdminManagementService(database)
    chunks = management.export_csv()
    if output is None:
        for chunk in chunks:
            sys.stdout.write(chunk.decode("utf-8"))
        sys.stdout.flush()
        return 0

    target = Path(output).expanduser()
    with target.open("wb") as handle:
        for chunk in chunks:
            handle.write(chunk)
    print(f"Wrote export to {target}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = load_settings()
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(database=database, settings=settings, host=args.host, port=args.port)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    elif args.command == "create-admin":
        return _create_admin(database, args.email)
    elif args.command == "export-csv":
        return _export_csv(database, args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
