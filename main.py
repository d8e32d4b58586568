"""Command-line interface for the ClassChat service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence


def _running_in_virtualenv() -> bool:
    """Return ``True`` when the current interpreter is executing inside a venv."""

    base_prefix = getattr(sys, "base_prefix", sys.prefix)
    return sys.prefix != base_prefix


def _bootstrap_virtualenv() -> None:
    """Re-exec the script using the bundled virtualenv interpreter when available."""

    if _running_in_virtualenv():
        return

    venv_dir = Path(__file__).resolve().parent / ".venv"
    if not venv_dir.is_dir():
        return

    script = str(Path(__file__).resolve())
    for candidate in (venv_dir / "bin" / "python", venv_dir / "Scripts" / "python.exe"):
        if candidate.exists():
            os.execv(str(candidate), [str(candidate), script, *sys.argv[1:]])


if __name__ == "__main__":
    _bootstrap_virtualenv()

from classchat import accounts
from classchat.config import Settings, load_settings
from classchat.database import Database
from classchat.errors import DomainError
from classchat.models import is_class_code
from classchat.passwords import hash_password

logger = logging.getLogger("classchat.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ClassChat service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: CLASSCHAT_CONFIG)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-store", help="Create and seed the state document")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=3000, help="Port for the API (default: 3000)")

    password_parser = subparsers.add_parser(
        "set-admin-password", help="Replace the administrator password (5 digits)"
    )
    password_parser.add_argument("password", nargs="?", default=None, help="New password; prompted when omitted")

    subparsers.add_parser("admin", help="Launch the interactive administration console")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-store", "set-admin-password"}

    config_args: list[str] = []
    if len(args_list) >= 2 and args_list[0] == "--config":
        config_args, args_list = args_list[:2], args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*config_args, *args_list])
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args([*config_args, *args_list])
            args_list = ["serve", *args_list]

    return parser.parse_args([*config_args, *args_list])


def _open_database(settings: Settings) -> Database:
    database = Database.from_path(settings.store_path, bundled_path=settings.bundled_store_path)
    document = database.initialize()
    if accounts.bootstrap(document, lambda: hash_password(settings.default_admin_password)):
        database.save(document)
    logger.info("State document ready at %s", settings.store_path)
    return database


def _serve(settings: Settings, *, host: str, port: int) -> None:
    from classchat.api import create_app
    import uvicorn

    logger.info("Starting ClassChat API on http://%s:%s", host, port)
    uvicorn.run(create_app(settings), host=host, port=port, log_level="info")


def _set_admin_password(database: Database, password: str | None) -> int:
    if password is None:
        password = getpass("New admin password (5 digits): ")
    if not is_class_code(password):
        print("The admin password must be exactly 5 digits.", file=sys.stderr)
        return 1

    document = database.load()
    document["settings"]["adminPasswordHash"] = hash_password(password)
    database.save(document)
    print("Admin password updated.")
    return 0


def _run_admin_cli(database: Database) -> None:
    """Provide an interactive console that edits the state document directly."""

    print("ClassChat Administration Console")
    print("Stop the API before making changes here; both write the same document.")
    print("Press Ctrl+C at any time to exit.\n")

    try:
        while True:
            print("Select an option:")
            print("  1) List all users")
            print("  2) List classes")
            print("  3) Create a class")
            print("  4) Change a user's role")
            print("  5) Exit")

            choice = input("Enter choice [1-5]: ").strip()

            if choice == "1":
                _list_users(database)
            elif choice == "2":
                _list_classes(database)
            elif choice == "3":
                _create_class(database)
            elif choice == "4":
                _change_role(database)
            elif choice == "5":
                print("Goodbye!")
                return
            else:
                print("Invalid selection. Please choose a number from the menu.\n")

            print()
    except KeyboardInterrupt:
        print("\nExiting administration console.")


def _list_users(database: Database) -> None:
    rows = accounts.admin_user_rows(database.load())
    if not rows:
        print("No users are currently registered.")
        return

    print(f"{len(rows)} user(s) found:")
    print(f"{'ID':>7}  {'Username':<20}  {'Name':<24}  {'Role':<5}  Messages")
    print("-" * 80)
    for row in rows:
        print(f"{row['id']:>7}  {row['username']:<20}  {row['name']:<24}  {row['role']:<5}  {row['messages']}")


def _list_classes(database: Database) -> None:
    items = database.load()["classes"]
    if not items:
        print("No classes exist yet.")
        return

    for item in items:
        state = "enabled" if item.get("enabled") else "disabled"
        print(f"- {item.get('name')} (code {item.get('code')}, {state}) id={item.get('id')}")


def _create_class(database: Database) -> None:
    name = input("Class name: ").strip()
    code = input("Five digit code: ").strip()
    document = database.load()
    try:
        item = accounts.create_class(document, name, code)
    except DomainError as exc:
        print(f"Failed to create class: {exc.message}")
        return
    database.save(document)
    print(f"Created class {item['name']} with code {item['code']}.")


def _change_role(database: Database) -> None:
    user_id = input("User id: ").strip()
    role = input("Role (USER or DEV): ").strip().upper()
    document = database.load()
    try:
        accounts.set_user_role(document, user_id, role)
    except DomainError as exc:
        print(f"Failed to update role: {exc.message}")
        return
    database.save(document)
    print(f"User {user_id} is now {role}.")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    args = _parse_args(argv)
    settings = load_settings(Path(args.config) if args.config else None)

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port)
        return 0

    database = _open_database(settings)
    if args.command == "set-admin-password":
        return _set_admin_password(database, args.password)
    if args.command == "admin":
        _run_admin_cli(database)
    elif args.command == "init-store":
        print("State document initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
