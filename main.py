"""Command-line interface for the accounts and notification services."""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Callable, Optional, Sequence

from accounts.config import Settings, load_settings
from accounts.database import Database
from accounts.errors import InvalidInput, NotFound, StorageError
from accounts.events import build_publisher
from accounts.models import User
from accounts.users import UserService

logger = logging.getLogger("accounts.main")

InputFunc = Callable[[str], str]


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Accounts service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML configuration file (default: ACCOUNTS_CONFIG or config/accounts.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the accounts database schema")

    serve_parser = subparsers.add_parser("serve", help="Start the user HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=8080, help="Port for the API (default: 8080)")

    notify_parser = subparsers.add_parser(
        "serve-notifications", help="Start the notification HTTP API and event consumer"
    )
    notify_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    notify_parser.add_argument("--port", type=int, default=8081, help="Port for the API (default: 8081)")
    notify_parser.add_argument(
        "--no-consumer",
        action="store_true",
        help="Serve the HTTP trigger only, without consuming the user events topic",
    )

    subparsers.add_parser("consume", help="Consume user events and send notification emails")
    subparsers.add_parser("console", help="Launch the interactive user management console")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "serve-notifications", "consume", "console", "init-db"}

    global_args: list[str] = []
    if args_list[:1] == ["--config"] and len(args_list) >= 2:
        global_args, args_list = args_list[:2], args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*global_args, *args_list])
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args([*global_args, *args_list])
            args_list = ["serve", *args_list]

    return parser.parse_args([*global_args, *args_list])


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.open()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(settings: Settings, *, host: str, port: int) -> None:
    from accounts.application import create_user_application
    import uvicorn

    logger.info("Starting user API on http://%s:%s", host, port)
    app = create_user_application(settings=settings)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _serve_notifications(settings: Settings, *, host: str, port: int, consume: bool) -> None:
    from accounts.application import create_notification_application
    import uvicorn

    logger.info("Starting notification API on http://%s:%s", host, port)
    app = create_notification_application(settings=settings, consume=None if consume else False)
    uvicorn.run(app, host=host, port=port, log_level="info")


async def _consume(settings: Settings) -> None:
    from accounts.consumer import KafkaEventSource, UserEventConsumer
    from accounts.notifications import Notifier, SMTPTransport

    notifier = Notifier(SMTPTransport(settings.mail), sender=settings.mail.sender)
    source = KafkaEventSource(UserEventConsumer(notifier), settings.kafka)
    await source.run()


def _print_user(user: User) -> None:
    created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z") if user.created_at else "-"
    print(f"ID: {user.id}")
    print(f"Name: {user.name}")
    print(f"Email: {user.email}")
    print(f"Age: {user.age}")
    print(f"Created: {created}")


def _prompt_id(prompt: InputFunc, message: str) -> Optional[int]:
    raw = prompt(message).strip()
    try:
        return int(raw)
    except ValueError:
        print("Invalid ID format!")
        return None


def _parse_age(raw: str) -> Optional[int]:
    try:
        return int(raw)
    except ValueError:
        print("Invalid age format!")
        return None


def _create_user(service: UserService, prompt: InputFunc) -> None:
    print("\n--- Create a new user ---")
    name = prompt("Name: ").strip()
    email = prompt("Email: ").strip()
    age = _parse_age(prompt("Age: ").strip())
    if age is None:
        return

    user = service.create_user(name, email, age)
    print(f"User created successfully with ID: {user.id}")


def _read_user(service: UserService, prompt: InputFunc) -> None:
    print("\n--- Find user by ID ---")
    user_id = _prompt_id(prompt, "User ID: ")
    if user_id is None:
        return
    print()
    _print_user(service.get_user_by_id(user_id))


def _list_users(service: UserService) -> None:
    print("\n--- All users ---")
    users = service.get_all_users()
    if not users:
        print("No users found.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Email':<32}  {'Age':>3}  Created")
    print("-" * 90)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z") if user.created_at else "-"
        print(f"{user.id:>4}  {user.name:<24}  {user.email:<32}  {user.age:>3}  {created}")


def _update_user(service: UserService, prompt: InputFunc) -> None:
    print("\n--- Update user ---")
    user_id = _prompt_id(prompt, "User ID to update: ")
    if user_id is None:
        return

    current = service.get_user_by_id(user_id)
    print("\nCurrent details:")
    _print_user(current)

    name = prompt("\nNew name (Enter keeps the current value): ").strip()
    email = prompt("New email (Enter keeps the current value): ").strip()
    raw_age = prompt("New age (Enter keeps the current value): ").strip()
    age: Optional[int] = None
    if raw_age:
        age = _parse_age(raw_age)
        if age is None:
            return

    service.update_user(user_id, name=name or None, email=email or None, age=age)
    print("User updated successfully!")


def _delete_user(service: UserService, prompt: InputFunc) -> None:
    print("\n--- Delete user ---")
    user_id = _prompt_id(prompt, "User ID to delete: ")
    if user_id is None:
        return

    user = service.get_user_by_id(user_id)
    print("\nAbout to delete:")
    _print_user(user)
    confirmation = prompt("\nConfirm deletion (yes/no): ").strip().lower()
    if confirmation not in {"yes", "y"}:
        print("Deletion cancelled.")
        return

    service.delete_user(user_id)
    print("User deleted successfully!")


def _run_console(service: UserService, prompt: InputFunc = input) -> None:
    """Provide an interactive CRUD console backed by the user service."""

    print("Accounts User Console")
    print("Press Ctrl+C at any time to exit.\n")

    try:
        while True:
            print("Select an option:")
            print("  1) Create user")
            print("  2) Find user by ID")
            print("  3) List all users")
            print("  4) Update user")
            print("  5) Delete user")
            print("  6) Exit")

            choice = prompt("Enter choice [1-6]: ").strip()

            try:
                if choice == "1":
                    _create_user(service, prompt)
                elif choice == "2":
                    _read_user(service, prompt)
                elif choice == "3":
                    _list_users(service)
                elif choice == "4":
                    _update_user(service, prompt)
                elif choice == "5":
                    _delete_user(service, prompt)
                elif choice == "6":
                    print("Goodbye!")
                    return
                else:
                    print("Invalid selection. Please choose a number from the menu.")
            except (InvalidInput, NotFound) as exc:
                print(f"Error: {exc}")
            except StorageError as exc:
                logger.error("Console operation failed: %s", exc)
                print(f"Storage error: {exc}")

            print()
    except (KeyboardInterrupt, EOFError):
        print("\nExiting console.")


def _console(settings: Settings, database: Database) -> None:
    publisher = build_publisher(settings)
    if publisher is not None:
        try:
            publisher.start()
        except Exception:
            logger.exception("Failed to start event publisher; continuing without events")
            publisher = None
    try:
        _run_console(UserService(database, publisher))
    finally:
        if publisher is not None:
            publisher.stop()


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    args = _parse_args(argv)
    settings = load_settings(Path(args.config) if args.config else None)

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port)
    elif args.command == "serve-notifications":
        _serve_notifications(settings, host=args.host, port=args.port, consume=not args.no_consumer)
    elif args.command == "consume":
        asyncio.run(_consume(settings))
    elif args.command == "console":
        database = _initialise_database(settings)
        try:
            _console(settings, database)
        finally:
            database.close()
    elif args.command == "init-db":
        _initialise_database(settings).close()
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
