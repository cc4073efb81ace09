#!/usr/bin/env python3
"""People and notification management CLI for a door dialer location.

Usage:
    python scripts/manage_people.py list
    python scripts/manage_people.py add-person <name> <phone> [--no-notify]
    python scripts/manage_people.py remove-person <phone>
    python scripts/manage_people.py add-notify <phone>
    python scripts/manage_people.py remove-notify <phone>
    python scripts/manage_people.py set-access-number <phone>
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add src directory to path so we can import door_dialer without installing it
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from door_dialer.config import ConfigError, ConfigManager  # noqa: E402
from door_dialer.store import LocationSettings, Person, StoreError  # noqa: E402
from door_dialer.store.mongo_store import (  # noqa: E402
    DEFAULT_DATABASE,
    MongoAuthorizationStore,
)


def list_settings(settings: LocationSettings) -> None:
    """Print the people and notify numbers for a location.

    Args:
        settings: Settings to print
    """
    print(f"\nLocation: {settings.location_id}")
    print(f"Access number: {settings.access_number or '(not set)'}\n")

    if not settings.allowed_people:
        print("No people allowed")
    else:
        print(f"{'Name':<24} {'Phone':<16} {'Admin summaries'}")
        print("-" * 60)
        for person in settings.allowed_people:
            summaries = "no" if person.no_notify else "yes"
            print(f"{person.name:<24} {person.phone:<16} {summaries}")

    print(f"\nNotify numbers: {', '.join(settings.notify_numbers) or '(none)'}")


def add_person(settings: LocationSettings, name: str, phone: str, no_notify: bool) -> None:
    """Allow a person to request access.

    Args:
        settings: Settings to modify
        name: Display name
        phone: Phone number in E.164 form
        no_notify: Leave this person out of admin summaries
    """
    if settings.find_person(phone) is not None:
        print(f"Error: {phone} is already allowed")
        sys.exit(1)

    settings.allowed_people.append(Person(name=name, phone=phone, no_notify=no_notify))
    print(f"✓ {name} ({phone}) can now request access")


def remove_person(settings: LocationSettings, phone: str) -> None:
    """Stop a person from requesting access.

    Args:
        settings: Settings to modify
        phone: Phone number of the person to remove
    """
    person = settings.find_person(phone)
    if person is None:
        print(f"Error: {phone} is not allowed")
        sys.exit(1)

    confirm = input(f"Remove {person.name} ({phone})? (yes/no): ")
    if confirm.lower() not in ("yes", "y"):
        print("Cancelled")
        sys.exit(0)

    settings.allowed_people.remove(person)
    print(f"✓ {person.name} removed")


def add_notify(settings: LocationSettings, phone: str) -> None:
    """Send admin summaries to a number."""
    if phone in settings.notify_numbers:
        print(f"Error: {phone} is already notified")
        sys.exit(1)
    settings.notify_numbers.append(phone)
    print(f"✓ {phone} will receive admin summaries")


def remove_notify(settings: LocationSettings, phone: str) -> None:
    """Stop sending admin summaries to a number."""
    if phone not in settings.notify_numbers:
        print(f"Error: {phone} is not notified")
        sys.exit(1)
    settings.notify_numbers.remove(phone)
    print(f"✓ {phone} will no longer receive admin summaries")


def set_access_number(settings: LocationSettings, phone: str) -> None:
    """Set the number people are told to dial at the entrance."""
    settings.access_number = phone
    print(f"✓ Access number set to {phone}")


async def run(args: argparse.Namespace, config: ConfigManager) -> None:
    """Load the location's settings, apply the command and save them back."""
    location_id = config.get_location_id()
    store_config = config.get_store_config()
    store = MongoAuthorizationStore(
        url=store_config["url"],
        database=store_config.get("database", DEFAULT_DATABASE),
    )

    try:
        settings = await store.find_settings(location_id)
        if settings is None:
            settings = LocationSettings(location_id=location_id)

        if args.command == "list":
            list_settings(settings)
            return

        if args.command == "add-person":
            add_person(settings, args.name, args.phone, args.no_notify)
        elif args.command == "remove-person":
            remove_person(settings, args.phone)
        elif args.command == "add-notify":
            add_notify(settings, args.phone)
        elif args.command == "remove-notify":
            remove_notify(settings, args.phone)
        elif args.command == "set-access-number":
            set_access_number(settings, args.phone)

        await store.save_settings(settings)
    finally:
        await store.close()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Manage who can use a door dialer location")
    parser.add_argument(
        "--config",
        default="config.yml",
        help="Path to configuration file (default: config.yml)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="Show allowed people and notify numbers")

    add_parser = subparsers.add_parser("add-person", help="Allow a person to request access")
    add_parser.add_argument("name", help="Display name")
    add_parser.add_argument("phone", help="Phone number, e.g. +15551234567")
    add_parser.add_argument(
        "--no-notify",
        action="store_true",
        help="Leave this person out of admin summaries",
    )

    for command, help_text in (
        ("remove-person", "Stop a person from requesting access"),
        ("add-notify", "Send admin summaries to a number"),
        ("remove-notify", "Stop sending admin summaries to a number"),
        ("set-access-number", "Set the number to dial at the entrance"),
    ):
        command_parser = subparsers.add_parser(command, help=help_text)
        command_parser.add_argument("phone", help="Phone number, e.g. +15551234567")

    args = parser.parse_args()

    try:
        config = ConfigManager(user_config_path=args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if not config.get("store.url"):
        print("Error: store.url is not configured")
        sys.exit(1)

    try:
        asyncio.run(run(args, config))
    except StoreError as e:
        print(f"Error talking to the store: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
