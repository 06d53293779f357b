"""CLI entry point for the calendar client."""

import argparse
import asyncio
import getpass
import sys
from datetime import datetime, timedelta

from .client import CalendarClient
from .config import AppConfig, load_config
from .utils.date_utils import get_event_window, to_local_time
from .utils.exceptions import CalendarClientError, ConfigurationError
from .utils.logging import setup_logging


def _print_relogin_hint(path: str) -> None:
    print(f"Session ended. Run 'calendar-client login' to sign in again ({path}).")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Calendar Client - work with calendars and contacts on a CalDAV/CardDAV server"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    commands = parser.add_subparsers(dest="command")

    login = commands.add_parser("login", help="Sign in and remember the session")
    login.add_argument("--email", required=True, help="Account email")

    commands.add_parser("logout", help="Sign out and forget the session")
    commands.add_parser("whoami", help="Show the signed-in user")
    commands.add_parser("calendars", help="List calendars")

    events = commands.add_parser("events", help="List events across calendars")
    events.add_argument("--start-date", help="Start date (YYYY-MM-DD)")
    events.add_argument("--end-date", help="End date (YYYY-MM-DD, inclusive)")
    events.add_argument("--lookback", type=int, default=None, help="Days to look back")
    events.add_argument("--lookahead", type=int, default=None, help="Days to look ahead")

    contacts = commands.add_parser("contacts", help="List contacts")
    contacts.add_argument("--search", default="", help="Search query")
    return parser


def _resolve_window(args, config: AppConfig) -> tuple[datetime, datetime]:
    if args.start_date or args.end_date:
        if args.start_date:
            start = datetime.strptime(args.start_date, "%Y-%m-%d")
        else:
            start = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
        if args.end_date:
            end = datetime.strptime(args.end_date, "%Y-%m-%d") + timedelta(days=1)
        else:
            end = start + timedelta(days=7)
        return to_local_time(start, config.timezone), to_local_time(end, config.timezone)

    lookback = args.lookback if args.lookback is not None else config.sync_lookback_days
    lookahead = args.lookahead if args.lookahead is not None else config.sync_lookahead_days
    return get_event_window(lookback, lookahead, config.timezone)


async def _run(args, config: AppConfig, logger) -> int:
    async with CalendarClient(
        config,
        navigator=_print_relogin_hint,
        on_warning=lambda message: print(f"Warning: {message}"),
    ) as client:
        if args.command == "login":
            password = getpass.getpass("Password: ")
            session = await client.login(args.email, password)
            name = (session.user.display_name or session.user.email) if session.user else args.email
            print(f"Logged in as {name}")
            return 0

        session = await client.initialize()

        if args.command == "logout":
            await client.logout()
            return 0

        if not session.is_authenticated:
            print("Not logged in. Run 'calendar-client login --email you@example.com'.")
            return 1

        if args.command == "whoami":
            user = await client.current_user()
            print(f"{user.display_name or user.email} <{user.email}>")
            if user.is_admin:
                print("  Administrator")
            return 0

        if args.command == "calendars":
            calendars = await client.events.fetch_calendars()
            print(f"Found {len(calendars)} calendar(s):")
            for cal in calendars:
                shared = f" (shared by {cal.owner.display_name})" if cal.shared and cal.owner else ""
                print(f"  - {cal.name} (ID: {cal.id}){shared}")
            return 0

        if args.command == "events":
            start, end = _resolve_window(args, config)
            result = await client.events.load_all(start, end)
            names = {c.id: c.name for c in client.events.calendars}
            print(f"Found {len(result.events)} event(s) from {start.date()} to {end.date()}:")
            for event in sorted(result.events, key=lambda e: e.start):
                when = "all day" if event.all_day else f"{event.start:%Y-%m-%d %H:%M} - {event.end:%H:%M}"
                repeat = " (recurring)" if event.is_recurring else ""
                print(f"  - {event.summary}{repeat}")
                print(f"    When: {when}  Calendar: {names.get(event.calendar_id, event.calendar_id)}")
            return 0 if result.complete else 2

        if args.command == "contacts":
            await client.contacts.fetch_address_books()
            if args.search:
                await client.contacts.search_contacts(args.search)
            else:
                await client.contacts.fetch_contacts()
            for letter, group in client.contacts.grouped_contacts().items():
                print(letter)
                for contact in group:
                    email = f" <{contact.primary_email}>" if contact.primary_email else ""
                    print(f"  {contact.formatted_name}{email}")
            return 0

    logger.error(f"Unknown command: {args.command}")
    return 1


def main() -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return 0

    try:
        config = load_config()
    except ConfigurationError as e:
        setup_logging(level="DEBUG" if args.verbose else "INFO").error(str(e))
        return 1

    log_level = "DEBUG" if args.verbose else config.log_level
    logger = setup_logging(level=log_level, log_file=config.log_file)

    try:
        return asyncio.run(_run(args, config, logger))
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        return 1
    except CalendarClientError as e:
        logger.error(f"Calendar client error: {e}")
        return 1
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
