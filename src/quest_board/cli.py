"""
Command-line interface for the Quest Board server.

Provides CLI commands for server management:
- init-db: Initialize the database schema
- run: Start the API server
- add-session: Add a Scheduled session to the session directory
- drain-outbox: Deliver pending notifications
- remind: Queue and deliver reminders for a session's confirmed players

Usage:
    quest-board init-db
    quest-board run [--host HOST] [--port PORT]
    quest-board add-session --capacity 5 [--tier tier2] [--title T] [--date D]
    quest-board drain-outbox [--limit N]
    quest-board remind SESSION_ID
"""

import argparse
import sys

from quest_board.logging_setup import configure_logging


def cmd_init_db(args: argparse.Namespace) -> int:
    """
    Initialize the database schema.

    Returns:
        0 on success, 1 on error
    """
    from quest_board.db.schema import init_database

    try:
        init_database()
        print("Database initialized successfully.")
        return 0
    except Exception as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    """Start the API server under uvicorn."""
    from quest_board.api.server import start_server
    from quest_board.config import print_config_summary

    print_config_summary()
    start_server(host=args.host, port=args.port)
    return 0


def cmd_add_session(args: argparse.Namespace) -> int:
    """Insert a Scheduled session and print its id."""
    from quest_board.db import sessions_repo
    from quest_board.db.connection import connection_scope
    from quest_board.db.errors import DatabaseError
    from quest_board.db.schema import init_database

    if args.capacity < 1:
        print("Capacity must be at least 1.", file=sys.stderr)
        return 1

    try:
        init_database()
        with connection_scope(write=True) as conn:
            session = sessions_repo.create_session(
                conn,
                capacity=args.capacity,
                level_tier=args.tier,
                signup_deadline=args.deadline,
                title=args.title,
                campaign=args.campaign,
                session_date=args.date,
                requires_approval=args.requires_approval,
                session_id=args.id,
            )
    except DatabaseError as e:
        print(f"Error adding session: {e}", file=sys.stderr)
        return 1

    print(f"Session {session.id} added ({session.capacity} seats, {session.level_tier}).")
    return 0


def cmd_drain_outbox(args: argparse.Namespace) -> int:
    """Deliver pending outbox notifications once."""
    from quest_board.db.errors import DatabaseError
    from quest_board.notifications.dispatcher import NotificationDispatcher
    from quest_board.notifications.transport import build_transport

    try:
        report = NotificationDispatcher(build_transport()).drain(args.limit)
    except DatabaseError as e:
        print(f"Error draining outbox: {e}", file=sys.stderr)
        return 1

    print(f"Sent {report.sent}, failed {report.failed}, skipped {report.skipped}.")
    return 0


def cmd_remind(args: argparse.Namespace) -> int:
    """Queue reminders for a session and deliver them."""
    from quest_board.core.errors import RegistrationError
    from quest_board.db.errors import DatabaseError
    from quest_board.services.registration_service import RegistrationService

    service = RegistrationService.from_config()
    try:
        queued = service.send_reminders(args.session_id, actor=args.actor)
        report = service.drain_notifications()
    except RegistrationError as e:
        print(f"Cannot send reminders: {e.message}", file=sys.stderr)
        return 1
    except DatabaseError as e:
        print(f"Error sending reminders: {e}", file=sys.stderr)
        return 1

    print(f"Queued {queued} reminders; sent {report.sent}, failed {report.failed}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quest-board",
        description="Quest Board - tabletop session sign-ups, capacity and waitlists",
    )
    parser.add_argument("--log-level", help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser(
        "init-db",
        help="Initialize the database schema",
        description="Create the tables, indexes and invariant triggers if missing.",
    )
    init_parser.set_defaults(func=cmd_init_db)

    run_parser = subparsers.add_parser("run", help="Run the API server")
    run_parser.add_argument(
        "--port", "-p", type=int, help="API server port (default: 8000, or QB_PORT env var)"
    )
    run_parser.add_argument(
        "--host", type=str, help="Host to bind to (default: 0.0.0.0, or QB_HOST env var)"
    )
    run_parser.set_defaults(func=cmd_run)

    session_parser = subparsers.add_parser(
        "add-session",
        help="Add a scheduled session",
        description="Add a Scheduled session to the session directory (development seeding).",
    )
    session_parser.add_argument("--capacity", type=int, required=True, help="Number of seats")
    session_parser.add_argument(
        "--tier",
        default="any",
        choices=["any", "tier1", "tier2", "tier3", "tier4"],
        help="Level tier (default: any)",
    )
    session_parser.add_argument("--title", default="", help="Session title")
    session_parser.add_argument("--campaign", default="", help="Campaign name")
    session_parser.add_argument("--date", default=None, help="Session date (YYYY-MM-DD)")
    session_parser.add_argument(
        "--deadline", default=None, help="Sign-up deadline (ISO-8601; naive means UTC)"
    )
    session_parser.add_argument(
        "--requires-approval",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Override the configured approval gate for this session",
    )
    session_parser.add_argument("--id", default=None, help="Explicit session id")
    session_parser.set_defaults(func=cmd_add_session)

    drain_parser = subparsers.add_parser(
        "drain-outbox", help="Deliver pending notifications from the outbox"
    )
    drain_parser.add_argument("--limit", type=int, default=100, help="Maximum rows to deliver")
    drain_parser.set_defaults(func=cmd_drain_outbox)

    remind_parser = subparsers.add_parser(
        "remind", help="Send reminders to a session's confirmed players"
    )
    remind_parser.add_argument("session_id", help="Session to remind")
    remind_parser.add_argument("--actor", default="cli", help="Actor recorded in the audit log")
    remind_parser.set_defaults(func=cmd_remind)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(level=args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
