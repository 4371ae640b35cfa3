"""Fulfillment service management CLI.

Usage:
    python src/manage.py setup-db                         # Create all tables
    python src/manage.py drop-db                          # Drop all tables
    python src/manage.py expire-sessions --older-than 240 # Cancel stale packing sessions
"""

import argparse
import sys


def setup_database():
    from fulfillment.domain import fulfillment
    from fulfillment.utils.db import setup_db

    print("Initializing fulfillment domain...")
    fulfillment.init()
    print("Creating fulfillment database schema...")
    setup_db(fulfillment)
    print("Done.")


def drop_database():
    from fulfillment.domain import fulfillment
    from fulfillment.utils.db import drop_db

    print("Initializing fulfillment domain...")
    fulfillment.init()
    print("Dropping fulfillment database schema...")
    drop_db(fulfillment)
    print("Done.")


def expire_sessions(older_than_minutes=None) -> int:
    """Cancel stale packing sessions. Returns a process exit code."""
    from fulfillment.domain import fulfillment
    from fulfillment.utils.logging import configure_logging
    from fulfillment.workflow import get_workflow

    configure_logging()
    fulfillment.init()
    with fulfillment.domain_context():
        result = get_workflow().expire_stale_sessions(older_than_minutes)

    if not result.ok:
        print(f"Failed: {result.error.code.value}: {result.error.message}", file=sys.stderr)
        return 1

    report = result.value
    print(f"Expired {len(report.expired)} packing session(s).")
    for session_id in report.expired:
        print(f"  {session_id}")

    if report.failed:
        print(f"Could not expire {len(report.failed)} packing session(s):", file=sys.stderr)
        for failure in report.failed:
            marker = " [PARTIAL FAILURE]" if failure.partial_failure else ""
            print(f"  {failure.session_id} (order {failure.order_id}){marker}: {failure.error}", file=sys.stderr)
        return 1
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description="Fulfillment service management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    expire_parser = subparsers.add_parser("expire-sessions", help="Cancel stale in-progress packing sessions")
    expire_parser.add_argument(
        "--older-than",
        dest="older_than",
        type=int,
        default=None,
        metavar="MINUTES",
        help="Age threshold in minutes (default: PACKING_SESSION_TTL_MINUTES)",
    )

    args = parser.parse_args(argv)

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "expire-sessions":
        sys.exit(expire_sessions(args.older_than))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
