"""Stock ledger management CLI.

Provides commands to create and drop the database schema, run the
reservation expiry sweep (meant for a cron job / K8s CronJob), and check a
product's audit trail against its stock.

Usage:
    python src/manage.py setup-db                 # Create all tables
    python src/manage.py drop-db                  # Drop all tables
    python src/manage.py expire-reservations      # Expire reservations due now
    python src/manage.py expire-reservations --as-of 2026-01-31T12:00:00+00:00
    python src/manage.py reconcile <product_id>   # Audit trail vs. current stock
"""

import argparse
import sys
from datetime import datetime

from inventory.utils.logging import add_context, clear_context, configure_logging


def _domain():
    from inventory.domain import inventory

    inventory.init()
    return inventory


def setup_database():
    from inventory.utils.db import setup_db

    domain = _domain()
    print("Creating inventory database schema...")
    prepared = setup_db(domain)
    print(f"  schema ready ({', '.join(prepared) or 'no relational providers configured'}).")


def drop_database():
    from inventory.utils.db import drop_db

    domain = _domain()
    print("Dropping inventory database schema...")
    dropped = drop_db(domain)
    print(f"  schema dropped ({', '.join(dropped) or 'no relational providers configured'}).")


def expire_reservations(as_of=None):
    from inventory.stock.expiry import expire_due_reservations

    domain = _domain()
    with domain.domain_context():
        expired = expire_due_reservations(as_of=as_of)
    print(f"Expired {expired} reservation(s).")
    return expired


def reconcile_product(product_id):
    from inventory.audit.queries import reconcile

    domain = _domain()
    with domain.domain_context():
        result = reconcile(product_id)
    print(
        f"{result.product_id}: initial {result.initial_physical_stock}"
        f" + audited {result.audited_change:+d}"
        f" vs current {result.current_physical_stock}"
        f" -> {'balanced' if result.balanced else 'MISMATCH'}"
    )
    return result.balanced


def _timestamp(value):
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 timestamp: {value}") from exc


def build_parser():
    parser = argparse.ArgumentParser(description="Stock ledger management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    expire_parser = subparsers.add_parser("expire-reservations", help="Expire reservations past their expiry")
    expire_parser.add_argument(
        "--as-of",
        type=_timestamp,
        default=None,
        help="Reference time (ISO-8601, default: now)",
    )

    reconcile_parser = subparsers.add_parser("reconcile", help="Check a product's audit trail against its stock")
    reconcile_parser.add_argument("product_id")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging()
    add_context(command=args.command)
    try:
        if args.command == "setup-db":
            setup_database()
        elif args.command == "drop-db":
            drop_database()
        elif args.command == "expire-reservations":
            expire_reservations(args.as_of)
        elif args.command == "reconcile":
            return 0 if reconcile_product(args.product_id) else 1
        return 0
    finally:
        clear_context()


if __name__ == "__main__":
    sys.exit(main())
