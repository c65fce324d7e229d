"""Orderflow management CLI.

Provides commands to create and drop the database schema and to run the
periodic maintenance sweeps. The sweeps are meant to be triggered by an
external scheduler (cron, K8s CronJob).

Usage:
    python src/manage.py setup-db              # Create all tables
    python src/manage.py drop-db               # Drop all tables
    python src/manage.py expire-reservations   # Release reservations past their TTL
    python src/manage.py reconcile-orders      # Cancel abandoned pending orders
"""

import argparse
import asyncio
import sys

from container import build_services
from inventory.stock.expiry import expire_stale_reservations
from shared.utils.logging import configure_logging


async def setup_database() -> None:
    """Create the schema for every context."""
    services = build_services()
    try:
        print(f"Creating database schema at {services.settings.database_url}...")
        await services.setup_db()
        print("Done.")
    finally:
        await services.close()


async def drop_database() -> None:
    services = build_services()
    try:
        print(f"Dropping database schema at {services.settings.database_url}...")
        await services.drop_db()
        print("Done.")
    finally:
        await services.close()


async def expire_reservations() -> int:
    services = build_services()
    try:
        released = await expire_stale_reservations(services.inventory)
        print(f"Released {released} stale reservation(s).")
        return released
    finally:
        await services.close()


async def reconcile_orders() -> int:
    services = build_services()
    try:
        cancelled = await services.reconciler.run()
        print(f"Cancelled {cancelled} abandoned order(s).")
        return cancelled
    finally:
        await services.close()


COMMANDS = {
    "setup-db": setup_database,
    "drop-db": drop_database,
    "expire-reservations": expire_reservations,
    "reconcile-orders": reconcile_orders,
}


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Orderflow management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("expire-reservations", help="Release stock held by expired reservations")
    subparsers.add_parser("reconcile-orders", help="Cancel pending orders abandoned before payment")

    args = parser.parse_args(argv)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)

    configure_logging(log_dir=None)
    asyncio.run(command())


if __name__ == "__main__":
    main()
