#!/usr/bin/env python3
"""
pgtest demo - start a disposable PostgreSQL container and query it.

Usage:
  python scripts/pgtest_demo.py                  # postgres:15
  python scripts/pgtest_demo.py --version 16     # another tag
  python scripts/pgtest_demo.py --keep 30        # keep it running for 30s

Requires a reachable docker daemon and the ``asyncpg`` driver.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import asyncpg
from rich.console import Console
from rich.table import Table
from rich import box

import pgtest
from pgtest.utils.logging import get_logger, setup_logging

console = Console()
logger = get_logger("pgtest.demo")


def print_handle(container: pgtest.ProvisionedContainer) -> None:
    table = Table(title="PostgreSQL container", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Container", container.short_id)
    table.add_row("Host", f"{container.host}:{container.port}")
    table.add_row("Database", container.database)
    table.add_row("User", container.username)
    table.add_row("URI", container.connection_uri)
    console.print(table)


async def run(args) -> int:
    try:
        container = await pgtest.start(
            args.version,
            database=args.database,
            sslmode="disable",
            debug=args.debug,
        )
    except pgtest.PgTestException as e:
        logger.error("Container did not start", **e.to_dict())
        console.print(f"[red]Error:[/red] {e.message}")
        return 1

    async with container:
        print_handle(container)

        conn = await asyncpg.connect(**container.connection_kwargs())
        try:
            now = await conn.fetchval("SELECT NOW()")
            version = await conn.fetchval("SHOW server_version")
        finally:
            await conn.close()

        console.print(f"[green]Connected.[/green] server_version={version} now={now}")
        logger.info("Query succeeded", container_id=container.short_id, server_version=version)

        if args.keep:
            console.print(f"Keeping container for {args.keep}s (Ctrl+C removes it)")
            await asyncio.sleep(args.keep)

    console.print("Container removed.")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Start a disposable PostgreSQL container")
    parser.add_argument("--version", default="15", help="postgres image tag (default: 15)")
    parser.add_argument("--database", default=None, help="database name")
    parser.add_argument("--keep", type=float, default=0, help="seconds to keep it running")
    parser.add_argument("--debug", action="store_true", help="log docker progress")
    args = parser.parse_args()

    setup_logging(level="DEBUG" if args.debug else None)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
