#!/usr/bin/env python3
"""Apply the SQL migrations shipped in app/db/migrations to a Postgres database."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

from app.services.migrations import MigrationError, apply_migrations, list_migrations
from app.services.repository import PostgresRepository


def render_plan(migrations_dir: str | None) -> str:
    lines = ["-- migration plan (applied in this order)"]
    lines.extend(f"-- {path.name}" for path in list_migrations(migrations_dir))
    return "\n".join(lines)


async def _apply(database_url: str, migrations_dir: str | None) -> list[str]:
    repository = PostgresRepository(database_url=database_url, min_pool_size=1, max_pool_size=1)
    try:
        return await apply_migrations(repository, migrations_dir)
    finally:
        await repository.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Apply verification gateway SQL migrations.")
    parser.add_argument(
        "--database-url",
        default=os.getenv("SG_DATABASE_URL") or os.getenv("DATABASE_URL"),
        help="Postgres DSN (defaults to SG_DATABASE_URL or DATABASE_URL)",
    )
    parser.add_argument("--migrations-dir", default=None, help="Directory holding *.sql files")
    parser.add_argument("--dry-run", action="store_true", help="Print the plan without connecting")
    args = parser.parse_args()

    try:
        if args.dry_run:
            print(render_plan(args.migrations_dir))
            return 0

        if not args.database_url:
            print("a database URL is required (--database-url or SG_DATABASE_URL)", file=sys.stderr)
            return 2

        applied = asyncio.run(_apply(args.database_url, args.migrations_dir))
    except MigrationError as exc:
        print(f"migration failed: {exc}", file=sys.stderr)
        return 1

    for name in applied:
        print(f"applied {name}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
