from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "db" / "migrations"


class ScriptExecutor(Protocol):
    async def execute_script(self, sql: str) -> None: ...


class MigrationError(Exception):
    """Raised when a migration file cannot be read or executed."""


def list_migrations(migrations_dir: Path | str | None = None) -> list[Path]:
    """Return ``*.sql`` files in lexical order; every file must be safe to re-run."""
    directory = Path(migrations_dir) if migrations_dir else DEFAULT_MIGRATIONS_DIR
    if not directory.is_dir():
        raise MigrationError(f"migrations directory not found: {directory}")
    return sorted(path for path in directory.iterdir() if path.suffix == ".sql" and path.is_file())


async def apply_migrations(executor: ScriptExecutor, migrations_dir: Path | str | None = None) -> list[str]:
    applied: list[str] = []
    for path in list_migrations(migrations_dir):
        logger.info("running migration file=%s", path.name)
        try:
            sql = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise MigrationError(f"failed to read migration file {path.name}") from exc
        try:
            await executor.execute_script(sql)
        except Exception as exc:
            raise MigrationError(f"failed to execute migration {path.name}: {exc}") from exc
        applied.append(path.name)
    logger.info("all migrations completed count=%s", len(applied))
    return applied
