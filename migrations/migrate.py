#!/usr/bin/env python3
"""
Database migration runner for the order services.

Applies ``migrations/postgres/*.sql`` in file-name order, each inside its
own transaction, and records applied files in ``schema_migrations``.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List

import structlog

from shared.framework.config import DatabaseConfig
from shared.storage.postgres import PostgresClient, PostgresConfig
from shared.utils.logging import setup_logging


logger = structlog.get_logger()


DEFAULT_MIGRATION_DIR = Path(__file__).resolve().parent / "postgres"

CREATE_MIGRATIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    filename   TEXT PRIMARY KEY,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""


class MigrationRunner:
    """Database migration runner."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres
        self.logger = structlog.get_logger("migration-runner")

    async def applied_migrations(self) -> List[str]:
        rows = await self.postgres.execute("SELECT filename FROM schema_migrations ORDER BY filename")
        return [row["filename"] for row in rows]

    async def run_migrations(self, migration_dir: Path = DEFAULT_MIGRATION_DIR) -> List[str]:
        """Apply pending migrations; returns the names of the files applied."""
        if not migration_dir.exists():
            self.logger.error("Migration directory not found", path=str(migration_dir))
            return []

        migration_files = sorted(migration_dir.glob("*.sql"))
        if not migration_files:
            self.logger.warning("No migration files found", path=str(migration_dir))
            return []

        await self.postgres.execute_script(CREATE_MIGRATIONS_TABLE_SQL)
        already_applied = set(await self.applied_migrations())
        pending = [path for path in migration_files if path.name not in already_applied]

        self.logger.info(
            "Starting migrations",
            total=len(migration_files),
            pending=len(pending)
        )

        for migration_file in pending:
            await self._run_migration(migration_file)

        self.logger.info("All migrations completed successfully", applied=len(pending))
        return [path.name for path in pending]

    async def _run_migration(self, migration_file: Path) -> None:
        """Run a single migration file."""
        self.logger.info("Running migration", file=migration_file.name)

        migration_sql = migration_file.read_text(encoding="utf-8")
        try:
            async with self.postgres.transaction() as conn:
                await conn.execute(migration_sql)
                await conn.execute(
                    "INSERT INTO schema_migrations (filename) VALUES ($1)",
                    migration_file.name
                )
        except Exception as e:
            self.logger.error(
                "Migration failed",
                file=migration_file.name,
                error=str(e),
                exc_info=True
            )
            raise

        self.logger.info("Migration completed", file=migration_file.name)

    async def check_status(self, migration_dir: Path = DEFAULT_MIGRATION_DIR) -> Dict[str, Any]:
        """Report applied and pending migrations."""
        await self.postgres.execute_script(CREATE_MIGRATIONS_TABLE_SQL)
        applied = await self.applied_migrations()
        available = sorted(path.name for path in migration_dir.glob("*.sql"))
        return {
            "applied": applied,
            "pending": [name for name in available if name not in applied],
        }


async def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Database migration runner")
    parser.add_argument("--dsn", help="PostgreSQL DSN (defaults to ORDERS_POSTGRES_DSN)")
    parser.add_argument("--migration-dir", type=Path, default=DEFAULT_MIGRATION_DIR, help="Migration directory")
    parser.add_argument("--status", action="store_true", help="Check migration status")

    args = parser.parse_args()

    setup_logging("migrations", format_type="console")

    database = DatabaseConfig()
    postgres = PostgresClient(
        PostgresConfig(
            dsn=args.dsn or database.postgres_dsn,
            min_size=1,
            max_size=2,
            timeout=database.command_timeout
        )
    )
    runner = MigrationRunner(postgres)

    try:
        if args.status:
            status = await runner.check_status(args.migration_dir)
            logger.info("Migration status", **status)
        else:
            await runner.run_migrations(args.migration_dir)
    except Exception as e:
        logger.error("Migration run failed", error=str(e))
        return 1
    finally:
        await postgres.disconnect()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
