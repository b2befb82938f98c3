"""Unit tests for the migration runner."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest

from migrations.migrate import DEFAULT_MIGRATION_DIR, MigrationRunner


class _PostgresDouble:
    def __init__(self, applied=None, fail_on=None):
        self.applied = list(applied or [])
        self.fail_on = fail_on
        self.scripts = []
        self.conn = MagicMock()
        self.conn.execute = AsyncMock(side_effect=self._conn_execute)

    async def _conn_execute(self, sql, *args):
        if self.fail_on and self.fail_on in sql:
            raise RuntimeError("syntax error")
        if sql.startswith("INSERT INTO schema_migrations"):
            self.applied.append(args[0])

    async def execute_script(self, sql):
        self.scripts.append(sql)

    async def execute(self, query, *args):
        return [{"filename": name} for name in sorted(self.applied)]

    @asynccontextmanager
    async def transaction(self):
        yield self.conn


@pytest.fixture
def migration_dir(tmp_path):
    (tmp_path / "002_second.sql").write_text("CREATE INDEX second ON orders (order_uid);")
    (tmp_path / "001_first.sql").write_text("CREATE TABLE first (id INT);")
    return tmp_path


class TestMigrationRunner:

    @pytest.mark.asyncio
    async def test_applies_pending_files_in_order(self, migration_dir):
        postgres = _PostgresDouble()
        runner = MigrationRunner(postgres)

        applied = await runner.run_migrations(migration_dir)

        assert applied == ["001_first.sql", "002_second.sql"]
        assert postgres.applied == ["001_first.sql", "002_second.sql"]
        assert "schema_migrations" in postgres.scripts[0]

    @pytest.mark.asyncio
    async def test_skips_already_applied(self, migration_dir):
        postgres = _PostgresDouble(applied=["001_first.sql"])
        runner = MigrationRunner(postgres)

        applied = await runner.run_migrations(migration_dir)

        assert applied == ["002_second.sql"]

    @pytest.mark.asyncio
    async def test_failure_propagates_and_is_not_recorded(self, migration_dir):
        postgres = _PostgresDouble(fail_on="CREATE INDEX")
        runner = MigrationRunner(postgres)

        with pytest.raises(RuntimeError):
            await runner.run_migrations(migration_dir)

        assert postgres.applied == ["001_first.sql"]

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path):
        runner = MigrationRunner(_PostgresDouble())

        assert await runner.run_migrations(tmp_path / "absent") == []

    @pytest.mark.asyncio
    async def test_status_reports_pending(self, migration_dir):
        runner = MigrationRunner(_PostgresDouble(applied=["001_first.sql"]))

        status = await runner.check_status(migration_dir)

        assert status == {"applied": ["001_first.sql"], "pending": ["002_second.sql"]}

    def test_orders_table_migration_is_shipped(self):
        sql = (DEFAULT_MIGRATION_DIR / "001_create_orders.sql").read_text()

        assert "CREATE TABLE IF NOT EXISTS orders" in sql
        assert "created_at" in sql
