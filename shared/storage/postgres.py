"""
PostgreSQL async client wrapper for order storage.

Provides high-level interface for PostgreSQL operations
with connection pooling and transactional scopes.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional
from dataclasses import dataclass
import structlog

import asyncpg


@dataclass
class PostgresConfig:
    """PostgreSQL configuration."""
    dsn: str
    min_size: int = 1
    max_size: int = 10
    timeout: int = 30


class PostgresClient:
    """
    Async PostgreSQL client with connection pooling.

    Queries log and re-raise driver errors; callers decide how to
    classify them.
    """

    def __init__(self, config: PostgresConfig):
        self.config = config
        self.logger = structlog.get_logger("postgres-client")
        self._pool: Optional[asyncpg.Pool] = None
        self.is_connected: bool = False

    async def connect(self) -> None:
        """Connect to PostgreSQL."""
        if self._pool:
            self.is_connected = True
            return

        self._pool = await asyncpg.create_pool(
            self.config.dsn,
            min_size=self.config.min_size,
            max_size=self.config.max_size,
            command_timeout=self.config.timeout
        )

        self.is_connected = True
        self.logger.info("Connected to PostgreSQL")

    async def disconnect(self) -> None:
        """Disconnect from PostgreSQL."""
        if self._pool:
            await self._pool.close()
            self._pool = None

        self.is_connected = False
        self.logger.info("Disconnected from PostgreSQL")

    async def execute(self, query: str, *args: Any) -> List[Dict[str, Any]]:
        """Execute a SELECT query and return list of rows."""
        if not self._pool:
            await self.connect()

        async with self._pool.acquire() as conn:
            try:
                rows = await conn.fetch(query, *args)
                return [dict(row) for row in rows]
            except Exception as e:
                self.logger.error("PostgreSQL query error", error=str(e), query=query)
                raise

    async def execute_one(self, query: str, *args: Any) -> Optional[Dict[str, Any]]:
        """Execute a SELECT query returning a single row."""
        if not self._pool:
            await self.connect()

        async with self._pool.acquire() as conn:
            try:
                row = await conn.fetchrow(query, *args)
                return dict(row) if row else None
            except Exception as e:
                self.logger.error("PostgreSQL query error", error=str(e), query=query)
                raise

    async def execute_scalar(self, query: str, *args: Any) -> Any:
        """Execute a SELECT query returning a scalar value."""
        if not self._pool:
            await self.connect()

        async with self._pool.acquire() as conn:
            try:
                return await conn.fetchval(query, *args)
            except Exception as e:
                self.logger.error("PostgreSQL query error", error=str(e), query=query)
                raise

    async def execute_script(self, sql: str) -> None:
        """Execute one or more statements without parameters."""
        if not self._pool:
            await self.connect()

        async with self._pool.acquire() as conn:
            await conn.execute(sql)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """
        Acquire a connection and open a transaction on it.

        The transaction commits when the block exits normally and rolls
        back when it raises.
        """
        if not self._pool:
            await self.connect()

        async with self._pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> bool:
        """Check PostgreSQL health."""
        try:
            result = await self.execute_scalar("SELECT 1")
            return result == 1
        except Exception as e:
            self.logger.error("PostgreSQL health check failed", error=str(e))
            return False

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
