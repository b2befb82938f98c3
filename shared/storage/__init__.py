"""
Storage abstractions for the order services.

Provides async clients for:
- PostgreSQL (order store)
"""

from .postgres import PostgresClient, PostgresConfig

__all__ = [
    "PostgresClient",
    "PostgresConfig",
]
