"""Database connection management for SafeHarbor services.

Provides connection pooling, health checks, and the append-only
repository base class for PostgreSQL.
"""

from .connection import (
    DatabaseConfig,
    ConnectionManager,
    get_connection_manager,
)
from .repository import (
    AppendOnlyRepository,
    RepositoryError,
    NotFoundError,
    DuplicateError,
)

__all__ = [
    "DatabaseConfig",
    "ConnectionManager",
    "get_connection_manager",
    "AppendOnlyRepository",
    "RepositoryError",
    "NotFoundError",
    "DuplicateError",
]
