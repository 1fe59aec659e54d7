"""Append-only repository pattern for PostgreSQL.

Assessments, escalation records, emergency events, safety plans and
follow-ups are written once and never updated or deleted by this
subsystem, so the base class exposes inserts and reads only.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

import psycopg2
from psycopg2 import errors, sql
from psycopg2.extras import RealDictCursor

from safeharbor.shared.errors import PersistenceFailure
from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(PersistenceFailure):
    """Base exception for repository errors."""
    pass


class NotFoundError(RepositoryError):
    """Entity not found in database."""
    pass


class DuplicateError(RepositoryError):
    """Duplicate entity already exists."""
    pass


class AppendOnlyRepository(ABC, Generic[T]):
    """Abstract append-only repository.

    Subclasses implement entity/row conversion while inheriting:
    - Connection management
    - Error translation to the repository hierarchy
    - Logging patterns
    """

    # Columns that may appear in WHERE/ORDER BY clauses
    queryable_columns: Tuple[str, ...] = ("id", "user_id", "created_at")

    def __init__(
        self,
        connection_manager: ConnectionManager,
        table_name: str,
    ):
        self.connection_manager = connection_manager
        self.table_name = table_name

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={"table_name": table_name}
        )

    @abstractmethod
    def _row_to_entity(self, row: Dict[str, Any]) -> T:
        """Convert a database row (column -> value) to an entity."""
        pass

    @abstractmethod
    def _entity_to_params(self, entity: T) -> Dict[str, Any]:
        """Convert an entity to column -> value parameters."""
        pass

    def _column(self, name: str) -> sql.Identifier:
        if name not in self.queryable_columns:
            raise RepositoryError(f"Column {name!r} is not queryable on {self.table_name}")
        return sql.Identifier(name)

    def insert(self, entity: T) -> None:
        """Insert a new entity.

        Raises:
            DuplicateError: If an entity with the same id already exists
            RepositoryError: On any other database error
        """
        params = self._entity_to_params(entity)
        query = sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values})").format(
            table=sql.Identifier(self.table_name),
            columns=sql.SQL(", ").join(sql.Identifier(c) for c in params),
            values=sql.SQL(", ").join(sql.Placeholder() for _ in params),
        )

        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, list(params.values()))
                conn.commit()
        except errors.UniqueViolation as e:
            logger.error(
                "REPOSITORY_DUPLICATE_INSERT",
                extra={"table_name": self.table_name, "entity_id": params.get("id")}
            )
            raise DuplicateError(f"{self.table_name} {params.get('id')} already exists") from e
        except psycopg2.Error as e:
            logger.error(
                "REPOSITORY_INSERT_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(str(e)) from e

    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Find entity by ID, or None if absent."""
        rows = self.find_where("id", entity_id, limit=1)
        return rows[0] if rows else None

    def get_by_id(self, entity_id: str) -> T:
        """Find entity by ID.

        Raises:
            NotFoundError: If no entity has this ID
        """
        entity = self.find_by_id(entity_id)
        if entity is None:
            raise NotFoundError(f"{self.table_name} {entity_id} not found")
        return entity

    def find_where(
        self,
        column: str,
        value: Any,
        limit: int = 100,
        order_by: str = "created_at",
    ) -> List[T]:
        """Find entities where ``column = value``, newest first."""
        query = sql.SQL(
            "SELECT * FROM {table} WHERE {column} = %s ORDER BY {order} DESC LIMIT %s"
        ).format(
            table=sql.Identifier(self.table_name),
            column=self._column(column),
            order=self._column(order_by),
        )
        return self._fetch(query, (value, limit))

    def _fetch(self, query: Any, params: Tuple[Any, ...]) -> List[T]:
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(query, params)
                    rows = cur.fetchall()
        except psycopg2.Error as e:
            logger.error(
                "REPOSITORY_QUERY_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(str(e)) from e

        return [self._row_to_entity(dict(row)) for row in rows]

    def count(self) -> int:
        """Count total entities."""
        query = sql.SQL("SELECT COUNT(*) FROM {table}").format(
            table=sql.Identifier(self.table_name)
        )
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query)
                row = cur.fetchone()

                return row[0] if row else 0
