"""Audit repository for the hash-chained audit trail.

PostgreSQL with an append-only ``audit_log`` table; the service role has
no UPDATE or DELETE grant on it.
"""
import logging
from datetime import timezone
from typing import Any, Dict, List, Optional

from psycopg2 import sql
from psycopg2.extras import Json

from safeharbor.shared.database import AppendOnlyRepository, ConnectionManager
from .audit_logger import AuditAction, AuditEntity, AuditEntry

logger = logging.getLogger(__name__)

AUDIT_TABLE = "audit_log"


class AuditRepository(AppendOnlyRepository[AuditEntry]):
    """audit_log table.

    ``created_at`` carries the entry timestamp so rows read back in chain
    order.
    """

    queryable_columns = ("id", "created_at", "action", "entity_id", "actor_id")

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, AUDIT_TABLE)

    def _row_to_entity(self, row: Dict[str, Any]) -> AuditEntry:
        return AuditEntry(
            entry_id=row["id"],
            timestamp=row["created_at"].astimezone(timezone.utc),
            action=AuditAction(row["action"]),
            entity_type=AuditEntity(row["entity_type"]),
            entity_id=row["entity_id"],
            actor_id=row["actor_id"],
            severity=row["severity"],
            risk_level=row["risk_level"],
            details=row.get("details") or {},
            previous_hash=row["previous_hash"],
            entry_hash=row["entry_hash"],
        )

    def _entity_to_params(self, entity: AuditEntry) -> Dict[str, Any]:
        return {
            "id": entity.entry_id,
            "created_at": entity.timestamp,
            "action": entity.action.value,
            "entity_type": entity.entity_type.value,
            "entity_id": entity.entity_id,
            "actor_id": entity.actor_id,
            "severity": entity.severity,
            "risk_level": entity.risk_level,
            "details": Json(entity.details),
            "previous_hash": entity.previous_hash,
            "entry_hash": entity.entry_hash,
        }

    def latest_hash(self) -> Optional[str]:
        """Hash of the newest entry, or None for an empty ledger."""
        query = sql.SQL("SELECT * FROM {table} ORDER BY created_at DESC LIMIT 1").format(
            table=sql.Identifier(self.table_name),
        )
        rows = self._fetch(query, ())
        return rows[0].entry_hash if rows else None

    def entries(self, limit: int = 10000) -> List[AuditEntry]:
        """Entries oldest first, for chain verification and queries."""
        query = sql.SQL("SELECT * FROM {table} ORDER BY created_at ASC LIMIT %s").format(
            table=sql.Identifier(self.table_name),
        )
        return self._fetch(query, (limit,))
