"""Escalation store: append-only writes for assessments and escalations.

Records are keyed by a generated identifier plus user id and timestamp.
Nothing here updates or deletes a record.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar

from psycopg2.extras import Json

from safeharbor.shared.database import (
    AppendOnlyRepository,
    ConnectionManager,
    DuplicateError,
)
from safeharbor.shared.models import CrisisAssessment, SafetyPlan
from .records import EmergencyEvent, EscalationRecord, FollowUp, HotlineConnection

logger = logging.getLogger(__name__)

R = TypeVar("R")


class EscalationStore(ABC):
    """Persistence interface for the escalation service.

    Writes raise PersistenceFailure subclasses; callers log and continue.
    """

    @abstractmethod
    async def insert_assessment(self, assessment: CrisisAssessment) -> None:
        ...

    @abstractmethod
    async def find_assessment(self, assessment_id: str) -> Optional[CrisisAssessment]:
        ...

    @abstractmethod
    async def insert_escalation_record(self, record: EscalationRecord) -> None:
        ...

    @abstractmethod
    async def insert_emergency_event(self, event: EmergencyEvent) -> None:
        ...

    @abstractmethod
    async def insert_hotline_connection(self, connection: HotlineConnection) -> None:
        ...

    @abstractmethod
    async def insert_safety_plan(self, plan: SafetyPlan) -> None:
        ...

    @abstractmethod
    async def latest_safety_plan(self, user_id: str) -> Optional[SafetyPlan]:
        ...

    @abstractmethod
    async def insert_follow_up(self, follow_up: FollowUp) -> None:
        ...


class InMemoryEscalationStore(EscalationStore):
    """In-memory for dev and tests; PostgreSQL in prod."""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Any]] = {
            "assessments": {},
            "escalations": {},
            "emergency_events": {},
            "hotline_connections": {},
            "safety_plans": {},
            "follow_ups": {},
        }

    def _append(self, table: str, record_id: str, record: Any) -> None:
        rows = self._tables[table]
        if record_id in rows:
            raise DuplicateError(f"{table} {record_id} already exists")
        rows[record_id] = record

    def records(self, table: str) -> List[Any]:
        """All rows of a table in insertion order."""
        return list(self._tables[table].values())

    async def insert_assessment(self, assessment: CrisisAssessment) -> None:
        self._append("assessments", assessment.id, assessment)

    async def find_assessment(self, assessment_id: str) -> Optional[CrisisAssessment]:
        return self._tables["assessments"].get(assessment_id)

    async def insert_escalation_record(self, record: EscalationRecord) -> None:
        self._append("escalations", record.id, record)

    async def insert_emergency_event(self, event: EmergencyEvent) -> None:
        self._append("emergency_events", event.id, event)

    async def insert_hotline_connection(self, connection: HotlineConnection) -> None:
        self._append("hotline_connections", connection.id, connection)

    async def insert_safety_plan(self, plan: SafetyPlan) -> None:
        self._append("safety_plans", plan.id, plan)

    async def latest_safety_plan(self, user_id: str) -> Optional[SafetyPlan]:
        plans = [p for p in self._tables["safety_plans"].values() if p.user_id == user_id]
        return max(plans, key=lambda p: p.created_at) if plans else None

    async def insert_follow_up(self, follow_up: FollowUp) -> None:
        self._append("follow_ups", follow_up.id, follow_up)


def _jsonb(params: Dict[str, Any]) -> Dict[str, Any]:
    return {k: Json(v) if isinstance(v, (dict, list)) else v for k, v in params.items()}


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


class AssessmentRepository(AppendOnlyRepository[CrisisAssessment]):
    """crisis_assessments table."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "crisis_assessments")

    def _row_to_entity(self, row: Dict[str, Any]) -> CrisisAssessment:
        row["created_at"] = _iso(row.get("created_at"))
        return CrisisAssessment.from_dict(row)

    def _entity_to_params(self, entity: CrisisAssessment) -> Dict[str, Any]:
        params = entity.to_dict()
        params["confidence"] = entity.confidence
        params["created_at"] = entity.created_at
        return _jsonb(params)


class SafetyPlanRepository(AppendOnlyRepository[SafetyPlan]):
    """safety_plans table; the plan body is stored as JSONB."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "safety_plans")

    def _row_to_entity(self, row: Dict[str, Any]) -> SafetyPlan:
        return SafetyPlan.from_dict(row["plan"])

    def _entity_to_params(self, entity: SafetyPlan) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "user_id": entity.user_id,
            "risk_level": entity.risk_level.value,
            "plan": Json(entity.to_dict()),
            "created_at": entity.created_at,
        }


class RecordRepository(AppendOnlyRepository[R]):
    """Repository for the plain record types in ``records``."""

    def __init__(self, connection_manager: ConnectionManager, table_name: str, record_type: Type[R]):
        super().__init__(connection_manager, table_name)
        self.record_type = record_type

    def _row_to_entity(self, row: Dict[str, Any]) -> R:
        return self.record_type.from_row(row)

    def _entity_to_params(self, entity: R) -> Dict[str, Any]:
        return _jsonb(entity.to_row())


class PostgresEscalationStore(EscalationStore):
    """Escalation store over PostgreSQL; blocking calls run in worker threads."""

    def __init__(self, connection_manager: ConnectionManager):
        self.assessments = AssessmentRepository(connection_manager)
        self.safety_plans = SafetyPlanRepository(connection_manager)
        self.escalations = RecordRepository(connection_manager, "crisis_escalations", EscalationRecord)
        self.emergency_events = RecordRepository(connection_manager, "emergency_events", EmergencyEvent)
        self.hotline_connections = RecordRepository(
            connection_manager, "hotline_connections", HotlineConnection
        )
        self.follow_ups = RecordRepository(connection_manager, "crisis_follow_ups", FollowUp)

    async def insert_assessment(self, assessment: CrisisAssessment) -> None:
        await asyncio.to_thread(self.assessments.insert, assessment)

    async def find_assessment(self, assessment_id: str) -> Optional[CrisisAssessment]:
        return await asyncio.to_thread(self.assessments.find_by_id, assessment_id)

    async def insert_escalation_record(self, record: EscalationRecord) -> None:
        await asyncio.to_thread(self.escalations.insert, record)

    async def insert_emergency_event(self, event: EmergencyEvent) -> None:
        await asyncio.to_thread(self.emergency_events.insert, event)

    async def insert_hotline_connection(self, connection: HotlineConnection) -> None:
        await asyncio.to_thread(self.hotline_connections.insert, connection)

    async def insert_safety_plan(self, plan: SafetyPlan) -> None:
        await asyncio.to_thread(self.safety_plans.insert, plan)

    async def latest_safety_plan(self, user_id: str) -> Optional[SafetyPlan]:
        plans = await asyncio.to_thread(self.safety_plans.find_where, "user_id", user_id, 1)
        return plans[0] if plans else None

    async def insert_follow_up(self, follow_up: FollowUp) -> None:
        await asyncio.to_thread(self.follow_ups.insert, follow_up)
