"""User-facing notification sink.

The crisis subsystem hands deliverables (resources, safety plans, coping
strategies, check-in reminders) to this interface; how they reach the user
is owned by the messaging layer.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from safeharbor.shared.models import ProfessionalContact, SafetyPlan, utcnow
from safeharbor.shared.utils import safe_hash_pii

logger = logging.getLogger(__name__)

EMOTIONAL_SUPPORT_MESSAGES = (
    "You are not alone. What you are feeling matters, and help is available right now.",
    "It took courage to share this. Reaching out is a sign of strength.",
    "These feelings can change. You deserve support while they do.",
)


class NotificationSink(ABC):
    """Delivery interface consumed by the orchestrator and safety-plan builder.

    Implementations raise on delivery failure; callers record the failure.
    """

    @abstractmethod
    async def send_crisis_resources(self, user_id: str, payload: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def send_safety_plan(self, user_id: str, plan: SafetyPlan) -> None:
        ...

    @abstractmethod
    async def send_emotional_support(self, user_id: str) -> None:
        ...

    @abstractmethod
    async def send_coping_strategies(self, user_id: str, strategies: Sequence[str]) -> None:
        ...

    @abstractmethod
    async def alert_professionals(
        self,
        user_id: str,
        contacts: Sequence[ProfessionalContact],
        summary: Dict[str, Any],
    ) -> None:
        ...

    @abstractmethod
    async def schedule_check_in(self, user_id: str, due_at: datetime, reason: str) -> None:
        ...


@dataclass(frozen=True)
class Delivery:
    """One queued deliverable."""
    id: str
    kind: str
    user_id: str
    payload: Dict[str, Any]
    created_at: datetime = field(default_factory=utcnow)


class OutboxNotificationSink(NotificationSink):
    """Appends deliveries to an in-memory outbox.

    In-memory for dev; the messaging layer drains a durable outbox in prod.
    """

    def __init__(self):
        self._outbox: List[Delivery] = []

    @property
    def deliveries(self) -> List[Delivery]:
        return list(self._outbox)

    def for_user(self, user_id: str, kind: Optional[str] = None) -> List[Delivery]:
        return [
            d for d in self._outbox
            if d.user_id == user_id and (kind is None or d.kind == kind)
        ]

    def _enqueue(self, kind: str, user_id: str, payload: Dict[str, Any]) -> None:
        delivery = Delivery(
            id=f"dlv_{uuid.uuid4().hex[:12]}",
            kind=kind,
            user_id=user_id,
            payload=payload,
        )
        self._outbox.append(delivery)
        logger.info(
            "NOTIFICATION_QUEUED",
            extra={
                "delivery_id": delivery.id,
                "kind": kind,
                "user_id_hash": safe_hash_pii(user_id),
            }
        )

    async def send_crisis_resources(self, user_id: str, payload: Dict[str, Any]) -> None:
        self._enqueue("crisis_resources", user_id, payload)

    async def send_safety_plan(self, user_id: str, plan: SafetyPlan) -> None:
        self._enqueue("safety_plan", user_id, plan.to_dict())

    async def send_emotional_support(self, user_id: str) -> None:
        self._enqueue("emotional_support", user_id, {"messages": list(EMOTIONAL_SUPPORT_MESSAGES)})

    async def send_coping_strategies(self, user_id: str, strategies: Sequence[str]) -> None:
        self._enqueue("coping_strategies", user_id, {"strategies": list(strategies)})

    async def alert_professionals(
        self,
        user_id: str,
        contacts: Sequence[ProfessionalContact],
        summary: Dict[str, Any],
    ) -> None:
        self._enqueue(
            "professional_alert",
            user_id,
            {"contact_ids": [c.id for c in contacts], "summary": summary},
        )

    async def schedule_check_in(self, user_id: str, due_at: datetime, reason: str) -> None:
        self._enqueue("check_in", user_id, {"due_at": due_at.isoformat(), "reason": reason})
