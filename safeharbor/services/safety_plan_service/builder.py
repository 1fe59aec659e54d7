"""Safety plan builder.

Assembles a personal safety plan from the assessment's triggers, the
user's current contacts and the regional hotlines, persists it and
delivers it. Directory, store or sink failures degrade the plan; the
plan is always returned.
"""
import asyncio
import logging
import uuid
from typing import Callable, Optional

from safeharbor.shared.models import (
    LAST_RESORT_RESOURCES,
    CrisisAssessment,
    CrisisHotline,
    FollowUpPlan,
    SafetyPlan,
    utcnow,
)
from safeharbor.shared.utils import safe_hash_pii, resolve_optional
from safeharbor.services.escalation_service.store import EscalationStore
from safeharbor.services.notification_service import NotificationSink
from safeharbor.services.resource_directory import ResourceDirectory
from .strategies import suggest_coping_strategies, suggest_environmental_safety

logger = logging.getLogger(__name__)


def last_resort_hotlines():
    """Hotline entries built from the last-resort resources that are phone lines."""
    return tuple(
        CrisisHotline(
            id=f"last_resort_{i}",
            name=r.name,
            phone=r.contact,
            available_24h=r.available_24h,
            languages=r.languages,
        )
        for i, r in enumerate(LAST_RESORT_RESOURCES)
        if r.kind == "hotline"
    )


class SafetyPlanBuilder:
    """Creates, persists and delivers safety plans."""

    def __init__(
        self,
        directory: ResourceDirectory,
        store: EscalationStore,
        notifications: NotificationSink,
        clock: Optional[Callable] = None,
    ):
        self.directory = directory
        self.store = store
        self.notifications = notifications
        self._clock = clock or utcnow

    async def create_safety_plan(self, user_id: str, assessment: CrisisAssessment) -> SafetyPlan:
        """Build a safety plan for a user after an assessment.

        Args:
            user_id: Plan owner
            assessment: Assessment whose triggers key the suggestions

        Returns:
            The persisted and delivered SafetyPlan (returned even when
            persistence or delivery failed)
        """
        contacts, professionals, location = await asyncio.gather(
            resolve_optional(self.directory.emergency_contacts(user_id), "emergency_contacts"),
            resolve_optional(self.directory.professional_contacts(user_id), "professional_contacts"),
            resolve_optional(self.directory.user_location(user_id), "user_location"),
        )
        hotlines = await resolve_optional(self.directory.crisis_hotlines(location), "crisis_hotlines")

        now = self._clock()
        plan = SafetyPlan(
            id=str(uuid.uuid4()),
            user_id=user_id,
            risk_level=assessment.risk_level,
            triggers=assessment.triggers,
            coping_strategies=tuple(suggest_coping_strategies(assessment.triggers)),
            social_supports=tuple(contacts or ()),
            professional_contacts=tuple(professionals or ()),
            crisis_hotlines=tuple(hotlines) if hotlines else last_resort_hotlines(),
            environmental_safety=tuple(suggest_environmental_safety(assessment.triggers)),
            follow_up_plan=FollowUpPlan.starting_at(now),
            created_at=now,
        )

        try:
            await self.store.insert_safety_plan(plan)
        except Exception as e:
            logger.error(
                "SAFETY_PLAN_PERSIST_FAILED",
                extra={"plan_id": plan.id, "error": str(e), "error_type": type(e).__name__}
            )

        try:
            await self.notifications.send_safety_plan(user_id, plan)
        except Exception as e:
            logger.error(
                "SAFETY_PLAN_DELIVERY_FAILED",
                extra={"plan_id": plan.id, "error": str(e), "error_type": type(e).__name__}
            )

        logger.info(
            "SAFETY_PLAN_CREATED",
            extra={
                "plan_id": plan.id,
                "user_id_hash": safe_hash_pii(user_id),
                "risk_level": plan.risk_level.value,
                "coping_strategies": len(plan.coping_strategies),
                "social_supports": len(plan.social_supports),
            }
        )
        return plan
