"""Immediate actions executed concurrently before the contact sequence.

Every action runs as an independent task; one failing never cancels the
others and every outcome is collected.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from safeharbor.shared.models import (
    ActionOutcome,
    ChannelResult,
    CrisisAssessment,
    EmergencyContact,
    ImmediateAction,
    Location,
    RiskLevel,
    utcnow,
)
from safeharbor.shared.utils import gather_outcomes, safe_hash_pii
from safeharbor.services.audit_service import AccessType, AuditSink, PHIAccessEvent
from safeharbor.services.notification_service import NotificationSink
from safeharbor.services.resource_directory import ResourceDirectory
from safeharbor.services.safety_plan_service.strategies import suggest_coping_strategies
from .channels import ChannelOperations
from .store import EscalationStore

logger = logging.getLogger(__name__)

MIN_CHECK_IN = timedelta(minutes=15)

CRISIS_RESOURCES = (
    {"name": "988 Suicide & Crisis Lifeline", "contact": "988", "kind": "hotline"},
    {"name": "Personal Safety Plan", "contact": "safety_plan", "kind": "plan"},
    {"name": "Immediate Coping Techniques", "contact": "coping_strategies", "kind": "self_help"},
)

# Handlers return (success, detail); the contact handler returns its ChannelResult
Handler = Callable[..., Awaitable[Union[Tuple[bool, str], ChannelResult]]]


def contact_message(assessment: CrisisAssessment) -> str:
    return f"Crisis detected - {assessment.risk_level.value} risk level"


def contact_urgency(assessment: CrisisAssessment) -> RiskLevel:
    return RiskLevel.CRITICAL if assessment.risk_level == RiskLevel.CRITICAL else RiskLevel.HIGH


@dataclass(frozen=True)
class ActionBatch:
    """Outcomes of one immediate-action fan-out.

    ``contact_notification`` is the emergency-contact result when that
    action ran, so the contact sequence can reuse it.
    """
    outcomes: Tuple[ActionOutcome, ...]
    contact_notification: Optional[ChannelResult] = None

    @property
    def any_succeeded(self) -> bool:
        return any(o.success for o in self.outcomes)


class ImmediateActionRunner:
    """Maps action tags to handlers and runs them concurrently."""

    def __init__(
        self,
        channels: ChannelOperations,
        directory: ResourceDirectory,
        notifications: NotificationSink,
        store: EscalationStore,
        audit: AuditSink,
    ):
        self.channels = channels
        self.directory = directory
        self.notifications = notifications
        self.store = store
        self.audit = audit
        self._handlers: Dict[ImmediateAction, Handler] = {
            ImmediateAction.PROVIDE_CRISIS_RESOURCES: self._provide_resources,
            ImmediateAction.PROVIDE_RESOURCES: self._provide_resources,
            ImmediateAction.ACTIVATE_SAFETY_PLAN: self._activate_safety_plan,
            ImmediateAction.CONTACT_EMERGENCY_CONTACTS: self._contact_emergency_contacts,
            ImmediateAction.EMOTIONAL_SUPPORT: self._emotional_support,
            ImmediateAction.COPING_STRATEGIES: self._coping_strategies,
            ImmediateAction.SAFETY_CHECK: self._safety_check,
            ImmediateAction.SAFETY_ASSESSMENT: self._safety_check,
            ImmediateAction.PROFESSIONAL_CONSULTATION: self._professional_consultation,
        }

    async def run(
        self,
        actions: Sequence[ImmediateAction],
        assessment: CrisisAssessment,
        location: Optional[Location],
        contacts: Optional[List[EmergencyContact]],
    ) -> ActionBatch:
        results = await gather_outcomes(
            (action, self._handlers[action](assessment, location, contacts)) for action in actions
        )

        outcomes = []
        contact_notification: Optional[ChannelResult] = None
        for result in results:
            if result.ok and isinstance(result.value, ChannelResult):
                contact_notification = result.value
                success, detail = result.value.success, result.value.detail
            elif result.ok:
                success, detail = result.value
            else:
                success, detail = False, f"{type(result.error).__name__}: {result.error}"
            outcomes.append(ActionOutcome(action=result.key, success=success, detail=detail))

        logger.info(
            "IMMEDIATE_ACTIONS_COMPLETED",
            extra={
                "assessment_id": assessment.id,
                "succeeded": sum(1 for o in outcomes if o.success),
                "attempted": len(outcomes),
            }
        )
        return ActionBatch(
            outcomes=tuple(outcomes),
            contact_notification=contact_notification,
        )

    async def _provide_resources(self, assessment, location, contacts) -> Tuple[bool, str]:
        hotlines = await self.directory.crisis_hotlines(location)
        payload = {
            "risk_level": assessment.risk_level.value,
            "triggers": list(assessment.triggers),
            "hotlines": [h.to_dict() for h in hotlines],
            "resources": [dict(r) for r in CRISIS_RESOURCES],
            "location": location.to_dict() if location else None,
            "timestamp": utcnow().isoformat(),
        }
        await self.notifications.send_crisis_resources(assessment.user_id, payload)
        return True, f"sent {len(hotlines)} hotlines"

    async def _activate_safety_plan(self, assessment, location, contacts) -> Tuple[bool, str]:
        plan = await self.store.latest_safety_plan(assessment.user_id)
        if plan is None:
            return False, "no_existing_plan"

        await self.notifications.send_safety_plan(assessment.user_id, plan)
        await self.audit.log_phi_access(
            PHIAccessEvent(
                user_id="crisis_engine",
                resource_type="safety_plan",
                resource_id=plan.id,
                action="read",
                affected_user_id=assessment.user_id,
                purpose="crisis_safety_plan_activation",
            )
        )
        return True, f"activated plan {plan.id}"

    async def _contact_emergency_contacts(self, assessment, location, contacts) -> ChannelResult:
        return await self.channels.notify_emergency_contacts(
            assessment.user_id,
            contact_message(assessment),
            contact_urgency(assessment),
            contacts=contacts,
        )

    async def _emotional_support(self, assessment, location, contacts) -> Tuple[bool, str]:
        await self.notifications.send_emotional_support(assessment.user_id)
        return True, "sent"

    async def _coping_strategies(self, assessment, location, contacts) -> Tuple[bool, str]:
        strategies = suggest_coping_strategies(assessment.triggers)
        await self.notifications.send_coping_strategies(assessment.user_id, strategies)
        return True, f"sent {len(strategies)} strategies"

    async def _safety_check(self, assessment, location, contacts) -> Tuple[bool, str]:
        delay = max(timedelta(seconds=assessment.time_to_intervention_seconds), MIN_CHECK_IN)
        due_at = utcnow() + delay
        await self.notifications.schedule_check_in(assessment.user_id, due_at, "safety_check")
        return True, f"check-in due {due_at.isoformat()}"

    async def _professional_consultation(self, assessment, location, contacts) -> Tuple[bool, str]:
        professionals = await self.directory.professional_contacts(assessment.user_id)
        if not professionals:
            return False, "no_professional_contacts"

        await self.notifications.alert_professionals(
            assessment.user_id,
            professionals,
            {
                "assessment_id": assessment.id,
                "risk_level": assessment.risk_level.value,
                "triggers": list(assessment.triggers),
            },
        )
        for pro in professionals:
            await self.audit.log_professional_access(
                professional_id=pro.id,
                patient_id=assessment.user_id,
                access_type=AccessType.EMERGENCY,
                purpose="crisis_consultation",
            )

        logger.info(
            "PROFESSIONALS_ALERTED",
            extra={"user_id_hash": safe_hash_pii(assessment.user_id), "count": len(professionals)}
        )
        return True, f"alerted {len(professionals)} professionals"
