"""Escalation orchestrator: assessment -> protocol -> actions -> contact sequence.

Flow:
1. Select the protocol for the assessment
2. Resolve location and emergency contacts concurrently (each optional)
3. Run immediate actions concurrently, collecting every outcome
4. Attempt contact channels strictly in catalog order, stopping after a
   confirmed emergency dispatch
5. Persist the escalation record, audit, alert the crisis team for
   critical risk, schedule the follow-up

Never raises. Any unexpected failure returns a failed result populated
with last-resort resources, and the record is still written.
"""
import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Dict, List, Optional, Set, Tuple

from safeharbor.shared.errors import OrchestratorFailure
from safeharbor.shared.models import (
    LAST_RESORT_RESOURCES,
    ActionOutcome,
    Channel,
    ChannelOutcome,
    ChannelResult,
    CrisisAssessment,
    EmergencyContact,
    EscalationResult,
    EscalationState,
    InterventionProtocol,
    Location,
    RiskLevel,
    utcnow,
)
from safeharbor.shared.utils import safe_hash_pii, resolve_optional
from safeharbor.services.audit_service import AuditSink
from safeharbor.services.notification_service import CrisisTeamAlerter
from safeharbor.services.protocol_service import ProtocolSelector
from safeharbor.services.resource_directory import ResourceDirectory
from .actions import ActionBatch, ImmediateActionRunner
from .channels import DEFAULT_EMERGENCY_TYPE, DEFAULT_RESPONSE_SECONDS, ChannelOperations
from .records import EscalationRecord, FollowUp
from .store import EscalationStore

logger = logging.getLogger(__name__)

NO_CONFIRMATION = "attempted_no_confirmation"
FOLLOW_UP_DELAY = timedelta(hours=24)

NO_CONTACT_ERROR = "No contact channel confirmed - alternatives provided"
ALL_FAILED_ERROR = "All escalation steps failed - alternatives provided"
MANUAL_INTERVENTION_ERROR = "Escalation failed - manual intervention required"

# The contact-sequence step always notifies at critical urgency
SEQUENCE_CONTACT_MESSAGE = "Crisis detected - immediate attention required"
SEQUENCE_CONTACT_URGENCY = RiskLevel.CRITICAL


class EscalationOrchestrator:
    """Executes intervention protocols for high and critical assessments."""

    def __init__(
        self,
        selector: ProtocolSelector,
        directory: ResourceDirectory,
        channels: ChannelOperations,
        actions: ImmediateActionRunner,
        store: EscalationStore,
        audit: AuditSink,
        alerter: CrisisTeamAlerter,
        confirmation_seconds: float = 30.0,
    ):
        self.selector = selector
        self.directory = directory
        self.channels = channels
        self.actions = actions
        self.store = store
        self.audit = audit
        self.alerter = alerter
        self.confirmation_seconds = confirmation_seconds
        self._pending: Set[asyncio.Future] = set()

    @property
    def pending_channels(self) -> int:
        """Channel attempts still running past their confirmation window."""
        return len(self._pending)

    async def handle_escalation(self, assessment: CrisisAssessment) -> EscalationResult:
        """Run the selected protocol for an assessment.

        Args:
            assessment: Immutable assessment produced by the risk assessor

        Returns:
            EscalationResult with the terminal state and non-empty alternatives
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        escalation_id = str(uuid.uuid4())
        protocol: Optional[InterventionProtocol] = None
        action_outcomes: Tuple[ActionOutcome, ...] = ()
        channel_outcomes: List[ChannelOutcome] = []

        logger.info(
            "ESCALATION_STARTED",
            extra={
                "escalation_id": escalation_id,
                "assessment_id": assessment.id,
                "user_id_hash": safe_hash_pii(assessment.user_id),
                "risk_level": assessment.risk_level.value,
            }
        )

        try:
            protocol = self.selector.select(assessment)

            location, contacts = await asyncio.gather(
                resolve_optional(self.directory.user_location(assessment.user_id), "user_location"),
                resolve_optional(self.directory.emergency_contacts(assessment.user_id), "emergency_contacts"),
            )

            batch = await self.actions.run(protocol.immediate_actions, assessment, location, contacts)
            action_outcomes = batch.outcomes

            for channel in protocol.contact_sequence:
                outcome = await self._attempt(channel, assessment, location, contacts, batch)
                channel_outcomes.append(outcome)
                if channel == Channel.EMERGENCY_DISPATCH and outcome.success:
                    break

            result = self._build_result(
                escalation_id,
                protocol,
                action_outcomes,
                tuple(channel_outcomes),
                await self.channels.hotline_alternatives(location),
            )

        except Exception as e:
            failure = OrchestratorFailure(f"{type(e).__name__}: {e}")
            logger.critical(
                "ESCALATION_ORCHESTRATOR_FAILURE",
                extra={
                    "escalation_id": escalation_id,
                    "assessment_id": assessment.id,
                    "error": str(failure),
                },
                exc_info=True,
            )
            result = EscalationResult(
                success=False,
                state=EscalationState.FAILED,
                protocol_name=protocol.name if protocol else None,
                contacted_services=tuple(o.channel for o in channel_outcomes),
                error=MANUAL_INTERVENTION_ERROR,
                alternatives=LAST_RESORT_RESOURCES,
                channel_outcomes=tuple(channel_outcomes),
                action_outcomes=action_outcomes,
                escalation_id=escalation_id,
            )

        await self._finalize(assessment, protocol, result)

        elapsed = loop.time() - started
        if protocol is not None and elapsed > protocol.timeout_minutes * 60:
            logger.warning(
                "ESCALATION_SLO_EXCEEDED",
                extra={
                    "escalation_id": escalation_id,
                    "protocol": protocol.name,
                    "elapsed_seconds": round(elapsed, 1),
                    "timeout_minutes": protocol.timeout_minutes,
                }
            )

        logger.info(
            "ESCALATION_COMPLETED",
            extra={
                "escalation_id": escalation_id,
                "state": result.state.value,
                "contacted_services": [c.value for c in result.contacted_services],
                "elapsed_seconds": round(elapsed, 3),
            }
        )
        return result

    async def _attempt(
        self,
        channel: Channel,
        assessment: CrisisAssessment,
        location: Optional[Location],
        contacts: Optional[List[EmergencyContact]],
        batch: ActionBatch,
    ) -> ChannelOutcome:
        """Attempt one channel within the soft confirmation window.

        A channel that has not answered in time is recorded as unconfirmed
        and left running; its task is never cancelled.
        """
        if channel == Channel.EMERGENCY_CONTACTS and batch.contact_notification is not None:
            return batch.contact_notification.as_outcome(channel)

        task = asyncio.ensure_future(self._call_channel(channel, assessment, location, contacts))
        done, _ = await asyncio.wait({task}, timeout=self.confirmation_seconds)

        if task not in done:
            self._pending.add(task)
            task.add_done_callback(self._late_completion(channel, assessment.id))
            logger.warning(
                "CHANNEL_CONFIRMATION_TIMEOUT",
                extra={
                    "assessment_id": assessment.id,
                    "channel": channel.value,
                    "confirmation_seconds": self.confirmation_seconds,
                }
            )
            return ChannelOutcome(channel=channel, success=False, detail=NO_CONFIRMATION)

        try:
            result: ChannelResult = task.result()
        except Exception as e:
            logger.error(
                "CHANNEL_ATTEMPT_FAILED",
                extra={"assessment_id": assessment.id, "channel": channel.value, "error": str(e)}
            )
            return ChannelOutcome(channel=channel, success=False, detail=str(e))

        logger.info(
            "CHANNEL_ATTEMPTED",
            extra={
                "assessment_id": assessment.id,
                "channel": channel.value,
                "success": result.success,
                "detail": result.detail,
            }
        )
        return result.as_outcome(channel)

    async def _call_channel(
        self,
        channel: Channel,
        assessment: CrisisAssessment,
        location: Optional[Location],
        contacts: Optional[List[EmergencyContact]],
    ) -> ChannelResult:
        user_id = assessment.user_id
        if channel == Channel.CRISIS_HOTLINE:
            return await self.channels.connect_to_crisis_hotline(user_id, location)
        if channel == Channel.EMERGENCY_CONTACTS:
            return await self.channels.notify_emergency_contacts(
                user_id, SEQUENCE_CONTACT_MESSAGE, SEQUENCE_CONTACT_URGENCY, contacts=contacts,
            )
        if channel == Channel.MENTAL_HEALTH_SERVICES:
            return await self.channels.contact_mental_health_services(user_id, location)
        return await self.channels.contact_emergency_services(user_id, DEFAULT_EMERGENCY_TYPE, location)

    def _late_completion(self, channel: Channel, assessment_id: str):
        def callback(task: asyncio.Future) -> None:
            self._pending.discard(task)
            if task.cancelled():
                return
            error = task.exception()
            result = None if error else task.result()
            logger.info(
                "CHANNEL_LATE_COMPLETION",
                extra={
                    "assessment_id": assessment_id,
                    "channel": channel.value,
                    "success": bool(result and result.success),
                    "error": str(error) if error else None,
                }
            )
        return callback

    def _build_result(
        self,
        escalation_id: str,
        protocol: InterventionProtocol,
        action_outcomes: Tuple[ActionOutcome, ...],
        channel_outcomes: Tuple[ChannelOutcome, ...],
        alternatives,
    ) -> EscalationResult:
        succeeded = [o for o in channel_outcomes if o.success]

        if succeeded:
            state, error = EscalationState.SUCCESS, None
            reported = [o.response_time_seconds for o in succeeded if o.response_time_seconds is not None]
            estimate = min(reported) if reported else DEFAULT_RESPONSE_SECONDS
            reference = next((o.reference_number for o in succeeded if o.reference_number), None)
        else:
            estimate, reference = None, None
            if any(o.success for o in action_outcomes):
                state, error = EscalationState.PARTIAL, NO_CONTACT_ERROR
            else:
                state, error = EscalationState.FAILED, ALL_FAILED_ERROR

        return EscalationResult(
            success=bool(succeeded),
            state=state,
            protocol_name=protocol.name,
            contacted_services=tuple(o.channel for o in channel_outcomes),
            reference_number=reference,
            estimated_response_time_seconds=estimate,
            error=error,
            alternatives=alternatives or LAST_RESORT_RESOURCES,
            channel_outcomes=channel_outcomes,
            action_outcomes=action_outcomes,
            escalation_id=escalation_id,
        )

    async def _finalize(
        self,
        assessment: CrisisAssessment,
        protocol: Optional[InterventionProtocol],
        result: EscalationResult,
    ) -> None:
        """Record, audit, alert and schedule; every step is independent and logged on failure."""
        record = EscalationRecord(
            id=result.escalation_id,
            assessment_id=assessment.id,
            user_id=assessment.user_id,
            risk_level=assessment.risk_level.value,
            protocol_name=result.protocol_name,
            catalog_version=self.selector.catalog.version,
            state=result.state.value,
            action_outcomes=[o.to_dict() for o in result.action_outcomes],
            channel_outcomes=[o.to_dict() for o in result.channel_outcomes],
            error=result.error,
        )
        try:
            await self.store.insert_escalation_record(record)
        except Exception as e:
            logger.critical(
                "ESCALATION_RECORD_PERSIST_FAILED",
                extra={"escalation_id": record.id, "error": str(e), "error_type": type(e).__name__}
            )

        try:
            await self.audit.log_crisis_detection(
                user_id=assessment.user_id,
                risk_level=assessment.risk_level,
                triggers=assessment.triggers,
                confidence=assessment.confidence,
                message_id=assessment.message_id,
                context={
                    "session_id": assessment.session_id,
                    "assessment_id": assessment.id,
                    "escalation_id": result.escalation_id,
                    "protocol": result.protocol_name,
                },
            )
            await self.audit.log_escalation(
                escalation_id=result.escalation_id,
                user_id=assessment.user_id,
                risk_level=assessment.risk_level,
                protocol_name=result.protocol_name,
                state=result.state.value,
                contacted_services=[c.value for c in result.contacted_services],
            )
        except Exception as e:
            logger.error(
                "ESCALATION_AUDIT_FAILED",
                extra={"escalation_id": result.escalation_id, "error": str(e)}
            )

        if assessment.risk_level == RiskLevel.CRITICAL:
            delivered = await self.alerter.alert(assessment, result)
            try:
                await self.audit.log_crisis_team_alert(result.escalation_id, assessment.user_id, delivered)
            except Exception as e:
                logger.error(
                    "CRISIS_ALERT_AUDIT_FAILED",
                    extra={"escalation_id": result.escalation_id, "error": str(e)}
                )

        if protocol is not None and protocol.follow_up_required:
            follow_up = FollowUp(
                id=str(uuid.uuid4()),
                user_id=assessment.user_id,
                escalation_id=result.escalation_id,
                due_at=utcnow() + FOLLOW_UP_DELAY,
                reason=f"{protocol.name}_follow_up",
            )
            try:
                await self.store.insert_follow_up(follow_up)
            except Exception as e:
                logger.error(
                    "FOLLOW_UP_PERSIST_FAILED",
                    extra={"escalation_id": result.escalation_id, "error": str(e)}
                )

    async def drain(self) -> Dict[str, int]:
        """Wait for channel attempts still running past their window."""
        pending = list(self._pending)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            self._pending.difference_update(pending)
        logger.info("ESCALATION_DRAINED", extra={"channels": len(pending)})
        return {"drained": len(pending)}
