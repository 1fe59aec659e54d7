"""Tests for the escalation orchestrator state machine."""
import asyncio
import pytest
from typing import List
from unittest.mock import AsyncMock, MagicMock, patch

from safeharbor.shared.errors import ChannelUnreachable, PersistenceFailure
from safeharbor.shared.models import (
    LAST_RESORT_RESOURCES,
    Channel,
    CrisisAssessment,
    EmergencyContact,
    EscalationState,
    ImmediateAction,
    Location,
    Relationship,
    RiskLevel,
)
from safeharbor.shared.utils import configure_pii_salt
from safeharbor.services.audit_service import AuditAction, AuditLogger
from safeharbor.services.escalation_service import (
    ChannelOperations,
    EscalationOrchestrator,
    ImmediateActionRunner,
    InMemoryEscalationStore,
)
from safeharbor.services.notification_service import (
    ContactGateway,
    DeliveryReceipt,
    OutboxNotificationSink,
    UnconfiguredContactGateway,
)
from safeharbor.services.protocol_service import ProtocolCatalog, ProtocolSelector
from safeharbor.services.resource_directory import (
    HotlineDirectory,
    ResourceDirectory,
    StaticResourceDirectory,
)
from safeharbor.services.risk_service import RiskAssessor


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


DENVER = Location(latitude=39.7, longitude=-104.9, country_code="US")


class FakeGateway(ContactGateway):
    """Succeeds everywhere unless told otherwise; records calls."""

    def __init__(self, dispatch_delay=0.0, dispatch_seconds=240):
        self.dispatch_delay = dispatch_delay
        self.dispatch_seconds = dispatch_seconds
        self.notified: List[str] = []
        self.dispatched: List[str] = []
        self.referred: List[str] = []

    async def notify_contact(self, user_id, contact, message, urgency):
        self.notified.append(contact.id)
        return DeliveryReceipt(reference_number=f"sms_{contact.id}")

    async def dispatch_emergency(self, user_id, unit, location, emergency_type):
        if self.dispatch_delay:
            await asyncio.sleep(self.dispatch_delay)
        self.dispatched.append(unit.id)
        return DeliveryReceipt(
            reference_number=f"dispatch_{unit.id}",
            estimated_response_seconds=self.dispatch_seconds,
        )

    async def refer_to_service(self, user_id, name, phone, location, reason):
        self.referred.append(name)
        return DeliveryReceipt(reference_number=f"ref_{name}")


class FailingStore(InMemoryEscalationStore):
    """Every write fails."""

    async def insert_escalation_record(self, record):
        raise PersistenceFailure("db down")

    async def insert_emergency_event(self, event):
        raise PersistenceFailure("db down")

    async def insert_hotline_connection(self, connection):
        raise PersistenceFailure("db down")

    async def insert_follow_up(self, follow_up):
        raise PersistenceFailure("db down")

    async def latest_safety_plan(self, user_id):
        raise PersistenceFailure("db down")


class FailingDirectory(ResourceDirectory):
    """Every lookup fails."""

    async def user_location(self, user_id):
        raise RuntimeError("directory offline")

    async def emergency_contacts(self, user_id):
        raise RuntimeError("directory offline")

    async def professional_contacts(self, user_id):
        raise RuntimeError("directory offline")

    async def crisis_hotlines(self, location=None):
        raise RuntimeError("directory offline")

    async def emergency_services(self, location, service_type=None):
        raise RuntimeError("directory offline")

    async def mental_health_services(self, location):
        raise RuntimeError("directory offline")


class FailingSink(OutboxNotificationSink):
    """Every delivery fails."""

    def _enqueue(self, kind, user_id, payload):
        raise ChannelUnreachable("push_failed")


def build(
    gateway=None,
    directory=None,
    store=None,
    notifications=None,
    catalog=None,
    confirmation_seconds=30.0,
):
    directory = directory or StaticResourceDirectory(HotlineDirectory.load())
    gateway = gateway or FakeGateway()
    store = store or InMemoryEscalationStore()
    notifications = notifications or OutboxNotificationSink()
    audit = AuditLogger()
    alerter = MagicMock()
    alerter.alert = AsyncMock(return_value=True)

    channels = ChannelOperations(directory, gateway, store)
    actions = ImmediateActionRunner(channels, directory, notifications, store, audit)
    orchestrator = EscalationOrchestrator(
        selector=ProtocolSelector(catalog or ProtocolCatalog.load()),
        directory=directory,
        channels=channels,
        actions=actions,
        store=store,
        audit=audit,
        alerter=alerter,
        confirmation_seconds=confirmation_seconds,
    )
    return orchestrator


def assessment(level=RiskLevel.CRITICAL, triggers=("suicidal_ideation", "suicide_plan"), user_id="user_1"):
    return CrisisAssessment(
        id="assess_1",
        user_id=user_id,
        session_id="sess_1",
        message_id="msg_1",
        risk_level=level,
        confidence=0.9,
        triggers=triggers,
        time_to_intervention_seconds=0 if level == RiskLevel.CRITICAL else 300,
    )


def contact(priority):
    return EmergencyContact(
        id=f"ec_{priority}",
        name=f"Contact {priority}",
        phone=f"+1555000{priority}",
        relationship=Relationship.FRIEND,
        priority=priority,
    )


DISPATCH_FIRST = {
    "version": "test-dispatch-first",
    "protocols": {
        "dispatch_first": {
            "risk_level": "critical",
            "immediate_actions": ["emotional_support"],
            "contact_sequence": ["crisis_hotline", "911", "emergency_contacts", "mental_health_services"],
            "timeout_minutes": 5,
            "follow_up_required": False,
        }
    },
    "selection": [],
    "default_protocol": "dispatch_first",
}


@pytest.mark.asyncio
class TestCriticalEscalation:
    """End-to-end flow for a critical message."""

    async def test_critical_phrase_attempts_hotline_before_dispatch(self):
        orchestrator = build()
        orchestrator.directory.set_location("user_1", DENVER)
        crisis = await RiskAssessor().analyze(
            "I want to kill myself and have a plan to do it tonight", "user_1", "sess_1", "msg_1",
        )

        result = await orchestrator.handle_escalation(crisis)

        assert crisis.risk_level == RiskLevel.CRITICAL
        assert result.protocol_name == "suicide_risk"
        services = list(result.contacted_services)
        assert services.index(Channel.CRISIS_HOTLINE) < services.index(Channel.EMERGENCY_DISPATCH)
        assert result.success is True
        assert result.state == EscalationState.SUCCESS

    async def test_estimated_response_is_minimum_of_successes(self):
        orchestrator = build(gateway=FakeGateway(dispatch_seconds=240))
        orchestrator.directory.set_location("user_1", DENVER)

        result = await orchestrator.handle_escalation(assessment())

        # 988 reports a 30 second average wait
        assert result.estimated_response_time_seconds == 30

    async def test_crisis_team_alerted_before_return(self):
        orchestrator = build()

        result = await orchestrator.handle_escalation(assessment())

        orchestrator.alerter.alert.assert_awaited_once()
        alerted = orchestrator.audit.query(action=AuditAction.CRISIS_TEAM_ALERTED)
        assert alerted[0].entity_id == result.escalation_id

    async def test_high_risk_not_alerted(self):
        orchestrator = build()

        await orchestrator.handle_escalation(assessment(RiskLevel.HIGH, ("hopelessness",)))

        orchestrator.alerter.alert.assert_not_awaited()

    async def test_contacts_notified_once(self):
        orchestrator = build()
        for p in (1, 2, 3):
            orchestrator.directory.add_emergency_contact("user_1", contact(p))

        result = await orchestrator.handle_escalation(assessment())

        assert sorted(orchestrator.channels.gateway.notified) == ["ec_1", "ec_2"]
        contacts_outcome = next(
            o for o in result.channel_outcomes if o.channel == Channel.EMERGENCY_CONTACTS
        )
        assert contacts_outcome.success is True


@pytest.mark.asyncio
class TestShortCircuit:
    async def test_dispatch_success_stops_sequence(self):
        gateway = FakeGateway()
        orchestrator = build(gateway=gateway, catalog=ProtocolCatalog.from_dict(DISPATCH_FIRST))
        orchestrator.directory.set_location("user_1", DENVER)
        orchestrator.directory.add_emergency_contact("user_1", contact(1))

        result = await orchestrator.handle_escalation(assessment())

        assert result.contacted_services == (Channel.CRISIS_HOTLINE, Channel.EMERGENCY_DISPATCH)
        assert gateway.notified == []
        assert gateway.referred == []

    async def test_failed_dispatch_continues_sequence(self):
        gateway = FakeGateway()
        orchestrator = build(gateway=gateway, catalog=ProtocolCatalog.from_dict(DISPATCH_FIRST))
        orchestrator.directory.add_emergency_contact("user_1", contact(1))

        result = await orchestrator.handle_escalation(assessment())

        # No location, so dispatch fails and later channels still run
        assert result.contacted_services == (
            Channel.CRISIS_HOTLINE,
            Channel.EMERGENCY_DISPATCH,
            Channel.EMERGENCY_CONTACTS,
            Channel.MENTAL_HEALTH_SERVICES,
        )
        assert gateway.notified == ["ec_1"]


@pytest.mark.asyncio
class TestFailurePaths:
    """An escalation always yields a result with alternatives."""

    async def test_everything_failing_still_returns_alternatives(self):
        orchestrator = build(
            gateway=UnconfiguredContactGateway(),
            directory=FailingDirectory(),
            store=FailingStore(),
            notifications=FailingSink(),
        )

        result = await orchestrator.handle_escalation(assessment())

        assert result.success is False
        assert result.state == EscalationState.FAILED
        assert result.alternatives
        assert result.estimated_response_time_seconds is None
        assert all(not o.success for o in result.action_outcomes)

    async def test_partial_when_only_actions_succeed(self):
        class NoHotlines(StaticResourceDirectory):
            async def crisis_hotlines(self, location=None):
                return []

        orchestrator = build(
            gateway=UnconfiguredContactGateway(),
            directory=NoHotlines(HotlineDirectory.load()),
        )

        result = await orchestrator.handle_escalation(assessment(RiskLevel.HIGH, ("hopelessness",)))

        assert result.protocol_name == "severe_distress"
        assert result.state == EscalationState.PARTIAL
        assert result.success is False
        assert result.alternatives

    async def test_internal_error_returns_last_resort(self):
        orchestrator = build()
        orchestrator.selector = MagicMock()
        orchestrator.selector.select.side_effect = KeyError("catalog corrupted")
        orchestrator.selector.catalog.version = "broken"

        result = await orchestrator.handle_escalation(assessment())

        assert result.success is False
        assert result.state == EscalationState.FAILED
        assert result.error == "Escalation failed - manual intervention required"
        assert result.alternatives == LAST_RESORT_RESOURCES
        records = orchestrator.store.records("escalations")
        assert records[0].protocol_name is None
        assert records[0].state == "escalated-failed"


@pytest.mark.asyncio
class TestRecordsAndFollowUp:
    async def test_record_written_every_invocation(self):
        orchestrator = build()

        first = await orchestrator.handle_escalation(assessment())
        second = await orchestrator.handle_escalation(assessment())

        records = orchestrator.store.records("escalations")
        assert [r.id for r in records] == [first.escalation_id, second.escalation_id]
        assert records[0].catalog_version == "2026.01.15"
        assert records[0].channel_outcomes[0]["channel"] == "crisis_hotline"

    async def test_follow_up_scheduled_when_required(self):
        orchestrator = build()

        result = await orchestrator.handle_escalation(assessment())

        follow_ups = orchestrator.store.records("follow_ups")
        assert follow_ups[0].escalation_id == result.escalation_id
        assert follow_ups[0].reason == "suicide_risk_follow_up"

    async def test_no_follow_up_for_severe_distress(self):
        orchestrator = build()

        await orchestrator.handle_escalation(assessment(RiskLevel.HIGH, ("hopelessness",)))

        assert orchestrator.store.records("follow_ups") == []

    async def test_existing_safety_plan_is_redelivered(self):
        from safeharbor.services.safety_plan_service import SafetyPlanBuilder

        orchestrator = build()
        builder = SafetyPlanBuilder(
            orchestrator.directory, orchestrator.store, orchestrator.actions.notifications,
        )
        plan = await builder.create_safety_plan("user_1", assessment())

        result = await orchestrator.handle_escalation(assessment())

        outcome = next(o for o in result.action_outcomes if o.action == ImmediateAction.ACTIVATE_SAFETY_PLAN)
        assert outcome.success is True
        assert plan.id in outcome.detail
        assert len(orchestrator.actions.notifications.for_user("user_1", "safety_plan")) == 2


@pytest.mark.asyncio
class TestConfirmationWindow:
    """A slow channel is recorded as unconfirmed but never cancelled."""

    async def test_slow_dispatch_is_unconfirmed_then_drained(self):
        gateway = FakeGateway(dispatch_delay=0.2)
        orchestrator = build(gateway=gateway, confirmation_seconds=0.05)
        orchestrator.directory.set_location("user_1", DENVER)

        result = await orchestrator.handle_escalation(assessment())

        dispatch = next(o for o in result.channel_outcomes if o.channel == Channel.EMERGENCY_DISPATCH)
        assert dispatch.success is False
        assert dispatch.detail == "attempted_no_confirmation"
        assert orchestrator.pending_channels == 1

        await orchestrator.drain()

        assert orchestrator.pending_channels == 0
        assert gateway.dispatched == ["us_911"]


@pytest.mark.asyncio
class TestContactSequenceUrgency:
    async def test_sequence_step_notifies_at_critical_urgency(self):
        orchestrator = build()
        for p in (1, 2, 3):
            orchestrator.directory.add_emergency_contact("user_1", contact(p))

        result = await orchestrator.handle_escalation(assessment(RiskLevel.HIGH, ("self_harm",)))

        assert result.protocol_name == "self_harm"
        assert sorted(orchestrator.channels.gateway.notified) == ["ec_1", "ec_2"]


@pytest.mark.asyncio
class TestConcurrentEscalations:
    async def test_each_escalation_reuses_its_own_contact_result(self):
        orchestrator = build()
        orchestrator.directory.add_emergency_contact("user_1", contact(1))

        first, second = await asyncio.gather(
            orchestrator.handle_escalation(assessment()),
            orchestrator.handle_escalation(assessment()),
        )

        # One notification per escalation, from the immediate action only
        assert orchestrator.channels.gateway.notified == ["ec_1", "ec_1"]
        for result in (first, second):
            outcome = next(o for o in result.channel_outcomes if o.channel == Channel.EMERGENCY_CONTACTS)
            assert outcome.success is True


@pytest.mark.asyncio
class TestCrisisDetectionAudit:
    async def test_detection_entry_carries_session_and_escalation(self):
        orchestrator = build()

        result = await orchestrator.handle_escalation(assessment())

        entry = orchestrator.audit.query(action=AuditAction.CRISIS_DETECTED)[0]
        assert entry.details["session_id"] == "sess_1"
        assert entry.details["escalation_id"] == result.escalation_id
        assert entry.details["assessment_id"] == "assess_1"


@pytest.mark.asyncio
class TestUnconfiguredSalt:
    """Failure paths still return results when no PII salt is configured."""

    async def test_failing_collaborators_still_return_alternatives(self):
        orchestrator = build(
            gateway=UnconfiguredContactGateway(),
            directory=FailingDirectory(),
            store=FailingStore(),
        )

        with patch("safeharbor.shared.utils.pii._PII_SALT", None):
            result = await orchestrator.handle_escalation(assessment())

        assert result.success is False
        assert result.protocol_name == "suicide_risk"
        assert [o.channel for o in result.channel_outcomes][0] == Channel.CRISIS_HOTLINE
        assert result.alternatives
        assert result.error != "Escalation failed - manual intervention required"
