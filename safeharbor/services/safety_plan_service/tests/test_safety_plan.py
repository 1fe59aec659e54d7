"""Tests for safety plan strategies and the plan builder."""
import pytest
from datetime import datetime, timedelta, timezone

from safeharbor.shared.errors import PersistenceFailure
from safeharbor.shared.models import (
    CrisisAssessment,
    EmergencyContact,
    ProfessionalContact,
    Relationship,
    RiskLevel,
)
from safeharbor.shared.utils import configure_pii_salt
from safeharbor.services.escalation_service import InMemoryEscalationStore
from safeharbor.services.notification_service import OutboxNotificationSink
from safeharbor.services.resource_directory import HotlineDirectory, StaticResourceDirectory
from safeharbor.services.safety_plan_service import (
    SafetyPlanBuilder,
    suggest_coping_strategies,
    suggest_environmental_safety,
)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def assessment(*triggers):
    return CrisisAssessment(
        id="assess_1",
        user_id="user_1",
        session_id="sess_1",
        message_id="msg_1",
        risk_level=RiskLevel.HIGH,
        confidence=0.7,
        triggers=triggers,
    )


@pytest.fixture
def directory():
    directory = StaticResourceDirectory(HotlineDirectory.load())
    directory.add_emergency_contact(
        "user_1",
        EmergencyContact(
            id="ec_1", name="Sam", phone="+15550001", relationship=Relationship.FAMILY, priority=1,
        ),
    )
    directory.add_professional_contact(
        "user_1", ProfessionalContact(id="pro_1", name="Dr. Lee", phone="+15550002"),
    )
    return directory


class TestStrategies:
    def test_base_strategies_always_present(self):
        strategies = suggest_coping_strategies(())

        assert "Deep breathing exercises (4-7-8 technique)" in strategies
        assert len(strategies) == 8

    def test_trigger_additions_appended(self):
        strategies = suggest_coping_strategies(("isolation", "self_harm"))

        assert strategies[8] == "Send a short message to someone you trust"
        assert "Hold ice cubes or splash cold water on your face" in strategies

    def test_no_duplicates_for_repeated_triggers(self):
        strategies = suggest_coping_strategies(("isolation", "isolation"))

        assert len(strategies) == len(set(strategies))

    def test_environmental_safety_for_lethal_means(self):
        suggestions = suggest_environmental_safety(("lethal_means",))

        assert suggestions[0] == "Remove or secure potentially harmful items"
        assert any("firearms" in s for s in suggestions)


@pytest.mark.asyncio
class TestSafetyPlanBuilder:
    async def test_plan_contents_and_follow_up_schedule(self, directory):
        store = InMemoryEscalationStore()
        sink = OutboxNotificationSink()
        builder = SafetyPlanBuilder(directory, store, sink, clock=lambda: NOW)

        plan = await builder.create_safety_plan("user_1", assessment("hopelessness"))

        assert plan.social_supports[0].id == "ec_1"
        assert plan.professional_contacts[0].id == "pro_1"
        assert any(h.phone == "988" for h in plan.crisis_hotlines)
        assert plan.follow_up_plan.immediate_follow_up == NOW + timedelta(hours=24)
        assert plan.follow_up_plan.professional_follow_up == NOW + timedelta(days=7)
        assert plan.follow_up_plan.review_date == NOW + timedelta(days=30)

    async def test_plan_persisted_and_delivered(self, directory):
        store = InMemoryEscalationStore()
        sink = OutboxNotificationSink()
        builder = SafetyPlanBuilder(directory, store, sink)

        plan = await builder.create_safety_plan("user_1", assessment())

        assert await store.latest_safety_plan("user_1") == plan
        assert sink.for_user("user_1", "safety_plan")[0].payload["id"] == plan.id

    async def test_store_and_sink_failures_still_return_plan(self, directory):
        class BrokenStore(InMemoryEscalationStore):
            async def insert_safety_plan(self, plan):
                raise PersistenceFailure("db down")

        class BrokenSink(OutboxNotificationSink):
            async def send_safety_plan(self, user_id, plan):
                raise RuntimeError("push down")

        builder = SafetyPlanBuilder(directory, BrokenStore(), BrokenSink())

        plan = await builder.create_safety_plan("user_1", assessment("self_harm"))

        assert plan.user_id == "user_1"
        assert "Give sharp objects to someone you trust for safekeeping" in plan.environmental_safety

    async def test_directory_failure_degrades_to_last_resort(self):
        class BrokenDirectory(StaticResourceDirectory):
            async def emergency_contacts(self, user_id):
                raise RuntimeError("offline")

            async def crisis_hotlines(self, location=None):
                raise RuntimeError("offline")

        builder = SafetyPlanBuilder(
            BrokenDirectory(HotlineDirectory.load()), InMemoryEscalationStore(), OutboxNotificationSink(),
        )

        plan = await builder.create_safety_plan("user_1", assessment())

        assert plan.social_supports == ()
        assert [h.phone for h in plan.crisis_hotlines] == ["988"]
