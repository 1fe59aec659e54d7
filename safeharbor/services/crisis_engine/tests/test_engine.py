"""Tests for the CrisisEngine facade and its wiring."""
import pytest
from unittest.mock import MagicMock, patch

from safeharbor.shared.config import EngineSettings
from safeharbor.shared.errors import PersistenceFailure
from safeharbor.shared.models import EscalationState, RiskLevel
from safeharbor.shared.utils import configure_pii_salt
from safeharbor.services.audit_service import AuditRepository
from safeharbor.services.crisis_engine import CrisisEngine, build_engine
from safeharbor.services.notification_service import UnconfiguredContactGateway, WebhookContactGateway
from safeharbor.services.risk_service import NeutralClassifier


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


CRISIS_TEXT = "I want to kill myself and have a plan to do it tonight"


@pytest.fixture
def engine():
    return build_engine(EngineSettings(pii_salt="test_salt_that_is_at_least_32_characters_long"))


class TestBuildEngine:
    def test_defaults_are_local(self, engine):
        assert isinstance(engine, CrisisEngine)
        assert isinstance(engine.orchestrator.channels.gateway, UnconfiguredContactGateway)
        assert isinstance(engine.assessor.classifier, NeutralClassifier)
        assert engine.orchestrator.alerter.enabled is False

    def test_webhook_gateway_when_configured(self):
        engine = build_engine(EngineSettings(contact_webhook_url="http://localhost:9/contact"))

        assert isinstance(engine.orchestrator.channels.gateway, WebhookContactGateway)

    def test_confirmation_window_from_settings(self):
        engine = build_engine(EngineSettings(channel_confirmation_seconds=5.0))

        assert engine.orchestrator.confirmation_seconds == 5.0

    def test_default_country_from_settings(self):
        engine = build_engine(EngineSettings(default_country="GB"))

        assert engine.orchestrator.directory.default_country == "GB"

    def test_database_enables_persistent_audit(self):
        manager = MagicMock()
        with patch("safeharbor.services.crisis_engine.engine.get_connection_manager", return_value=manager):
            engine = build_engine(EngineSettings(database_enabled=True))

        audit = engine.orchestrator.audit
        assert isinstance(audit._repository, AuditRepository)
        assert audit._repository.connection_manager is manager
        assert audit is engine.orchestrator.actions.audit
        # Chain head is read lazily on first write
        manager.get_connection.assert_not_called()


class TestReadiness:
    def test_in_memory_engine_is_ready(self, engine):
        status = engine.readiness()

        assert status["ready"] is True
        assert status["database"] is None
        assert status["protocol_catalog_version"]

    def test_incomplete_schema_is_not_ready(self, engine):
        engine.connection_manager = MagicMock()
        engine.connection_manager.health_check.return_value = {
            "status": "schema_incomplete", "healthy": False, "missing_tables": ["crisis_flags"],
        }

        status = engine.readiness()

        assert status["ready"] is False
        assert status["database"]["missing_tables"] == ["crisis_flags"]
        required = engine.connection_manager.health_check.call_args.args[0]
        assert "crisis_escalations" in required
        assert "audit_log" in required


@pytest.mark.asyncio
class TestProcessMessage:
    async def test_critical_message_is_escalated(self, engine):
        processed = await engine.process_message(CRISIS_TEXT, "user_1", "sess_1", "msg_1")

        assert processed.assessment.risk_level == RiskLevel.CRITICAL
        assert processed.escalation is not None
        assert processed.escalation.protocol_name == "suicide_risk"
        assert processed.escalation.alternatives
        assert await engine.find_assessment(processed.assessment.id) == processed.assessment

    async def test_escalation_records_crisis_flag(self, engine):
        await engine.process_message(CRISIS_TEXT, "user_1", "sess_1", "msg_1")

        assert await engine.behavior_store.recent_crisis_flags("user_1", 7) == 1

    async def test_low_risk_is_not_escalated(self, engine):
        processed = await engine.process_message(
            "Thanks, I had a good week at work and feel fine", "user_1", "sess_1", "msg_2",
        )

        assert processed.escalation is None
        assert await engine.behavior_store.recent_crisis_flags("user_1", 7) == 0
        assert processed.to_dict()["escalation"] is None

    async def test_persistence_failure_does_not_block_escalation(self, engine):
        with patch.object(
            engine.store, "insert_assessment", side_effect=PersistenceFailure("db down"),
        ):
            processed = await engine.process_message(CRISIS_TEXT, "user_1", "sess_1", "msg_1")

        assert processed.escalation is not None
        assert processed.escalation.state in (EscalationState.SUCCESS, EscalationState.PARTIAL)

    async def test_safety_plan_from_engine(self, engine):
        assessment = await engine.analyze(CRISIS_TEXT, "user_1", "sess_1", "msg_1")

        plan = await engine.create_safety_plan("user_1", assessment)

        assert plan.risk_level == RiskLevel.CRITICAL
        assert await engine.store.latest_safety_plan("user_1") == plan

    async def test_unknown_assessment(self, engine):
        assert await engine.find_assessment("missing") is None
