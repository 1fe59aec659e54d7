"""Crisis engine: the surface exposed to the chat/message pipeline.

Wraps the risk assessor, escalation orchestrator and safety plan builder
behind one object, and wires default collaborators from settings.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from safeharbor.shared.config import EngineSettings
from safeharbor.shared.database import ConnectionManager, get_connection_manager
from safeharbor.shared.models import (
    AssessmentContext,
    CrisisAssessment,
    EscalationResult,
    RiskLevel,
    SafetyPlan,
)
from safeharbor.shared.utils import configure_pii_salt, safe_hash_pii
from safeharbor.services.audit_service import AuditLogger, AuditRepository
from safeharbor.services.escalation_service import (
    ChannelOperations,
    EscalationOrchestrator,
    EscalationStore,
    ImmediateActionRunner,
    InMemoryEscalationStore,
    PostgresEscalationStore,
)
from safeharbor.services.notification_service import (
    CrisisTeamAlerter,
    OutboxNotificationSink,
    UnconfiguredContactGateway,
    WebhookContactGateway,
)
from safeharbor.services.protocol_service import ProtocolCatalog, ProtocolSelector
from safeharbor.services.resource_directory import (
    HotlineDirectory,
    PostgresResourceDirectory,
    StaticResourceDirectory,
)
from safeharbor.services.risk_service import (
    BehaviorStore,
    InMemoryBehaviorStore,
    NeutralClassifier,
    PostgresBehaviorStore,
    RiskAssessor,
    TransformersEmotionClassifier,
)
from safeharbor.services.safety_plan_service import SafetyPlanBuilder

logger = logging.getLogger(__name__)

ESCALATION_THRESHOLD = RiskLevel.HIGH

REQUIRED_TABLES = (
    "crisis_assessments",
    "crisis_escalations",
    "emergency_events",
    "hotline_connections",
    "safety_plans",
    "crisis_follow_ups",
    "crisis_flags",
    "mood_entries",
    "conversation_sessions",
    "user_locations",
    "emergency_contacts",
    "professional_contacts",
    "audit_log",
)


@dataclass(frozen=True)
class ProcessedMessage:
    """Assessment of one message plus its escalation, if any."""
    assessment: CrisisAssessment
    escalation: Optional[EscalationResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assessment": self.assessment.to_dict(),
            "escalation": self.escalation.to_dict() if self.escalation else None,
        }


class CrisisEngine:
    """Analyze, escalate, and build safety plans. No method raises."""

    def __init__(
        self,
        assessor: RiskAssessor,
        orchestrator: EscalationOrchestrator,
        safety_plans: SafetyPlanBuilder,
        store: EscalationStore,
        behavior_store: BehaviorStore,
        connection_manager: Optional[ConnectionManager] = None,
    ):
        self.assessor = assessor
        self.orchestrator = orchestrator
        self.safety_plans = safety_plans
        self.store = store
        self.behavior_store = behavior_store
        self.connection_manager = connection_manager

    async def analyze(
        self,
        text: str,
        user_id: str,
        session_id: str,
        message_id: str,
        context: Optional[AssessmentContext] = None,
    ) -> CrisisAssessment:
        return await self.assessor.analyze(text, user_id, session_id, message_id, context)

    async def handle_escalation(self, assessment: CrisisAssessment) -> EscalationResult:
        return await self.orchestrator.handle_escalation(assessment)

    async def create_safety_plan(self, user_id: str, assessment: CrisisAssessment) -> SafetyPlan:
        return await self.safety_plans.create_safety_plan(user_id, assessment)

    async def find_assessment(self, assessment_id: str) -> Optional[CrisisAssessment]:
        """Stored assessment by id; None when absent or the store is unavailable."""
        try:
            return await self.store.find_assessment(assessment_id)
        except Exception as e:
            logger.error(
                "ASSESSMENT_LOOKUP_FAILED",
                extra={"assessment_id": assessment_id, "error": str(e)}
            )
            return None

    async def process_message(
        self,
        text: str,
        user_id: str,
        session_id: str,
        message_id: str,
        context: Optional[AssessmentContext] = None,
    ) -> ProcessedMessage:
        """Assess a message, persist the assessment, and escalate high or critical risk."""
        assessment = await self.analyze(text, user_id, session_id, message_id, context)

        try:
            await self.store.insert_assessment(assessment)
        except Exception as e:
            logger.error(
                "ASSESSMENT_PERSIST_FAILED",
                extra={"assessment_id": assessment.id, "error": str(e), "error_type": type(e).__name__}
            )

        if assessment.risk_level < ESCALATION_THRESHOLD:
            return ProcessedMessage(assessment=assessment)

        try:
            await self.behavior_store.record_crisis_flag(user_id, assessment.created_at)
        except Exception as e:
            logger.error(
                "CRISIS_FLAG_PERSIST_FAILED",
                extra={"user_id_hash": safe_hash_pii(user_id), "error": str(e)}
            )

        escalation = await self.handle_escalation(assessment)
        return ProcessedMessage(assessment=assessment, escalation=escalation)

    async def drain(self) -> Dict[str, int]:
        return await self.orchestrator.drain()

    def readiness(self) -> Dict[str, Any]:
        """Catalog versions, plus database health when PostgreSQL stores are in use."""
        status: Dict[str, Any] = {
            "protocol_catalog_version": self.orchestrator.selector.catalog.version,
            "database": None,
            "ready": True,
        }
        if self.connection_manager is not None:
            health = self.connection_manager.health_check(REQUIRED_TABLES)
            status["database"] = health
            status["ready"] = health["healthy"]
        return status


def build_engine(settings: Optional[EngineSettings] = None) -> CrisisEngine:
    """Wire a CrisisEngine from settings.

    Args:
        settings: Engine settings; read from the environment when None

    Returns:
        CrisisEngine with in-memory or PostgreSQL stores, the webhook or
        unconfigured gateway, and the transformers or neutral classifier
    """
    settings = settings or EngineSettings.from_env()
    configure_pii_salt(settings.pii_salt)

    protocols = ProtocolCatalog.load(settings.protocol_catalog_path)
    hotlines = HotlineDirectory.load(settings.hotline_directory_path)

    manager = None
    if settings.database_enabled:
        manager = get_connection_manager()
        directory = PostgresResourceDirectory(hotlines, manager, settings.default_country)
        behavior_store = PostgresBehaviorStore(manager)
        store = PostgresEscalationStore(manager)
        audit = AuditLogger(repository=AuditRepository(manager))
    else:
        directory = StaticResourceDirectory(hotlines, settings.default_country)
        behavior_store = InMemoryBehaviorStore()
        store = InMemoryEscalationStore()
        audit = AuditLogger()

    if settings.gateway_configured:
        gateway = WebhookContactGateway(
            contact_url=settings.contact_webhook_url,
            dispatch_url=settings.dispatch_webhook_url,
            referral_url=settings.referral_webhook_url,
            timeout_seconds=settings.webhook_timeout_seconds,
        )
    else:
        gateway = UnconfiguredContactGateway()

    if settings.classifier_enabled:
        classifier = TransformersEmotionClassifier(settings.classifier_model)
    else:
        classifier = NeutralClassifier()

    notifications = OutboxNotificationSink()
    alerter = CrisisTeamAlerter(
        stream_name=settings.crisis_stream_name,
        enabled=settings.alerts_enabled,
        region=settings.aws_region,
    )

    channels = ChannelOperations(directory, gateway, store, settings.default_language)
    orchestrator = EscalationOrchestrator(
        selector=ProtocolSelector(protocols),
        directory=directory,
        channels=channels,
        actions=ImmediateActionRunner(channels, directory, notifications, store, audit),
        store=store,
        audit=audit,
        alerter=alerter,
        confirmation_seconds=settings.channel_confirmation_seconds,
    )
    assessor = RiskAssessor(
        classifier=classifier,
        behavior_store=behavior_store,
        behavior_window=settings.behavior_window,
        crisis_flag_window_days=settings.crisis_flag_window_days,
        crisis_flag_threshold=settings.crisis_flag_threshold,
    )

    logger.info(
        "CRISIS_ENGINE_BUILT",
        extra={
            "protocol_catalog_version": protocols.version,
            "hotline_directory_version": hotlines.version,
            "database_enabled": settings.database_enabled,
            "gateway": type(gateway).__name__,
            "classifier": type(classifier).__name__,
            "alerts_enabled": settings.alerts_enabled,
        }
    )
    return CrisisEngine(
        assessor=assessor,
        orchestrator=orchestrator,
        safety_plans=SafetyPlanBuilder(directory, store, notifications),
        store=store,
        behavior_store=behavior_store,
        connection_manager=manager,
    )
