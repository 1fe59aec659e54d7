"""Shared domain models for the SafeHarbor crisis subsystem."""
from .risk import (
    RiskLevel,
    CrisisAssessment,
    BehaviorEntry,
    SentimentReading,
    AssessmentContext,
    utcnow,
)
from .resources import (
    Relationship,
    ServiceType,
    Location,
    EmergencyContact,
    ProfessionalContact,
    CrisisHotline,
    EmergencyServiceUnit,
    AlternativeResource,
    LAST_RESORT_RESOURCES,
)
from .escalation import (
    Channel,
    ImmediateAction,
    EscalationState,
    InterventionProtocol,
    ChannelOutcome,
    ActionOutcome,
    ContactNotification,
    ChannelResult,
    EscalationResult,
    FollowUpPlan,
    SafetyPlan,
)

__all__ = [
    "RiskLevel",
    "CrisisAssessment",
    "BehaviorEntry",
    "SentimentReading",
    "AssessmentContext",
    "utcnow",
    "Relationship",
    "ServiceType",
    "Location",
    "EmergencyContact",
    "ProfessionalContact",
    "CrisisHotline",
    "EmergencyServiceUnit",
    "AlternativeResource",
    "LAST_RESORT_RESOURCES",
    "Channel",
    "ImmediateAction",
    "EscalationState",
    "InterventionProtocol",
    "ChannelOutcome",
    "ActionOutcome",
    "ContactNotification",
    "ChannelResult",
    "EscalationResult",
    "FollowUpPlan",
    "SafetyPlan",
]
