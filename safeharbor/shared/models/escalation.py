"""Escalation domain models: protocols, outcomes, results and safety plans.

Protocols are configuration data loaded from the protocol catalog. Results
and outcomes are produced by the escalation orchestrator and returned to
the caller; their derivation is persisted as an escalation record.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .resources import (
    AlternativeResource,
    CrisisHotline,
    EmergencyContact,
    ProfessionalContact,
    Relationship,
)
from .risk import RiskLevel, utcnow


class Channel(Enum):
    """Contact channels, attempted in catalog order."""
    CRISIS_HOTLINE = "crisis_hotline"
    EMERGENCY_CONTACTS = "emergency_contacts"
    MENTAL_HEALTH_SERVICES = "mental_health_services"
    EMERGENCY_DISPATCH = "emergency_dispatch"   # "911"-class channel

    @classmethod
    def parse(cls, tag: str) -> "Channel":
        """Parse a catalog tag, accepting legacy aliases."""
        return cls(CHANNEL_ALIASES.get(tag, tag))


CHANNEL_ALIASES: Dict[str, str] = {
    "911": Channel.EMERGENCY_DISPATCH.value,
    "hotline": Channel.CRISIS_HOTLINE.value,
}


class ImmediateAction(Enum):
    """Actions executed concurrently before the contact sequence."""
    PROVIDE_CRISIS_RESOURCES = "provide_crisis_resources"
    PROVIDE_RESOURCES = "provide_resources"
    ACTIVATE_SAFETY_PLAN = "activate_safety_plan"
    CONTACT_EMERGENCY_CONTACTS = "contact_emergency_contacts"
    EMOTIONAL_SUPPORT = "emotional_support"
    COPING_STRATEGIES = "coping_strategies"
    SAFETY_CHECK = "safety_check"
    SAFETY_ASSESSMENT = "safety_assessment"
    PROFESSIONAL_CONSULTATION = "professional_consultation"


class EscalationState(Enum):
    """Terminal states of an escalation."""
    SUCCESS = "escalated-success"   # At least one contact channel succeeded
    PARTIAL = "escalated-partial"   # Some immediate action succeeded, no contact did
    FAILED = "escalated-failed"     # Nothing succeeded; alternatives still returned


@dataclass(frozen=True)
class InterventionProtocol:
    """Configured response plan for a risk category."""
    name: str
    risk_level: RiskLevel
    immediate_actions: Tuple[ImmediateAction, ...]
    contact_sequence: Tuple[Channel, ...]
    timeout_minutes: int
    follow_up_required: bool

    def __post_init__(self):
        if self.timeout_minutes <= 0:
            raise ValueError(f"timeout_minutes must be positive, got {self.timeout_minutes}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "risk_level": self.risk_level.value,
            "immediate_actions": [a.value for a in self.immediate_actions],
            "contact_sequence": [c.value for c in self.contact_sequence],
            "timeout_minutes": self.timeout_minutes,
            "follow_up_required": self.follow_up_required,
        }


@dataclass(frozen=True)
class ChannelOutcome:
    """Result of one contact-sequence step."""
    channel: Channel
    success: bool
    detail: str = ""
    reference_number: Optional[str] = None
    response_time_seconds: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel.value,
            "success": self.success,
            "detail": self.detail,
            "reference_number": self.reference_number,
            "response_time_seconds": self.response_time_seconds,
        }


@dataclass(frozen=True)
class ActionOutcome:
    """Result of one immediate action."""
    action: ImmediateAction
    success: bool
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action.value, "success": self.success, "detail": self.detail}


@dataclass(frozen=True)
class ContactNotification:
    """Per-contact delivery outcome from an emergency-contact fan-out."""
    contact_id: str
    success: bool
    detail: str = ""
    reference_number: Optional[str] = None


@dataclass(frozen=True)
class ChannelResult:
    """Structured result of a standalone channel operation.

    Channel operations return this instead of raising.
    """
    success: bool
    detail: str = ""
    reference_number: Optional[str] = None
    response_time_seconds: Optional[int] = None
    hotline: Optional[CrisisHotline] = None
    notifications: Tuple[ContactNotification, ...] = ()
    alternatives: Tuple[AlternativeResource, ...] = ()

    def as_outcome(self, channel: Channel) -> ChannelOutcome:
        return ChannelOutcome(
            channel=channel,
            success=self.success,
            detail=self.detail,
            reference_number=self.reference_number,
            response_time_seconds=self.response_time_seconds,
        )


@dataclass(frozen=True)
class EscalationResult:
    """Ephemeral result of an escalation, returned to the caller."""
    success: bool
    state: EscalationState
    protocol_name: Optional[str]
    contacted_services: Tuple[Channel, ...] = ()
    reference_number: Optional[str] = None
    estimated_response_time_seconds: Optional[int] = None
    error: Optional[str] = None
    alternatives: Tuple[AlternativeResource, ...] = ()
    channel_outcomes: Tuple[ChannelOutcome, ...] = ()
    action_outcomes: Tuple[ActionOutcome, ...] = ()
    escalation_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "escalation_id": self.escalation_id,
            "success": self.success,
            "state": self.state.value,
            "protocol_name": self.protocol_name,
            "contacted_services": [c.value for c in self.contacted_services],
            "reference_number": self.reference_number,
            "estimated_response_time_seconds": self.estimated_response_time_seconds,
            "error": self.error,
            "alternatives": [a.to_dict() for a in self.alternatives],
            "channel_outcomes": [o.to_dict() for o in self.channel_outcomes],
            "action_outcomes": [o.to_dict() for o in self.action_outcomes],
        }


@dataclass(frozen=True)
class FollowUpPlan:
    """Three scheduled follow-ups attached to a safety plan."""
    immediate_follow_up: datetime
    professional_follow_up: datetime
    review_date: datetime

    @classmethod
    def starting_at(cls, now: datetime) -> "FollowUpPlan":
        return cls(
            immediate_follow_up=now + timedelta(hours=24),
            professional_follow_up=now + timedelta(days=7),
            review_date=now + timedelta(days=30),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "immediate_follow_up": self.immediate_follow_up.isoformat(),
            "professional_follow_up": self.professional_follow_up.isoformat(),
            "review_date": self.review_date.isoformat(),
        }


@dataclass(frozen=True)
class SafetyPlan:
    """Personal safety plan assembled after an assessment."""
    id: str
    user_id: str
    risk_level: RiskLevel
    triggers: Tuple[str, ...]
    coping_strategies: Tuple[str, ...]
    social_supports: Tuple[EmergencyContact, ...]
    professional_contacts: Tuple[ProfessionalContact, ...]
    crisis_hotlines: Tuple[CrisisHotline, ...]
    environmental_safety: Tuple[str, ...]
    follow_up_plan: FollowUpPlan
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "risk_level": self.risk_level.value,
            "triggers": list(self.triggers),
            "coping_strategies": list(self.coping_strategies),
            "social_supports": [
                {
                    "id": c.id,
                    "name": c.name,
                    "phone": c.phone,
                    "relationship": c.relationship.value,
                    "priority": c.priority,
                }
                for c in self.social_supports
            ],
            "professional_contacts": [
                {
                    "id": p.id,
                    "name": p.name,
                    "phone": p.phone,
                    "specialty": p.specialty,
                    "emergency_available": p.emergency_available,
                }
                for p in self.professional_contacts
            ],
            "crisis_hotlines": [h.to_dict() for h in self.crisis_hotlines],
            "environmental_safety": list(self.environmental_safety),
            "follow_up_plan": self.follow_up_plan.to_dict(),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SafetyPlan":
        """Rebuild a stored plan so it can be re-delivered."""
        follow_up = data["follow_up_plan"]
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            risk_level=RiskLevel(data["risk_level"]),
            triggers=tuple(data.get("triggers", ())),
            coping_strategies=tuple(data.get("coping_strategies", ())),
            social_supports=tuple(
                EmergencyContact(
                    id=c["id"],
                    name=c["name"],
                    phone=c["phone"],
                    relationship=Relationship(c.get("relationship", "other")),
                    priority=int(c["priority"]),
                )
                for c in data.get("social_supports", ())
            ),
            professional_contacts=tuple(
                ProfessionalContact(
                    id=p["id"],
                    name=p["name"],
                    phone=p["phone"],
                    specialty=p.get("specialty", "counselor"),
                    emergency_available=bool(p.get("emergency_available", False)),
                )
                for p in data.get("professional_contacts", ())
            ),
            crisis_hotlines=tuple(
                CrisisHotline(
                    id=h["id"],
                    name=h["name"],
                    phone=h["phone"],
                    available_24h=bool(h["available_24h"]),
                    languages=frozenset(h.get("languages", ["en"])),
                    specializations=frozenset(h.get("specializations", [])),
                    country_code=h.get("country_code", "US"),
                    average_wait_time_seconds=int(h.get("average_wait_time_seconds", 60)),
                    website=h.get("website"),
                )
                for h in data.get("crisis_hotlines", ())
            ),
            environmental_safety=tuple(data.get("environmental_safety", ())),
            follow_up_plan=FollowUpPlan(
                immediate_follow_up=datetime.fromisoformat(follow_up["immediate_follow_up"]),
                professional_follow_up=datetime.fromisoformat(follow_up["professional_follow_up"]),
                review_date=datetime.fromisoformat(follow_up["review_date"]),
            ),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
