"""Append-only records written by the escalation service."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from safeharbor.shared.models import utcnow


@dataclass(frozen=True)
class EscalationRecord:
    """Persisted derivation of one escalation, written on every invocation."""
    id: str
    assessment_id: str
    user_id: str
    risk_level: str
    protocol_name: Optional[str]
    catalog_version: Optional[str]
    state: str
    action_outcomes: List[Dict[str, Any]] = field(default_factory=list)
    channel_outcomes: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "user_id": self.user_id,
            "risk_level": self.risk_level,
            "protocol_name": self.protocol_name,
            "catalog_version": self.catalog_version,
            "state": self.state,
            "action_outcomes": self.action_outcomes,
            "channel_outcomes": self.channel_outcomes,
            "error": self.error,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "EscalationRecord":
        return cls(**row)


@dataclass(frozen=True)
class EmergencyEvent:
    """One emergency-services contact attempt and its per-unit results."""
    id: str
    user_id: str
    emergency_type: str
    contact_results: List[Dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "emergency_type": self.emergency_type,
            "contact_results": self.contact_results,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "EmergencyEvent":
        return cls(**row)


@dataclass(frozen=True)
class HotlineConnection:
    """A hotline offered to the user during an escalation."""
    id: str
    user_id: str
    hotline_id: str
    hotline_name: str
    hotline_phone: str
    created_at: datetime = field(default_factory=utcnow)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "hotline_id": self.hotline_id,
            "hotline_name": self.hotline_name,
            "hotline_phone": self.hotline_phone,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "HotlineConnection":
        return cls(**row)


@dataclass(frozen=True)
class FollowUp:
    """A scheduled follow-up after an escalation."""
    id: str
    user_id: str
    escalation_id: str
    due_at: datetime
    reason: str
    created_at: datetime = field(default_factory=utcnow)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "escalation_id": self.escalation_id,
            "due_at": self.due_at,
            "reason": self.reason,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "FollowUp":
        return cls(**row)
