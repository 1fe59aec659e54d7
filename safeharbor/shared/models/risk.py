"""Risk level and crisis assessment domain models.

Defines the ordered risk scale, the immutable per-message assessment, and
the behavioral inputs the risk assessor consumes.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import total_ordering
from typing import Any, Dict, FrozenSet, Optional, Tuple


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


@total_ordering
class RiskLevel(Enum):
    """Ordered severity of a crisis signal: LOW < MEDIUM < HIGH < CRITICAL."""
    LOW = "low"             # Wellness content, routine check-in
    MEDIUM = "medium"       # Resources and mood tracking
    HIGH = "high"           # Professional alert, safety check
    CRITICAL = "critical"   # Immediate intervention

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self.value)

    def __lt__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank < other.rank

    def escalate(self, bands: int = 1) -> "RiskLevel":
        """Return the level ``bands`` steps higher, capped at CRITICAL."""
        index = min(self.rank + bands, len(_RISK_ORDER) - 1)
        return RiskLevel(_RISK_ORDER[index])


_RISK_ORDER = ("low", "medium", "high", "critical")


@dataclass(frozen=True)
class CrisisAssessment:
    """Immutable risk assessment for a single inbound message.

    Created once per message by the risk assessor, consumed by the protocol
    selector and orchestrator, then persisted read-only for audit.
    """
    id: str
    user_id: str
    session_id: str
    message_id: str
    risk_level: RiskLevel
    confidence: float
    triggers: Tuple[str, ...] = ()
    time_to_intervention_seconds: int = 3600
    recommended_actions: FrozenSet[str] = frozenset()
    assessment_text: str = ""
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be 0.0-1.0, got {self.confidence}")

    def has_trigger(self, *tags: str) -> bool:
        return any(tag in self.triggers for tag in tags)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage and API responses."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "message_id": self.message_id,
            "risk_level": self.risk_level.value,
            "confidence": round(self.confidence, 3),
            "triggers": list(self.triggers),
            "time_to_intervention_seconds": self.time_to_intervention_seconds,
            "recommended_actions": sorted(self.recommended_actions),
            "assessment_text": self.assessment_text,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrisisAssessment":
        created_at = data.get("created_at")
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            session_id=data.get("session_id", ""),
            message_id=data.get("message_id", ""),
            risk_level=RiskLevel(data["risk_level"]),
            confidence=float(data["confidence"]),
            triggers=tuple(data.get("triggers", ())),
            time_to_intervention_seconds=int(data.get("time_to_intervention_seconds", 3600)),
            recommended_actions=frozenset(data.get("recommended_actions", ())),
            assessment_text=data.get("assessment_text", ""),
            created_at=datetime.fromisoformat(created_at) if created_at else utcnow(),
        )


@dataclass(frozen=True)
class BehaviorEntry:
    """A recent mood check-in used for trend analysis.

    Scores use the mood check-in scale (1 = lowest, 10 = highest).
    """
    score: float
    timestamp: datetime
    sleep_quality: Optional[float] = None


@dataclass(frozen=True)
class SentimentReading:
    """Output of the external sentiment/emotion classifier."""
    sentiment: float                            # -1.0 (very negative) to 1.0
    emotions: Dict[str, float] = field(default_factory=dict)
    confidence: float = 0.0

    def __post_init__(self):
        if not -1.0 <= self.sentiment <= 1.0:
            raise ValueError(f"Sentiment must be -1.0-1.0, got {self.sentiment}")

    def emotion(self, name: str) -> float:
        return float(self.emotions.get(name, 0.0))


@dataclass(frozen=True)
class AssessmentContext:
    """Caller-supplied conversation context for an assessment.

    When omitted the assessor derives crisis history from the behavior store.
    ``current_mood`` is an extra check-in on the mood scale taken now.
    ``recent_message_count`` counts conversations in the last week; None
    means unknown and the behavior store is asked instead.
    """
    recent_crisis_flags: int = 0
    current_mood: Optional[float] = None
    recent_message_count: Optional[int] = None
