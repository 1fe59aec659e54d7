"""Risk assessor: message text + behavioral context -> CrisisAssessment.

Combines three independent signals and takes the maximum severity:
1. Deterministic phrase matching (can alone justify critical)
2. Delegated sentiment/emotion classification (degrades to neutral)
3. Behavioral trend over recent mood check-ins and crisis flags

Never raises. Any internal failure produces a conservative fallback
assessment so the crisis pipeline never goes silent.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Tuple

from safeharbor.shared.models import (
    AssessmentContext,
    BehaviorEntry,
    CrisisAssessment,
    RiskLevel,
    utcnow,
)
from safeharbor.shared.utils import hash_pii, hash_text_for_audit, safe_hash_pii
from .behavior import CONVERSATION_WINDOW_DAYS, BehaviorStore, InMemoryBehaviorStore
from .classifier import NeutralClassifier, SentimentClassifier
from .keywords import KeywordMatcher, KeywordSignal, normalize_text

logger = logging.getLogger(__name__)


# Strictly decreasing as risk increases
TIME_TO_INTERVENTION_SECONDS = {
    RiskLevel.CRITICAL: 0,
    RiskLevel.HIGH: 300,
    RiskLevel.MEDIUM: 1800,
    RiskLevel.LOW: 3600,
}

RECOMMENDED_ACTIONS = {
    RiskLevel.CRITICAL: ("immediate_intervention", "emergency_contact", "crisis_hotline", "safety_plan"),
    RiskLevel.HIGH: ("professional_alert", "crisis_resources", "safety_check", "follow_up_24h"),
    RiskLevel.MEDIUM: ("provide_resources", "mood_tracking", "self_care_suggestions", "follow_up_48h"),
    RiskLevel.LOW: ("wellness_tips", "routine_check_in"),
}

# Signal weights for the confidence blend
KEYWORD_WEIGHT = 0.5
SENTIMENT_WEIGHT = 0.3
BEHAVIOR_WEIGHT = 0.2

BASELINE_CONFIDENCE = 0.5       # No informative signal at all
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95
CLASSIFIER_FAILURE_CAP = 0.2

# More conversations than this in a week reads as increased help seeking
HELP_SEEKING_CONVERSATIONS = 10

ANALYSIS_ERROR = "analysis_error"
CLASSIFIER_UNAVAILABLE = "classifier_unavailable"


def time_to_intervention(level: RiskLevel) -> int:
    return TIME_TO_INTERVENTION_SECONDS[level]


def recommended_actions(level: RiskLevel, triggers: Tuple[str, ...]) -> frozenset:
    actions = set(RECOMMENDED_ACTIONS[level])
    if any("isolation" in t or t == "social_withdrawal" for t in triggers):
        actions.add("social_connection_support")
    if any("sleep" in t for t in triggers):
        actions.add("sleep_hygiene_guidance")
    return frozenset(actions)


@dataclass(frozen=True)
class SignalResult:
    """Severity band, confidence and triggers from one signal."""
    level: RiskLevel
    confidence: float
    triggers: Tuple[str, ...] = ()
    informative: bool = False
    failed: bool = False
    escalate: bool = False          # Behavioral escalation by one band


class RiskAssessor:
    """Turns a message and its context into an immutable CrisisAssessment."""

    def __init__(
        self,
        classifier: Optional[SentimentClassifier] = None,
        behavior_store: Optional[BehaviorStore] = None,
        keyword_matcher: Optional[KeywordMatcher] = None,
        behavior_window: int = 10,
        crisis_flag_window_days: int = 7,
        crisis_flag_threshold: int = 2,
    ):
        self.classifier = classifier or NeutralClassifier()
        self.behavior_store = behavior_store or InMemoryBehaviorStore()
        self.keyword_matcher = keyword_matcher or KeywordMatcher()
        self.behavior_window = behavior_window
        self.crisis_flag_window_days = crisis_flag_window_days
        self.crisis_flag_threshold = crisis_flag_threshold

        logger.info(
            "RISK_ASSESSOR_INITIALIZED",
            extra={
                "classifier": type(self.classifier).__name__,
                "behavior_store": type(self.behavior_store).__name__,
                "behavior_window": behavior_window,
            }
        )

    async def analyze(
        self,
        text: str,
        user_id: str,
        session_id: str,
        message_id: str,
        context: Optional[AssessmentContext] = None,
    ) -> CrisisAssessment:
        """Assess a single inbound message.

        Args:
            text: Raw message text (never logged)
            user_id: User identifier (logged only as a hash)
            session_id: Conversation session
            message_id: Message being assessed
            context: Optional caller-supplied context; when absent, crisis
                history comes from the behavior store

        Returns:
            CrisisAssessment; a medium-risk fallback on internal failure
        """
        try:
            user_id_hash = hash_pii(user_id)
            keyword = self.keyword_matcher.match(normalize_text(text))

            sentiment, behavior = await asyncio.gather(
                self._sentiment_signal(text),
                self._behavior_signal(user_id, context),
            )

            assessment = self._fuse(
                keyword, sentiment, behavior,
                user_id=user_id,
                session_id=session_id,
                message_id=message_id,
            )

        except Exception as e:
            logger.error(
                "RISK_ASSESSMENT_FAILED",
                extra={
                    "user_id_hash": safe_hash_pii(user_id),
                    "message_id": message_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "FALLBACK_ASSESSMENT",
                }
            )
            return fallback_assessment(user_id, session_id, message_id)

        log = logger.critical if assessment.risk_level is RiskLevel.CRITICAL else logger.info
        log(
            "RISK_ASSESSMENT_COMPLETED",
            extra={
                "assessment_id": assessment.id,
                "user_id_hash": user_id_hash,
                "session_id": session_id,
                "message_id": message_id,
                "risk_level": assessment.risk_level.value,
                "confidence": round(assessment.confidence, 3),
                "triggers": list(assessment.triggers),
                "text_hash": hash_text_for_audit(text),
                "text_length": len(text),
            }
        )
        return assessment

    async def _sentiment_signal(self, text: str) -> SignalResult:
        try:
            reading = await self.classifier.analyze_sentiment(text)
        except Exception as e:
            logger.warning(
                "SENTIMENT_SIGNAL_DEGRADED",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return SignalResult(
                level=RiskLevel.LOW,
                confidence=0.0,
                triggers=(CLASSIFIER_UNAVAILABLE,),
                failed=True,
            )

        if reading.confidence <= 0.0:
            return SignalResult(level=RiskLevel.LOW, confidence=0.0)

        level = RiskLevel.LOW
        confidence = 0.6
        triggers: List[str] = []

        if reading.sentiment < -0.8:
            level, confidence = RiskLevel.HIGH, 0.8
            triggers.append("severe_negative_sentiment")
        elif reading.sentiment < -0.6:
            level, confidence = RiskLevel.MEDIUM, 0.7
            triggers.append("moderate_negative_sentiment")

        if reading.emotion("fear") > 0.8 or reading.emotion("sadness") > 0.8:
            level = max(level, RiskLevel.HIGH)
            triggers.append("extreme_negative_emotions")

        if reading.emotion("anger") > 0.7 and reading.emotion("disgust") > 0.7:
            level = max(level, RiskLevel.MEDIUM)
            triggers.append("combined_negative_emotions")

        return SignalResult(
            level=level,
            confidence=min(confidence, MAX_CONFIDENCE),
            triggers=tuple(triggers),
            informative=True,
        )

    async def _behavior_signal(
        self,
        user_id: str,
        context: Optional[AssessmentContext],
    ) -> SignalResult:
        conversations = context.recent_message_count if context is not None else None
        try:
            entries = await self.behavior_store.recent_entries(user_id, self.behavior_window)
            if context is not None:
                crisis_flags = context.recent_crisis_flags
                if context.current_mood is not None:
                    entries = list(entries) + [BehaviorEntry(score=context.current_mood, timestamp=utcnow())]
            else:
                crisis_flags = await self.behavior_store.recent_crisis_flags(
                    user_id, self.crisis_flag_window_days
                )
            if conversations is None:
                conversations = await self.behavior_store.recent_conversation_count(
                    user_id, CONVERSATION_WINDOW_DAYS
                )
        except Exception as e:
            logger.error(
                "BEHAVIOR_HISTORY_UNAVAILABLE",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return SignalResult(level=RiskLevel.LOW, confidence=0.0)

        return evaluate_behavior(
            entries,
            crisis_flags,
            crisis_flag_threshold=self.crisis_flag_threshold,
            conversation_count=conversations,
        )

    def _fuse(
        self,
        keyword: KeywordSignal,
        sentiment: SignalResult,
        behavior: SignalResult,
        user_id: str,
        session_id: str,
        message_id: str,
    ) -> CrisisAssessment:
        base = max(keyword.level, sentiment.level, behavior.level)
        level = base.escalate() if behavior.escalate else base

        triggers: List[str] = []
        for tag in keyword.triggers + sentiment.triggers + behavior.triggers:
            if tag not in triggers:
                triggers.append(tag)

        weighted = [
            (weight, signal_confidence)
            for weight, signal_confidence, informative in (
                (KEYWORD_WEIGHT, keyword.confidence, keyword.informative),
                (SENTIMENT_WEIGHT, sentiment.confidence, sentiment.informative),
                (BEHAVIOR_WEIGHT, behavior.confidence, behavior.informative),
            )
            if informative
        ]
        if weighted:
            confidence = sum(w * c for w, c in weighted) / sum(w for w, _ in weighted)
        else:
            confidence = BASELINE_CONFIDENCE

        if keyword.informative and keyword.level == base:
            confidence = max(confidence, keyword.confidence)

        confidence = max(MIN_CONFIDENCE, min(confidence, MAX_CONFIDENCE))

        actions = recommended_actions(level, tuple(triggers))
        if sentiment.failed:
            confidence = min(confidence, CLASSIFIER_FAILURE_CAP)
            actions = actions | {"manual_review"}

        return CrisisAssessment(
            id=f"assess_{uuid.uuid4().hex[:16]}",
            user_id=user_id,
            session_id=session_id,
            message_id=message_id,
            risk_level=level,
            confidence=confidence,
            triggers=tuple(triggers),
            time_to_intervention_seconds=time_to_intervention(level),
            recommended_actions=actions,
            assessment_text=_rationale(keyword, sentiment, behavior, level),
        )


def evaluate_behavior(
    entries: List[BehaviorEntry],
    crisis_flags: int,
    crisis_flag_threshold: int = 2,
    conversation_count: Optional[int] = None,
) -> SignalResult:
    """Trend check over recent mood entries, crisis history and conversation frequency.

    A sustained decline or more than ``crisis_flag_threshold`` recent flags
    escalates the final level by one band. A low mean mood, severely
    disrupted sleep or no conversations at all in the last week floors it
    at medium. An unknown conversation count is ignored.
    """
    ordered = sorted(entries, key=lambda e: e.timestamp)
    scores = [e.score for e in ordered]
    sleep = [e.sleep_quality for e in ordered if e.sleep_quality is not None]

    level = RiskLevel.LOW
    confidence = 0.6
    triggers: List[str] = []
    escalate = False

    if scores:
        mean = sum(scores) / len(scores)
        trend = mood_trend(scores)
        recent = scores[-3:]

        if (len(recent) == 3 and all(s <= 2 for s in recent)) or (mean < 3 and trend < -0.5):
            escalate = True
            confidence = 0.85
            triggers.append("declining_mood_trajectory")
        if mean < 4:
            level = RiskLevel.MEDIUM
            confidence = max(confidence, 0.7)
            triggers.append("low_mood_pattern")

    if sleep and sum(sleep) / len(sleep) < 3:
        level = RiskLevel.MEDIUM
        triggers.append("severe_sleep_disruption")

    if conversation_count is not None:
        if conversation_count > HELP_SEEKING_CONVERSATIONS:
            confidence += 0.1
            triggers.append("increased_help_seeking")
        elif conversation_count == 0:
            level = max(level, RiskLevel.MEDIUM)
            triggers.append("social_withdrawal")

    if crisis_flags > crisis_flag_threshold:
        escalate = True
        confidence += 0.1
        triggers.append("recent_crisis_history")

    return SignalResult(
        level=level,
        confidence=min(confidence, 0.9),
        triggers=tuple(triggers),
        informative=bool(scores) or crisis_flags > 0 or bool(triggers),
        escalate=escalate,
    )


def mood_trend(scores: List[float]) -> float:
    """Mean step change between consecutive scores (oldest first)."""
    if len(scores) < 2:
        return 0.0
    steps = [b - a for a, b in zip(scores, scores[1:])]
    return sum(steps) / len(steps)


def fallback_assessment(user_id: str, session_id: str, message_id: str) -> CrisisAssessment:
    """Conservative assessment returned when analysis itself fails."""
    return CrisisAssessment(
        id=f"assess_{uuid.uuid4().hex[:16]}",
        user_id=user_id,
        session_id=session_id,
        message_id=message_id,
        risk_level=RiskLevel.MEDIUM,
        confidence=0.1,
        triggers=(ANALYSIS_ERROR,),
        time_to_intervention_seconds=time_to_intervention(RiskLevel.MEDIUM),
        recommended_actions=frozenset({"manual_review", "provide_resources"}),
        assessment_text="Analysis failed - manual review required",
    )


def _rationale(
    keyword: KeywordSignal,
    sentiment: SignalResult,
    behavior: SignalResult,
    level: RiskLevel,
) -> str:
    parts = []
    if keyword.informative:
        parts.append(
            f"keywords: {len(keyword.matched_phrases)} crisis indicators "
            f"({', '.join(keyword.triggers[:3])})"
        )
    if sentiment.failed:
        parts.append("sentiment: classifier unavailable")
    elif sentiment.informative:
        parts.append(f"sentiment: {sentiment.level.value} band")
    if behavior.triggers:
        parts.append(f"behavior: {', '.join(behavior.triggers)}")
    if not parts:
        parts.append("no risk indicators found")
    return f"Overall {level.value} risk; " + "; ".join(parts)
