"""Risk Service: per-message crisis risk assessment.

Layer 1: deterministic phrase matching
Layer 2: delegated sentiment/emotion classification
Layer 3: behavioral trend over recent mood check-ins

The assessor never raises; failures produce a conservative fallback.
"""

from .assessor import (
    RiskAssessor,
    fallback_assessment,
    time_to_intervention,
    recommended_actions,
    evaluate_behavior,
)
from .behavior import BehaviorStore, InMemoryBehaviorStore, PostgresBehaviorStore
from .classifier import (
    SentimentClassifier,
    NeutralClassifier,
    TransformersEmotionClassifier,
)
from .keywords import KeywordMatcher, KeywordSignal, normalize_text

__all__ = [
    "RiskAssessor",
    "fallback_assessment",
    "time_to_intervention",
    "recommended_actions",
    "evaluate_behavior",
    "BehaviorStore",
    "InMemoryBehaviorStore",
    "PostgresBehaviorStore",
    "SentimentClassifier",
    "NeutralClassifier",
    "TransformersEmotionClassifier",
    "KeywordMatcher",
    "KeywordSignal",
    "normalize_text",
]
