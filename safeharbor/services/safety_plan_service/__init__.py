"""Safety Plan Service: trigger-keyed coping plans with follow-up schedule."""

from .builder import SafetyPlanBuilder
from .strategies import suggest_coping_strategies, suggest_environmental_safety

__all__ = [
    "SafetyPlanBuilder",
    "suggest_coping_strategies",
    "suggest_environmental_safety",
]
