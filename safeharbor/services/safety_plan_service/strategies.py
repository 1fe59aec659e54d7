"""Static reference lists for coping strategies and environmental safety.

Suggestions are keyed by trigger tag. Base lists always apply; additions
are appended in trigger order without duplicates.
"""
from typing import Dict, Iterable, List, Tuple

BASE_COPING_STRATEGIES: Tuple[str, ...] = (
    "Deep breathing exercises (4-7-8 technique)",
    "Grounding technique (5-4-3-2-1 sensory method)",
    "Progressive muscle relaxation",
    "Mindfulness meditation",
    "Call a trusted friend or family member",
    "Engage in physical activity",
    "Listen to calming music",
    "Write in a journal",
)

TRIGGER_COPING_STRATEGIES: Dict[str, Tuple[str, ...]] = {
    "self_harm": (
        "Hold ice cubes or splash cold water on your face",
        "Draw on your skin with a red marker instead",
        "Squeeze a stress ball or pillow hard",
    ),
    "hopelessness": (
        "List three things that got you through a hard day before",
        "Plan one small, achievable activity for tomorrow",
    ),
    "critical_despair": (
        "List three things that got you through a hard day before",
        "Write down one person who would want to hear from you today",
    ),
    "isolation": (
        "Send a short message to someone you trust",
        "Visit a public place like a library or cafe",
        "Join an online peer support community",
    ),
    "severe_sleep_disruption": (
        "Keep a regular sleep and wake time",
        "Avoid screens for an hour before bed",
    ),
    "emotional_distress": (
        "Name the feeling and rate its intensity from 1 to 10",
        "Take a short walk outside",
    ),
}

BASE_ENVIRONMENTAL_SAFETY: Tuple[str, ...] = (
    "Remove or secure potentially harmful items",
    "Stay in a safe, comfortable environment",
    "Avoid isolation - stay with trusted people",
    "Limit access to substances",
    "Create a calm, supportive space",
)

TRIGGER_ENVIRONMENTAL_SAFETY: Dict[str, Tuple[str, ...]] = {
    "lethal_means": (
        "Ask someone you trust to hold medications or firearms for now",
        "Lock away or remove any means you have thought about using",
    ),
    "self_harm": (
        "Give sharp objects to someone you trust for safekeeping",
    ),
}


def _merge(base: Iterable[str], additions: Dict[str, Tuple[str, ...]], triggers: Iterable[str]) -> List[str]:
    merged = list(base)
    for trigger in triggers:
        for item in additions.get(trigger, ()):
            if item not in merged:
                merged.append(item)
    return merged


def suggest_coping_strategies(triggers: Iterable[str]) -> List[str]:
    return _merge(BASE_COPING_STRATEGIES, TRIGGER_COPING_STRATEGIES, triggers)


def suggest_environmental_safety(triggers: Iterable[str]) -> List[str]:
    return _merge(BASE_ENVIRONMENTAL_SAFETY, TRIGGER_ENVIRONMENTAL_SAFETY, triggers)
