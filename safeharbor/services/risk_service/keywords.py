"""Deterministic crisis phrase matching.

Each phrase maps to a trigger tag and a severity band. Matching is
case-insensitive on word boundaries over normalized text, so "cut"
never matches "cute".
"""
import logging
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Tuple

from safeharbor.shared.models import RiskLevel

logger = logging.getLogger(__name__)

PATTERN_VERSION = "2026.01.15"

IMMINENT_TIMELINE = "imminent_timeline"

# Trigger tag -> (band, phrases). Phrases are written in normalized form:
# lowercase, apostrophes removed, hyphens as spaces.
KEYWORD_TABLE: Mapping[str, Tuple[RiskLevel, FrozenSet[str]]] = MappingProxyType({
    "suicidal_ideation": (RiskLevel.CRITICAL, frozenset({
        "suicide", "suicidal", "kill myself", "end my life", "end it all",
        "ending it all", "want to die", "wanna die", "not worth living",
        "better off dead", "goodbye forever", "final message",
        "no reason to live", "take my own life", "ending the pain",
    })),
    "suicide_plan": (RiskLevel.CRITICAL, frozenset({
        "suicide plan", "have a plan", "made a plan", "plan to do it",
        "wrote a note", "suicide note", "going to do it", "figured out how",
    })),
    "critical_despair": (RiskLevel.CRITICAL, frozenset({
        "worthless", "burden", "cant go on", "no hope left",
    })),
    "lethal_means": (RiskLevel.CRITICAL, frozenset({
        "overdose", "hanging", "hang myself", "jumping", "jump off",
        "gun", "razor", "noose", "took too many pills", "stockpiling pills",
    })),
    "self_harm": (RiskLevel.HIGH, frozenset({
        "self harm", "cut myself", "cutting myself", "hurt myself",
        "harm myself", "punish myself", "burn myself", "burned myself",
    })),
    "hopelessness": (RiskLevel.HIGH, frozenset({
        "hopeless", "no way out", "trapped", "desperate", "give up",
        "cant cope", "breaking point", "failed at everything", "overwhelming pain",
    })),
    "isolation": (RiskLevel.HIGH, frozenset({
        "isolated", "alone forever", "nobody cares", "no one cares",
        "all alone", "nobody would miss me", "no one would miss me",
    })),
    "emotional_distress": (RiskLevel.MEDIUM, frozenset({
        "depressed", "anxious", "stressed", "overwhelmed", "exhausted",
        "tired of life", "struggling", "difficult time", "dark thoughts",
        "negative thoughts", "worry", "worried", "fear", "scared", "sadness",
        "grief",
    })),
})

# Only meaningful next to a high or critical category.
TIMELINE_PHRASES: FrozenSet[str] = frozenset({
    "tonight", "today", "right now", "this weekend", "tomorrow",
    "after everyone leaves", "in an hour", "soon",
})

# Categories that become critical when paired with a timeline.
TIMELINE_ESCALATES: FrozenSet[str] = frozenset({
    "suicidal_ideation", "suicide_plan", "lethal_means", "self_harm",
})

_APOSTROPHES = re.compile(r"[‘’ʼ'`]")
_HYPHENS = re.compile(r"[‐-―-]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, drop apostrophes, turn hyphens to spaces, collapse whitespace."""
    lowered = text.lower()
    lowered = _APOSTROPHES.sub("", lowered)
    lowered = _HYPHENS.sub(" ", lowered)
    return _WHITESPACE.sub(" ", lowered).strip()


@dataclass(frozen=True)
class KeywordSignal:
    """Outcome of phrase matching on one message."""
    level: RiskLevel
    confidence: float
    triggers: Tuple[str, ...]
    matched_phrases: Tuple[str, ...]

    @property
    def informative(self) -> bool:
        return bool(self.matched_phrases)


def _compile(phrases: FrozenSet[str]) -> List[Tuple[str, re.Pattern]]:
    return [
        (phrase, re.compile(rf"\b{re.escape(phrase)}\b"))
        for phrase in sorted(phrases)
    ]


class KeywordMatcher:
    """Matches normalized text against the crisis keyword table."""

    def __init__(self, table: Mapping[str, Tuple[RiskLevel, FrozenSet[str]]] = KEYWORD_TABLE):
        self._categories: Dict[str, Tuple[RiskLevel, List[Tuple[str, re.Pattern]]]] = {
            tag: (band, _compile(phrases)) for tag, (band, phrases) in table.items()
        }
        self._timeline = _compile(TIMELINE_PHRASES)

        logger.info(
            "KEYWORD_MATCHER_INITIALIZED",
            extra={
                "pattern_version": PATTERN_VERSION,
                "category_count": len(self._categories),
                "phrase_count": sum(len(p) for _, p in self._categories.values()),
            }
        )

    def match(self, normalized: str) -> KeywordSignal:
        level = RiskLevel.LOW
        triggers: List[str] = []
        phrases: List[str] = []

        for tag, (band, patterns) in self._categories.items():
            hits = [phrase for phrase, pattern in patterns if pattern.search(normalized)]
            if hits:
                triggers.append(tag)
                phrases.extend(hits)
                level = max(level, band)

        if level >= RiskLevel.HIGH:
            timeline_hits = [p for p, pattern in self._timeline if pattern.search(normalized)]
            if timeline_hits:
                triggers.append(IMMINENT_TIMELINE)
                phrases.extend(timeline_hits)
                if TIMELINE_ESCALATES.intersection(triggers):
                    level = RiskLevel.CRITICAL

        return KeywordSignal(
            level=level,
            confidence=keyword_confidence(level, len(phrases)),
            triggers=tuple(triggers),
            matched_phrases=tuple(phrases),
        )


def keyword_confidence(level: RiskLevel, match_count: int) -> float:
    """Confidence for a keyword band given the number of matched phrases."""
    if match_count == 0:
        return 0.0
    if level is RiskLevel.CRITICAL:
        return min(0.95, 0.7 + 0.05 * match_count)
    if level is RiskLevel.HIGH:
        return min(0.85, 0.6 + 0.05 * match_count)
    return min(0.75, 0.4 + 0.05 * match_count)
