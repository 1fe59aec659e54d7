"""Sentiment/emotion classifier collaborators.

The classifier is a black box. It either returns a SentimentReading or
raises ClassifierFailure; the risk assessor degrades a failure to a
neutral, low-confidence signal.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from safeharbor.shared.errors import ClassifierFailure
from safeharbor.shared.models import SentimentReading

logger = logging.getLogger(__name__)

NEGATIVE_EMOTIONS = ("sadness", "fear", "anger", "disgust")


class SentimentClassifier(ABC):
    """Interface for the external NLP classifier."""

    @abstractmethod
    async def analyze_sentiment(self, text: str) -> SentimentReading:
        """Classify text.

        Raises:
            ClassifierFailure: If the classifier is unavailable
        """


class NeutralClassifier(SentimentClassifier):
    """Null object used when no model is configured.

    Returns a zero-confidence neutral reading, which the assessor treats as
    an uninformative signal rather than a failure.
    """

    async def analyze_sentiment(self, text: str) -> SentimentReading:
        return SentimentReading(sentiment=0.0, emotions={}, confidence=0.0)


class TransformersEmotionClassifier(SentimentClassifier):
    """HuggingFace emotion classifier (DistilRoBERTa by default).

    Inference runs in a worker thread so the event loop keeps serving other
    escalations. The model is loaded lazily on first use.
    """

    DEFAULT_MODEL = "j-hartmann/emotion-english-distilroberta-base"
    MAX_CHARS = 2000  # Rough limit before tokenization

    def __init__(self, model_name: Optional[str] = None, device: str = "cpu"):
        self.model_name = model_name or self.DEFAULT_MODEL
        self.device = device
        self._pipeline = None

    def _load_pipeline(self):
        if self._pipeline is not None:
            return self._pipeline

        try:
            from transformers import pipeline

            logger.info(
                "CLASSIFIER_MODEL_LOADING",
                extra={"model_name": self.model_name, "device": self.device}
            )
            self._pipeline = pipeline(
                "text-classification",
                model=self.model_name,
                top_k=None,
                device=-1 if self.device == "cpu" else 0,
                truncation=True,
            )
        except ImportError as e:
            logger.error(
                "CLASSIFIER_IMPORT_ERROR",
                extra={"error": str(e), "action": "install the ml extra"}
            )
            raise ClassifierFailure(f"transformers not installed: {e}") from e
        except Exception as e:
            logger.error(
                "CLASSIFIER_INIT_ERROR",
                extra={"error": str(e), "model_name": self.model_name}
            )
            raise ClassifierFailure(str(e)) from e

        logger.info("CLASSIFIER_MODEL_LOADED", extra={"model_name": self.model_name})
        return self._pipeline

    def _classify(self, text: str) -> SentimentReading:
        classify = self._load_pipeline()
        try:
            raw = classify(text[:self.MAX_CHARS])
        except Exception as e:
            logger.error("CLASSIFIER_INFERENCE_ERROR", extra={"error": str(e)})
            raise ClassifierFailure(str(e)) from e
        return reading_from_scores(_flatten(raw))

    async def analyze_sentiment(self, text: str) -> SentimentReading:
        return await asyncio.to_thread(self._classify, text)


def _flatten(raw: Any) -> List[Dict[str, Any]]:
    # Pipelines return [[{label, score}, ...]] for a single string with top_k=None
    if raw and isinstance(raw[0], list):
        return raw[0]
    return raw


def reading_from_scores(scores: List[Dict[str, Any]]) -> SentimentReading:
    """Map per-emotion scores to a sentiment in [-1, 1].

    Sentiment is joy minus the summed negative emotions, clamped.
    """
    if not scores:
        raise ClassifierFailure("classifier returned no scores")

    emotions = {str(s["label"]).lower(): float(s["score"]) for s in scores}
    negative = sum(emotions.get(name, 0.0) for name in NEGATIVE_EMOTIONS)
    sentiment = max(-1.0, min(1.0, emotions.get("joy", 0.0) - negative))

    return SentimentReading(
        sentiment=sentiment,
        emotions=emotions,
        confidence=max(emotions.values()),
    )
