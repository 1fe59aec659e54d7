"""Tests for the classifier adapters and behavior stores."""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import psycopg2

from safeharbor.shared.database import RepositoryError
from safeharbor.shared.errors import ClassifierFailure
from safeharbor.shared.models import BehaviorEntry, utcnow
from safeharbor.shared.utils import configure_pii_salt
from safeharbor.services.risk_service import (
    InMemoryBehaviorStore,
    NeutralClassifier,
    PostgresBehaviorStore,
    TransformersEmotionClassifier,
)
from safeharbor.services.risk_service.classifier import reading_from_scores


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


class TestReadingFromScores:
    def test_negative_emotions_drive_sentiment_down(self):
        reading = reading_from_scores([
            {"label": "sadness", "score": 0.7},
            {"label": "fear", "score": 0.2},
            {"label": "joy", "score": 0.05},
        ])

        assert reading.sentiment == pytest.approx(-0.85)
        assert reading.confidence == pytest.approx(0.7)
        assert reading.emotion("sadness") == pytest.approx(0.7)
        assert reading.emotion("surprise") == 0.0

    def test_sentiment_is_clamped(self):
        reading = reading_from_scores([
            {"label": "sadness", "score": 0.9},
            {"label": "anger", "score": 0.9},
        ])

        assert reading.sentiment == -1.0

    def test_labels_are_lowercased(self):
        reading = reading_from_scores([{"label": "JOY", "score": 0.9}])

        assert reading.emotion("joy") == pytest.approx(0.9)

    def test_empty_scores_fail(self):
        with pytest.raises(ClassifierFailure):
            reading_from_scores([])


@pytest.mark.asyncio
class TestClassifiers:
    async def test_neutral_classifier_is_uninformative(self):
        reading = await NeutralClassifier().analyze_sentiment("anything")

        assert reading.confidence == 0.0
        assert reading.sentiment == 0.0

    async def test_transformers_classifier_uses_pipeline(self):
        classifier = TransformersEmotionClassifier()
        fake_pipeline = MagicMock(return_value=[[
            {"label": "joy", "score": 0.8},
            {"label": "sadness", "score": 0.1},
        ]])

        with patch.object(classifier, "_load_pipeline", return_value=fake_pipeline):
            reading = await classifier.analyze_sentiment("a good day")

        assert reading.sentiment == pytest.approx(0.7)
        fake_pipeline.assert_called_once_with("a good day")

    async def test_inference_error_becomes_classifier_failure(self):
        classifier = TransformersEmotionClassifier()
        fake_pipeline = MagicMock(side_effect=RuntimeError("CUDA out of memory"))

        with patch.object(classifier, "_load_pipeline", return_value=fake_pipeline):
            with pytest.raises(ClassifierFailure):
                await classifier.analyze_sentiment("text")

    async def test_long_text_is_truncated(self):
        classifier = TransformersEmotionClassifier()
        fake_pipeline = MagicMock(return_value=[{"label": "joy", "score": 0.5}])

        with patch.object(classifier, "_load_pipeline", return_value=fake_pipeline):
            await classifier.analyze_sentiment("x" * 5000)

        (text,), _ = fake_pipeline.call_args
        assert len(text) == TransformersEmotionClassifier.MAX_CHARS


@pytest.mark.asyncio
class TestInMemoryBehaviorStore:
    async def test_entries_newest_first_and_limited(self):
        store = InMemoryBehaviorStore()
        now = utcnow()
        for days_ago, score in ((3, 5.0), (1, 7.0), (2, 6.0)):
            store.add_entry("user_1", BehaviorEntry(score=score, timestamp=now - timedelta(days=days_ago)))

        entries = await store.recent_entries("user_1", 2)

        assert [e.score for e in entries] == [7.0, 6.0]

    async def test_flags_outside_window_are_ignored(self):
        store = InMemoryBehaviorStore()
        await store.record_crisis_flag("user_1", utcnow() - timedelta(days=30))
        await store.record_crisis_flag("user_1", utcnow())

        assert await store.recent_crisis_flags("user_1", 7) == 1
        assert await store.recent_crisis_flags("user_2", 7) == 0

    async def test_conversations_untracked_until_recorded(self):
        store = InMemoryBehaviorStore()

        assert await store.recent_conversation_count("user_1", 7) is None

        store.record_conversation("user_1", utcnow() - timedelta(days=10))
        assert await store.recent_conversation_count("user_1", 7) == 0

        store.record_conversation("user_1", utcnow())
        assert await store.recent_conversation_count("user_1", 7) == 1


@pytest.fixture
def mock_cursor():
    return MagicMock()


@pytest.fixture
def pg_store(mock_cursor):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = mock_cursor
    manager = MagicMock()
    manager.get_connection.return_value.__enter__.return_value = conn
    store = PostgresBehaviorStore(manager)
    store._conn = conn
    return store


@pytest.mark.asyncio
class TestPostgresBehaviorStore:
    async def test_recent_entries_maps_rows(self, pg_store, mock_cursor):
        recorded = datetime(2026, 1, 10, tzinfo=timezone.utc)
        mock_cursor.fetchall.return_value = [
            {"mood_score": 3, "sleep_quality": None, "recorded_at": recorded},
            {"mood_score": 4.5, "sleep_quality": 2, "recorded_at": recorded},
        ]

        entries = await pg_store.recent_entries("user_1", 10)

        assert entries[0].score == 3.0
        assert entries[0].sleep_quality is None
        assert entries[1].sleep_quality == 2.0
        _, params = mock_cursor.execute.call_args[0]
        assert params == ("user_1", 10)

    async def test_recent_crisis_flags_counts(self, pg_store, mock_cursor):
        mock_cursor.fetchall.return_value = [{"flag_count": 4}]

        assert await pg_store.recent_crisis_flags("user_1", 7) == 4

    async def test_record_crisis_flag_commits(self, pg_store, mock_cursor):
        await pg_store.record_crisis_flag("user_1", utcnow())

        sql, params = mock_cursor.execute.call_args[0]
        assert sql.startswith("INSERT INTO crisis_flags")
        assert params[0].startswith("flag_")
        pg_store._conn.commit.assert_called_once()

    async def test_database_errors_become_repository_errors(self, pg_store, mock_cursor):
        mock_cursor.execute.side_effect = psycopg2.OperationalError("connection reset")

        with pytest.raises(RepositoryError):
            await pg_store.recent_entries("user_1", 10)

    async def test_recent_conversation_count(self, pg_store, mock_cursor):
        mock_cursor.fetchall.return_value = [{"conversation_count": 12}]

        assert await pg_store.recent_conversation_count("user_1", 7) == 12
        sql, params = mock_cursor.execute.call_args[0]
        assert "conversation_sessions" in sql
        assert params[0] == "user_1"
