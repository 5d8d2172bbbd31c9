"""
Unit tests for retrieval confidence scoring.
"""

from notesrag.features.chat.confidence import (
    HIGH_CONFIDENCE,
    INDEX_SCORE_THRESHOLD,
    REFUSAL_FLOOR,
    ConfidenceLevel,
    score_confidence,
)
from notesrag.features.chat.schemas import RetrievedPassage


def _passages(*scores: float) -> list[RetrievedPassage]:
    return [
        RetrievedPassage(
            source_index=i + 1,
            document_id="file-a",
            page_number=1,
            text="passage",
            similarity_score=score,
        )
        for i, score in enumerate(scores)
    ]


class TestScoreConfidence:
    def test_empty_refuses(self):
        result = score_confidence([])
        assert result.refuse is True
        assert result.level == ConfidenceLevel.LOW
        assert result.mean_score == 0.0

    def test_high(self):
        result = score_confidence(_passages(0.9, 0.88))
        assert result.level == ConfidenceLevel.HIGH
        assert result.refuse is False

    def test_medium(self):
        assert score_confidence(_passages(0.75, 0.72)).level == ConfidenceLevel.MEDIUM

    def test_low_but_answerable(self):
        result = score_confidence(_passages(0.5, 0.4))
        assert result.level == ConfidenceLevel.LOW
        assert result.refuse is False

    def test_below_floor_refuses(self):
        result = score_confidence(_passages(0.2, 0.25))
        assert result.refuse is True

    def test_boundary_is_inclusive(self):
        assert score_confidence(_passages(HIGH_CONFIDENCE)).level == ConfidenceLevel.HIGH
        assert score_confidence(_passages(REFUSAL_FLOOR)).refuse is False

    def test_deterministic(self):
        passages = _passages(0.81, 0.64, 0.7)
        assert score_confidence(passages) == score_confidence(passages)

    def test_index_threshold_above_floor(self):
        assert INDEX_SCORE_THRESHOLD >= REFUSAL_FLOOR
