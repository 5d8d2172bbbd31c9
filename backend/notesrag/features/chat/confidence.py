"""
Chat feature: Retrieval confidence scoring.

All answer/refuse thresholds live here. Scores are cosine similarities as
returned by the vector index.
"""

from enum import Enum
from typing import Sequence

from pydantic import BaseModel

from notesrag.features.chat.schemas import RetrievedPassage

# Index-side floor: candidates below this never leave the vector index.
INDEX_SCORE_THRESHOLD = 0.35

# Mean similarity below this refuses the question outright.
REFUSAL_FLOOR = 0.30

HIGH_CONFIDENCE = 0.85
MEDIUM_CONFIDENCE = 0.70


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ConfidenceResult(BaseModel):
    level: ConfidenceLevel
    refuse: bool
    mean_score: float


def score_confidence(passages: Sequence[RetrievedPassage]) -> ConfidenceResult:
    """Map a passage set to a confidence level and an answer/refuse decision."""
    if not passages:
        return ConfidenceResult(level=ConfidenceLevel.LOW, refuse=True, mean_score=0.0)

    mean = sum(p.similarity_score for p in passages) / len(passages)
    if mean >= HIGH_CONFIDENCE:
        level = ConfidenceLevel.HIGH
    elif mean >= MEDIUM_CONFIDENCE:
        level = ConfidenceLevel.MEDIUM
    else:
        level = ConfidenceLevel.LOW
    return ConfidenceResult(level=level, refuse=mean < REFUSAL_FLOOR, mean_score=mean)
