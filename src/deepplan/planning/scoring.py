"""Weighted fitness scoring for evaluated approaches."""

from __future__ import annotations

from typing import Mapping, Union

from ..memory.schema import EvaluationScores

SCORE_WEIGHTS: Mapping[str, float] = {
    "feasibility": 0.30,
    "completeness": 0.25,
    "coherence": 0.25,
    "risk": 0.20,
}

MIN_SCORE = 0.0
MAX_SCORE = 10.0


def calculate_weighted_score(scores: Union[EvaluationScores, Mapping[str, float]]) -> float:
    """Combine the four dimensions into a single 0-10 score.

    Risk is the only inverted dimension: a lower risk contributes more.
    """
    if not isinstance(scores, EvaluationScores):
        scores = EvaluationScores.model_validate(scores)
    raw = (
        scores.feasibility * SCORE_WEIGHTS["feasibility"]
        + scores.completeness * SCORE_WEIGHTS["completeness"]
        + scores.coherence * SCORE_WEIGHTS["coherence"]
        + (MAX_SCORE - scores.risk) * SCORE_WEIGHTS["risk"]
    )
    return round(raw, 2)
