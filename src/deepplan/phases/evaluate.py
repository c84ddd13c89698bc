"""Evaluate phase: score an explored approach on four weighted dimensions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..memory.schema import Evaluation, EvaluationScores, PlanningSession, PlanPhase, Recommendation
from ..planning.scoring import MAX_SCORE, MIN_SCORE, calculate_weighted_score
from .base import PhaseError, fork, require, touch

DEFAULT_SCORE = 5.0


@dataclass(slots=True)
class EvaluateRequest:
    """Input payload for the evaluate phase."""

    branch_id: Optional[str] = None
    feasibility: Optional[float] = None
    completeness: Optional[float] = None
    coherence: Optional[float] = None
    risk: Optional[float] = None
    rationale: Optional[str] = None
    recommendation: Optional[str] = None


def available_branches(session: PlanningSession) -> str:
    return ", ".join(item.branch_id for item in session.approaches)


def _score(value: Optional[float], name: str) -> float:
    if value is None:
        return DEFAULT_SCORE
    if not MIN_SCORE <= value <= MAX_SCORE:
        raise PhaseError(f'Score "{name}" must be between 0 and 10, got {value:g}.')
    return value


def run(request: EvaluateRequest, session: PlanningSession) -> PlanningSession:
    """Record one evaluation per branch; the branch must already be explored."""
    branch_id = require(request.branch_id, 'Phase "evaluate" requires a "branchId" field.')
    approach = session.find_approach(branch_id)
    if approach is None:
        raise PhaseError(
            f'No approach found with branchId "{branch_id}". Available: {available_branches(session)}'
        )
    if session.find_evaluation(branch_id) is not None:
        raise PhaseError(f'Evaluation for branchId "{branch_id}" already exists.')

    scores = EvaluationScores(
        feasibility=_score(request.feasibility, "feasibility"),
        completeness=_score(request.completeness, "completeness"),
        coherence=_score(request.coherence, "coherence"),
        risk=_score(request.risk, "risk"),
    )

    recommendation_value = request.recommendation or Recommendation.REFINE.value
    try:
        recommendation = Recommendation(recommendation_value)
    except ValueError as error:
        valid = ", ".join(item.value for item in Recommendation)
        raise PhaseError(
            f'Invalid recommendation: "{recommendation_value}". Must be: {valid}'
        ) from error

    updated = fork(session)
    updated.evaluations.append(
        Evaluation(
            branch_id=branch_id,
            scores=scores,
            weighted_score=calculate_weighted_score(scores),
            rationale=request.rationale or "",
            recommendation=recommendation,
        )
    )
    updated.phase = PlanPhase.EVALUATE
    return touch(updated)
