"""Finalize phase: select an approach and attach the implementation plan."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from pydantic import ValidationError

from ..memory.schema import PlanningSession, PlanPhase, PlanRisk, PlanStep
from ..planning.steps import normalize_plan_step
from .base import PhaseError, fork, parse_json_array, parse_model_array, parse_string_array, require, touch
from .evaluate import available_branches

PLAN_FORMATS = ("markdown", "json")


@dataclass(slots=True)
class FinalizeRequest:
    """Input payload for the finalize phase."""

    selected_branch: Optional[str] = None
    steps: Optional[str] = None
    risks: Optional[str] = None
    assumptions: Optional[str] = None
    success_criteria: Optional[str] = None
    format: Optional[str] = None

    @property
    def plan_format(self) -> str:
        value = (self.format or "markdown").strip().lower()
        return value if value in PLAN_FORMATS else "markdown"


def _parse_steps(value: Optional[str]) -> list[PlanStep]:
    steps: list[PlanStep] = []
    for index, raw in enumerate(parse_json_array(value, "steps")):
        if not isinstance(raw, Mapping):
            raise PhaseError(f"steps[{index}] must be a JSON object")
        try:
            steps.append(normalize_plan_step(raw, index))
        except ValidationError as error:
            raise PhaseError(f"steps[{index}] is malformed: {error.errors()[0]['msg']}") from error
    return steps


def run(request: FinalizeRequest, session: PlanningSession) -> PlanningSession:
    """Seal the session; it moves to ``done`` and accepts no further mutation."""
    branch_id = require(request.selected_branch, 'Phase "finalize" requires a "selectedBranch" field.')
    if session.find_approach(branch_id) is None:
        raise PhaseError(
            f'No approach found with branchId "{branch_id}". Available: {available_branches(session)}'
        )

    steps = _parse_steps(request.steps)
    risks = parse_model_array(request.risks, "risks", PlanRisk)
    assumptions = parse_string_array(request.assumptions, "assumptions")
    success_criteria = parse_string_array(request.success_criteria, "successCriteria")

    updated = fork(session)
    updated.selected_approach = branch_id
    updated.steps = steps
    updated.risks = risks
    updated.assumptions = assumptions
    updated.success_criteria = success_criteria
    updated.phase = PlanPhase.DONE
    return touch(updated)
