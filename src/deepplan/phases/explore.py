"""Explore phase: record candidate approaches with their trade-offs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..memory.schema import Approach, PlanningSession, PlanPhase
from .base import PhaseError, fork, parse_string_array, touch


@dataclass(slots=True)
class ExploreRequest:
    """Input payload for the explore phase."""

    branch_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    pros: Optional[str] = None
    cons: Optional[str] = None


def run(request: ExploreRequest, session: PlanningSession) -> PlanningSession:
    """Append a new approach branch; branch ids must be unique per session."""
    if not request.branch_id or not request.name:
        raise PhaseError('Phase "explore" requires "branchId" and "name" fields.')
    if session.find_approach(request.branch_id) is not None:
        raise PhaseError(f'Approach with branchId "{request.branch_id}" already exists.')

    approach = Approach(
        branch_id=request.branch_id,
        name=request.name,
        description=request.description or "",
        pros=parse_string_array(request.pros, "pros"),
        cons=parse_string_array(request.cons, "cons"),
    )
    updated = fork(session)
    updated.approaches.append(approach)
    updated.phase = PlanPhase.EXPLORE
    return touch(updated)
