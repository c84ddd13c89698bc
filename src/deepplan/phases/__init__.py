"""Shared phase enumerations and the workflow transition table."""

from __future__ import annotations

from typing import Dict, List, Optional

from ..memory.schema import PlanPhase

PhaseName = PlanPhase

REQUESTABLE_PHASES: List[PhaseName] = [
    PhaseName.INIT,
    PhaseName.CLARIFY,
    PhaseName.EXPLORE,
    PhaseName.EVALUATE,
    PhaseName.FINALIZE,
]

# ``None`` stands for "no active session".
VALID_TRANSITIONS: Dict[Optional[PhaseName], List[PhaseName]] = {
    None: [PhaseName.INIT],
    PhaseName.INIT: [PhaseName.CLARIFY, PhaseName.EXPLORE],
    PhaseName.CLARIFY: [PhaseName.CLARIFY, PhaseName.EXPLORE],
    PhaseName.EXPLORE: [PhaseName.EXPLORE, PhaseName.EVALUATE, PhaseName.CLARIFY],
    PhaseName.EVALUATE: [PhaseName.EVALUATE, PhaseName.EXPLORE, PhaseName.FINALIZE],
    PhaseName.FINALIZE: [PhaseName.INIT],
    PhaseName.DONE: [PhaseName.INIT],
}


def valid_next_phases(current: Optional[PhaseName]) -> List[PhaseName]:
    """Return the phases that may be requested after ``current``."""
    return list(VALID_TRANSITIONS.get(current, []))


__all__ = ["PhaseName", "REQUESTABLE_PHASES", "VALID_TRANSITIONS", "valid_next_phases"]
