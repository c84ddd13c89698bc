"""Init phase: open a fresh planning session for a problem statement."""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from typing import Optional

from ..memory.schema import PlanningSession, PlanPhase, utc_now
from .base import parse_string_array, require

_ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits


def generate_id(size: int = 8) -> str:
    """Return a random Base62 identifier of ``size`` characters."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(size))


@dataclass(slots=True)
class InitRequest:
    """Input payload for the init phase."""

    problem: Optional[str] = None
    context: Optional[str] = None
    constraints: Optional[str] = None


def run(request: InitRequest, session: Optional[PlanningSession] = None) -> PlanningSession:
    """Create a new session; any previously active ``session`` is ignored."""
    problem = require(request.problem, 'Phase "init" requires a "problem" field.')
    constraints = parse_string_array(request.constraints, "constraints")
    now = utc_now()
    return PlanningSession(
        session_id=generate_id(),
        problem=problem,
        context=request.context or None,
        constraints=constraints,
        phase=PlanPhase.INIT,
        created_at=now,
        updated_at=now,
    )
