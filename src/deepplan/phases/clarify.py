"""Clarify phase: record questions that sharpen the problem statement."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..memory.schema import Clarification, PlanningSession, PlanPhase
from .base import fork, require, touch


@dataclass(slots=True)
class ClarifyRequest:
    """Input payload for the clarify phase."""

    question: Optional[str] = None
    answer: Optional[str] = None


def run(request: ClarifyRequest, session: PlanningSession) -> PlanningSession:
    question = require(request.question, 'Phase "clarify" requires a "question" field.')
    updated = fork(session)
    updated.clarifications.append(Clarification(question=question, answer=request.answer))
    updated.phase = PlanPhase.CLARIFY
    return touch(updated)
