"""Planning session state machine.

``transition`` is the pure core: it validates a phase request against the
workflow grammar, runs the phase, and returns the resulting session together
with the caller-facing output. It never touches disk.

``PlanningStateMachine`` owns the single active session for a process and
implements resumption: a request naming a different session id swaps the held
session for the latest snapshot returned by its loader.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional

from ..memory.schema import PlanningSession, PlanPhase, RecordModel
from ..phases import PhaseName, valid_next_phases
from ..phases.base import PhaseError, SessionNotFoundError
from ..phases.finalize import FinalizeRequest
from ..router import PhaseRouter
from .render import plan_title, render_markdown, render_plan

LOGGER = logging.getLogger(__name__)

SessionLoader = Callable[[str], Optional[PlanningSession]]


class StepStatus(str, Enum):
    OK = "ok"
    ERROR = "error"
    COMPLETE = "complete"


class PlanningOutput(RecordModel):
    """Structured result returned for every planning call."""

    session_id: str = ""
    phase: str = ""
    status: StepStatus
    approach_count: int = 0
    evaluation_count: int = 0
    valid_next_phases: List[str]
    message: str
    plan: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status == StepStatus.ERROR


@dataclass(slots=True)
class Transition:
    """Outcome of a single phase request."""

    session: Optional[PlanningSession]
    output: PlanningOutput
    phase: Optional[PhaseName] = None
    markdown: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.output.is_error


def make_output(
    session: Optional[PlanningSession],
    status: StepStatus,
    message: str,
    plan: Optional[str] = None,
) -> PlanningOutput:
    """Describe ``session`` (or the absence of one) to the caller."""
    current = session.phase if session is not None else None
    return PlanningOutput(
        session_id=session.session_id if session is not None else "",
        phase=current.value if current is not None else "",
        status=status,
        approach_count=len(session.approaches) if session is not None else 0,
        evaluation_count=len(session.evaluations) if session is not None else 0,
        valid_next_phases=[item.value for item in valid_next_phases(current)],
        message=message,
        plan=plan,
    )


def _failure(session: Optional[PlanningSession], message: str) -> Transition:
    return Transition(session=session, output=make_output(session, StepStatus.ERROR, message))


def validate_transition(session: Optional[PlanningSession], phase: PhaseName) -> None:
    """Raise ``PhaseError`` unless ``phase`` may follow the session's current phase."""
    if phase == PhaseName.INIT:
        return
    if session is None:
        raise PhaseError('No active planning session. Call with phase "init" first.')
    allowed = valid_next_phases(session.phase)
    if phase not in allowed:
        valid = ", ".join(item.value for item in allowed)
        raise PhaseError(
            f'Cannot transition from "{session.phase.value}" to "{phase.value}". '
            f"Valid next phases: {valid}"
        )


def _success_message(phase: PhaseName, session: PlanningSession) -> str:
    if phase == PhaseName.INIT:
        return (
            f'Planning session "{session.session_id}" created. Define your problem further with '
            '"clarify" or start exploring approaches with "explore".'
        )
    if phase == PhaseName.CLARIFY:
        return (
            f"Clarification recorded ({len(session.clarifications)} total). "
            "Continue clarifying or start exploring approaches."
        )
    if phase == PhaseName.EXPLORE:
        approach = session.approaches[-1]
        return (
            f'Approach "{approach.name}" recorded ({len(session.approaches)} total). '
            "Explore more approaches or start evaluating."
        )
    if phase == PhaseName.EVALUATE:
        evaluation = session.evaluations[-1]
        approach = session.find_approach(evaluation.branch_id)
        name = approach.name if approach is not None else evaluation.branch_id
        return (
            f'Evaluation for "{name}" recorded (score: {evaluation.weighted_score:.2f}/10, '
            f"{len(session.evaluations)} total). Evaluate more or finalize."
        )
    return f'Plan finalized with approach "{plan_title(session)}".'


def _log_progress(phase: PhaseName, session: PlanningSession) -> None:
    if phase == PhaseName.INIT:
        LOGGER.info("Planning session started: %s", session.session_id)
        LOGGER.info("Problem: %s", session.problem)
    elif phase == PhaseName.CLARIFY:
        item = session.clarifications[-1]
        LOGGER.info("Clarification: %s", item.question)
        if item.answer:
            LOGGER.info("Answer: %s", item.answer)
    elif phase == PhaseName.EXPLORE:
        item = session.approaches[-1]
        LOGGER.info("Approach: %s (%s)", item.name, item.branch_id)
    elif phase == PhaseName.EVALUATE:
        item = session.evaluations[-1]
        LOGGER.info(
            "Evaluated: %s -> %.2f/10 (%s)",
            item.branch_id,
            item.weighted_score,
            item.recommendation.value,
        )
    else:
        LOGGER.info("Plan finalized: %s", plan_title(session))


def transition(
    session: Optional[PlanningSession],
    phase: PhaseName | str,
    payload: Mapping[str, Any],
    *,
    router: Optional[PhaseRouter] = None,
) -> Transition:
    """Apply one phase request to ``session`` without side effects.

    On failure the returned transition carries the unchanged ``session`` and an
    error output. On success it carries a new session object.
    """
    router = router or PhaseRouter()
    try:
        phase_name = router.normalize_phase(phase)
        validate_transition(session, phase_name)
        updated = router.dispatch(phase_name, payload, session)
    except PhaseError as error:
        return _failure(session, str(error))

    _log_progress(phase_name, updated)
    message = _success_message(phase_name, updated)

    if phase_name == PhaseName.FINALIZE:
        request: FinalizeRequest = router.coerce(phase_name, payload)
        markdown = render_markdown(updated)
        plan = render_plan(updated, request.plan_format)
        output = make_output(updated, StepStatus.COMPLETE, message, plan)
        return Transition(session=updated, output=output, phase=phase_name, markdown=markdown)

    return Transition(
        session=updated,
        output=make_output(updated, StepStatus.OK, message),
        phase=phase_name,
    )


class PlanningStateMachine:
    """Holder of the active planning session for one process."""

    def __init__(
        self,
        loader: Optional[SessionLoader] = None,
        *,
        router: Optional[PhaseRouter] = None,
    ) -> None:
        self._loader = loader
        self._router = router or PhaseRouter()
        self.session: Optional[PlanningSession] = None

    @property
    def active_phase(self) -> Optional[PlanPhase]:
        return self.session.phase if self.session is not None else None

    def replace(self, session: Optional[PlanningSession]) -> None:
        """Swap the held session reference."""
        self.session = session

    def resume(self, session_id: str) -> PlanningSession:
        """Make ``session_id`` the active session, loading it if necessary."""
        if self.session is not None and self.session.session_id == session_id:
            return self.session
        loaded = self._loader(session_id) if self._loader is not None else None
        if loaded is None:
            raise SessionNotFoundError(session_id)
        LOGGER.info("Resumed planning session %s at phase %s", session_id, loaded.phase.value)
        self.replace(loaded)
        return loaded

    def process(self, payload: Mapping[str, Any]) -> Transition:
        """Validate and apply one request, updating the held session on success."""
        raw_phase = payload.get("phase")
        try:
            phase = self._router.normalize_phase(raw_phase)
        except PhaseError as error:
            return _failure(self.session, str(error))

        requested_id = payload.get("sessionId") or payload.get("session_id")
        if phase != PhaseName.INIT and requested_id:
            try:
                self.resume(str(requested_id))
            except PhaseError as error:
                return _failure(self.session, str(error))

        result = transition(self.session, phase, payload, router=self._router)
        if result.ok:
            self.replace(result.session)
        return result
