"""Routing logic that maps phase requests to their concrete runners."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from pydantic import ValidationError
from pydantic.alias_generators import to_snake
from pydantic.type_adapter import TypeAdapter

from .memory.schema import PlanningSession
from .phases import REQUESTABLE_PHASES, PhaseName
from .phases.base import PhaseError, contains_surrogate
from .phases.clarify import ClarifyRequest, run as run_clarify
from .phases.evaluate import EvaluateRequest, run as run_evaluate
from .phases.explore import ExploreRequest, run as run_explore
from .phases.finalize import FinalizeRequest, run as run_finalize
from .phases.init import InitRequest, run as run_init

PhaseRunner = Callable[..., PlanningSession]


@dataclass(slots=True)
class PhaseEntry:
    """Metadata describing how to execute a single phase."""

    request_model: type[Any]
    runner: PhaseRunner


class PhaseRouter:
    """Dispatch table mapping phase names to their concrete handlers."""

    def __init__(self) -> None:
        self._registry: Dict[PhaseName, PhaseEntry] = {
            PhaseName.INIT: PhaseEntry(InitRequest, run_init),
            PhaseName.CLARIFY: PhaseEntry(ClarifyRequest, run_clarify),
            PhaseName.EXPLORE: PhaseEntry(ExploreRequest, run_explore),
            PhaseName.EVALUATE: PhaseEntry(EvaluateRequest, run_evaluate),
            PhaseName.FINALIZE: PhaseEntry(FinalizeRequest, run_finalize),
        }

    def coerce(self, phase: PhaseName | str, payload: Any) -> Any:
        """Build the request object for ``phase`` from a raw payload."""
        entry = self._registry[self.normalize_phase(phase)]
        return self._coerce_payload(payload, entry.request_model)

    def dispatch(self, phase: PhaseName | str, request: Any, session: Optional[PlanningSession]) -> PlanningSession:
        """Run the phase against ``session`` and return the resulting session."""
        entry = self._registry[self.normalize_phase(phase)]
        request = self._coerce_payload(request, entry.request_model)
        return entry.runner(request, session)

    def available_phases(self) -> Iterable[PhaseName]:
        """Return the phases currently registered with the router."""
        return self._registry.keys()

    @staticmethod
    def normalize_phase(phase: PhaseName | str | None) -> PhaseName:
        """Resolve ``phase`` into a requestable ``PhaseName`` member."""
        try:
            name = phase if isinstance(phase, PhaseName) else PhaseName(str(phase).strip().lower())
        except ValueError:
            name = None
        if name not in REQUESTABLE_PHASES:
            valid = ", ".join(item.value for item in REQUESTABLE_PHASES)
            raise PhaseError(f'Invalid phase: "{phase}". Valid phases: {valid}')
        return name

    @staticmethod
    def _coerce_payload(payload: Any, request_type: type[Any]) -> Any:
        """Validate or convert ``payload`` into the ``request_type`` instance."""
        if isinstance(payload, request_type):
            return payload
        if not isinstance(payload, Mapping):
            raise PhaseError(f"Payload for {request_type.__name__} must be an object.")

        accepted = {item.name for item in fields(request_type)}
        data = {}
        for key, value in payload.items():
            name = to_snake(str(key))
            if name in accepted and value is not None:
                if contains_surrogate(value):
                    raise PhaseError(f'Field "{key}" contains invalid unicode (lone surrogate).')
                data[name] = value

        adapter = TypeAdapter(request_type)
        try:
            return adapter.validate_python(data)
        except ValidationError as error:
            raise PhaseError(
                f"Payload for {request_type.__name__} did not validate: {error}"
            ) from error
