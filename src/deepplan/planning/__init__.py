"""
Planning core: scoring, step normalisation, rendering and the session state machine.
"""

from importlib import import_module
from typing import Any

_EXPORTS = {
    "calculate_weighted_score": "deepplan.planning.scoring",
    "normalize_plan_step": "deepplan.planning.steps",
    "render_json": "deepplan.planning.render",
    "render_markdown": "deepplan.planning.render",
    "PlanningOutput": "deepplan.planning.state_machine",
    "PlanningStateMachine": "deepplan.planning.state_machine",
    "transition": "deepplan.planning.state_machine",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import planning helpers so phase modules can import submodules freely."""
    if name in _EXPORTS:
        module = import_module(_EXPORTS[name])
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
