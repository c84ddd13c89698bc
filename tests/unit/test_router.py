from __future__ import annotations

import pytest

from deepplan.memory.schema import PlanningSession
from deepplan.phases import PhaseName, valid_next_phases
from deepplan.phases.base import PhaseError
from deepplan.phases.evaluate import EvaluateRequest
from deepplan.phases.finalize import FinalizeRequest
from deepplan.router import PhaseRouter


def test_router_registers_every_requestable_phase() -> None:
    router = PhaseRouter()

    assert list(router.available_phases()) == [
        PhaseName.INIT,
        PhaseName.CLARIFY,
        PhaseName.EXPLORE,
        PhaseName.EVALUATE,
        PhaseName.FINALIZE,
    ]


def test_normalize_phase_accepts_case_and_whitespace() -> None:
    assert PhaseRouter.normalize_phase(" Explore ") is PhaseName.EXPLORE


def test_normalize_phase_rejects_done() -> None:
    with pytest.raises(PhaseError, match='Invalid phase: "done"'):
        PhaseRouter.normalize_phase("done")


def test_coerce_maps_camel_case_and_ignores_unknown_keys() -> None:
    router = PhaseRouter()

    request = router.coerce(
        "evaluate",
        {"phase": "evaluate", "sessionId": "s1", "branchId": "redis", "feasibility": "7.5", "unknown": 1},
    )

    assert isinstance(request, EvaluateRequest)
    assert request.branch_id == "redis"
    assert request.feasibility == 7.5
    assert request.risk is None


def test_coerce_reports_invalid_values_as_phase_errors() -> None:
    router = PhaseRouter()

    with pytest.raises(PhaseError, match="EvaluateRequest did not validate"):
        router.coerce("evaluate", {"branchId": "redis", "feasibility": "high"})


def test_coerce_rejects_non_mapping_payload() -> None:
    with pytest.raises(PhaseError, match="must be an object"):
        PhaseRouter().coerce("clarify", ["question"])


def test_finalize_format_falls_back_to_markdown() -> None:
    router = PhaseRouter()

    assert router.coerce("finalize", {"format": "JSON"}).plan_format == "json"
    assert router.coerce("finalize", {"format": "yaml"}).plan_format == "markdown"
    assert FinalizeRequest().plan_format == "markdown"


def test_dispatch_runs_phase_without_mutating_input() -> None:
    router = PhaseRouter()
    session = PlanningSession(session_id="s1", problem="Build cache")

    updated = router.dispatch("clarify", {"question": "Why?", "answer": "Latency"}, session)

    assert updated is not session
    assert session.clarifications == []
    assert updated.clarifications[0].answer == "Latency"


def test_transition_table() -> None:
    assert valid_next_phases(None) == [PhaseName.INIT]
    assert valid_next_phases(PhaseName.EXPLORE) == [PhaseName.EXPLORE, PhaseName.EVALUATE, PhaseName.CLARIFY]
    assert valid_next_phases(PhaseName.DONE) == [PhaseName.INIT]
    assert valid_next_phases(PhaseName.FINALIZE) == [PhaseName.INIT]


def test_coerce_rejects_lone_surrogates() -> None:
    with pytest.raises(PhaseError, match='Field "problem" contains invalid unicode'):
        PhaseRouter().coerce("init", {"problem": "cache \ud800"})
