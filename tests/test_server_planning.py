from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import pytest

from deepplan.memory.schema import PlanPhase
from deepplan.memory.store import PersistenceManager
from deepplan.server import PlanningServer, ToolResult


def _call(server: PlanningServer, **payload: Any) -> Dict[str, Any]:
    result = server.process_planning_step(payload)
    assert json.loads(result.text) == result.structured_content
    return result.structured_content


def _explore_cache_options(server: PlanningServer) -> str:
    created = _call(server, phase="init", problem="Build cache", constraints='["stay on AWS"]')
    _call(server, phase="clarify", question="Expected hit rate?", answer="90%")
    _call(
        server,
        phase="explore",
        branchId="redis",
        name="Redis",
        description="Managed Redis cluster",
        pros='["rich data types"]',
        cons='["cost"]',
    )
    _call(server, phase="explore", branchId="memcached", name="Memcached", description="Simple LRU cache")
    return created["sessionId"]


def test_full_session_writes_event_log_plan_and_index(persistence: PersistenceManager, plans_dir: Path) -> None:
    server = PlanningServer(persistence)
    session_id = _explore_cache_options(server)
    _call(server, phase="evaluate", branchId="redis", feasibility=8, completeness=7, coherence=9, risk=3,
          rationale="Fits the workload", recommendation="pursue")
    _call(server, phase="evaluate", branchId="memcached", feasibility=7, completeness=4, coherence=6, risk=5,
          rationale="Too limited", recommendation="abandon")

    final = _call(
        server,
        phase="finalize",
        selectedBranch="redis",
        steps=json.dumps(
            [
                {"title": "Provision Redis", "description": "Terraform module", "complexity": "low"},
                {"action": "Add cache client", "dependencies": [1], "files": ["app/cache.py"]},
            ]
        ),
        risks='[{"description": "Cold start", "mitigation": "Warm keys on deploy"}]',
        assumptions='["Read heavy traffic"]',
        successCriteria='["Hit rate above 85%"]',
    )

    assert final["status"] == "complete"
    assert final["phase"] == "done"
    assert final["approachCount"] == 2
    assert final["evaluationCount"] == 2
    assert final["validNextPhases"] == ["init"]
    plan = final["plan"]
    assert plan.startswith("# Plan: Redis")
    assert "**Score:** 7.80/10" in plan
    rejected = plan.split("## Rejected Approaches", 1)[1]
    assert "### Memcached" in rejected
    assert "### Step 2: Add cache client" in plan

    events = (plans_dir / f"{session_id}.jsonl").read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["phase"] for line in events] == [
        "init",
        "clarify",
        "explore",
        "explore",
        "evaluate",
        "evaluate",
        "done",
    ]
    markdown_files = list(plans_dir.glob(f"*-{session_id}.md"))
    assert len(markdown_files) == 1
    assert markdown_files[0].read_text(encoding="utf-8") == plan

    entry = persistence.read_index()[session_id]
    assert entry.phase is PlanPhase.DONE
    assert entry.selected_branch == "redis"
    assert entry.finalized_at is not None
    assert entry.file_paths.markdown == markdown_files[0].name


def test_json_finalize_still_writes_markdown_file(persistence: PersistenceManager, plans_dir: Path) -> None:
    server = PlanningServer(persistence)
    session_id = _explore_cache_options(server)
    _call(server, phase="evaluate", branchId="redis")

    final = _call(server, phase="finalize", selectedBranch="redis", format="json")

    assert json.loads(final["plan"])["title"] == "Redis"
    markdown = next(plans_dir.glob(f"*-{session_id}.md")).read_text(encoding="utf-8")
    assert markdown.startswith("# Plan: Redis")


def test_init_indexes_session_immediately(persistence: PersistenceManager) -> None:
    server = PlanningServer(persistence)
    created = _call(server, phase="init", problem="Build cache")

    plans = server.list_plans(status="in-progress")

    assert [plan.session_id for plan in plans] == [created["sessionId"]]
    assert server.get_plan(created["sessionId"]).format == "jsonl"


def test_errors_are_flagged_and_not_persisted(persistence: PersistenceManager, plans_dir: Path) -> None:
    server = PlanningServer(persistence)

    result = server.process_planning_step({"phase": "explore", "branchId": "a", "name": "A"})

    assert isinstance(result, ToolResult)
    assert result.is_error
    assert result.to_payload()["isError"] is True
    assert result.structured_content["status"] == "error"
    assert result.structured_content["validNextPhases"] == ["init"]
    assert not plans_dir.exists()


def test_new_server_resumes_session_from_disk(persistence: PersistenceManager, plans_dir: Path) -> None:
    first = PlanningServer(persistence)
    session_id = _explore_cache_options(first)

    second = PlanningServer(PersistenceManager(plans_dir=plans_dir))
    evaluated = _call(second, phase="evaluate", sessionId=session_id, branchId="memcached", feasibility=6)

    assert evaluated["status"] == "ok"
    assert evaluated["sessionId"] == session_id
    assert evaluated["approachCount"] == 2
    assert evaluated["evaluationCount"] == 1


def test_resuming_unknown_session_reports_error(persistence: PersistenceManager) -> None:
    server = PlanningServer(persistence)

    result = server.process_planning_step({"phase": "clarify", "sessionId": "unknown1", "question": "?"})

    assert result.is_error
    assert result.structured_content["message"] == 'Planning session "unknown1" not found.'


def test_unexpected_failures_become_failed_results(
    persistence: PersistenceManager,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    server = PlanningServer(persistence)

    def explode(payload: Any) -> Any:
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(server.state, "process", explode)
    result = server.process_planning_step({"phase": "init", "problem": "x"})

    assert result.is_error
    assert result.structured_content == {"error": "disk on fire", "status": "failed"}


def test_success_results_have_no_error_flag(persistence: PersistenceManager) -> None:
    result = PlanningServer(persistence).process_planning_step({"phase": "init", "problem": "Build cache"})

    assert not result.is_error
    assert "isError" not in result.to_payload()
    assert result.to_payload()["content"][0]["type"] == "text"


def test_lone_surrogates_are_rejected_before_anything_is_stored(
    persistence: PersistenceManager,
    plans_dir: Path,
) -> None:
    server = PlanningServer(persistence)
    created = _call(server, phase="init", problem="p")
    session_id = created["sessionId"]

    explore = server.process_planning_step(
        {"phase": "explore", "branchId": "a", "name": "A", "pros": '["\\ud800"]'}
    )
    bad_init = server.process_planning_step({"phase": "init", "problem": "cache \ud800"})

    assert explore.is_error
    assert explore.structured_content["status"] == "error"
    assert explore.structured_content["message"] == "pros contains invalid unicode (lone surrogate)"
    assert explore.structured_content["approachCount"] == 0
    assert bad_init.structured_content["status"] == "error"
    assert bad_init.structured_content["sessionId"] == session_id
    assert server.state.session.session_id == session_id
    assert server.state.session.approaches == []
    events = (plans_dir / f"{session_id}.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(events) == 1
    assert list(persistence.read_index()) == [session_id]


def test_storage_encoding_failures_do_not_fail_the_call(
    persistence: PersistenceManager,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    server = PlanningServer(persistence)

    def unwritable(path: Path, *args: Any, **kwargs: Any) -> int:
        raise UnicodeEncodeError("utf-8", "\ud800", 0, 1, "surrogates not allowed")

    monkeypatch.setattr(Path, "write_text", unwritable)
    result = server.process_planning_step({"phase": "init", "problem": "Build cache"})

    assert not result.is_error
    assert result.structured_content["status"] == "ok"
    assert server.state.session is not None
