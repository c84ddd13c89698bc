"""CLI commands for running and inspecting deep planning sessions."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml

from .memory.store import PersistenceManager
from .server import PlanningServer, ToolResult

APP_HELP = "Deep planning CLI entry point."
THOUGHT_LOGGING_ENV = "DISABLE_THOUGHT_LOGGING"

app = typer.Typer(help=APP_HELP)


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration from disk and return it as a dictionary."""
    if not config_path.exists():
        raise typer.BadParameter(f"Config file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        typer.echo(f"Failed to parse config: {error}")
        raise typer.Exit(code=1) from error

    if not isinstance(data, dict):
        typer.echo("Configuration must be a mapping at the top level.")
        raise typer.Exit(code=1)

    return data


def _configure_logging(level: str) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"Unknown log level: {level}")
    logging.basicConfig(level=numeric, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)
    logging.getLogger("deepplan").setLevel(numeric)
    if os.environ.get(THOUGHT_LOGGING_ENV, "").strip().lower() == "true":
        logging.getLogger("deepplan.planning").setLevel(logging.WARNING)


def _build_persistence(
    plans_dir: Optional[Path],
    project_root: Optional[Path],
    config: Optional[Path],
) -> PersistenceManager:
    if config is not None and plans_dir is None:
        return PersistenceManager.from_config(load_config(config), project_root=project_root or config.parent)
    return PersistenceManager(project_root, plans_dir=plans_dir)


PLANS_DIR_OPTION = typer.Option(None, "--plans-dir", help="Directory holding event logs, plans and the index.")
PROJECT_ROOT_OPTION = typer.Option(None, "--project-root", help="Project whose config.yaml may set paths.plans.")
CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to a YAML configuration file.")


def _emit(result: ToolResult) -> None:
    typer.echo(result.text)
    if result.is_error:
        raise typer.Exit(code=1)


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level for stderr output."),
) -> None:
    """Track phased planning sessions: init, clarify, explore, evaluate, finalize."""
    _configure_logging(log_level)


@app.command()
def serve(
    plans_dir: Optional[Path] = PLANS_DIR_OPTION,
    project_root: Optional[Path] = PROJECT_ROOT_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Answer one JSON planning request per stdin line, keeping the active session."""
    server = PlanningServer(_build_persistence(plans_dir, project_root, config))
    for line in sys.stdin:
        if not line.strip():
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as error:
            result = ToolResult.from_payload({"error": f"Invalid request: {error}", "status": "failed"}, is_error=True)
        else:
            if isinstance(payload, dict):
                result = server.process_planning_step(payload)
            else:
                result = ToolResult.from_payload(
                    {"error": "Request must be a JSON object.", "status": "failed"},
                    is_error=True,
                )
        typer.echo(json.dumps(result.to_payload(), ensure_ascii=False))


@app.command()
def step(
    phase: str = typer.Option(..., "--phase", "-p", help="init, clarify, explore, evaluate or finalize."),
    session_id: Optional[str] = typer.Option(None, "--session-id", "-s", help="Resume this stored session."),
    problem: Optional[str] = typer.Option(None, "--problem", help="Problem statement (init)."),
    context: Optional[str] = typer.Option(None, "--context", help="Background context (init)."),
    constraints: Optional[str] = typer.Option(None, "--constraints", help="JSON array of constraints (init)."),
    question: Optional[str] = typer.Option(None, "--question", help="Clarifying question (clarify)."),
    answer: Optional[str] = typer.Option(None, "--answer", help="Answer to the question (clarify)."),
    branch_id: Optional[str] = typer.Option(None, "--branch-id", help="Approach identifier (explore/evaluate)."),
    name: Optional[str] = typer.Option(None, "--name", help="Approach name (explore)."),
    description: Optional[str] = typer.Option(None, "--description", help="Approach description (explore)."),
    pros: Optional[str] = typer.Option(None, "--pros", help="JSON array of advantages (explore)."),
    cons: Optional[str] = typer.Option(None, "--cons", help="JSON array of disadvantages (explore)."),
    feasibility: Optional[float] = typer.Option(None, "--feasibility", help="Score 0-10 (evaluate)."),
    completeness: Optional[float] = typer.Option(None, "--completeness", help="Score 0-10 (evaluate)."),
    coherence: Optional[float] = typer.Option(None, "--coherence", help="Score 0-10 (evaluate)."),
    risk: Optional[float] = typer.Option(None, "--risk", help="Risk 0-10, lower is better (evaluate)."),
    rationale: Optional[str] = typer.Option(None, "--rationale", help="Reasoning for the scores (evaluate)."),
    recommendation: Optional[str] = typer.Option(None, "--recommendation", help="pursue, refine or abandon."),
    selected_branch: Optional[str] = typer.Option(None, "--selected-branch", help="Chosen approach (finalize)."),
    steps: Optional[str] = typer.Option(None, "--steps", help="JSON array of step objects (finalize)."),
    risks: Optional[str] = typer.Option(None, "--risks", help="JSON array of {description, mitigation}."),
    assumptions: Optional[str] = typer.Option(None, "--assumptions", help="JSON array of assumptions."),
    success_criteria: Optional[str] = typer.Option(None, "--success-criteria", help="JSON array of criteria."),
    plan_format: Optional[str] = typer.Option(None, "--format", help="markdown (default) or json (finalize)."),
    plans_dir: Optional[Path] = PLANS_DIR_OPTION,
    project_root: Optional[Path] = PROJECT_ROOT_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Run a single planning step; non-init steps resume ``--session-id`` from disk."""
    fields = {
        "phase": phase,
        "sessionId": session_id,
        "problem": problem,
        "context": context,
        "constraints": constraints,
        "question": question,
        "answer": answer,
        "branchId": branch_id,
        "name": name,
        "description": description,
        "pros": pros,
        "cons": cons,
        "feasibility": feasibility,
        "completeness": completeness,
        "coherence": coherence,
        "risk": risk,
        "rationale": rationale,
        "recommendation": recommendation,
        "selectedBranch": selected_branch,
        "steps": steps,
        "risks": risks,
        "assumptions": assumptions,
        "successCriteria": success_criteria,
        "format": plan_format,
    }
    payload = {key: value for key, value in fields.items() if value is not None}
    server = PlanningServer(_build_persistence(plans_dir, project_root, config))
    _emit(server.process_planning_step(payload))


@app.command("list")
def list_plans(
    status: Optional[str] = typer.Option(None, "--status", help="complete or in-progress."),
    keyword: Optional[str] = typer.Option(None, "--keyword", "-k", help="Case-insensitive match on the problem."),
    as_json: bool = typer.Option(False, "--json", help="Emit the listing as JSON."),
    plans_dir: Optional[Path] = PLANS_DIR_OPTION,
    project_root: Optional[Path] = PROJECT_ROOT_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """List saved planning sessions, newest first."""
    if status is not None and status not in {"complete", "in-progress"}:
        raise typer.BadParameter("--status must be 'complete' or 'in-progress'.")
    persistence = _build_persistence(plans_dir, project_root, config)
    plans = persistence.list_plans(status=status, keyword=keyword)

    if as_json:
        typer.echo(json.dumps([plan.to_payload() for plan in plans], indent=2, ensure_ascii=False))
        return
    if not plans:
        typer.echo("No saved plans.")
        return
    for plan in plans:
        selected = f" -> {plan.selected_branch}" if plan.selected_branch else ""
        created = plan.created_at.strftime("%Y-%m-%d %H:%M")
        typer.echo(f"- {plan.session_id} [{plan.phase.value}] {created} {plan.problem}{selected}")


@app.command()
def show(
    session_id: str = typer.Argument(..., help="Session identifier to fetch."),
    plan_format: str = typer.Option("markdown", "--format", help="markdown or jsonl."),
    plans_dir: Optional[Path] = PLANS_DIR_OPTION,
    project_root: Optional[Path] = PROJECT_ROOT_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Print a stored plan, falling back to its event log when not finalized."""
    persistence = _build_persistence(plans_dir, project_root, config)
    lookup = persistence.get_plan(session_id, plan_format)
    typer.echo(lookup.content)
    if not lookup.found:
        raise typer.Exit(code=1)


@app.command("rebuild-index")
def rebuild_index(
    plans_dir: Optional[Path] = PLANS_DIR_OPTION,
    project_root: Optional[Path] = PROJECT_ROOT_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Recreate the plans index by scanning stored event logs."""
    persistence = _build_persistence(plans_dir, project_root, config)
    index = persistence.rebuild_index()
    typer.echo(f"Rebuilt index with {len(index)} session(s) at {persistence.index_path}")


@app.command()
def status(
    plans_dir: Optional[Path] = PLANS_DIR_OPTION,
    project_root: Optional[Path] = PROJECT_ROOT_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Report where plans are stored and how many sessions are indexed."""
    persistence = _build_persistence(plans_dir, project_root, config)
    plans = persistence.list_plans()
    complete = sum(1 for plan in plans if plan.is_complete)
    typer.echo(f"Plans directory: {persistence.plans_dir}")
    typer.echo(f"Sessions: total {len(plans)} | complete {complete} | in-progress {len(plans) - complete}")


if __name__ == "__main__":
    app()
