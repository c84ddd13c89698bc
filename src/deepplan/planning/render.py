"""Render a finalized planning session as Markdown or JSON."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from ..memory.schema import Approach, Evaluation, PlanningSession, PlanStep


def _num(value: float) -> str:
    return f"{value:g}"


def _drop_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


def plan_title(session: PlanningSession) -> str:
    """Return the selected approach's name, or ``Untitled``."""
    selected = session.find_approach(session.selected_approach)
    return selected.name if selected is not None else "Untitled"


def _header_section(session: PlanningSession) -> List[str]:
    lines = [f"# Plan: {plan_title(session)}", "", "## Problem", session.problem, ""]
    if session.context:
        lines += ["## Context", session.context, ""]
    if session.constraints:
        lines += ["## Constraints", *(f"- {item}" for item in session.constraints), ""]
    if session.clarifications:
        lines += ["## Clarifications", "", "| Question | Answer |", "|----------|--------|"]
        lines += [
            f"| {item.question} | {item.answer if item.answer is not None else 'Pending'} |"
            for item in session.clarifications
        ]
        lines.append("")
    return lines


def _selected_section(selected: Optional[Approach], evaluation: Optional[Evaluation]) -> List[str]:
    lines = [f"## Selected Approach: {selected.name if selected else 'N/A'}", ""]
    if evaluation is not None:
        scores = evaluation.scores
        lines += [
            f"**Score:** {evaluation.weighted_score:.2f}/10",
            f"**Rationale:** {evaluation.rationale}",
            f"**Recommendation:** {evaluation.recommendation.value}",
            "",
            "| Criterion | Score |",
            "|-----------|-------|",
            f"| Feasibility | {_num(scores.feasibility)}/10 |",
            f"| Completeness | {_num(scores.completeness)}/10 |",
            f"| Coherence | {_num(scores.coherence)}/10 |",
            f"| Risk | {_num(scores.risk)}/10 |",
            "",
        ]
    if selected is not None and selected.pros:
        lines += ["**Pros:**", *(f"- {item}" for item in selected.pros), ""]
    if selected is not None and selected.cons:
        lines += ["**Cons:**", *(f"- {item}" for item in selected.cons), ""]
    return lines


def _rejected_section(session: PlanningSession, rejected: List[Approach]) -> List[str]:
    if not rejected:
        return []
    lines = ["## Rejected Approaches", ""]
    for approach in rejected:
        lines.append(f"### {approach.name}")
        evaluation = session.find_evaluation(approach.branch_id)
        if evaluation is not None:
            lines += [
                f"**Score:** {evaluation.weighted_score:.2f}/10 | "
                f"**Recommendation:** {evaluation.recommendation.value}",
                f"**Rationale:** {evaluation.rationale}",
            ]
        lines.append("")
    return lines


def _steps_section(steps: List[PlanStep]) -> List[str]:
    if not steps:
        return []
    lines = ["## Implementation Steps", ""]
    for number, step in enumerate(steps, start=1):
        lines += [f"### Step {number}: {step.title}", step.description]
        if step.files:
            lines.append(f"- **Files:** {', '.join(step.files)}")
        if step.dependencies:
            lines.append(f"- **Depends on:** {', '.join(f'Step {dep}' for dep in step.dependencies)}")
        if step.complexity is not None:
            lines.append(f"- **Complexity:** {step.complexity.value}")
        lines.append("")
    return lines


def _footer_section(session: PlanningSession) -> List[str]:
    lines: List[str] = []
    if session.risks:
        lines += ["## Risks", "", "| Risk | Mitigation |", "|------|------------|"]
        lines += [f"| {risk.description} | {risk.mitigation} |" for risk in session.risks]
        lines.append("")
    if session.assumptions:
        lines += ["## Assumptions", *(f"- {item}" for item in session.assumptions), ""]
    if session.success_criteria:
        lines += ["## Success Criteria", *(f"- [ ] {item}" for item in session.success_criteria), ""]
    return lines


def _split_approaches(session: PlanningSession) -> tuple[Optional[Approach], List[Approach]]:
    selected = session.find_approach(session.selected_approach)
    rejected = [item for item in session.approaches if item.branch_id != session.selected_approach]
    return selected, rejected


def render_markdown(session: PlanningSession) -> str:
    """Render the plan document; sections without data are omitted."""
    selected, rejected = _split_approaches(session)
    lines = [
        *_header_section(session),
        *_selected_section(selected, session.find_evaluation(session.selected_approach)),
        *_rejected_section(session, rejected),
        *_steps_section(session.steps),
        *_footer_section(session),
    ]
    return "\n".join(lines)


def build_json_plan(session: PlanningSession) -> Dict[str, Any]:
    """Return the JSON plan document as a dictionary."""
    selected, rejected = _split_approaches(session)
    selected_eval = session.find_evaluation(session.selected_approach)

    rejected_payload = []
    for approach in rejected:
        evaluation = session.find_evaluation(approach.branch_id)
        rejected_payload.append(
            _drop_none(
                {
                    "name": approach.name,
                    "branchId": approach.branch_id,
                    "score": evaluation.weighted_score if evaluation else None,
                    "recommendation": evaluation.recommendation.value if evaluation else None,
                    "rationale": evaluation.rationale if evaluation else None,
                }
            )
        )

    return _drop_none(
        {
            "title": plan_title(session),
            "problem": session.problem,
            "context": session.context,
            "constraints": list(session.constraints),
            "clarifications": [item.to_payload() for item in session.clarifications],
            "selectedApproach": _drop_none(
                {
                    "name": selected.name if selected else None,
                    "branchId": session.selected_approach,
                    "score": selected_eval.weighted_score if selected_eval else None,
                    "rationale": selected_eval.rationale if selected_eval else None,
                }
            ),
            "rejectedApproaches": rejected_payload,
            "steps": [step.to_payload() for step in session.steps],
            "risks": [risk.to_payload() for risk in session.risks],
            "assumptions": list(session.assumptions),
            "successCriteria": list(session.success_criteria),
        }
    )


def render_json(session: PlanningSession) -> str:
    return json.dumps(build_json_plan(session), indent=2, ensure_ascii=False)


def render_plan(session: PlanningSession, plan_format: str = "markdown") -> str:
    if plan_format == "json":
        return render_json(session)
    return render_markdown(session)
