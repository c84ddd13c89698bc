"""Normalisation of loosely shaped implementation steps."""

from __future__ import annotations

from typing import Any, Mapping

from ..memory.schema import PlanStep

TITLE_KEYS = ("title", "action", "name", "step")
DESCRIPTION_KEYS = ("description", "detail", "details", "info")


def _first_string(raw: Mapping[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str):
            return value
    return None


def normalize_plan_step(raw: Mapping[str, Any], index: int) -> PlanStep:
    """Map alias keys onto ``title``/``description`` for the step at ``index`` (0-based)."""
    title = _first_string(raw, TITLE_KEYS)
    description = _first_string(raw, DESCRIPTION_KEYS)
    extras = {
        key: raw[key]
        for key in ("files", "dependencies", "complexity")
        if raw.get(key) not in (None, "")
    }
    return PlanStep.model_validate(
        {
            "title": title if title is not None else f"Step {index + 1}",
            "description": description if description is not None else "",
            **extras,
        }
    )
