"""Shared helpers for phase runners: errors, JSON field parsing, session copies."""

from __future__ import annotations

import json
from typing import Any, List, Mapping, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

from ..memory.schema import PlanningSession, utc_now

T = TypeVar("T")

_ANY_ARRAY = TypeAdapter(List[Any])


class PhaseError(ValueError):
    """Raised when a phase request fails validation; the session is left untouched."""


class SessionNotFoundError(PhaseError):
    """Raised when a requested session id cannot be loaded from storage."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f'Planning session "{session_id}" not found.')
        self.session_id = session_id


def contains_surrogate(value: Any) -> bool:
    """Return True when ``value`` holds a lone UTF-16 surrogate, which cannot be written as UTF-8."""
    if isinstance(value, str):
        return any("\ud800" <= char <= "\udfff" for char in value)
    if isinstance(value, Mapping):
        return any(contains_surrogate(key) or contains_surrogate(item) for key, item in value.items())
    if isinstance(value, list):
        return any(contains_surrogate(item) for item in value)
    return False


def parse_json_array(value: Optional[str], field_name: str) -> List[Any]:
    """Decode a JSON-encoded array field; empty input yields an empty list."""
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as error:
        raise PhaseError(f"Invalid JSON for {field_name}") from error
    if contains_surrogate(parsed):
        raise PhaseError(f"{field_name} contains invalid unicode (lone surrogate)")
    try:
        return _ANY_ARRAY.validate_python(parsed, strict=True)
    except ValidationError as error:
        raise PhaseError(f"{field_name} must be a JSON array") from error


def parse_string_array(value: Optional[str], field_name: str) -> List[str]:
    """Decode a JSON array of strings, stringifying scalar items."""
    items = parse_json_array(value, field_name)
    result: List[str] = []
    for item in items:
        if isinstance(item, (dict, list)):
            raise PhaseError(f"{field_name} must be a JSON array of strings")
        result.append(item if isinstance(item, str) else json.dumps(item))
    return result


def parse_model_array(value: Optional[str], field_name: str, model: type[T]) -> List[T]:
    """Decode a JSON array whose items must validate as ``model``."""
    items = parse_json_array(value, field_name)
    try:
        return TypeAdapter(List[model]).validate_python(items)  # type: ignore[valid-type]
    except ValidationError as error:
        raise PhaseError(f"{field_name} items are malformed: {error.errors()[0]['msg']}") from error


def fork(session: PlanningSession) -> PlanningSession:
    """Return a deep copy that a runner may mutate without touching the original."""
    return session.model_copy(deep=True)


def touch(session: PlanningSession) -> PlanningSession:
    session.updated_at = utc_now()
    return session


def require(value: Optional[str], message: str) -> str:
    if not value:
        raise PhaseError(message)
    return value
