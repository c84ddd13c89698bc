"""Tool-call entry point wiring the planning state machine to persistence."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .memory.store import PersistenceManager, PlanLookup, PlansIndex
from .memory.schema import IndexedPlan
from .phases import PhaseName
from .planning.state_machine import PlanningStateMachine, Transition

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolResult:
    """Protocol-shaped response: text content plus an out-of-band error flag."""

    content: List[Dict[str, str]]
    is_error: bool = False
    structured_content: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], *, is_error: bool) -> "ToolResult":
        text = json.dumps(payload, indent=2, ensure_ascii=False)
        return cls(content=[{"type": "text", "text": text}], is_error=is_error, structured_content=payload)

    @property
    def text(self) -> str:
        return self.content[0]["text"] if self.content else ""

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"content": self.content}
        if self.is_error:
            payload["isError"] = True
        return payload


class PlanningServer:
    """Single-process planning service holding one active session at a time."""

    def __init__(
        self,
        persistence: Optional[PersistenceManager] = None,
        *,
        project_root: Path | str | None = None,
    ) -> None:
        self.persistence = persistence or PersistenceManager(project_root)
        self.state = PlanningStateMachine(loader=self.persistence.load_session)

    def process_planning_step(self, payload: Mapping[str, Any]) -> ToolResult:
        """Validate and apply one planning request, then record it durably."""
        try:
            result = self.state.process(payload)
            if result.ok:
                self._persist(result)
        except Exception as error:  # noqa: BLE001 - surfaced to the caller as a failed call
            LOGGER.exception("Planning step failed")
            return ToolResult.from_payload({"error": str(error), "status": "failed"}, is_error=True)
        return ToolResult.from_payload(result.output.to_payload(), is_error=not result.ok)

    def _persist(self, result: Transition) -> None:
        """Best-effort side effects; failures are logged by the persistence layer."""
        session = result.session
        if session is None:
            return
        self.persistence.append_event(session)
        if result.phase == PhaseName.INIT:
            self.persistence.update_index(session.session_id, self.persistence.index_entry_for(session))
        elif result.phase == PhaseName.FINALIZE:
            if result.markdown is not None:
                self.persistence.write_markdown_plan(session, result.markdown)
            self.persistence.update_index(
                session.session_id,
                self.persistence.index_entry_for(session, markdown=result.markdown is not None),
            )

    # Query passthroughs ----------------------------------------------------------------
    def list_plans(self, *, status: Optional[str] = None, keyword: Optional[str] = None) -> List[IndexedPlan]:
        return self.persistence.list_plans(status=status, keyword=keyword)

    def get_plan(self, session_id: str, format: str = "markdown") -> PlanLookup:
        return self.persistence.get_plan(session_id, format)

    def rebuild_index(self) -> PlansIndex:
        return self.persistence.rebuild_index()
