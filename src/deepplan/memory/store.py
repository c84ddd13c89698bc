"""Durable storage for planning sessions: JSONL event logs, Markdown plans, and an index."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from .schema import (
    IndexedPlan,
    PlanEvent,
    PlanFilePaths,
    PlanIndexEntry,
    PlanningSession,
    PlanPhase,
)

LOGGER = logging.getLogger(__name__)

LOG_PREFIX = "[deep-planning]"
PLANS_DIR_ENV = "DEEP_PLANNING_PLANS_DIR"
DEFAULT_CONFIG_NAME = "config.yaml"
GLOBAL_CONFIG_PATH = Path("~/.deep-planning") / DEFAULT_CONFIG_NAME
DEFAULT_PLANS_DIR = Path("~/.deep-planning") / "plans"
INDEX_FILENAME = "deep-planning-index.json"

PlansIndex = Dict[str, PlanIndexEntry]


def _read_yaml_safe(path: Path) -> Optional[Mapping[str, Any]]:
    """Load a YAML mapping, treating unreadable or malformed files as absent."""
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except (OSError, ValueError, yaml.YAMLError):
        return None
    return data if isinstance(data, Mapping) else None


def _configured_plans_dir(config: Optional[Mapping[str, Any]]) -> Optional[str]:
    paths = (config or {}).get("paths")
    if not isinstance(paths, Mapping):
        return None
    value = paths.get("plans")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_plans_directory(
    project_root: Path | str | None = None,
    *,
    override: Path | str | None = None,
) -> Path:
    """Resolve the plans directory.

    Resolution order:
    1. ``override`` argument, then the ``DEEP_PLANNING_PLANS_DIR`` env var
    2. ``<project_root>/config.yaml`` -> ``paths.plans`` (relative to the project)
    3. ``~/.deep-planning/config.yaml`` -> ``paths.plans``
    4. ``~/.deep-planning/plans``
    """
    if override:
        return Path(override).expanduser()
    env_dir = os.environ.get(PLANS_DIR_ENV, "").strip()
    if env_dir:
        return Path(env_dir).expanduser()

    if project_root is not None:
        root = Path(project_root)
        project_dir = _configured_plans_dir(_read_yaml_safe(root / DEFAULT_CONFIG_NAME))
        if project_dir:
            return (root / Path(project_dir).expanduser()).resolve()

    global_dir = _configured_plans_dir(_read_yaml_safe(GLOBAL_CONFIG_PATH.expanduser()))
    if global_dir:
        return Path(global_dir).expanduser()

    return DEFAULT_PLANS_DIR.expanduser()


def _split_lines(content: str) -> List[str]:
    return [line for line in content.strip().splitlines() if line.strip()]


@dataclass(slots=True)
class PlanLookup:
    """Result of fetching a stored plan by session id."""

    found: bool
    content: str
    format: str


class PersistenceManager:
    """File-backed persistence; every operation logs failures instead of raising."""

    def __init__(
        self,
        project_root: Path | str | None = None,
        *,
        plans_dir: Path | str | None = None,
    ) -> None:
        self._plans_dir = resolve_plans_directory(project_root, override=plans_dir)
        self._dir_created = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any], *, project_root: Path | str | None = None) -> "PersistenceManager":
        configured = _configured_plans_dir(config)
        if configured and project_root is not None and not Path(configured).expanduser().is_absolute():
            configured = str(Path(project_root) / configured)
        return cls(project_root, plans_dir=configured)

    @property
    def plans_dir(self) -> Path:
        return self._plans_dir

    @property
    def index_path(self) -> Path:
        return self._plans_dir / INDEX_FILENAME

    def _ensure_dir(self) -> None:
        if self._dir_created:
            return
        self._plans_dir.mkdir(parents=True, exist_ok=True)
        self._dir_created = True

    @staticmethod
    def jsonl_filename(session_id: str) -> str:
        return f"{session_id}.jsonl"

    @staticmethod
    def markdown_filename(session: PlanningSession) -> str:
        return f"{session.date_prefix}-{session.session_id}.md"

    # Event log -------------------------------------------------------------------------
    def append_event(self, session: PlanningSession) -> None:
        """Append a snapshot of ``session`` to its JSONL event log."""
        event = PlanEvent(phase=session.phase, session=session)
        try:
            line = json.dumps(event.to_payload(), ensure_ascii=False) + "\n"
            self._ensure_dir()
            path = self._plans_dir / self.jsonl_filename(session.session_id)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line)
        except (OSError, ValueError) as error:
            LOGGER.error("%s Failed to write JSONL event: %s", LOG_PREFIX, error)

    def read_events(self, session_id: str) -> List[PlanEvent]:
        """Return every event recorded for ``session_id``; raises on a corrupt log."""
        path = self._plans_dir / self.jsonl_filename(session_id)
        content = path.read_text(encoding="utf-8")
        return [PlanEvent.model_validate_json(line) for line in _split_lines(content)]

    def load_session(self, session_id: str) -> Optional[PlanningSession]:
        """Replay the event log and return the latest snapshot, if any."""
        try:
            events = self.read_events(session_id)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as error:
            LOGGER.error("%s Failed to load session %s: %s", LOG_PREFIX, session_id, error)
            return None
        if not events:
            return None
        return events[-1].session

    # Markdown export -------------------------------------------------------------------
    def write_markdown_plan(self, session: PlanningSession, markdown: str) -> None:
        """Write the rendered plan as ``YYYYMMDD-<sessionId>.md``."""
        try:
            self._ensure_dir()
            path = self._plans_dir / self.markdown_filename(session)
            path.write_text(markdown, encoding="utf-8")
        except (OSError, ValueError) as error:
            LOGGER.error("%s Failed to write Markdown plan: %s", LOG_PREFIX, error)

    # Index -----------------------------------------------------------------------------
    def read_index(self) -> PlansIndex:
        """Read the plans index; a missing or corrupt file yields an empty index."""
        try:
            raw = json.loads(self.index_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        if not isinstance(raw, dict):
            return {}
        index: PlansIndex = {}
        for session_id, payload in raw.items():
            try:
                index[str(session_id)] = PlanIndexEntry.model_validate(payload)
            except ValidationError:
                LOGGER.warning("%s Dropping malformed index entry: %s", LOG_PREFIX, session_id)
        return index

    def _write_index(self, index: PlansIndex) -> None:
        """Persist the index atomically (temp file in the same directory, then rename)."""
        payload = {session_id: entry.to_payload() for session_id, entry in index.items()}
        tmp_path = self.index_path.with_name(f"{INDEX_FILENAME}.tmp")
        try:
            self._ensure_dir()
            tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
            os.replace(tmp_path, self.index_path)
        except (OSError, ValueError) as error:
            LOGGER.error("%s Failed to write plans index: %s", LOG_PREFIX, error)
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)

    def update_index(self, session_id: str, entry: PlanIndexEntry) -> None:
        """Add or replace the index entry for ``session_id``."""
        index = self.read_index()
        index[session_id] = entry
        self._write_index(index)

    def index_entry_for(self, session: PlanningSession, *, markdown: bool = False) -> PlanIndexEntry:
        done = session.phase == PlanPhase.DONE
        return PlanIndexEntry(
            problem=session.problem,
            created_at=session.created_at,
            finalized_at=session.updated_at if done else None,
            selected_branch=session.selected_approach if done else None,
            phase=session.phase,
            file_paths=PlanFilePaths(
                jsonl=self.jsonl_filename(session.session_id),
                markdown=self.markdown_filename(session) if markdown else None,
            ),
        )

    # Queries ---------------------------------------------------------------------------
    def list_plans(
        self,
        *,
        status: Optional[str] = None,
        keyword: Optional[str] = None,
    ) -> List[IndexedPlan]:
        """List indexed plans, newest first.

        ``status`` is ``"complete"`` or ``"in-progress"``; ``keyword`` is a
        case-insensitive substring match on the problem text.
        """
        entries = [
            IndexedPlan(session_id=session_id, **entry.model_dump())
            for session_id, entry in self.read_index().items()
        ]
        if status == "complete":
            entries = [entry for entry in entries if entry.is_complete]
        elif status == "in-progress":
            entries = [entry for entry in entries if not entry.is_complete]
        if keyword:
            needle = keyword.lower()
            entries = [entry for entry in entries if needle in entry.problem.lower()]
        entries.sort(key=lambda entry: entry.created_at, reverse=True)
        return entries

    def get_plan(self, session_id: str, format: str = "markdown") -> PlanLookup:
        """Fetch a stored plan, falling back to the event log when no Markdown exists."""
        entry = self.read_index().get(session_id)
        if entry is None:
            return PlanLookup(False, f'No plan found with sessionId "{session_id}".', format)

        try:
            if format != "jsonl" and entry.file_paths.markdown:
                content = (self._plans_dir / entry.file_paths.markdown).read_text(encoding="utf-8")
                return PlanLookup(True, content, "markdown")
            content = (self._plans_dir / entry.file_paths.jsonl).read_text(encoding="utf-8")
            return PlanLookup(True, content, "jsonl")
        except (OSError, ValueError) as error:
            return PlanLookup(False, f"Failed to read plan file: {error}", format)

    def rebuild_index(self) -> PlansIndex:
        """Recreate the index from every ``*.jsonl`` file in the plans directory."""
        try:
            files = sorted(path for path in self._plans_dir.iterdir() if path.suffix == ".jsonl")
        except OSError as error:
            LOGGER.error("%s Failed to rebuild index: %s", LOG_PREFIX, error)
            return {}

        index: PlansIndex = {}
        for path in files:
            try:
                lines = _split_lines(path.read_text(encoding="utf-8"))
                if not lines:
                    continue
                first = PlanEvent.model_validate_json(lines[0]).session
                last = PlanEvent.model_validate_json(lines[-1]).session
            except (OSError, ValueError) as error:
                LOGGER.warning("%s Skipping corrupted JSONL file: %s (%s)", LOG_PREFIX, path.name, error)
                continue

            markdown_name = self.markdown_filename(first)
            done = last.phase == PlanPhase.DONE
            index[first.session_id] = PlanIndexEntry(
                problem=first.problem,
                created_at=first.created_at,
                finalized_at=last.updated_at if done else None,
                selected_branch=last.selected_approach,
                phase=last.phase,
                file_paths=PlanFilePaths(
                    jsonl=path.name,
                    markdown=markdown_name if (self._plans_dir / markdown_name).exists() else None,
                ),
            )

        self._write_index(index)
        return index
