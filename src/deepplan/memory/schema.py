"""Typed records tracked by the deep planning session store."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _as_utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


Timestamp = Annotated[datetime, AfterValidator(_as_utc)]


class RecordModel(BaseModel):
    """Base Pydantic model persisted with camelCase keys."""

    model_config = ConfigDict(
        extra="ignore",
        frozen=False,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_payload(self) -> Dict[str, object]:
        """Serialise the record the way it is written to disk and the wire."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PlanPhase(str, Enum):
    """Lifecycle states for a planning session."""

    INIT = "init"
    CLARIFY = "clarify"
    EXPLORE = "explore"
    EVALUATE = "evaluate"
    FINALIZE = "finalize"
    DONE = "done"


class Recommendation(str, Enum):
    """Verdict attached to an evaluated approach."""

    PURSUE = "pursue"
    REFINE = "refine"
    ABANDON = "abandon"


class Complexity(str, Enum):
    """Relative effort estimate for an implementation step."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Clarification(RecordModel):
    """Clarifying question, optionally answered."""

    question: str
    answer: Optional[str] = None


class Approach(RecordModel):
    """Candidate solution branch recorded during exploration."""

    branch_id: str
    name: str
    description: str = ""
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)


class EvaluationScores(RecordModel):
    """Raw 0-10 scores for the four evaluation dimensions."""

    feasibility: float = 5
    completeness: float = 5
    coherence: float = 5
    risk: float = 5


class Evaluation(RecordModel):
    """Scored assessment of one approach."""

    branch_id: str
    scores: EvaluationScores
    weighted_score: float
    rationale: str = ""
    recommendation: Recommendation = Recommendation.REFINE


class PlanStep(RecordModel):
    """Single implementation step in a finalized plan."""

    title: str
    description: str = ""
    files: Optional[List[str]] = None
    dependencies: Optional[List[int]] = None
    complexity: Optional[Complexity] = None


class PlanRisk(RecordModel):
    """Known risk with its mitigation."""

    description: str
    mitigation: str


class PlanningSession(RecordModel):
    """Root aggregate for a planning workflow."""

    session_id: str
    problem: str
    context: Optional[str] = None
    constraints: List[str] = Field(default_factory=list)
    phase: PlanPhase = PlanPhase.INIT
    clarifications: List[Clarification] = Field(default_factory=list)
    approaches: List[Approach] = Field(default_factory=list)
    evaluations: List[Evaluation] = Field(default_factory=list)
    selected_approach: Optional[str] = None
    steps: List[PlanStep] = Field(default_factory=list)
    risks: List[PlanRisk] = Field(default_factory=list)
    assumptions: List[str] = Field(default_factory=list)
    success_criteria: List[str] = Field(default_factory=list)
    created_at: Timestamp = Field(default_factory=utc_now)
    updated_at: Timestamp = Field(default_factory=utc_now)

    def find_approach(self, branch_id: Optional[str]) -> Optional[Approach]:
        return next((item for item in self.approaches if item.branch_id == branch_id), None)

    def find_evaluation(self, branch_id: Optional[str]) -> Optional[Evaluation]:
        return next((item for item in self.evaluations if item.branch_id == branch_id), None)

    @property
    def date_prefix(self) -> str:
        """Return the UTC calendar day of ``created_at`` as ``YYYYMMDD`` for exported filenames."""
        return self.created_at.strftime("%Y%m%d")


class PlanEvent(RecordModel):
    """One line of a session's append-only event log."""

    timestamp: Timestamp = Field(default_factory=utc_now)
    phase: PlanPhase
    session: PlanningSession


class PlanFilePaths(RecordModel):
    """Filenames, relative to the plans directory, backing an index entry."""

    jsonl: str
    markdown: Optional[str] = None


class PlanIndexEntry(RecordModel):
    """Denormalised summary of one session kept in the plans index."""

    problem: str
    created_at: Timestamp
    finalized_at: Optional[Timestamp] = None
    selected_branch: Optional[str] = None
    phase: PlanPhase
    file_paths: PlanFilePaths

    def to_payload(self) -> Dict[str, object]:
        # Index rows keep explicit nulls for unfinished sessions.
        return self.model_dump(mode="json", by_alias=True)


class IndexedPlan(PlanIndexEntry):
    """Index entry annotated with the session id it is keyed by."""

    session_id: str

    @property
    def is_complete(self) -> bool:
        return self.phase == PlanPhase.DONE
