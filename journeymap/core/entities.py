"""
Entity model for the journey-map workspace.

One tenant tree per Client:

    Client ─┬─ Project ── Journey ── Phase (ordered)
            ├─ Job        (placed into phases via Phase.job_ids)
            ├─ Insight    (linked from jobs via Job.insight_ids)
            └─ Opportunity (kanban stage + stage_order, points at a phase)

Cell comments hang off a composite ``"<phaseId>::<rowKey>"`` key.

Entities are frozen dataclasses: engine operations never mutate them in
place, they build replacements with ``dataclasses.replace``. ``to_dict`` /
``from_dict`` use the camelCase shape that is persisted and sent over the
wire.
"""

from __future__ import annotations

import re
from dataclasses import MISSING, dataclass, field, fields, replace
from enum import Enum
from typing import Any


class JobTag(str, Enum):
    FUNCTIONAL = "Functional"
    SOCIAL = "Social"
    EMOTIONAL = "Emotional"


class Priority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class OpportunityStage(str, Enum):
    BACKLOG = "Backlog"
    IN_DISCOVERY = "In discovery"
    HORIZON_1 = "Horizon 1"
    HORIZON_2 = "Horizon 2"
    HORIZON_3 = "Horizon 3"


JOB_TAGS = tuple(t.value for t in JobTag)
PRIORITIES = tuple(p.value for p in Priority)
STAGES = tuple(s.value for s in OpportunityStage)

# Canonical display order of the built-in journey rows
BUILTIN_ROW_KEYS = (
    "description",
    "phaseHealth",
    "customerJobs",
    "frontStageActions",
    "channels",
    "struggles",
    "internalStruggles",
    "backStageActions",
    "systems",
    "relatedProcesses",
    "opportunities",
    "relatedDocuments",
)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _snake(name: str) -> str:
    return re.sub(r"([A-Z])", lambda m: "_" + m.group(1).lower(), name)


class Record:
    """camelCase (de)serialization shared by every entity dataclass."""

    def to_dict(self) -> dict:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, list):
                value = [v.to_dict() if isinstance(v, Record) else v for v in value]
            elif isinstance(value, dict):
                value = dict(value)
            out[_camel(f.name)] = value
        return out

    @classmethod
    def from_dict(cls, data: dict):
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            value = data.get(_camel(f.name))
            if value is None:
                continue
            if f.default_factory is not MISSING:
                expected = type(f.default_factory())
                if not isinstance(value, expected):
                    continue
                value = expected(value)
            kwargs[f.name] = value
        return cls(**kwargs)

    def evolve(self, **changes):
        return replace(self, **changes)


@dataclass(frozen=True)
class Client(Record):
    id: str = ""
    name: str = ""
    description: str | None = None
    website: str | None = None
    logo_url: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class Project(Record):
    id: str = ""
    client_id: str = ""
    name: str = ""
    description: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class JourneyRow(Record):
    id: str = ""
    label: str = ""


@dataclass(frozen=True)
class Journey(Record):
    id: str = ""
    project_id: str = ""
    name: str = ""
    description: str | None = None
    row_order: list = field(default_factory=lambda: list(BUILTIN_ROW_KEYS))
    custom_rows: list = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: dict):
        journey = super().from_dict(data)
        rows = [
            r if isinstance(r, JourneyRow) else JourneyRow.from_dict(r)
            for r in journey.custom_rows
            if isinstance(r, (dict, JourneyRow))
        ]
        return replace(journey, custom_rows=rows)


@dataclass(frozen=True)
class Phase(Record):
    id: str = ""
    journey_id: str = ""
    order: int = 0
    title: str = "New Phase"
    description: str = ""
    image_url: str = ""
    struggles: str = ""
    internal_struggles: str = ""
    opportunities: str = ""
    front_stage_actions: str = ""
    back_stage_actions: str = ""
    systems: str = ""
    related_processes: str = ""
    channels: str = ""
    job_ids: list = field(default_factory=list)
    # Legacy embedded job list; emptied once jobs are promoted
    customer_jobs: str = ""
    related_documents: str = ""
    custom_row_values: dict = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""


# Phase fields that hold free text and are edited through the debounced path
PHASE_TEXT_FIELDS = (
    "title",
    "description",
    "image_url",
    "struggles",
    "internal_struggles",
    "opportunities",
    "front_stage_actions",
    "back_stage_actions",
    "systems",
    "related_processes",
    "channels",
    "related_documents",
)


@dataclass(frozen=True)
class Job(Record):
    id: str = ""
    client_id: str = ""
    name: str = "Untitled job"
    description: str | None = None
    tag: str = JobTag.FUNCTIONAL.value
    priority: str = Priority.MEDIUM.value
    struggles: list = field(default_factory=list)
    functional_dimensions: list = field(default_factory=list)
    social_dimensions: list = field(default_factory=list)
    emotional_dimensions: list = field(default_factory=list)
    solutions_and_workarounds: str | None = None
    is_priority: bool = False
    insight_ids: list = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class Insight(Record):
    id: str = ""
    client_id: str = ""
    title: str = "Untitled insight"
    description: str = ""
    priority: str = Priority.MEDIUM.value
    order: int = 0
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class Opportunity(Record):
    id: str = ""
    client_id: str = ""
    project_id: str = ""
    journey_id: str = ""
    phase_id: str = ""
    stage: str = OpportunityStage.BACKLOG.value
    stage_order: int = 0
    name: str = "Untitled"
    priority: str = Priority.HIGH.value
    description: str = ""
    point_of_differentiation: str = ""
    critical_assumptions: str = ""
    linked_job_ids: list = field(default_factory=list)
    is_priority: bool = False
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class CellComment(Record):
    text: str = ""
    replies: list = field(default_factory=list)


# Snapshot collection name -> entity class
COLLECTIONS = {
    "clients": Client,
    "projects": Project,
    "journeys": Journey,
    "phases": Phase,
    "jobs": Job,
    "insights": Insight,
    "opportunities": Opportunity,
}


@dataclass(frozen=True)
class EntityGraph:
    """One immutable snapshot of a workspace's entity collections."""

    clients: list = field(default_factory=list)
    projects: list = field(default_factory=list)
    journeys: list = field(default_factory=list)
    phases: list = field(default_factory=list)
    jobs: list = field(default_factory=list)
    insights: list = field(default_factory=list)
    opportunities: list = field(default_factory=list)
    cell_comments: dict = field(default_factory=dict)

    def replace(self, **changes) -> "EntityGraph":
        return replace(self, **changes)

    def get(self, collection: str, entity_id: str):
        """Return the entity with ``entity_id`` in ``collection`` or None."""
        for item in getattr(self, collection):
            if item.id == entity_id:
                return item
        return None

    def client_id_for_phase(self, phase: Phase) -> str | None:
        """Resolve the owning client through Phase → Journey → Project."""
        journey = self.get("journeys", phase.journey_id)
        project = self.get("projects", journey.project_id) if journey else None
        return project.client_id if project else None

    def to_dict(self) -> dict:
        out = {name: [item.to_dict() for item in getattr(self, name)] for name in COLLECTIONS}
        out["cellComments"] = {key: c.to_dict() for key, c in self.cell_comments.items()}
        return out

    @classmethod
    def from_dict(cls, data: dict | None) -> "EntityGraph":
        data = data or {}
        kwargs = {}
        for name, entity_cls in COLLECTIONS.items():
            rows = data.get(name) or []
            kwargs[name] = [entity_cls.from_dict(r) for r in rows if isinstance(r, dict)]
        comments = data.get("cellComments") or {}
        kwargs["cell_comments"] = {
            key: CellComment.from_dict(val) for key, val in comments.items() if isinstance(val, dict)
        }
        return cls(**kwargs)


def field_names(entity_cls) -> set[str]:
    """snake_case field names of an entity class."""
    return {f.name for f in fields(entity_cls)}


def snake_keys(data: dict) -> dict:
    """Convert camelCase keys of an incoming partial-update payload to snake_case."""
    return {_snake(k): v for k, v in data.items()}
