"""
Mutation engine: create / update / delete for every workspace entity.

Every operation is a pure function ``(EntityGraph, args) -> MutationResult``.
Deletes cascade down the tenant tree and scrub the deleted id out of every
id-list that referenced it, so a persisted snapshot never holds a dangling
reference. Updates and deletes that name an unknown id return the graph
unchanged with ``found=False``; they never raise.

Cascade table (parent → removed with it):
    Client   → projects, journeys, phases, jobs, insights, opportunities, comments
    Project  → journeys, phases, their opportunities and comments
    Journey  → phases, their opportunities and comments
    Phase    → its opportunities and comments (jobs survive; only the placement goes)
    Job      → id removed from Phase.job_ids and Opportunity.linked_job_ids
    Insight  → id removed from Job.insight_ids
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields

from journeymap.core.entities import (
    JOB_TAGS,
    PRIORITIES,
    BUILTIN_ROW_KEYS,
    CellComment,
    Client,
    EntityGraph,
    Insight,
    Job,
    Journey,
    JourneyRow,
    Opportunity,
    OpportunityStage,
    Phase,
    Project,
    field_names,
)
from journeymap.core.exceptions import ValidationError
from journeymap.services.ordering import merge_row_order, stage_bucket
from journeymap.services.text_codec import parse_comment_key
from journeymap.utils.helpers import extract_domain, generate_id, now_iso

logger = logging.getLogger(__name__)

CLEARBIT_LOGO_URL = "https://logo.clearbit.com/{domain}"

# Fields a partial update may never touch, per entity
_IMMUTABLE = {
    Client: {"id", "created_at"},
    Project: {"id", "client_id", "created_at"},
    Journey: {"id", "project_id", "created_at"},
    Phase: {"id", "journey_id", "created_at"},
    Job: {"id", "client_id", "created_at"},
    Insight: {"id", "client_id", "created_at"},
    # Stage changes go through move_opportunity_to_stage so buckets stay contiguous
    Opportunity: {"id", "client_id", "created_at", "stage", "stage_order"},
}


@dataclass(frozen=True)
class MutationResult:
    """Outcome of one engine operation."""
    graph: EntityGraph
    entity: object | None = None
    found: bool = True


def _require(graph: EntityGraph, collection: str, entity_id: str, label: str):
    entity = graph.get(collection, entity_id)
    if entity is None:
        raise ValidationError(f"{label} {entity_id!r} does not exist", details={"id": entity_id})
    return entity


def _check_choice(value, choices, field_name: str):
    if value not in choices:
        raise ValidationError(f"Invalid {field_name}: {value!r}", details={field_name: value})
    return value


# Annotation (as written on the entity dataclasses) -> accepted value types
_FIELD_TYPES = {
    "str": (str,),
    "str | None": (str, type(None)),
    "int": (int,),
    "bool": (bool,),
    "list": (list,),
    "dict": (dict,),
}


def _check_types(entity_cls, changes: dict):
    """Reject partial-update values whose type does not match the entity field."""
    for f in fields(entity_cls):
        if f.name not in changes:
            continue
        value = changes[f.name]
        accepted = _FIELD_TYPES.get(f.type)
        ok = accepted is None or isinstance(value, accepted)
        if f.type == "int" and isinstance(value, bool):
            ok = False
        elif ok and f.type == "list" and f.name != "custom_rows":
            ok = all(isinstance(v, str) for v in value)
        elif ok and f.type == "dict":
            ok = all(isinstance(v, str) for v in value.values())
        if not ok:
            raise ValidationError(
                f"Invalid {f.name}: expected {f.type}, got {type(value).__name__}",
                details={f.name: f.type},
            )


def _update(graph: EntityGraph, collection: str, entity_cls, entity_id: str, data: dict) -> MutationResult:
    current = graph.get(collection, entity_id)
    if current is None:
        logger.debug("update %s: id %s not found (no-op)", collection, entity_id)
        return MutationResult(graph, None, found=False)

    allowed = field_names(entity_cls) - _IMMUTABLE[entity_cls] - {"updated_at"}
    changes = {k: v for k, v in data.items() if k in allowed}
    ignored = set(data) - set(changes)
    if ignored:
        logger.debug("update %s %s: ignoring fields %s", collection, entity_id, sorted(ignored))
    _check_types(entity_cls, changes)
    updated = current.evolve(**changes, updated_at=now_iso())
    items = [updated if e.id == entity_id else e for e in getattr(graph, collection)]
    return MutationResult(graph.replace(**{collection: items}), updated)


def _drop_comments(comments: dict, phase_ids: set) -> dict:
    kept = {}
    for key, comment in comments.items():
        parsed = parse_comment_key(key)
        if parsed and parsed[0] in phase_ids:
            continue
        kept[key] = comment
    return kept


def _remove_phases(graph: EntityGraph, phase_ids: set, journey_ids: set = frozenset(),
                   project_ids: set = frozenset()) -> EntityGraph:
    """Remove phases plus the opportunities and comments that hang off them.

    Stage buckets that lost an opportunity are renumbered to 0..k-1.
    """
    kept, buckets = [], set()
    for o in graph.opportunities:
        if o.phase_id in phase_ids or o.journey_id in journey_ids or o.project_id in project_ids:
            buckets.add((o.client_id, o.stage))
        else:
            kept.append(o)
    graph = graph.replace(
        phases=[p for p in graph.phases if p.id not in phase_ids],
        opportunities=kept,
        cell_comments=_drop_comments(graph.cell_comments, phase_ids),
    )
    return _renumber_buckets(graph, buckets)


def _renumber_buckets(graph: EntityGraph, buckets: set) -> EntityGraph:
    ts = now_iso()
    changed = {}
    for client_id, stage in buckets:
        for i, o in enumerate(stage_bucket(graph, client_id, stage)):
            if o.stage_order != i:
                changed[o.id] = o.evolve(stage_order=i, updated_at=ts)
    if not changed:
        return graph
    return graph.replace(opportunities=[changed.get(o.id, o) for o in graph.opportunities])


# ── Client ────────────────────────────────────────────────────────────


def create_client(graph: EntityGraph, name: str, description: str | None = None,
                  website: str | None = None) -> MutationResult:
    website = (website or "").strip() or None
    domain = extract_domain(website)
    ts = now_iso()
    client = Client(
        id=generate_id(),
        name=name,
        description=description,
        website=website,
        logo_url=CLEARBIT_LOGO_URL.format(domain=domain) if domain else None,
        created_at=ts,
        updated_at=ts,
    )
    return MutationResult(graph.replace(clients=[*graph.clients, client]), client)


def update_client(graph: EntityGraph, client_id: str, data: dict) -> MutationResult:
    return _update(graph, "clients", Client, client_id, data)


def delete_client(graph: EntityGraph, client_id: str) -> MutationResult:
    if graph.get("clients", client_id) is None:
        return MutationResult(graph, found=False)

    project_ids = {p.id for p in graph.projects if p.client_id == client_id}
    journey_ids = {j.id for j in graph.journeys if j.project_id in project_ids}
    phase_ids = {p.id for p in graph.phases if p.journey_id in journey_ids}

    graph = _remove_phases(graph, phase_ids)
    graph = graph.replace(
        clients=[c for c in graph.clients if c.id != client_id],
        projects=[p for p in graph.projects if p.client_id != client_id],
        journeys=[j for j in graph.journeys if j.id not in journey_ids],
        jobs=[j for j in graph.jobs if j.client_id != client_id],
        insights=[i for i in graph.insights if i.client_id != client_id],
        opportunities=[o for o in graph.opportunities if o.client_id != client_id],
    )
    logger.info("Deleted client %s (%d projects, %d journeys, %d phases)",
                client_id, len(project_ids), len(journey_ids), len(phase_ids))
    return MutationResult(graph)


# ── Project ───────────────────────────────────────────────────────────


def create_project(graph: EntityGraph, client_id: str, name: str,
                   description: str | None = None) -> MutationResult:
    _require(graph, "clients", client_id, "Client")
    ts = now_iso()
    project = Project(id=generate_id(), client_id=client_id, name=name,
                      description=description, created_at=ts, updated_at=ts)
    return MutationResult(graph.replace(projects=[*graph.projects, project]), project)


def update_project(graph: EntityGraph, project_id: str, data: dict) -> MutationResult:
    return _update(graph, "projects", Project, project_id, data)


def delete_project(graph: EntityGraph, project_id: str) -> MutationResult:
    if graph.get("projects", project_id) is None:
        return MutationResult(graph, found=False)

    journey_ids = {j.id for j in graph.journeys if j.project_id == project_id}
    phase_ids = {p.id for p in graph.phases if p.journey_id in journey_ids}
    graph = _remove_phases(graph, phase_ids, journey_ids, {project_id})
    graph = graph.replace(
        projects=[p for p in graph.projects if p.id != project_id],
        journeys=[j for j in graph.journeys if j.id not in journey_ids],
    )
    logger.info("Deleted project %s (%d journeys, %d phases)", project_id, len(journey_ids), len(phase_ids))
    return MutationResult(graph)


# ── Journey ───────────────────────────────────────────────────────────


def create_journey(graph: EntityGraph, project_id: str, name: str,
                   description: str | None = None) -> MutationResult:
    _require(graph, "projects", project_id, "Project")
    ts = now_iso()
    journey = Journey(id=generate_id(), project_id=project_id, name=name, description=description,
                      row_order=list(BUILTIN_ROW_KEYS), custom_rows=[], created_at=ts, updated_at=ts)
    return MutationResult(graph.replace(journeys=[*graph.journeys, journey]), journey)


def update_journey(graph: EntityGraph, journey_id: str, data: dict) -> MutationResult:
    journey = graph.get("journeys", journey_id)
    if journey is None:
        return MutationResult(graph, found=False)

    data = dict(data)
    _check_types(Journey, {k: v for k, v in data.items() if k in ("row_order", "custom_rows")})
    if "custom_rows" in data:
        if not all(isinstance(r, (dict, JourneyRow)) for r in data["custom_rows"]):
            raise ValidationError("Invalid custom_rows: every row must be an object",
                                  details={"custom_rows": "list"})
        data["custom_rows"] = [
            r if isinstance(r, JourneyRow) else JourneyRow.from_dict(r) for r in data["custom_rows"]
        ]
    custom_rows = data.get("custom_rows", journey.custom_rows)
    if "row_order" in data or "custom_rows" in data:
        data["row_order"] = merge_row_order(
            list(data.get("row_order", journey.row_order)), [r.id for r in custom_rows]
        )
    return _update(graph, "journeys", Journey, journey_id, data)


def delete_journey(graph: EntityGraph, journey_id: str) -> MutationResult:
    if graph.get("journeys", journey_id) is None:
        return MutationResult(graph, found=False)

    phase_ids = {p.id for p in graph.phases if p.journey_id == journey_id}
    graph = _remove_phases(graph, phase_ids, {journey_id})
    graph = graph.replace(journeys=[j for j in graph.journeys if j.id != journey_id])
    logger.info("Deleted journey %s (%d phases)", journey_id, len(phase_ids))
    return MutationResult(graph)


def add_journey_row(graph: EntityGraph, journey_id: str, label: str) -> MutationResult:
    journey = graph.get("journeys", journey_id)
    if journey is None:
        return MutationResult(graph, found=False)

    row = JourneyRow(id=generate_id(), label=(label or "").strip() or "New row")
    updated = journey.evolve(
        custom_rows=[*journey.custom_rows, row],
        row_order=[*journey.row_order, row.id],
        updated_at=now_iso(),
    )
    journeys = [updated if j.id == journey_id else j for j in graph.journeys]
    return MutationResult(graph.replace(journeys=journeys), row)


def update_journey_row(graph: EntityGraph, journey_id: str, row_id: str, label: str) -> MutationResult:
    journey = graph.get("journeys", journey_id)
    if journey is None or row_id not in {r.id for r in journey.custom_rows}:
        return MutationResult(graph, found=False)

    label = (label or "").strip()
    rows = [r.evolve(label=label or r.label) if r.id == row_id else r for r in journey.custom_rows]
    updated = journey.evolve(custom_rows=rows, updated_at=now_iso())
    journeys = [updated if j.id == journey_id else j for j in graph.journeys]
    return MutationResult(graph.replace(journeys=journeys), updated)


def delete_journey_row(graph: EntityGraph, journey_id: str, row_id: str) -> MutationResult:
    """Remove a custom row, its per-phase values and the comments on it.

    Built-in row keys are not deletable and report ``found=False``. Only
    comments on this journey's phases are dropped.
    """
    journey = graph.get("journeys", journey_id)
    if journey is None or row_id not in {r.id for r in journey.custom_rows}:
        return MutationResult(graph, found=False)

    phase_ids = {p.id for p in graph.phases if p.journey_id == journey_id}
    ts = now_iso()
    updated = journey.evolve(
        row_order=[r for r in journey.row_order if r != row_id],
        custom_rows=[r for r in journey.custom_rows if r.id != row_id],
        updated_at=ts,
    )
    phases = []
    for p in graph.phases:
        if p.journey_id == journey_id and row_id in p.custom_row_values:
            values = {k: v for k, v in p.custom_row_values.items() if k != row_id}
            p = p.evolve(custom_row_values=values, updated_at=ts)
        phases.append(p)
    comments = {}
    for key, comment in graph.cell_comments.items():
        parsed = parse_comment_key(key)
        if parsed and parsed[0] in phase_ids and parsed[1] == row_id:
            continue
        comments[key] = comment
    return MutationResult(graph.replace(
        journeys=[updated if j.id == journey_id else j for j in graph.journeys],
        phases=phases,
        cell_comments=comments,
    ), updated)


# ── Phase ─────────────────────────────────────────────────────────────


def create_phase(graph: EntityGraph, journey_id: str) -> MutationResult:
    _require(graph, "journeys", journey_id, "Journey")
    orders = [p.order for p in graph.phases if p.journey_id == journey_id]
    ts = now_iso()
    phase = Phase(id=generate_id(), journey_id=journey_id, order=max(orders, default=0) + 1,
                  created_at=ts, updated_at=ts)
    return MutationResult(graph.replace(phases=[*graph.phases, phase]), phase)


def update_phase(graph: EntityGraph, phase_id: str, data: dict) -> MutationResult:
    return _update(graph, "phases", Phase, phase_id, data)


def delete_phase(graph: EntityGraph, phase_id: str) -> MutationResult:
    if graph.get("phases", phase_id) is None:
        return MutationResult(graph, found=False)
    return MutationResult(_remove_phases(graph, {phase_id}))


# ── Job ───────────────────────────────────────────────────────────────


def create_job(graph: EntityGraph, client_id: str, data: dict | None = None) -> MutationResult:
    _require(graph, "clients", client_id, "Client")
    data = data or {}
    ts = now_iso()
    job = Job(
        id=generate_id(),
        client_id=client_id,
        name=data.get("name") or "Untitled job",
        description=data.get("description"),
        tag=_check_choice(data.get("tag") or "Functional", JOB_TAGS, "tag"),
        priority=_check_choice(data.get("priority") or "Medium", PRIORITIES, "priority"),
        struggles=list(data.get("struggles") or []),
        functional_dimensions=list(data.get("functional_dimensions") or []),
        social_dimensions=list(data.get("social_dimensions") or []),
        emotional_dimensions=list(data.get("emotional_dimensions") or []),
        solutions_and_workarounds=data.get("solutions_and_workarounds"),
        is_priority=bool(data.get("is_priority", False)),
        insight_ids=list(data.get("insight_ids") or []),
        created_at=ts,
        updated_at=ts,
    )
    return MutationResult(graph.replace(jobs=[*graph.jobs, job]), job)


def update_job(graph: EntityGraph, job_id: str, data: dict) -> MutationResult:
    if "tag" in data:
        _check_choice(data["tag"], JOB_TAGS, "tag")
    if "priority" in data:
        _check_choice(data["priority"], PRIORITIES, "priority")
    return _update(graph, "jobs", Job, job_id, data)


def delete_job(graph: EntityGraph, job_id: str) -> MutationResult:
    if graph.get("jobs", job_id) is None:
        return MutationResult(graph, found=False)

    ts = now_iso()
    phases = [
        p.evolve(job_ids=[j for j in p.job_ids if j != job_id], updated_at=ts) if job_id in p.job_ids else p
        for p in graph.phases
    ]
    opportunities = [
        o.evolve(linked_job_ids=[j for j in o.linked_job_ids if j != job_id], updated_at=ts)
        if job_id in o.linked_job_ids else o
        for o in graph.opportunities
    ]
    return MutationResult(graph.replace(
        jobs=[j for j in graph.jobs if j.id != job_id],
        phases=phases,
        opportunities=opportunities,
    ))


# ── Insight ───────────────────────────────────────────────────────────


def create_insight(graph: EntityGraph, client_id: str, data: dict | None = None) -> MutationResult:
    _require(graph, "clients", client_id, "Client")
    data = data or {}
    orders = [i.order for i in graph.insights if i.client_id == client_id]
    ts = now_iso()
    insight = Insight(
        id=generate_id(),
        client_id=client_id,
        title=data.get("title") or "Untitled insight",
        description=data.get("description") or "",
        priority=_check_choice(data.get("priority") or "Medium", PRIORITIES, "priority"),
        order=max(orders, default=0) + 1,
        created_at=ts,
        updated_at=ts,
    )
    return MutationResult(graph.replace(insights=[*graph.insights, insight]), insight)


def update_insight(graph: EntityGraph, insight_id: str, data: dict) -> MutationResult:
    if "priority" in data:
        _check_choice(data["priority"], PRIORITIES, "priority")
    return _update(graph, "insights", Insight, insight_id, data)


def delete_insight(graph: EntityGraph, insight_id: str) -> MutationResult:
    if graph.get("insights", insight_id) is None:
        return MutationResult(graph, found=False)

    ts = now_iso()
    jobs = [
        j.evolve(insight_ids=[i for i in j.insight_ids if i != insight_id], updated_at=ts)
        if insight_id in j.insight_ids else j
        for j in graph.jobs
    ]
    return MutationResult(graph.replace(
        insights=[i for i in graph.insights if i.id != insight_id],
        jobs=jobs,
    ))


# ── Opportunity ───────────────────────────────────────────────────────


def create_opportunity(graph: EntityGraph, data: dict) -> MutationResult:
    """Create an opportunity at the top of its client's Backlog.

    The client is resolved from the project; the rest of the Backlog
    bucket shifts down to 1..n.
    """
    project = graph.get("projects", data.get("project_id"))
    if project is None:
        raise ValidationError("Invalid project or client", details={"project_id": data.get("project_id")})
    client_id = project.client_id or data.get("client_id")
    phase = _require(graph, "phases", data.get("phase_id"), "Phase")

    backlog = OpportunityStage.BACKLOG.value
    ts = now_iso()
    opp = Opportunity(
        id=generate_id(),
        client_id=client_id,
        project_id=project.id,
        journey_id=data.get("journey_id") or phase.journey_id,
        phase_id=phase.id,
        stage=backlog,
        stage_order=0,
        name=(data.get("name") or "").strip() or "Untitled",
        priority=_check_choice(data.get("priority") or "High", PRIORITIES, "priority"),
        description=data.get("description") or "",
        point_of_differentiation=data.get("point_of_differentiation") or "",
        critical_assumptions=data.get("critical_assumptions") or "",
        linked_job_ids=list(data.get("linked_job_ids") or []),
        is_priority=bool(data.get("is_priority", False)),
        created_at=ts,
        updated_at=ts,
    )
    shifted = {
        o.id: o.evolve(stage_order=i + 1, updated_at=ts)
        for i, o in enumerate(stage_bucket(graph, client_id, backlog))
    }
    opportunities = [shifted.get(o.id, o) for o in graph.opportunities] + [opp]
    return MutationResult(graph.replace(opportunities=opportunities), opp)


def update_opportunity(graph: EntityGraph, opportunity_id: str, data: dict) -> MutationResult:
    if "priority" in data:
        _check_choice(data["priority"], PRIORITIES, "priority")
    return _update(graph, "opportunities", Opportunity, opportunity_id, data)


def delete_opportunity(graph: EntityGraph, opportunity_id: str) -> MutationResult:
    opp = graph.get("opportunities", opportunity_id)
    if opp is None:
        return MutationResult(graph, found=False)

    ts = now_iso()
    closed = {
        o.id: o.evolve(stage_order=i, updated_at=ts) if o.stage_order != i else o
        for i, o in enumerate(stage_bucket(graph, opp.client_id, opp.stage, exclude=opp.id))
    }
    return MutationResult(graph.replace(
        opportunities=[closed.get(o.id, o) for o in graph.opportunities if o.id != opportunity_id]
    ))


# ── Cell comments ─────────────────────────────────────────────────────


def set_cell_comment(graph: EntityGraph, key: str, text: str) -> MutationResult:
    current = graph.cell_comments.get(key)
    comment = CellComment(text=text, replies=list(current.replies) if current else [])
    return MutationResult(graph.replace(cell_comments={**graph.cell_comments, key: comment}), comment)


def add_cell_comment_reply(graph: EntityGraph, key: str, reply: str) -> MutationResult:
    current = graph.cell_comments.get(key) or CellComment()
    comment = CellComment(text=current.text, replies=[*current.replies, reply])
    return MutationResult(graph.replace(cell_comments={**graph.cell_comments, key: comment}), comment)


def delete_cell_comment(graph: EntityGraph, key: str) -> MutationResult:
    if key not in graph.cell_comments:
        return MutationResult(graph, found=False)
    comments = {k: c for k, c in graph.cell_comments.items() if k != key}
    return MutationResult(graph.replace(cell_comments=comments))


# ── Inverse lookups (links are stored on one side only) ───────────────


def jobs_for_insight(graph: EntityGraph, insight_id: str) -> list[Job]:
    return [j for j in graph.jobs if insight_id in j.insight_ids]


def opportunities_for_job(graph: EntityGraph, job_id: str) -> list[Opportunity]:
    return [o for o in graph.opportunities if job_id in o.linked_job_ids]


def phases_for_job(graph: EntityGraph, job_id: str) -> list[Phase]:
    return [p for p in graph.phases if job_id in p.job_ids]
