"""
Ordering engine.

Two shapes of reordering:

  * list reorder: the caller supplies the full desired id sequence for a
    scope (phases of a journey, rows of a journey, insights of a client);
    each listed id gets its 0-based position, unlisted ids keep theirs.
  * bucketed reorder with move: opportunities live in (client, stage)
    buckets whose ``stage_order`` is always renumbered to 0..n-1 after a
    move or an in-stage reorder.

All functions are pure: they take an ``EntityGraph`` and return a new one.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from journeymap.core.entities import BUILTIN_ROW_KEYS, STAGES, EntityGraph, Journey
from journeymap.core.exceptions import ValidationError
from journeymap.utils.helpers import now_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowDescriptor:
    """One displayable journey row."""
    id: str
    key: str
    label: str
    is_custom: bool

    def to_dict(self) -> dict:
        return {"id": self.id, "key": self.key, "label": self.label, "isCustom": self.is_custom}


def builtin_row_label(key: str) -> str:
    """``frontStageActions`` → ``Front Stage Actions``."""
    spaced = re.sub(r"([A-Z])", r" \1", key).strip()
    return spaced[:1].upper() + spaced[1:]


def _custom_row_ids(journey: Journey) -> list[str]:
    return [r.id for r in journey.custom_rows]


def merge_row_order(row_order, custom_row_ids) -> list[str]:
    """Repair a persisted row order.

    Drops ids that are neither built-in keys nor existing custom rows and
    duplicates, then appends any built-in key that is missing (in
    canonical order) and any custom row that is missing.
    """
    known = set(BUILTIN_ROW_KEYS) | set(custom_row_ids)
    merged: list[str] = []
    for row_id in row_order if isinstance(row_order, list) else BUILTIN_ROW_KEYS:
        if row_id in known and row_id not in merged:
            merged.append(row_id)
    merged.extend(k for k in BUILTIN_ROW_KEYS if k not in merged)
    merged.extend(r for r in custom_row_ids if r not in merged)
    return merged


def get_ordered_rows(journey: Journey | None) -> list[RowDescriptor]:
    """Rows of a journey in display order; every built-in row always appears."""
    if journey is None:
        return [RowDescriptor(k, k, builtin_row_label(k), False) for k in BUILTIN_ROW_KEYS]

    labels = {r.id: r.label for r in journey.custom_rows}
    rows = []
    for row_id in merge_row_order(journey.row_order, list(labels)):
        if row_id in BUILTIN_ROW_KEYS:
            rows.append(RowDescriptor(row_id, row_id, builtin_row_label(row_id), False))
        else:
            rows.append(RowDescriptor(row_id, row_id, labels.get(row_id) or "Row", True))
    return rows


def ordered_phases(graph: EntityGraph, journey_id: str) -> list:
    """Phases of a journey sorted by ``order`` (stable for ties)."""
    return sorted((p for p in graph.phases if p.journey_id == journey_id), key=lambda p: p.order)


# ── List reorders ─────────────────────────────────────────────────────


def _positions(ids) -> dict[str, int]:
    positions: dict[str, int] = {}
    for row_id in ids:
        positions.setdefault(row_id, len(positions))
    return positions


def reorder_phases(graph: EntityGraph, journey_id: str, phase_ids: list[str]) -> EntityGraph:
    positions = _positions(phase_ids)
    ts = now_iso()
    phases = [
        p.evolve(order=positions[p.id], updated_at=ts)
        if p.journey_id == journey_id and p.id in positions else p
        for p in graph.phases
    ]
    return graph.replace(phases=phases)


def reorder_journey_rows(graph: EntityGraph, journey_id: str, row_order: list[str]) -> EntityGraph:
    """Store a new row order; unknown ids are dropped and missing rows re-appended."""
    journey = graph.get("journeys", journey_id)
    if journey is None:
        logger.debug("reorder_journey_rows: journey %s not found", journey_id)
        return graph
    merged = merge_row_order(list(row_order), _custom_row_ids(journey))
    updated = journey.evolve(row_order=merged, updated_at=now_iso())
    return graph.replace(journeys=[updated if j.id == journey_id else j for j in graph.journeys])


def reorder_insights(graph: EntityGraph, client_id: str, ordered_ids: list[str]) -> EntityGraph:
    positions = _positions(ordered_ids)
    ts = now_iso()
    insights = [
        i.evolve(order=positions[i.id], updated_at=ts)
        if i.client_id == client_id and i.id in positions else i
        for i in graph.insights
    ]
    return graph.replace(insights=insights)


# ── Opportunity stage buckets ─────────────────────────────────────────


def validate_stage(stage: str) -> str:
    if stage not in STAGES:
        raise ValidationError(f"Unknown opportunity stage: {stage!r}", details={"stage": stage})
    return stage


def stage_bucket(graph: EntityGraph, client_id: str, stage: str, exclude: str | None = None) -> list:
    """Opportunities of one (client, stage) bucket sorted by ``stage_order``."""
    return sorted(
        (o for o in graph.opportunities
         if o.client_id == client_id and o.stage == stage and o.id != exclude),
        key=lambda o: o.stage_order,
    )


def _apply(graph: EntityGraph, changed: dict) -> EntityGraph:
    return graph.replace(opportunities=[changed.get(o.id, o) for o in graph.opportunities])


def move_opportunity_to_stage(graph: EntityGraph, opportunity_id: str, stage: str,
                              insert_index: int = 0) -> EntityGraph:
    """Move an opportunity into ``stage`` at ``insert_index`` (clamped).

    The source bucket closes the gap (renumbered 0..n-1) and the
    destination bucket is renumbered 0..m-1 around the inserted item.
    Moving within the same stage is a positional reorder.
    """
    validate_stage(stage)
    opp = graph.get("opportunities", opportunity_id)
    if opp is None:
        logger.debug("move_opportunity_to_stage: opportunity %s not found", opportunity_id)
        return graph

    ts = now_iso()
    changed = {}
    source = stage_bucket(graph, opp.client_id, opp.stage, exclude=opp.id)
    if opp.stage != stage:
        for i, o in enumerate(source):
            changed[o.id] = o.evolve(stage_order=i, updated_at=ts)
        dest = stage_bucket(graph, opp.client_id, stage, exclude=opp.id)
    else:
        dest = source

    index = max(0, min(int(insert_index), len(dest)))
    dest = dest[:index] + [opp] + dest[index:]
    for i, o in enumerate(dest):
        changed[o.id] = o.evolve(stage=stage, stage_order=i, updated_at=ts)
    return _apply(graph, changed)


def reorder_opportunities_in_stage(graph: EntityGraph, client_id: str, stage: str,
                                   ordered_ids: list[str]) -> EntityGraph:
    """Reorder one bucket; ids omitted from ``ordered_ids`` follow in their prior order."""
    validate_stage(stage)
    bucket = stage_bucket(graph, client_id, stage)
    by_id = {o.id: o for o in bucket}
    listed = [by_id[oid] for oid in _positions(ordered_ids) if oid in by_id]
    listed_ids = {o.id for o in listed}
    rest = [o for o in bucket if o.id not in listed_ids]

    ts = now_iso()
    changed = {o.id: o.evolve(stage_order=i, updated_at=ts) for i, o in enumerate(listed + rest)}
    return _apply(graph, changed)
