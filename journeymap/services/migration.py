"""
Load-time normalizer.

Upgrades a persisted snapshot of unknown vintage into the current shape
before anything reads it. Steps run in a fixed order and each one only
acts when its target is still in the old shape (an empty collection, a
missing field, a legacy key), so running the normalizer on its own output
changes nothing.

    1. phase field defaults
    2. cell-comment keys  "<phaseId>-<rowKey>" → "<phaseId>::<rowKey>", bare strings → {text, replies}
    3. journey row order  (phaseHealth after description, merge with built-ins and custom rows)
    4. job extraction     (legacy Phase.customerJobs → top-level jobs + Phase.jobIds)
    5. opportunity extraction (legacy Phase.opportunities → Backlog, then seeded into Horizons 1-3)
    6. stage names        (Unallocated → Backlog, In analysis → In discovery)
    7. job / insight field back-fill
    8. demo jobs / insights for a workspace that has clients but none of either
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from journeymap.core.entities import BUILTIN_ROW_KEYS, COLLECTIONS, STAGES, EntityGraph
from journeymap.services.demo_data import demo_insights, demo_jobs, demo_state
from journeymap.services.ordering import merge_row_order
from journeymap.services.text_codec import (
    COMMENT_KEY_SEP,
    comment_key,
    parse_customer_jobs,
    parse_opportunity_items,
)
from journeymap.utils.helpers import generate_id, now_iso

logger = logging.getLogger(__name__)

RETIRED_STAGES = {
    "Unallocated": "Backlog",
    "In analysis": "In discovery",
}

# Extracted opportunities are spread over these stages in batches of this size
HORIZON_SEED_STAGES = ("Horizon 1", "Horizon 2", "Horizon 3")
HORIZON_SEED_BATCH = 4

_PHASE_DEFAULTS = {
    "systems": "",
    "internalStruggles": "",
    "relatedDocuments": "",
    "jobIds": list,
    "customRowValues": dict,
}


@dataclass
class NormalizeResult:
    graph: EntityGraph
    applied: list[str] = field(default_factory=list)

    @property
    def needs_save(self) -> bool:
        """True when the normalizer changed data the backend does not have yet."""
        return bool(self.applied)


def detect_legacy_comment_key(key: str) -> tuple[str, str] | None:
    """Recognise a pre-``::`` comment key of the form ``<phaseId>-<rowKey>``.

    Phase ids are uuids and contain dashes themselves, so the split point is
    found by matching the suffix against the known built-in row keys.
    """
    if COMMENT_KEY_SEP in key:
        return None
    for row_key in BUILTIN_ROW_KEYS:
        suffix = "-" + row_key
        if key.endswith(suffix) and len(key) > len(suffix):
            return key[: -len(suffix)], row_key
    return None


def _normalize_comment(value) -> dict:
    if isinstance(value, str):
        return {"text": value, "replies": []}
    if isinstance(value, dict) and isinstance(value.get("text"), str):
        replies = value.get("replies")
        return {"text": value["text"], "replies": list(replies) if isinstance(replies, list) else []}
    return {"text": "", "replies": []}


def _with_phase_health(row_order: list) -> list:
    if "phaseHealth" in row_order:
        return row_order
    if "description" in row_order:
        idx = row_order.index("description") + 1
        return row_order[:idx] + ["phaseHealth"] + row_order[idx:]
    return ["phaseHealth"] + row_order


class _Normalizer:
    def __init__(self, raw: dict):
        self.state = {name: [dict(r) for r in (raw.get(name) or []) if isinstance(r, dict)]
                      for name in COLLECTIONS}
        comments = raw.get("cellComments")
        self.comments = comments if isinstance(comments, dict) else {}
        self.applied: list[str] = []
        self.ts = now_iso()

    def _mark(self, step: str, count: int = 1):
        if count:
            self.applied.append(step)
            logger.info("Load migration %s: %d change(s)", step, count)

    def _client_chain(self, phase: dict):
        """(client_id, project, journey) of a phase, or Nones when the chain is broken."""
        journey = next((j for j in self.state["journeys"] if j.get("id") == phase.get("journeyId")), None)
        project = None
        if journey:
            project = next((p for p in self.state["projects"] if p.get("id") == journey.get("projectId")), None)
        return (project or {}).get("clientId"), project, journey

    # 1 ──────────────────────────────────────────────────────────────
    def phase_defaults(self):
        changed = 0
        for phase in self.state["phases"]:
            for name, default in _PHASE_DEFAULTS.items():
                if phase.get(name) is None:
                    phase[name] = default() if callable(default) else default
                    changed += 1
        self._mark("phase_defaults", changed)

    # 2 ──────────────────────────────────────────────────────────────
    def comment_keys(self):
        changed = 0
        result = {}
        for key, value in self.comments.items():
            legacy = detect_legacy_comment_key(key)
            final_key = comment_key(*legacy) if legacy else key
            normalized = _normalize_comment(value)
            if final_key != key or normalized != value:
                changed += 1
            result[final_key] = normalized
        self.comments = result
        self._mark("comment_keys", changed)

    # 3 ──────────────────────────────────────────────────────────────
    def row_order(self):
        changed = 0
        for journey in self.state["journeys"]:
            custom_rows = journey.get("customRows")
            if not isinstance(custom_rows, list):
                custom_rows = []
            custom_rows = [r for r in custom_rows if isinstance(r, dict) and isinstance(r.get("id"), str)]
            raw_order = journey.get("rowOrder")
            base = raw_order if isinstance(raw_order, list) else list(BUILTIN_ROW_KEYS)
            repaired = merge_row_order(_with_phase_health(list(base)), [r["id"] for r in custom_rows])
            if repaired != raw_order or custom_rows != journey.get("customRows"):
                journey["rowOrder"] = repaired
                journey["customRows"] = custom_rows
                changed += 1
        self._mark("row_order", changed)

    # 4 ──────────────────────────────────────────────────────────────
    def extract_jobs(self):
        if self.state["jobs"] or not self.state["phases"]:
            return
        jobs = []
        for phase in self.state["phases"]:
            client_id, _, _ = self._client_chain(phase)
            if not client_id:
                continue
            new_ids = []
            for item in parse_customer_jobs(phase.get("customerJobs") or ""):
                job = {
                    "id": generate_id(),
                    "clientId": client_id,
                    "name": item.name or "Untitled job",
                    "description": item.description,
                    "tag": item.tag,
                    "priority": "High" if item.is_priority else "Medium",
                    "struggles": item.struggles,
                    "functionalDimensions": item.functional_dimensions,
                    "socialDimensions": item.social_dimensions,
                    "emotionalDimensions": item.emotional_dimensions,
                    "solutionsAndWorkarounds": item.solutions_and_workarounds,
                    "isPriority": item.is_priority,
                    "insightIds": [],
                    "createdAt": self.ts,
                    "updatedAt": self.ts,
                }
                jobs.append(job)
                new_ids.append(job["id"])
            if new_ids or phase.get("customerJobs"):
                phase["jobIds"] = new_ids
                phase["customerJobs"] = ""
        self.state["jobs"] = jobs
        self._mark("extract_jobs", len(jobs))

    # 5 ──────────────────────────────────────────────────────────────
    def extract_opportunities(self):
        if self.state["opportunities"] or not self.state["phases"]:
            return
        migrated = []
        seen_ids: set[str] = set()
        source_phases = set()
        for phase in self.state["phases"]:
            client_id, project, journey = self._client_chain(phase)
            if not (client_id and project and journey):
                continue
            for item in parse_opportunity_items(phase.get("opportunities") or ""):
                opp_id = item.id if item.id not in seen_ids else generate_id()
                seen_ids.add(opp_id)
                migrated.append({
                    "id": opp_id,
                    "clientId": client_id,
                    "projectId": project["id"],
                    "journeyId": journey["id"],
                    "phaseId": phase["id"],
                    "stage": "Backlog",
                    "stageOrder": 0,
                    "name": item.name,
                    "priority": item.tag or "High",
                    "description": item.description or "",
                    "pointOfDifferentiation": item.point_of_differentiation or "",
                    "criticalAssumptions": item.critical_assumptions or "",
                    "linkedJobIds": [],
                    "isPriority": item.is_priority,
                    "createdAt": self.ts,
                    "updatedAt": self.ts,
                })
                source_phases.add(phase["id"])
        if not migrated:
            return

        # One-time seeding: first 4 → Horizon 1, next 4 → Horizon 2, next 4 → Horizon 3,
        # the rest stay in Backlog. Numbered per (client, stage) bucket.
        counters: dict[tuple, int] = {}
        for index, opp in enumerate(migrated):
            batch = index // HORIZON_SEED_BATCH
            if batch < len(HORIZON_SEED_STAGES):
                opp["stage"] = HORIZON_SEED_STAGES[batch]
            bucket = (opp["clientId"], opp["stage"])
            opp["stageOrder"] = counters.get(bucket, 0)
            counters[bucket] = opp["stageOrder"] + 1

        for phase in self.state["phases"]:
            if phase["id"] in source_phases:
                phase["opportunities"] = ""
                phase["updatedAt"] = self.ts
        self.state["opportunities"] = migrated
        self._mark("extract_opportunities", len(migrated))

    # 6 ──────────────────────────────────────────────────────────────
    def stage_names(self):
        renamed_buckets = set()
        changed = 0
        for opp in self.state["opportunities"]:
            if not isinstance(opp.get("linkedJobIds"), list):
                opp["linkedJobIds"] = []
                changed += 1
            stage = opp.get("stage")
            new_stage = RETIRED_STAGES.get(stage) or (stage if stage in STAGES else "Backlog")
            if new_stage != stage:
                opp["stage"] = new_stage
                opp["updatedAt"] = self.ts
                renamed_buckets.add((opp.get("clientId"), new_stage))
                changed += 1

        # Buckets that absorbed renamed items are renumbered 0..n-1 (stable on old order)
        for client_id, stage in renamed_buckets:
            bucket = [o for o in self.state["opportunities"]
                      if o.get("clientId") == client_id and o.get("stage") == stage]
            bucket.sort(key=lambda o: o.get("stageOrder") or 0)
            for i, opp in enumerate(bucket):
                if opp.get("stageOrder") != i:
                    opp["stageOrder"] = i
                    opp["updatedAt"] = self.ts
        self._mark("stage_names", changed)

    # 7 ──────────────────────────────────────────────────────────────
    def backfill_fields(self):
        changed = 0
        for job in self.state["jobs"]:
            if not job.get("priority"):
                job["priority"] = "High" if job.get("isPriority") else "Medium"
                changed += 1
            if not isinstance(job.get("insightIds"), list):
                job["insightIds"] = []
                changed += 1
        for index, insight in enumerate(self.state["insights"]):
            for name, default in (("title", "Untitled insight"), ("description", ""),
                                  ("priority", "Medium"), ("order", index)):
                if insight.get(name) is None:
                    insight[name] = default
                    changed += 1
        self._mark("backfill_fields", changed)

    # 8 ──────────────────────────────────────────────────────────────
    def demo_fallback(self):
        if not self.state["clients"]:
            return
        client_id = self.state["clients"][0].get("id")
        if not self.state["insights"]:
            self.state["insights"] = demo_insights(client_id)
            logger.warning("No insights persisted; seeded demo insights for client %s", client_id)
            self._mark("demo_insights", len(self.state["insights"]))
        if not self.state["jobs"]:
            self.state["jobs"] = demo_jobs(client_id)
            logger.warning("No jobs persisted; seeded demo jobs for client %s", client_id)
            self._mark("demo_jobs", len(self.state["jobs"]))

    def run(self) -> NormalizeResult:
        self.phase_defaults()
        self.comment_keys()
        self.row_order()
        self.extract_jobs()
        self.extract_opportunities()
        self.stage_names()
        self.backfill_fields()
        self.demo_fallback()
        graph = EntityGraph.from_dict({**self.state, "cellComments": self.comments})
        return NormalizeResult(graph, self.applied)


def normalize_state(raw: dict | None) -> NormalizeResult:
    """Bring a persisted snapshot (or nothing) into the current normalized shape."""
    if not isinstance(raw, dict):
        logger.warning("No persisted workspace state; starting from the demo dataset")
        return NormalizeResult(EntityGraph.from_dict(demo_state()), ["demo_state"])
    return _Normalizer(raw).run()
