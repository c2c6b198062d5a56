"""Phase health score: a 0-100 indicator derived from struggles, opportunities and job mix."""

from __future__ import annotations

import math

from journeymap.core.entities import EntityGraph, Phase
from journeymap.services.text_codec import (
    parse_customer_jobs,
    parse_opportunity_items,
    parse_struggles,
)

BASE_SCORE = 50
CUSTOMER_STRUGGLE_WEIGHTS = {"High": -12, "Medium": -6}
INTERNAL_STRUGGLE_WEIGHTS = {"High": -10, "Medium": -5}
OPPORTUNITY_WEIGHTS = {"High": 10, "Medium": 5}
LOW_STRUGGLE_WEIGHT = -2
LOW_OPPORTUNITY_WEIGHT = 2
JOB_MIX_BONUS = 25
DIFFERENTIATING_TAGS = ("Social", "Emotional")


def _attr(item, name):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def phase_health_score(phase: Phase, opportunities=None, jobs=None) -> int:
    """Compute the health of a phase.

    ``opportunities`` and ``jobs`` are the normalized entities placed in
    the phase (objects or dicts). When either is None the phase's legacy
    embedded text is parsed instead, so the score is the same before and
    after load-time migration.
    """
    struggles = parse_struggles(phase.struggles)
    internal = parse_struggles(phase.internal_struggles)
    if opportunities is None:
        opportunities = parse_opportunity_items(phase.opportunities)
    if jobs is None:
        jobs = parse_customer_jobs(phase.customer_jobs)

    score = float(BASE_SCORE)
    for s in struggles:
        score += CUSTOMER_STRUGGLE_WEIGHTS.get(s.tag, LOW_STRUGGLE_WEIGHT)
    for s in internal:
        score += INTERNAL_STRUGGLE_WEIGHTS.get(s.tag, LOW_STRUGGLE_WEIGHT)
    for o in opportunities:
        weight = _attr(o, "tag") or _attr(o, "priority")
        score += OPPORTUNITY_WEIGHTS.get(weight, LOW_OPPORTUNITY_WEIGHT)

    differentiating = sum(1 for j in jobs if _attr(j, "tag") in DIFFERENTIATING_TAGS)
    score += differentiating / max(1, len(jobs)) * JOB_MIX_BONUS

    # Halves round up (62.5 -> 63), not to even
    return int(math.floor(max(0.0, min(100.0, score)) + 0.5))


def phase_health_for(graph: EntityGraph, phase: Phase) -> int:
    """Score a phase using the normalized opportunities and jobs in ``graph``."""
    opportunities = [o for o in graph.opportunities if o.phase_id == phase.id]
    jobs_by_id = {j.id: j for j in graph.jobs}
    jobs = [jobs_by_id[jid] for jid in phase.job_ids if jid in jobs_by_id]
    return phase_health_score(phase, opportunities, jobs)
