"""
Tests for the phase health score.

Covers:
  - base score, struggle and opportunity weights
  - job-mix bonus and half-up rounding
  - clamping to [0, 100] for extreme input
  - legacy embedded text vs normalized entities give the same score
"""

import json

import pytest

from journeymap.core.entities import Job, Opportunity, Phase
from journeymap.services.health import phase_health_for, phase_health_score
from journeymap.services import graph_service as gs


def _struggles(*tags):
    return json.dumps([{"text": f"s{i}", "tag": t} for i, t in enumerate(tags)])


def test_empty_phase_scores_fifty():
    assert phase_health_score(Phase()) == 50
    assert phase_health_score(Phase(), [], []) == 50


def test_three_high_customer_struggles():
    assert phase_health_score(Phase(struggles=_struggles("High", "High", "High")), [], []) == 14


@pytest.mark.parametrize("tags, internal, expected", [
    (("Medium",), (), 44),
    (("Low",), (), 48),
    ((), ("High",), 40),
    ((), ("Medium", "Low"), 43),
])
def test_struggle_weights(tags, internal, expected):
    phase = Phase(struggles=_struggles(*tags), internal_struggles=_struggles(*internal))
    assert phase_health_score(phase, [], []) == expected


def test_opportunity_weights_read_priority():
    opps = [Opportunity(priority="High"), Opportunity(priority="Medium"), Opportunity(priority="Low")]
    assert phase_health_score(Phase(), opps, []) == 67


def test_opportunity_dicts_read_tag_first():
    assert phase_health_score(Phase(), [{"tag": "Medium", "priority": "High"}], []) == 55


def test_job_mix_bonus_rounds_half_up():
    jobs = [Job(tag="Social"), Job(tag="Functional")]
    # 50 + 0.5 * 25 = 62.5
    assert phase_health_score(Phase(), [], jobs) == 63


def test_all_emotional_jobs_full_bonus():
    assert phase_health_score(Phase(), [], [Job(tag="Emotional")] * 4) == 75


@pytest.mark.parametrize("phase, opps, expected", [
    (Phase(struggles=_struggles(*["High"] * 20)), [], 0),
    (Phase(), [Opportunity(priority="High")] * 30, 100),
])
def test_clamped(phase, opps, expected):
    assert phase_health_score(phase, opps, [Job(tag="Social")]) == expected


def test_legacy_text_fallback_when_lists_omitted():
    phase = Phase(
        opportunities=json.dumps([{"id": "o1", "name": "Kiosk", "tag": "High"}]),
        customer_jobs=json.dumps([{"name": "Feel safe", "tag": "Emotional"}]),
    )
    assert phase_health_score(phase) == 85


def test_phase_health_for_uses_graph_entities(workspace):
    graph = workspace.graph
    phase = workspace.phases[0]
    res = gs.create_job(graph, workspace.client.id, {"name": "Belong", "tag": "Social"})
    graph, job = res.graph, res.entity
    graph = gs.update_phase(graph, phase.id, {"job_ids": [job.id]}).graph
    graph = gs.create_opportunity(graph, {
        "project_id": workspace.project.id, "phase_id": phase.id, "name": "Kiosk", "priority": "Medium",
    }).graph

    scored = graph.get("phases", phase.id)
    assert phase_health_for(graph, scored) == 80
    assert phase_health_for(graph, graph.get("phases", workspace.phases[1].id)) == 50
