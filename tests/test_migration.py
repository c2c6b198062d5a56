"""
Tests for the load-time normalizer.

Covers:
  - nothing persisted → demo workspace
  - comment key / value upgrade
  - row order repair (phaseHealth after description, missing built-ins)
  - legacy job and opportunity extraction incl. Horizon seeding
  - retired stage names
  - job / insight back-fill and demo fallback
  - idempotence on its own output
"""

import json

from journeymap.core.entities import BUILTIN_ROW_KEYS
from journeymap.services.migration import detect_legacy_comment_key, normalize_state
from journeymap.services.ordering import get_ordered_rows, stage_bucket

PHASE_ID = "0b9c1c52-8d1e-4c3a-9b8f-3c2d1e0f9a77"


def _legacy_state(**overrides):
    state = {
        "clients": [{"id": "c1", "name": "Acme", "createdAt": "2024-01-01T00:00:00.000Z",
                     "updatedAt": "2024-01-01T00:00:00.000Z"}],
        "projects": [{"id": "p1", "clientId": "c1", "name": "Onboarding"}],
        "journeys": [{"id": "j1", "projectId": "p1", "name": "Sign-up",
                      "rowOrder": ["description", "struggles", "customerJobs"]}],
        "phases": [{
            "id": PHASE_ID,
            "journeyId": "j1",
            "order": 0,
            "title": "Discover",
            "customerJobs": "Find a plan\nCompare prices",
            "opportunities": "Price calculator;Live chat",
        }],
        "jobs": [],
        "insights": [],
        "opportunities": [],
        "cellComments": {},
    }
    state.update(overrides)
    return state


def test_nothing_persisted_gives_demo_workspace():
    result = normalize_state(None)
    assert result.applied == ["demo_state"]
    assert result.needs_save
    assert len(result.graph.clients) == 1
    assert result.graph.jobs and result.graph.insights and result.graph.phases


def test_empty_workspace_stays_empty():
    result = normalize_state({})
    assert result.graph.clients == []
    assert not result.needs_save


class TestCommentKeys:
    def test_detect_uses_known_row_suffix(self):
        assert detect_legacy_comment_key(f"{PHASE_ID}-internalStruggles") == (PHASE_ID, "internalStruggles")
        assert detect_legacy_comment_key(f"{PHASE_ID}::struggles") is None
        assert detect_legacy_comment_key(f"{PHASE_ID}-customrow") is None

    def test_keys_and_values_upgraded(self):
        state = _legacy_state(cellComments={
            f"{PHASE_ID}-struggles": "Is this real?",
            f"{PHASE_ID}::systems": {"text": "SAP", "replies": ["ok"]},
        })
        comments = normalize_state(state).graph.cell_comments
        assert comments[f"{PHASE_ID}::struggles"].text == "Is this real?"
        assert comments[f"{PHASE_ID}::struggles"].replies == []
        assert comments[f"{PHASE_ID}::systems"].replies == ["ok"]
        assert f"{PHASE_ID}-struggles" not in comments


class TestRowOrder:
    def test_phase_health_inserted_after_description(self):
        journey = normalize_state(_legacy_state()).graph.journeys[0]
        keys = [r.key for r in get_ordered_rows(journey)]
        assert keys[:4] == ["description", "phaseHealth", "struggles", "customerJobs"]
        assert sorted(keys) == sorted(BUILTIN_ROW_KEYS)

    def test_custom_rows_kept_and_unknown_dropped(self):
        state = _legacy_state(journeys=[{
            "id": "j1", "projectId": "p1", "name": "J",
            "rowOrder": ["row-1", "deleted-row", "description"],
            "customRows": [{"id": "row-1", "label": "KPIs"}, "junk"],
        }])
        journey = normalize_state(state).graph.journeys[0]
        assert journey.row_order[0] == "row-1"
        assert "deleted-row" not in journey.row_order
        assert [r.label for r in journey.custom_rows] == ["KPIs"]


class TestExtraction:
    def test_jobs_promoted_from_phase_text(self):
        graph = normalize_state(_legacy_state()).graph
        assert [j.name for j in graph.jobs] == ["Find a plan", "Compare prices"]
        assert all(j.client_id == "c1" and j.tag == "Functional" for j in graph.jobs)
        phase = graph.phases[0]
        assert phase.job_ids == [j.id for j in graph.jobs]
        assert phase.customer_jobs == ""

    def test_existing_jobs_block_extraction(self):
        state = _legacy_state(jobs=[{"id": "job-1", "clientId": "c1", "name": "Existing"}])
        graph = normalize_state(state).graph
        assert [j.name for j in graph.jobs] == ["Existing"]
        assert graph.phases[0].customer_jobs == "Find a plan\nCompare prices"

    def test_opportunities_promoted_into_horizons(self):
        items = [{"id": f"o{i}", "name": f"Idea {i}", "tag": "Low"} for i in range(14)]
        state = _legacy_state()
        state["phases"][0]["opportunities"] = json.dumps(items)
        graph = normalize_state(state).graph

        assert len(graph.opportunities) == 14
        assert graph.phases[0].opportunities == ""
        for stage, ids in (("Horizon 1", ["o0", "o1", "o2", "o3"]),
                           ("Horizon 2", ["o4", "o5", "o6", "o7"]),
                           ("Horizon 3", ["o8", "o9", "o10", "o11"]),
                           ("Backlog", ["o12", "o13"])):
            bucket = stage_bucket(graph, "c1", stage)
            assert [o.id for o in bucket] == ids
            assert [o.stage_order for o in bucket] == list(range(len(ids)))
        opp = graph.get("opportunities", "o0")
        assert (opp.project_id, opp.journey_id, opp.phase_id, opp.priority) == ("p1", "j1", PHASE_ID, "Low")

    def test_legacy_text_opportunities(self):
        graph = normalize_state(_legacy_state()).graph
        assert [o.name for o in graph.opportunities] == ["Price calculator", "Live chat"]
        assert [o.id for o in graph.opportunities] == ["legacy-0-Price calculator", "legacy-1-Live chat"]
        assert {o.stage for o in graph.opportunities} == {"Horizon 1"}


class TestStagesAndBackfill:
    def test_retired_stage_names(self):
        state = _legacy_state(opportunities=[
            {"id": "a", "clientId": "c1", "phaseId": PHASE_ID, "stage": "Unallocated", "stageOrder": 0},
            {"id": "b", "clientId": "c1", "phaseId": PHASE_ID, "stage": "In analysis", "stageOrder": 0},
            {"id": "c", "clientId": "c1", "phaseId": PHASE_ID, "stage": "Backlog", "stageOrder": 0},
        ])
        graph = normalize_state(state).graph
        assert graph.get("opportunities", "b").stage == "In discovery"
        backlog = stage_bucket(graph, "c1", "Backlog")
        assert {o.id for o in backlog} == {"a", "c"}
        assert [o.stage_order for o in backlog] == [0, 1]

    def test_job_priority_from_legacy_flag(self):
        state = _legacy_state(jobs=[
            {"id": "j-a", "clientId": "c1", "name": "A", "isPriority": True},
            {"id": "j-b", "clientId": "c1", "name": "B"},
        ])
        graph = normalize_state(state).graph
        assert graph.get("jobs", "j-a").priority == "High"
        assert graph.get("jobs", "j-b").priority == "Medium"
        assert graph.get("jobs", "j-b").insight_ids == []

    def test_insight_defaults(self):
        state = _legacy_state(insights=[{"id": "i1", "clientId": "c1"}, {"id": "i2", "clientId": "c1"}])
        graph = normalize_state(state).graph
        i2 = graph.get("insights", "i2")
        assert (i2.title, i2.description, i2.priority, i2.order) == ("Untitled insight", "", "Medium", 1)

    def test_demo_jobs_and_insights_for_first_client(self):
        state = _legacy_state()
        state["phases"] = []
        result = normalize_state(state)
        assert result.graph.jobs and result.graph.insights
        assert {j.client_id for j in result.graph.jobs} == {"c1"}
        assert "demo_jobs" in result.applied and "demo_insights" in result.applied


def test_idempotent_on_own_output():
    state = _legacy_state(cellComments={f"{PHASE_ID}-channels": "legacy"})
    first = normalize_state(state)
    assert first.needs_save

    once = first.graph.to_dict()
    second = normalize_state(json.loads(json.dumps(once)))
    assert not second.needs_save
    assert json.dumps(second.graph.to_dict(), sort_keys=True) == json.dumps(once, sort_keys=True)
