"""
Integration tests for the workspace REST blueprint.

Covers:
  - create / read / update / delete through HTTP with camelCase payloads
  - 404 on reads, found=false on unknown update/delete
  - 400 for validation failures (missing fields, invalid stage/tag)
  - phase reorder, row management, comments, opportunity moves
  - debounced phase text + flush
  - sticky save error surfaced and dismissed
  - health endpoints
"""

import pytest

from journeymap.core.exceptions import PersistenceError

API = "/api/v1/workspace"


# ── Helpers ─────────────────────────────────────────────────────────────


def _post(client, path, payload, status=201):
    res = client.post(f"{API}{path}", json=payload)
    assert res.status_code == status, res.get_json()
    return res.get_json()


@pytest.fixture()
def tree(client):
    """Client → project → journey → 3 phases created over HTTP."""
    c = _post(client, "/clients", {"name": "Acme", "website": "acme.io"})["data"]
    p = _post(client, "/projects", {"clientId": c["id"], "name": "Onboarding"})["data"]
    j = _post(client, "/journeys", {"projectId": p["id"], "name": "Sign-up"})["data"]
    phases = [_post(client, "/phases", {"journeyId": j["id"]})["data"] for _ in range(3)]
    return {"client": c, "project": p, "journey": j, "phases": phases}


# ── Snapshot ────────────────────────────────────────────────────────────


def test_state_starts_empty(client):
    body = client.get(f"{API}/state").get_json()
    assert body["state"]["clients"] == []
    assert body["state"]["cellComments"] == {}
    assert body["saveError"] is None


def test_created_entities_in_state(client, tree):
    state = client.get(f"{API}/state").get_json()["state"]
    assert state["clients"][0]["logoUrl"] == "https://logo.clearbit.com/acme.io"
    assert len(state["phases"]) == 3


# ── CRUD ────────────────────────────────────────────────────────────────


class TestCrud:
    def test_create_client_requires_name(self, client):
        res = client.post(f"{API}/clients", json={"name": "  "})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_create_project_unknown_client(self, client):
        res = client.post(f"{API}/projects", json={"clientId": "ghost", "name": "P"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_get_unknown_is_404(self, client):
        res = client.get(f"{API}/phases/ghost")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_update_and_delete_unknown_report_not_found(self, client):
        res = client.put(f"{API}/jobs/ghost", json={"name": "x"})
        assert res.status_code == 200
        assert res.get_json()["found"] is False
        res = client.delete(f"{API}/insights/ghost")
        assert res.status_code == 200
        assert res.get_json()["found"] is False

    def test_update_phase_camel_case(self, client, tree):
        phase_id = tree["phases"][0]["id"]
        res = client.put(f"{API}/phases/{phase_id}", json={"title": "Discover", "frontStageActions": "Visit"})
        body = res.get_json()
        assert body["found"] is True
        assert body["data"]["title"] == "Discover"
        assert body["data"]["frontStageActions"] == "Visit"

    def test_get_journey_includes_sorted_phases(self, client, tree):
        body = client.get(f"{API}/journeys/{tree['journey']['id']}").get_json()
        assert [p["id"] for p in body["phases"]] == [p["id"] for p in tree["phases"]]

    def test_delete_client_cascades(self, client, tree):
        res = client.delete(f"{API}/clients/{tree['client']['id']}")
        assert res.get_json()["found"] is True
        state = client.get(f"{API}/state").get_json()["state"]
        assert state["clients"] == [] and state["phases"] == [] and state["journeys"] == []

    def test_job_with_invalid_tag(self, client, tree):
        res = client.post(f"{API}/jobs", json={"clientId": tree["client"]["id"], "tag": "Spiritual"})
        assert res.status_code == 400

    def test_job_and_insight_links(self, client, tree):
        cid = tree["client"]["id"]
        insight = _post(client, "/insights", {"clientId": cid, "title": "Users skim"})["data"]
        job = _post(client, "/jobs", {"clientId": cid, "name": "Sign up", "insightIds": [insight["id"]]})["data"]
        client.put(f"{API}/phases/{tree['phases'][0]['id']}", json={"jobIds": [job["id"]]})

        assert client.get(f"{API}/insights/{insight['id']}").get_json()["jobIds"] == [job["id"]]
        assert client.get(f"{API}/jobs/{job['id']}").get_json()["phaseIds"] == [tree["phases"][0]["id"]]

        client.delete(f"{API}/jobs/{job['id']}")
        phase = client.get(f"{API}/phases/{tree['phases'][0]['id']}").get_json()
        assert phase["jobIds"] == []

    def test_mistyped_phase_order_rejected(self, client, tree):
        phase_id = tree["phases"][0]["id"]
        res = client.put(f"{API}/phases/{phase_id}", json={"order": "first"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

        assert client.get(f"{API}/phases/{phase_id}").get_json()["order"] == 1
        res = client.get(f"{API}/journeys/{tree['journey']['id']}")
        assert res.status_code == 200
        assert len(res.get_json()["phases"]) == 3

    def test_mistyped_id_lists_rejected(self, client, tree):
        job = _post(client, "/jobs", {"clientId": tree["client"]["id"], "name": "Pay"})["data"]
        res = client.put(f"{API}/jobs/{job['id']}", json={"insightIds": "abc"})
        assert res.status_code == 400
        res = client.put(f"{API}/journeys/{tree['journey']['id']}", json={"customRows": ["x"]})
        assert res.status_code == 400
        assert client.get(f"{API}/journeys/{tree['journey']['id']}/rows").status_code == 200


# ── Ordering ────────────────────────────────────────────────────────────


class TestOrdering:
    def test_reorder_phases(self, client, tree):
        a, b, c = (p["id"] for p in tree["phases"])
        res = client.put(f"{API}/journeys/{tree['journey']['id']}/phases/order", json={"phaseIds": [b, c, a]})
        assert res.status_code == 200
        orders = {p["id"]: p["order"] for p in client.get(f"{API}/state").get_json()["state"]["phases"]}
        assert orders == {a: 2, b: 0, c: 1}

    def test_reorder_requires_list(self, client, tree):
        res = client.put(f"{API}/journeys/{tree['journey']['id']}/phases/order", json={"phaseIds": "a,b"})
        assert res.status_code == 400

    def test_rows(self, client, tree):
        jid = tree["journey"]["id"]
        row = _post(client, f"/journeys/{jid}/rows", {"label": "KPIs"})["data"]
        client.put(f"{API}/journeys/{jid}/rows/order", json={"rowOrder": [row["id"], "systems"]})
        rows = client.get(f"{API}/journeys/{jid}/rows").get_json()
        assert rows[0] == {"id": row["id"], "key": row["id"], "label": "KPIs", "isCustom": True}
        assert rows[1]["label"] == "Systems"

        client.put(f"{API}/journeys/{jid}/rows/{row['id']}", json={"label": "Metrics"})
        assert client.get(f"{API}/journeys/{jid}/rows").get_json()[0]["label"] == "Metrics"

        client.delete(f"{API}/journeys/{jid}/rows/{row['id']}")
        assert all(not r["isCustom"] for r in client.get(f"{API}/journeys/{jid}/rows").get_json())

    def test_builtin_row_not_deletable(self, client, tree):
        jid = tree["journey"]["id"]
        res = client.delete(f"{API}/journeys/{jid}/rows/description")
        assert res.status_code == 200
        assert res.get_json()["found"] is False
        keys = [r["key"] for r in client.get(f"{API}/journeys/{jid}/rows").get_json()]
        assert "description" in keys

    def test_opportunity_move_and_reorder(self, client, tree):
        payload = {"projectId": tree["project"]["id"], "phaseId": tree["phases"][0]["id"]}
        first = _post(client, "/opportunities", {**payload, "name": "First"})["data"]
        second = _post(client, "/opportunities", {**payload, "name": "Second"})["data"]

        res = client.post(f"{API}/opportunities/{first['id']}/move", json={"stage": "Horizon 1", "index": 3})
        body = res.get_json()
        assert body["found"] is True
        assert (body["data"]["stage"], body["data"]["stageOrder"]) == ("Horizon 1", 0)
        assert client.get(f"{API}/opportunities/{second['id']}").get_json()["stageOrder"] == 0

        res = client.post(f"{API}/opportunities/{first['id']}/move", json={"stage": "Someday"})
        assert res.status_code == 400

        third = _post(client, "/opportunities", {**payload, "name": "Third"})["data"]
        client.put(f"{API}/clients/{tree['client']['id']}/opportunities/order",
                   json={"stage": "Backlog", "opportunityIds": [second["id"], third["id"]]})
        assert client.get(f"{API}/opportunities/{third['id']}").get_json()["stageOrder"] == 1

    def test_move_unknown_opportunity(self, client):
        res = client.post(f"{API}/opportunities/ghost/move", json={"stage": "Backlog"})
        assert res.get_json()["found"] is False

    def test_phase_health(self, client, tree):
        phase_id = tree["phases"][0]["id"]
        client.put(f"{API}/phases/{phase_id}", json={"struggles": '[{"text": "a", "tag": "High"}]'})
        body = client.get(f"{API}/phases/{phase_id}/health").get_json()
        assert body == {"phaseId": phase_id, "score": 38}


# ── Comments & text ─────────────────────────────────────────────────────


class TestCommentsAndText:
    def test_comment_lifecycle(self, client, tree):
        pid = tree["phases"][0]["id"]
        client.put(f"{API}/phases/{pid}/comments/struggles", json={"text": "Source?"})
        _post(client, f"/phases/{pid}/comments/struggles/replies", {"reply": "Interviews"})
        comments = client.get(f"{API}/state").get_json()["state"]["cellComments"]
        assert comments == {f"{pid}::struggles": {"text": "Source?", "replies": ["Interviews"]}}

        client.delete(f"{API}/phases/{pid}/comments/struggles")
        assert client.get(f"{API}/state").get_json()["state"]["cellComments"] == {}

    def test_blank_reply_rejected(self, client, tree):
        pid = tree["phases"][0]["id"]
        res = client.post(f"{API}/phases/{pid}/comments/struggles/replies", json={"reply": " "})
        assert res.status_code == 400

    def test_debounced_text_then_flush(self, client, tree, engine):
        pid = tree["phases"][0]["id"]
        res = client.patch(f"{API}/phases/{pid}/text", json={"struggles": "Slow"})
        assert res.get_json()["data"]["struggles"] == "Slow"
        assert engine.has_pending_save
        client.post(f"{API}/flush")
        assert not engine.has_pending_save
        assert engine.store.get_state()["phases"][0]["struggles"] == "Slow"

    def test_text_endpoint_rejects_other_fields(self, client, tree):
        pid = tree["phases"][0]["id"]
        res = client.patch(f"{API}/phases/{pid}/text", json={"jobIds": ["x"]})
        assert res.status_code == 400


# ── Save error ──────────────────────────────────────────────────────────


def test_save_error_surfaced_and_dismissed(client, tree, engine, monkeypatch):
    def failing_save(snapshot):
        raise PersistenceError("disk full", backend="memory")

    monkeypatch.setattr(engine.store, "save_state", failing_save)
    res = client.put(f"{API}/clients/{tree['client']['id']}", json={"name": "Renamed"})
    assert res.status_code == 200
    assert res.get_json()["saveError"] == "disk full"
    assert res.get_json()["data"]["name"] == "Renamed"
    assert client.get(f"{API}/save-error").get_json() == {"saveError": "disk full"}

    client.delete(f"{API}/save-error")
    assert client.get(f"{API}/save-error").get_json() == {"saveError": None}


# ── Health ──────────────────────────────────────────────────────────────


def test_health(client):
    assert client.get("/api/v1/health").get_json() == {"status": "ok"}
    body = client.get("/api/v1/health/ready").get_json()
    assert body["status"] == "healthy"
    assert body["backend"] == "memory"


def test_unknown_api_path(client):
    res = client.get("/api/v1/nothing-here")
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_wrong_method(client):
    res = client.patch(f"{API}/state")
    assert res.status_code == 405
    assert res.get_json()["error"] == "Method not allowed"


def test_request_id_echoed(client):
    res = client.get(f"{API}/save-error", headers={"X-Request-ID": "abc123"})
    assert res.headers["X-Request-ID"] == "abc123"
    assert float(res.headers["X-Request-Duration-Ms"]) >= 0

    generated = client.get(f"{API}/save-error").headers["X-Request-ID"]
    assert len(generated) == 12
