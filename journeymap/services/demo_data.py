"""
Fixed demo workspace.

Used when nothing has been persisted yet, and by the load-time normalizer
to back-fill jobs or insights for a workspace that has clients but none of
either. Ids and timestamps are fresh on every call; the content is fixed.
"""

from __future__ import annotations

import json

from journeymap.core.entities import BUILTIN_ROW_KEYS
from journeymap.utils.helpers import generate_id, now_iso

_JOBS = (
    ("Get to the gate on time", "Functional", "High"),
    ("Feel in control of the trip", "Emotional", "High"),
    ("Look organised to colleagues", "Social", "Medium"),
    ("Keep receipts for expenses", "Functional", "Low"),
)

_INSIGHTS = (
    ("Travellers check the app 6+ times on travel day", "High"),
    ("Delays matter less when the next step is clear", "Medium"),
    ("Business travellers book for others as often as for themselves", "Low"),
)

_PHASES = (
    ("Plan", [("Too many fare options", "Medium")], [("Manual fare audits", "Low")]),
    ("Check in", [("Boarding pass not in wallet", "High")], []),
    ("Airport", [("Security queue unknown", "High"), ("Gate changes", "Medium")],
     [("Gate data arrives late", "High")]),
)

_OPPORTUNITIES = (
    ("Live queue times", "High", "Horizon 1", 2),
    ("One-tap wallet pass", "Medium", "Horizon 1", 1),
    ("Fare comparison assistant", "Low", "Backlog", 0),
)


def demo_jobs(client_id: str) -> list[dict]:
    ts = now_iso()
    return [
        {
            "id": generate_id(),
            "clientId": client_id,
            "name": name,
            "tag": tag,
            "priority": priority,
            "isPriority": priority == "High",
            "insightIds": [],
            "createdAt": ts,
            "updatedAt": ts,
        }
        for name, tag, priority in _JOBS
    ]


def demo_insights(client_id: str) -> list[dict]:
    ts = now_iso()
    return [
        {
            "id": generate_id(),
            "clientId": client_id,
            "title": title,
            "description": "",
            "priority": priority,
            "order": index,
            "createdAt": ts,
            "updatedAt": ts,
        }
        for index, (title, priority) in enumerate(_INSIGHTS)
    ]


def _struggles(items) -> str:
    return json.dumps([{"text": text, "tag": tag} for text, tag in items])


def demo_state() -> dict:
    """A complete single-client workspace in the persisted (camelCase) shape."""
    ts = now_iso()
    client_id, project_id, journey_id = generate_id(), generate_id(), generate_id()

    jobs = demo_jobs(client_id)
    insights = demo_insights(client_id)
    jobs[0]["insightIds"] = [insights[0]["id"], insights[1]["id"]]

    phases = []
    for order, (title, struggles, internal) in enumerate(_PHASES):
        phases.append({
            "id": generate_id(),
            "journeyId": journey_id,
            "order": order,
            "title": title,
            "struggles": _struggles(struggles),
            "internalStruggles": _struggles(internal),
            "jobIds": [jobs[order]["id"]],
            "customRowValues": {},
            "createdAt": ts,
            "updatedAt": ts,
        })

    opportunities = []
    stage_counts: dict[str, int] = {}
    for name, priority, stage, phase_index in _OPPORTUNITIES:
        stage_order = stage_counts.get(stage, 0)
        stage_counts[stage] = stage_order + 1
        opportunities.append({
            "id": generate_id(),
            "clientId": client_id,
            "projectId": project_id,
            "journeyId": journey_id,
            "phaseId": phases[phase_index]["id"],
            "stage": stage,
            "stageOrder": stage_order,
            "name": name,
            "priority": priority,
            "linkedJobIds": [jobs[0]["id"]],
            "createdAt": ts,
            "updatedAt": ts,
        })

    return {
        "clients": [{"id": client_id, "name": "Northwind Airways", "website": "northwind.example",
                     "createdAt": ts, "updatedAt": ts}],
        "projects": [{"id": project_id, "clientId": client_id, "name": "Travel day",
                      "createdAt": ts, "updatedAt": ts}],
        "journeys": [{"id": journey_id, "projectId": project_id, "name": "Business trip",
                      "rowOrder": list(BUILTIN_ROW_KEYS), "customRows": [],
                      "createdAt": ts, "updatedAt": ts}],
        "phases": phases,
        "jobs": jobs,
        "insights": insights,
        "opportunities": opportunities,
        "cellComments": {},
    }
