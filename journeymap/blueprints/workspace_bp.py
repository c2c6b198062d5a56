"""
Workspace Blueprint: REST surface over the workspace engine.

Every mutation goes through ``WorkspaceEngine.apply`` (or the debounced
phase-text path) and answers with::

    {"data": <entity or null>, "found": bool, "saveError": str | null}

Update/delete of an unknown id is a no-op answered with 200 and
``"found": false``; reads of an unknown id are 404.

API Endpoints (prefix /api/v1/workspace):
  GET    /state                                   Full snapshot
  GET    /save-error                              Sticky last save error
  DELETE /save-error                              Dismiss it
  POST   /flush                                   Persist a pending debounced edit

  POST   /clients                                 Create client
  GET    /clients/<id>                            Client detail
  PUT    /clients/<id>                            Update client
  DELETE /clients/<id>                            Delete client (cascade)
  PUT    /clients/<id>/insights/order             Reorder insights
  PUT    /clients/<id>/opportunities/order        Reorder one stage bucket

  POST   /projects | GET/PUT/DELETE /projects/<id>
  POST   /journeys | GET/PUT/DELETE /journeys/<id>
  GET    /journeys/<id>/rows                      Ordered row descriptors
  PUT    /journeys/<id>/rows/order                Reorder rows
  POST   /journeys/<id>/rows                      Add custom row
  PUT    /journeys/<id>/rows/<row_id>             Rename custom row
  DELETE /journeys/<id>/rows/<row_id>             Delete custom row
  PUT    /journeys/<id>/phases/order              Reorder phases
  GET    /journeys/<id>/export.csv                Journey map as CSV
  GET    /journeys/<id>/export.xlsx               Journey map as Excel

  POST   /phases | GET/PUT/DELETE /phases/<id>
  PATCH  /phases/<id>/text                        Debounced free-text edit
  GET    /phases/<id>/health                      Health score
  PUT    /phases/<id>/comments/<row_key>          Set comment text
  POST   /phases/<id>/comments/<row_key>/replies   Append reply
  DELETE /phases/<id>/comments/<row_key>          Delete comment

  POST   /jobs | GET/PUT/DELETE /jobs/<id>
  POST   /insights | GET/PUT/DELETE /insights/<id>
  POST   /opportunities | GET/PUT/DELETE /opportunities/<id>
  POST   /opportunities/<id>/move                 Move to stage at index
"""

import logging

from flask import Blueprint, Response, jsonify, request

from journeymap.core.entities import snake_keys
from journeymap.core.exceptions import NotFoundError
from journeymap.services import export_service, graph_service, ordering
from journeymap.services.health import phase_health_for
from journeymap.services.text_codec import comment_key
from journeymap.services.workspace_engine import get_engine
from journeymap.utils.errors import E, api_error

logger = logging.getLogger(__name__)

workspace_bp = Blueprint("workspace_bp", __name__, url_prefix="/api/v1/workspace")


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════
def _body() -> dict:
    return request.get_json(silent=True) or {}


def _respond(result, status=200):
    engine = get_engine()
    entity = result.entity.to_dict() if result.entity is not None else None
    return jsonify({"data": entity, "found": result.found, "saveError": engine.save_error}), status


def _get_or_404(collection: str, entity_id: str, resource: str):
    entity = get_engine().graph.get(collection, entity_id)
    if entity is None:
        raise NotFoundError(resource=resource, resource_id=entity_id)
    return entity


def _id_list(data: dict, key: str):
    ids = data.get(key)
    if not isinstance(ids, list):
        return None
    return [str(i) for i in ids]


# ═══════════════════════════════════════════════════════════════
# Snapshot & save state
# ═══════════════════════════════════════════════════════════════
@workspace_bp.route("/state", methods=["GET"])
def get_state():
    engine = get_engine()
    return jsonify({"state": engine.graph.to_dict(), "saveError": engine.save_error})


@workspace_bp.route("/save-error", methods=["GET"])
def get_save_error():
    return jsonify({"saveError": get_engine().save_error})


@workspace_bp.route("/save-error", methods=["DELETE"])
def dismiss_save_error():
    get_engine().dismiss_save_error()
    return jsonify({"saveError": None})


@workspace_bp.route("/flush", methods=["POST"])
def flush():
    engine = get_engine()
    engine.flush()
    return jsonify({"saveError": engine.save_error})


# ═══════════════════════════════════════════════════════════════
# Clients
# ═══════════════════════════════════════════════════════════════
@workspace_bp.route("/clients", methods=["POST"])
def create_client():
    data = _body()
    name = (data.get("name") or "").strip()
    if not name:
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    result = get_engine().apply(
        "create_client", graph_service.create_client,
        name, data.get("description"), data.get("website"),
    )
    return _respond(result, 201)


@workspace_bp.route("/clients/<client_id>", methods=["GET"])
def get_client(client_id):
    return jsonify(_get_or_404("clients", client_id, "Client").to_dict())


@workspace_bp.route("/clients/<client_id>", methods=["PUT"])
def update_client(client_id):
    result = get_engine().apply("update_client", graph_service.update_client, client_id, snake_keys(_body()))
    return _respond(result)


@workspace_bp.route("/clients/<client_id>", methods=["DELETE"])
def delete_client(client_id):
    return _respond(get_engine().apply("delete_client", graph_service.delete_client, client_id))


@workspace_bp.route("/clients/<client_id>/insights/order", methods=["PUT"])
def reorder_insights(client_id):
    ids = _id_list(_body(), "insightIds")
    if ids is None:
        return api_error(E.VALIDATION_REQUIRED, "insightIds must be a list")
    return _respond(get_engine().apply("reorder_insights", ordering.reorder_insights, client_id, ids))


@workspace_bp.route("/clients/<client_id>/opportunities/order", methods=["PUT"])
def reorder_opportunities(client_id):
    data = _body()
    ids = _id_list(data, "opportunityIds")
    if ids is None or not data.get("stage"):
        return api_error(E.VALIDATION_REQUIRED, "stage and opportunityIds are required")
    result = get_engine().apply(
        "reorder_opportunities", ordering.reorder_opportunities_in_stage, client_id, data["stage"], ids,
    )
    return _respond(result)


# ═══════════════════════════════════════════════════════════════
# Projects
# ═══════════════════════════════════════════════════════════════
@workspace_bp.route("/projects", methods=["POST"])
def create_project():
    data = _body()
    if not data.get("clientId") or not (data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "clientId and name are required")
    result = get_engine().apply(
        "create_project", graph_service.create_project,
        data["clientId"], data["name"].strip(), data.get("description"),
    )
    return _respond(result, 201)


@workspace_bp.route("/projects/<project_id>", methods=["GET"])
def get_project(project_id):
    return jsonify(_get_or_404("projects", project_id, "Project").to_dict())


@workspace_bp.route("/projects/<project_id>", methods=["PUT"])
def update_project(project_id):
    result = get_engine().apply("update_project", graph_service.update_project, project_id, snake_keys(_body()))
    return _respond(result)


@workspace_bp.route("/projects/<project_id>", methods=["DELETE"])
def delete_project(project_id):
    return _respond(get_engine().apply("delete_project", graph_service.delete_project, project_id))


# ═══════════════════════════════════════════════════════════════
# Journeys & rows
# ═══════════════════════════════════════════════════════════════
@workspace_bp.route("/journeys", methods=["POST"])
def create_journey():
    data = _body()
    if not data.get("projectId") or not (data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "projectId and name are required")
    result = get_engine().apply(
        "create_journey", graph_service.create_journey,
        data["projectId"], data["name"].strip(), data.get("description"),
    )
    return _respond(result, 201)


@workspace_bp.route("/journeys/<journey_id>", methods=["GET"])
def get_journey(journey_id):
    journey = _get_or_404("journeys", journey_id, "Journey")
    phases = ordering.ordered_phases(get_engine().graph, journey_id)
    return jsonify({**journey.to_dict(), "phases": [p.to_dict() for p in phases]})


@workspace_bp.route("/journeys/<journey_id>", methods=["PUT"])
def update_journey(journey_id):
    result = get_engine().apply("update_journey", graph_service.update_journey, journey_id, snake_keys(_body()))
    return _respond(result)


@workspace_bp.route("/journeys/<journey_id>", methods=["DELETE"])
def delete_journey(journey_id):
    return _respond(get_engine().apply("delete_journey", graph_service.delete_journey, journey_id))


@workspace_bp.route("/journeys/<journey_id>/rows", methods=["GET"])
def list_journey_rows(journey_id):
    journey = _get_or_404("journeys", journey_id, "Journey")
    return jsonify([r.to_dict() for r in ordering.get_ordered_rows(journey)])


@workspace_bp.route("/journeys/<journey_id>/rows/order", methods=["PUT"])
def reorder_journey_rows(journey_id):
    ids = _id_list(_body(), "rowOrder")
    if ids is None:
        return api_error(E.VALIDATION_REQUIRED, "rowOrder must be a list")
    result = get_engine().apply("reorder_journey_rows", ordering.reorder_journey_rows, journey_id, ids)
    return _respond(result)


@workspace_bp.route("/journeys/<journey_id>/rows", methods=["POST"])
def add_journey_row(journey_id):
    result = get_engine().apply(
        "add_journey_row", graph_service.add_journey_row, journey_id, _body().get("label") or "",
    )
    return _respond(result, 201 if result.found else 200)


@workspace_bp.route("/journeys/<journey_id>/rows/<row_id>", methods=["PUT"])
def update_journey_row(journey_id, row_id):
    result = get_engine().apply(
        "update_journey_row", graph_service.update_journey_row, journey_id, row_id, _body().get("label") or "",
    )
    return _respond(result)


@workspace_bp.route("/journeys/<journey_id>/rows/<row_id>", methods=["DELETE"])
def delete_journey_row(journey_id, row_id):
    result = get_engine().apply("delete_journey_row", graph_service.delete_journey_row, journey_id, row_id)
    return _respond(result)


@workspace_bp.route("/journeys/<journey_id>/phases/order", methods=["PUT"])
def reorder_phases(journey_id):
    ids = _id_list(_body(), "phaseIds")
    if ids is None:
        return api_error(E.VALIDATION_REQUIRED, "phaseIds must be a list")
    return _respond(get_engine().apply("reorder_phases", ordering.reorder_phases, journey_id, ids))


@workspace_bp.route("/journeys/<journey_id>/export.csv", methods=["GET"])
def export_journey_csv(journey_id):
    content = export_service.build_journey_map_csv(get_engine().graph, journey_id)
    return Response(
        content,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename=journey-map-{journey_id}.csv"},
    )


@workspace_bp.route("/journeys/<journey_id>/export.xlsx", methods=["GET"])
def export_journey_xlsx(journey_id):
    content = export_service.build_journey_map_xlsx(get_engine().graph, journey_id)
    return Response(
        content,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename=journey-map-{journey_id}.xlsx"},
    )


# ═══════════════════════════════════════════════════════════════
# Phases & comments
# ═══════════════════════════════════════════════════════════════
@workspace_bp.route("/phases", methods=["POST"])
def create_phase():
    journey_id = _body().get("journeyId")
    if not journey_id:
        return api_error(E.VALIDATION_REQUIRED, "journeyId is required")
    return _respond(get_engine().apply("create_phase", graph_service.create_phase, journey_id), 201)


@workspace_bp.route("/phases/<phase_id>", methods=["GET"])
def get_phase(phase_id):
    return jsonify(_get_or_404("phases", phase_id, "Phase").to_dict())


@workspace_bp.route("/phases/<phase_id>", methods=["PUT"])
def update_phase(phase_id):
    result = get_engine().apply("update_phase", graph_service.update_phase, phase_id, snake_keys(_body()))
    return _respond(result)


@workspace_bp.route("/phases/<phase_id>/text", methods=["PATCH"])
def update_phase_text(phase_id):
    return _respond(get_engine().update_phase_text(phase_id, snake_keys(_body())))


@workspace_bp.route("/phases/<phase_id>", methods=["DELETE"])
def delete_phase(phase_id):
    return _respond(get_engine().apply("delete_phase", graph_service.delete_phase, phase_id))


@workspace_bp.route("/phases/<phase_id>/health", methods=["GET"])
def get_phase_health(phase_id):
    phase = _get_or_404("phases", phase_id, "Phase")
    return jsonify({"phaseId": phase_id, "score": phase_health_for(get_engine().graph, phase)})


@workspace_bp.route("/phases/<phase_id>/comments/<row_key>", methods=["PUT"])
def set_cell_comment(phase_id, row_key):
    result = get_engine().apply(
        "set_cell_comment", graph_service.set_cell_comment,
        comment_key(phase_id, row_key), str(_body().get("text") or ""),
    )
    return _respond(result)


@workspace_bp.route("/phases/<phase_id>/comments/<row_key>/replies", methods=["POST"])
def add_cell_comment_reply(phase_id, row_key):
    reply = (_body().get("reply") or "").strip()
    if not reply:
        return api_error(E.VALIDATION_REQUIRED, "reply is required")
    result = get_engine().apply(
        "add_cell_comment_reply", graph_service.add_cell_comment_reply, comment_key(phase_id, row_key), reply,
    )
    return _respond(result, 201)


@workspace_bp.route("/phases/<phase_id>/comments/<row_key>", methods=["DELETE"])
def delete_cell_comment(phase_id, row_key):
    result = get_engine().apply(
        "delete_cell_comment", graph_service.delete_cell_comment, comment_key(phase_id, row_key),
    )
    return _respond(result)


# ═══════════════════════════════════════════════════════════════
# Jobs
# ═══════════════════════════════════════════════════════════════
@workspace_bp.route("/jobs", methods=["POST"])
def create_job():
    data = snake_keys(_body())
    client_id = data.pop("client_id", None)
    if not client_id:
        return api_error(E.VALIDATION_REQUIRED, "clientId is required")
    return _respond(get_engine().apply("create_job", graph_service.create_job, client_id, data), 201)


@workspace_bp.route("/jobs/<job_id>", methods=["GET"])
def get_job(job_id):
    job = _get_or_404("jobs", job_id, "Job")
    graph = get_engine().graph
    return jsonify({
        **job.to_dict(),
        "phaseIds": [p.id for p in graph_service.phases_for_job(graph, job_id)],
        "opportunityIds": [o.id for o in graph_service.opportunities_for_job(graph, job_id)],
    })


@workspace_bp.route("/jobs/<job_id>", methods=["PUT"])
def update_job(job_id):
    return _respond(get_engine().apply("update_job", graph_service.update_job, job_id, snake_keys(_body())))


@workspace_bp.route("/jobs/<job_id>", methods=["DELETE"])
def delete_job(job_id):
    return _respond(get_engine().apply("delete_job", graph_service.delete_job, job_id))


# ═══════════════════════════════════════════════════════════════
# Insights
# ═══════════════════════════════════════════════════════════════
@workspace_bp.route("/insights", methods=["POST"])
def create_insight():
    data = snake_keys(_body())
    client_id = data.pop("client_id", None)
    if not client_id:
        return api_error(E.VALIDATION_REQUIRED, "clientId is required")
    return _respond(get_engine().apply("create_insight", graph_service.create_insight, client_id, data), 201)


@workspace_bp.route("/insights/<insight_id>", methods=["GET"])
def get_insight(insight_id):
    insight = _get_or_404("insights", insight_id, "Insight")
    jobs = graph_service.jobs_for_insight(get_engine().graph, insight_id)
    return jsonify({**insight.to_dict(), "jobIds": [j.id for j in jobs]})


@workspace_bp.route("/insights/<insight_id>", methods=["PUT"])
def update_insight(insight_id):
    result = get_engine().apply("update_insight", graph_service.update_insight, insight_id, snake_keys(_body()))
    return _respond(result)


@workspace_bp.route("/insights/<insight_id>", methods=["DELETE"])
def delete_insight(insight_id):
    return _respond(get_engine().apply("delete_insight", graph_service.delete_insight, insight_id))


# ═══════════════════════════════════════════════════════════════
# Opportunities
# ═══════════════════════════════════════════════════════════════
@workspace_bp.route("/opportunities", methods=["POST"])
def create_opportunity():
    data = snake_keys(_body())
    if not data.get("project_id") or not data.get("phase_id"):
        return api_error(E.VALIDATION_REQUIRED, "projectId and phaseId are required")
    return _respond(get_engine().apply("create_opportunity", graph_service.create_opportunity, data), 201)


@workspace_bp.route("/opportunities/<opportunity_id>", methods=["GET"])
def get_opportunity(opportunity_id):
    return jsonify(_get_or_404("opportunities", opportunity_id, "Opportunity").to_dict())


@workspace_bp.route("/opportunities/<opportunity_id>", methods=["PUT"])
def update_opportunity(opportunity_id):
    result = get_engine().apply(
        "update_opportunity", graph_service.update_opportunity, opportunity_id, snake_keys(_body()),
    )
    return _respond(result)


@workspace_bp.route("/opportunities/<opportunity_id>", methods=["DELETE"])
def delete_opportunity(opportunity_id):
    return _respond(get_engine().apply("delete_opportunity", graph_service.delete_opportunity, opportunity_id))


@workspace_bp.route("/opportunities/<opportunity_id>/move", methods=["POST"])
def move_opportunity(opportunity_id):
    data = _body()
    if not data.get("stage"):
        return api_error(E.VALIDATION_REQUIRED, "stage is required")
    try:
        index = int(data.get("index", 0))
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "index must be an integer")

    engine = get_engine()
    found = engine.graph.get("opportunities", opportunity_id) is not None
    result = engine.apply(
        "move_opportunity", ordering.move_opportunity_to_stage, opportunity_id, data["stage"], index,
    )
    moved = result.graph.get("opportunities", opportunity_id)
    return jsonify({
        "data": moved.to_dict() if moved else None,
        "found": found,
        "saveError": engine.save_error,
    })
