"""
Regulatory Application Blueprint: IRB / IBC workflow endpoints.

Endpoints:
    GET    /api/v1/applications                    ?application_type=&status=&principal_investigator_id=
    POST   /api/v1/applications                    { application_type, title, principal_investigator_id, ... }
    GET    /api/v1/applications/<id>
    DELETE /api/v1/applications/<id>               draft only
    POST   /api/v1/applications/<id>/transition    { status, expected_status?, comment? }
    POST   /api/v1/applications/transition         { ids: [...], status }
    GET    /api/v1/applications/<id>/actions
    GET    /api/v1/applications/<id>/comments
    POST   /api/v1/applications/<id>/comments      { comment_type: office_comment|pi_response, comment }
    POST   /api/v1/applications/<id>/reviewer-feedback  { comment, recommendation }
    GET    /api/v1/applications/<id>/timeline
    GET    /api/v1/applications/<id>/research-activities
    POST   /api/v1/applications/<id>/research-activities   { research_activity_id }
    DELETE /api/v1/applications/<id>/research-activities/<activity_id>

Layer contract:
    - Blueprint: parse + validate input, read the current actor, call the
      service, return JSON.
    - NO db.session calls here; writes are owned by the services.
    - Typed service errors are mapped to HTTP by utils/errors.py.
"""

import logging

from flask import Blueprint, jsonify, request

from research_portal.auth import current_actor, require_actor
from research_portal.blueprints import int_arg, paginate_query
from research_portal.models.application import CommentType
from research_portal.services import application_store as store
from research_portal.services import permission_service, workflow_engine
from research_portal.utils.errors import E, api_error
from research_portal.utils.helpers import get_json_body, require_fields

logger = logging.getLogger(__name__)

application_bp = Blueprint("applications", __name__, url_prefix="/api/v1")


def _missing(missing: list[str]):
    return api_error(E.VALIDATION_REQUIRED, f"Missing required fields: {', '.join(missing)}")


# ── Applications ─────────────────────────────────────────────────────────────


@application_bp.route("/applications", methods=["GET"])
def list_applications():
    query = store.applications_query(
        application_type=request.args.get("application_type") or request.args.get("type"),
        status=request.args.get("status"),
        principal_investigator_id=int_arg("principal_investigator_id"),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [a.to_dict() for a in items], "total": total})


@application_bp.route("/applications", methods=["POST"])
@require_actor
def create_application():
    data = get_json_body()
    missing = require_fields(data, "application_type", "title", "principal_investigator_id")
    if missing:
        return _missing(missing)

    kind = str(data["application_type"]).strip().lower()
    permission_service.require_full_access(current_actor().role, f"{kind}-applications", "create")

    application = store.create_application(
        data["application_type"],
        data["title"],
        data["principal_investigator_id"],
        research_activity_id=data.get("research_activity_id"),
        protocol_number=data.get("protocol_number"),
        short_title=data.get("short_title"),
        description=data.get("description"),
        research_activity_ids=data.get("research_activity_ids"),
    )
    return jsonify(application.to_dict()), 201


@application_bp.route("/applications/<int:application_id>", methods=["GET"])
def get_application(application_id: int):
    return jsonify(store.get_application(application_id).to_dict())


@application_bp.route("/applications/<int:application_id>", methods=["DELETE"])
@require_actor
def delete_application(application_id: int):
    application = store.get_application(application_id)
    permission_service.require_full_access(
        current_actor().role, f"{application.navigation_prefix}-applications", "delete",
    )
    store.delete_application(application_id)
    return jsonify({"deleted": True, "id": application_id})


# ── Workflow ─────────────────────────────────────────────────────────────────


@application_bp.route("/applications/<int:application_id>/transition", methods=["POST"])
@require_actor
def transition_application(application_id: int):
    data = get_json_body()
    missing = require_fields(data, "status")
    if missing:
        return _missing(missing)

    result = workflow_engine.transition_application(
        application_id,
        data["status"],
        current_actor(),
        expected_status=data.get("expected_status"),
        comment=data.get("comment"),
    )
    return jsonify(result)


@application_bp.route("/applications/transition", methods=["POST"])
@require_actor
def batch_transition():
    data = get_json_body()
    missing = require_fields(data, "ids", "status")
    if missing:
        return _missing(missing)
    ids = data["ids"]
    if not isinstance(ids, list) or not all(isinstance(i, int) for i in ids):
        return api_error(E.VALIDATION_INVALID, "'ids' must be a list of integers")

    results = workflow_engine.batch_transition(ids, data["status"], current_actor())
    return jsonify(results), 207 if results["errors"] else 200


@application_bp.route("/applications/<int:application_id>/actions", methods=["GET"])
def available_actions(application_id: int):
    application = store.get_application(application_id)
    return jsonify({
        "application_id": application.id,
        "status": application.to_dict()["status"],
        "actions": workflow_engine.get_available_actions(application, current_actor()),
    })


# ── Comments & timeline ──────────────────────────────────────────────────────


@application_bp.route("/applications/<int:application_id>/comments", methods=["GET"])
def list_comments(application_id: int):
    comments = store.list_comments(application_id)
    return jsonify({"items": [c.to_dict() for c in comments], "total": len(comments)})


@application_bp.route("/applications/<int:application_id>/comments", methods=["POST"])
@require_actor
def add_comment(application_id: int):
    data = get_json_body()
    missing = require_fields(data, "comment_type", "comment")
    if missing:
        return _missing(missing)

    comment_type = CommentType.parse(data["comment_type"])
    if comment_type is CommentType.OFFICE_COMMENT:
        comment = workflow_engine.add_office_comment(application_id, data["comment"], current_actor())
    elif comment_type is CommentType.PI_RESPONSE:
        comment = workflow_engine.add_pi_response(application_id, data["comment"], current_actor())
    else:
        return api_error(
            E.VALIDATION_INVALID,
            f"comment_type '{comment_type.value}' cannot be posted here",
            details={"allowed": [CommentType.OFFICE_COMMENT.value, CommentType.PI_RESPONSE.value]},
        )
    return jsonify(comment.to_dict()), 201


@application_bp.route("/applications/<int:application_id>/reviewer-feedback", methods=["POST"])
@require_actor
def reviewer_feedback(application_id: int):
    data = get_json_body()
    missing = require_fields(data, "comment", "recommendation")
    if missing:
        return _missing(missing)

    result = workflow_engine.submit_reviewer_feedback(
        application_id, data["comment"], data["recommendation"], current_actor(),
    )
    return jsonify(result), 201


@application_bp.route("/applications/<int:application_id>/timeline", methods=["GET"])
def timeline(application_id: int):
    application = store.get_application(application_id)
    entries = workflow_engine.build_timeline(application, store.list_comments(application_id))
    return jsonify({
        "application_id": application_id,
        "entries": [entry.to_dict() for entry in entries],
    })


# ── Research activity links ──────────────────────────────────────────────────


@application_bp.route("/applications/<int:application_id>/research-activities", methods=["GET"])
def list_research_activities(application_id: int):
    links = store.list_linked_research_activities(application_id)
    return jsonify({"items": [link.to_dict() for link in links], "total": len(links)})


@application_bp.route("/applications/<int:application_id>/research-activities", methods=["POST"])
@require_actor
def link_research_activity(application_id: int):
    data = get_json_body()
    missing = require_fields(data, "research_activity_id")
    if missing:
        return _missing(missing)

    application = store.get_application(application_id)
    permission_service.require_full_access(
        current_actor().role, f"{application.navigation_prefix}-applications", "link",
    )
    link = store.link_research_activity(application_id, data["research_activity_id"])
    return jsonify(link.to_dict()), 201


@application_bp.route(
    "/applications/<int:application_id>/research-activities/<int:activity_id>",
    methods=["DELETE"],
)
@require_actor
def unlink_research_activity(application_id: int, activity_id: int):
    application = store.get_application(application_id)
    permission_service.require_full_access(
        current_actor().role, f"{application.navigation_prefix}-applications", "unlink",
    )
    store.unlink_research_activity(application_id, activity_id)
    return jsonify({"deleted": True, "application_id": application_id, "research_activity_id": activity_id})
