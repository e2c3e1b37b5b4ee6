"""
Reference data blueprint: scientists and research activities (SDRs).

Endpoints:
    GET    /api/v1/scientists               ?job_title=
    POST   /api/v1/scientists               { name, email, job_title?, department? }
    GET    /api/v1/scientists/<id>
    GET    /api/v1/research-activities
    POST   /api/v1/research-activities      { sdr_number, title, status? }
    GET    /api/v1/research-activities/<id>
"""

import logging

from flask import Blueprint, jsonify, request

from research_portal.auth import require_actor
from research_portal.services import research_service
from research_portal.utils.errors import E, api_error
from research_portal.utils.helpers import get_json_body, require_fields

logger = logging.getLogger(__name__)

research_bp = Blueprint("research", __name__, url_prefix="/api/v1")


@research_bp.route("/scientists", methods=["GET"])
def list_scientists():
    scientists = research_service.list_scientists(job_title=request.args.get("job_title"))
    return jsonify({"items": [s.to_dict() for s in scientists], "total": len(scientists)})


@research_bp.route("/scientists", methods=["POST"])
@require_actor
def create_scientist():
    data = get_json_body()
    missing = require_fields(data, "name", "email")
    if missing:
        return api_error(E.VALIDATION_REQUIRED, f"Missing required fields: {', '.join(missing)}")
    scientist = research_service.create_scientist(data)
    return jsonify(scientist.to_dict()), 201


@research_bp.route("/scientists/<int:scientist_id>", methods=["GET"])
def get_scientist(scientist_id: int):
    return jsonify(research_service.get_scientist(scientist_id).to_dict())


@research_bp.route("/research-activities", methods=["GET"])
def list_research_activities():
    activities = research_service.list_research_activities()
    return jsonify({"items": [a.to_dict() for a in activities], "total": len(activities)})


@research_bp.route("/research-activities", methods=["POST"])
@require_actor
def create_research_activity():
    data = get_json_body()
    missing = require_fields(data, "sdr_number", "title")
    if missing:
        return api_error(E.VALIDATION_REQUIRED, f"Missing required fields: {', '.join(missing)}")
    activity = research_service.create_research_activity(data)
    return jsonify(activity.to_dict()), 201


@research_bp.route("/research-activities/<int:activity_id>", methods=["GET"])
def get_research_activity(activity_id: int):
    return jsonify(research_service.get_research_activity(activity_id).to_dict())
