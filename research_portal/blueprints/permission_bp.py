"""
Role Permission Blueprint: job title × navigation item access levels.

Endpoints:
    GET  /api/v1/permissions            ?job_title=
    GET  /api/v1/permissions/resolve    ?job_title=&navigation_item=
    PUT  /api/v1/permissions            { entries: [{job_title, navigation_item, access_level}] }
    GET  /api/v1/permissions/catalog
    GET  /api/v1/me/navigation          effective access of the current actor

Writes require full access to the "settings" navigation item.
"""

import logging

from flask import Blueprint, jsonify, request

from research_portal.auth import current_actor, require_actor
from research_portal.models.permission import JOB_TITLES, NAVIGATION_ITEMS, AccessLevel
from research_portal.services import permission_service
from research_portal.utils.errors import E, api_error
from research_portal.utils.helpers import get_json_body

logger = logging.getLogger(__name__)

permission_bp = Blueprint("permissions", __name__, url_prefix="/api/v1")

SETTINGS_ITEM = "settings"


@permission_bp.route("/permissions", methods=["GET"])
def list_permissions():
    rows = permission_service.list_permissions(job_title=request.args.get("job_title"))
    return jsonify({"items": [r.to_dict() for r in rows], "total": len(rows)})


@permission_bp.route("/permissions/resolve", methods=["GET"])
def resolve_permission():
    job_title = request.args.get("job_title", "")
    navigation_item = request.args.get("navigation_item", "")
    if not navigation_item:
        return api_error(E.VALIDATION_REQUIRED, "Query parameter 'navigation_item' is required")

    table = permission_service.get_permission_table()
    return jsonify({
        "job_title": job_title,
        "navigation_item": navigation_item,
        "access_level": table.resolve(job_title, navigation_item).value,
        "is_hidden": table.is_hidden(job_title, navigation_item),
        "is_read_only": table.is_read_only(job_title, navigation_item),
    })


@permission_bp.route("/permissions", methods=["PUT"])
@require_actor
def update_permissions():
    """Bulk upsert.  200 when every entry applied, 207 when some failed."""
    permission_service.require_full_access(current_actor().role, SETTINGS_ITEM, "update permissions")

    payload = request.get_json(silent=True)
    entries = payload if isinstance(payload, list) else get_json_body().get("entries")
    if not isinstance(entries, list) or not entries:
        return api_error(E.VALIDATION_REQUIRED, "A non-empty 'entries' list is required")

    results = permission_service.update_permissions_bulk(entries)
    return jsonify(results), 207 if results["errors"] else 200


@permission_bp.route("/permissions/catalog", methods=["GET"])
def catalog():
    return jsonify({
        "job_titles": list(JOB_TITLES),
        "navigation_items": list(NAVIGATION_ITEMS),
        "access_levels": [level.value for level in AccessLevel],
        "default_access": permission_service.default_access_level().value,
    })


@permission_bp.route("/me/navigation", methods=["GET"])
def my_navigation():
    actor = current_actor()
    role = actor.role if actor else None
    return jsonify({
        "job_title": role,
        "navigation": permission_service.navigation_for_role(role),
    })
