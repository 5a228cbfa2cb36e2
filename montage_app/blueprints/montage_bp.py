"""
Montage Pipeline Engine
Montage blueprint — board, list, CRUD, status moves and checklist endpoints.

Endpoints summary:
    BOARD      /api/v1/montages/board                                GET
    MONTAGE    /api/v1/montages                                      GET, POST
               /api/v1/montages/<id>                                 GET, PATCH, DELETE
               /api/v1/montages/<id>/status                          PATCH
    CHECKLIST  /api/v1/montages/<id>/checklist                       POST
               /api/v1/montages/<id>/checklist/reconcile             POST
               /api/v1/montages/<id>/checklist/<item_id>             PATCH, DELETE
    STAGES     /api/v1/pipeline/stages                               GET

Every endpoint acts as ``g.viewer`` (set by the JWT middleware). Montages
outside the viewer's scope answer 404.
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from montage_app.blueprints import paginate_list
from montage_app.services import montage_service
from montage_app.services.montage_service import ANONYMOUS
from montage_app.services.settings_service import DbSettingsProvider
from montage_app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

montage_bp = Blueprint("montage", __name__, url_prefix="/api/v1")


# ── Helpers ──────────────────────────────────────────────────────────────────

def _viewer():
    return getattr(g, "viewer", ANONYMOUS)


def _json_body():
    """Request JSON object, or None when the body is not a JSON object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


# ═════════════════════════════════════════════════════════════════════════════
# Board & list
# ═════════════════════════════════════════════════════════════════════════════

@montage_bp.route("/montages/board", methods=["GET"])
def board():
    """Stage columns for the viewer.

    Query params: view, stage, filter (urgent|payments), sort.
    """
    payload = montage_service.build_board(_viewer(), request.args)
    return jsonify(payload), 200


@montage_bp.route("/montages", methods=["GET"])
def list_montages():
    """Paginated flat list, role-scoped and sorted.

    Query params: view, stage, filter, status, q, sort, limit, offset.
    """
    montages = montage_service.list_montages(_viewer(), request.args)
    page, total = paginate_list(montages, default_limit=current_app.config.get("MONTAGE_PAGE_LIMIT", 200))
    return jsonify({
        "items": [m.to_summary() for m in page],
        "total": total,
    }), 200


# ═════════════════════════════════════════════════════════════════════════════
# Montage CRUD
# ═════════════════════════════════════════════════════════════════════════════

@montage_bp.route("/montages", methods=["POST"])
def create_montage():
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    montage = montage_service.create_montage(data, _viewer())
    return jsonify(montage.to_dict(include_checklist=True)), 201


@montage_bp.route("/montages/<int:montage_id>", methods=["GET"])
def get_montage(montage_id):
    montage = montage_service.get_montage(montage_id, _viewer())
    return jsonify(montage_service.montage_detail(montage)), 200


@montage_bp.route("/montages/<int:montage_id>", methods=["PATCH"])
def update_montage(montage_id):
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    montage = montage_service.update_montage(montage_id, data, _viewer())
    return jsonify(montage.to_dict()), 200


@montage_bp.route("/montages/<int:montage_id>/status", methods=["PATCH"])
def change_status(montage_id):
    data = _json_body()
    if data is None or not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    montage = montage_service.change_status(montage_id, data["status"], _viewer())
    return jsonify(montage.to_dict()), 200


@montage_bp.route("/montages/<int:montage_id>", methods=["DELETE"])
def delete_montage(montage_id):
    montage_service.delete_montage(montage_id, _viewer())
    return jsonify({"deleted": True, "id": montage_id}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Checklist
# ═════════════════════════════════════════════════════════════════════════════

@montage_bp.route("/montages/<int:montage_id>/checklist", methods=["POST"])
def add_checklist_item(montage_id):
    """Append a custom item to this montage only."""
    data = _json_body()
    if data is None or not data.get("label"):
        return api_error(E.VALIDATION_REQUIRED, "label is required")
    item = montage_service.add_checklist_item(montage_id, data, _viewer())
    return jsonify(item.to_dict()), 201


@montage_bp.route("/montages/<int:montage_id>/checklist/reconcile", methods=["POST"])
def reconcile_checklist(montage_id):
    """Add any template items the montage is missing."""
    result = montage_service.reconcile_montage(montage_id, _viewer())
    montage = montage_service.get_montage(montage_id, _viewer())
    return jsonify({
        "result": result.to_dict(),
        "checklist": [item.to_dict() for item in montage.checklist_items],
    }), 200


@montage_bp.route("/montages/<int:montage_id>/checklist/<int:item_id>", methods=["PATCH"])
def update_checklist_item(montage_id, item_id):
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not any(key in data for key in ("completed", "attachment_ref", "label")):
        return api_error(E.VALIDATION_REQUIRED, "completed, attachment_ref or label is required")
    item = montage_service.update_checklist_item(montage_id, item_id, data, _viewer())
    payload = item.to_dict()
    payload["montage_status"] = item.montage.status
    return jsonify(payload), 200


@montage_bp.route("/montages/<int:montage_id>/checklist/<int:item_id>", methods=["DELETE"])
def delete_checklist_item(montage_id, item_id):
    montage_service.delete_checklist_item(montage_id, item_id, _viewer())
    return jsonify({"deleted": True, "id": item_id}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Stage catalog
# ═════════════════════════════════════════════════════════════════════════════

@montage_bp.route("/pipeline/stages", methods=["GET"])
def list_stages():
    """Stage catalog entries visible to the viewer, in board order."""
    stages = montage_service.visible_stages(_viewer(), DbSettingsProvider())
    return jsonify({"items": [s.to_dict() for s in stages], "total": len(stages)}), 200
