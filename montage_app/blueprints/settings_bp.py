"""
Settings blueprint — business configuration of the pipeline.

Endpoints:
    GET|PUT  /api/v1/settings/alerts                 alert day thresholds
    GET|PUT  /api/v1/settings/checklist              checklist template
    GET|PUT  /api/v1/settings/stages                 stage catalog labels / order
    POST     /api/v1/settings/checklist/reconcile    repair pass over all montages (?dry_run=1)

Reads are open to every viewer; writes need the admin tier. With
API_AUTH_ENABLED=false the anonymous viewer is allowed to write as well.
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from montage_app.services import checklist_reconciler, checklist_templates, montage_alerts, stage_catalog
from montage_app.services.montage_service import ANONYMOUS
from montage_app.services.settings_service import DbSettingsProvider
from montage_app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

settings_bp = Blueprint("settings", __name__, url_prefix="/api/v1/settings")


def _require_admin():
    """None when the viewer may write settings, else an error response."""
    viewer = getattr(g, "viewer", ANONYMOUS)
    if viewer.is_admin:
        return None
    auth_enabled = str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() == "true"
    if not auth_enabled and viewer.user_id is None:
        return None
    logger.warning("User %s denied settings write on %s", viewer.user_id, request.path)
    return api_error(E.FORBIDDEN, "Admin role required")


# ═════════════════════════════════════════════════════════════════════════════
# Alert thresholds
# ═════════════════════════════════════════════════════════════════════════════

@settings_bp.route("/alerts", methods=["GET"])
def get_alert_settings():
    settings = montage_alerts.load_alert_settings(DbSettingsProvider())
    return jsonify({
        "thresholds": settings.to_dict(),
        "defaults": montage_alerts.DEFAULT_ALERT_SETTINGS.to_dict(),
        "keys": montage_alerts.SETTING_KEYS,
    }), 200


@settings_bp.route("/alerts", methods=["PUT"])
def put_alert_settings():
    err = _require_admin()
    if err:
        return err
    data = request.get_json(silent=True)
    settings = montage_alerts.save_alert_settings(data, g.viewer_id)
    return jsonify({"thresholds": settings.to_dict()}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Checklist template
# ═════════════════════════════════════════════════════════════════════════════

@settings_bp.route("/checklist", methods=["GET"])
def get_checklist_template():
    template = checklist_templates.resolve_template(DbSettingsProvider())
    return jsonify({"items": [i.to_dict() for i in template], "total": len(template)}), 200


@settings_bp.route("/checklist", methods=["PUT"])
def put_checklist_template():
    err = _require_admin()
    if err:
        return err
    data = request.get_json(silent=True)
    entries = data.get("items") if isinstance(data, dict) else data
    items = checklist_templates.save_template(entries, g.viewer_id)
    return jsonify({"items": [i.to_dict() for i in items], "total": len(items)}), 200


@settings_bp.route("/checklist/reconcile", methods=["POST"])
def reconcile_all_checklists():
    """Bring every active montage in line with the current template."""
    err = _require_admin()
    if err:
        return err
    dry_run = request.args.get("dry_run", "").lower() in ("1", "true", "yes")
    summary = checklist_reconciler.reconcile_all(dry_run=dry_run)
    return jsonify(summary), 200


# ═════════════════════════════════════════════════════════════════════════════
# Stage catalog
# ═════════════════════════════════════════════════════════════════════════════

@settings_bp.route("/stages", methods=["GET"])
def get_stages():
    stages = stage_catalog.list_stages(DbSettingsProvider())
    return jsonify({"items": [s.to_dict() for s in stages], "total": len(stages)}), 200


@settings_bp.route("/stages", methods=["PUT"])
def put_stages():
    err = _require_admin()
    if err:
        return err
    data = request.get_json(silent=True)
    entries = data.get("items") if isinstance(data, dict) else data
    stages = stage_catalog.save_stage_definitions(entries, g.viewer_id)
    return jsonify({"items": [s.to_dict() for s in stages], "total": len(stages)}), 200
