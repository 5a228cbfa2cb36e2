"""
Montage Service — CRUD and board orchestration for installation projects.

Rules:
  - db.session.commit() happens only in the service layer.
  - Every read goes through the viewer's ProjectScope; a montage outside the
    scope is reported as not found.
  - Reads only write to heal a checklist that lags the template
    (``reconcile_on_read``); everything else a read returns is computed.
  - Checklist ticks may move the status through the gate rules of
    ``checklist_gates``; every checklist write bumps ``Montage.updated_at``.

Per-request pipeline for the board:

    scoped query → view filter → checklist heal → sort → alerts → board projection
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from montage_app.core.exceptions import ConflictError, NotFoundError, ValidationError
from montage_app.models import db
from montage_app.models.montage import (
    DEFAULT_STATUS,
    INSTALLER_STATUSES,
    MATERIAL_CLAIM_TYPES,
    MATERIAL_STATUSES,
    Montage,
    MontageChecklistItem,
    next_montage_code,
)
from montage_app.models.person import Person
from montage_app.services.checklist_gates import auto_advance_enabled, gate_transition
from montage_app.services.checklist_reconciler import ensure_checklist, reconcile_on_read
from montage_app.services.checklist_templates import CUSTOM_ITEM_PREFIX, resolve_template
from montage_app.services.montage_alerts import describe_alerts, evaluate_alerts, load_alert_settings
from montage_app.services.montage_sorting import parse_sort_option, sort_projects
from montage_app.services.pipeline_board import project_board
from montage_app.services.role_scope import (
    ViewFilter,
    ViewerTier,
    applies_view_filter,
    scope_for_role,
    scope_project_predicate,
)
from montage_app.services.settings_service import DbSettingsProvider
from montage_app.services.stage_catalog import is_known_stage, list_stages, stage_values
from montage_app.utils.helpers import parse_date, parse_datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Viewer:
    """The identity a request acts as."""

    user_id: int | None = None
    roles: tuple = field(default_factory=tuple)

    @property
    def scope(self):
        return scope_project_predicate(self.roles, self.user_id)

    @property
    def is_admin(self) -> bool:
        return self.scope.tier is ViewerTier.ADMIN


ANONYMOUS = Viewer()

_TEXT_FIELDS = (
    "client_name",
    "contact_email",
    "contact_phone",
    "installation_address",
    "installation_city",
)
_PERSON_FIELDS = ("installer_id", "measurer_id", "architect_id")


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════

def scoped_query(viewer: Viewer):
    """Active montages the viewer may see."""
    q = Montage.query_active()
    clause = viewer.scope.as_clause(Montage)
    if clause is not None:
        q = q.filter(clause)
    return q


def get_montage(montage_id: int, viewer: Viewer = ANONYMOUS) -> Montage:
    """Load one montage inside the viewer's scope or raise NotFoundError."""
    montage = db.session.get(Montage, montage_id)
    if montage is None or montage.is_deleted or not viewer.scope.matches(montage):
        raise NotFoundError(resource="Montage", resource_id=montage_id)
    return montage


def list_montages(viewer: Viewer, args, settings=None) -> list[Montage]:
    """Scoped, filtered and sorted montages for the flat list endpoint."""
    settings = settings or DbSettingsProvider()
    q = scoped_query(viewer)
    if applies_view_filter(viewer.scope) and (args.get("view") or args.get("stage") or args.get("filter")):
        q = q.filter(ViewFilter.from_args(args).as_clause(Montage, stages=list_stages(settings)))
    status = args.get("status")
    if status:
        q = q.filter(Montage.status == status)
    search = (args.get("q") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(db.or_(
            Montage.client_name.ilike(like),
            Montage.code.ilike(like),
            Montage.installation_city.ilike(like),
        ))
    montages = q.all()
    reconcile_on_read(montages, settings=settings)
    return sort_projects(montages, parse_sort_option(args.get("sort")))


def montage_detail(montage: Montage, settings=None, now=None) -> dict:
    """Detail payload: fields, healed checklist and currently firing alerts."""
    settings = settings or DbSettingsProvider()
    reconcile_on_read([montage], settings=settings)
    alert_settings = load_alert_settings(settings)
    d = montage.to_dict(include_checklist=True)
    d["alerts"] = describe_alerts(evaluate_alerts(montage, alert_settings, now, stages=list_stages(settings)))
    return d


# ═════════════════════════════════════════════════════════════════════════════
# Writes
# ═════════════════════════════════════════════════════════════════════════════

def _validate_person(field_name: str, value) -> int | None:
    if value in (None, ""):
        return None
    try:
        person_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer", details={field_name: value}) from None
    if db.session.get(Person, person_id) is None:
        raise ValidationError(f"{field_name} references an unknown person", details={field_name: person_id})
    return person_id


def _collect_changes(data: dict) -> dict:
    """Validate writable fields of ``data``; nothing is applied on error."""
    changes: dict = {}
    errors: dict[str, str] = {}

    for name in _TEXT_FIELDS:
        if name in data:
            value = data[name]
            changes[name] = (value.strip() or None) if isinstance(value, str) else value
    if "client_name" in changes and not changes["client_name"]:
        errors["client_name"] = "client_name cannot be empty"

    for name in _PERSON_FIELDS:
        if name in data:
            changes[name] = _validate_person(name, data[name])

    if "scheduled_installation_at" in data:
        raw = data["scheduled_installation_at"]
        changes["scheduled_installation_at"] = parse_datetime(raw)
        if raw and changes["scheduled_installation_at"] is None:
            errors["scheduled_installation_at"] = "invalid datetime"
    if "forecasted_installation_date" in data:
        raw = data["forecasted_installation_date"]
        changes["forecasted_installation_date"] = parse_date(raw)
        if raw and changes["forecasted_installation_date"] is None:
            errors["forecasted_installation_date"] = "invalid date"

    if "material_status" in data:
        if data["material_status"] not in MATERIAL_STATUSES:
            errors["material_status"] = f"must be one of {sorted(MATERIAL_STATUSES)}"
        changes["material_status"] = data["material_status"]
    if "material_claim_type" in data:
        claim = data["material_claim_type"] or None
        if claim is not None and claim not in MATERIAL_CLAIM_TYPES:
            errors["material_claim_type"] = f"must be one of {sorted(MATERIAL_CLAIM_TYPES)}"
        changes["material_claim_type"] = claim
    if "installer_status" in data:
        if data["installer_status"] not in INSTALLER_STATUSES:
            errors["installer_status"] = f"must be one of {sorted(INSTALLER_STATUSES)}"
        changes["installer_status"] = data["installer_status"]

    if errors:
        raise ValidationError("Invalid montage fields", details=errors)
    return changes


def create_montage(data: dict, viewer: Viewer = ANONYMOUS) -> Montage:
    """Create a montage in ``new_lead`` and materialize its checklist."""
    client_name = (data.get("client_name") or "").strip()
    if not client_name:
        raise ValidationError("client_name is required", details={"client_name": "required"})

    changes = _collect_changes({k: v for k, v in data.items() if k not in ("status", "code")})
    changes["client_name"] = client_name
    code = next_montage_code()
    montage = Montage(code=code, status=DEFAULT_STATUS, **changes)
    db.session.add(montage)
    try:
        db.session.commit()
    except IntegrityError:
        # Two creates picked the same display code.
        db.session.rollback()
        raise ConflictError("Montage", "code", code) from None
    logger.info("Montage %s created by user %s", montage.code, viewer.user_id, extra={"montage_id": montage.id})

    ensure_checklist(montage.id)
    return montage


def update_montage(montage_id: int, data: dict, viewer: Viewer = ANONYMOUS) -> Montage:
    """Update assignments, dates and material fields. Status has its own call."""
    montage = get_montage(montage_id, viewer)
    changes = _collect_changes({k: v for k, v in data.items() if k not in ("status", "code")})
    for name, value in changes.items():
        setattr(montage, name, value)
    db.session.commit()
    logger.info(
        "Montage %s updated by user %s: %s", montage.code, viewer.user_id, sorted(changes),
        extra={"montage_id": montage.id},
    )
    return montage


def change_status(montage_id: int, status: str, viewer: Viewer = ANONYMOUS, settings=None) -> Montage:
    """Move a montage to another catalog stage."""
    stages = list_stages(settings or DbSettingsProvider())
    if not isinstance(status, str) or not is_known_stage(status, stages):
        raise ValidationError("Unknown stage", details={"status": status})

    montage = get_montage(montage_id, viewer)
    previous = montage.status
    montage.status = status
    db.session.commit()
    logger.info(
        "Montage %s moved %s → %s by user %s", montage.code, previous, status, viewer.user_id,
        extra={"montage_id": montage.id},
    )
    return montage


def delete_montage(montage_id: int, viewer: Viewer = ANONYMOUS) -> None:
    """Soft delete; checklist rows are kept until a purge."""
    montage = get_montage(montage_id, viewer)
    montage.soft_delete()
    db.session.commit()
    logger.info("Montage %s soft-deleted by user %s", montage.code, viewer.user_id, extra={"montage_id": montage.id})


def reconcile_montage(montage_id: int, viewer: Viewer = ANONYMOUS):
    """Explicit checklist reconcile for one montage in the viewer's scope."""
    montage = get_montage(montage_id, viewer)
    result = ensure_checklist(montage_id)
    if result.created:
        _touch(montage)
        db.session.commit()
    return result


def _touch(montage: Montage) -> None:
    montage.updated_at = datetime.now(timezone.utc)


def _get_item(montage_id: int, item_id: int) -> MontageChecklistItem:
    item = db.session.get(MontageChecklistItem, item_id)
    if item is None or item.montage_id != montage_id:
        raise NotFoundError(resource="ChecklistItem", resource_id=item_id)
    return item


def _clean_label(value) -> str:
    label = value.strip() if isinstance(value, str) else ""
    if not label:
        raise ValidationError("label cannot be empty", details={"label": value})
    return label


def _gate_status(montage: Montage, item: MontageChecklistItem, settings) -> str | None:
    """Status the gate rules move ``montage`` to after ``item`` was (un)ticked."""
    gates = {t.id: t.gate for t in resolve_template(settings)}
    gate = gates.get(item.template_id)
    if gate is None:
        return None
    gate_done = all(i.completed for i in montage.checklist_items if gates.get(i.template_id) == gate)
    return gate_transition(
        montage.status,
        gate,
        completed=item.completed,
        gate_done=gate_done,
        stages=list_stages(settings),
        auto_advance=auto_advance_enabled(settings),
    )


def update_checklist_item(montage_id: int, item_id: int, data: dict, viewer: Viewer = ANONYMOUS, settings=None):
    """Toggle completion, set the attachment reference and/or relabel one item.

    A completion change runs the gate rules, so the montage may change stage
    in the same commit. The montage counts as updated either way.
    """
    montage = get_montage(montage_id, viewer)
    item = _get_item(montage_id, item_id)

    toggled = False
    if "completed" in data:
        if not isinstance(data["completed"], bool):
            raise ValidationError("completed must be a boolean", details={"completed": data["completed"]})
        toggled = item.completed != data["completed"]
        item.completed = data["completed"]
    if "attachment_ref" in data:
        if not item.allow_attachment and data["attachment_ref"]:
            raise ValidationError(
                "This checklist item does not accept attachments",
                details={"template_id": item.template_id},
            )
        item.attachment_ref = data["attachment_ref"] or None
    if "label" in data:
        item.label = _clean_label(data["label"])

    previous = montage.status
    if toggled:
        new_status = _gate_status(montage, item, settings or DbSettingsProvider())
        if new_status:
            montage.status = new_status
    _touch(montage)
    db.session.commit()

    logger.info(
        "Checklist item %s (%s) of montage %s updated by user %s",
        item.id, item.template_id, montage_id, viewer.user_id,
        extra={"montage_id": montage_id},
    )
    if montage.status != previous:
        logger.info(
            "Montage %s moved %s → %s by checklist item %s",
            montage.code, previous, montage.status, item.template_id,
            extra={"montage_id": montage_id},
        )
    return item


def add_checklist_item(montage_id: int, data: dict, viewer: Viewer = ANONYMOUS) -> MontageChecklistItem:
    """Append a custom item to one montage's checklist.

    Custom items get a ``custom:<hex>`` template id, carry no gate and are
    left alone by the reconciler.
    """
    montage = get_montage(montage_id, viewer)
    label = _clean_label(data.get("label"))
    allow_attachment = data.get("allow_attachment", False)
    if not isinstance(allow_attachment, bool):
        raise ValidationError("allow_attachment must be a boolean", details={"allow_attachment": allow_attachment})

    last = (
        db.session.query(db.func.max(MontageChecklistItem.order_index))
        .filter(MontageChecklistItem.montage_id == montage_id)
        .scalar()
    )
    item = MontageChecklistItem(
        montage_id=montage_id,
        template_id=f"{CUSTOM_ITEM_PREFIX}{uuid.uuid4().hex}",
        label=label,
        allow_attachment=allow_attachment,
        completed=False,
        order_index=(last if last is not None else -1) + 1,
    )
    db.session.add(item)
    _touch(montage)
    db.session.commit()
    logger.info(
        "Custom checklist item %s added to montage %s by user %s",
        item.id, montage_id, viewer.user_id,
        extra={"montage_id": montage_id},
    )
    return item


def delete_checklist_item(montage_id: int, item_id: int, viewer: Viewer = ANONYMOUS) -> None:
    """Remove a custom item. Template items are required and stay."""
    montage = get_montage(montage_id, viewer)
    item = _get_item(montage_id, item_id)
    if not item.template_id.startswith(CUSTOM_ITEM_PREFIX):
        raise ValidationError(
            "Template checklist items cannot be deleted",
            details={"template_id": item.template_id},
        )
    db.session.delete(item)
    _touch(montage)
    db.session.commit()
    logger.info(
        "Custom checklist item %s removed from montage %s by user %s",
        item_id, montage_id, viewer.user_id,
        extra={"montage_id": montage_id},
    )


# ═════════════════════════════════════════════════════════════════════════════
# Board
# ═════════════════════════════════════════════════════════════════════════════

def visible_stages(viewer: Viewer, settings=None) -> list:
    """Stage catalog entries the viewer gets as columns."""
    stages = list_stages(settings)
    allowed = set(scope_for_role(viewer.roles, stage_values(stages)))
    return [s for s in stages if s.value in allowed]


def build_board(viewer: Viewer, args, settings=None, now=None) -> dict:
    """Full board payload for ``GET /montages/board``.

    Role restriction first; then, except for installers, the explicit view
    filter; then checklist healing, sorting, alert evaluation and the column
    projection.
    """
    settings = settings or DbSettingsProvider()
    stages = list_stages(settings)
    all_statuses = stage_values(stages)
    alert_settings = load_alert_settings(settings)
    sort_option = parse_sort_option(args.get("sort"))
    view_filter = ViewFilter.from_args(args)

    q = scoped_query(viewer)
    if applies_view_filter(viewer.scope):
        q = q.filter(view_filter.as_clause(Montage, stages=stages))
        position = {value: index for index, value in enumerate(all_statuses)}
        columns = sorted(
            (s for s in view_filter.column_statuses(all_statuses, stages=stages) if s in position),
            key=position.get,
        )
        columns = scope_for_role(viewer.roles, columns)
    else:
        columns = scope_for_role(viewer.roles, all_statuses)

    projects = q.all()
    reconcile_on_read(projects, settings=settings)
    projects = sort_projects(projects, sort_option)
    alerts_by_id = {m.id: evaluate_alerts(m, alert_settings, now, stages=stages) for m in projects}

    def summarize(montage):
        card = montage.to_summary()
        card["alerts"] = describe_alerts(alerts_by_id[montage.id])
        return card

    board = project_board(projects, columns, summarize=summarize, stages=stages)

    new_leads = scoped_query(viewer).filter(Montage.status == "new_lead").count()
    if board.unknown.items:
        logger.info(
            "Board for user %s has %d montage(s) in the unknown bucket", viewer.user_id, len(board.unknown.items),
        )

    payload = board.to_dict()
    payload.update({
        "sort": sort_option.value,
        "filters": view_filter.to_dict() if applies_view_filter(viewer.scope) else None,
        "tier": viewer.scope.tier.value,
        "new_leads": new_leads,
        "alerting": sum(1 for kinds in alerts_by_id.values() if kinds),
    })
    return payload
