"""
Checklist Reconciler — bring a montage's checklist in line with the template.

``ensure_checklist`` is idempotent: it inserts one item per template entry
the montage is missing (all of them when the checklist is empty) and never
touches existing items. Items whose template entry was since removed stay in
place.

Concurrency: two requests may reconcile the same montage at once. Nothing
is locked in-process; the (montage_id, template_id) unique constraint
rejects the slower insert, which is then treated as "already reconciled".

It runs when a montage is created, on
``POST /api/v1/montages/<id>/checklist/reconcile``, from
``scripts/reconcile_checklists.py`` and, through ``reconcile_on_read``, on
the detail, list and board reads: a montage whose checklist lags the
template is healed before it is rendered. Custom per-montage items
(``custom:<hex>`` template ids) are never touched.

Usage:
    from montage_app.services.checklist_reconciler import ensure_checklist
    result = ensure_checklist(montage_id=7)
    result.created   # -> 7 on first call, 0 afterwards
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from montage_app.models import db
from montage_app.models.montage import Montage, MontageChecklistItem
from montage_app.services.checklist_templates import resolve_template
from montage_app.services.settings_service import DbSettingsProvider

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    montage_id: int
    created: int = 0
    skipped: bool = False
    raced: bool = False

    def to_dict(self) -> dict:
        return {
            "montage_id": self.montage_id,
            "created": self.created,
            "skipped": self.skipped,
            "raced": self.raced,
        }


def missing_template_items(existing_template_ids, template) -> list[tuple[int, object]]:
    """(position, template item) pairs with no checklist row yet."""
    existing = set(existing_template_ids)
    return [(index, item) for index, item in enumerate(template) if item.id not in existing]


def _existing_template_ids(montage_id: int) -> list[str]:
    return [
        row.template_id
        for row in db.session.query(MontageChecklistItem.template_id)
        .filter(MontageChecklistItem.montage_id == montage_id)
        .all()
    ]


def ensure_checklist(montage_id: int, *, template=None, settings=None) -> ReconcileResult:
    """Materialize the missing checklist items of one montage and commit.

    Args:
        montage_id: Montage to reconcile. Missing or soft-deleted montages are skipped.
        template: Pre-resolved template (batch callers resolve it once).
        settings: Settings provider used when ``template`` is not given.

    Returns:
        ReconcileResult with the number of inserted items.
    """
    result = ReconcileResult(montage_id=montage_id)

    montage = db.session.get(Montage, montage_id)
    if montage is None or montage.is_deleted:
        result.skipped = True
        return result

    if template is None:
        template = resolve_template(settings or DbSettingsProvider())

    missing = missing_template_items(_existing_template_ids(montage_id), template)
    if not missing:
        return result

    for order_index, item in missing:
        db.session.add(MontageChecklistItem(
            montage_id=montage_id,
            template_id=item.id,
            label=item.label,
            allow_attachment=item.allow_attachment,
            completed=False,
            order_index=order_index,
        ))

    try:
        db.session.commit()
    except IntegrityError:
        # A concurrent reconcile inserted the same (montage_id, template_id) rows first.
        db.session.rollback()
        logger.info(
            "Checklist for montage %s already reconciled by a concurrent request", montage_id,
            extra={"montage_id": montage_id},
        )
        result.raced = True
        return result

    result.created = len(missing)
    logger.info(
        "Reconciled checklist for montage %s: %d item(s) added", montage_id, result.created,
        extra={"montage_id": montage_id},
    )
    return result


def reconcile_all(*, batch_size: int = 200, settings=None, dry_run: bool = False) -> dict:
    """Standalone repair pass over every active montage.

    The template is resolved once for the whole pass. With ``dry_run`` the
    missing items are counted but nothing is written.

    Returns:
        {"checked": int, "repaired": int, "items_created": int, "raced": int, "dry_run": bool}
    """
    template = resolve_template(settings or DbSettingsProvider())
    summary = {"checked": 0, "repaired": 0, "items_created": 0, "raced": 0, "dry_run": dry_run}

    last_id = 0
    while True:
        ids = [
            row.id
            for row in db.session.query(Montage.id)
            .filter(Montage.deleted_at.is_(None), Montage.id > last_id)
            .order_by(Montage.id)
            .limit(batch_size)
            .all()
        ]
        if not ids:
            break
        for montage_id in ids:
            summary["checked"] += 1
            if dry_run:
                created = len(missing_template_items(_existing_template_ids(montage_id), template))
                raced = False
            else:
                res = ensure_checklist(montage_id, template=template)
                created, raced = res.created, res.raced
            if created:
                summary["repaired"] += 1
                summary["items_created"] += created
            if raced:
                summary["raced"] += 1
        last_id = ids[-1]

    logger.info(
        "Checklist repair pass%s: checked=%d repaired=%d items_created=%d raced=%d",
        " (dry run)" if dry_run else "",
        summary["checked"], summary["repaired"], summary["items_created"], summary["raced"],
    )
    return summary


def reconcile_on_read(montages, *, template=None, settings=None) -> int:
    """Heal the checklists of ``montages`` that lag the template.

    Only montages missing at least one template id are written, so a read
    of up-to-date montages stays read-only. Commits per healed montage;
    loaded montages are expired and reload their checklist on next access.

    Returns:
        Number of montages that got new items.
    """
    montages = [m for m in montages if m is not None and not m.is_deleted]
    if not montages:
        return 0
    if template is None:
        template = resolve_template(settings or DbSettingsProvider())

    lagging = [
        m.id for m in montages
        if missing_template_items((item.template_id for item in m.checklist_items), template)
    ]
    healed = 0
    for montage_id in lagging:
        if ensure_checklist(montage_id, template=template).created:
            healed += 1
    if healed:
        logger.info("Read path healed %d checklist(s)", healed)
    return healed
