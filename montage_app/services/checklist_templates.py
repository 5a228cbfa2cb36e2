"""
Checklist Template Resolver

Every montage carries the checklist defined by one process-wide template,
stored as JSON in the ``montage.checklist`` setting and versioned only by
overwrite. ``parse_checklist_template`` is pure and total; when the stored
value is absent, malformed or empty the built-in default applies.

Usage:
    from montage_app.services.checklist_templates import resolve_template
    template = resolve_template(provider)
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass

from montage_app.core.exceptions import ValidationError
from montage_app.models.app_setting import SettingKeys
from montage_app.services.settings_service import set_setting

logger = logging.getLogger(__name__)

GATE_BEFORE_FIRST_PAYMENT = "before_first_payment"
GATE_BEFORE_FINAL_INVOICE = "before_final_invoice"

# Template ids of per-montage items added by hand; reserved, never in a template.
CUSTOM_ITEM_PREFIX = "custom:"


@dataclass(frozen=True)
class ChecklistTemplateItem:
    id: str
    label: str
    allow_attachment: bool
    gate: str

    def to_dict(self) -> dict:
        return asdict(self)


DEFAULT_CHECKLIST: tuple[ChecklistTemplateItem, ...] = (
    ChecklistTemplateItem("contract_signed", "Signed contract", True, GATE_BEFORE_FIRST_PAYMENT),
    ChecklistTemplateItem("measurement_protocol", "Measurement protocol", True, GATE_BEFORE_FIRST_PAYMENT),
    ChecklistTemplateItem("advance_invoice", "Advance invoice issued", False, GATE_BEFORE_FIRST_PAYMENT),
    ChecklistTemplateItem("advance_payment", "Advance payment received", False, GATE_BEFORE_FIRST_PAYMENT),
    ChecklistTemplateItem("handover_protocol", "Handover protocol signed", True, GATE_BEFORE_FINAL_INVOICE),
    ChecklistTemplateItem("completion_photos", "Completion photos", True, GATE_BEFORE_FINAL_INVOICE),
    ChecklistTemplateItem("final_invoice", "Final invoice issued", False, GATE_BEFORE_FINAL_INVOICE),
)


def _coerce_item(item) -> ChecklistTemplateItem | None:
    if not isinstance(item, dict):
        return None
    item_id = item.get("id")
    label = item.get("label")
    if not isinstance(item_id, str) or not isinstance(label, str):
        return None
    item_id, label = item_id.strip(), label.strip()
    if not item_id or not label:
        return None
    allow = item.get("allow_attachment", item.get("allowAttachment", False))
    gate = item.get("gate", item.get("stage"))
    if not isinstance(gate, str) or not gate.strip():
        gate = GATE_BEFORE_FIRST_PAYMENT
    return ChecklistTemplateItem(item_id, label, bool(allow), gate.strip())


def parse_checklist_template(raw: str | None) -> tuple[list[ChecklistTemplateItem], bool]:
    """Parse a stored template. Never raises.

    Returns ``(items, used_default)``; ``used_default`` is True whenever the
    built-in checklist was substituted for the stored value.
    """
    if raw is None or not str(raw).strip():
        return list(DEFAULT_CHECKLIST), True
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return list(DEFAULT_CHECKLIST), True
    if not isinstance(parsed, list):
        return list(DEFAULT_CHECKLIST), True

    items: list[ChecklistTemplateItem] = []
    seen: set[str] = set()
    for entry in parsed:
        item = _coerce_item(entry)
        if item is None or item.id in seen:
            continue
        seen.add(item.id)
        items.append(item)

    if not items:
        return list(DEFAULT_CHECKLIST), True
    return items, False


def resolve_template(settings) -> list[ChecklistTemplateItem]:
    """The checklist every active montage must carry, in order."""
    raw = settings.get(SettingKeys.MONTAGE_CHECKLIST)
    items, used_default = parse_checklist_template(raw)
    if used_default and raw:
        logger.warning("Stored checklist template is unusable — falling back to built-in default")
    return items


def save_template(entries, user_id: int | None = None) -> list[ChecklistTemplateItem]:
    """Validate and overwrite the process-wide checklist template."""
    if not isinstance(entries, list):
        raise ValidationError("Checklist template must be a list")

    items: list[ChecklistTemplateItem] = []
    errors: dict[str, str] = {}
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        item = _coerce_item(entry)
        if item is None:
            errors[str(index)] = "id and label are required"
            continue
        if item.id in seen:
            errors[str(index)] = f"duplicate id {item.id!r}"
            continue
        if item.id.startswith(CUSTOM_ITEM_PREFIX):
            errors[str(index)] = f"ids starting with {CUSTOM_ITEM_PREFIX!r} are reserved"
            continue
        seen.add(item.id)
        items.append(item)

    if errors:
        raise ValidationError("Invalid checklist template", details=errors)
    if not items:
        raise ValidationError("Checklist template cannot be empty")

    set_setting(
        SettingKeys.MONTAGE_CHECKLIST,
        json.dumps([i.to_dict() for i in items], ensure_ascii=False),
        user_id,
    )
    logger.info("Checklist template saved: %d items", len(items))
    return items
