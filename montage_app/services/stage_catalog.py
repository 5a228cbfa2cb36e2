"""
Stage Catalog — every montage status, its label and its funnel group.

The catalog order is the board column order. Funnel groups cluster adjacent
stages of one business phase and are what the role filter and the alert
evaluator reason about.

Labels/descriptions can be overridden through the ``montage.statuses``
setting (JSON list). The parse is total: anything unusable falls back to
the built-in catalog.

Usage:
    from montage_app.services.stage_catalog import list_stages, stage_label
    stages = list_stages(provider)
    stage_label("quote_sent")   # -> "Quote sent"
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from enum import Enum

from montage_app.core.exceptions import ValidationError
from montage_app.models.app_setting import SettingKeys
from montage_app.services.settings_service import set_setting

logger = logging.getLogger(__name__)

UNKNOWN_STAGE_LABEL = "Unknown / removed status"


class FunnelGroup(str, Enum):
    LEAD = "lead"
    HANDOFF = "handoff"
    QUOTING = "quoting"
    PAPERWORK = "paperwork"
    LOGISTICS = "logistics"
    EXECUTION = "execution"
    CLOSEOUT = "closeout"
    SPECIAL = "special"


@dataclass(frozen=True)
class StageDefinition:
    value: str
    label: str
    description: str
    funnel_group: str
    order: int

    def to_dict(self) -> dict:
        return asdict(self)


def _stage(order, value, label, description, group):
    return StageDefinition(value, label, description, group.value, order)


DEFAULT_STAGES: tuple[StageDefinition, ...] = (
    # Lead
    _stage(1, "new_lead", "New lead", "Came in, nobody has called yet.", FunnelGroup.LEAD),
    _stage(2, "lead_contact", "Contact in progress", "Talking to the client about scope.", FunnelGroup.LEAD),
    _stage(3, "lead_samples_pending", "Samples requested", "Client asked for floor samples.", FunnelGroup.LEAD),
    _stage(4, "lead_samples_sent", "Samples sent", "Samples are on their way.", FunnelGroup.LEAD),
    _stage(5, "lead_pre_estimate", "Pre-estimate", "Rough estimate before measurement.", FunnelGroup.LEAD),
    # Handoff
    _stage(6, "measurement_to_schedule", "Measurement to schedule", "Ready for a measurer.", FunnelGroup.HANDOFF),
    _stage(7, "measurement_scheduled", "Measurement scheduled", "Date is in the calendar.", FunnelGroup.HANDOFF),
    # Quoting
    _stage(8, "measurement_done", "Measured", "Measurer visited, no quote yet.", FunnelGroup.QUOTING),
    _stage(9, "quote_in_progress", "Quote in progress", "Pricing and checking availability.", FunnelGroup.QUOTING),
    _stage(10, "quote_sent", "Quote sent", "Client has the offer, waiting.", FunnelGroup.QUOTING),
    _stage(11, "quote_accepted", "Quote accepted", "Client said yes, no paperwork yet.", FunnelGroup.QUOTING),
    # Paperwork
    _stage(12, "contract_signed", "Contract signed", "Contract carries a signature.", FunnelGroup.PAPERWORK),
    _stage(13, "waiting_for_deposit", "Waiting for deposit", "Advance invoice sent.", FunnelGroup.PAPERWORK),
    _stage(14, "deposit_paid", "Deposit paid", "Money on the account, work can start.", FunnelGroup.PAPERWORK),
    # Logistics
    _stage(15, "materials_ordered", "Materials ordered", "Order placed with the supplier.", FunnelGroup.LOGISTICS),
    _stage(16, "materials_pickup_ready", "Ready for pickup", "Goods wait in the warehouse.", FunnelGroup.LOGISTICS),
    _stage(17, "installation_scheduled", "Installation scheduled", "Crew has a start date.", FunnelGroup.LOGISTICS),
    _stage(18, "materials_delivered", "Materials on site", "Goods delivered to the site.", FunnelGroup.LOGISTICS),
    # Execution
    _stage(19, "installation_in_progress", "Installation in progress", "Work under way.", FunnelGroup.EXECUTION),
    _stage(20, "protocol_signed", "Protocol signed", "Work finished, technical handover.", FunnelGroup.EXECUTION),
    # Closeout
    _stage(21, "final_invoice_issued", "Final invoice", "Issued and sent.", FunnelGroup.CLOSEOUT),
    _stage(22, "final_settlement", "Final settlement", "Waiting for the final payment.", FunnelGroup.CLOSEOUT),
    _stage(23, "completed", "Completed", "All settled, archived.", FunnelGroup.CLOSEOUT),
    # Special
    _stage(24, "on_hold", "On hold", "Client will come back later.", FunnelGroup.SPECIAL),
    _stage(25, "rejected", "Rejected", "Too expensive or lost to competition.", FunnelGroup.SPECIAL),
    _stage(26, "complaint", "Complaint", "Something went wrong after installation.", FunnelGroup.SPECIAL),
)

_DEFAULT_BY_VALUE = {s.value: s for s in DEFAULT_STAGES}
_GROUP_VALUES = {g.value for g in FunnelGroup}


# ═════════════════════════════════════════════════════════════════════════════
# Parsing
# ═════════════════════════════════════════════════════════════════════════════

def parse_stage_definitions(raw: str | None) -> list[StageDefinition]:
    """Parse the ``montage.statuses`` setting; never raises.

    Entries need string ``id``/``value``, ``label`` and ``description``.
    A missing or unknown ``group`` keeps the built-in group of that stage,
    or ``lead`` for custom stages. Duplicate values keep the first entry.
    """
    if not raw:
        return list(DEFAULT_STAGES)
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("montage.statuses is not valid JSON — using built-in catalog")
        return list(DEFAULT_STAGES)
    if not isinstance(parsed, list):
        logger.warning("montage.statuses is not a list — using built-in catalog")
        return list(DEFAULT_STAGES)

    stages: list[StageDefinition] = []
    seen: set[str] = set()
    for index, item in enumerate(parsed):
        if not isinstance(item, dict):
            continue
        value = item.get("value", item.get("id"))
        label = item.get("label")
        description = item.get("description")
        if not all(isinstance(v, str) for v in (value, label, description)):
            continue
        value = value.strip()
        if not value or value in seen:
            continue
        group = item.get("group")
        if group not in _GROUP_VALUES:
            builtin = _DEFAULT_BY_VALUE.get(value)
            group = builtin.funnel_group if builtin else FunnelGroup.LEAD.value
        order = item.get("order")
        if not isinstance(order, (int, float)) or isinstance(order, bool):
            order = index
        seen.add(value)
        stages.append(StageDefinition(value, label.strip() or value, description, group, int(order)))

    if not stages:
        return list(DEFAULT_STAGES)
    return sorted(stages, key=lambda s: s.order)


def serialize_stage_definitions(stages) -> str:
    """Validate and serialize a stage list for storage (order = list position)."""
    out = []
    seen = set()
    for index, s in enumerate(stages):
        data = s.to_dict() if isinstance(s, StageDefinition) else dict(s)
        value = str(data.get("value") or data.get("id") or "").strip()
        label = str(data.get("label") or "").strip()
        if not value or not label or value in seen:
            continue
        seen.add(value)
        group = data.get("funnel_group") or data.get("group")
        if group not in _GROUP_VALUES:
            builtin = _DEFAULT_BY_VALUE.get(value)
            group = builtin.funnel_group if builtin else FunnelGroup.LEAD.value
        out.append({
            "value": value,
            "label": label,
            "description": str(data.get("description") or ""),
            "group": group,
            "order": index,
        })
    return json.dumps(out, ensure_ascii=False)


# ═════════════════════════════════════════════════════════════════════════════
# Public API
# ═════════════════════════════════════════════════════════════════════════════

def list_stages(settings=None) -> list[StageDefinition]:
    """Ordered stage catalog; the built-in one when no provider is given."""
    if settings is None:
        return list(DEFAULT_STAGES)
    return parse_stage_definitions(settings.get(SettingKeys.MONTAGE_STATUSES))


def stage_values(stages=None) -> list[str]:
    return [s.value for s in (stages if stages is not None else DEFAULT_STAGES)]


def is_known_stage(value: str, stages=None) -> bool:
    return value in stage_values(stages)


def is_builtin_stage(value: str) -> bool:
    """True for the stages every catalog override starts from."""
    return value in _DEFAULT_BY_VALUE


def stage_label(value: str, stages=None) -> str:
    for s in (stages if stages is not None else DEFAULT_STAGES):
        if s.value == value:
            return s.label
    return UNKNOWN_STAGE_LABEL


def statuses_in_groups(*groups, stages=None) -> list[str]:
    """Stage values whose funnel group is one of ``groups``, in catalog order."""
    wanted = {g.value if isinstance(g, FunnelGroup) else g for g in groups}
    return [s.value for s in (stages if stages is not None else DEFAULT_STAGES) if s.funnel_group in wanted]


def save_stage_definitions(entries, user_id: int | None = None) -> list[StageDefinition]:
    """Validate and overwrite the ``montage.statuses`` setting.

    Entry order becomes board column order. Removing a stage that montages
    still carry is allowed; those montages show up in the unknown bucket.
    """
    if not isinstance(entries, list) or not entries:
        raise ValidationError("Stage list must be a non-empty list")

    errors: dict[str, str] = {}
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            errors[str(index)] = "must be an object"
            continue
        value = str(entry.get("value") or entry.get("id") or "").strip()
        if not value or not str(entry.get("label") or "").strip():
            errors[str(index)] = "value and label are required"
        elif value in seen:
            errors[str(index)] = f"duplicate value {value!r}"
        seen.add(value)
    if errors:
        raise ValidationError("Invalid stage list", details=errors)

    raw = serialize_stage_definitions(entries)
    set_setting(SettingKeys.MONTAGE_STATUSES, raw, user_id)
    logger.info("Stage catalog saved: %d stages", len(seen))
    return parse_stage_definitions(raw)
