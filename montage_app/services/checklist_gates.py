"""
Checklist Gates — status moves driven by ticking checklist items.

Every template item carries a gate. A gate resolves to a catalog stage:

    before_first_payment   → waiting_for_deposit
    before_final_invoice   → protocol_signed
    <any stage value>      → that stage

Ticking the last open item of a gate while the montage sits exactly on the
gate stage moves it to the next catalog stage (when auto-advance is on).
Unticking an item of a gate the montage has already passed moves it back
to the gate stage. Custom per-montage items carry no gate and never move
the status.

Usage:
    from montage_app.services.checklist_gates import gate_transition
    new_status = gate_transition("waiting_for_deposit", "before_first_payment",
                                 completed=True, gate_done=True, stages=stages)
"""

from __future__ import annotations

from montage_app.models.app_setting import SettingKeys
from montage_app.services.checklist_templates import GATE_BEFORE_FINAL_INVOICE, GATE_BEFORE_FIRST_PAYMENT
from montage_app.services.stage_catalog import FunnelGroup

AUTO_ADVANCE_KEY = SettingKeys.MONTAGE_CHECKLIST_AUTO_ADVANCE
_OFF_VALUES = ("0", "false", "no", "off")

GATE_STAGES = {
    GATE_BEFORE_FIRST_PAYMENT: "waiting_for_deposit",
    GATE_BEFORE_FINAL_INVOICE: "protocol_signed",
}

# Leads are converted by hand; a ticked lead item never advances.
NO_ADVANCE_STAGES = frozenset({"new_lead"})


def gate_stage(gate: str | None, stages) -> str | None:
    """Catalog stage a gate stands for, or None when the catalog lacks it."""
    if not gate:
        return None
    stage = GATE_STAGES.get(gate, gate)
    return stage if any(s.value == stage for s in stages) else None


def auto_advance_enabled(settings) -> bool:
    raw = settings.get(AUTO_ADVANCE_KEY)
    return raw is None or raw.lower() not in _OFF_VALUES


def gate_transition(current_status, gate, *, completed, gate_done, stages, auto_advance=True) -> str | None:
    """Status the montage should move to after one item changed, or None.

    Args:
        current_status: Status before the change.
        gate: Gate of the changed item (None for custom items).
        completed: New completion flag of the changed item.
        gate_done: True when every item of the gate is completed after the change.
        stages: Resolved stage catalog, in board order.
        auto_advance: Forward moves are skipped when False; rollbacks always apply.
    """
    stage = gate_stage(gate, stages)
    values = [s.value for s in stages]
    if stage is None or current_status not in values:
        return None

    special = {s.value for s in stages if s.funnel_group == FunnelGroup.SPECIAL.value}
    stage_index = values.index(stage)

    if completed:
        if not (auto_advance and gate_done) or current_status != stage or stage in NO_ADVANCE_STAGES:
            return None
        if stage_index + 1 >= len(values) or values[stage_index + 1] in special:
            return None
        return values[stage_index + 1]

    if current_status in special:
        return None
    if values.index(current_status) > stage_index:
        return stage
    return None
