"""
Threat / Alert Evaluator — flags montages idle past a configured threshold.

Each alert kind is a structural predicate over the montage plus a day
threshold read from settings. Age is measured in whole days, floor-rounded,
and a threshold of N fires at ``age >= N``. The reference timestamp is fixed
per kind:

    missing_measurer             created_at   missing_measurer_days (14)
    missing_installer            created_at   missing_installer_days (14)
    material_not_ordered         updated_at   missing_material_status_days (7)
    material_stalled_in_transit  updated_at   material_ordered_days (5) / material_instock_days (2)
    installer_not_confirmed      updated_at   missing_installer_status_days (7)
    no_schedule_date             —            immediate

Funnel membership (pre-measurement, pre-installation, logistics) follows the
stage groups of the resolved catalog, so a custom stage filed under
``handoff`` alerts like the built-in handoff stages.

All firing kinds are returned as an unordered set.

Usage:
    from montage_app.services.montage_alerts import evaluate_alerts, load_alert_settings
    settings = load_alert_settings(provider)
    kinds = evaluate_alerts(montage, settings, stages=list_stages(provider))
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache

from montage_app.core.exceptions import ValidationError
from montage_app.models import db
from montage_app.models.app_setting import SettingKeys
from montage_app.models.montage import PICKUP_CLAIM_TYPES
from montage_app.services.settings_service import DbSettingsProvider, set_setting
from montage_app.services.stage_catalog import DEFAULT_STAGES, FunnelGroup, statuses_in_groups
from montage_app.utils.helpers import as_utc

logger = logging.getLogger(__name__)


class AlertKind(str, Enum):
    MISSING_MEASURER = "missing_measurer"
    MISSING_INSTALLER = "missing_installer"
    MATERIAL_NOT_ORDERED = "material_not_ordered"
    MATERIAL_STALLED_IN_TRANSIT = "material_stalled_in_transit"
    INSTALLER_NOT_CONFIRMED = "installer_not_confirmed"
    NO_SCHEDULE_DATE = "no_schedule_date"


ALERT_LABELS = {
    AlertKind.MISSING_MEASURER: "No measurer assigned",
    AlertKind.MISSING_INSTALLER: "No installation crew assigned",
    AlertKind.MATERIAL_NOT_ORDERED: "Material status not set",
    AlertKind.MATERIAL_STALLED_IN_TRANSIT: "Material stuck between order and delivery",
    AlertKind.INSTALLER_NOT_CONFIRMED: "Crew has not confirmed the job",
    AlertKind.NO_SCHEDULE_DATE: "No installation date",
}


# ═════════════════════════════════════════════════════════════════════════════
# Stage sets
# ═════════════════════════════════════════════════════════════════════════════

FRESH_LEAD_STATUSES = frozenset({"new_lead"})
COMPLETED_STATUSES = frozenset({"completed"})


@dataclass(frozen=True)
class AlertStageSets:
    """Funnel membership the structural predicates test against."""

    pre_measurement: frozenset
    pre_installation: frozenset
    logistics: frozenset
    material_expected: frozenset


@lru_cache(maxsize=32)
def _stage_sets(stages: tuple) -> AlertStageSets:
    def groups(*names):
        return frozenset(statuses_in_groups(*names, stages=stages))

    logistics = groups(FunnelGroup.LOGISTICS)
    return AlertStageSets(
        pre_measurement=groups(FunnelGroup.LEAD, FunnelGroup.HANDOFF) - FRESH_LEAD_STATUSES,
        pre_installation=groups(
            FunnelGroup.HANDOFF, FunnelGroup.QUOTING, FunnelGroup.PAPERWORK, FunnelGroup.LOGISTICS,
        ),
        logistics=logistics,
        material_expected=logistics | {"deposit_paid"},
    )


def stage_sets_for(stages=None) -> AlertStageSets:
    """Alert funnel sets for a resolved catalog (built-in one when None)."""
    return _stage_sets(tuple(stages if stages is not None else DEFAULT_STAGES))


DEFAULT_STAGE_SETS = stage_sets_for()


# ═════════════════════════════════════════════════════════════════════════════
# Settings
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AlertSettings:
    missing_measurer_days: int = 14
    missing_installer_days: int = 14
    missing_material_status_days: int = 7
    missing_installer_status_days: int = 7
    material_ordered_days: int = 5
    material_instock_days: int = 2

    def to_dict(self) -> dict:
        return asdict(self)


DEFAULT_ALERT_SETTINGS = AlertSettings()

SETTING_KEYS = {
    "missing_measurer_days": SettingKeys.KPI_ALERT_MISSING_MEASURER_DAYS,
    "missing_installer_days": SettingKeys.KPI_ALERT_MISSING_INSTALLER_DAYS,
    "missing_material_status_days": SettingKeys.KPI_ALERT_MISSING_MATERIAL_STATUS_DAYS,
    "missing_installer_status_days": SettingKeys.KPI_ALERT_MISSING_INSTALLER_STATUS_DAYS,
    "material_ordered_days": SettingKeys.KPI_ALERT_MATERIAL_ORDERED_DAYS,
    "material_instock_days": SettingKeys.KPI_ALERT_MATERIAL_INSTOCK_DAYS,
}


def load_alert_settings(provider) -> AlertSettings:
    """Read every threshold through ``provider``; unset/invalid → default."""
    values = {
        field: provider.get_int(key, getattr(DEFAULT_ALERT_SETTINGS, field))
        for field, key in SETTING_KEYS.items()
    }
    return AlertSettings(**values)


# ═════════════════════════════════════════════════════════════════════════════
# Time helpers
# ═════════════════════════════════════════════════════════════════════════════

def age_days(reference, now=None) -> int | None:
    """Whole days elapsed since ``reference``, floor-rounded. None if no reference."""
    ref = as_utc(reference)
    if ref is None:
        return None
    current = as_utc(now) if now is not None else datetime.now(timezone.utc)
    return (current - ref).days


def _aged(reference, threshold: int, now) -> bool:
    age = age_days(reference, now)
    return age is not None and age >= threshold


# ═════════════════════════════════════════════════════════════════════════════
# Evaluation
# ═════════════════════════════════════════════════════════════════════════════

def evaluate_alerts(
    montage,
    settings: AlertSettings = DEFAULT_ALERT_SETTINGS,
    now=None,
    stages=None,
) -> frozenset:
    """Every alert kind currently firing for ``montage``.

    ``stages`` is the resolved catalog; funnel membership of custom stages
    comes from their group. The built-in catalog is used when None.
    """
    sets = DEFAULT_STAGE_SETS if stages is None else stage_sets_for(stages)
    if getattr(montage, "deleted_at", None) is not None:
        return frozenset()

    status = montage.status
    material = montage.material_status or "none"
    alerts: set[AlertKind] = set()

    if (
        status in sets.pre_measurement
        and montage.measurer_id is None
        and _aged(montage.created_at, settings.missing_measurer_days, now)
    ):
        alerts.add(AlertKind.MISSING_MEASURER)

    if (
        status in sets.pre_installation
        and montage.installer_id is None
        and _aged(montage.created_at, settings.missing_installer_days, now)
    ):
        alerts.add(AlertKind.MISSING_INSTALLER)

    if (
        status in sets.material_expected
        and material == "none"
        and _aged(montage.updated_at, settings.missing_material_status_days, now)
    ):
        alerts.add(AlertKind.MATERIAL_NOT_ORDERED)

    if material == "ordered" and _aged(montage.updated_at, settings.material_ordered_days, now):
        alerts.add(AlertKind.MATERIAL_STALLED_IN_TRANSIT)
    elif (
        material == "in_stock"
        and getattr(montage, "material_claim_type", None) not in PICKUP_CLAIM_TYPES
        and _aged(montage.updated_at, settings.material_instock_days, now)
    ):
        alerts.add(AlertKind.MATERIAL_STALLED_IN_TRANSIT)

    if (
        status in sets.logistics
        and montage.installer_id is not None
        and (getattr(montage, "installer_status", None) or "none") == "none"
        and _aged(montage.updated_at, settings.missing_installer_status_days, now)
    ):
        alerts.add(AlertKind.INSTALLER_NOT_CONFIRMED)

    if (
        status not in FRESH_LEAD_STATUSES
        and status not in COMPLETED_STATUSES
        and montage.scheduled_installation_at is None
    ):
        alerts.add(AlertKind.NO_SCHEDULE_DATE)

    return frozenset(alerts)


def describe_alerts(kinds) -> list[dict]:
    """Stable, sorted payload for API responses."""
    return [
        {"kind": kind.value, "label": ALERT_LABELS[kind]}
        for kind in sorted(kinds, key=lambda k: k.value)
    ]


def save_alert_settings(values: dict, user_id: int | None = None) -> AlertSettings:
    """Validate and store threshold overrides; unknown fields are rejected."""
    if not isinstance(values, dict):
        raise ValidationError("Alert settings must be an object")

    errors: dict[str, str] = {}
    for name, value in values.items():
        if name not in SETTING_KEYS:
            errors[name] = "unknown threshold"
        elif isinstance(value, bool) or not isinstance(value, int) or value < 0:
            errors[name] = "must be a non-negative integer"
    if errors:
        raise ValidationError("Invalid alert settings", details=errors)

    for name, value in values.items():
        set_setting(SETTING_KEYS[name], str(value), user_id, commit=False)
    db.session.commit()
    logger.info("Alert thresholds updated by user %s: %s", user_id, sorted(values))
    return load_alert_settings(DbSettingsProvider())
