"""
Settings provider — typed access to process-wide business settings.

The pipeline engine never reads a global settings store directly: the
alert evaluator, the stage catalog and the checklist resolver all receive
a provider instance. Two implementations:

    DbSettingsProvider      — backed by the ``app_settings`` table (request-scoped)
    StaticSettingsProvider  — in-memory mapping (tests, scripts, previews)

Resolution order for ``get``:
    1. Stored value (trimmed, non-empty)
    2. Environment variable ``MONTAGE_<KEY>`` (dots → underscores, upper case)
    3. None

Usage:
    from montage_app.services.settings_service import DbSettingsProvider
    provider = DbSettingsProvider()
    days = provider.get_int("kpi.alert_missing_measurer_days", 14)
"""

from __future__ import annotations

import logging
import os
from typing import Mapping

from montage_app.models import db
from montage_app.models.app_setting import AppSetting

logger = logging.getLogger(__name__)


def env_key(key: str) -> str:
    """``kpi.alert_missing_measurer_days`` → ``MONTAGE_KPI_ALERT_MISSING_MEASURER_DAYS``."""
    return "MONTAGE_" + key.replace(".", "_").replace("-", "_").upper()


def _normalize(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class SettingsProvider:
    """Read-only typed access to named settings."""

    def _lookup(self, key: str) -> str | None:
        raise NotImplementedError

    def get(self, key: str) -> str | None:
        stored = _normalize(self._lookup(key))
        if stored is not None:
            return stored
        return _normalize(os.getenv(env_key(key)))

    def get_int(self, key: str, default: int) -> int:
        """Return a non-negative integer setting, or ``default`` when unset/invalid."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            value = int(float(raw))
        except (TypeError, ValueError):
            logger.warning("Setting %s has non-numeric value %r — using default %s", key, raw, default)
            return default
        if value < 0:
            logger.warning("Setting %s is negative (%s) — using default %s", key, value, default)
            return default
        return value


class StaticSettingsProvider(SettingsProvider):
    """Settings from a plain mapping."""

    def __init__(self, values: Mapping[str, str | int | None] | None = None):
        self._values = dict(values or {})

    def _lookup(self, key: str) -> str | None:
        value = self._values.get(key)
        return None if value is None else str(value)


class DbSettingsProvider(SettingsProvider):
    """Settings from the ``app_settings`` table.

    Loads every requested key lazily and keeps the values for the lifetime
    of the instance; create one per request.
    """

    def __init__(self):
        self._cache: dict[str, str | None] = {}

    def _lookup(self, key: str) -> str | None:
        if key not in self._cache:
            row = db.session.get(AppSetting, key)
            self._cache[key] = row.value if row else None
        return self._cache[key]


# ═════════════════════════════════════════════════════════════════════════════
# Writes
# ═════════════════════════════════════════════════════════════════════════════

def set_setting(key: str, value: str, user_id: int | None = None, *, commit: bool = True) -> AppSetting:
    """Upsert a setting. Values are stored trimmed."""
    sanitized = (value or "").strip()
    row = db.session.get(AppSetting, key)
    if row is None:
        row = AppSetting(key=key, value=sanitized, updated_by=user_id)
        db.session.add(row)
    else:
        row.value = sanitized
        row.updated_by = user_id
    if commit:
        db.session.commit()
    logger.info("Setting %s updated by user %s", key, user_id)
    return row


def get_settings(keys) -> dict[str, str | None]:
    """Return the effective value of each key (stored, env, or None)."""
    provider = DbSettingsProvider()
    return {key: provider.get(key) for key in keys}
