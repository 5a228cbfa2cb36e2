"""
Tests — Settings provider.

Covers:
    - Environment fallback key naming
    - Typed integer access with defaults
    - DB-backed provider and upsert
"""

import pytest

from montage_app.models import db
from montage_app.models.app_setting import AppSetting
from montage_app.services.settings_service import (
    DbSettingsProvider,
    StaticSettingsProvider,
    env_key,
    get_settings,
    set_setting,
)

KEY = "kpi.alert_missing_measurer_days"


class TestEnvKey:
    def test_key_mapping(self):
        assert env_key(KEY) == "MONTAGE_KPI_ALERT_MISSING_MEASURER_DAYS"
        assert env_key("montage.checklist") == "MONTAGE_MONTAGE_CHECKLIST"


class TestStaticProvider:
    def test_stored_value_trimmed(self):
        assert StaticSettingsProvider({KEY: "  9 "}).get(KEY) == "9"

    def test_blank_value_is_unset(self, monkeypatch):
        monkeypatch.delenv(env_key(KEY), raising=False)
        assert StaticSettingsProvider({KEY: "   "}).get(KEY) is None

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv(env_key(KEY), "21")
        assert StaticSettingsProvider().get(KEY) == "21"
        assert StaticSettingsProvider({KEY: "3"}).get(KEY) == "3"

    @pytest.mark.parametrize("raw, expected", [
        (None, 14),
        ("10", 10),
        ("0", 0),
        ("7.9", 7),
        ("-3", 14),
        ("soon", 14),
    ])
    def test_get_int(self, monkeypatch, raw, expected):
        monkeypatch.delenv(env_key(KEY), raising=False)
        assert StaticSettingsProvider({KEY: raw}).get_int(KEY, 14) == expected


class TestDbSettings:
    def test_set_and_read(self):
        set_setting(KEY, " 30 ")
        assert db.session.get(AppSetting, KEY).value == "30"
        assert DbSettingsProvider().get_int(KEY, 14) == 30

    def test_upsert_keeps_single_row(self, admin):
        set_setting(KEY, "5")
        set_setting(KEY, "6", admin.id)
        rows = AppSetting.query.filter_by(key=KEY).all()
        assert len(rows) == 1
        assert rows[0].value == "6"
        assert rows[0].updated_by == admin.id

    def test_provider_caches_per_instance(self, monkeypatch):
        monkeypatch.delenv(env_key(KEY), raising=False)
        provider = DbSettingsProvider()
        assert provider.get(KEY) is None
        set_setting(KEY, "11")
        assert provider.get(KEY) is None
        assert DbSettingsProvider().get(KEY) == "11"

    def test_get_settings(self, monkeypatch):
        monkeypatch.delenv(env_key("montage.checklist"), raising=False)
        set_setting(KEY, "4")
        assert get_settings([KEY, "montage.checklist"]) == {KEY: "4", "montage.checklist": None}
