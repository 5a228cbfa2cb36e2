"""
Tests — Checklist Template Resolver.

Covers:
    - Built-in 7-item default in its documented order
    - Total parsing of the montage.checklist setting
    - Saving a template (validation + storage)
"""

import json
import logging

import pytest

from montage_app.core.exceptions import ValidationError
from montage_app.models.app_setting import SettingKeys
from montage_app.services.checklist_templates import (
    DEFAULT_CHECKLIST,
    GATE_BEFORE_FINAL_INVOICE,
    GATE_BEFORE_FIRST_PAYMENT,
    parse_checklist_template,
    resolve_template,
    save_template,
)
from montage_app.services.settings_service import DbSettingsProvider, StaticSettingsProvider

DEFAULT_IDS = [
    "contract_signed",
    "measurement_protocol",
    "advance_invoice",
    "advance_payment",
    "handover_protocol",
    "completion_photos",
    "final_invoice",
]


class TestDefaultTemplate:
    def test_absent_config_returns_builtin_default_in_order(self):
        template = resolve_template(StaticSettingsProvider())
        assert [i.id for i in template] == DEFAULT_IDS

    def test_gates(self):
        gates = [i.gate for i in DEFAULT_CHECKLIST]
        assert gates[:4] == [GATE_BEFORE_FIRST_PAYMENT] * 4
        assert gates[4:] == [GATE_BEFORE_FINAL_INVOICE] * 3

    def test_attachment_flags(self):
        with_attachment = {i.id for i in DEFAULT_CHECKLIST if i.allow_attachment}
        assert with_attachment == {
            "contract_signed", "measurement_protocol", "handover_protocol", "completion_photos",
        }


class TestParse:
    @pytest.mark.parametrize("raw", [None, "", "   ", "not json", "{}", "[]", json.dumps([{"x": 1}])])
    def test_unusable_values_fall_back(self, raw):
        items, used_default = parse_checklist_template(raw)
        assert used_default is True
        assert [i.id for i in items] == DEFAULT_IDS

    def test_valid_template(self):
        raw = json.dumps([
            {"id": "photos", "label": "Photos", "allowAttachment": True},
            {"id": "invoice", "label": "Invoice", "gate": GATE_BEFORE_FINAL_INVOICE},
        ])
        items, used_default = parse_checklist_template(raw)
        assert used_default is False
        assert [i.id for i in items] == ["photos", "invoice"]
        assert items[0].allow_attachment is True
        assert items[0].gate == GATE_BEFORE_FIRST_PAYMENT
        assert items[1].gate == GATE_BEFORE_FINAL_INVOICE

    def test_invalid_entries_skipped_and_duplicates_keep_first(self):
        raw = json.dumps([
            {"id": "a", "label": "A"},
            {"id": "", "label": "blank"},
            {"id": "a", "label": "A again"},
            {"id": "b", "label": "B"},
        ])
        items, _ = parse_checklist_template(raw)
        assert [(i.id, i.label) for i in items] == [("a", "A"), ("b", "B")]

    def test_resolver_logs_unusable_stored_value(self, caplog):
        provider = StaticSettingsProvider({SettingKeys.MONTAGE_CHECKLIST: "{broken"})
        with caplog.at_level(logging.WARNING, logger="montage_app.services.checklist_templates"):
            template = resolve_template(provider)
        assert [i.id for i in template] == DEFAULT_IDS
        assert "unusable" in caplog.text


class TestSaveTemplate:
    def test_save_and_resolve(self):
        save_template([
            {"id": "contract_signed", "label": "Contract", "allow_attachment": True},
            {"id": "site_ready", "label": "Site ready"},
        ])
        template = resolve_template(DbSettingsProvider())
        assert [i.id for i in template] == ["contract_signed", "site_ready"]

    def test_empty_list_rejected(self):
        with pytest.raises(ValidationError):
            save_template([])

    def test_non_list_rejected(self):
        with pytest.raises(ValidationError):
            save_template({"id": "x", "label": "X"})

    def test_invalid_entry_reports_index(self):
        with pytest.raises(ValidationError) as exc:
            save_template([{"id": "ok", "label": "OK"}, {"label": "no id"}])
        assert "1" in exc.value.details

    def test_custom_item_prefix_is_reserved(self):
        with pytest.raises(ValidationError) as exc:
            save_template([{"id": "custom:1", "label": "Clash"}])
        assert "0" in exc.value.details
