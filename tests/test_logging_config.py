"""
Tests — Logging configuration.

Covers:
    - Request context (request id, viewer) copied onto records
    - montage_id passed by services through ``extra=``
    - JSON and readable formatters render the context
"""

import json
import logging

from flask import g

from montage_app.middleware.logging_config import JSONFormatter, ReadableFormatter, RequestContextFilter


def _record(msg="Montage MNT-001 updated", **extra):
    record = logging.LogRecord("montage_app.services.montage_service", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRequestContextFilter:
    def test_copies_request_and_viewer(self, app):
        record = _record()
        with app.test_request_context("/api/v1/montages"):
            g.request_id = "abc123"
            g.viewer_id = 7
            g.viewer_roles = ("installer",)
            assert RequestContextFilter().filter(record) is True
        assert record.request_id == "abc123"
        assert record.viewer_id == 7
        assert record.viewer_roles == ["installer"]

    def test_extra_values_win(self, app):
        record = _record(viewer_id=99)
        with app.test_request_context("/api/v1/montages"):
            g.viewer_id = 7
            RequestContextFilter().filter(record)
        assert record.viewer_id == 99

    def test_outside_request_untouched(self):
        record = _record()
        assert RequestContextFilter().filter(record) is True
        assert not hasattr(record, "viewer_id")


class TestFormatters:
    def test_json_carries_context(self):
        line = JSONFormatter().format(_record(montage_id=5, viewer_id=7, request_id="abc123", viewer_roles=[]))
        entry = json.loads(line)
        assert entry["message"] == "Montage MNT-001 updated"
        assert entry["montage_id"] == 5
        assert entry["viewer_id"] == 7
        assert entry["request_id"] == "abc123"
        assert "viewer_roles" not in entry

    def test_readable_tags(self):
        line = ReadableFormatter().format(_record(montage_id=5, viewer_id=7, duration_ms=12.4))
        assert line.endswith("[viewer=7] [montage=5] [12ms]")

    def test_readable_without_context(self):
        assert ReadableFormatter().format(_record()).endswith("montage_service: Montage MNT-001 updated")


class TestServiceLogs:
    def test_checklist_update_logs_montage_and_viewer(self, client, admin, auth_headers, caplog):
        caplog.handler.addFilter(RequestContextFilter())
        headers = auth_headers(admin)
        created = client.post("/api/v1/montages", json={"client_name": "Nowak"}, headers=headers).get_json()
        item = created["checklist"][0]

        with caplog.at_level(logging.INFO, logger="montage_app.services.montage_service"):
            res = client.patch(
                f"/api/v1/montages/{created['id']}/checklist/{item['id']}",
                json={"completed": True},
                headers=headers,
            )
        assert res.status_code == 200

        records = [r for r in caplog.records if r.name == "montage_app.services.montage_service"]
        assert records
        assert records[-1].montage_id == created["id"]
        assert records[-1].viewer_id == admin.id
        assert records[-1].request_id
