"""
Tests — Settings API.

Covers:
    - Alert thresholds read / write / validation
    - Checklist template read / write and the batch repair endpoint
    - Stage catalog read / write
    - Admin-only writes
"""

from montage_app.models import db
from montage_app.models.montage import Montage, MontageChecklistItem
from montage_app.services.checklist_templates import DEFAULT_CHECKLIST


class TestAlertSettings:
    def test_defaults(self, client):
        body = client.get("/api/v1/settings/alerts").get_json()
        assert body["thresholds"]["missing_measurer_days"] == 14
        assert body["thresholds"] == body["defaults"]
        assert body["keys"]["material_instock_days"] == "kpi.alert_material_instock_days"

    def test_update(self, client, admin, auth_headers):
        res = client.put(
            "/api/v1/settings/alerts",
            json={"missing_measurer_days": 3, "material_ordered_days": 0},
            headers=auth_headers(admin),
        )
        assert res.status_code == 200
        assert res.get_json()["thresholds"]["missing_measurer_days"] == 3
        body = client.get("/api/v1/settings/alerts").get_json()
        assert body["thresholds"]["material_ordered_days"] == 0
        assert body["defaults"]["material_ordered_days"] == 5

    def test_rejects_bad_values(self, client):
        res = client.put("/api/v1/settings/alerts", json={
            "missing_measurer_days": -1,
            "missing_installer_days": True,
            "bogus_days": 3,
        })
        assert res.status_code == 422
        assert set(res.get_json()["details"]) == {"missing_measurer_days", "missing_installer_days", "bogus_days"}
        assert client.get("/api/v1/settings/alerts").get_json()["thresholds"]["missing_measurer_days"] == 14

    def test_installer_forbidden(self, client, installer, auth_headers):
        res = client.put("/api/v1/settings/alerts", json={"missing_measurer_days": 1}, headers=auth_headers(installer))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_anonymous_write_needs_auth_disabled(self, client, auth_required):
        res = client.put("/api/v1/settings/alerts", json={"missing_measurer_days": 1})
        assert res.status_code == 401


class TestChecklistSettings:
    def test_default_template(self, client):
        body = client.get("/api/v1/settings/checklist").get_json()
        assert body["total"] == len(DEFAULT_CHECKLIST)
        assert body["items"][0]["id"] == "contract_signed"

    def test_replace_template(self, client, admin, auth_headers):
        res = client.put("/api/v1/settings/checklist", json={"items": [
            {"id": "site_photos", "label": "Site photos", "allow_attachment": True},
            {"id": "keys_returned", "label": "Keys returned"},
        ]}, headers=auth_headers(admin))
        assert res.status_code == 200
        assert [i["id"] for i in res.get_json()["items"]] == ["site_photos", "keys_returned"]
        body = client.get("/api/v1/settings/checklist").get_json()
        assert body["items"][0]["allow_attachment"] is True

    def test_rejects_duplicates_and_empty(self, client):
        res = client.put("/api/v1/settings/checklist", json=[
            {"id": "a", "label": "A"}, {"id": "a", "label": "Again"},
        ])
        assert res.status_code == 422
        assert client.put("/api/v1/settings/checklist", json=[]).status_code == 422
        assert client.get("/api/v1/settings/checklist").get_json()["total"] == len(DEFAULT_CHECKLIST)

    def test_batch_reconcile(self, client):
        created = client.post("/api/v1/montages", json={"client_name": "Zielińska"}).get_json()
        MontageChecklistItem.query.filter_by(montage_id=created["id"], template_id="final_invoice").delete()
        db.session.commit()

        dry = client.post("/api/v1/settings/checklist/reconcile?dry_run=1").get_json()
        assert dry["dry_run"] is True
        assert dry["items_created"] == 1
        assert MontageChecklistItem.query.filter_by(montage_id=created["id"]).count() == len(DEFAULT_CHECKLIST) - 1

        res = client.post("/api/v1/settings/checklist/reconcile")
        assert res.status_code == 200
        body = res.get_json()
        assert body["checked"] == 1
        assert body["repaired"] == 1
        assert body["items_created"] == 1
        row = db.session.get(Montage, created["id"])
        assert len(row.checklist_items) == len(DEFAULT_CHECKLIST)

    def test_batch_reconcile_forbidden_for_architect(self, client, architect, auth_headers):
        res = client.post("/api/v1/settings/checklist/reconcile", headers=auth_headers(architect))
        assert res.status_code == 403


class TestStageSettings:
    def test_default_catalog(self, client):
        body = client.get("/api/v1/settings/stages").get_json()
        assert body["total"] == 26
        assert body["items"][0]["value"] == "new_lead"

    def test_relabel_and_reorder(self, client, admin, auth_headers):
        res = client.put("/api/v1/settings/stages", json={"items": [
            {"value": "quote_sent", "label": "Offer out"},
            {"value": "new_lead", "label": "Inbox"},
        ]}, headers=auth_headers(admin))
        assert res.status_code == 200
        items = client.get("/api/v1/settings/stages").get_json()["items"]
        assert [(s["value"], s["label"]) for s in items] == [("quote_sent", "Offer out"), ("new_lead", "Inbox")]
        assert items[0]["funnel_group"] == "quoting"

    def test_removed_stage_moves_montage_to_unknown(self, client):
        created = client.post("/api/v1/montages", json={"client_name": "Lewandowski"}).get_json()
        client.patch(f"/api/v1/montages/{created['id']}/status", json={"status": "quote_sent"})
        client.put("/api/v1/settings/stages", json=[
            {"value": "new_lead", "label": "New lead"},
            {"value": "quote_in_progress", "label": "Quote in progress"},
        ])
        board = client.get("/api/v1/montages/board").get_json()
        assert [c["status"] for c in board["columns"]] == ["quote_in_progress"]
        assert [m["id"] for m in board["unknown"]["items"]] == [created["id"]]

    def test_rejects_invalid(self, client):
        res = client.put("/api/v1/settings/stages", json=[{"value": "x"}, {"label": "No value"}])
        assert res.status_code == 422
        assert set(res.get_json()["details"]) == {"0", "1"}
        assert client.put("/api/v1/settings/stages", json=[]).status_code == 422
