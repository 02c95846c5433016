"""
HTTP API tests for travelers, form templates, binders and health probes.
"""

import pytest

from travelers.models import db
from travelers.models.traveler import Traveler
from travelers.services import traveler_service as svc

API = "/api/v1"
HEADERS = {"X-User-Id": "bob", "X-User-Name": "Bob B"}


def _create_traveler(client, form_id, **extra):
    res = client.post(f"{API}/travelers", json={"form_id": form_id, **extra}, headers=HEADERS)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# Form templates
# ═════════════════════════════════════════════════════════════════════════════


class TestFormApi:
    def test_create_and_get(self, client):
        res = client.post(f"{API}/forms", json={
            "title": "Leak check",
            "html": '<input name="P1">',
            "mapping": {"pressure": "P1"},
            "labels": {"P1": "Pressure (mbar)"},
        }, headers=HEADERS)
        assert res.status_code == 201
        form = res.get_json()
        assert form["created_by"] == "bob"

        res = client.get(f"{API}/forms/{form['id']}")
        assert res.status_code == 200
        assert res.get_json()["labels"] == {"P1": "Pressure (mbar)"}

    def test_title_required(self, client):
        res = client.post(f"{API}/forms", json={"labels": {}})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_unknown_form(self, client):
        res = client.get(f"{API}/forms/missing")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════════
# Travelers
# ═════════════════════════════════════════════════════════════════════════════


class TestTravelerApi:
    def test_create(self, client, template):
        body = _create_traveler(
            client, template.id,
            title="Cavity 9", devices=["CAV-9"], tags=["srf"], deadline="2026-12-01",
        )
        assert body["status"] == 0
        assert body["status_label"] == "initialized"
        assert body["created_by"] == "bob"
        assert body["devices"] == ["CAV-9"]
        assert body["total_input"] == 3
        assert body["finished_input"] == 0
        assert len(body["forms"]) == 1
        assert body["forms"][0]["id"] == body["active_form"]

    def test_create_requires_form_id(self, client):
        res = client.post(f"{API}/travelers", json={"title": "orphan"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_create_unknown_template(self, client):
        res = client.post(f"{API}/travelers", json={"form_id": "missing"})
        assert res.status_code == 404
        assert Traveler.query.count() == 0

    def test_create_rejects_non_list_devices(self, client, template):
        res = client.post(f"{API}/travelers", json={"form_id": template.id, "devices": "CAV-9"})
        assert res.status_code == 400

    def test_create_rejects_bad_deadline(self, client, template):
        res = client.post(f"{API}/travelers", json={"form_id": template.id, "deadline": "soon"})
        assert res.status_code == 400

    def test_get(self, client, traveler):
        res = client.get(f"{API}/travelers/{traveler.id}")
        assert res.status_code == 200
        assert res.get_json()["title"] == "Cavity 7 assembly"

    def test_get_unknown(self, client):
        res = client.get(f"{API}/travelers/missing")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_clone(self, client, traveler):
        svc.change_status(traveler, 1)
        svc.record_data_entry(traveler, "A", 1, "number")

        res = client.post(f"{API}/travelers/{traveler.id}/clone",
                          json={"title": "Cavity 7 rework"}, headers=HEADERS)

        assert res.status_code == 201
        clone = res.get_json()
        assert clone["id"] != traveler.id
        assert clone["status"] == 0
        assert clone["cloned_from"] == traveler.id
        assert clone["finished_input"] == 0
        assert clone["data"] == []


# ═════════════════════════════════════════════════════════════════════════════
# Forms on a traveler
# ═════════════════════════════════════════════════════════════════════════════


class TestTravelerFormsApi:
    def test_add_and_activate(self, client, traveler, make_template):
        first = traveler.active_form_id
        second = make_template("A", "D")

        res = client.post(f"{API}/travelers/{traveler.id}/forms",
                          json={"form_id": second.id, "alias": "rev B"}, headers=HEADERS)
        assert res.status_code == 201
        body = res.get_json()
        assert body["form"]["alias"] == "rev B"
        assert body["traveler"]["active_form"] == body["form"]["id"]
        assert body["traveler"]["total_input"] == 2

        res = client.put(f"{API}/travelers/{traveler.id}/forms/{first}/active")
        assert res.status_code == 200
        assert res.get_json()["traveler"]["active_form"] == first
        assert res.get_json()["traveler"]["total_input"] == 3

    def test_add_requires_form_id(self, client, traveler):
        res = client.post(f"{API}/travelers/{traveler.id}/forms", json={})
        assert res.status_code == 400

    def test_add_unknown_kind(self, client, traveler, template):
        res = client.post(f"{API}/travelers/{traveler.id}/forms",
                          json={"form_id": template.id, "kind": "appendix"})
        assert res.status_code == 400

    def test_discrepancy_form(self, client, traveler, make_template):
        res = client.post(f"{API}/travelers/{traveler.id}/forms",
                          json={"form_id": make_template("QA1").id, "kind": "discrepancy",
                                "activate": False})
        assert res.status_code == 201
        form_id = res.get_json()["form"]["id"]
        assert res.get_json()["traveler"]["active_discrepancy_form"] is None

        res = client.put(f"{API}/travelers/{traveler.id}/discrepancy-forms/{form_id}/active")
        assert res.status_code == 200
        assert res.get_json()["traveler"]["active_discrepancy_form"] == form_id

    def test_activate_unknown_form(self, client, traveler):
        res = client.put(f"{API}/travelers/{traveler.id}/forms/missing/active")
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Data and notes
# ═════════════════════════════════════════════════════════════════════════════


class TestDataApi:
    def test_record_number(self, client, traveler):
        res = client.post(f"{API}/travelers/{traveler.id}/data",
                          json={"name": "A", "value": 4.2, "type": "number"}, headers=HEADERS)

        assert res.status_code == 201
        body = res.get_json()
        assert body["data"]["value"] == 4.2
        assert body["data"]["input_by"] == "bob"
        assert body["traveler"]["finished_input"] == 1
        assert body["traveler"]["touched_inputs"] == ["A"]
        assert body["traveler"]["man_power"] == [{"_id": "bob", "username": "Bob B"}]

    @pytest.mark.parametrize("value", ["4.2", "abc", None, True])
    def test_non_number_rejected_without_side_effects(self, client, traveler, value):
        res = client.post(f"{API}/travelers/{traveler.id}/data",
                          json={"name": "A", "value": value, "type": "number"})

        assert res.status_code == 400
        assert "is not a number" in res.get_json()["error"]
        db.session.expire_all()
        stored = db.session.get(Traveler, traveler.id)
        assert stored.finished_input == 0
        assert stored.touched_inputs == []
        assert stored.data == []

    def test_unknown_type_rejected(self, client, traveler):
        res = client.post(f"{API}/travelers/{traveler.id}/data",
                          json={"name": "A", "value": "x", "type": "checkbox"})
        assert res.status_code == 400

    def test_list_data(self, client, traveler):
        svc.record_data_entry(traveler, "A", 1, "number")
        svc.record_data_entry(traveler, "B", "ok", "text")

        res = client.get(f"{API}/travelers/{traveler.id}/data")

        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 2
        assert {d["name"] for d in body["items"]} == {"A", "B"}

    def test_record_and_list_notes(self, client, traveler):
        res = client.post(f"{API}/travelers/{traveler.id}/notes",
                          json={"name": "B", "value": "flange re-torqued"}, headers=HEADERS)
        assert res.status_code == 201
        assert res.get_json()["note"]["value"] == "flange re-torqued"

        res = client.get(f"{API}/travelers/{traveler.id}/notes")
        assert res.get_json()["total"] == 1

        db.session.expire_all()
        assert db.session.get(Traveler, traveler.id).finished_input == 0

    def test_note_requires_name(self, client, traveler):
        res = client.post(f"{API}/travelers/{traveler.id}/notes", json={"value": "x"})
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# Binders
# ═════════════════════════════════════════════════════════════════════════════


class TestBinderApi:
    def _binder(self, client, **extra):
        res = client.post(f"{API}/binders", json={"title": "Cryomodule 3", **extra}, headers=HEADERS)
        assert res.status_code == 201
        return res.get_json()

    def test_create_requires_title(self, client):
        res = client.post(f"{API}/binders", json={})
        assert res.status_code == 400

    def test_add_work_and_follow_progress(self, client, traveler):
        binder = self._binder(client)

        res = client.post(f"{API}/binders/{binder['id']}/works",
                          json={"traveler_id": traveler.id, "value": 20})
        assert res.status_code == 201
        assert res.get_json()["binder"]["total_value"] == 20

        client.put(f"{API}/travelers/{traveler.id}/status", json={"status": 1})
        client.post(f"{API}/travelers/{traveler.id}/data",
                    json={"name": "A", "value": 1, "type": "number"})

        res = client.get(f"{API}/binders/{binder['id']}")
        body = res.get_json()
        assert body["works"][0]["status"] == 1
        assert body["works"][0]["in_progress"] == pytest.approx(1 / 3)
        assert body["in_progress_value"] == pytest.approx(20 / 3)

    def test_add_work_twice_rejected(self, client, traveler):
        binder = self._binder(client)
        url = f"{API}/binders/{binder['id']}/works"
        assert client.post(url, json={"traveler_id": traveler.id}).status_code == 201
        assert client.post(url, json={"traveler_id": traveler.id}).status_code == 400

    def test_add_work_unknown_traveler(self, client):
        binder = self._binder(client)
        res = client.post(f"{API}/binders/{binder['id']}/works", json={"traveler_id": "missing"})
        assert res.status_code == 404

    def test_archived_binder_stops_following(self, client, traveler):
        binder = self._binder(client)
        client.post(f"{API}/binders/{binder['id']}/works", json={"traveler_id": traveler.id})

        res = client.put(f"{API}/binders/{binder['id']}/archived", json={"archived": True})
        assert res.status_code == 200
        assert res.get_json()["archived"] is True

        client.put(f"{API}/travelers/{traveler.id}/status", json={"status": 1})
        work = client.get(f"{API}/binders/{binder['id']}").get_json()["works"][0]
        assert work["status"] == 0

    def test_archived_flag_required(self, client):
        binder = self._binder(client)
        res = client.put(f"{API}/binders/{binder['id']}/archived", json={})
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# Health and fallbacks
# ═════════════════════════════════════════════════════════════════════════════


class TestHealthApi:
    def test_ready(self, client):
        res = client.get(f"{API}/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get(f"{API}/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_unknown_route_is_json(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/v1/nowhere"

    def test_wrong_method_is_json(self, client):
        res = client.delete(f"{API}/travelers/statuses")
        assert res.status_code == 405
        assert res.get_json()["error"] == "Method not allowed"


# ═════════════════════════════════════════════════════════════════════════════
# Request body types
# ═════════════════════════════════════════════════════════════════════════════


class TestBodyTypes:
    @pytest.mark.parametrize("title", [123, ["Cavity 9"], {"text": "Cavity 9"}])
    def test_non_string_titles_return_400(self, client, template, title):
        for path, body in (
            ("/travelers", {"form_id": template.id, "title": title}),
            ("/forms", {"title": title}),
            ("/binders", {"title": title}),
        ):
            res = client.post(f"{API}{path}", json=body)
            assert res.status_code == 400, (path, res.get_json())
            assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
        assert Traveler.query.count() == 0

    def test_clone_title_must_be_string(self, client, traveler):
        res = client.post(f"{API}/travelers/{traveler.id}/clone", json={"title": 7})
        assert res.status_code == 400
        assert Traveler.query.count() == 1

    @pytest.mark.parametrize("activate", ["false", "true", 0, 1, None])
    def test_activate_flag_must_be_boolean(self, client, traveler, make_template, activate):
        first = traveler.active_form_id
        res = client.post(f"{API}/travelers/{traveler.id}/forms",
                          json={"form_id": make_template("A", "D").id, "activate": activate})

        assert res.status_code == 400
        assert res.get_json()["details"] == {"activate": activate}
        db.session.expire_all()
        stored = db.session.get(Traveler, traveler.id)
        assert stored.active_form_id == first
        assert len(stored.forms) == 1

    def test_activate_false_keeps_current_form(self, client, traveler, make_template):
        first = traveler.active_form_id
        res = client.post(f"{API}/travelers/{traveler.id}/forms",
                          json={"form_id": make_template("A", "D").id, "activate": False})
        assert res.status_code == 201
        assert res.get_json()["traveler"]["active_form"] == first

    @pytest.mark.parametrize("archived", ["false", 1])
    def test_archived_flag_must_be_boolean(self, client, archived):
        res = client.post(f"{API}/binders", json={"title": "B", "archived": archived})
        assert res.status_code == 400

        binder = client.post(f"{API}/binders", json={"title": "B"}).get_json()
        res = client.put(f"{API}/binders/{binder['id']}/archived", json={"archived": archived})
        assert res.status_code == 400
        assert client.get(f"{API}/binders/{binder['id']}").get_json()["archived"] is False
