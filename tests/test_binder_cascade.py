"""
Binder cascade tests.

After a traveler commit that changes status / total_input / finished_input,
every non-archived binder containing the traveler gets exactly one
update_work_progress + update_progress. Commits that change anything else
trigger nothing, and cascade failures never reach the traveler write.
"""

import logging
import threading

import pytest

from travelers.core.exceptions import ValidationError
from travelers.models import db
from travelers.models.binder import Binder
from travelers.models.traveler import Traveler
from travelers.services import binder_cascade, binder_service
from travelers.services import traveler_service as svc


def _binder(title="Cryomodule 3", archived=False) -> Binder:
    return binder_service.create_binder({"title": title, "archived": archived}, user="pm")


def _containing(traveler, *binders, value=None):
    for b in binders:
        binder_service.add_work(b, traveler, value=value)


def _calls_for(calls, binder_id):
    return [name for name, bid, _ in calls if bid == binder_id]


# ═════════════════════════════════════════════════════════════════════════════
# Dispatch decisions
# ═════════════════════════════════════════════════════════════════════════════


class TestNeedsCascade:
    @pytest.mark.parametrize("changed", [
        {"status"}, {"total_input"}, {"finished_input"},
        {"status", "updated_on"}, {"finished_input", "touched_inputs", "data"},
    ])
    def test_progress_fields_cascade(self, changed):
        assert binder_cascade.needs_cascade(changed) is True

    @pytest.mark.parametrize("changed", [
        set(), {"updated_on"}, {"updated_on", "updated_by"}, {"notes"}, {"touched_inputs"},
    ])
    def test_other_fields_do_not(self, changed):
        assert binder_cascade.needs_cascade(changed) is False


# ═════════════════════════════════════════════════════════════════════════════
# Cascade on traveler writes
# ═════════════════════════════════════════════════════════════════════════════


class TestCascadeOnWrite:
    def test_status_change_updates_each_binder_once(self, traveler, binder_calls):
        svc.change_status(traveler, 1)
        b1, b2 = _binder("B1"), _binder("B2")
        _containing(traveler, b1, b2)
        binder_calls.clear()

        svc.change_status(traveler, 1.5)

        for b in (b1, b2):
            assert _calls_for(binder_calls, b.id) == ["update_work_progress", "update_progress"]
        assert len(binder_calls) == 4

    def test_archived_binders_are_skipped(self, traveler, binder_calls):
        live, archived = _binder("Live"), _binder("Old", archived=True)
        _containing(traveler, live, archived)
        binder_calls.clear()

        svc.change_status(traveler, 1)

        assert _calls_for(binder_calls, live.id) == ["update_work_progress", "update_progress"]
        assert _calls_for(binder_calls, archived.id) == []

    def test_unrelated_binders_untouched(self, traveler, template, binder_calls):
        other = svc.create_traveler(template.id, "carol")
        mine, theirs = _binder("Mine"), _binder("Theirs")
        _containing(traveler, mine)
        _containing(other, theirs)
        binder_calls.clear()

        svc.change_status(traveler, 1)

        assert {bid for _, bid, _ in binder_calls} == {mine.id}

    def test_audit_only_commit_does_not_cascade(self, traveler, binder_calls):
        b = _binder()
        _containing(traveler, b)
        binder_calls.clear()

        stored = db.session.get(Traveler, traveler.id)
        stored.updated_by = "auditor"
        changed = svc.save_traveler(stored)

        assert changed == {"updated_by"}
        assert binder_calls == []

    def test_note_does_not_cascade(self, traveler, binder_calls):
        _containing(traveler, _binder())
        binder_calls.clear()

        svc.record_note(traveler, "A", "torque checked")

        assert binder_calls == []

    def test_data_entry_cascades_only_when_counted(self, traveler, binder_calls):
        b = _binder()
        _containing(traveler, b)
        binder_calls.clear()

        svc.record_data_entry(traveler, "A", 1, "number")
        assert len(_calls_for(binder_calls, b.id)) == 2

        svc.record_data_entry(traveler, "A", 2, "number")
        assert len(_calls_for(binder_calls, b.id)) == 2

    def test_rejected_entry_does_not_cascade(self, traveler, binder_calls):
        _containing(traveler, _binder())
        binder_calls.clear()

        with pytest.raises(ValidationError):
            svc.record_data_entry(traveler, "A", "n/a", "number")

        assert binder_calls == []

    def test_no_binders_is_a_noop(self, traveler, binder_calls):
        svc.change_status(traveler, 1)
        assert binder_calls == []

    def test_form_activation_cascades(self, traveler, make_template, binder_calls):
        b = _binder()
        _containing(traveler, b)
        binder_calls.clear()

        svc.add_form(traveler, make_template("A", "D").id)

        assert _calls_for(binder_calls, b.id) == ["update_work_progress", "update_progress"]


# ═════════════════════════════════════════════════════════════════════════════
# Binder rollups
# ═════════════════════════════════════════════════════════════════════════════


class TestBinderRollup:
    def test_progress_flows_into_binder(self, traveler):
        b = _binder()
        _containing(traveler, b, value=10)
        svc.change_status(traveler, 1)

        svc.record_data_entry(traveler, "A", 1, "number")

        db.session.expire_all()
        stored = db.session.get(Binder, b.id)
        work = stored.find_work(traveler.id)
        assert work.in_progress == pytest.approx(1 / 3)
        assert stored.total_value == 10
        assert stored.in_progress_value == pytest.approx(10 / 3)
        assert stored.finished_value == 0

    def test_completed_traveler_counts_as_finished(self, traveler, template):
        other = svc.create_traveler(template.id, "carol")
        b = _binder()
        _containing(traveler, b, value=10)
        _containing(other, b, value=30)

        for status in (1, 1.5, 2):
            svc.change_status(traveler, status)

        db.session.expire_all()
        stored = db.session.get(Binder, b.id)
        assert stored.find_work(traveler.id).finished == 1
        assert stored.total_value == 40
        assert stored.finished_value == 10

    def test_duplicate_work_rejected(self, traveler):
        b = _binder()
        _containing(traveler, b)
        with pytest.raises(ValidationError):
            binder_service.add_work(b, traveler)


# ═════════════════════════════════════════════════════════════════════════════
# Failure isolation
# ═════════════════════════════════════════════════════════════════════════════


class TestCascadeFailures:
    def test_lookup_failure_is_logged_not_raised(self, traveler, monkeypatch, caplog):
        def _boom(traveler_id, exclude_archived=True):
            raise RuntimeError("binder store unavailable")

        monkeypatch.setattr(binder_cascade, "find_binders_containing", _boom)
        caplog.set_level(logging.ERROR, logger="travelers.services.binder_cascade")

        svc.change_status(traveler, 1)

        db.session.expire_all()
        assert db.session.get(Traveler, traveler.id).status_code == 1
        assert "cannot find binders for traveler" in caplog.text

    def test_one_failing_binder_does_not_stop_others(self, traveler, monkeypatch, caplog):
        bad, good = _binder("Bad"), _binder("Good")
        _containing(traveler, bad, good)
        bad_id = bad.id
        real = Binder.update_progress
        seen = []

        def _update_progress(self):
            seen.append(self.id)
            if self.id == bad_id:
                raise RuntimeError("rollup failed")
            return real(self)

        monkeypatch.setattr(Binder, "update_progress", _update_progress)
        caplog.set_level(logging.ERROR, logger="travelers.services.binder_cascade")

        svc.change_status(traveler, 1)

        db.session.expire_all()
        assert db.session.get(Traveler, traveler.id).status_code == 1
        assert set(seen) == {bad_id, good.id}
        assert db.session.get(Binder, good.id).find_work(traveler.id).status == 1
        assert "Binder progress update failed" in caplog.text

    def test_async_mode_runs_on_background_thread(self, app, traveler, monkeypatch):
        started = []

        class _Thread:
            def __init__(self, target, args, name, daemon):
                self.target, self.args, self.name, self.daemon = target, args, name, daemon

            def start(self):
                started.append(self)

        monkeypatch.setattr(binder_cascade.threading, "Thread", _Thread)
        monkeypatch.setitem(app.config, "BINDER_CASCADE_ASYNC", True)

        svc.change_status(traveler, 1)

        assert len(started) == 1
        assert started[0].daemon is True
        assert started[0].target is binder_cascade._run_in_background
        snapshot = started[0].args[1]
        assert snapshot["id"] == traveler.id
        assert snapshot["status"] == 1

    def test_background_runner_swallows_errors(self, app, monkeypatch):
        def _boom(snapshot):
            raise RuntimeError("worker died")

        monkeypatch.setattr(binder_cascade, "run_cascade", _boom)
        worker = threading.Thread(
            target=binder_cascade._run_in_background,
            args=(app, {"id": "t-1"}),
        )
        worker.start()
        worker.join(timeout=5)
        assert not worker.is_alive()
