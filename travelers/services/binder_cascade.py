"""
Binder progress cascade.

After a traveler commit, binders holding that traveler refresh their rollups
when the commit changed the traveler's status or progress counters. The
cascade is best effort: it runs after the traveler is already committed, each
binder is updated and committed on its own, and failures are logged and
dropped. Nothing here raises back into the write that triggered it.

With ``BINDER_CASCADE_ASYNC`` enabled the cascade runs on a daemon thread in
a fresh app context, so the caller never waits for it.
"""

import logging
import threading

from flask import current_app

from travelers.core.exceptions import CascadeLookupError
from travelers.models import db
from travelers.models.binder import Binder, BinderWork

logger = logging.getLogger(__name__)

CASCADE_FIELDS = frozenset({"total_input", "finished_input", "status"})


def needs_cascade(changed_fields) -> bool:
    return bool(CASCADE_FIELDS.intersection(changed_fields or ()))


def progress_snapshot(traveler) -> dict:
    """Plain copy of the traveler fields binders consume."""
    return {
        "id": traveler.id,
        "status": traveler.status_code,
        "total_input": traveler.total_input or 0,
        "finished_input": traveler.finished_input or 0,
        "archived": bool(traveler.archived),
    }


def find_binders_containing(traveler_id: str, exclude_archived: bool = True) -> list[Binder]:
    """Binders with a work for ``traveler_id``."""
    q = (
        Binder.query
        .join(BinderWork, BinderWork.binder_id == Binder.id)
        .filter(BinderWork.traveler_id == traveler_id)
    )
    if exclude_archived:
        q = q.filter(Binder.archived.is_(False))
    return q.all()


def run_cascade(snapshot: dict) -> int:
    """Update every non-archived binder containing the traveler.

    Returns the number of binders updated. Lookup failures end this attempt;
    a failing binder is rolled back without affecting the others.
    """
    traveler_id = snapshot["id"]
    try:
        binders = find_binders_containing(traveler_id)
    except Exception as exc:
        db.session.rollback()
        logger.error("%s", CascadeLookupError(traveler_id, exc), exc_info=True,
                     extra={"traveler_id": traveler_id})
        return 0

    if not binders:
        logger.debug("No binders contain traveler_id=%s", traveler_id)
        return 0

    binder_ids = [b.id for b in binders]
    updated = 0
    for binder_id in binder_ids:
        try:
            binder = db.session.get(Binder, binder_id)
            if binder is None:
                continue
            binder.update_work_progress(snapshot)
            binder.update_progress()
            db.session.commit()
            updated += 1
        except Exception:
            db.session.rollback()
            logger.exception(
                "Binder progress update failed binder_id=%s traveler_id=%s",
                binder_id, traveler_id,
                extra={"binder_id": binder_id, "traveler_id": traveler_id},
            )
    logger.info("Binder cascade traveler_id=%s updated=%d/%d",
                traveler_id, updated, len(binder_ids))
    return updated


def _run_in_background(app, snapshot: dict) -> None:
    with app.app_context():
        try:
            run_cascade(snapshot)
        except Exception:
            logger.exception("Binder cascade crashed traveler_id=%s", snapshot.get("id"))


def cascade_binder_progress(traveler, changed_fields) -> bool:
    """Post-commit step of a traveler write.

    ``changed_fields`` is the set of traveler columns the commit changed.
    Returns True when a cascade was dispatched.
    """
    if not needs_cascade(changed_fields):
        return False
    try:
        snapshot = progress_snapshot(traveler)
        app = current_app._get_current_object()
        if app.config.get("BINDER_CASCADE_ASYNC", False):
            t = threading.Thread(
                target=_run_in_background,
                args=(app, snapshot),
                name=f"binder-cascade-{snapshot['id']}",
                daemon=True,
            )
            t.start()
        else:
            run_cascade(snapshot)
    except Exception:
        logger.exception("Binder cascade dispatch failed traveler_id=%s",
                         getattr(traveler, "id", None))
    return True
