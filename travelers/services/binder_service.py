"""
Binder — Service Layer.

CRUD for binders and their works. Adding a traveler to a binder computes
that work's progress right away; later changes arrive through the binder
cascade (``travelers.services.binder_cascade``).
"""

import logging

from travelers.core.exceptions import NotFoundError, ValidationError
from travelers.models import db
from travelers.models.binder import DEFAULT_WORK_VALUE, Binder, BinderWork
from travelers.models.traveler import _uuid
from travelers.services.binder_cascade import progress_snapshot

logger = logging.getLogger(__name__)


def get_binder_or_404(binder_id: str) -> Binder:
    binder = db.session.get(Binder, binder_id)
    if binder is None:
        raise NotFoundError(resource="Binder", resource_id=binder_id)
    return binder


def create_binder(data: dict, *, user: str | None = None) -> Binder:
    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title is required and must be a string",
                              details={"title": "required"})
    title = title.strip()
    archived = data.get("archived", False)
    if not isinstance(archived, bool):
        raise ValidationError("archived must be true or false", details={"archived": archived})
    binder = Binder(
        id=_uuid(),
        title=title,
        description=data.get("description") or "",
        archived=archived,
        created_by=user,
    )
    db.session.add(binder)
    db.session.commit()
    logger.info("Binder created id=%s", binder.id)
    return binder


def add_work(binder: Binder, traveler, *, value=None, user: str | None = None) -> BinderWork:
    """Add a traveler to a binder and refresh the binder totals."""
    if binder.find_work(traveler.id) is not None:
        raise ValidationError(
            f"traveler {traveler.id} is already in binder {binder.id}",
            details={"traveler_id": traveler.id},
        )
    if value is None:
        value = DEFAULT_WORK_VALUE
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValidationError("value must be a non-negative number", details={"value": value})
    work = BinderWork(traveler_id=traveler.id, value=value, added_by=user)
    binder.works.append(work)
    binder.update_work_progress(progress_snapshot(traveler))
    binder.update_progress()
    db.session.commit()
    logger.info("Work added binder_id=%s traveler_id=%s value=%s", binder.id, traveler.id, value)
    return work


def set_archived(binder: Binder, archived: bool) -> Binder:
    binder.archived = bool(archived)
    db.session.commit()
    logger.info("Binder archived=%s id=%s", binder.archived, binder.id)
    return binder
