"""
Binder models — groups of travelers with a rolled-up progress.

Models:
    - Binder:      a named collection of works with weighted progress totals
    - BinderWork:  one traveler inside a binder, with its weight and progress share

Progress of a work:
    status 2 (completed)      → finished = 1, in_progress = 0
    total_input == 0          → finished = 0, in_progress = 0
    otherwise                 → finished = 0, in_progress = finished_input / total_input
Binder totals are the value-weighted sums over its works.
"""

import uuid
from datetime import datetime, timezone

from travelers.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


DEFAULT_WORK_VALUE = 10


class Binder(db.Model):
    __tablename__ = "binders"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    archived = db.Column(db.Boolean, nullable=False, default=False)

    total_value = db.Column(db.Float, nullable=False, default=0)
    finished_value = db.Column(db.Float, nullable=False, default=0)
    in_progress_value = db.Column(db.Float, nullable=False, default=0)

    created_by = db.Column(db.String(100), nullable=True)
    created_on = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_on = db.Column(db.DateTime(timezone=True), nullable=True)

    works = db.relationship(
        "BinderWork", backref="binder", lazy="select",
        cascade="all, delete-orphan", order_by="BinderWork.added_on",
    )

    def find_work(self, traveler_id):
        for work in self.works:
            if work.traveler_id == traveler_id:
                return work
        return None

    def update_work_progress(self, traveler_snapshot: dict) -> None:
        """Refresh the work for one traveler from its progress snapshot.

        ``traveler_snapshot`` carries ``id``, ``status``, ``total_input`` and
        ``finished_input``. Travelers that are not works of this binder are ignored.
        """
        work = self.find_work(traveler_snapshot["id"])
        if work is None:
            return
        status = traveler_snapshot.get("status")
        total = traveler_snapshot.get("total_input") or 0
        finished = traveler_snapshot.get("finished_input") or 0
        work.status = status
        if status == 2:
            work.finished = 1
            work.in_progress = 0
        elif total == 0:
            work.finished = 0
            work.in_progress = 0
        else:
            work.finished = 0
            work.in_progress = min(finished / total, 1)

    def update_progress(self) -> None:
        """Recompute the binder totals from its works."""
        total_value = 0
        finished_value = 0
        in_progress_value = 0
        for work in self.works:
            value = work.value or 0
            total_value += value
            finished_value += value * (work.finished or 0)
            in_progress_value += value * (work.in_progress or 0)
        self.total_value = total_value
        self.finished_value = finished_value
        self.in_progress_value = in_progress_value
        self.updated_on = _utcnow()

    def to_dict(self, include_works=False):
        result = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "archived": bool(self.archived),
            "total_value": self.total_value,
            "finished_value": self.finished_value,
            "in_progress_value": self.in_progress_value,
            "created_by": self.created_by,
            "created_on": self.created_on.isoformat() if self.created_on else None,
            "updated_on": self.updated_on.isoformat() if self.updated_on else None,
            "work_count": len(self.works),
        }
        if include_works:
            result["works"] = [w.to_dict() for w in self.works]
        return result

    def __repr__(self):
        return f"<Binder {self.id}: {self.title}>"


class BinderWork(db.Model):
    __tablename__ = "binder_works"

    id = db.Column(db.Integer, primary_key=True)
    binder_id = db.Column(
        db.String(36), db.ForeignKey("binders.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    traveler_id = db.Column(
        db.String(36), db.ForeignKey("travelers.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    value = db.Column(db.Float, nullable=False, default=DEFAULT_WORK_VALUE,
                      comment="weight of this work in the binder totals")
    status = db.Column(db.Float, nullable=True)
    finished = db.Column(db.Float, nullable=False, default=0)
    in_progress = db.Column(db.Float, nullable=False, default=0)
    added_by = db.Column(db.String(100), nullable=True)
    added_on = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("binder_id", "traveler_id", name="uq_binder_work_traveler"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "binder_id": self.binder_id,
            "traveler_id": self.traveler_id,
            "value": self.value,
            "status": self.status,
            "finished": self.finished,
            "in_progress": self.in_progress,
            "added_by": self.added_by,
            "added_on": self.added_on.isoformat() if self.added_on else None,
        }
