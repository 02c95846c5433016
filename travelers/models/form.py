"""
Canonical form templates.

A FormTemplate is the editable source a traveler's form snapshot is copied
from. Editing a template never reaches back into travelers: each traveler
keeps its own TravelerForm snapshot (see ``travelers.models.traveler``).
"""

import uuid
from datetime import datetime, timezone

from travelers.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class FormTemplate(db.Model):
    """Editable form definition: html blob, key → name mapping, name → label."""

    __tablename__ = "form_templates"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(200), nullable=False)
    html = db.Column(db.Text, default="")
    mapping = db.Column(db.JSON, default=dict, comment="user key -> input name")
    labels = db.Column(db.JSON, default=dict, comment="input name -> label")

    created_by = db.Column(db.String(100), nullable=True)
    created_on = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_by = db.Column(db.String(100), nullable=True)
    updated_on = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "html": self.html,
            "mapping": self.mapping or {},
            "labels": self.labels or {},
            "created_by": self.created_by,
            "created_on": self.created_on.isoformat() if self.created_on else None,
            "updated_by": self.updated_by,
            "updated_on": self.updated_on.isoformat() if self.updated_on else None,
        }

    def __repr__(self):
        return f"<FormTemplate {self.id}: {self.title}>"
