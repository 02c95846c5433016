"""
Traveler Lifecycle Service
Traveler domain models.

Models:
    - Traveler:      work-order document; holds status, active form, entry ids and progress
    - TravelerForm:  point-in-time snapshot of a form (normal or discrepancy) owned by a traveler
    - TravelerData:  one typed answer to one form input
    - TravelerNote:  free-text note on one form input

Architecture:
    FormTemplate ──copy──▶ TravelerForm ◀──N:1── Traveler
    Traveler ──1:N──▶ TravelerData   (ids kept in Traveler.data, in input order)
    Traveler ──1:N──▶ TravelerNote   (ids kept in Traveler.notes)
    Binder ──1:N──▶ BinderWork ──N:1──▶ Traveler   (see travelers.models.binder)

Lifecycle states:
    0 initialized → 1 active → 1.5 submitted for completion → 2 completed → 4 archived
    1 active ⇄ 3 frozen,  1.5 → 1 (completion request rejected),  0 | 1 → 4
"""

import uuid
from datetime import datetime, timezone
from types import MappingProxyType

from sqlalchemy.orm import validates

from travelers.core.exceptions import ValidationError
from travelers.models import db


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ── Constants ────────────────────────────────────────────────────────────────

STATUS_MAP = MappingProxyType({
    0: "initialized",
    1: "active",
    1.5: "submitted for completion",
    2: "completed",
    3: "frozen",
    4: "archived",
})

# Directed, no self-loops; 4 is terminal and nothing leads back to 0
STATUS_TRANSITIONS = MappingProxyType({
    0:   frozenset({1, 4}),
    1:   frozenset({1.5, 3, 4}),
    1.5: frozenset({1, 2}),
    2:   frozenset({4}),
    3:   frozenset({1}),
    4:   frozenset(),
})

INITIAL_STATUS = 0
ARCHIVED_STATUS = 4

# inputType := file | text | textarea (multi-line text) | number
INPUT_TYPES = ("file", "text", "textarea", "number")

FORM_KIND_NORMAL = "normal"
FORM_KIND_DISCREPANCY = "discrepancy"
FORM_KINDS = (FORM_KIND_NORMAL, FORM_KIND_DISCREPANCY)


# ═════════════════════════════════════════════════════════════════════════════
# 1. Traveler
# ═════════════════════════════════════════════════════════════════════════════


class Traveler(db.Model):
    """
    A work order moving through the fixed status lifecycle.

    ``mapping`` / ``labels`` are live copies of the active form snapshot's
    structure. ``total_input`` is decided by the active form's inputs;
    ``touched_inputs`` lists active-form inputs that have been answered at
    least once and ``finished_input`` is its length.
    """

    __tablename__ = "travelers"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    devices = db.Column(db.JSON, default=list)
    locations = db.Column(db.JSON, default=list)
    tags = db.Column(db.JSON, default=list)
    man_power = db.Column(db.JSON, default=list, comment="[{_id, username}]")
    owner = db.Column(db.String(100), nullable=True)
    deadline = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.Column(
        db.Float, nullable=False, default=INITIAL_STATUS,
        comment="0 initialized | 1 active | 1.5 submitted | 2 completed | 3 frozen | 4 archived",
    )

    # Audit
    created_by = db.Column(db.String(100), nullable=True)
    created_on = db.Column(db.DateTime(timezone=True), default=_utcnow)
    cloned_by = db.Column(db.String(100), nullable=True)
    cloned_from = db.Column(
        db.String(36), db.ForeignKey("travelers.id", ondelete="SET NULL"),
        nullable=True,
    )
    updated_by = db.Column(db.String(100), nullable=True)
    updated_on = db.Column(db.DateTime(timezone=True), nullable=True)
    archived_on = db.Column(db.DateTime(timezone=True), nullable=True)
    transferred_on = db.Column(db.DateTime(timezone=True), nullable=True)

    # Sharing (stored only; evaluated by the authorization layer)
    public_access = db.Column(db.Integer, nullable=False, default=-1,
                              comment="-1 no access | 0 read | 1 write")
    shared_with = db.Column(db.JSON, default=list)
    shared_group = db.Column(db.JSON, default=list)

    # Forms
    reference_form = db.Column(db.String(36), nullable=True,
                               comment="FormTemplate the traveler was created from")
    mapping = db.Column(db.JSON, default=dict, comment="user key -> input name")
    labels = db.Column(db.JSON, default=dict, comment="input name -> label")
    active_form_id = db.Column(db.String(36), nullable=True)
    active_discrepancy_form_id = db.Column(db.String(36), nullable=True)

    # Entries (ids, in input order)
    data = db.Column(db.JSON, default=list)
    notes = db.Column(db.JSON, default=list)

    # Progress
    total_input = db.Column(db.Integer, nullable=False, default=0)
    finished_input = db.Column(db.Integer, nullable=False, default=0)
    touched_inputs = db.Column(db.JSON, default=list)

    archived = db.Column(db.Boolean, nullable=False, default=False)

    __table_args__ = (
        db.CheckConstraint(
            "status IN (0, 1, 1.5, 2, 3, 4)", name="ck_traveler_status",
        ),
        db.CheckConstraint(
            "public_access IN (-1, 0, 1)", name="ck_traveler_public_access",
        ),
        db.CheckConstraint("total_input >= 0", name="ck_traveler_total_input"),
        db.CheckConstraint("finished_input >= 0", name="ck_traveler_finished_input"),
    )

    form_snapshots = db.relationship(
        "TravelerForm", backref="traveler", lazy="select",
        cascade="all, delete-orphan",
        order_by="TravelerForm.seq",
    )

    @property
    def forms(self):
        return [f for f in self.form_snapshots if f.kind == FORM_KIND_NORMAL]

    @property
    def discrepancy_forms(self):
        return [f for f in self.form_snapshots if f.kind == FORM_KIND_DISCREPANCY]

    @property
    def active_form(self):
        return self.find_form(self.active_form_id, FORM_KIND_NORMAL)

    @property
    def active_discrepancy_form(self):
        return self.find_form(self.active_discrepancy_form_id, FORM_KIND_DISCREPANCY)

    def find_form(self, form_id, kind=FORM_KIND_NORMAL):
        """Return the snapshot with ``form_id`` from this traveler's history, or None."""
        if not form_id:
            return None
        for form in self.form_snapshots:
            if form.id == form_id and form.kind == kind:
                return form
        return None

    @property
    def status_code(self):
        """Status as its canonical code (1 rather than the stored 1.0)."""
        value = self.status if self.status is not None else INITIAL_STATUS
        return int(value) if float(value).is_integer() else float(value)

    def to_dict(self, include_forms=False):
        status = self.status_code
        result = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "devices": self.devices or [],
            "locations": self.locations or [],
            "tags": self.tags or [],
            "man_power": self.man_power or [],
            "owner": self.owner,
            "deadline": _iso(self.deadline),
            "status": status,
            "status_label": STATUS_MAP.get(status),
            "created_by": self.created_by,
            "created_on": _iso(self.created_on),
            "cloned_by": self.cloned_by,
            "cloned_from": self.cloned_from,
            "updated_by": self.updated_by,
            "updated_on": _iso(self.updated_on),
            "archived_on": _iso(self.archived_on),
            "transferred_on": _iso(self.transferred_on),
            "public_access": self.public_access,
            "shared_with": self.shared_with or [],
            "shared_group": self.shared_group or [],
            "reference_form": self.reference_form,
            "mapping": self.mapping or {},
            "labels": self.labels or {},
            "active_form": self.active_form_id,
            "active_discrepancy_form": self.active_discrepancy_form_id,
            "data": self.data or [],
            "notes": self.notes or [],
            "total_input": self.total_input,
            "finished_input": self.finished_input,
            "touched_inputs": self.touched_inputs or [],
            "archived": bool(self.archived),
        }
        if include_forms:
            result["forms"] = [f.to_dict() for f in self.forms]
            result["discrepancy_forms"] = [f.to_dict() for f in self.discrepancy_forms]
        return result

    def __repr__(self):
        return f"<Traveler {self.id}: {self.title} [{self.status_code}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. TravelerForm
# ═════════════════════════════════════════════════════════════════════════════


class TravelerForm(db.Model):
    """
    A form snapshot. The html, mapping and labels are decided when the
    snapshot is copied from its template and are never changed afterwards;
    ``activated_on`` records each time the snapshot became the active form.
    """

    __tablename__ = "traveler_forms"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    traveler_id = db.Column(
        db.String(36), db.ForeignKey("travelers.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    kind = db.Column(db.String(20), nullable=False, default=FORM_KIND_NORMAL)
    seq = db.Column(db.Integer, nullable=False, default=0,
                    comment="position within the traveler's history for this kind")
    html = db.Column(db.Text, default="")
    mapping = db.Column(db.JSON, nullable=True, comment="user key -> input name")
    labels = db.Column(db.JSON, nullable=True, comment="input name -> label")
    activated_on = db.Column(db.JSON, default=list, comment="ISO timestamps, append only")
    reference = db.Column(db.String(36), nullable=True, comment="source FormTemplate id")
    alias = db.Column(db.String(200), default="")
    created_on = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "kind IN ('normal', 'discrepancy')", name="ck_traveler_form_kind",
        ),
    )

    @validates("mapping", "labels")
    def _freeze_structure(self, key, value):
        if getattr(self, key) is not None:
            raise ValidationError(
                f"form snapshot {key} cannot be changed once created",
                details={"form": self.id, "field": key},
            )
        return dict(value or {})

    def mark_activated(self, when=None):
        when = when or _utcnow()
        self.activated_on = list(self.activated_on or []) + [when.isoformat()]

    @property
    def input_names(self):
        return list((self.labels or {}).keys())

    def to_dict(self):
        return {
            "id": self.id,
            "traveler_id": self.traveler_id,
            "kind": self.kind,
            "html": self.html,
            "mapping": self.mapping or {},
            "labels": self.labels or {},
            "activated_on": self.activated_on or [],
            "reference": self.reference,
            "alias": self.alias,
        }

    def __repr__(self):
        return f"<TravelerForm {self.id}: {self.alias} [{self.kind}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. TravelerData / TravelerNote
# ═════════════════════════════════════════════════════════════════════════════


class TravelerData(db.Model):
    """One answer to one input. ``file`` is set only for file inputs."""

    __tablename__ = "traveler_data"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    traveler_id = db.Column(
        db.String(36), db.ForeignKey("travelers.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    value = db.Column(db.JSON, nullable=True)
    file = db.Column(db.JSON, nullable=True, comment="{path, encoding, mimetype}")
    input_type = db.Column(db.String(20), nullable=False)
    input_by = db.Column(db.String(100), nullable=True)
    input_on = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "traveler_id": self.traveler_id,
            "name": self.name,
            "value": self.value,
            "file": self.file,
            "input_type": self.input_type,
            "input_by": self.input_by,
            "input_on": _iso(self.input_on),
        }

    def __repr__(self):
        return f"<TravelerData {self.id}: {self.name}={self.value!r} [{self.input_type}]>"


class TravelerNote(db.Model):
    __tablename__ = "traveler_notes"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    traveler_id = db.Column(
        db.String(36), db.ForeignKey("travelers.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    value = db.Column(db.Text, default="")
    input_by = db.Column(db.String(100), nullable=True)
    input_on = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "traveler_id": self.traveler_id,
            "name": self.name,
            "value": self.value,
            "input_by": self.input_by,
            "input_on": _iso(self.input_on),
        }
