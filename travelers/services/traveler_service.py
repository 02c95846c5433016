"""
Traveler — Service Layer.

Business logic for:
    - Creation:        new traveler from a form template, clone of an existing traveler
    - Forms:           snapshot a template into a traveler, (re)activate a snapshot
    - Status:          lifecycle transitions through the fixed status table
    - Entries:         typed data entries (progress-counting) and notes
    - Persistence:     save_traveler() commits and hands the changed columns
                       to the binder cascade

Every mutation is one commit of the traveler (plus any new snapshot / entry
rows). Validation happens before anything is added to the session, so a
rejected request leaves no partial state behind.
"""

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from travelers.core.exceptions import NotFoundError, ValidationError
from travelers.models import db
from travelers.models.form import FormTemplate
from travelers.models.traveler import (
    ARCHIVED_STATUS,
    FORM_KIND_DISCREPANCY,
    FORM_KIND_NORMAL,
    FORM_KINDS,
    INITIAL_STATUS,
    Traveler,
    TravelerData,
    TravelerForm,
    TravelerNote,
    _uuid,
)
from travelers.services.binder_cascade import cascade_binder_progress
from travelers.services.progress import recompute_progress, touch_input, validate_data_entry
from travelers.services.status_machine import assert_transition, normalize_status

logger = logging.getLogger(__name__)


def _utcnow():
    return datetime.now(timezone.utc)


# ── Persistence ──────────────────────────────────────────────────────────────


def changed_columns(obj) -> set[str]:
    """Column attributes of ``obj`` whose value differs from the persisted row.

    For a pending object every column that was given a value counts as changed.
    """
    state = inspect(obj)
    columns = {attr.key for attr in state.mapper.column_attrs}
    return {
        attr.key for attr in state.attrs
        if attr.key in columns and attr.history.has_changes()
    }


def save_traveler(traveler: Traveler) -> set[str]:
    """Commit the traveler and run the binder cascade for what changed.

    Returns the set of changed column names. The cascade runs only after a
    successful commit and never raises. The insert of a new traveler skips the
    cascade: no binder holds it yet.
    """
    state = inspect(traveler)
    inserted = state.transient or state.pending
    changed = changed_columns(traveler)
    db.session.add(traveler)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Traveler commit failed id=%s", traveler.id)
        raise
    logger.debug("Traveler saved id=%s changed=%s", traveler.id, sorted(changed),
                 extra={"traveler_id": traveler.id, "changed_fields": sorted(changed)})
    if not inserted:
        cascade_binder_progress(traveler, changed)
    return changed


def _clean_title(value, *, required=True) -> str | None:
    """Stripped title, or None when optional and absent. Non-strings are rejected."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError("title is required", details={"title": "required"})
        return None
    if not isinstance(value, str):
        raise ValidationError("title must be a string", details={"title": repr(value)})
    return value.strip()


def _stamp_update(traveler: Traveler, user: str | None, when=None) -> None:
    traveler.updated_by = user
    traveler.updated_on = when or _utcnow()


# ── Lookups ──────────────────────────────────────────────────────────────────


def get_traveler_or_404(traveler_id: str) -> Traveler:
    traveler = db.session.get(Traveler, traveler_id)
    if traveler is None:
        raise NotFoundError(resource="Traveler", resource_id=traveler_id)
    return traveler


def get_template_or_404(template_id: str) -> FormTemplate:
    template = db.session.get(FormTemplate, template_id)
    if template is None:
        raise NotFoundError(resource="FormTemplate", resource_id=template_id)
    return template


def _in_entry_order(entries, ids):
    position = {entry_id: i for i, entry_id in enumerate(ids or [])}
    return sorted(entries, key=lambda e: position.get(e.id, len(position)))


def list_data(traveler: Traveler) -> list[TravelerData]:
    """Data entries of a traveler, in the order of ``traveler.data``."""
    entries = TravelerData.query.filter_by(traveler_id=traveler.id).all()
    return _in_entry_order(entries, traveler.data)


def list_notes(traveler: Traveler) -> list[TravelerNote]:
    entries = TravelerNote.query.filter_by(traveler_id=traveler.id).all()
    return _in_entry_order(entries, traveler.notes)


# ── Form templates ───────────────────────────────────────────────────────────


def create_template(data: dict, *, user: str | None = None) -> FormTemplate:
    title = _clean_title(data.get("title"))
    mapping = data.get("mapping") or {}
    labels = data.get("labels") or {}
    if not isinstance(mapping, dict) or not isinstance(labels, dict):
        raise ValidationError("mapping and labels must be objects")
    template = FormTemplate(
        id=_uuid(),
        title=title,
        html=data.get("html") or "",
        mapping=dict(mapping),
        labels=dict(labels),
        created_by=user,
    )
    db.session.add(template)
    db.session.commit()
    logger.info("FormTemplate created id=%s inputs=%d", template.id, len(labels))
    return template


# ── Form snapshots ───────────────────────────────────────────────────────────


def _snapshot(traveler: Traveler, *, kind: str, html, mapping, labels,
              reference=None, alias=None) -> TravelerForm:
    seq = len([f for f in traveler.form_snapshots if f.kind == kind])
    form = TravelerForm(
        id=_uuid(),
        kind=kind,
        seq=seq,
        html=html or "",
        mapping=dict(mapping or {}),
        labels=dict(labels or {}),
        activated_on=[],
        reference=reference,
        alias=alias or "",
    )
    traveler.form_snapshots.append(form)
    return form


def _snapshot_template(traveler: Traveler, template: FormTemplate, *, kind: str,
                       alias: str | None = None) -> TravelerForm:
    return _snapshot(
        traveler,
        kind=kind,
        html=template.html,
        mapping=template.mapping,
        labels=template.labels,
        reference=template.id,
        alias=alias or template.title,
    )


def _activate(traveler: Traveler, form: TravelerForm, when) -> None:
    traveler.active_form_id = form.id
    form.mark_activated(when)
    traveler.mapping = dict(form.mapping or {})
    traveler.labels = dict(form.labels or {})
    recompute_progress(traveler)


def _activate_discrepancy(traveler: Traveler, form: TravelerForm, when) -> None:
    traveler.active_discrepancy_form_id = form.id
    form.mark_activated(when)


def add_form(
    traveler: Traveler,
    template_id: str,
    *,
    kind: str = FORM_KIND_NORMAL,
    alias: str | None = None,
    activate: bool = True,
    user: str | None = None,
) -> TravelerForm:
    """Snapshot a template into the traveler's form history, activating it by default."""
    if kind not in FORM_KINDS:
        raise ValidationError(f'form kind "{kind}" is not supported',
                              details={"kind": kind, "allowed": list(FORM_KINDS)})
    template = get_template_or_404(template_id)
    now = _utcnow()
    with db.session.no_autoflush:
        form = _snapshot_template(traveler, template, kind=kind, alias=alias)
        if activate:
            if kind == FORM_KIND_NORMAL:
                _activate(traveler, form, now)
            else:
                _activate_discrepancy(traveler, form, now)
        _stamp_update(traveler, user, now)
    save_traveler(traveler)
    logger.info("Form snapshot added traveler_id=%s form_id=%s kind=%s active=%s",
                traveler.id, form.id, kind, activate)
    return form


def activate_form(traveler: Traveler, form_id: str, *, user: str | None = None) -> TravelerForm:
    """Make an existing snapshot the active form and recount progress.

    Data entries are never touched; inputs that the new form lacks simply
    stop counting until a form containing them is active again.
    """
    now = _utcnow()
    with db.session.no_autoflush:
        form = traveler.find_form(form_id, FORM_KIND_NORMAL)
        if form is None:
            raise NotFoundError(resource="TravelerForm", resource_id=form_id)
        _activate(traveler, form, now)
        _stamp_update(traveler, user, now)
    save_traveler(traveler)
    logger.info("Form activated traveler_id=%s form_id=%s total=%s finished=%s",
                traveler.id, form.id, traveler.total_input, traveler.finished_input)
    return form


def activate_discrepancy_form(traveler: Traveler, form_id: str, *,
                              user: str | None = None) -> TravelerForm:
    now = _utcnow()
    with db.session.no_autoflush:
        form = traveler.find_form(form_id, FORM_KIND_DISCREPANCY)
        if form is None:
            raise NotFoundError(resource="TravelerForm", resource_id=form_id)
        _activate_discrepancy(traveler, form, now)
        _stamp_update(traveler, user, now)
    save_traveler(traveler)
    return form


# ── Creation ─────────────────────────────────────────────────────────────────


def create_traveler(
    form_template_id: str,
    creator: str,
    *,
    title: str | None = None,
    description: str = "",
    devices: list | None = None,
    locations: list | None = None,
    tags: list | None = None,
    deadline: datetime | None = None,
) -> Traveler:
    """Create a traveler in status 0 with the template snapshotted and active."""
    title = _clean_title(title, required=False)
    template = get_template_or_404(form_template_id)
    now = _utcnow()
    traveler = Traveler(
        id=_uuid(),
        title=title or template.title,
        description=description or "",
        devices=list(devices or []),
        locations=list(locations or []),
        tags=list(tags or []),
        deadline=deadline,
        man_power=[],
        owner=creator,
        status=INITIAL_STATUS,
        created_by=creator,
        created_on=now,
        public_access=current_app.config.get("DEFAULT_TRAVELER_PUBLIC_ACCESS", -1),
        shared_with=[],
        shared_group=[],
        reference_form=template.id,
        data=[],
        notes=[],
        touched_inputs=[],
        total_input=0,
        finished_input=0,
        archived=False,
    )
    with db.session.no_autoflush:
        db.session.add(traveler)
        form = _snapshot_template(traveler, template, kind=FORM_KIND_NORMAL)
        _activate(traveler, form, now)
    save_traveler(traveler)
    logger.info("Traveler created id=%s template=%s inputs=%d",
                traveler.id, template.id, traveler.total_input)
    return traveler


def clone_traveler(source: Traveler, cloner: str, *, title: str | None = None) -> Traveler:
    """Copy a traveler's description, sharing and form history into a new traveler.

    The clone always starts at status 0 with no data or notes. A source
    without an active form is rejected before anything is added to the session.
    """
    title = _clean_title(title, required=False)
    if source.active_form is None:
        raise ValidationError(f"traveler {source.id} has no active form to clone",
                              details={"traveler_id": source.id})
    now = _utcnow()
    clone = Traveler(
        id=_uuid(),
        title=title or source.title,
        description=source.description or "",
        devices=list(source.devices or []),
        locations=list(source.locations or []),
        tags=list(source.tags or []),
        deadline=source.deadline,
        man_power=[],
        owner=cloner,
        status=INITIAL_STATUS,
        created_by=cloner,
        created_on=now,
        cloned_by=cloner,
        cloned_from=source.id,
        public_access=source.public_access,
        shared_with=list(source.shared_with or []),
        shared_group=list(source.shared_group or []),
        reference_form=source.reference_form,
        data=[],
        notes=[],
        touched_inputs=[],
        total_input=0,
        finished_input=0,
        archived=False,
    )
    with db.session.no_autoflush:
        db.session.add(clone)
        copies = {}
        for original in source.form_snapshots:
            copies[original.id] = _snapshot(
                clone,
                kind=original.kind,
                html=original.html,
                mapping=original.mapping,
                labels=original.labels,
                reference=original.reference,
                alias=original.alias,
            )
        _activate(clone, copies[source.active_form_id], now)
        active_discrepancy = copies.get(source.active_discrepancy_form_id)
        if active_discrepancy is not None:
            _activate_discrepancy(clone, active_discrepancy, now)
    save_traveler(clone)
    logger.info("Traveler cloned id=%s from=%s by=%s", clone.id, source.id, cloner)
    return clone


# ── Status ───────────────────────────────────────────────────────────────────


def change_status(traveler: Traveler, new_status, *, user: str | None = None) -> Traveler:
    """Move the traveler to ``new_status``.

    Raises:
        UnknownStatusError: ``new_status`` is not a status code.
        InvalidTransition: the table has no edge from the current status.
    """
    current = normalize_status(traveler.status)
    target = assert_transition(current, new_status)
    now = _utcnow()
    traveler.status = target
    if target == ARCHIVED_STATUS:
        traveler.archived = True
        traveler.archived_on = now
    _stamp_update(traveler, user, now)
    save_traveler(traveler)
    logger.info("Traveler status changed id=%s %s -> %s", traveler.id, current, target,
                extra={"traveler_id": traveler.id, "from_status": current, "to_status": target})
    return traveler


# ── Entries ──────────────────────────────────────────────────────────────────


def add_man_power(traveler: Traveler, user_id: str, username: str | None = None) -> bool:
    """Record a participant once. Returns True if the user was new."""
    if not user_id:
        return False
    members = list(traveler.man_power or [])
    if any(m.get("_id") == user_id for m in members):
        return False
    members.append({"_id": user_id, "username": username or user_id})
    traveler.man_power = members
    return True


def record_data_entry(
    traveler: Traveler,
    name: str,
    value,
    input_type: str,
    *,
    user: str | None = None,
    username: str | None = None,
    file: dict | None = None,
) -> TravelerData:
    """Validate and store one answer, then count its input as touched.

    Raises:
        ValidationError: the entry fails its type check; nothing is written.
    """
    validate_data_entry(name, value, input_type, file)
    now = _utcnow()
    with db.session.no_autoflush:
        entry = TravelerData(
            id=_uuid(),
            traveler_id=traveler.id,
            name=name,
            value=value,
            input_type=input_type,
            file=dict(file) if file else None,
            input_by=user,
            input_on=now,
        )
        db.session.add(entry)
        traveler.data = list(traveler.data or []) + [entry.id]
        touch_input(traveler, name)
        add_man_power(traveler, user, username)
        _stamp_update(traveler, user, now)
    save_traveler(traveler)
    logger.info("Data recorded traveler_id=%s name=%s type=%s finished=%s/%s",
                traveler.id, name, input_type, traveler.finished_input, traveler.total_input)
    return entry


def record_note(
    traveler: Traveler,
    name: str,
    value,
    *,
    user: str | None = None,
    username: str | None = None,
) -> TravelerNote:
    """Store a note. Notes do not affect progress."""
    if not name or not isinstance(name, str):
        raise ValidationError("input name is required", details={"name": name})
    now = _utcnow()
    with db.session.no_autoflush:
        note = TravelerNote(
            id=_uuid(),
            traveler_id=traveler.id,
            name=name,
            value="" if value is None else str(value),
            input_by=user,
            input_on=now,
        )
        db.session.add(note)
        traveler.notes = list(traveler.notes or []) + [note.id]
        add_man_power(traveler, user, username)
        _stamp_update(traveler, user, now)
    save_traveler(traveler)
    logger.info("Note recorded traveler_id=%s name=%s", traveler.id, name)
    return note
