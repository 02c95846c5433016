"""
Traveler Blueprint
Routes for the traveler lifecycle.

Endpoints:
  Vocabulary:   GET  /travelers/statuses
  Traveler:     POST /travelers, GET /travelers/<id>
                POST /travelers/<id>/clone
                PUT  /travelers/<id>/status
  Forms:        POST /travelers/<id>/forms
                PUT  /travelers/<id>/forms/<form_id>/active
                PUT  /travelers/<id>/discrepancy-forms/<form_id>/active
  Data:         GET/POST /travelers/<id>/data
  Notes:        GET/POST /travelers/<id>/notes
"""

import logging
from datetime import datetime

from flask import Blueprint, jsonify, request

from travelers.blueprints import current_user, current_username, paginate_query
from travelers.models.traveler import (
    FORM_KIND_NORMAL,
    TravelerData,
    TravelerNote,
)
from travelers.services import status_machine
from travelers.services import traveler_service as svc
from travelers.utils.errors import E, api_error

logger = logging.getLogger(__name__)

traveler_bp = Blueprint("traveler", __name__, url_prefix="/api/v1")


def _parse_dt(val):
    """Convert ISO-format string to datetime; pass through None/datetime."""
    if val is None or isinstance(val, datetime):
        return val
    if isinstance(val, str):
        val = val.strip()
        if not val:
            return None
        for fmt in ("%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
            try:
                return datetime.strptime(val, fmt)
            except ValueError:
                continue
        return datetime.fromisoformat(val)
    return val


def _string_list(data, key):
    values = data.get(key) or []
    if not isinstance(values, list):
        return None
    return [str(v) for v in values]


# ═════════════════════════════════════════════════════════════════════════════
# Status vocabulary
# ═════════════════════════════════════════════════════════════════════════════


@traveler_bp.route("/travelers/statuses", methods=["GET"])
def list_statuses():
    """Status codes with their labels and allowed successors."""
    return jsonify(status_machine.vocabulary())


# ═════════════════════════════════════════════════════════════════════════════
# Traveler
# ═════════════════════════════════════════════════════════════════════════════


@traveler_bp.route("/travelers", methods=["POST"])
def create_traveler():
    """Create a traveler from a form template.

    Body: {form_id, title?, description?, devices?, locations?, tags?, deadline?}
    """
    data = request.get_json(silent=True) or {}
    form_id = data.get("form_id")
    if not form_id:
        return api_error(E.VALIDATION_REQUIRED, "form_id is required")
    lists = {key: _string_list(data, key) for key in ("devices", "locations", "tags")}
    bad = [key for key, value in lists.items() if value is None]
    if bad:
        return api_error(E.VALIDATION_INVALID, f"{', '.join(bad)} must be a list")
    try:
        deadline = _parse_dt(data.get("deadline"))
    except ValueError:
        return api_error(E.VALIDATION_INVALID, "deadline is not a valid date")

    traveler = svc.create_traveler(
        form_id,
        current_user(),
        title=data.get("title"),
        description=data.get("description") or "",
        deadline=deadline,
        **lists,
    )
    return jsonify(traveler.to_dict(include_forms=True)), 201


@traveler_bp.route("/travelers/<traveler_id>", methods=["GET"])
def get_traveler(traveler_id):
    traveler = svc.get_traveler_or_404(traveler_id)
    return jsonify(traveler.to_dict(include_forms=True))


@traveler_bp.route("/travelers/<traveler_id>/clone", methods=["POST"])
def clone_traveler(traveler_id):
    """Clone a traveler. The clone starts at status 0 without data or notes."""
    source = svc.get_traveler_or_404(traveler_id)
    data = request.get_json(silent=True) or {}
    clone = svc.clone_traveler(source, current_user(), title=data.get("title"))
    return jsonify(clone.to_dict(include_forms=True)), 201


@traveler_bp.route("/travelers/<traveler_id>/status", methods=["PUT"])
def change_status(traveler_id):
    """Body: {status}. 409 when the transition is not allowed."""
    traveler = svc.get_traveler_or_404(traveler_id)
    data = request.get_json(silent=True) or {}
    if "status" not in data:
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    svc.change_status(traveler, data["status"], user=current_user())
    return jsonify({"traveler": traveler.to_dict()})


# ═════════════════════════════════════════════════════════════════════════════
# Forms
# ═════════════════════════════════════════════════════════════════════════════


@traveler_bp.route("/travelers/<traveler_id>/forms", methods=["POST"])
def add_form(traveler_id):
    """Snapshot a template into the traveler.

    Body: {form_id, kind? ("normal" | "discrepancy"), alias?, activate? (default true)}
    """
    traveler = svc.get_traveler_or_404(traveler_id)
    data = request.get_json(silent=True) or {}
    if not data.get("form_id"):
        return api_error(E.VALIDATION_REQUIRED, "form_id is required")
    activate = data.get("activate", True)
    if not isinstance(activate, bool):
        return api_error(E.VALIDATION_INVALID, "activate must be true or false",
                         details={"activate": activate})
    form = svc.add_form(
        traveler,
        data["form_id"],
        kind=data.get("kind") or FORM_KIND_NORMAL,
        alias=data.get("alias"),
        activate=activate,
        user=current_user(),
    )
    return jsonify({"form": form.to_dict(), "traveler": traveler.to_dict()}), 201


@traveler_bp.route("/travelers/<traveler_id>/forms/<form_id>/active", methods=["PUT"])
def activate_form(traveler_id, form_id):
    traveler = svc.get_traveler_or_404(traveler_id)
    svc.activate_form(traveler, form_id, user=current_user())
    return jsonify({"traveler": traveler.to_dict()})


@traveler_bp.route("/travelers/<traveler_id>/discrepancy-forms/<form_id>/active", methods=["PUT"])
def activate_discrepancy_form(traveler_id, form_id):
    traveler = svc.get_traveler_or_404(traveler_id)
    svc.activate_discrepancy_form(traveler, form_id, user=current_user())
    return jsonify({"traveler": traveler.to_dict()})


# ═════════════════════════════════════════════════════════════════════════════
# Data and notes
# ═════════════════════════════════════════════════════════════════════════════


@traveler_bp.route("/travelers/<traveler_id>/data", methods=["GET"])
def list_data(traveler_id):
    traveler = svc.get_traveler_or_404(traveler_id)
    q = TravelerData.query.filter_by(traveler_id=traveler.id).order_by(TravelerData.input_on)
    items, total = paginate_query(q)
    return jsonify({"items": [d.to_dict() for d in items], "total": total})


@traveler_bp.route("/travelers/<traveler_id>/data", methods=["POST"])
def record_data(traveler_id):
    """Body: {name, value, type, file?}. 400 when the value fails its type check."""
    traveler = svc.get_traveler_or_404(traveler_id)
    data = request.get_json(silent=True) or {}
    entry = svc.record_data_entry(
        traveler,
        data.get("name"),
        data.get("value"),
        data.get("type"),
        user=current_user(),
        username=current_username(),
        file=data.get("file"),
    )
    return jsonify({"data": entry.to_dict(), "traveler": traveler.to_dict()}), 201


@traveler_bp.route("/travelers/<traveler_id>/notes", methods=["GET"])
def list_notes(traveler_id):
    traveler = svc.get_traveler_or_404(traveler_id)
    q = TravelerNote.query.filter_by(traveler_id=traveler.id).order_by(TravelerNote.input_on)
    items, total = paginate_query(q)
    return jsonify({"items": [n.to_dict() for n in items], "total": total})


@traveler_bp.route("/travelers/<traveler_id>/notes", methods=["POST"])
def record_note(traveler_id):
    """Body: {name, value}."""
    traveler = svc.get_traveler_or_404(traveler_id)
    data = request.get_json(silent=True) or {}
    note = svc.record_note(
        traveler,
        data.get("name"),
        data.get("value"),
        user=current_user(),
        username=current_username(),
    )
    return jsonify({"note": note.to_dict()}), 201
