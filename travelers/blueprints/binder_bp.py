"""
Binder Blueprint.

Endpoints:
  Binder:      POST /binders, GET /binders/<id>
               PUT  /binders/<id>/archived
  BinderWork:  POST /binders/<id>/works
"""

from flask import Blueprint, jsonify, request

from travelers.blueprints import current_user
from travelers.services import binder_service
from travelers.services import traveler_service
from travelers.utils.errors import E, api_error

binder_bp = Blueprint("binder", __name__, url_prefix="/api/v1")


@binder_bp.route("/binders", methods=["POST"])
def create_binder():
    data = request.get_json(silent=True) or {}
    binder = binder_service.create_binder(data, user=current_user())
    return jsonify(binder.to_dict()), 201


@binder_bp.route("/binders/<binder_id>", methods=["GET"])
def get_binder(binder_id):
    binder = binder_service.get_binder_or_404(binder_id)
    return jsonify(binder.to_dict(include_works=True))


@binder_bp.route("/binders/<binder_id>/archived", methods=["PUT"])
def set_archived(binder_id):
    binder = binder_service.get_binder_or_404(binder_id)
    data = request.get_json(silent=True) or {}
    if "archived" not in data:
        return api_error(E.VALIDATION_REQUIRED, "archived is required")
    if not isinstance(data["archived"], bool):
        return api_error(E.VALIDATION_INVALID, "archived must be true or false",
                         details={"archived": data["archived"]})
    binder_service.set_archived(binder, data["archived"])
    return jsonify(binder.to_dict())


@binder_bp.route("/binders/<binder_id>/works", methods=["POST"])
def add_work(binder_id):
    """Body: {traveler_id, value?}."""
    binder = binder_service.get_binder_or_404(binder_id)
    data = request.get_json(silent=True) or {}
    if not data.get("traveler_id"):
        return api_error(E.VALIDATION_REQUIRED, "traveler_id is required")
    traveler = traveler_service.get_traveler_or_404(data["traveler_id"])
    work = binder_service.add_work(binder, traveler, value=data.get("value"), user=current_user())
    return jsonify({"work": work.to_dict(), "binder": binder.to_dict()}), 201
