"""
Form template Blueprint.

Endpoints:
  FormTemplate:  POST /forms, GET /forms/<id>
"""

from flask import Blueprint, jsonify, request

from travelers.blueprints import current_user
from travelers.services import traveler_service as svc

form_bp = Blueprint("form", __name__, url_prefix="/api/v1")


@form_bp.route("/forms", methods=["POST"])
def create_form():
    """Body: {title, html?, mapping?, labels?}."""
    data = request.get_json(silent=True) or {}
    template = svc.create_template(data, user=current_user())
    return jsonify(template.to_dict()), 201


@form_bp.route("/forms/<form_id>", methods=["GET"])
def get_form(form_id):
    return jsonify(svc.get_template_or_404(form_id).to_dict())
