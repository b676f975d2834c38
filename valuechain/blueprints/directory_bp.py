"""
Directory blueprint — read-only people/unit lists for the assignment pickers.

Endpoints:
    GET /api/v1/directory/people?tenant_id=
    GET /api/v1/directory/units?tenant_id=
"""

import logging

from flask import Blueprint, g, jsonify

from valuechain.services import directory_service
from valuechain.utils.errors import E, api_error

logger = logging.getLogger(__name__)

directory_bp = Blueprint("directory", __name__, url_prefix="/api/v1/directory")


@directory_bp.route("/people", methods=["GET"])
def list_people():
    if g.tenant_id is None:
        return api_error(E.VALIDATION_REQUIRED, "tenant_id is required")
    people = directory_service.list_people(g.tenant_id)
    return jsonify({"items": people, "total": len(people)}), 200


@directory_bp.route("/units", methods=["GET"])
def list_units():
    if g.tenant_id is None:
        return api_error(E.VALIDATION_REQUIRED, "tenant_id is required")
    units = directory_service.list_units(g.tenant_id)
    return jsonify({"items": units, "total": len(units)}), 200
