"""
Value Chain Blueprint — chains, segments, restructuring, layout, approval.

Endpoints (prefix /api/v1):
    GET    /value-chains                          — list (?include_pending, ?status, ?q)
    GET    /value-chains/review-queue             — pending chains (approvers)
    POST   /value-chains                          — create
    GET    /value-chains/<id>                     — detail
    PUT    /value-chains/<id>                     — update title/description
    DELETE /value-chains/<id>                     — delete
    PUT    /value-chains/<id>/segments            — save full ordered segment list
    POST   /value-chains/<id>/segments/reorder    — apply a permutation
    POST   /value-chains/segments/move-actor      — move one actor between segments
    POST   /value-chains/merge                    — merge two chains
    POST   /value-chains/<id>/split               — split a chain at an index
    GET    /value-chains/<id>/layout              — canvas layout
    PUT    /value-chains/<id>/layout              — save canvas layout
    POST   /value-chains/<id>/approve             — approve
    POST   /value-chains/<id>/reject              — reject

Layer contract:
    - No ORM calls and no commits here; services own both.
    - tenant_id is resolved by the tenant context middleware (g.tenant_id).
    - 400 for malformed requests; business-rule failures come back from the
      services as exceptions and are mapped by the error handlers below.
"""

import logging

from flask import Blueprint, g, jsonify, request
from werkzeug.exceptions import HTTPException

from valuechain.auth import current_identity, require_role
from valuechain.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from valuechain.services import (
    approval_gate,
    chain_repository,
    layout_service,
    reorder_engine,
    restructure_service,
    segment_manager,
)
from valuechain.utils.errors import E, api_error
from valuechain.utils.helpers import parse_bool_arg

logger = logging.getLogger(__name__)

value_chain_bp = Blueprint("value_chains", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@value_chain_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    logger.info("Not found: %s", error)
    return api_error(E.NOT_FOUND, f"{error.resource} not found")


@value_chain_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_RULE, str(error), details=error.details)


@value_chain_bp.errorhandler(PermissionDeniedError)
def _handle_forbidden(error: PermissionDeniedError):
    return api_error(E.FORBIDDEN, str(error))


@value_chain_bp.errorhandler(PersistenceError)
def _handle_persistence(error: PersistenceError):
    logger.error("Persistence failure operation=%s cause=%s", error.operation, error.cause)
    return api_error(E.DATABASE, str(error))


@value_chain_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in value_chain_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ── Private helpers ───────────────────────────────────────────────────────────


def _tenant_required():
    """Return (tenant_id, err_response)."""
    tenant_id = getattr(g, "tenant_id", None)
    if tenant_id is None:
        return None, api_error(E.VALIDATION_REQUIRED, "tenant_id is required")
    return tenant_id, None


def _json_body():
    """Return (body, err_response); the body must be a JSON object."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return None, api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return data, None


def _required_str(data: dict, *fields: str) -> dict:
    errors = {}
    for name in fields:
        value = data.get(name)
        if not isinstance(value, str) or not value.strip():
            errors[name] = "required"
    return errors


# ── Chains ────────────────────────────────────────────────────────────────────


@value_chain_bp.route("/value-chains", methods=["GET"])
def list_chains():
    """List chains.

    Query params:
        include_pending (bool): also return chains awaiting approval.
        status (str): pending|approved|rejected (overrides include_pending).
        q (str): case-insensitive title/description search.
    """
    tenant_id, err = _tenant_required()
    if err:
        return err
    items = chain_repository.list_chains(
        tenant_id,
        include_pending=parse_bool_arg(request.args.get("include_pending")),
        status=request.args.get("status") or None,
        query=request.args.get("q"),
    )
    return jsonify({"items": items, "total": len(items)}), 200


@value_chain_bp.route("/value-chains/review-queue", methods=["GET"])
def review_queue():
    tenant_id, err = _tenant_required()
    if err:
        return err
    _user, can_approve = current_identity()
    items = approval_gate.list_review_queue(tenant_id, can_approve=can_approve)
    return jsonify({"items": items, "total": len(items)}), 200


@value_chain_bp.route("/value-chains", methods=["POST"])
@require_role("editor")
def create_chain():
    """Create a chain.

    Body (JSON):
        tenant_id (int, required)
        title (str, required): max 200 chars.
        description (str, optional)
    """
    tenant_id, err = _tenant_required()
    if err:
        return err
    data, err = _json_body()
    if err:
        return err
    user, can_approve = current_identity()
    chain = chain_repository.create_chain(
        tenant_id,
        data.get("title"),
        data.get("description"),
        acting_user_id=user,
        can_approve=can_approve,
    )
    return jsonify(chain), 201


@value_chain_bp.route("/value-chains/<chain_id>", methods=["GET"])
def get_chain(chain_id):
    tenant_id, err = _tenant_required()
    if err:
        return err
    return jsonify(chain_repository.get_chain(tenant_id, chain_id)), 200


@value_chain_bp.route("/value-chains/<chain_id>", methods=["PUT"])
@require_role("editor")
def update_chain(chain_id):
    tenant_id, err = _tenant_required()
    if err:
        return err
    data, err = _json_body()
    if err:
        return err
    return jsonify(chain_repository.update_chain(tenant_id, chain_id, data)), 200


@value_chain_bp.route("/value-chains/<chain_id>", methods=["DELETE"])
@require_role("editor")
def delete_chain(chain_id):
    tenant_id, err = _tenant_required()
    if err:
        return err
    chain_repository.delete_chain(tenant_id, chain_id)
    return jsonify({"deleted": True, "id": chain_id}), 200


# ── Segments ──────────────────────────────────────────────────────────────────


@value_chain_bp.route("/value-chains/<chain_id>/segments", methods=["PUT"])
@require_role("editor")
def save_segments(chain_id):
    """Replace the chain's segment list.

    Body (JSON):
        segments (list, required): ordered [{function_name, actor_ids?, unit_ids?}].
    """
    tenant_id, err = _tenant_required()
    if err:
        return err
    data, err = _json_body()
    if err:
        return err
    if not isinstance(data.get("segments"), list):
        return api_error(E.VALIDATION_REQUIRED, "segments must be a list")
    result = segment_manager.save_segments(tenant_id, chain_id, data["segments"])
    return jsonify(result), 200


@value_chain_bp.route("/value-chains/<chain_id>/segments/reorder", methods=["POST"])
@require_role("editor")
def reorder_segments(chain_id):
    tenant_id, err = _tenant_required()
    if err:
        return err
    data, err = _json_body()
    if err:
        return err
    if not isinstance(data.get("segment_ids"), list):
        return api_error(E.VALIDATION_REQUIRED, "segment_ids must be a list")
    return jsonify(reorder_engine.reorder_segments(tenant_id, chain_id, data["segment_ids"])), 200


@value_chain_bp.route("/value-chains/segments/move-actor", methods=["POST"])
@require_role("editor")
def move_actor():
    tenant_id, err = _tenant_required()
    if err:
        return err
    data, err = _json_body()
    if err:
        return err
    errors = _required_str(data, "person_id", "from_segment_id", "to_segment_id")
    if errors:
        return api_error(E.VALIDATION_REQUIRED, "Missing fields", details=errors)
    result = segment_manager.move_actor(
        tenant_id, data["person_id"], data["from_segment_id"], data["to_segment_id"],
    )
    return jsonify(result), 200


# ── Merge / split ─────────────────────────────────────────────────────────────


@value_chain_bp.route("/value-chains/merge", methods=["POST"])
@require_role("editor")
def merge_chains():
    """Merge two chains.

    Body (JSON):
        chain_a_id (str, required), chain_b_id (str, required), title (str, required)
    """
    tenant_id, err = _tenant_required()
    if err:
        return err
    data, err = _json_body()
    if err:
        return err
    errors = _required_str(data, "chain_a_id", "chain_b_id")
    if errors:
        return api_error(E.VALIDATION_REQUIRED, "Missing fields", details=errors)
    user, can_approve = current_identity()
    merged = restructure_service.merge_chains(
        tenant_id,
        data["chain_a_id"],
        data["chain_b_id"],
        data.get("title"),
        acting_user_id=user,
        can_approve=can_approve,
    )
    return jsonify(merged), 201


@value_chain_bp.route("/value-chains/<chain_id>/split", methods=["POST"])
@require_role("editor")
def split_chain(chain_id):
    """Split a chain.

    Body (JSON):
        index (int, required): first segment of the second half.
        title_1 (str, required), title_2 (str, required)
    """
    tenant_id, err = _tenant_required()
    if err:
        return err
    data, err = _json_body()
    if err:
        return err
    index = data.get("index")
    if isinstance(index, bool) or not isinstance(index, int):
        return api_error(E.VALIDATION_REQUIRED, "index must be an integer")
    user, can_approve = current_identity()
    first, second = restructure_service.split_chain(
        tenant_id,
        chain_id,
        index,
        data.get("title_1"),
        data.get("title_2"),
        acting_user_id=user,
        can_approve=can_approve,
    )
    return jsonify({"chains": [first, second]}), 201


# ── Layout ────────────────────────────────────────────────────────────────────


@value_chain_bp.route("/value-chains/<chain_id>/layout", methods=["GET"])
def get_layout(chain_id):
    tenant_id, err = _tenant_required()
    if err:
        return err
    return jsonify(layout_service.get_layout(tenant_id, chain_id)), 200


@value_chain_bp.route("/value-chains/<chain_id>/layout", methods=["PUT"])
@require_role("editor")
def save_layout(chain_id):
    """Save node positions and viewport.

    Body (JSON):
        nodes (list): [{segment_id, x, y}]
        viewport (object, optional): {zoom, pan_x, pan_y}
    """
    tenant_id, err = _tenant_required()
    if err:
        return err
    data, err = _json_body()
    if err:
        return err
    layout = layout_service.save_layout(
        tenant_id, chain_id, data.get("nodes") or [], data.get("viewport"),
    )
    return jsonify(layout), 200


# ── Approval ──────────────────────────────────────────────────────────────────


@value_chain_bp.route("/value-chains/<chain_id>/approve", methods=["POST"])
@require_role("editor")
def approve_chain(chain_id):
    tenant_id, err = _tenant_required()
    if err:
        return err
    user, can_approve = current_identity()
    chain = approval_gate.approve_chain(
        tenant_id, chain_id, acting_user_id=user, can_approve=can_approve,
    )
    return jsonify(chain), 200


@value_chain_bp.route("/value-chains/<chain_id>/reject", methods=["POST"])
@require_role("editor")
def reject_chain(chain_id):
    tenant_id, err = _tenant_required()
    if err:
        return err
    user, can_approve = current_identity()
    chain = approval_gate.reject_chain(
        tenant_id, chain_id, acting_user_id=user, can_approve=can_approve,
    )
    return jsonify(chain), 200
