"""
Canvas layout persistence — segment positions and the chain's viewport.

Layout record shape::

    {
        "chain_id": "...",
        "nodes": [{"segment_id": "...", "x": 100.0, "y": 100.0}, ...],
        "viewport": {"zoom": 1.0, "pan_x": 0.0, "pan_y": 0.0},
    }

Segments that were never dragged have no stored position; get_layout()
places them on the default organic curve the canvas draws on first open.
"""

from __future__ import annotations

import logging
import math

from valuechain.core.exceptions import ValidationError
from valuechain.models.value_chain import ChainViewport
from valuechain.services import chain_repository
from valuechain.utils.helpers import atomic_command

logger = logging.getLogger(__name__)

ZOOM_MIN = 0.5
ZOOM_MAX = 1.5
DEFAULT_VIEWPORT = {"zoom": 1.0, "pan_x": 0.0, "pan_y": 0.0}

_ORIGIN_X = 100.0
_ORIGIN_Y = 100.0
_NODE_SPACING = 280.0
_WAVE_FREQUENCY = 0.8
_WAVE_AMPLITUDE = 30.0


def default_position(index: int) -> dict:
    """Position of the index-th segment before the user has moved it."""
    return {
        "x": _ORIGIN_X + index * _NODE_SPACING,
        "y": _ORIGIN_Y + math.sin(index * _WAVE_FREQUENCY) * _WAVE_AMPLITUDE,
    }


def clamp_zoom(zoom: float) -> float:
    return max(ZOOM_MIN, min(ZOOM_MAX, zoom))


def get_layout(tenant_id: int, chain_id: str) -> dict:
    """Return the chain's canvas layout, filling in defaults where nothing is stored."""
    chain = chain_repository.get_chain_or_raise(tenant_id, chain_id)

    nodes = []
    for index, seg in enumerate(sorted(chain.segments, key=lambda s: s.display_order)):
        pos = seg.position or default_position(index)
        nodes.append({"segment_id": seg.id, "x": pos["x"], "y": pos["y"]})

    viewport = chain.viewport.to_dict() if chain.viewport else dict(DEFAULT_VIEWPORT)
    return {"chain_id": chain.id, "nodes": nodes, "viewport": viewport}


def save_layout(tenant_id: int, chain_id: str, nodes, viewport=None) -> dict:
    """Persist node positions and (optionally) the viewport in one transaction.

    Nodes not mentioned keep their stored position. Saving the same payload
    twice leaves the store unchanged.

    Raises:
        NotFoundError: Unknown chain for this tenant.
        ValidationError: Unknown segment ids or non-finite coordinates.
    """
    chain = chain_repository.get_chain_or_raise(tenant_id, chain_id)
    by_id = {seg.id: seg for seg in chain.segments}

    positions = _validate_nodes(nodes, by_id)
    view = _validate_viewport(viewport) if viewport is not None else None

    with atomic_command("save_layout"):
        for segment_id, (x, y) in positions.items():
            seg = by_id[segment_id]
            if seg.position_x != x or seg.position_y != y:
                seg.position_x = x
                seg.position_y = y
        if view is not None:
            if chain.viewport is None:
                chain.viewport = ChainViewport(**view)
            else:
                for key, value in view.items():
                    if getattr(chain.viewport, key) != value:
                        setattr(chain.viewport, key, value)

    logger.info(
        "Layout saved tenant_id=%s chain_id=%s nodes=%s viewport=%s",
        tenant_id, chain_id, len(positions), view is not None,
    )
    return get_layout(tenant_id, chain_id)


# ── Private helpers ───────────────────────────────────────────────────────────


def _finite(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _validate_nodes(nodes, by_id: dict) -> dict[str, tuple[float, float]]:
    if nodes is None:
        return {}
    if not isinstance(nodes, list):
        raise ValidationError("nodes must be a list.", details={"nodes": "invalid"})

    positions: dict[str, tuple[float, float]] = {}
    unknown_ids = []
    errors: dict[str, str] = {}
    for i, node in enumerate(nodes):
        if not isinstance(node, dict):
            errors[f"nodes[{i}]"] = "must be an object"
            continue
        segment_id = node.get("segment_id")
        if not isinstance(segment_id, str) or segment_id not in by_id:
            unknown_ids.append(segment_id)
            continue
        x, y = node.get("x"), node.get("y")
        if not (_finite(x) and _finite(y)):
            errors[f"nodes[{i}]"] = "x and y must be finite numbers"
            continue
        positions[segment_id] = (float(x), float(y))

    if unknown_ids:
        errors["unknown_ids"] = unknown_ids
    if errors:
        raise ValidationError("Invalid layout nodes.", details=errors)
    return positions


def _validate_viewport(viewport) -> dict:
    if not isinstance(viewport, dict):
        raise ValidationError("viewport must be an object.", details={"viewport": "invalid"})
    merged = {**DEFAULT_VIEWPORT, **{k: viewport[k] for k in DEFAULT_VIEWPORT if k in viewport}}
    bad = [k for k, v in merged.items() if not _finite(v)]
    if bad:
        raise ValidationError(
            "viewport values must be finite numbers.",
            details={f"viewport.{k}": "invalid" for k in bad},
        )
    return {
        "zoom": clamp_zoom(float(merged["zoom"])),
        "pan_x": float(merged["pan_x"]),
        "pan_y": float(merged["pan_y"]),
    }
