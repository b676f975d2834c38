"""
Reorder engine — applies a new ordering to an existing segment set.

The canvas/kanban drag-and-drop emits a reorder command carrying the full
list of segment ids in their new order. The engine has no notion of pointer
events, only the resulting permutation.

A reorder is accepted only if the ids are exactly a permutation of the
chain's current segments; it never adds, removes, or edits a segment.
"""

from __future__ import annotations

import logging
from collections import Counter

from valuechain.core.exceptions import ValidationError
from valuechain.services import chain_repository
from valuechain.utils.helpers import atomic_command

logger = logging.getLogger(__name__)


def reorder_segments(tenant_id: int, chain_id: str, ordered_segment_ids: list[str]) -> dict:
    """Persist display_order = index for each id in ordered_segment_ids.

    Args:
        tenant_id: Tenant scope.
        chain_id: Target chain.
        ordered_segment_ids: Every segment id of the chain, in the new order.

    Returns:
        Serialized chain dict in the new order.

    Raises:
        NotFoundError: Unknown chain for this tenant.
        ValidationError: The ids are not a permutation of the chain's segments.
            details lists missing_ids, unknown_ids and duplicate_ids.
    """
    chain = chain_repository.get_chain_or_raise(tenant_id, chain_id)
    by_id = {seg.id: seg for seg in chain.segments}

    _assert_permutation(list(by_id), ordered_segment_ids)

    moved = 0
    with atomic_command("reorder_segments"):
        for index, segment_id in enumerate(ordered_segment_ids):
            seg = by_id[segment_id]
            if seg.display_order != index:
                seg.display_order = index
                moved += 1

    logger.info(
        "Segments reordered tenant_id=%s chain_id=%s moved=%s",
        tenant_id, chain_id, moved,
    )
    return chain_repository.serialize_chain(tenant_id, chain)


def _assert_permutation(existing_ids: list[str], proposed_ids) -> None:
    """Raise ValidationError unless proposed_ids is a permutation of existing_ids."""
    if not isinstance(proposed_ids, list) or not all(isinstance(i, str) for i in proposed_ids):
        raise ValidationError(
            "segment_ids must be a list of segment ids.",
            details={"segment_ids": "invalid"},
        )

    counts = Counter(proposed_ids)
    existing = set(existing_ids)
    duplicate_ids = sorted(i for i, n in counts.items() if n > 1)
    missing_ids = sorted(existing - counts.keys())
    unknown_ids = sorted(counts.keys() - existing)

    if duplicate_ids or missing_ids or unknown_ids:
        raise ValidationError(
            "segment_ids must contain every segment of the chain exactly once.",
            details={
                "missing_ids": missing_ids,
                "unknown_ids": unknown_ids,
                "duplicate_ids": duplicate_ids,
            },
        )
