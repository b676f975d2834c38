"""
Chain restructuring — merge two chains into one, split one chain into two.

Both operations consume their input chains: the segments are re-parented
onto freshly created chains (keeping their ids, actor/unit links and canvas
positions) and the emptied source chains are deleted.

Post-conditions:
    merge(A, B).function_names == A.function_names + B.function_names
    split(C, k)[0].function_names + split(C, k)[1].function_names == C.function_names
    Every resulting chain is numbered 0..n-1.

Each operation is one atomic_command(): if anything fails after the new
chain rows are staged, the whole batch is rolled back and the source chains
are left exactly as they were.
"""

from __future__ import annotations

import logging

from valuechain.core.exceptions import ValidationError
from valuechain.models import db
from valuechain.models.value_chain import ChainSegment, ValueChain
from valuechain.services import chain_repository
from valuechain.utils.helpers import atomic_command

logger = logging.getLogger(__name__)


def merge_chains(
    tenant_id: int,
    chain_a_id: str,
    chain_b_id: str,
    new_title: str,
    *,
    acting_user_id: str | None = None,
    can_approve: bool = False,
) -> dict:
    """Combine chain A and chain B into a new chain titled new_title.

    Segments of A come first, then those of B, each group in its original
    order. A and B are deleted.

    Returns:
        Serialized merged chain.

    Raises:
        ValidationError: Same chain twice, or invalid title.
        NotFoundError: Either chain unknown for this tenant.
        PersistenceError: Commit failed; A and B are untouched.
    """
    if chain_a_id == chain_b_id:
        raise ValidationError(
            "A chain cannot be merged with itself.",
            details={"chain_b_id": "same_as_chain_a"},
        )
    title = chain_repository.validate_title(new_title)
    chain_a = chain_repository.get_chain_or_raise(tenant_id, chain_a_id)
    chain_b = chain_repository.get_chain_or_raise(tenant_id, chain_b_id)

    sequence = _ordered(chain_a) + _ordered(chain_b)

    with atomic_command("merge_chains"):
        merged = chain_repository.new_chain(
            tenant_id,
            title,
            acting_user_id=acting_user_id,
            can_approve=can_approve,
        )
        db.session.add(merged)
        _reparent(sequence, merged)
        _delete_emptied(chain_a, chain_b)

    logger.info(
        "Value chains merged tenant_id=%s chain_a=%s chain_b=%s merged=%s segments=%s",
        tenant_id, chain_a_id, chain_b_id, merged.id, len(sequence),
    )
    return chain_repository.serialize_chain(tenant_id, merged)


def split_chain(
    tenant_id: int,
    chain_id: str,
    index: int,
    title_1: str,
    title_2: str,
    *,
    acting_user_id: str | None = None,
    can_approve: bool = False,
) -> tuple[dict, dict]:
    """Partition a chain at index into [0, index) and [index, n).

    Both halves keep the original description. The original chain is deleted.

    Returns:
        (first_chain_dict, second_chain_dict)

    Raises:
        ValidationError: Fewer than 2 segments, index outside (0, n), or invalid titles.
        NotFoundError: Unknown chain for this tenant.
        PersistenceError: Commit failed; the original chain is untouched.
    """
    first_title = chain_repository.validate_title(title_1, field="title_1")
    second_title = chain_repository.validate_title(title_2, field="title_2")
    chain = chain_repository.get_chain_or_raise(tenant_id, chain_id)

    segments = _ordered(chain)
    count = len(segments)
    if count < 2:
        raise ValidationError(
            "A chain needs at least 2 segments to be split.",
            details={"segment_count": count},
        )
    if isinstance(index, bool) or not isinstance(index, int) or not 0 < index < count:
        raise ValidationError(
            f"Split index must be between 1 and {count - 1}.",
            details={"index": index, "segment_count": count},
        )

    with atomic_command("split_chain"):
        first = chain_repository.new_chain(
            tenant_id,
            first_title,
            chain.description,
            acting_user_id=acting_user_id,
            can_approve=can_approve,
        )
        second = chain_repository.new_chain(
            tenant_id,
            second_title,
            chain.description,
            acting_user_id=acting_user_id,
            can_approve=can_approve,
        )
        db.session.add_all([first, second])
        _reparent(segments[:index], first)
        _reparent(segments[index:], second)
        _delete_emptied(chain)

    logger.info(
        "Value chain split tenant_id=%s chain_id=%s index=%s first=%s second=%s",
        tenant_id, chain_id, index, first.id, second.id,
    )
    return (
        chain_repository.serialize_chain(tenant_id, first),
        chain_repository.serialize_chain(tenant_id, second),
    )


# ── Private helpers ───────────────────────────────────────────────────────────


def _ordered(chain: ValueChain) -> list[ChainSegment]:
    return sorted(chain.segments, key=lambda s: s.display_order)


def _reparent(segments: list[ChainSegment], target: ValueChain) -> None:
    """Move segments onto target in the given order, numbering them 0..n-1."""
    for index, seg in enumerate(segments):
        seg.chain = target
        seg.display_order = index


def _delete_emptied(*chains: ValueChain) -> None:
    """Delete source chains once their segments have been moved away.

    The re-parented rows are flushed first and the source collections
    expired, so the delete cascade finds no segments left to remove.
    """
    db.session.flush()
    for chain in chains:
        db.session.expire(chain, ["segments"])
        db.session.delete(chain)
