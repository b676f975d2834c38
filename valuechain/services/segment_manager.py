"""
Segment manager — reconciles a desired segment list against stored state.

Business context:
    The chain editor submits the complete, ordered list of steps every time it
    saves. Rather than dropping and recreating every segment (which would lose
    segment ids, and with them canvas positions), the stored segments are
    matched to the desired ones and only the difference is written.

Matching rule:
    Desired items are matched to stored segments by function_name. A name that
    occurs once on both sides is matched directly; repeated names are paired
    up positionally in stored order. Unmatched stored segments are deleted,
    unmatched desired items are inserted. display_order is always the index
    in the desired list.

    Actor/unit links are reconciled per segment as sets: nothing is written
    when the desired set equals the stored set, so saving the same list twice
    performs no writes the second time.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from datetime import datetime, timezone

from sqlalchemy import select

from valuechain.core.exceptions import NotFoundError, ValidationError
from valuechain.models import db
from valuechain.models.value_chain import (
    FUNCTION_NAME_MAX_LENGTH,
    ChainSegment,
    SegmentActor,
    SegmentUnit,
)
from valuechain.services import chain_repository
from valuechain.utils.helpers import atomic_command

logger = logging.getLogger(__name__)


def save_segments(tenant_id: int, chain_id: str, desired: list[dict]) -> dict:
    """Make the chain's stored segments equal the desired ordered list.

    Args:
        tenant_id: Tenant scope.
        chain_id: Target chain.
        desired: Ordered list of {function_name, actor_ids?, unit_ids?}.

    Returns:
        {"chain": <serialized chain>, "inserted": int, "updated": int, "deleted": int}

    Raises:
        NotFoundError: Unknown chain for this tenant.
        ValidationError: Malformed desired list (nothing is written).
        PersistenceError: Commit failed; no segment was changed.
    """
    items = _normalize_desired(desired)
    chain = chain_repository.get_chain_or_raise(tenant_id, chain_id)

    inserted = updated = deleted = 0
    with atomic_command("save_segments"):
        available: dict[str, deque] = defaultdict(deque)
        for seg in sorted(chain.segments, key=lambda s: s.display_order):
            available[seg.function_name].append(seg)

        ordered: list[ChainSegment] = []
        for index, item in enumerate(items):
            queue = available.get(item["function_name"])
            if queue:
                seg = queue.popleft()
                changed = False
                if seg.display_order != index:
                    seg.display_order = index
                    changed = True
                changed |= _sync_actor_links(seg, item["actor_ids"])
                changed |= _sync_unit_links(seg, item["unit_ids"])
                if changed:
                    updated += 1
            else:
                seg = ChainSegment(
                    tenant_id=tenant_id,
                    function_name=item["function_name"],
                    display_order=index,
                )
                seg.actor_links = [SegmentActor(person_id=p) for p in item["actor_ids"]]
                seg.unit_links = [SegmentUnit(unit_id=u) for u in item["unit_ids"]]
                inserted += 1
            ordered.append(seg)

        deleted = sum(len(queue) for queue in available.values())
        # Segments left out of `ordered` become orphans and are deleted on flush.
        chain.segments = ordered
        if inserted or updated or deleted:
            chain.updated_at = datetime.now(timezone.utc)

    logger.info(
        "Segments saved tenant_id=%s chain_id=%s inserted=%s updated=%s deleted=%s",
        tenant_id, chain_id, inserted, updated, deleted,
    )
    return {
        "chain": chain_repository.serialize_chain(tenant_id, chain),
        "inserted": inserted,
        "updated": updated,
        "deleted": deleted,
    }


def move_actor(tenant_id: int, person_id: str, from_segment_id: str, to_segment_id: str) -> dict:
    """Move one actor assignment from one segment to another.

    If the target already holds the actor, only the source link is removed.

    Returns:
        {"from_segment": <segment dict>, "to_segment": <segment dict>}

    Raises:
        ValidationError: Source and target are the same segment.
        NotFoundError: Unknown segment, or the actor is not on the source segment.
    """
    if from_segment_id == to_segment_id:
        raise ValidationError(
            "Source and target segment must differ.",
            details={"to_segment_id": "same_as_source"},
        )
    source = _get_segment_or_raise(tenant_id, from_segment_id)
    target = _get_segment_or_raise(tenant_id, to_segment_id)

    link = next((a for a in source.actor_links if a.person_id == person_id), None)
    if link is None:
        raise NotFoundError(resource="SegmentActor", resource_id=person_id, tenant_id=tenant_id)

    with atomic_command("move_actor"):
        source.actor_links.remove(link)
        if person_id not in target.actor_ids:
            target.actor_links.append(SegmentActor(person_id=person_id))

    logger.info(
        "Actor moved tenant_id=%s person_id=%s from=%s to=%s",
        tenant_id, person_id, from_segment_id, to_segment_id,
    )
    return {"from_segment": source.to_dict(), "to_segment": target.to_dict()}


# ── Private helpers ───────────────────────────────────────────────────────────


def _normalize_desired(desired) -> list[dict]:
    """Validate the desired list and collapse duplicate ids (first wins)."""
    if not isinstance(desired, list):
        raise ValidationError("segments must be a list.", details={"segments": "invalid"})

    errors: dict[str, str] = {}
    items = []
    for i, raw in enumerate(desired):
        if not isinstance(raw, dict):
            errors[f"segments[{i}]"] = "must be an object"
            continue
        name = raw.get("function_name")
        if not isinstance(name, str) or not name.strip():
            errors[f"segments[{i}].function_name"] = "required"
            continue
        name = name.strip()
        if len(name) > FUNCTION_NAME_MAX_LENGTH:
            errors[f"segments[{i}].function_name"] = "too_long"
            continue
        ids = {}
        for key in ("actor_ids", "unit_ids"):
            value = raw.get(key) or []
            if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
                errors[f"segments[{i}].{key}"] = "must be a list of ids"
                continue
            ids[key] = list(dict.fromkeys(value))
        if len(ids) == 2:
            items.append({"function_name": name, **ids})

    if errors:
        raise ValidationError("Invalid segment list.", details=errors)
    return items


def _sync_actor_links(seg: ChainSegment, person_ids: list[str]) -> bool:
    wanted = set(person_ids)
    current = set(seg.actor_ids)
    if wanted == current:
        return False
    for link in [a for a in seg.actor_links if a.person_id not in wanted]:
        seg.actor_links.remove(link)
    for pid in person_ids:
        if pid not in current:
            seg.actor_links.append(SegmentActor(person_id=pid))
    return True


def _sync_unit_links(seg: ChainSegment, unit_ids: list[str]) -> bool:
    wanted = set(unit_ids)
    current = set(seg.unit_ids)
    if wanted == current:
        return False
    for link in [u for u in seg.unit_links if u.unit_id not in wanted]:
        seg.unit_links.remove(link)
    for uid in unit_ids:
        if uid not in current:
            seg.unit_links.append(SegmentUnit(unit_id=uid))
    return True


def _get_segment_or_raise(tenant_id: int, segment_id: str) -> ChainSegment:
    stmt = select(ChainSegment).where(
        ChainSegment.id == segment_id,
        ChainSegment.tenant_id == tenant_id,
    )
    seg = db.session.execute(stmt).scalar_one_or_none()
    if seg is None:
        raise NotFoundError(resource="ChainSegment", resource_id=segment_id, tenant_id=tenant_id)
    return seg
