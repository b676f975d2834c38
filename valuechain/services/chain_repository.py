"""
Value chain repository — CRUD and eager-loaded retrieval of chains.

Business context:
    A value chain is one operational process of the association, drawn as an
    ordered sequence of segments. Each segment names a function and points at
    the people (actors) and organizational units that carry it out.

    Chains created by a non-privileged author start ``pending`` and stay out
    of the default listing until an approver decides on them; chains created
    by an approver start ``approved``.

Rules:
  - tenant_id is always an explicit parameter (never from g).
  - Commits happen only through atomic_command() in the service layer.
  - Chains owned by another tenant are reported as NotFoundError.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import selectinload

from valuechain.core.exceptions import NotFoundError, ValidationError
from valuechain.models import db
from valuechain.models.value_chain import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_STATUSES,
    TITLE_MAX_LENGTH,
    ChainSegment,
    ValueChain,
)
from valuechain.services import directory_service
from valuechain.utils.helpers import atomic_command

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"title", "description"})


# ── Public service functions ──────────────────────────────────────────────────


def create_chain(
    tenant_id: int,
    title: str,
    description: str | None = None,
    *,
    acting_user_id: str | None = None,
    can_approve: bool = False,
) -> dict:
    """Create an empty value chain.

    Args:
        tenant_id: Owning tenant.
        title: Chain title (required, ≤ 200 chars).
        description: Optional free text.
        acting_user_id: Recorded as created_by.
        can_approve: Approvers' chains start approved; everyone else's start pending.

    Returns:
        Serialized chain dict (with an empty segments list).

    Raises:
        ValidationError: If the title is empty or too long.
        PersistenceError: If the commit fails.
    """
    with atomic_command("create_chain"):
        chain = new_chain(
            tenant_id,
            title,
            description,
            acting_user_id=acting_user_id,
            can_approve=can_approve,
        )
        db.session.add(chain)

    logger.info(
        "Value chain created tenant_id=%s chain_id=%s status=%s",
        tenant_id, chain.id, chain.approval_status,
    )
    return serialize_chain(tenant_id, chain)


def get_chain(tenant_id: int, chain_id: str) -> dict:
    """Return one chain with its ordered segments and resolved assignments."""
    return serialize_chain(tenant_id, get_chain_or_raise(tenant_id, chain_id))


def update_chain(tenant_id: int, chain_id: str, patch: dict) -> dict:
    """Apply a partial update (title and/or description) to a chain.

    Keys outside UPDATABLE_FIELDS are ignored; segments are changed through
    segment_manager, approval through approval_gate.

    Raises:
        NotFoundError: Unknown chain for this tenant.
        ValidationError: If a supplied title is empty or too long.
    """
    chain = get_chain_or_raise(tenant_id, chain_id)
    changes = {k: v for k, v in (patch or {}).items() if k in UPDATABLE_FIELDS}

    with atomic_command("update_chain"):
        if "title" in changes:
            chain.title = validate_title(changes["title"])
        if "description" in changes:
            chain.description = _clean_description(changes["description"])

    logger.info(
        "Value chain updated tenant_id=%s chain_id=%s fields=%s",
        tenant_id, chain_id, sorted(changes),
    )
    return serialize_chain(tenant_id, chain)


def delete_chain(tenant_id: int, chain_id: str) -> None:
    """Delete a chain together with its segments, assignment rows and viewport."""
    chain = get_chain_or_raise(tenant_id, chain_id)
    segment_count = len(chain.segments)
    with atomic_command("delete_chain"):
        db.session.delete(chain)
    logger.info(
        "Value chain deleted tenant_id=%s chain_id=%s segments=%s",
        tenant_id, chain_id, segment_count,
    )


def list_chains(
    tenant_id: int,
    *,
    include_pending: bool = False,
    status: str | None = None,
    query: str | None = None,
) -> list[dict]:
    """Return the tenant's chains with segments pre-loaded and ordered.

    The default view excludes pending chains; approvers reach those through
    include_pending=True or approval_gate.list_review_queue().

    Args:
        tenant_id: Tenant scope.
        include_pending: Also return chains awaiting approval.
        status: Optional exact approval_status filter (overrides include_pending).
        query: Optional case-insensitive match on title or description.

    Raises:
        ValidationError: If status is not a known approval status.
    """
    stmt = chains_stmt(tenant_id)
    if status:
        if status not in APPROVAL_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(sorted(APPROVAL_STATUSES))}",
                details={"status": status},
            )
        stmt = stmt.where(ValueChain.approval_status == status)
    elif not include_pending:
        stmt = stmt.where(ValueChain.approval_status != APPROVAL_PENDING)

    term = (query or "").strip()
    if term:
        like = f"%{term.lower()}%"
        stmt = stmt.where(
            or_(
                db.func.lower(ValueChain.title).like(like),
                db.func.lower(ValueChain.description).like(like),
            )
        )

    chains = db.session.execute(stmt).scalars().all()
    return serialize_chains(tenant_id, chains)


# ── Shared helpers (used by the other value chain services) ───────────────────


def new_chain(
    tenant_id: int,
    title: str,
    description: str | None = None,
    *,
    acting_user_id: str | None = None,
    can_approve: bool = False,
) -> ValueChain:
    """Build (not add, not commit) a ValueChain with the creation policy applied."""
    return ValueChain(
        tenant_id=tenant_id,
        title=validate_title(title),
        description=_clean_description(description),
        approval_status=APPROVAL_APPROVED if can_approve else APPROVAL_PENDING,
        created_by=acting_user_id,
    )


def get_chain_or_raise(tenant_id: int, chain_id: str) -> ValueChain:
    """Load a chain scoped to the tenant, with segments and links eager-loaded."""
    stmt = chains_stmt(tenant_id).where(ValueChain.id == chain_id)
    chain = db.session.execute(stmt).scalar_one_or_none()
    if chain is None:
        raise NotFoundError(resource="ValueChain", resource_id=chain_id, tenant_id=tenant_id)
    return chain


def validate_title(title, field: str = "title") -> str:
    """Return the stripped title or raise ValidationError."""
    if not isinstance(title, str) or not title.strip():
        raise ValidationError(f"{field} is required.", details={field: "required"})
    title = title.strip()
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(
            f"{field} must be ≤ {TITLE_MAX_LENGTH} characters.",
            details={field: "too_long"},
        )
    return title


def serialize_chain(tenant_id: int, chain: ValueChain) -> dict:
    return serialize_chains(tenant_id, [chain])[0]


def serialize_chains(tenant_id: int, chains) -> list[dict]:
    """Serialize chains and resolve actor/unit ids to directory summaries.

    Directory lookups are done in two bulk queries for the whole batch (no
    N+1). Ids that no longer resolve stay in actor_ids/unit_ids but are left
    out of the resolved actors/units lists.
    """
    person_ids: set[str] = set()
    unit_ids: set[str] = set()
    for chain in chains:
        for seg in chain.segments:
            person_ids.update(seg.actor_ids)
            unit_ids.update(seg.unit_ids)

    people = directory_service.resolve_people(tenant_id, person_ids)
    units = directory_service.resolve_units(tenant_id, unit_ids)

    result = []
    for chain in chains:
        data = chain.to_dict()
        segments = []
        for seg in sorted(chain.segments, key=lambda s: s.display_order):
            seg_dict = seg.to_dict()
            seg_dict["actors"] = [people[p] for p in seg.actor_ids if p in people]
            seg_dict["units"] = [units[u] for u in seg.unit_ids if u in units]
            segments.append(seg_dict)
        data["segments"] = segments
        result.append(data)
    return result


def chains_stmt(tenant_id: int):
    """Tenant-scoped select of chains with segments and links eager-loaded."""
    return (
        select(ValueChain)
        .where(ValueChain.tenant_id == tenant_id)
        .options(
            selectinload(ValueChain.segments).selectinload(ChainSegment.actor_links),
            selectinload(ValueChain.segments).selectinload(ChainSegment.unit_links),
        )
        .order_by(ValueChain.title, ValueChain.created_at)
    )


# ── Private helpers ───────────────────────────────────────────────────────────


def _clean_description(description) -> str | None:
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError("description must be a string.", details={"description": "invalid"})
    return description.strip() or None
