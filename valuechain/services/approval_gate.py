"""
Approval gate — review decisions on value chains.

Lifecycle:
    pending ──approve──▶ approved
    pending ──reject───▶ rejected

Both outcomes are terminal. Repeating the decision a chain already carries
is a no-op (a double-click on "approve" must not fail); asking for the
opposite decision is rejected.

Order of checks per decision:
    1. Permission  (can_approve)         → PermissionDeniedError
    2. Existence   (tenant-scoped)       → NotFoundError
    3. Transition  (APPROVAL_TRANSITIONS) → ValidationError
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from valuechain.core.exceptions import PermissionDeniedError, ValidationError
from valuechain.models import db
from valuechain.models.value_chain import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    ValueChain,
    validate_approval_transition,
)
from valuechain.services import chain_repository
from valuechain.utils.helpers import atomic_command

logger = logging.getLogger(__name__)


def approve_chain(
    tenant_id: int,
    chain_id: str,
    *,
    acting_user_id: str | None = None,
    can_approve: bool = False,
) -> dict:
    """Move a pending chain to approved and return it serialized."""
    return _decide(tenant_id, chain_id, APPROVAL_APPROVED, acting_user_id, can_approve)


def reject_chain(
    tenant_id: int,
    chain_id: str,
    *,
    acting_user_id: str | None = None,
    can_approve: bool = False,
) -> dict:
    """Move a pending chain to rejected and return it serialized."""
    return _decide(tenant_id, chain_id, APPROVAL_REJECTED, acting_user_id, can_approve)


def list_review_queue(tenant_id: int, *, can_approve: bool = False) -> list[dict]:
    """Pending chains of the tenant, oldest first."""
    if not can_approve:
        raise PermissionDeniedError("review value chains")
    stmt = (
        chain_repository.chains_stmt(tenant_id)
        .where(ValueChain.approval_status == APPROVAL_PENDING)
        .order_by(None)
        .order_by(ValueChain.created_at, ValueChain.title)
    )
    chains = db.session.execute(stmt).scalars().all()
    return chain_repository.serialize_chains(tenant_id, chains)


def _decide(tenant_id, chain_id, decision, acting_user_id, can_approve) -> dict:
    verb = "approve" if decision == APPROVAL_APPROVED else "reject"
    if not can_approve:
        logger.warning(
            "Approval denied tenant_id=%s chain_id=%s user=%s action=%s",
            tenant_id, chain_id, acting_user_id, verb,
        )
        raise PermissionDeniedError(f"{verb} value chains")

    chain = chain_repository.get_chain_or_raise(tenant_id, chain_id)

    if chain.approval_status == decision:
        logger.info(
            "Approval decision repeated tenant_id=%s chain_id=%s status=%s",
            tenant_id, chain_id, decision,
        )
        return chain_repository.serialize_chain(tenant_id, chain)

    if not validate_approval_transition(chain.approval_status, decision):
        logger.warning(
            "Invalid approval transition tenant_id=%s chain_id=%s %s → %s",
            tenant_id, chain_id, chain.approval_status, decision,
        )
        raise ValidationError(
            f"Cannot {verb} a chain that is already {chain.approval_status}.",
            details={"approval_status": chain.approval_status, "requested": decision},
        )

    with atomic_command(f"{verb}_chain"):
        chain.approval_status = decision
        chain.approved_by = acting_user_id
        chain.approved_at = datetime.now(timezone.utc)

    logger.info(
        "Value chain %s tenant_id=%s chain_id=%s by=%s",
        decision, tenant_id, chain_id, acting_user_id,
    )
    return chain_repository.serialize_chain(tenant_id, chain)
