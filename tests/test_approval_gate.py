"""Tests for approval_gate — approve / reject / review queue.

Coverage:
  1. pending → approved and pending → rejected record approver and time
  2. Repeating the same decision is a no-op
  3. The opposite decision on a decided chain is rejected (no flip)
  4. Callers without approval rights get PermissionDeniedError
  5. Pending chain is hidden from the default listing until approved
  6. Review queue lists pending chains only, oldest first
"""

from datetime import datetime

import pytest

from valuechain.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from valuechain.models import db
from valuechain.models.value_chain import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    ValueChain,
    validate_approval_transition,
)
from valuechain.services import approval_gate, chain_repository


def test_transition_table():
    assert validate_approval_transition(APPROVAL_PENDING, APPROVAL_APPROVED)
    assert validate_approval_transition(APPROVAL_PENDING, APPROVAL_REJECTED)
    assert not validate_approval_transition(APPROVAL_APPROVED, APPROVAL_REJECTED)
    assert not validate_approval_transition(APPROVAL_REJECTED, APPROVAL_APPROVED)
    assert not validate_approval_transition(APPROVAL_APPROVED, APPROVAL_PENDING)


def test_approve_pending_chain(default_tenant, make_chain):
    chain = make_chain("C1", ["A"], status=APPROVAL_PENDING)
    result = approval_gate.approve_chain(
        default_tenant.id, chain.id, acting_user_id="chair", can_approve=True,
    )
    assert result["approval_status"] == "approved"
    assert result["approved_by"] == "chair"
    assert result["approved_at"] is not None


def test_reject_pending_chain(default_tenant, make_chain):
    chain = make_chain("C1", ["A"], status=APPROVAL_PENDING)
    result = approval_gate.reject_chain(
        default_tenant.id, chain.id, acting_user_id="chair", can_approve=True,
    )
    assert result["approval_status"] == "rejected"
    assert result["approved_by"] == "chair"


def test_repeated_approval_is_noop(default_tenant, make_chain):
    chain = make_chain("C1", ["A"], status=APPROVAL_PENDING)
    first = approval_gate.approve_chain(default_tenant.id, chain.id, acting_user_id="chair", can_approve=True)
    second = approval_gate.approve_chain(default_tenant.id, chain.id, acting_user_id="other", can_approve=True)
    assert second["approval_status"] == "approved"
    assert second["approved_by"] == "chair"
    assert second["approved_at"] == first["approved_at"]


@pytest.mark.parametrize("start, action", [
    (APPROVAL_APPROVED, approval_gate.reject_chain),
    (APPROVAL_REJECTED, approval_gate.approve_chain),
])
def test_decided_chain_cannot_flip(default_tenant, make_chain, start, action):
    chain = make_chain("C1", ["A"], status=start)
    with pytest.raises(ValidationError) as exc:
        action(default_tenant.id, chain.id, acting_user_id="chair", can_approve=True)
    assert exc.value.details["approval_status"] == start
    assert db.session.get(ValueChain, chain.id).approval_status == start


def test_non_approver_cannot_decide(default_tenant, make_chain):
    chain = make_chain("C1", ["A"], status=APPROVAL_PENDING)
    with pytest.raises(PermissionDeniedError):
        approval_gate.approve_chain(default_tenant.id, chain.id, acting_user_id="editor", can_approve=False)
    with pytest.raises(PermissionDeniedError):
        approval_gate.reject_chain(default_tenant.id, chain.id, acting_user_id="editor", can_approve=False)
    assert db.session.get(ValueChain, chain.id).approval_status == APPROVAL_PENDING


def test_approve_unknown_chain(default_tenant):
    with pytest.raises(NotFoundError):
        approval_gate.approve_chain(default_tenant.id, "missing", can_approve=True)


def test_pending_chain_appears_in_listing_after_approval(default_tenant):
    created = chain_repository.create_chain(
        default_tenant.id, "New process", acting_user_id="editor", can_approve=False,
    )
    assert created["approval_status"] == "pending"
    assert created["id"] not in [c["id"] for c in chain_repository.list_chains(default_tenant.id)]

    approval_gate.approve_chain(default_tenant.id, created["id"], acting_user_id="chair", can_approve=True)

    assert created["id"] in [c["id"] for c in chain_repository.list_chains(default_tenant.id)]


def test_review_queue_lists_pending_only(default_tenant, make_chain):
    zeta = make_chain("Zeta", ["A"], status=APPROVAL_PENDING)
    alpha = make_chain("Alpha", ["A"], status=APPROVAL_PENDING)
    zeta.created_at = datetime(2026, 1, 1)
    alpha.created_at = datetime(2026, 2, 1)
    db.session.commit()
    make_chain("Done", ["A"], status=APPROVAL_APPROVED)

    queue = approval_gate.list_review_queue(default_tenant.id, can_approve=True)

    assert [c["title"] for c in queue] == ["Zeta", "Alpha"]


def test_review_queue_requires_approver(default_tenant):
    with pytest.raises(PermissionDeniedError):
        approval_gate.list_review_queue(default_tenant.id, can_approve=False)
