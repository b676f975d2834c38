"""Tests for chain_repository — create / update / delete / list / search.

Coverage:
  1. Creation policy: non-approvers create pending chains, approvers approved ones
  2. Title validation (required, stripped, max length)
  3. update_chain applies title/description only
  4. delete_chain cascades to segments, links and viewport
  5. list_chains default view hides pending chains; include_pending / status filters
  6. Search by title or description (case-insensitive)
  7. Actor/unit ids resolved to directory summaries; dangling ids are kept but not resolved
  8. Tenant isolation: another tenant's chain is NotFound
"""

import pytest

from valuechain.core.exceptions import NotFoundError, PersistenceError, ValidationError
from valuechain.models import db
from valuechain.models.value_chain import (
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    ChainSegment,
    ChainViewport,
    SegmentActor,
    ValueChain,
)
from valuechain.services import chain_repository


def _titles(items):
    return [c["title"] for c in items]


# ── Create ──────────────────────────────────────────────────────────────────


def test_create_chain_by_non_approver_starts_pending(default_tenant):
    chain = chain_repository.create_chain(
        default_tenant.id, "  Membership intake ", "New members",
        acting_user_id="editor-1", can_approve=False,
    )
    assert chain["title"] == "Membership intake"
    assert chain["approval_status"] == "pending"
    assert chain["created_by"] == "editor-1"
    assert chain["segments"] == []


def test_create_chain_by_approver_starts_approved(default_tenant):
    chain = chain_repository.create_chain(default_tenant.id, "Events", can_approve=True)
    assert chain["approval_status"] == "approved"


@pytest.mark.parametrize("title", ["", "   ", None, "x" * 201])
def test_create_chain_rejects_invalid_title(default_tenant, title):
    with pytest.raises(ValidationError) as exc:
        chain_repository.create_chain(default_tenant.id, title)
    assert "title" in exc.value.details
    assert db.session.query(ValueChain).count() == 0


def test_create_chain_accepts_title_at_max_length(default_tenant):
    chain = chain_repository.create_chain(default_tenant.id, "x" * 200)
    assert len(chain["title"]) == 200


def test_create_chain_commit_failure_raises_persistence_error(default_tenant, monkeypatch):
    from sqlalchemy.exc import OperationalError

    def _boom():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db.session, "commit", _boom)
    with pytest.raises(PersistenceError):
        chain_repository.create_chain(default_tenant.id, "Doomed")
    monkeypatch.undo()
    assert db.session.query(ValueChain).count() == 0


# ── Read ────────────────────────────────────────────────────────────────────


def test_get_chain_returns_segments_in_display_order(default_tenant, make_chain):
    chain = make_chain("C1", ["Intake", "Review", "Approve"])
    # Shuffle the stored order behind the ORM's back.
    segs = {s.function_name: s for s in chain.segments}
    segs["Intake"].display_order, segs["Approve"].display_order = 2, 0
    db.session.commit()

    result = chain_repository.get_chain(default_tenant.id, chain.id)
    assert [s["function_name"] for s in result["segments"]] == ["Approve", "Review", "Intake"]


def test_get_chain_unknown_id_is_not_found(default_tenant):
    with pytest.raises(NotFoundError):
        chain_repository.get_chain(default_tenant.id, "does-not-exist")


def test_get_chain_of_other_tenant_is_not_found(default_tenant, other_tenant, make_chain):
    foreign = make_chain("Foreign", ["A"], tenant_id=other_tenant.id)
    with pytest.raises(NotFoundError):
        chain_repository.get_chain(default_tenant.id, foreign.id)


def test_serialized_segments_resolve_directory_summaries(default_tenant, directory, make_chain):
    chain = make_chain("C1", ["Intake"], actors={0: ["p2", "ghost"]}, units={0: ["u1"]})

    seg = chain_repository.get_chain(default_tenant.id, chain.id)["segments"][0]
    assert seg["actor_ids"] == ["p2", "ghost"]
    assert [a["full_name"] for a in seg["actors"]] == ["Alan Turing"]
    assert seg["units"] == [{"id": "u1", "title": "Board"}]


# ── Update / delete ─────────────────────────────────────────────────────────


def test_update_chain_changes_title_and_description_only(default_tenant, make_chain):
    chain = make_chain("Old", ["A"])
    result = chain_repository.update_chain(
        default_tenant.id, chain.id,
        {"title": "New", "description": "  Described  ", "approval_status": "rejected"},
    )
    assert result["title"] == "New"
    assert result["description"] == "Described"
    assert result["approval_status"] == "approved"


def test_update_chain_rejects_empty_title(default_tenant, make_chain):
    chain = make_chain("Keep", ["A"])
    with pytest.raises(ValidationError):
        chain_repository.update_chain(default_tenant.id, chain.id, {"title": " "})
    assert db.session.get(ValueChain, chain.id).title == "Keep"


def test_delete_chain_cascades(default_tenant, make_chain):
    chain = make_chain("Gone", ["A", "B"], actors={0: ["p1"]})
    db.session.add(ChainViewport(chain_id=chain.id, zoom=1.2))
    db.session.commit()
    chain_id = chain.id

    chain_repository.delete_chain(default_tenant.id, chain_id)

    assert db.session.get(ValueChain, chain_id) is None
    assert db.session.query(ChainSegment).count() == 0
    assert db.session.query(SegmentActor).count() == 0
    assert db.session.query(ChainViewport).count() == 0


# ── List / search ───────────────────────────────────────────────────────────


def test_list_chains_default_view_excludes_pending(default_tenant, make_chain):
    make_chain("Approved one", ["A"])
    make_chain("Pending one", ["A"], status=APPROVAL_PENDING)
    make_chain("Rejected one", ["A"], status=APPROVAL_REJECTED)

    assert _titles(chain_repository.list_chains(default_tenant.id)) == ["Approved one", "Rejected one"]
    assert _titles(chain_repository.list_chains(default_tenant.id, include_pending=True)) == [
        "Approved one", "Pending one", "Rejected one",
    ]
    assert _titles(chain_repository.list_chains(default_tenant.id, status="pending")) == ["Pending one"]


def test_list_chains_unknown_status_rejected(default_tenant):
    with pytest.raises(ValidationError):
        chain_repository.list_chains(default_tenant.id, status="archived")


def test_list_chains_search_matches_title_or_description(default_tenant, make_chain):
    make_chain("Onboarding", ["A"])
    make_chain("Events", ["A"], description="Yearly ONBOARDING party")
    make_chain("Finance", ["A"])

    assert _titles(chain_repository.list_chains(default_tenant.id, query="onboard")) == [
        "Events", "Onboarding",
    ]


def test_list_chains_is_tenant_scoped(default_tenant, other_tenant, make_chain):
    make_chain("Mine", ["A"])
    make_chain("Theirs", ["A"], tenant_id=other_tenant.id)
    assert _titles(chain_repository.list_chains(default_tenant.id)) == ["Mine"]
