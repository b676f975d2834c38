"""Tests for restructure_service — merge and split.

Coverage:
  1. Split scenario: C1 = [Intake, Review, Approve] split at 1
  2. Merge scenario: merging the halves rebuilds C1's order
  3. Segment ids, assignments and canvas positions travel with the segment
  4. Source chains are deleted; results are numbered 0..n-1
  5. Preconditions: self-merge, split index range, fewer than 2 segments
  6. A failed commit leaves the source chains untouched (merge and split)
  7. New chains follow the creation approval policy
"""

import pytest
from sqlalchemy.exc import OperationalError

from valuechain.core.exceptions import NotFoundError, PersistenceError, ValidationError
from valuechain.models import db
from valuechain.models.value_chain import ChainSegment, ValueChain
from valuechain.services import chain_repository, restructure_service


def _names(chain_dict):
    return [s["function_name"] for s in chain_dict["segments"]]


def _orders(chain_dict):
    return [s["display_order"] for s in chain_dict["segments"]]


# ── Split ───────────────────────────────────────────────────────────────────


def test_split_scenario(default_tenant, make_chain):
    c1 = make_chain("C1", ["Intake", "Review", "Approve"], description="Membership")
    c1_id = c1.id

    part_a, part_b = restructure_service.split_chain(
        default_tenant.id, c1_id, 1, "Part A", "Part B", can_approve=True,
    )

    assert (part_a["title"], _names(part_a)) == ("Part A", ["Intake"])
    assert (part_b["title"], _names(part_b)) == ("Part B", ["Review", "Approve"])
    assert _orders(part_a) == [0]
    assert _orders(part_b) == [0, 1]
    assert part_a["description"] == part_b["description"] == "Membership"
    assert db.session.get(ValueChain, c1_id) is None


@pytest.mark.parametrize("index", [0, 3, -1, 7])
def test_split_index_out_of_range(default_tenant, make_chain, index):
    c1 = make_chain("C1", ["Intake", "Review", "Approve"])
    with pytest.raises(ValidationError):
        restructure_service.split_chain(default_tenant.id, c1.id, index, "A", "B")
    assert db.session.get(ValueChain, c1.id) is not None


def test_split_needs_two_segments(default_tenant, make_chain):
    c1 = make_chain("C1", ["Only"])
    with pytest.raises(ValidationError) as exc:
        restructure_service.split_chain(default_tenant.id, c1.id, 1, "A", "B")
    assert exc.value.details["segment_count"] == 1


def test_split_requires_both_titles(default_tenant, make_chain):
    c1 = make_chain("C1", ["A", "B"])
    with pytest.raises(ValidationError) as exc:
        restructure_service.split_chain(default_tenant.id, c1.id, 1, "First", "  ")
    assert "title_2" in exc.value.details


def test_split_unknown_chain(default_tenant):
    with pytest.raises(NotFoundError):
        restructure_service.split_chain(default_tenant.id, "missing", 1, "A", "B")


def test_split_commit_failure_rolls_back(default_tenant, make_chain, monkeypatch):
    c1 = make_chain("C1", ["A", "B", "C"])
    c1_id = c1.id
    segment_ids = [s.id for s in c1.segments]

    def _boom():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db.session, "commit", _boom)
    with pytest.raises(PersistenceError):
        restructure_service.split_chain(default_tenant.id, c1_id, 1, "Part A", "Part B")
    monkeypatch.undo()

    assert db.session.query(ValueChain).count() == 1
    restored = chain_repository.get_chain(default_tenant.id, c1_id)
    assert _names(restored) == ["A", "B", "C"]
    assert _orders(restored) == [0, 1, 2]
    assert [s["id"] for s in restored["segments"]] == segment_ids


# ── Merge ───────────────────────────────────────────────────────────────────


def test_merge_concatenates_a_then_b(default_tenant, make_chain):
    a = make_chain("A", ["One", "Two"])
    b = make_chain("B", ["Three", "Four", "Five"])
    a_id, b_id = a.id, b.id

    merged = restructure_service.merge_chains(default_tenant.id, a_id, b_id, "Merged")

    assert _names(merged) == ["One", "Two", "Three", "Four", "Five"]
    assert _orders(merged) == [0, 1, 2, 3, 4]
    assert db.session.get(ValueChain, a_id) is None
    assert db.session.get(ValueChain, b_id) is None
    assert db.session.query(ChainSegment).count() == 5


def test_merge_with_empty_chain(default_tenant, make_chain):
    a = make_chain("A", [])
    b = make_chain("B", ["Only"])
    merged = restructure_service.merge_chains(default_tenant.id, a.id, b.id, "Merged")
    assert _names(merged) == ["Only"]


def test_merge_keeps_segment_identity_assignments_and_positions(default_tenant, make_chain):
    a = make_chain("A", ["Intake"], actors={0: ["p1"]}, units={0: ["u1"]})
    b = make_chain("B", ["Review"])
    seg = a.segments[0]
    seg.position_x, seg.position_y = 420.0, 80.0
    db.session.commit()
    seg_id = seg.id

    merged = restructure_service.merge_chains(default_tenant.id, a.id, b.id, "Merged")

    first = merged["segments"][0]
    assert first["id"] == seg_id
    assert first["chain_id"] == merged["id"]
    assert first["actor_ids"] == ["p1"]
    assert first["unit_ids"] == ["u1"]
    assert first["position"] == {"x": 420.0, "y": 80.0}


def test_merge_same_chain_rejected(default_tenant, make_chain):
    a = make_chain("A", ["One"])
    with pytest.raises(ValidationError):
        restructure_service.merge_chains(default_tenant.id, a.id, a.id, "Merged")


def test_merge_requires_title(default_tenant, make_chain):
    a = make_chain("A", ["One"])
    b = make_chain("B", ["Two"])
    with pytest.raises(ValidationError):
        restructure_service.merge_chains(default_tenant.id, a.id, b.id, "")
    assert db.session.query(ValueChain).count() == 2


def test_merge_across_tenants_is_not_found(default_tenant, other_tenant, make_chain):
    a = make_chain("A", ["One"])
    b = make_chain("B", ["Two"], tenant_id=other_tenant.id)
    with pytest.raises(NotFoundError):
        restructure_service.merge_chains(default_tenant.id, a.id, b.id, "Merged")


def test_merge_commit_failure_rolls_back(default_tenant, make_chain, monkeypatch):
    a = make_chain("A", ["One", "Two"])
    b = make_chain("B", ["Three"])
    a_id, b_id = a.id, b.id

    def _boom():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db.session, "commit", _boom)
    with pytest.raises(PersistenceError):
        restructure_service.merge_chains(default_tenant.id, a_id, b_id, "Merged")
    monkeypatch.undo()

    assert db.session.query(ValueChain).count() == 2
    assert [s["function_name"] for s in chain_repository.get_chain(default_tenant.id, a_id)["segments"]] == [
        "One", "Two",
    ]
    assert _names(chain_repository.get_chain(default_tenant.id, b_id)) == ["Three"]


def test_merged_chain_follows_creation_policy(default_tenant, make_chain):
    a = make_chain("A", ["One"])
    b = make_chain("B", ["Two"])
    merged = restructure_service.merge_chains(
        default_tenant.id, a.id, b.id, "Merged", acting_user_id="editor-1", can_approve=False,
    )
    assert merged["approval_status"] == "pending"
    assert merged["created_by"] == "editor-1"


# ── Round trip ──────────────────────────────────────────────────────────────


def test_split_then_merge_restores_original_order(default_tenant, make_chain):
    c1 = make_chain("C1", ["Intake", "Review", "Approve"])
    original_ids = [s.id for s in c1.segments]

    part_a, part_b = restructure_service.split_chain(
        default_tenant.id, c1.id, 1, "Part A", "Part B", can_approve=True,
    )
    rebuilt = restructure_service.merge_chains(
        default_tenant.id, part_a["id"], part_b["id"], "Rebuilt", can_approve=True,
    )

    assert _names(rebuilt) == ["Intake", "Review", "Approve"]
    assert [s["id"] for s in rebuilt["segments"]] == original_ids
    assert _orders(rebuilt) == [0, 1, 2]


@pytest.mark.parametrize("index", [1, 2, 3, 4])
def test_split_merge_round_trip_any_index(default_tenant, make_chain, index):
    names = ["S0", "S1", "S2", "S3", "S4"]
    c = make_chain("C", names)
    first, second = restructure_service.split_chain(default_tenant.id, c.id, index, "X", "Y")
    assert _names(first) + _names(second) == names
    rebuilt = restructure_service.merge_chains(default_tenant.id, first["id"], second["id"], "Z")
    assert _names(rebuilt) == names
