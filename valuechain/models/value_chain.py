"""
Value chain models — chains, ordered segments, actor/unit links, canvas viewport.

Tables:
  value_chains          — one operational process (ordered list of segments)
  value_chain_segments  — one step of a chain; display_order is 0..n-1 per chain
  segment_actors        — weak link segment → directory person (no FK on person)
  segment_units         — weak link segment → directory unit (no FK on unit)
  chain_viewports       — one canvas viewport (zoom/pan) per chain

Segment positions on the canvas are stored on the segment row itself so they
travel with the segment through merge and split.

display_order contiguity is enforced in the service layer, not with a unique
index: renumbering in place would trip a (chain_id, display_order) constraint
halfway through the flush.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from valuechain.models import db
from valuechain.models.base import TenantModel


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Approval lifecycle ───────────────────────────────────────────────────────

APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"

APPROVAL_STATUSES = frozenset({APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED})

# approved/rejected are terminal: nothing in the engine moves a chain back to pending.
APPROVAL_TRANSITIONS = {
    APPROVAL_PENDING:  [APPROVAL_APPROVED, APPROVAL_REJECTED],
    APPROVAL_APPROVED: [],
    APPROVAL_REJECTED: [],
}


def validate_approval_transition(old_status, new_status):
    """Return True if the ValueChain approval transition is valid."""
    return new_status in APPROVAL_TRANSITIONS.get(old_status, [])


TITLE_MAX_LENGTH = 200
FUNCTION_NAME_MAX_LENGTH = 200


# ── ValueChain ───────────────────────────────────────────────────────────────


class ValueChain(TenantModel):
    """A named, ordered sequence of segments representing one process."""

    __tablename__ = "value_chains"
    __table_args__ = (
        db.Index("ix_value_chains_tenant_status", "tenant_id", "approval_status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(TITLE_MAX_LENGTH), nullable=False)
    description = db.Column(db.Text, nullable=True)
    approval_status = db.Column(
        db.String(20),
        nullable=False,
        default=APPROVAL_PENDING,
        comment="pending | approved | rejected",
    )
    created_by = db.Column(db.String(100), nullable=True)
    approved_by = db.Column(
        db.String(100),
        nullable=True,
        comment="Actor who approved OR rejected the chain.",
    )
    approved_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    segments = db.relationship(
        "ChainSegment",
        back_populates="chain",
        order_by="ChainSegment.display_order",
        cascade="all, delete-orphan",
        lazy="select",
    )
    viewport = db.relationship(
        "ChainViewport",
        back_populates="chain",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="select",
    )

    def to_dict(self) -> dict:
        """Chain columns only; segments are attached by chain_repository.serialize_chains."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "description": self.description,
            "approval_status": self.approval_status,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ── ChainSegment ─────────────────────────────────────────────────────────────


class ChainSegment(TenantModel):
    """One step of a value chain."""

    __tablename__ = "value_chain_segments"
    __table_args__ = (
        db.Index("ix_value_chain_segments_chain_order", "chain_id", "display_order"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    chain_id = db.Column(
        db.String(36),
        db.ForeignKey("value_chains.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    function_name = db.Column(db.String(FUNCTION_NAME_MAX_LENGTH), nullable=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    position_x = db.Column(db.Float, nullable=True, comment="Canvas x; NULL = default layout")
    position_y = db.Column(db.Float, nullable=True, comment="Canvas y; NULL = default layout")
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    chain = db.relationship("ValueChain", back_populates="segments")
    actor_links = db.relationship(
        "SegmentActor",
        back_populates="segment",
        order_by="SegmentActor.id",
        cascade="all, delete-orphan",
        lazy="select",
    )
    unit_links = db.relationship(
        "SegmentUnit",
        back_populates="segment",
        order_by="SegmentUnit.id",
        cascade="all, delete-orphan",
        lazy="select",
    )

    @property
    def actor_ids(self) -> list[str]:
        return [link.person_id for link in self.actor_links]

    @property
    def unit_ids(self) -> list[str]:
        return [link.unit_id for link in self.unit_links]

    @property
    def position(self) -> dict | None:
        if self.position_x is None or self.position_y is None:
            return None
        return {"x": self.position_x, "y": self.position_y}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "chain_id": self.chain_id,
            "function_name": self.function_name,
            "display_order": self.display_order,
            "position": self.position,
            "actor_ids": self.actor_ids,
            "unit_ids": self.unit_ids,
        }


# ── Assignment links ─────────────────────────────────────────────────────────


class SegmentActor(db.Model):
    """Segment → person assignment. person_id is a weak directory reference."""

    __tablename__ = "segment_actors"
    __table_args__ = (
        db.UniqueConstraint("segment_id", "person_id", name="uq_segment_actor"),
    )

    id = db.Column(db.Integer, primary_key=True)
    segment_id = db.Column(
        db.String(36),
        db.ForeignKey("value_chain_segments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    person_id = db.Column(db.String(36), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    segment = db.relationship("ChainSegment", back_populates="actor_links")


class SegmentUnit(db.Model):
    """Segment → organizational unit assignment. unit_id is a weak reference."""

    __tablename__ = "segment_units"
    __table_args__ = (
        db.UniqueConstraint("segment_id", "unit_id", name="uq_segment_unit"),
    )

    id = db.Column(db.Integer, primary_key=True)
    segment_id = db.Column(
        db.String(36),
        db.ForeignKey("value_chain_segments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    unit_id = db.Column(db.String(36), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    segment = db.relationship("ChainSegment", back_populates="unit_links")


# ── Canvas viewport ──────────────────────────────────────────────────────────


class ChainViewport(db.Model):
    """Zoom/pan state of a chain's canvas. One row per chain."""

    __tablename__ = "chain_viewports"

    id = db.Column(db.Integer, primary_key=True)
    chain_id = db.Column(
        db.String(36),
        db.ForeignKey("value_chains.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    zoom = db.Column(db.Float, nullable=False, default=1.0)
    pan_x = db.Column(db.Float, nullable=False, default=0.0)
    pan_y = db.Column(db.Float, nullable=False, default=0.0)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    chain = db.relationship("ValueChain", back_populates="viewport")

    def to_dict(self) -> dict:
        return {"zoom": self.zoom, "pan_x": self.pan_x, "pan_y": self.pan_y}
