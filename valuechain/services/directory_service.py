"""
Directory lookup — read-only access to the organigram's people and units.

The value chain engine stores only person/unit ids on segments. This module
feeds the assignment pickers and turns stored ids back into display
summaries. It never writes directory rows.
"""

from __future__ import annotations

from sqlalchemy import select

from valuechain.models import db
from valuechain.models.directory import DirectoryPerson, DirectoryUnit


def list_people(tenant_id: int) -> list[dict]:
    """All people of the tenant, sorted by last then first name."""
    stmt = (
        select(DirectoryPerson)
        .where(DirectoryPerson.tenant_id == tenant_id)
        .order_by(DirectoryPerson.last_name, DirectoryPerson.first_name)
    )
    return [p.to_summary() for p in db.session.execute(stmt).scalars().all()]


def list_units(tenant_id: int) -> list[dict]:
    """All organizational units of the tenant, sorted by title."""
    stmt = (
        select(DirectoryUnit)
        .where(DirectoryUnit.tenant_id == tenant_id)
        .order_by(DirectoryUnit.title)
    )
    return [u.to_summary() for u in db.session.execute(stmt).scalars().all()]


def resolve_people(tenant_id: int, person_ids) -> dict[str, dict]:
    """Map person id → summary for the ids that exist in the tenant's directory."""
    ids = {pid for pid in person_ids if pid}
    if not ids:
        return {}
    stmt = select(DirectoryPerson).where(
        DirectoryPerson.tenant_id == tenant_id,
        DirectoryPerson.id.in_(ids),
    )
    return {p.id: p.to_summary() for p in db.session.execute(stmt).scalars().all()}


def resolve_units(tenant_id: int, unit_ids) -> dict[str, dict]:
    """Map unit id → summary for the ids that exist in the tenant's directory."""
    ids = {uid for uid in unit_ids if uid}
    if not ids:
        return {}
    stmt = select(DirectoryUnit).where(
        DirectoryUnit.tenant_id == tenant_id,
        DirectoryUnit.id.in_(ids),
    )
    return {u.id: u.to_summary() for u in db.session.execute(stmt).scalars().all()}
