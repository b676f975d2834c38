"""
Organizational directory mirror — people and units.

Read-only from the engine's point of view: segments reference these rows by
id (weak references, no FK) and the rows are only used to resolve actor and
unit summaries for the chain listing and the assignment pickers.
"""

from __future__ import annotations

from valuechain.models import db
from valuechain.models.base import TenantModel


class DirectoryPerson(TenantModel):
    """A person from the organigram."""

    __tablename__ = "directory_people"

    id = db.Column(db.String(36), primary_key=True)
    first_name = db.Column(db.String(100), nullable=False, default="")
    last_name = db.Column(db.String(100), nullable=False, default="")
    title = db.Column(db.String(200), nullable=True)
    avatar_url = db.Column(db.String(500), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "title": self.title,
            "avatar_url": self.avatar_url,
        }


class DirectoryUnit(TenantModel):
    """An organizational section (commission, working group, board...)."""

    __tablename__ = "directory_units"

    id = db.Column(db.String(36), primary_key=True)
    title = db.Column(db.String(200), nullable=False)

    def to_summary(self) -> dict:
        return {"id": self.id, "title": self.title}
