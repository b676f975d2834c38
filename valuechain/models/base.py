"""
TenantModel — abstract base class for tenant-scoped models.

Models that need tenant isolation inherit from TenantModel instead of
db.Model directly, which adds an indexed tenant_id FK column. Every service
query filters on it explicitly.
"""

from valuechain.models import db


class TenantModel(db.Model):
    """Abstract base for tenant-scoped tables."""
    __abstract__ = True

    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
