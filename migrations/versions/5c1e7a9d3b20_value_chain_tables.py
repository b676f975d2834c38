"""value_chain_tables

Create tenants, directory mirror and value chain tables.

Revision ID: 5c1e7a9d3b20
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5c1e7a9d3b20"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "tenants" not in existing_tables:
        op.create_table(
            "tenants",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("plan", sa.String(length=50), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    if "directory_people" not in existing_tables:
        op.create_table(
            "directory_people",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=False),
            sa.Column("last_name", sa.String(length=100), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=True),
            sa.Column("avatar_url", sa.String(length=500), nullable=True),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_directory_people_tenant_id", "directory_people", ["tenant_id"])

    if "directory_units" not in existing_tables:
        op.create_table(
            "directory_units",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_directory_units_tenant_id", "directory_units", ["tenant_id"])

    if "value_chains" not in existing_tables:
        op.create_table(
            "value_chains",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("approval_status", sa.String(length=20), nullable=False,
                      comment="pending | approved | rejected"),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            sa.Column("approved_by", sa.String(length=100), nullable=True,
                      comment="Actor who approved OR rejected the chain."),
            sa.Column("approved_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_value_chains_tenant_id", "value_chains", ["tenant_id"])
        op.create_index("ix_value_chains_tenant_status", "value_chains", ["tenant_id", "approval_status"])

    if "value_chain_segments" not in existing_tables:
        op.create_table(
            "value_chain_segments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("chain_id", sa.String(length=36), nullable=False),
            sa.Column("function_name", sa.String(length=200), nullable=False),
            sa.Column("display_order", sa.Integer(), nullable=False),
            sa.Column("position_x", sa.Float(), nullable=True, comment="Canvas x; NULL = default layout"),
            sa.Column("position_y", sa.Float(), nullable=True, comment="Canvas y; NULL = default layout"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["chain_id"], ["value_chains.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_value_chain_segments_tenant_id", "value_chain_segments", ["tenant_id"])
        op.create_index("ix_value_chain_segments_chain_id", "value_chain_segments", ["chain_id"])
        op.create_index(
            "ix_value_chain_segments_chain_order", "value_chain_segments", ["chain_id", "display_order"],
        )

    if "segment_actors" not in existing_tables:
        op.create_table(
            "segment_actors",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("segment_id", sa.String(length=36), nullable=False),
            sa.Column("person_id", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["segment_id"], ["value_chain_segments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("segment_id", "person_id", name="uq_segment_actor"),
        )
        op.create_index("ix_segment_actors_segment_id", "segment_actors", ["segment_id"])
        op.create_index("ix_segment_actors_person_id", "segment_actors", ["person_id"])

    if "segment_units" not in existing_tables:
        op.create_table(
            "segment_units",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("segment_id", sa.String(length=36), nullable=False),
            sa.Column("unit_id", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["segment_id"], ["value_chain_segments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("segment_id", "unit_id", name="uq_segment_unit"),
        )
        op.create_index("ix_segment_units_segment_id", "segment_units", ["segment_id"])
        op.create_index("ix_segment_units_unit_id", "segment_units", ["unit_id"])

    if "chain_viewports" not in existing_tables:
        op.create_table(
            "chain_viewports",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("chain_id", sa.String(length=36), nullable=False),
            sa.Column("zoom", sa.Float(), nullable=False),
            sa.Column("pan_x", sa.Float(), nullable=False),
            sa.Column("pan_y", sa.Float(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["chain_id"], ["value_chains.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("chain_id"),
        )


def downgrade():
    existing_tables = set(sa_inspect(op.get_bind()).get_table_names())
    for table in (
        "chain_viewports",
        "segment_units",
        "segment_actors",
        "value_chain_segments",
        "value_chains",
        "directory_units",
        "directory_people",
        "tenants",
    ):
        if table in existing_tables:
            op.drop_table(table)
