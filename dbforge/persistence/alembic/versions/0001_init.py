"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-16 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "teams",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(63), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "blueprints",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(63), nullable=False, unique=True),
        sa.Column("provider", sa.String(63), nullable=False),
        sa.Column("manifests", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_blueprints_provider", "blueprints", ["provider"])

    op.create_table(
        "tiers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(63), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        # Nullable only for legacy rows; RESTRICT keeps referenced blueprints alive.
        sa.Column(
            "blueprint_id",
            sa.String(36),
            sa.ForeignKey("blueprints.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("destruction_strategy", sa.String(32), nullable=False, server_default="hard_delete"),
        sa.Column("backup_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_tiers_blueprint_id", "tiers", ["blueprint_id"])

    op.create_table(
        "databases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(63), nullable=False),
        sa.Column(
            "owner_team_id",
            sa.String(36),
            sa.ForeignKey("teams.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "tier_id",
            sa.String(36),
            sa.ForeignKey("tiers.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("purpose", sa.Text(), nullable=False, server_default=""),
        sa.Column("namespace", sa.String(63), nullable=False),
        sa.Column("cluster_name", sa.String(128), nullable=False),
        sa.Column("pooler_name", sa.String(128), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="provisioning"),
        sa.Column("host", sa.String(255), nullable=True),
        sa.Column("port", sa.Integer(), nullable=True),
        sa.Column("secret_name", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_databases_owner_team_id", "databases", ["owner_team_id"])
    op.create_index("ix_databases_tier_id", "databases", ["tier_id"])
    op.create_index("ix_databases_status", "databases", ["status"])
    # Names are unique among live rows only, so a deleted name can be reused.
    op.create_index(
        "uq_databases_name_active",
        "databases",
        ["name"],
        unique=True,
        postgresql_where=sa.text("deleted_at IS NULL"),
        sqlite_where=sa.text("deleted_at IS NULL"),
    )


def downgrade() -> None:
    op.drop_index("uq_databases_name_active", table_name="databases")
    op.drop_index("ix_databases_status", table_name="databases")
    op.drop_index("ix_databases_tier_id", table_name="databases")
    op.drop_index("ix_databases_owner_team_id", table_name="databases")
    op.drop_table("databases")
    op.drop_index("ix_tiers_blueprint_id", table_name="tiers")
    op.drop_table("tiers")
    op.drop_index("ix_blueprints_provider", table_name="blueprints")
    op.drop_table("blueprints")
    op.drop_table("teams")
