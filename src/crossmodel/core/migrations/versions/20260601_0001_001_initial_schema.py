"""Initial schema with data_sources and join_catalog tables.

Revision ID: 001
Revises:
Create Date: 2026-06-01
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# Revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Create data_sources table
    op.create_table(
        "data_sources",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("source_type", sa.String(length=50), nullable=False),
        sa.Column("connection_info", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_data_sources_name", "data_sources", ["name"], unique=True)

    # Create join_catalog table, one row per join in canonical orientation
    op.create_table(
        "join_catalog",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("left_data_source_id", sa.Integer(), nullable=False),
        sa.Column("left_table_name", sa.String(length=255), nullable=False),
        sa.Column("left_column_name", sa.String(length=255), nullable=False),
        sa.Column("right_data_source_id", sa.Integer(), nullable=False),
        sa.Column("right_table_name", sa.String(length=255), nullable=False),
        sa.Column("right_column_name", sa.String(length=255), nullable=False),
        sa.Column("join_type", sa.String(length=10), nullable=False, server_default="INNER"),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("left_schema_hash", sa.String(length=64), nullable=True),
        sa.Column("right_schema_hash", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(
            ["left_data_source_id"],
            ["data_sources.id"],
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["right_data_source_id"],
            ["data_sources.id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "left_data_source_id",
            "left_table_name",
            "left_column_name",
            "right_data_source_id",
            "right_table_name",
            "right_column_name",
            name="uq_join_catalog_pair",
        ),
    )
    op.create_index(
        "ix_join_catalog_left_source",
        "join_catalog",
        ["left_data_source_id"],
    )
    op.create_index(
        "ix_join_catalog_right_source",
        "join_catalog",
        ["right_data_source_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_join_catalog_right_source", table_name="join_catalog")
    op.drop_index("ix_join_catalog_left_source", table_name="join_catalog")
    op.drop_table("join_catalog")
    op.drop_index("ix_data_sources_name", table_name="data_sources")
    op.drop_table("data_sources")
