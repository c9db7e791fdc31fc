"""create radar_cache and radar_rate_limits

Revision ID: 0001_create_radar_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

radar_cache holds one search payload per spatial/radius/industry bucket
and is swept by expires_at. radar_rate_limits holds one counter per
tenant and UTC day, incremented with INSERT ... ON CONFLICT.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_create_radar_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "radar_cache",
        sa.Column("cache_key", sa.String(length=255), primary_key=True),
        sa.Column("industry", sa.String(length=100), nullable=False),
        sa.Column("lat_bucket", sa.Float(), nullable=False),
        sa.Column("lng_bucket", sa.Float(), nullable=False),
        sa.Column("radius_miles", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("result_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_radar_cache_expires_at", "radar_cache", ["expires_at"])

    op.create_table(
        "radar_rate_limits",
        sa.Column("org_id", sa.String(length=255), nullable=False),
        sa.Column("search_date", sa.Date(), nullable=False),
        sa.Column("search_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "last_search_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("org_id", "search_date"),
        sa.CheckConstraint("search_count >= 0", name="ck_search_count_nonneg"),
    )


def downgrade() -> None:
    op.drop_table("radar_rate_limits")
    op.drop_index("ix_radar_cache_expires_at", table_name="radar_cache")
    op.drop_table("radar_cache")
