"""
Инициальная миграция.

Создаёт таблицу video_jobs.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_video_jobs"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "video_jobs",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column(
            "status",
            sa.Enum("UPLOADED", "PROCESSING", "READY", "FAILED", name="videojobstatus"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=512), nullable=False, server_default=""),
        sa.Column("original_path", sa.Text(), nullable=True),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("duration_millis", sa.Integer(), nullable=True),
        sa.Column("thumbnail_key", sa.Text(), nullable=True),
        sa.Column("resolution_artifacts", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_video_jobs_owner_id", "video_jobs", ["owner_id"])


def downgrade() -> None:
    op.drop_index("ix_video_jobs_owner_id", table_name="video_jobs")
    op.drop_table("video_jobs")
    sa.Enum(name="videojobstatus").drop(op.get_bind(), checkfirst=True)
