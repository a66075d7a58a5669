"""Media catalog and tag suggestion tables."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261018_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "media",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("media_type", sa.String(length=16), nullable=False),
        sa.Column("audience", sa.String(length=16), nullable=False),
        sa.Column("title", sa.String(length=256)),
        sa.Column("description", sa.Text()),
        sa.Column("storage_path", sa.String(length=512), nullable=False),
        sa.Column("duration_seconds", sa.Float()),
        sa.Column("width", sa.Integer()),
        sa.Column("height", sa.Integer()),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("storage_path", name="uq_media_storage_path"),
    )
    op.create_index("ix_media_owner_id", "media", ["owner_id"])

    op.create_table(
        "tags",
        sa.Column("slug", sa.String(length=128), primary_key=True),
        sa.Column("label", sa.String(length=128), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )


def downgrade() -> None:
    op.drop_table("tags")
    op.drop_index("ix_media_owner_id", table_name="media")
    op.drop_table("media")
