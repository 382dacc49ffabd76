"""Link preview cache table.

Revision ID: 001
Revises:
Create Date: 2026-10-19

link_previews: one row per normalized URL, holding the last fetch outcome
(ok or error) with its expiry.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "link_previews",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("normalized_url", sa.Text(), nullable=False, comment="Canonical URL, cache key"),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column("images", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("price_amount", sa.Numeric(), nullable=True),
        sa.Column("price_currency", sa.String(8), nullable=True),
        sa.Column("favicon", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, comment="ok | error"),
        sa.Column("http_status", sa.Integer(), nullable=True),
        sa.Column("error_code", sa.String(32), nullable=True, comment="INVALID_URL | FETCH_BLOCKED | TIMEOUT | FETCH_ERROR | NO_METADATA"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("normalized_url", name="uq_link_previews_normalized_url"),
    )
    op.create_index(
        "ix_link_previews_expires_at",
        "link_previews",
        ["expires_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_link_previews_expires_at", table_name="link_previews")
    op.drop_table("link_previews")
