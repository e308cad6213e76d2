"""Wizard draft persistence."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261019_01_wizard_drafts"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "wizard_drafts",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("draft_key", sa.String(length=128), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("current_step", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("creation_method", sa.String(length=32), nullable=True),
    )
    op.create_index("ix_wizard_drafts_draft_key", "wizard_drafts", ["draft_key"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_wizard_drafts_draft_key", table_name="wizard_drafts")
    op.drop_table("wizard_drafts")
