"""user presence

Revision ID: 8e2d4b61c9a5
Revises: 3c1f9a2b7d40
Create Date: 2026-10-19 14:03:27.941652

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "8e2d4b61c9a5"
down_revision: Union[str, Sequence[str], None] = "3c1f9a2b7d40"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add the user presence table."""
    op.create_table(
        "user_presence",
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("is_online", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )


def downgrade() -> None:
    """Drop the user presence table."""
    op.drop_table("user_presence")
