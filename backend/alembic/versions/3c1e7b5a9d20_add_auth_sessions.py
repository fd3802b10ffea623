"""add auth sessions

Revision ID: 3c1e7b5a9d20
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c1e7b5a9d20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "auth_sessions",
        sa.Column("identity", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("refresh_hash", sa.String(length=60), nullable=False),
        sa.Column("origin_address", sa.String(length=45), nullable=False),
        sa.Column("created_at", sa.String(length=26), nullable=True),
        sa.Column("rotated_at", sa.String(length=26), nullable=True),
        sa.PrimaryKeyConstraint("identity"),
    )
    with op.batch_alter_table("auth_sessions", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_auth_sessions_session_id"), ["session_id"], unique=True)


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table("auth_sessions", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_auth_sessions_session_id"))

    op.drop_table("auth_sessions")
