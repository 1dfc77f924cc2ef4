"""create booking slot locks

Revision ID: 20261013_04
Revises: 20261012_03
Create Date: 2026-10-13 09:15:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261013_04"
down_revision: Union[str, None] = "20261012_03"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "booking_slot_locks",
        sa.Column("consultant_id", sa.Integer(), nullable=False),
        sa.Column("requested_date", sa.Date(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["consultant_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("consultant_id", "requested_date", name="pk_booking_slot_locks"),
    )


def downgrade() -> None:
    op.drop_table("booking_slot_locks")
