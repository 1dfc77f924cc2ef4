"""create booking requests

Revision ID: 20261012_02
Revises: 20261012_01
Create Date: 2026-10-12 10:20:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261012_02"
down_revision: Union[str, None] = "20261012_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "booking_requests",
        sa.Column("id", sa.Integer(), sa.Identity(), primary_key=True, nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("consultant_id", sa.Integer(), nullable=False),
        sa.Column("client_name", sa.String(length=120), nullable=False),
        sa.Column("requested_date", sa.Date(), nullable=False),
        sa.Column("from_time", sa.Time(), nullable=False),
        sa.Column("to_time", sa.Time(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["consultant_id"], ["users.id"], ondelete="RESTRICT"),
        sa.CheckConstraint("from_time < to_time", name="ck_booking_requests_window"),
    )
    op.create_index("ix_booking_requests_id", "booking_requests", ["id"], unique=False)
    op.create_index("ix_booking_requests_created_by", "booking_requests", ["created_by"], unique=False)
    op.create_index(
        "ix_booking_requests_consultant_date",
        "booking_requests",
        ["consultant_id", "requested_date"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_booking_requests_consultant_date", table_name="booking_requests")
    op.drop_index("ix_booking_requests_created_by", table_name="booking_requests")
    op.drop_index("ix_booking_requests_id", table_name="booking_requests")
    op.drop_table("booking_requests")
