from datetime import date, datetime, time
from enum import Enum

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, String, Text, Time, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RESCHEDULED = "rescheduled"


ACTIVE_STATUSES = (RequestStatus.PENDING.value, RequestStatus.APPROVED.value)


class BookingRequest(Base):
    __tablename__ = "booking_requests"
    __table_args__ = (
        CheckConstraint("from_time < to_time", name="ck_booking_requests_window"),
        Index("ix_booking_requests_consultant_date", "consultant_id", "requested_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    consultant_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    client_name: Mapped[str] = mapped_column(String(120), nullable=False)
    requested_date: Mapped[date] = mapped_column(Date, nullable=False)
    from_time: Mapped[time] = mapped_column(Time, nullable=False)
    to_time: Mapped[time] = mapped_column(Time, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RequestStatus.PENDING.value)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    creator = relationship("User", foreign_keys=[created_by])
    consultant = relationship("User", foreign_keys=[consultant_id])

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING.value
