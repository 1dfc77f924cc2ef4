from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import NamedTuple, Protocol

BOOKING_BUFFER = timedelta(minutes=20)
TIME_FORMAT = "%H:%M"


class BookedWindow(Protocol):
    consultant_id: int
    requested_date: date
    from_time: time
    to_time: time


class SlotWindow(NamedTuple):
    consultant_id: int
    requested_date: date
    from_time: time
    to_time: time


class Availability(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    INVALID_WINDOW = "invalid_window"


@dataclass(frozen=True)
class SlotCheckResult:
    availability: Availability
    message: str | None = None
    next_available_time: time | None = None
    conflicting_window: tuple[time, time] | None = None

    @property
    def is_available(self) -> bool:
        return self.availability is Availability.AVAILABLE


def format_time(value: time) -> str:
    return value.strftime(TIME_FORMAT)


def format_window(from_time: time, to_time: time) -> str:
    return f"{format_time(from_time)} - {format_time(to_time)}"


def _conflicts(
    proposed_start: datetime,
    proposed_end: datetime,
    booking_start: datetime,
    booking_end: datetime,
) -> bool:
    # the buffer follows each window, never precedes it
    buffered_end = proposed_end + BOOKING_BUFFER
    booking_buffered_end = booking_end + BOOKING_BUFFER

    starts_before_and_runs_into = proposed_start < booking_start and buffered_end > booking_start
    starts_inside = booking_start <= proposed_start < booking_buffered_end
    ends_inside = booking_start < proposed_end <= booking_buffered_end
    contains = proposed_start <= booking_start and buffered_end >= booking_buffered_end
    return starts_before_and_runs_into or starts_inside or ends_inside or contains


def check_slot(
    consultant_id: int,
    requested_date: date,
    from_time: time,
    to_time: time,
    existing: Iterable[BookedWindow],
) -> SlotCheckResult:
    if from_time >= to_time:
        return SlotCheckResult(
            availability=Availability.INVALID_WINDOW,
            message="End time must be after start time",
        )

    proposed_start = datetime.combine(requested_date, from_time)
    proposed_end = datetime.combine(requested_date, to_time)

    same_day = sorted(
        (
            booking
            for booking in existing
            if booking.consultant_id == consultant_id and booking.requested_date == requested_date
        ),
        key=lambda booking: (booking.from_time, booking.to_time),
    )
    for booking in same_day:
        booking_start = datetime.combine(booking.requested_date, booking.from_time)
        booking_end = datetime.combine(booking.requested_date, booking.to_time)
        if not _conflicts(proposed_start, proposed_end, booking_start, booking_end):
            continue

        next_available = (booking_end + BOOKING_BUFFER).time()
        buffer_minutes = int(BOOKING_BUFFER.total_seconds() // 60)
        return SlotCheckResult(
            availability=Availability.UNAVAILABLE,
            message=(
                f"This consultant is already booked from {format_time(booking.from_time)} "
                f"to {format_time(booking.to_time)}. Please choose a time after "
                f"{format_time(next_available)} (with {buffer_minutes}-minute buffer)."
            ),
            next_available_time=next_available,
            conflicting_window=(booking.from_time, booking.to_time),
        )

    return SlotCheckResult(availability=Availability.AVAILABLE)
