import logging
from collections.abc import Iterable
from datetime import date, time

from sqlalchemy import func, insert, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    BookingError,
    InvalidTransition,
    NotAuthorized,
    NotFound,
    SlotConflict,
    ValidationError,
)
from app.core.metrics import BOOKING_TRANSITIONS, SLOT_CONFLICTS
from app.db.models import ACTIVE_STATUSES, BookingRequest, BookingSlotLock, RequestStatus, User, UserRole
from app.services.notification_service import NotificationDispatcher, get_notification_dispatcher
from app.services.slot_checker import Availability, SlotCheckResult, check_slot, format_time
from app.services.storage import is_postgresql_session, to_storage_error

REQUEST_NOT_FOUND_DETAIL = "Request not found"
CONSULTANT_NOT_FOUND_DETAIL = "Consultant not found"
NOT_ASSIGNED_CONSULTANT_DETAIL = "Only the assigned consultant can update this request"
NOT_ALLOWED_TO_VIEW_DETAIL = "Not enough permissions"
MISSING_FIELDS_DETAIL = "Please fill in all required fields"
RESCHEDULE_FIELDS_DETAIL = "Please provide date, from time, and to time for rescheduling"
INVALID_WINDOW_DETAIL = "End time must be after start time"
RESCHEDULE_NOTE_PREFIX = "Reschedule message: "

LOCK_ACQUIRE_ATTEMPTS = 2

logger = logging.getLogger("app.requests")


def append_reschedule_message(notes: str | None, message: str | None) -> str | None:
    if not message or not message.strip():
        return notes
    return f"{notes or ''}\n\n{RESCHEDULE_NOTE_PREFIX}{message.strip()}".strip()


def _validate_window(from_time: time, to_time: time) -> None:
    if from_time >= to_time:
        raise ValidationError(INVALID_WINDOW_DETAIL)


def _raise_for_slot(result: SlotCheckResult) -> None:
    if result.availability is Availability.INVALID_WINDOW:
        raise ValidationError(result.message or INVALID_WINDOW_DETAIL)
    if result.is_available:
        return

    SLOT_CONFLICTS.inc()
    conflicting_from, conflicting_to = result.conflicting_window
    raise SlotConflict(
        result.message,
        next_available_time=format_time(result.next_available_time),
        conflicting_window=(format_time(conflicting_from), format_time(conflicting_to)),
    )


def _bump_day_lock(db: Session, consultant_id: int, requested_date: date) -> None:
    bumped = db.execute(
        update(BookingSlotLock)
        .where(
            BookingSlotLock.consultant_id == consultant_id,
            BookingSlotLock.requested_date == requested_date,
        )
        .values(version=BookingSlotLock.version + 1)
    )
    if bumped.rowcount == 1:
        return
    db.execute(insert(BookingSlotLock).values(consultant_id=consultant_id, requested_date=requested_date, version=1))


def _lock_consultant_days(db: Session, consultant_id: int, dates: Iterable[date]) -> None:
    # first write of the transaction, dates locked in ascending order
    ordered = sorted(set(dates))
    for attempt in range(1, LOCK_ACQUIRE_ATTEMPTS + 1):
        try:
            if is_postgresql_session(db):
                db.execute(text(f"SET LOCAL lock_timeout = {int(settings.slot_lock_timeout_ms)}"))
            for requested_date in ordered:
                _bump_day_lock(db, consultant_id, requested_date)
            return
        except IntegrityError:
            # a concurrent writer created the lock row first
            db.rollback()
            if attempt == LOCK_ACQUIRE_ATTEMPTS:
                raise


def _active_bookings(
    db: Session,
    consultant_id: int,
    requested_date: date,
    exclude_request_id: int | None = None,
) -> list[BookingRequest]:
    query = select(BookingRequest).where(
        BookingRequest.consultant_id == consultant_id,
        BookingRequest.requested_date == requested_date,
        BookingRequest.status.in_(ACTIVE_STATUSES),
    )
    if exclude_request_id is not None:
        query = query.where(BookingRequest.id != exclude_request_id)
    return list(db.scalars(query).all())


def check_availability(
    db: Session,
    consultant_id: int,
    requested_date: date,
    from_time: time,
    to_time: time,
    exclude_request_id: int | None = None,
) -> SlotCheckResult:
    existing = _active_bookings(db, consultant_id, requested_date, exclude_request_id=exclude_request_id)
    return check_slot(consultant_id, requested_date, from_time, to_time, existing)


def _get_consultant(db: Session, consultant_id: int) -> User:
    consultant = db.get(User, consultant_id)
    if not consultant or not consultant.is_active or consultant.role != UserRole.CONSULTANT.value:
        raise ValidationError(CONSULTANT_NOT_FOUND_DETAIL)
    return consultant


def create_request(
    db: Session,
    created_by: int,
    consultant_id: int,
    client_name: str,
    requested_date: date,
    from_time: time,
    to_time: time,
    notes: str | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> BookingRequest:
    client_name = (client_name or "").strip()
    if not client_name or consultant_id is None or requested_date is None or from_time is None or to_time is None:
        raise ValidationError(MISSING_FIELDS_DETAIL)
    _validate_window(from_time, to_time)
    dispatcher = dispatcher or get_notification_dispatcher()

    try:
        _get_consultant(db, consultant_id)
        _lock_consultant_days(db, consultant_id, [requested_date])
        _raise_for_slot(check_availability(db, consultant_id, requested_date, from_time, to_time))

        booking_request = BookingRequest(
            created_by=created_by,
            consultant_id=consultant_id,
            client_name=client_name,
            requested_date=requested_date,
            from_time=from_time,
            to_time=to_time,
            notes=notes or None,
            status=RequestStatus.PENDING.value,
        )
        db.add(booking_request)
        db.flush()
        notification = dispatcher.notify_new_request(db, booking_request)
        db.commit()
    except BookingError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        raise to_storage_error(db, exc, "create_request") from exc

    db.refresh(booking_request)
    BOOKING_TRANSITIONS.labels(transition="create").inc()
    logger.info(
        "booking_request_created id=%s consultant_id=%s date=%s window=%s-%s",
        booking_request.id,
        consultant_id,
        requested_date.isoformat(),
        format_time(from_time),
        format_time(to_time),
    )
    dispatcher.publish(notification)
    return booking_request


def _get_assigned_request(db: Session, request_id: int, acting_consultant_id: int) -> BookingRequest:
    booking_request = db.get(BookingRequest, request_id)
    if not booking_request:
        raise NotFound(REQUEST_NOT_FOUND_DETAIL)
    if booking_request.consultant_id != acting_consultant_id:
        raise NotAuthorized(NOT_ASSIGNED_CONSULTANT_DETAIL)
    return booking_request


def _ensure_pending(booking_request: BookingRequest, target: RequestStatus) -> None:
    if not booking_request.is_pending:
        raise InvalidTransition(
            f"Cannot mark request as {target.value}: it is already {booking_request.status}"
        )


def _transition(
    db: Session,
    request_id: int,
    acting_consultant_id: int,
    target: RequestStatus,
    dispatcher: NotificationDispatcher | None,
    new_schedule: tuple[date, time, time] | None = None,
    message: str | None = None,
) -> BookingRequest:
    dispatcher = dispatcher or get_notification_dispatcher()

    try:
        booking_request = _get_assigned_request(db, request_id, acting_consultant_id)
        locked_dates = [booking_request.requested_date]
        if new_schedule is not None:
            locked_dates.append(new_schedule[0])

        _lock_consultant_days(db, booking_request.consultant_id, locked_dates)
        db.refresh(booking_request, with_for_update=True)
        _ensure_pending(booking_request, target)

        if new_schedule is not None:
            new_date, new_from_time, new_to_time = new_schedule
            # the request's own slot never blocks its reschedule
            _raise_for_slot(
                check_availability(
                    db,
                    booking_request.consultant_id,
                    new_date,
                    new_from_time,
                    new_to_time,
                    exclude_request_id=booking_request.id,
                )
            )
            booking_request.requested_date = new_date
            booking_request.from_time = new_from_time
            booking_request.to_time = new_to_time
            booking_request.notes = append_reschedule_message(booking_request.notes, message)

        booking_request.status = target.value
        db.flush()
        notification = dispatcher.notify_transition(db, booking_request, booking_request.consultant)
        db.commit()
    except BookingError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        raise to_storage_error(db, exc, f"{target.value}_request") from exc

    db.refresh(booking_request)
    BOOKING_TRANSITIONS.labels(transition=target.value).inc()
    logger.info(
        "booking_request_%s id=%s consultant_id=%s created_by=%s",
        target.value,
        booking_request.id,
        booking_request.consultant_id,
        booking_request.created_by,
    )
    dispatcher.publish(notification)
    return booking_request


def approve_request(
    db: Session,
    request_id: int,
    acting_consultant_id: int,
    dispatcher: NotificationDispatcher | None = None,
) -> BookingRequest:
    return _transition(db, request_id, acting_consultant_id, RequestStatus.APPROVED, dispatcher)


def reject_request(
    db: Session,
    request_id: int,
    acting_consultant_id: int,
    dispatcher: NotificationDispatcher | None = None,
) -> BookingRequest:
    return _transition(db, request_id, acting_consultant_id, RequestStatus.REJECTED, dispatcher)


def reschedule_request(
    db: Session,
    request_id: int,
    acting_consultant_id: int,
    new_date: date,
    new_from_time: time,
    new_to_time: time,
    message: str | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> BookingRequest:
    if new_date is None or new_from_time is None or new_to_time is None:
        raise ValidationError(RESCHEDULE_FIELDS_DETAIL)
    _validate_window(new_from_time, new_to_time)
    return _transition(
        db,
        request_id,
        acting_consultant_id,
        RequestStatus.RESCHEDULED,
        dispatcher,
        new_schedule=(new_date, new_from_time, new_to_time),
        message=message,
    )


def get_request_for_viewer(db: Session, request_id: int, viewer: User) -> BookingRequest:
    booking_request = db.get(BookingRequest, request_id)
    if not booking_request:
        raise NotFound(REQUEST_NOT_FOUND_DETAIL)

    is_admin = viewer.role == UserRole.ADMIN.value
    if not (is_admin or viewer.id in (booking_request.created_by, booking_request.consultant_id)):
        raise NotAuthorized(NOT_ALLOWED_TO_VIEW_DETAIL)
    return booking_request


def list_requests(
    db: Session,
    created_by: int | None = None,
    consultant_id: int | None = None,
    status: RequestStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[BookingRequest]:
    query = select(BookingRequest)
    if created_by is not None:
        query = query.where(BookingRequest.created_by == created_by)
    if consultant_id is not None:
        query = query.where(BookingRequest.consultant_id == consultant_id)
    if status is not None:
        query = query.where(BookingRequest.status == status.value)

    query = query.order_by(BookingRequest.created_at.desc(), BookingRequest.id.desc()).limit(limit).offset(offset)
    return list(db.scalars(query).all())


def request_stats(db: Session) -> dict[str, int]:
    stats = {status.value: 0 for status in RequestStatus}
    rows = db.execute(
        select(BookingRequest.status, func.count(BookingRequest.id)).group_by(BookingRequest.status)
    ).all()
    for status, count in rows:
        stats[status] = count
    stats["total"] = sum(stats.values())
    return stats
