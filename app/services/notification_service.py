import logging
from datetime import date, time

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import NotFound, ValidationError
from app.core.metrics import NOTIFICATIONS_CREATED, PUSH_DELIVERY_FAILURES
from app.db.models import BookingRequest, Notification, NotificationType, RequestStatus, User
from app.services.push_delivery import PushDelivery, build_push_delivery
from app.services.slot_checker import format_window
from app.services.storage import commit_or_raise

NOTIFICATION_NOT_FOUND_DETAIL = "Notification not found"
DEFAULT_TEST_MESSAGE = "This is a realtime test!"

PUSH_TITLES = {
    NotificationType.APPROVED.value: "Request Approved",
    NotificationType.REJECTED.value: "Request Rejected",
    NotificationType.RESCHEDULED.value: "Request Rescheduled",
    NotificationType.NEW_REQUEST.value: "New Request",
}

logger = logging.getLogger("app.notifications")


def format_request_date(value: date) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def render_transition_message(
    status: str,
    client_name: str,
    consultant_name: str,
    requested_date: date,
    from_time: time,
    to_time: time,
) -> str:
    when = f"{format_request_date(requested_date)}, {format_window(from_time, to_time)}"
    if status == RequestStatus.APPROVED.value:
        return f"Your request for {client_name} on {when} has been approved by {consultant_name}"
    if status == RequestStatus.REJECTED.value:
        return f"Your request for {client_name} has been rejected by {consultant_name}"
    if status == RequestStatus.RESCHEDULED.value:
        return f"Your request for {client_name} on {when} has been rescheduled by {consultant_name}"
    raise ValueError(f"No notification for status {status!r}")


def render_new_request_message(client_name: str) -> str:
    return f"New request received for {client_name}"


class NotificationDispatcher:
    """``notify_*`` stage rows in the caller's transaction; ``publish`` runs after commit and never raises."""

    def __init__(self, push_delivery: PushDelivery) -> None:
        self.push_delivery = push_delivery

    def notify_new_request(self, db: Session, booking_request: BookingRequest) -> Notification:
        return self.record(
            db,
            recipient_id=booking_request.consultant_id,
            notification_type=NotificationType.NEW_REQUEST.value,
            message=render_new_request_message(booking_request.client_name),
            request_id=booking_request.id,
        )

    def notify_transition(self, db: Session, booking_request: BookingRequest, consultant: User) -> Notification:
        message = render_transition_message(
            status=booking_request.status,
            client_name=booking_request.client_name,
            consultant_name=consultant.display_name,
            requested_date=booking_request.requested_date,
            from_time=booking_request.from_time,
            to_time=booking_request.to_time,
        )
        return self.record(
            db,
            recipient_id=booking_request.created_by,
            notification_type=booking_request.status,
            message=message,
            request_id=booking_request.id,
        )

    def publish(self, notification: Notification) -> bool:
        NOTIFICATIONS_CREATED.labels(type=notification.type).inc()
        title = PUSH_TITLES.get(notification.type, "New Notification")
        metadata = {
            "type": notification.type,
            "request_id": notification.request_id,
            "notification_id": notification.id,
        }
        try:
            delivered = self.push_delivery.deliver(
                recipient_id=notification.recipient_id,
                title=title,
                body=notification.message,
                metadata=metadata,
            )
        except Exception:
            PUSH_DELIVERY_FAILURES.inc()
            logger.exception(
                "push_delivery_error notification_id=%s recipient_id=%s",
                notification.id,
                notification.recipient_id,
            )
            return False
        return delivered

    def record(
        self,
        db: Session,
        recipient_id: int,
        notification_type: str,
        message: str,
        request_id: int | None,
    ) -> Notification:
        notification = Notification(
            recipient_id=recipient_id,
            type=notification_type,
            message=message,
            read=False,
            request_id=request_id,
        )
        db.add(notification)
        db.flush()
        return notification


_dispatcher: NotificationDispatcher | None = None


def get_notification_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(push_delivery=build_push_delivery())
    return _dispatcher


def list_notifications(
    db: Session,
    recipient_id: int,
    unread_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> list[Notification]:
    query = select(Notification).where(Notification.recipient_id == recipient_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).offset(offset)
    return list(db.scalars(query).all())


def mark_read(db: Session, notification_id: int, recipient_id: int) -> Notification:
    notification = db.scalar(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.recipient_id == recipient_id,
        )
    )
    if not notification:
        raise NotFound(NOTIFICATION_NOT_FOUND_DETAIL)

    if not notification.read:
        notification.read = True
        commit_or_raise(db, "mark_notification_read")
        db.refresh(notification)
    return notification


def _unread_or_all(db: Session, recipient_id: int, unread_only: bool) -> list[Notification]:
    query = select(Notification).where(Notification.recipient_id == recipient_id)
    if unread_only:
        query = query.where(Notification.read.is_(False))
    return list(db.scalars(query).all())


def mark_all_read(db: Session, recipient_id: int) -> int:
    # row by row so the change feed sees each UPDATE
    notifications = _unread_or_all(db, recipient_id, unread_only=True)
    for notification in notifications:
        notification.read = True
    if notifications:
        commit_or_raise(db, "mark_all_notifications_read")
    return len(notifications)


def clear_notifications(db: Session, recipient_id: int) -> int:
    notifications = _unread_or_all(db, recipient_id, unread_only=False)
    for notification in notifications:
        db.delete(notification)
    if notifications:
        commit_or_raise(db, "clear_notifications")
    logger.info("notifications_cleared recipient_id=%s count=%s", recipient_id, len(notifications))
    return len(notifications)


def send_test_notification(
    db: Session,
    recipient_id: int,
    notification_type: str = NotificationType.TEST.value,
    message: str = DEFAULT_TEST_MESSAGE,
    dispatcher: NotificationDispatcher | None = None,
) -> Notification:
    if not message.strip():
        raise ValidationError("Notification message must not be empty")
    if db.get(User, recipient_id) is None:
        raise NotFound("Recipient not found")

    dispatcher = dispatcher or get_notification_dispatcher()
    notification = dispatcher.record(
        db,
        recipient_id=recipient_id,
        notification_type=notification_type,
        message=message,
        request_id=None,
    )
    commit_or_raise(db, "send_test_notification")
    db.refresh(notification)
    dispatcher.publish(notification)
    return notification
