import asyncio
from datetime import date, time

import pytest
from sqlalchemy.orm import Session

from app.db.models import BookingRequest, Notification, RequestStatus, UserRole
from app.realtime.change_feed import ChangeEvent, ChangeFeed, EventType
from app.realtime.streams import RealtimeStream
from app.realtime.toasts import toast_message_for


@pytest.fixture()
def feed():
    feed = ChangeFeed()
    feed.attach(Session)
    try:
        yield feed
    finally:
        feed.detach(Session)


@pytest.fixture()
def people(make_user):
    sales = make_user(UserRole.SALES, full_name="Sam Sales")
    consultant = make_user(UserRole.CONSULTANT, full_name="Dana Lee")
    return sales, consultant


def _add_request(db_session, sales, consultant, client_name: str = "Acme") -> BookingRequest:
    booking_request = BookingRequest(
        created_by=sales.id,
        consultant_id=consultant.id,
        client_name=client_name,
        requested_date=date(2024, 1, 10),
        from_time=time(9, 0),
        to_time=time(10, 0),
        status=RequestStatus.PENDING.value,
    )
    db_session.add(booking_request)
    return booking_request


def test_committed_insert_is_published(feed, db_session, people):
    received: list[ChangeEvent] = []
    feed.subscribe("booking_requests", received.append)
    sales, consultant = people

    _add_request(db_session, sales, consultant)
    db_session.flush()
    assert received == []

    db_session.commit()

    assert len(received) == 1
    assert received[0].event_type is EventType.INSERT
    assert received[0].row["client_name"] == "Acme"
    assert received[0].row["status"] == "pending"


def test_rolled_back_changes_are_never_published(feed, db_session, people):
    received: list[ChangeEvent] = []
    feed.subscribe("booking_requests", received.append)
    sales, consultant = people

    _add_request(db_session, sales, consultant)
    db_session.flush()
    db_session.rollback()

    assert received == []


def test_update_carries_previous_status(feed, db_session, people):
    sales, consultant = people
    booking_request = _add_request(db_session, sales, consultant)
    db_session.commit()

    received: list[ChangeEvent] = []
    feed.subscribe("booking_requests", received.append)
    assert booking_request.status == "pending"
    booking_request.status = RequestStatus.APPROVED.value
    db_session.commit()

    assert len(received) == 1
    assert received[0].event_type is EventType.UPDATE
    assert received[0].previous["status"] == "pending"
    assert received[0].current["status"] == "approved"


def test_delete_is_published_with_previous_row(feed, db_session, people):
    sales, _ = people
    notification = Notification(recipient_id=sales.id, type="test", message="hi", read=False)
    db_session.add(notification)
    db_session.commit()

    received: list[ChangeEvent] = []
    feed.subscribe("notifications", received.append)
    db_session.delete(notification)
    db_session.commit()

    assert [change.event_type for change in received] == [EventType.DELETE]
    assert received[0].current is None
    assert received[0].row["message"] == "hi"


def test_subscribers_only_see_their_table_and_predicate(feed, db_session, people):
    sales, consultant = people
    requests_seen: list[ChangeEvent] = []
    filtered_seen: list[ChangeEvent] = []
    feed.subscribe("notifications", requests_seen.append)
    feed.subscribe(
        "booking_requests",
        filtered_seen.append,
        predicate=lambda change: change.row.get("client_name") == "Globex",
    )

    _add_request(db_session, sales, consultant, client_name="Acme")
    _add_request(db_session, sales, consultant, client_name="Globex")
    db_session.commit()

    assert requests_seen == []
    assert [change.row["client_name"] for change in filtered_seen] == ["Globex"]


def test_unsubscribed_handler_stops_receiving(feed, db_session, people):
    sales, consultant = people
    received: list[ChangeEvent] = []
    handle = feed.subscribe("booking_requests", received.append)

    assert feed.unsubscribe(handle) is True
    assert feed.unsubscribe(handle) is False
    assert feed.subscriber_count("booking_requests") == 0

    _add_request(db_session, sales, consultant)
    db_session.commit()

    assert received == []


def test_failing_handler_does_not_break_other_subscribers_or_commit(feed, db_session, people):
    sales, consultant = people
    received: list[ChangeEvent] = []

    def explode(_change: ChangeEvent) -> None:
        raise RuntimeError("subscriber bug")

    feed.subscribe("booking_requests", explode)
    feed.subscribe("booking_requests", received.append)

    booking_request = _add_request(db_session, sales, consultant)
    db_session.commit()

    assert len(received) == 1
    assert db_session.get(BookingRequest, booking_request.id) is not None


def _insert(row: dict) -> ChangeEvent:
    return ChangeEvent(EventType.INSERT, "booking_requests", current=row)


def _update(previous_status: str, row: dict) -> ChangeEvent:
    return ChangeEvent(EventType.UPDATE, "booking_requests", current=row, previous={**row, "status": previous_status})


def test_toast_for_new_request_goes_to_assigned_consultant():
    change = _insert({"id": 1, "consultant_id": 2, "created_by": 1, "client_name": "Acme", "status": "pending"})

    assert toast_message_for(change, viewer_id=2) == "New request received for Acme"
    assert toast_message_for(change, viewer_id=1) is None


@pytest.mark.parametrize(
    "status,expected",
    [
        ("approved", 'Request for "Acme" has been approved'),
        ("rejected", 'Request for "Acme" has been rejected'),
        ("rescheduled", 'Request for "Acme" has been rescheduled to 2024-02-01 at 14:00'),
    ],
)
def test_toast_for_status_change_goes_to_creator(status, expected):
    row = {
        "id": 1,
        "consultant_id": 2,
        "created_by": 1,
        "client_name": "Acme",
        "status": status,
        "requested_date": date(2024, 2, 1),
        "from_time": time(14, 0),
    }

    assert toast_message_for(_update("pending", row), viewer_id=1) == expected
    assert toast_message_for(_update("pending", row), viewer_id=2) is None


def test_no_toast_when_status_did_not_change():
    row = {"id": 1, "consultant_id": 2, "created_by": 1, "client_name": "Acme", "status": "pending"}

    assert toast_message_for(_update("pending", row), viewer_id=1) is None


def _notification_insert(recipient_id: int, notification_id: int) -> ChangeEvent:
    row = {"id": notification_id, "recipient_id": recipient_id, "type": "test", "message": "hello"}
    return ChangeEvent(EventType.INSERT, "notifications", current=row)


def test_realtime_stream_delivers_toasts_and_own_notifications(feed):
    approved_row = {"id": 9, "created_by": 1, "consultant_id": 2, "client_name": "Acme", "status": "approved"}

    async def scenario():
        loop = asyncio.get_running_loop()
        with RealtimeStream(feed, viewer_id=1, loop=loop) as stream:
            assert stream.is_open
            feed.publish(_update("pending", approved_row))
            feed.publish(_notification_insert(recipient_id=2, notification_id=4))
            feed.publish(_notification_insert(recipient_id=1, notification_id=5))
            first = await stream.get(timeout=1)
            second = await stream.get(timeout=1)
            nothing = await stream.get(timeout=0.05)
        return stream, first, second, nothing

    stream, first, second, nothing = asyncio.run(scenario())

    assert first.kind == "toast"
    assert first.payload == {"message": 'Request for "Acme" has been approved', "request_id": 9}
    assert second.kind == "notification"
    assert second.payload["id"] == 5
    assert second.to_sse().startswith("event: notification\ndata: ")
    assert nothing is None
    assert not stream.is_open
    assert feed.subscriber_count() == 0
