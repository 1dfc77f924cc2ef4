from app.db.models import RequestStatus
from app.realtime.change_feed import ChangeEvent, EventType
from app.services.slot_checker import format_time

REQUESTS_TABLE = "booking_requests"


def toast_message_for(change: ChangeEvent, viewer_id: int) -> str | None:
    """Short in-app message for ``viewer_id`` about a booking request change, if any."""
    if change.table != REQUESTS_TABLE or change.current is None:
        return None

    current = change.current
    client_name = current.get("client_name")

    if change.event_type is EventType.INSERT:
        if current.get("consultant_id") == viewer_id:
            return f"New request received for {client_name}"
        return None

    if change.event_type is not EventType.UPDATE or current.get("created_by") != viewer_id:
        return None

    previous_status = (change.previous or {}).get("status")
    status = current.get("status")
    if not status or previous_status == status:
        return None

    if status == RequestStatus.APPROVED.value:
        return f'Request for "{client_name}" has been approved'
    if status == RequestStatus.REJECTED.value:
        return f'Request for "{client_name}" has been rejected'
    if status == RequestStatus.RESCHEDULED.value and current.get("requested_date") and current.get("from_time"):
        return (
            f'Request for "{client_name}" has been rescheduled to '
            f'{current["requested_date"].isoformat()} at {format_time(current["from_time"])}'
        )
    return f'Request for "{client_name}" status changed to {status}'
