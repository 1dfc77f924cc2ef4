import asyncio

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.api.pagination import DEFAULT_PAGE_SIZE, LimitParam, OffsetParam
from app.db.models import User
from app.db.session import get_db
from app.realtime.change_feed import change_feed
from app.realtime.streams import RealtimeStream
from app.schemas.notification import BulkNotificationResult, NotificationResponse, NotificationTestRequest
from app.services.notification_service import (
    NotificationDispatcher,
    clear_notifications,
    get_notification_dispatcher,
    list_notifications,
    mark_all_read,
    mark_read,
    send_test_notification,
)

STREAM_KEEPALIVE_SECONDS = 15.0

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/me", response_model=list[NotificationResponse], status_code=status.HTTP_200_OK)
def list_my_notifications(
    unread_only: bool = Query(default=False),
    limit: LimitParam = DEFAULT_PAGE_SIZE,
    offset: OffsetParam = 0,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[NotificationResponse]:
    notifications = list_notifications(
        db,
        recipient_id=current_user.id,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )
    return [NotificationResponse.model_validate(notification) for notification in notifications]


@router.patch("/read-all", response_model=BulkNotificationResult, status_code=status.HTTP_200_OK)
def mark_my_notifications_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BulkNotificationResult:
    return BulkNotificationResult(count=mark_all_read(db, recipient_id=current_user.id))


@router.patch("/{notification_id}/read", response_model=NotificationResponse, status_code=status.HTTP_200_OK)
def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationResponse:
    notification = mark_read(db, notification_id=notification_id, recipient_id=current_user.id)
    return NotificationResponse.model_validate(notification)


@router.delete("/me", response_model=BulkNotificationResult, status_code=status.HTTP_200_OK)
def clear_my_notifications(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BulkNotificationResult:
    return BulkNotificationResult(count=clear_notifications(db, recipient_id=current_user.id))


@router.post("/test", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
def create_test_notification(
    payload: NotificationTestRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> NotificationResponse:
    notification = send_test_notification(
        db,
        recipient_id=current_user.id,
        notification_type=payload.type,
        message=payload.message,
        dispatcher=dispatcher,
    )
    return NotificationResponse.model_validate(notification)


@router.get("/stream", status_code=status.HTTP_200_OK)
async def stream_my_events(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> StreamingResponse:
    stream = RealtimeStream(change_feed, viewer_id=current_user.id, loop=asyncio.get_running_loop())

    async def events():
        with stream:
            while not await request.is_disconnected():
                item = await stream.get(timeout=STREAM_KEEPALIVE_SECONDS)
                yield item.to_sse() if item is not None else ": keep-alive\n\n"

    return StreamingResponse(events(), media_type="text/event-stream")
