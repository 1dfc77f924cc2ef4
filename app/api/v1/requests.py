from datetime import date, time

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_roles
from app.api.pagination import DEFAULT_PAGE_SIZE, LimitParam, OffsetParam
from app.db.models import RequestStatus, User, UserRole
from app.db.session import get_db
from app.schemas.booking_request import (
    AvailabilityResponse,
    BookingRequestCreate,
    BookingRequestReschedule,
    BookingRequestResponse,
    RequestStatsResponse,
)
from app.services.notification_service import NotificationDispatcher, get_notification_dispatcher
from app.services.request_service import (
    approve_request,
    check_availability,
    create_request,
    get_request_for_viewer,
    list_requests,
    reject_request,
    request_stats,
    reschedule_request,
)
from app.services.slot_checker import format_time

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post("", response_model=BookingRequestResponse, status_code=status.HTTP_201_CREATED)
def create_booking_request(
    payload: BookingRequestCreate,
    current_user: User = Depends(require_roles(UserRole.SALES, UserRole.ADMIN)),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingRequestResponse:
    booking_request = create_request(
        db=db,
        created_by=current_user.id,
        consultant_id=payload.consultant_id,
        client_name=payload.client_name,
        requested_date=payload.requested_date,
        from_time=payload.from_time,
        to_time=payload.to_time,
        notes=payload.notes,
        dispatcher=dispatcher,
    )
    return BookingRequestResponse.model_validate(booking_request)


@router.get("/availability", response_model=AvailabilityResponse, status_code=status.HTTP_200_OK)
def get_slot_availability(
    consultant_id: int,
    requested_date: date = Query(alias="date"),
    from_time: time = Query(),
    to_time: time = Query(),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AvailabilityResponse:
    result = check_availability(db, consultant_id, requested_date, from_time, to_time)
    return AvailabilityResponse(
        available=result.is_available,
        message=result.message,
        next_available_time=format_time(result.next_available_time) if result.next_available_time else None,
    )


@router.get("/me", response_model=list[BookingRequestResponse], status_code=status.HTTP_200_OK)
def list_my_requests(
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    limit: LimitParam = DEFAULT_PAGE_SIZE,
    offset: OffsetParam = 0,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[BookingRequestResponse]:
    requests = list_requests(db, created_by=current_user.id, status=status_filter, limit=limit, offset=offset)
    return [BookingRequestResponse.model_validate(booking_request) for booking_request in requests]


@router.get("/assigned", response_model=list[BookingRequestResponse], status_code=status.HTTP_200_OK)
def list_assigned_requests(
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    limit: LimitParam = DEFAULT_PAGE_SIZE,
    offset: OffsetParam = 0,
    current_user: User = Depends(require_roles(UserRole.CONSULTANT)),
    db: Session = Depends(get_db),
) -> list[BookingRequestResponse]:
    requests = list_requests(db, consultant_id=current_user.id, status=status_filter, limit=limit, offset=offset)
    return [BookingRequestResponse.model_validate(booking_request) for booking_request in requests]


@router.get("/stats", response_model=RequestStatsResponse, status_code=status.HTTP_200_OK)
def get_request_stats(
    _: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> RequestStatsResponse:
    return RequestStatsResponse(**request_stats(db))


@router.get("", response_model=list[BookingRequestResponse], status_code=status.HTTP_200_OK)
def list_all_requests(
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    limit: LimitParam = DEFAULT_PAGE_SIZE,
    offset: OffsetParam = 0,
    _: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> list[BookingRequestResponse]:
    requests = list_requests(db, status=status_filter, limit=limit, offset=offset)
    return [BookingRequestResponse.model_validate(booking_request) for booking_request in requests]


@router.get("/{request_id}", response_model=BookingRequestResponse, status_code=status.HTTP_200_OK)
def get_booking_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> BookingRequestResponse:
    booking_request = get_request_for_viewer(db, request_id=request_id, viewer=current_user)
    return BookingRequestResponse.model_validate(booking_request)


@router.patch("/{request_id}/approve", response_model=BookingRequestResponse, status_code=status.HTTP_200_OK)
def approve_booking_request(
    request_id: int,
    current_user: User = Depends(require_roles(UserRole.CONSULTANT)),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingRequestResponse:
    booking_request = approve_request(
        db=db,
        request_id=request_id,
        acting_consultant_id=current_user.id,
        dispatcher=dispatcher,
    )
    return BookingRequestResponse.model_validate(booking_request)


@router.patch("/{request_id}/reject", response_model=BookingRequestResponse, status_code=status.HTTP_200_OK)
def reject_booking_request(
    request_id: int,
    current_user: User = Depends(require_roles(UserRole.CONSULTANT)),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingRequestResponse:
    booking_request = reject_request(
        db=db,
        request_id=request_id,
        acting_consultant_id=current_user.id,
        dispatcher=dispatcher,
    )
    return BookingRequestResponse.model_validate(booking_request)


@router.patch("/{request_id}/reschedule", response_model=BookingRequestResponse, status_code=status.HTTP_200_OK)
def reschedule_booking_request(
    request_id: int,
    payload: BookingRequestReschedule,
    current_user: User = Depends(require_roles(UserRole.CONSULTANT)),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingRequestResponse:
    booking_request = reschedule_request(
        db=db,
        request_id=request_id,
        acting_consultant_id=current_user.id,
        new_date=payload.requested_date,
        new_from_time=payload.from_time,
        new_to_time=payload.to_time,
        message=payload.message,
        dispatcher=dispatcher,
    )
    return BookingRequestResponse.model_validate(booking_request)
