from datetime import date, datetime, time

from pydantic import BaseModel, Field, model_validator

from app.db.models import RequestStatus


def _check_window(from_time: time, to_time: time) -> None:
    if from_time >= to_time:
        raise ValueError("to_time must be later than from_time")


class BookingRequestCreate(BaseModel):
    consultant_id: int
    client_name: str = Field(min_length=1, max_length=120)
    requested_date: date
    from_time: time
    to_time: time
    notes: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def validate_window(self) -> "BookingRequestCreate":
        _check_window(self.from_time, self.to_time)
        return self


class BookingRequestReschedule(BaseModel):
    requested_date: date
    from_time: time
    to_time: time
    message: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_window(self) -> "BookingRequestReschedule":
        _check_window(self.from_time, self.to_time)
        return self


class BookingRequestResponse(BaseModel):
    id: int
    created_by: int
    consultant_id: int
    client_name: str
    requested_date: date
    from_time: time
    to_time: time
    notes: str | None
    status: RequestStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    available: bool
    message: str | None = None
    next_available_time: str | None = None


class RequestStatsResponse(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    rescheduled: int
