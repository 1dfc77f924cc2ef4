from datetime import datetime

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    id: int
    recipient_id: int
    request_id: int | None
    type: str
    message: str
    read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationTestRequest(BaseModel):
    type: str = Field(default="test", min_length=1, max_length=30)
    message: str = Field(default="This is a realtime test!", min_length=1, max_length=500)


class BulkNotificationResult(BaseModel):
    count: int
