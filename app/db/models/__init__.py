from app.db.models.booking_request import ACTIVE_STATUSES, BookingRequest, RequestStatus
from app.db.models.booking_slot_lock import BookingSlotLock
from app.db.models.notification import Notification, NotificationType
from app.db.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "BookingRequest",
    "RequestStatus",
    "ACTIVE_STATUSES",
    "BookingSlotLock",
    "Notification",
    "NotificationType",
]
