from typing import Any

from app.core.config import settings
from app.core.metrics import PUSH_DELIVERY_FAILURES
from app.services.push_delivery import HttpPushDelivery
from app.tasks.celery_app import celery_app


def deliver_push(recipient_id: int, title: str, body: str, metadata: dict[str, Any]) -> bool:
    delivery = HttpPushDelivery(url=settings.push_delivery_url, timeout=settings.push_delivery_timeout_seconds)
    delivered = delivery.deliver(recipient_id=recipient_id, title=title, body=body, metadata=metadata)
    if not delivered:
        PUSH_DELIVERY_FAILURES.inc()
    return delivered


@celery_app.task(name="notifications.deliver_push")
def deliver_push_task(recipient_id: int, title: str, body: str, metadata: dict[str, Any]) -> dict[str, bool]:
    return {"delivered": deliver_push(recipient_id, title, body, metadata)}
