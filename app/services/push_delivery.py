import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from app.core.config import settings

logger = logging.getLogger("app.push")


class PushDelivery(ABC):
    """Best-effort delivery of a notification to the recipient's devices."""

    @abstractmethod
    def deliver(self, recipient_id: int, title: str, body: str, metadata: dict[str, Any] | None = None) -> bool:
        raise NotImplementedError


class NullPushDelivery(PushDelivery):
    def deliver(self, recipient_id: int, title: str, body: str, metadata: dict[str, Any] | None = None) -> bool:
        logger.debug("push_delivery_disabled recipient_id=%s", recipient_id)
        return False


class HttpPushDelivery(PushDelivery):
    """Posts ``{recipient_id, title, body, data}`` to a push gateway."""

    def __init__(self, url: str, timeout: float, client: httpx.Client | None = None) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client

    def deliver(self, recipient_id: int, title: str, body: str, metadata: dict[str, Any] | None = None) -> bool:
        if not self._url:
            logger.warning("push_delivery_skipped reason=no_url recipient_id=%s", recipient_id)
            return False

        payload = {"recipient_id": recipient_id, "title": title, "body": body, "data": metadata or {}}
        try:
            if self._client is not None:
                response = self._client.post(self._url, json=payload, timeout=self._timeout)
            else:
                response = httpx.post(self._url, json=payload, timeout=self._timeout)
        except httpx.HTTPError as exc:
            logger.warning(
                "push_delivery_failed recipient_id=%s error=%s",
                recipient_id,
                exc.__class__.__name__,
            )
            return False

        if response.status_code in (404, 410):
            logger.info(
                "push_delivery_no_subscription recipient_id=%s status=%s",
                recipient_id,
                response.status_code,
            )
            return False
        if response.is_error:
            logger.warning(
                "push_delivery_failed recipient_id=%s status=%s",
                recipient_id,
                response.status_code,
            )
            return False

        logger.info("push_delivered recipient_id=%s", recipient_id)
        return True


class CeleryPushDelivery(PushDelivery):
    """Hands the HTTP delivery to a Celery worker so the caller never waits on it."""

    def deliver(self, recipient_id: int, title: str, body: str, metadata: dict[str, Any] | None = None) -> bool:
        from app.tasks.push import deliver_push_task

        deliver_push_task.delay(recipient_id, title, body, metadata or {})
        return True


def build_push_delivery() -> PushDelivery:
    backend = settings.push_delivery_backend.strip().lower()
    if backend == "celery":
        return CeleryPushDelivery()
    if backend == "http":
        return HttpPushDelivery(url=settings.push_delivery_url, timeout=settings.push_delivery_timeout_seconds)
    return NullPushDelivery()
