from celery import Celery

from app.core.config import settings

celery_app = Celery(
    "consultant_booking",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.tasks.push"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    task_acks_late=True,
)
