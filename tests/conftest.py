import os
import sys
from pathlib import Path
from typing import Any

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("PUSH_DELIVERY_BACKEND", "disabled")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app.db.base import Base
from app.core.security import create_access_token
from app.db.models import User, UserRole
from app.db.session import get_db
from app.main import app
from app.services.notification_service import NotificationDispatcher, get_notification_dispatcher
from app.services.push_delivery import PushDelivery

TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingPushDelivery(PushDelivery):
    def __init__(self, fail_with: Exception | None = None) -> None:
        self.deliveries: list[dict[str, Any]] = []
        self.fail_with = fail_with

    def deliver(self, recipient_id: int, title: str, body: str, metadata: dict[str, Any] | None = None) -> bool:
        if self.fail_with is not None:
            raise self.fail_with
        self.deliveries.append({"recipient_id": recipient_id, "title": title, "body": body, "metadata": metadata})
        return True


@pytest.fixture(autouse=True)
def reset_database() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@pytest.fixture()
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def push_delivery() -> RecordingPushDelivery:
    return RecordingPushDelivery()


@pytest.fixture()
def failing_push_delivery() -> RecordingPushDelivery:
    return RecordingPushDelivery(fail_with=RuntimeError("push gateway down"))


@pytest.fixture()
def dispatcher(push_delivery: RecordingPushDelivery) -> NotificationDispatcher:
    return NotificationDispatcher(push_delivery=push_delivery)


@pytest.fixture()
def make_user(db_session):
    counter = {"value": 0}

    def factory(role: UserRole, full_name: str | None = None) -> User:
        counter["value"] += 1
        user = User(
            email=f"{role.value}-{counter['value']}@example.com",
            hashed_password="x",
            full_name=full_name,
            role=role.value,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return factory


@pytest.fixture()
def client(dispatcher: NotificationDispatcher) -> TestClient:
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers(make_user) -> dict[str, str]:
    admin = make_user(UserRole.ADMIN, full_name="Ada Admin")
    token = create_access_token(user_id=admin.id, role=admin.role)
    return {"Authorization": f"Bearer {token}"}
