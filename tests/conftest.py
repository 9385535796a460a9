"""Pytest configuration and fixtures."""
import csv
import os
from io import StringIO

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_EVENTS_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""
os.environ["PROGRESS_INTERVAL"] = "2"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app
from app.services.accounts import ensure_roles
from app.services.notifications import NotificationError, NotificationService, get_notifier
from app.services.onboarding import TenantContext

STUDENT_HEADER = ["Full Name", "Email", "Roll Number", "Degree", "Branch", "Year"]
TRAINER_HEADER = ["Full Name", "Email", "Department", "Specialization"]

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingNotifier(NotificationService):
    """Notifier that keeps messages in memory."""

    def __init__(self):
        super().__init__(webhook_url="")
        self.welcomes = []
        self.reports = []

    def send_welcome(self, email, full_name, temporary_password, role):
        self.welcomes.append(
            {"email": email, "full_name": full_name, "password": temporary_password, "role": role}
        )

    def send_upload_report(self, admin_user_id, summary):
        self.reports.append({"admin_user_id": admin_user_id, **summary})


class FailingNotifier(NotificationService):
    """Notifier whose channel is always down."""

    def __init__(self):
        super().__init__(webhook_url="")

    def send_welcome(self, email, full_name, temporary_password, role):
        raise NotificationError("Notification timed out after 3.0 seconds")

    def send_upload_report(self, admin_user_id, summary):
        raise NotificationError("Notification timed out after 3.0 seconds")


def build_csv(header, rows) -> bytes:
    """Render rows as CSV bytes."""
    buffer = StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue().encode("utf-8")


@pytest.fixture
def db():
    """Create a fresh in-memory database with roles seeded."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    ensure_roles(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def tenant():
    return TenantContext(tenant_id=1, user_id=100)


@pytest.fixture
def other_tenant():
    return TenantContext(tenant_id=2, user_id=200)


@pytest.fixture
def client(db, notifier):
    """Test client sharing the test session and notifier."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def tenant_headers(tenant):
    return {"X-Tenant-Id": str(tenant.tenant_id), "X-User-Id": str(tenant.user_id)}
