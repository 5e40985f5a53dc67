import io
import os
import tempfile
from datetime import datetime, timezone
from types import SimpleNamespace

# Keep the application's own engine and blob dir away from the working tree
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BLOB_DIR", tempfile.mkdtemp(prefix="classwork-blobs-"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from classwork.core.config import settings
from classwork.core.dependencies import get_blob_store, get_notification_dispatcher
from classwork.core.security import SecurityManager
from classwork.database.base import Base
from classwork.database.init_db import init_db
from classwork.database.session import build_engine, get_db
from classwork.main import app
from classwork.models.task import Task
from classwork.models.user import User
from classwork.services.file_service import IncomingFile
from classwork.services.notification_service import NotificationDispatcher
from classwork.services.submission_service import SubmissionService
from classwork.services.task_service import TaskService
from classwork.storage.blob_store import LocalBlobStore

PASSWORD = "password123"
MB = 1024 * 1024


class FixedClock:
    """Injectable clock; tests move it explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, *args) -> None:
        self.now = datetime(*args, tzinfo=timezone.utc)


class RecordingDispatcher(NotificationDispatcher):
    def __init__(self):
        self.events = []

    def dispatch(self, event) -> None:
        self.events.append(event)


def make_file(name: str, size: int = 1024, content_type: str = "application/pdf") -> IncomingFile:
    data = (b"%PDF-1.4 " + b"x" * size)[:size]
    return IncomingFile(filename=name, content_type=content_type, stream=io.BytesIO(data), size=size)


def auth_header(user: User) -> dict:
    token = SecurityManager.create_access_token({"sub": user.id, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture()
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def test_settings():
    return settings.model_copy(update={
        "BLOB_RETRY_BACKOFF_SECONDS": 0.0,
        "BLOB_RETRY_BACKOFF_CAP_SECONDS": 0.0,
    })


@pytest.fixture()
def users(db):
    """teacher, other_teacher, student + classmate (CSE/3), outsider (ECE/1)"""
    password_hash = SecurityManager.hash_password(PASSWORD)
    people = {
        "teacher": User(email="teacher@example.com", full_name="Asha Rao", role="teacher"),
        "other_teacher": User(email="other@example.com", full_name="Ben Iyer", role="teacher"),
        "student": User(email="student@example.com", full_name="Chitra N", role="student",
                        department="CSE", year="3"),
        "classmate": User(email="classmate@example.com", full_name="Dev K", role="student",
                          department="CSE", year="3"),
        "outsider": User(email="outsider@example.com", full_name="Esha M", role="student",
                         department="ECE", year="1"),
    }
    for user in people.values():
        user.password_hash = password_hash
    db.add_all(people.values())
    db.commit()
    return SimpleNamespace(**people)


@pytest.fixture()
def make_task(db, users):
    def _make(**overrides) -> Task:
        values = dict(
            owner_id=users.teacher.id,
            title="Operating Systems Lab 3",
            assignment_type="individual",
            assignee_id=users.student.id,
            allowed_file_types=["pdf"],
            max_file_size=MB,
            submission_format="both",
            max_marks=100,
        )
        values.update(overrides)
        task = Task(**values)
        db.add(task)
        db.commit()
        return task
    return _make


# =============================================================================
# SERVICES
# =============================================================================

@pytest.fixture()
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs", io_timeout=5)


@pytest.fixture()
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture()
def clock():
    return FixedClock(datetime(2024, 1, 9, 12, 0, tzinfo=timezone.utc))


@pytest.fixture()
def service(db, blob_store, dispatcher, test_settings, clock):
    return SubmissionService(db, blob_store, dispatcher, settings=test_settings, clock=clock)


@pytest.fixture()
def task_service(db, blob_store, test_settings):
    return TaskService(db, blob_store, settings=test_settings)


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture()
def client(session_factory, blob_store, dispatcher):
    """Test client wired to the test DB, blob store and recording dispatcher."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
