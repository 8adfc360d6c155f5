"""Pytest fixtures and configuration for nowline tests."""

import os

# Keep the module-level engine off the developer's database file
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
import threading
from datetime import datetime, date
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
import uuid

from nowline.database.database import Base
from nowline.database.timeline_store import TimelineStore
from nowline.engine.clock import FixedClock
from nowline.engine.planner import TimelinePlanner
from nowline.models.task import Task
from nowline.models.time_block import TimeBlock, BlockStatus
from nowline.models.workspace import UnpluggedWindow


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_DAY = date(2024, 1, 1)


def at(hhmm: str, day: date = TEST_DAY) -> datetime:
    """Datetime for an "HH:mm" wall-clock time on the test day."""
    hour, minute = hhmm.split(":")
    return datetime(day.year, day.month, day.day, int(hour), int(minute))


@pytest.fixture
def test_workspace_id():
    """Workspace ID used by store-backed tests."""
    return "test-workspace-123"


@pytest.fixture(scope="function")
def db_session(test_workspace_id):
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    Also creates a test workspace in the database.
    """
    from nowline.database.models import WorkspaceDB

    # Create engine with StaticPool for in-memory database
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create session
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    # Create test workspace (required for foreign key constraints)
    session.add(WorkspaceDB(id=test_workspace_id, name="Test Workspace", created_at=at("08:00")))
    session.commit()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(db_session: Session):
    """Create a TimelineStore instance for testing."""
    return TimelineStore(db_session)


@pytest.fixture
def clock():
    """Fixed clock at 09:00 on the test day."""
    return FixedClock(at("09:00"))


@pytest.fixture
def planner(store, test_workspace_id, clock):
    """Planner over the test workspace with a private lock."""
    return TimelinePlanner(store, test_workspace_id, clock=clock, day=TEST_DAY, lock=threading.Lock())


@pytest.fixture
def sample_task_base(test_workspace_id):
    """Base task data for creating test tasks.

    Returns a dict with default task attributes that can be overridden.
    """
    now = at("08:00")
    return {
        "id": str(uuid.uuid4()),
        "workspace_id": test_workspace_id,
        "title": "Test Task",
        "planning_memo": None,
        "is_urgent": False,
        "estimated_minutes": 30,
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def sample_task(sample_task_base):
    """Create a sample Task object for testing."""
    return Task(**sample_task_base)


@pytest.fixture
def make_block(test_workspace_id):
    """Factory for TimeBlock objects on the test day."""

    def _make(start: str, end: str, status=BlockStatus.WILL, task_id=None, block_id=None, **extra):
        return TimeBlock(
            id=block_id or str(uuid.uuid4()),
            task_id=task_id or str(uuid.uuid4()),
            workspace_id=test_workspace_id,
            title=extra.pop("title", "Block"),
            start_time=at(start),
            end_time=at(end),
            status=status,
            **extra,
        )

    return _make


@pytest.fixture
def make_window(test_workspace_id):
    """Factory for UnpluggedWindow objects."""

    def _make(start: str, end: str, label: str = "Break"):
        return UnpluggedWindow(
            id=str(uuid.uuid4()),
            workspace_id=test_workspace_id,
            label=label,
            start_time=start,
            end_time=end,
        )

    return _make


@pytest.fixture
def test_client(db_session: Session, clock):
    """Create a FastAPI test client with overridden database and clock dependencies."""
    from nowline.api.app import app, get_clock
    from nowline.database.database import get_db

    # Override the get_db dependency to use our test database session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as client:
        yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
