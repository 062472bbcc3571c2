"""Shared fixtures: in-memory SQLite database, seeded profiles and levels."""
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from academy_core import models
from academy_core.access_store import AccessRequestStore
from academy_core.directory import DatabaseDirectory
from academy_core.workflow import AccessWorkflowService


class RecordingSink:
    """NotificationSink that keeps every call in memory."""

    def __init__(self):
        self.sent = []

    def notify(self, user_id, type, title, message, payload=None):
        self.sent.append({
            "user_id": user_id,
            "type": type,
            "title": title,
            "message": message,
            "payload": payload,
        })

    def to(self, user_id):
        return [n for n in self.sent if n["user_id"] == user_id]


class FailingSink:
    """NotificationSink whose delivery channel is down."""

    def __init__(self):
        self.attempts = 0

    def notify(self, user_id, type, title, message, payload=None):
        self.attempts += 1
        raise RuntimeError("notification channel unavailable")


class BlindStore(AccessRequestStore):
    """Store whose duplicate pre-checks see nothing until the session rolls back.

    Reproduces a writer that passed its read-side checks just before a
    concurrent writer committed the same (user, level) pair.
    """

    def __init__(self, db):
        super().__init__(db)
        self.blind = True
        event.listen(db, "after_rollback", self._see_again)

    def _see_again(self, session):
        self.blind = False

    def find_pending_request(self, user_id, level_id):
        if self.blind:
            return None
        return super().find_pending_request(user_id, level_id)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def enforce_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    models.Base.metadata.create_all(engine)
    yield engine
    models.Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


def _add(db, obj):
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@pytest.fixture
def student(db):
    return _add(db, models.Profile(full_name="Uma Learner", email="uma@example.com", role=models.UserRole.STUDENT))


@pytest.fixture
def other_student(db):
    return _add(db, models.Profile(full_name="Omar Learner", email="omar@example.com", role=models.UserRole.STUDENT))


@pytest.fixture
def teacher(db):
    return _add(db, models.Profile(full_name="Tess Teacher", email="tess@example.com", role=models.UserRole.TEACHER))


@pytest.fixture
def admin(db):
    return _add(db, models.Profile(full_name="Ada Admin", email="ada@example.com", role=models.UserRole.ADMIN))


@pytest.fixture
def level(db):
    return _add(db, models.Level(title="Level 3: Circuits", level_number=3, access_policy=models.AccessPolicy.RESTRICTED))


@pytest.fixture
def public_level(db):
    return _add(db, models.Level(title="Level 1: Basics", level_number=1, access_policy=models.AccessPolicy.PUBLIC))


@pytest.fixture
def store(db):
    return AccessRequestStore(db)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def directory(db):
    return DatabaseDirectory(db)


@pytest.fixture
def service(store, sink, directory):
    return AccessWorkflowService(store=store, sink=sink, directory=directory)


@pytest.fixture
def make_blind_store(db):
    """Factory for stores that miss concurrent writes in their pre-checks."""
    return lambda: BlindStore(db)


@pytest.fixture
def failing_sink():
    return FailingSink()


@pytest.fixture
def grant_count(db):
    """Count grant rows for a (user, level) pair, live or expired."""
    def count(user_id, level_id):
        return (
            db.query(models.LevelAccess)
            .filter(
                models.LevelAccess.user_id == user_id,
                models.LevelAccess.level_id == level_id,
            )
            .count()
        )
    return count
