import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from datetime import date  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from weekweave.api.deps import get_db  # noqa: E402
from weekweave.core.security import create_access_token  # noqa: E402
from weekweave.db.base import Base  # noqa: E402
from weekweave.main import app  # noqa: E402
from weekweave.models import (  # noqa: E402
    DayOfWeek,
    SchoolClass,
    Subject,
    Teacher,
    TimetableEntry,
)

SCHOOL_ID = "school-1"
MONDAY = date(2024, 3, 4)
TUESDAY = date(2024, 3, 5)


def _seed(db) -> SimpleNamespace:
    db.add_all(
        [
            SchoolClass(id="class-1", school_id=SCHOOL_ID, grade="7", section="A", room="R1"),
            SchoolClass(id="class-2", school_id=SCHOOL_ID, grade="7", section="B", room="R2"),
            Subject(id="subj-math", school_id=SCHOOL_ID, name="Mathematics", code="MATH"),
            Subject(id="subj-eng", school_id=SCHOOL_ID, name="English", code="ENG"),
            Teacher(id="teacher-t", school_id=SCHOOL_ID, name="Tara", subjects=["subj-math"]),
            Teacher(id="teacher-s", school_id=SCHOOL_ID, name="Sanjay", subjects=["subj-math"]),
            Teacher(id="teacher-u", school_id=SCHOOL_ID, name="Uma", subjects=["subj-eng"]),
            Teacher(id="teacher-v", school_id=SCHOOL_ID, name="Vikram", subjects=["subj-math", "subj-eng"]),
        ]
    )
    db.add_all(
        [
            TimetableEntry(
                id="entry-mon-1",
                class_id="class-1",
                teacher_id="teacher-u",
                subject_id="subj-eng",
                day=DayOfWeek.monday,
                period=1,
                start_time="09:00",
                end_time="09:45",
                room="R1",
            ),
            TimetableEntry(
                id="entry-mon-2",
                class_id="class-1",
                teacher_id="teacher-t",
                subject_id="subj-math",
                day=DayOfWeek.monday,
                period=2,
                start_time="09:45",
                end_time="10:30",
                room="R1",
            ),
            TimetableEntry(
                id="entry-tue-2",
                class_id="class-1",
                teacher_id="teacher-t",
                subject_id="subj-math",
                day=DayOfWeek.tuesday,
                period=2,
                start_time="09:45",
                end_time="10:30",
                room="R1",
            ),
            TimetableEntry(
                id="entry-c2-mon-2",
                class_id="class-2",
                teacher_id="teacher-v",
                subject_id="subj-eng",
                day=DayOfWeek.monday,
                period=2,
                start_time="09:45",
                end_time="10:30",
                room="R2",
            ),
            TimetableEntry(
                id="entry-c2-mon-3",
                class_id="class-2",
                teacher_id="teacher-s",
                subject_id="subj-math",
                day=DayOfWeek.monday,
                period=3,
                start_time="10:30",
                end_time="11:15",
                room="R2",
            ),
        ]
    )
    db.commit()
    return SimpleNamespace(
        school_id=SCHOOL_ID,
        class_id="class-1",
        other_class_id="class-2",
        teacher_t="teacher-t",
        teacher_s="teacher-s",
        teacher_u="teacher-u",
        teacher_v="teacher-v",
        math="subj-math",
        english="subj-eng",
        monday_math="entry-mon-2",
        monday_english="entry-mon-1",
        tuesday_math="entry-tue-2",
        monday=MONDAY,
        tuesday=TUESDAY,
    )


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def seed(db_session):
    return _seed(db_session)


@pytest.fixture()
def client(session_factory, seed):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _headers(subject: str, role: str, teacher_id: str | None = None) -> dict[str, str]:
    token = create_access_token(subject, role=role, teacher_id=teacher_id, school_id=SCHOOL_ID)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return _headers("admin-1", "admin")


@pytest.fixture()
def teacher_headers():
    def build(teacher_id: str) -> dict[str, str]:
        return _headers(f"user-{teacher_id}", "teacher", teacher_id=teacher_id)

    return build
