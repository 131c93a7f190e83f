import os
import tempfile
from types import SimpleNamespace

# The application engine is created at import time; point it at a throwaway file before anything imports it.
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+pysqlite:///{os.path.join(tempfile.gettempdir(), f'schedule_engine_test_{os.getpid()}.db')}",
)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from schedule_engine.api.deps import get_db  # noqa: E402
from schedule_engine.db.base import Base  # noqa: E402
from schedule_engine.main import app  # noqa: E402
from schedule_engine.models import Classroom, ClassroomType, Group, StudyPlan, Teacher  # noqa: E402


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def catalog(db_session):
    groups = {
        "is21": Group(name="IS-21", student_count=25),
        "is22": Group(name="IS-22", student_count=28),
        "pr31": Group(name="PR-31", student_count=18),
    }
    teachers = {
        "ivanova": Teacher(name="Ivanova A.", email="ivanova@example.com"),
        "petrov": Teacher(name="Petrov B.", email="petrov@example.com"),
        "sidorova": Teacher(name="Sidorova C."),
    }
    rooms = {
        "r101": Classroom(name="101", type=ClassroomType.auditorium, capacity=30),
        "lab": Classroom(name="Lab 2", type=ClassroomType.computer_lab, capacity=30),
        "hall": Classroom(name="Hall A", type=ClassroomType.lecture_hall, capacity=120),
        "gym": Classroom(name="Gym", type=ClassroomType.gymnasium, capacity=60),
    }
    db_session.add_all([*groups.values(), *teachers.values(), *rooms.values()])
    db_session.flush()

    plans = {
        "math": StudyPlan(
            name="Mathematics",
            teacher_id=teachers["ivanova"].id,
            hours_per_week=3,
            groups=[groups["is21"], groups["is22"]],
        ),
        "programming": StudyPlan(
            name="Programming",
            teacher_id=teachers["petrov"].id,
            hours_per_week=2,
            room_type=ClassroomType.computer_lab,
            groups=[groups["is21"]],
        ),
        "pe": StudyPlan(
            name="Physical Education",
            teacher_id=teachers["sidorova"].id,
            hours_per_week=1,
            groups=[groups["is21"], groups["pr31"]],
        ),
    }
    db_session.add_all(plans.values())
    db_session.commit()

    return SimpleNamespace(
        groups={key: value.id for key, value in groups.items()},
        teachers={key: value.id for key, value in teachers.items()},
        rooms={key: value.id for key, value in rooms.items()},
        plans={key: value.id for key, value in plans.items()},
    )


@pytest.fixture()
def client(session_factory, catalog):
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
