import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from eduexamine.auth_utils import create_access_token, hash_password
from eduexamine.config import Settings
from eduexamine.database import create_db_and_tables
from eduexamine.main import create_app
from eduexamine.models import Branch, Institute, Student

# ============================================================================
# APP, ENGINE & TEST CLIENT
# ============================================================================


@pytest.fixture
def settings():
    """Settings pointing at a private in-memory SQLite database."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        jwt_secret="test-access-secret",
        refresh_secret="test-refresh-secret",
        frontend_url="http://frontend.test",
    )


@pytest.fixture
def app(settings):
    """Fresh application with its own engine; schema recreated per test."""
    application = create_app(settings)
    engine = application.state.engine
    create_db_and_tables(engine)
    yield application
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def engine(app):
    return app.state.engine


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers(settings):
    """Build bearer headers for an (id, email, role) identity."""

    def _headers(user_id: int, email: str, role: str) -> dict:
        token = create_access_token(settings, user_id, email, role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


def add_student(engine, institute_id: int, branch_id, name: str, email: str, password: str = "secret123") -> int:
    with Session(engine) as session:
        student = Student(
            name=name,
            email=email,
            password_hash=hash_password(password),
            institute_id=institute_id,
            branch_id=branch_id,
        )
        session.add(student)
        session.commit()
        session.refresh(student)
        return student.id


@pytest.fixture
def institute(engine, auth_headers):
    """An institute account plus ready-made auth headers."""
    with Session(engine) as session:
        inst = Institute(
            name="Springfield Institute",
            email="admin@springfield.edu",
            password_hash=hash_password("inst-pass"),
            address="742 Evergreen Terrace",
        )
        session.add(inst)
        session.commit()
        session.refresh(inst)
        inst_id = inst.id
    return {
        "id": inst_id,
        "email": "admin@springfield.edu",
        "password": "inst-pass",
        "headers": auth_headers(inst_id, "admin@springfield.edu", "institute"),
    }


@pytest.fixture
def branches(engine, institute):
    """Two branches, keyed by name."""
    with Session(engine) as session:
        rows = [Branch(name=name, institute_id=institute["id"]) for name in ("CSE", "ECE")]
        session.add_all(rows)
        session.commit()
        return {b.name: b.id for b in rows}


@pytest.fixture
def students(engine, institute, branches, auth_headers):
    """Two CSE students and one ECE student, keyed by short name."""
    people = {
        "alice": ("Alice", "alice@springfield.edu", branches["CSE"]),
        "bob": ("Bob", "bob@springfield.edu", branches["CSE"]),
        "carol": ("Carol", "carol@springfield.edu", branches["ECE"]),
    }
    result = {}
    for key, (name, email, branch_id) in people.items():
        sid = add_student(engine, institute["id"], branch_id, name, email)
        result[key] = {
            "id": sid,
            "email": email,
            "headers": auth_headers(sid, email, "student"),
        }
    return result


def _exam_payload(**overrides) -> dict:
    """Two-question exam: marks 5 and 10, pass mark 50%."""
    payload = {
        "title": "Physics Midterm",
        "description": "Chapters 1-3",
        "scheduledDate": "2030-01-15",
        "durationMin": 45,
        "passPercentage": 50,
        "questions": [
            {
                "text": "Unit of force?",
                "type": "single_choice",
                "options": ["Newton", "Joule", "Watt"],
                "correctAnswer": "Newton",
                "marks": 5,
            },
            {
                "text": "Speed of light is constant in vacuum.",
                "type": "true_false",
                "options": ["True", "False"],
                "correctAnswer": "True",
                "marks": 10,
            },
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def exam(client, institute):
    """An exam created through the API; returns its id."""
    resp = client.post(
        "/api/auth/institute/createExam", json=_exam_payload(), headers=institute["headers"]
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["exam_id"]


@pytest.fixture
def questions(client, institute, exam):
    """Question ids of ``exam`` in creation order."""
    resp = client.get(f"/api/auth/institute/exams/{exam}", headers=institute["headers"])
    return [q["id"] for q in resp.json()["questions"]]


@pytest.fixture
def exam_payload():
    """Builder for exam request bodies; keyword overrides replace top-level fields."""
    return _exam_payload
