"""Registration, login, refresh and logout."""

from sqlmodel import Session, select

from eduexamine.models import ExamStudentAssignment, RefreshToken, Student

BASE = "/api/auth"


def _login(client, email, password, role):
    return client.post(f"{BASE}/login", json={"email": email, "password": password, "role": role})


def test_register_institute_and_use_token(client):
    resp = client.post(
        f"{BASE}/inst-register",
        json={
            "name": "Shelbyville College",
            "email": "Office@Shelbyville.edu",
            "password": "hunter22",
            "address": "1 Main St",
        },
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["institute"]["email"] == "office@shelbyville.edu"

    dash = client.get(
        f"{BASE}/institute", headers={"Authorization": f"Bearer {body['token']}"}
    )
    assert dash.status_code == 200
    assert dash.json()["total_students"] == 0


def test_duplicate_institute_email(client, institute):
    resp = client.post(
        f"{BASE}/inst-register",
        json={
            "name": "Copycat",
            "email": institute["email"],
            "password": "hunter22",
            "address": "Nowhere",
        },
    )
    assert resp.status_code == 409


def test_short_password_rejected(client):
    resp = client.post(
        f"{BASE}/inst-register",
        json={"name": "X", "email": "x@x.io", "password": "123", "address": "Y"},
    )
    assert resp.status_code == 400


def test_institute_login(client, institute):
    resp = _login(client, institute["email"], institute["password"], "institute")
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["role"] == "institute"
    assert body["token"] and body["refresh_token"]


def test_wrong_password(client, institute):
    resp = _login(client, institute["email"], "nope", "institute")
    assert resp.status_code == 401


def test_student_login_includes_institute_and_branch(client, students):
    resp = _login(client, "ALICE@springfield.edu", "secret123", "student")
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["institute_name"] == "Springfield Institute"
    assert user["branch_name"] == "CSE"


def test_disabled_student_cannot_login(client, students, engine):
    with Session(engine) as session:
        student = session.get(Student, students["bob"]["id"])
        student.is_enabled = False
        session.add(student)
        session.commit()
    resp = _login(client, "bob@springfield.edu", "secret123", "student")
    assert resp.status_code == 403


def test_refresh_and_logout(client, institute, engine):
    tokens = _login(client, institute["email"], institute["password"], "institute").json()
    refresh_body = {"refreshToken": tokens["refresh_token"], "userType": "institute"}

    resp = client.post(f"{BASE}/refresh-token", json=refresh_body)
    assert resp.status_code == 200
    assert resp.json()["token"]

    # Wrong role for the token
    resp = client.post(
        f"{BASE}/refresh-token",
        json={"refreshToken": tokens["refresh_token"], "userType": "student"},
    )
    assert resp.status_code == 403

    resp = client.post(
        f"{BASE}/logout",
        json=refresh_body,
        headers={"Authorization": f"Bearer {tokens['token']}"},
    )
    assert resp.status_code == 200
    with Session(engine) as session:
        assert session.exec(select(RefreshToken)).all() == []

    resp = client.post(f"{BASE}/refresh-token", json=refresh_body)
    assert resp.status_code == 403


def test_one_refresh_token_per_user(client, institute, engine):
    _login(client, institute["email"], institute["password"], "institute")
    _login(client, institute["email"], institute["password"], "institute")
    with Session(engine) as session:
        rows = session.exec(select(RefreshToken)).all()
        assert len(rows) == 1
        assert rows[0].user_type == "institute"


def test_garbage_refresh_token(client):
    resp = client.post(
        f"{BASE}/refresh-token", json={"refreshToken": "not-a-jwt", "userType": "institute"}
    )
    assert resp.status_code == 403


def test_missing_and_invalid_access_token(client):
    assert client.get(f"{BASE}/institute").status_code == 401
    resp = client.get(f"{BASE}/institute", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_student_token_on_institute_route(client, students):
    resp = client.get(f"{BASE}/institute", headers=students["alice"]["headers"])
    assert resp.status_code == 403


def test_register_student(client, institute, branches):
    resp = client.post(
        f"{BASE}/student/register",
        json={
            "name": "Dave",
            "email": "dave@springfield.edu",
            "password": "secret123",
            "instituteId": institute["id"],
            "branchId": branches["ECE"],
        },
    )
    assert resp.status_code == 201
    assert resp.json()["student"]["role"] == "student"


def test_register_student_into_foreign_branch(client, institute, branches):
    resp = client.post(
        f"{BASE}/student/register",
        json={
            "name": "Eve",
            "email": "eve@springfield.edu",
            "password": "secret123",
            "instituteId": institute["id"],
            "branchId": 9999,
        },
    )
    assert resp.status_code == 404


def test_late_joiner_inherits_branch_exams(client, institute, branches, exam, engine):
    client.post(
        f"{BASE}/institute/assign-exam-to-branches",
        json={"examId": exam, "branchIds": [branches["CSE"]]},
        headers=institute["headers"],
    )
    resp = client.post(
        f"{BASE}/student/register",
        json={
            "name": "Frank",
            "email": "frank@springfield.edu",
            "password": "secret123",
            "instituteId": institute["id"],
            "branchId": branches["CSE"],
        },
    )
    student_id = resp.json()["student"]["id"]

    with Session(engine) as session:
        row = session.exec(
            select(ExamStudentAssignment).where(ExamStudentAssignment.student_id == student_id)
        ).one()
        assert row.exam_id == exam
        assert row.is_enabled is True
        assert row.assigned_from == "branch"

    headers = {"Authorization": f"Bearer {resp.json()['token']}"}
    listed = client.get(f"{BASE}/student/exams", headers=headers).json()
    assert [e["status"] for e in listed] == ["pending"]
