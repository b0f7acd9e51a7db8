"""Branches, bulk registration and the student directory."""

import pytest
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from eduexamine.models import Branch, ExamStudentAssignment, Institute, Student

BASE = "/api/auth/institute"


def _student_count(engine):
    with Session(engine) as session:
        return session.exec(select(func.count(Student.id))).one()


def test_create_and_list_branches(client, institute):
    resp = client.post(f"{BASE}/create-branch", json={"name": "Mechanical"}, headers=institute["headers"])
    assert resp.status_code == 201
    assert resp.json()["branch"]["name"] == "Mechanical"

    listed = client.get(f"{BASE}/branches", headers=institute["headers"]).json()
    assert [b["name"] for b in listed] == ["Mechanical"]


def test_branch_names_unique_ignoring_case(client, institute, branches):
    resp = client.post(f"{BASE}/create-branch", json={"name": "cse"}, headers=institute["headers"])
    assert resp.status_code == 409


def test_same_branch_name_in_another_institute(client, institute, branches, auth_headers, engine):
    with Session(engine) as session:
        other = Institute(name="Other", email="other@example.com", password_hash="x")
        session.add(other)
        session.commit()
        session.refresh(other)
        other_id = other.id

    headers = auth_headers(other_id, "other@example.com", "institute")
    resp = client.post(f"{BASE}/create-branch", json={"name": "CSE"}, headers=headers)
    assert resp.status_code == 201


def test_case_insensitive_index_in_store(engine, institute, branches):
    with Session(engine) as session:
        session.add(Branch(name="eCe", institute_id=institute["id"]))
        with pytest.raises(IntegrityError):
            session.commit()


def test_bulk_upload_success(client, institute, branches, exam, engine):
    client.post(
        f"{BASE}/assign-exam-to-branches",
        json={"examId": exam, "branchIds": [branches["ECE"]]},
        headers=institute["headers"],
    )
    rows = [
        {"name": "Gina", "email": "gina@springfield.edu", "password": "pw123456", "branch": "ece"},
        {"name": "Hank", "email": "hank@springfield.edu", "password": "pw123456", "branch": "CSE"},
    ]
    resp = client.post(f"{BASE}/bulk-upload", json={"students": rows}, headers=institute["headers"])
    assert resp.status_code == 201
    assert resp.json()["count"] == 2

    with Session(engine) as session:
        gina = session.exec(select(Student).where(Student.email == "gina@springfield.edu")).one()
        assert gina.branch_id == branches["ECE"]
        assignment = session.exec(
            select(ExamStudentAssignment).where(ExamStudentAssignment.student_id == gina.id)
        ).one()
        assert assignment.exam_id == exam


def test_bulk_upload_is_all_or_nothing(client, institute, branches, students, engine):
    before = _student_count(engine)
    rows = [
        {"name": "Ivy", "email": "ivy@springfield.edu", "password": "pw123456", "branch": "CSE"},
        {"name": "Jack", "email": "jack@springfield.edu", "password": "pw123456", "branch": "Art"},
        {"name": "Kim", "email": "alice@springfield.edu", "password": "pw123456", "branch": "CSE"},
        {"name": "Lee", "email": "ivy@springfield.edu", "password": "pw123456", "branch": "CSE"},
        {"email": "nobody@springfield.edu"},
    ]
    resp = client.post(f"{BASE}/bulk-upload", json={"students": rows}, headers=institute["headers"])
    assert resp.status_code == 409

    errors = resp.json()["errors"]
    assert [e["row"] for e in errors] == [1, 2, 3, 4]
    reasons = [e["reason"] for e in errors]
    assert reasons[0] == "Invalid branch: Art"
    assert reasons[1] == "Email already exists"
    assert reasons[2] == "Duplicate email in upload"
    assert reasons[3] == "Missing required fields"

    assert _student_count(engine) == before


def test_search_and_list_students(client, institute, students, engine):
    with Session(engine) as session:
        bob = session.get(Student, students["bob"]["id"])
        bob.is_enabled = False
        session.add(bob)
        session.commit()

    found = client.get(f"{BASE}/search-students", params={"query": "SPRINGFIELD"}, headers=institute["headers"]).json()
    assert [s["name"] for s in found] == ["Alice", "Carol"]

    everyone = client.get(f"{BASE}/students", headers=institute["headers"]).json()
    assert [s["name"] for s in everyone] == ["Alice", "Bob", "Carol"]

    cse = client.get(f"{BASE}/students", params={"branch": "cse"}, headers=institute["headers"]).json()
    assert [s["name"] for s in cse] == ["Alice", "Bob"]


def test_update_student_moves_branch(client, institute, branches, students, exam, engine):
    client.post(
        f"{BASE}/assign-exam-to-branches",
        json={"examId": exam, "branchIds": [branches["ECE"]]},
        headers=institute["headers"],
    )
    alice = students["alice"]
    resp = client.post(
        f"{BASE}/update-student",
        json={
            "id": alice["id"],
            "name": "Alice Smith",
            "email": alice["email"],
            "branch": "ECE",
            "isEnabled": True,
        },
        headers=institute["headers"],
    )
    assert resp.status_code == 200
    assert resp.json()["student"]["branch"] == "ECE"

    with Session(engine) as session:
        assert session.get(Student, alice["id"]).name == "Alice Smith"
        row = session.exec(
            select(ExamStudentAssignment).where(ExamStudentAssignment.student_id == alice["id"])
        ).one()
        assert row.exam_id == exam and row.is_enabled


def test_update_student_errors(client, institute, students):
    alice = students["alice"]
    base = {"id": alice["id"], "name": "Alice", "email": alice["email"], "branch": "CSE"}

    resp = client.post(f"{BASE}/update-student", json={**base, "branch": "Art"}, headers=institute["headers"])
    assert resp.status_code == 404

    resp = client.post(f"{BASE}/update-student", json={**base, "id": 9999}, headers=institute["headers"])
    assert resp.status_code == 404

    resp = client.post(
        f"{BASE}/update-student",
        json={**base, "email": "bob@springfield.edu"},
        headers=institute["headers"],
    )
    assert resp.status_code == 409


def test_moved_student_leaves_old_branch_exam(client, institute, branches, students, exam, engine):
    alice = students["alice"]
    client.post(
        f"{BASE}/assign-exam-to-branches",
        json={"examId": exam, "branchIds": [branches["CSE"]]},
        headers=institute["headers"],
    )
    resp = client.post(
        f"{BASE}/update-student",
        json={"id": alice["id"], "name": "Alice", "email": alice["email"], "branch": "ECE"},
        headers=institute["headers"],
    )
    assert resp.status_code == 200

    with Session(engine) as session:
        row = session.exec(
            select(ExamStudentAssignment).where(ExamStudentAssignment.student_id == alice["id"])
        ).one()
        assert not row.is_enabled
        assert row.disabled_at is not None

    client.post(
        f"{BASE}/assign-exam-to-branches",
        json={"examId": exam, "branchIds": []},
        headers=institute["headers"],
    )
    with Session(engine) as session:
        live = session.exec(
            select(ExamStudentAssignment).where(
                ExamStudentAssignment.exam_id == exam,
                ExamStudentAssignment.assigned_from == "branch",
                ExamStudentAssignment.is_enabled == True,
            )
        ).all()
        assert live == []

    listed = client.get("/api/auth/student/exams", headers=alice["headers"]).json()
    assert [(e["exam_id"], e["status"]) for e in listed] == [(exam, "closed")]


def test_moved_student_keeps_direct_assignment(client, institute, branches, students, exam, engine):
    alice = students["alice"]
    client.post(
        f"{BASE}/assign-exam-to-students",
        json={"examId": exam, "studentIds": [alice["id"]]},
        headers=institute["headers"],
    )
    client.post(
        f"{BASE}/update-student",
        json={"id": alice["id"], "name": "Alice", "email": alice["email"], "branch": "ECE"},
        headers=institute["headers"],
    )
    with Session(engine) as session:
        row = session.exec(
            select(ExamStudentAssignment).where(ExamStudentAssignment.student_id == alice["id"])
        ).one()
        assert row.is_enabled and row.assigned_from == "direct"


def test_student_without_branch_shows_in_reports(client, institute, exam, questions, engine, auth_headers):
    with Session(engine) as session:
        dana = Student(
            name="Dana",
            email="dana@springfield.edu",
            password_hash="unused",
            institute_id=institute["id"],
        )
        session.add(dana)
        session.commit()
        sid = dana.id
    client.post(
        f"{BASE}/assign-exam-to-students",
        json={"examId": exam, "studentIds": [sid]},
        headers=institute["headers"],
    )
    resp = client.post(
        "/api/auth/student/submitExam",
        json={"examId": exam, "answers": {str(questions[0]): "Newton"}},
        headers=auth_headers(sid, "dana@springfield.edu", "student"),
    )
    assert resp.status_code == 200

    results = client.get(f"{BASE}/allResults", headers=institute["headers"]).json()
    assert [(r["student_name"], r["branch"]) for r in results["results"]] == [("Dana", None)]

    found = client.get(f"{BASE}/search-students", params={"query": "dana"}, headers=institute["headers"])
    assert [s["id"] for s in found.json()] == [sid]


def test_student_search_treats_wildcards_literally(client, institute, students):
    resp = client.get(f"{BASE}/students", params={"query": "%"}, headers=institute["headers"])
    assert resp.json() == []

    resp = client.get(f"{BASE}/search-students", params={"query": "_"}, headers=institute["headers"])
    assert resp.json() == []
