"""Branch and direct assignment propagation, and the student's view of it."""

from sqlmodel import Session, select

from eduexamine.models import ExamBranchAssignment, ExamStudentAssignment

BASE = "/api/auth/institute"


def _assign_branches(client, institute, exam, branch_ids):
    resp = client.post(
        f"{BASE}/assign-exam-to-branches",
        json={"examId": exam, "branchIds": branch_ids},
        headers=institute["headers"],
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def _assign_students(client, institute, exam, student_ids):
    resp = client.post(
        f"{BASE}/assign-exam-to-students",
        json={"examId": exam, "studentIds": student_ids},
        headers=institute["headers"],
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def _rows(engine, exam):
    with Session(engine) as session:
        rows = session.exec(
            select(ExamStudentAssignment).where(ExamStudentAssignment.exam_id == exam)
        ).all()
        return {r.student_id: r for r in rows}


def test_branch_assignment_enables_every_student_of_branch(
    client, institute, branches, students, exam, engine
):
    summary = _assign_branches(client, institute, exam, [branches["CSE"]])
    assert summary["added_branch_ids"] == [branches["CSE"]]
    assert summary["students_enabled"] == 2

    rows = _rows(engine, exam)
    assert set(rows) == {students["alice"]["id"], students["bob"]["id"]}
    assert all(r.is_enabled and r.assigned_from == "branch" for r in rows.values())
    assert all(r.disabled_at is None for r in rows.values())


def test_disabling_branch_leaves_direct_rows_untouched(
    client, institute, branches, students, exam, engine
):
    alice, bob, carol = (students[k]["id"] for k in ("alice", "bob", "carol"))
    _assign_branches(client, institute, exam, [branches["CSE"]])
    _assign_students(client, institute, exam, [alice, carol])

    summary = _assign_branches(client, institute, exam, [])
    assert summary["removed_branch_ids"] == [branches["CSE"]]
    assert summary["students_disabled"] == 1

    rows = _rows(engine, exam)
    assert rows[bob].is_enabled is False
    assert rows[bob].disabled_at is not None
    assert rows[alice].is_enabled is True
    assert rows[alice].assigned_from == "direct"
    assert rows[carol].is_enabled is True

    with Session(engine) as session:
        branch_row = session.exec(
            select(ExamBranchAssignment).where(ExamBranchAssignment.exam_id == exam)
        ).one()
        assert branch_row.is_enabled is False

    # No enabled branch-derived rows remain for the branch
    assert not [r for r in rows.values() if r.assigned_from == "branch" and r.is_enabled]


def test_reenabling_branch_clears_disabled_stamp(
    client, institute, branches, students, exam, engine
):
    bob = students["bob"]["id"]
    _assign_branches(client, institute, exam, [branches["CSE"]])
    _assign_branches(client, institute, exam, [])
    _assign_branches(client, institute, exam, [branches["CSE"]])

    row = _rows(engine, exam)[bob]
    assert row.is_enabled is True
    assert row.disabled_at is None
    assert row.assigned_from == "branch"


def test_assignment_is_idempotent(client, institute, branches, students, exam, engine):
    _assign_branches(client, institute, exam, [branches["CSE"]])
    summary = _assign_branches(client, institute, exam, [branches["CSE"]])
    assert summary["added_branch_ids"] == []
    assert summary["removed_branch_ids"] == []
    assert len(_rows(engine, exam)) == 2


def test_removed_direct_student_falls_back_to_branch(
    client, institute, branches, students, exam, engine
):
    alice, carol = students["alice"]["id"], students["carol"]["id"]
    _assign_branches(client, institute, exam, [branches["CSE"]])
    _assign_students(client, institute, exam, [alice, carol])

    summary = _assign_students(client, institute, exam, [])
    assert summary["removed_student_ids"] == sorted([alice, carol])

    rows = _rows(engine, exam)
    assert rows[alice].is_enabled is True
    assert rows[alice].assigned_from == "branch"
    assert rows[carol].is_enabled is False
    assert rows[carol].disabled_at is not None


def test_unknown_branch_rolls_back_everything(
    client, institute, branches, students, exam, engine
):
    resp = client.post(
        f"{BASE}/assign-exam-to-branches",
        json={"examId": exam, "branchIds": [branches["CSE"], 4242]},
        headers=institute["headers"],
    )
    assert resp.status_code == 404
    assert _rows(engine, exam) == {}


def test_assigned_branches_listing(client, institute, branches, exam):
    _assign_branches(client, institute, exam, [branches["ECE"], branches["CSE"]])
    resp = client.get(
        f"{BASE}/exam-assigned-branches",
        params={"examId": exam},
        headers=institute["headers"],
    )
    assert resp.json() == {"assigned_branch_ids": sorted(branches.values())}


def test_assigned_students_listing(client, institute, branches, students, exam):
    alice, carol = students["alice"]["id"], students["carol"]["id"]
    _assign_branches(client, institute, exam, [branches["CSE"]])
    _assign_students(client, institute, exam, [carol, alice])

    resp = client.get(
        f"{BASE}/exam-assigned-students",
        params={"examId": exam},
        headers=institute["headers"],
    )
    assert resp.json() == {"assigned_student_ids": sorted([alice, carol])}

    _assign_students(client, institute, exam, [])
    resp = client.get(
        f"{BASE}/exam-assigned-students",
        params={"examId": exam},
        headers=institute["headers"],
    )
    assert resp.json() == {"assigned_student_ids": []}


def test_assigned_students_unknown_exam(client, institute):
    resp = client.get(
        f"{BASE}/exam-assigned-students",
        params={"examId": 4242},
        headers=institute["headers"],
    )
    assert resp.status_code == 404


def test_student_sees_status_and_profile(client, institute, branches, students, exam):
    bob_headers = students["bob"]["headers"]
    _assign_branches(client, institute, exam, [branches["CSE"]])

    listed = client.get("/api/auth/student/exams", headers=bob_headers).json()
    assert [(e["exam_id"], e["status"]) for e in listed] == [(exam, "pending")]

    _assign_branches(client, institute, exam, [])
    listed = client.get("/api/auth/student/exams", headers=bob_headers).json()
    assert [e["status"] for e in listed] == ["closed"]

    assert client.get(
        "/api/auth/student/exams", params={"status": "pending"}, headers=bob_headers
    ).json() == []

    profile = client.get("/api/auth/student/profile", headers=bob_headers).json()
    assert profile["student_name"] == "Bob"
    assert profile["institute_name"] == "Springfield Institute"
    assert profile["total_exams"] == 0
    assert profile["closed"] == 1


def test_invalid_status_filter_rejected(client, students):
    resp = client.get(
        "/api/auth/student/exams",
        params={"status": "everything"},
        headers=students["alice"]["headers"],
    )
    assert resp.status_code == 400


def test_globally_disabled_exam_is_hidden(client, institute, branches, students, exam):
    _assign_branches(client, institute, exam, [branches["CSE"]])
    client.put(
        f"{BASE}/exams/{exam}/enable",
        json={"isEnabled": False},
        headers=institute["headers"],
    )
    headers = students["alice"]["headers"]
    assert client.get("/api/auth/student/exams", headers=headers).json() == []
    assert client.get(f"/api/auth/student/exams/{exam}", headers=headers).status_code == 404


def test_unassigned_student_sees_nothing(client, institute, branches, students, exam):
    _assign_branches(client, institute, exam, [branches["CSE"]])
    headers = students["carol"]["headers"]
    assert client.get("/api/auth/student/exams", headers=headers).json() == []
