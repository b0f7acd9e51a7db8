"""Institute-side reporting over the result ledger.

These reads show real outcomes; the result lock only applies to what
students see.
"""

from datetime import date
from typing import Optional

from sqlalchemy import distinct, func, or_
from sqlmodel import Session, select

from eduexamine.exceptions import NotFound
from eduexamine.models import (
    Branch,
    Exam,
    ExamStudentAssignment,
    Student,
    StudentExamResult,
)
from eduexamine.services.evaluator import PASS
from eduexamine.utils import escape_like

RECENT_EXAMS_LIMIT = 3


def dashboard(session: Session, institute_id: int) -> dict:
    total_students = session.exec(
        select(func.count(Student.id)).where(Student.institute_id == institute_id)
    ).one()
    total_exams, exams_today = session.exec(
        select(
            func.count(Exam.id),
            func.count(Exam.id).filter(Exam.scheduled_date == date.today()),
        ).where(Exam.created_by == institute_id)
    ).one()
    exams_enabled = session.exec(
        select(func.count(distinct(Exam.id)))
        .join(ExamStudentAssignment, ExamStudentAssignment.exam_id == Exam.id)
        .where(Exam.created_by == institute_id, Exam.is_enabled == True)
    ).one()
    recent = session.exec(
        select(Exam)
        .where(Exam.created_by == institute_id)
        .order_by(Exam.created_at.desc(), Exam.id.desc())
        .limit(RECENT_EXAMS_LIMIT)
    ).all()
    return {
        "total_students": total_students,
        "total_exams": total_exams,
        "exams_enabled": exams_enabled,
        "exams_today": exams_today,
        "recent_exams": [
            {"id": e.id, "title": e.title, "created_at": e.created_at} for e in recent
        ],
    }


def _ledger_query(institute_id: int):
    """Ledger rows of an institute's students joined with exam and branch."""
    return (
        select(
            Exam.id,
            Exam.title,
            Student.id,
            Student.name,
            Branch.name,
            StudentExamResult.score,
            StudentExamResult.status,
            StudentExamResult.submitted_at,
        )
        .select_from(StudentExamResult)
        .join(Student, Student.id == StudentExamResult.student_id)
        .join(Exam, Exam.id == StudentExamResult.exam_id)
        .join(Branch, Branch.id == Student.branch_id, isouter=True)
        .where(Student.institute_id == institute_id)
    )


def _ledger_row(row) -> dict:
    exam_id, exam_title, student_id, student_name, branch, score, status, submitted_at = row
    return {
        "exam_id": exam_id,
        "exam_title": exam_title,
        "student_id": student_id,
        "student_name": student_name,
        "branch": branch,
        "score": score,
        "status": status,
        "submitted_at": submitted_at,
    }


def all_results(
    session: Session,
    institute_id: int,
    page: int = 1,
    limit: int = 10,
    search: str = "",
    branch: str = "",
    exam_title: str = "",
) -> dict:
    """One page of ledger rows plus the total count for the same filters."""
    stmt = _ledger_query(institute_id)
    if search:
        term = f"%{escape_like(search.lower())}%"
        stmt = stmt.where(
            or_(
                func.lower(Student.name).like(term, escape="\\"),
                func.lower(Exam.title).like(term, escape="\\"),
                func.lower(Branch.name).like(term, escape="\\"),
            )
        )
    if branch:
        stmt = stmt.where(Branch.name == branch)
    if exam_title:
        stmt = stmt.where(Exam.title == exam_title)

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    page = max(page, 1)
    rows = session.exec(
        stmt.order_by(Exam.id.desc(), Student.name).offset((page - 1) * limit).limit(limit)
    ).all()
    return {"results": [_ledger_row(r) for r in rows], "total_count": total}


def top_performers(
    session: Session, institute_id: int, exam_title: str, branch: str = "", limit: int = 5
) -> dict:
    stmt = _ledger_query(institute_id).where(Exam.title == exam_title)
    if branch:
        stmt = stmt.where(Branch.name == branch)
    rows = session.exec(
        stmt.order_by(StudentExamResult.score.desc(), StudentExamResult.submitted_at).limit(limit)
    ).all()
    return {"top_performers": [_ledger_row(r) for r in rows]}


def student_report(session: Session, institute_id: int, student_name: str, branch: str = "") -> dict:
    stmt = _ledger_query(institute_id).where(func.lower(Student.name) == student_name.lower())
    if branch:
        stmt = stmt.where(Branch.name == branch)
    rows = session.exec(stmt.order_by(Exam.id.desc())).all()
    return {"report": [_ledger_row(r) for r in rows]}


def exam_summary(
    session: Session, institute_id: int, exam_title: str, branch: Optional[str] = None
) -> dict:
    """Attendance and pass/fail breakdown of one exam among enabled students."""
    exam = session.exec(
        select(Exam)
        .where(Exam.created_by == institute_id, Exam.title == exam_title)
        .order_by(Exam.id)
    ).first()
    if exam is None:
        raise NotFound("Exam not found")

    enabled_stmt = (
        select(Student.id, Student.name, Branch.name)
        .select_from(ExamStudentAssignment)
        .join(Student, Student.id == ExamStudentAssignment.student_id)
        .join(Branch, Branch.id == Student.branch_id, isouter=True)
        .where(
            ExamStudentAssignment.exam_id == exam.id,
            ExamStudentAssignment.is_enabled == True,
            Student.institute_id == institute_id,
        )
    )
    attended_stmt = _ledger_query(institute_id).where(StudentExamResult.exam_id == exam.id)
    if branch:
        enabled_stmt = enabled_stmt.where(Branch.name == branch)
        attended_stmt = attended_stmt.where(Branch.name == branch)

    attended = [_ledger_row(r) for r in session.exec(attended_stmt.order_by(Student.name)).all()]
    attended_ids = {r["student_id"] for r in attended}
    enabled = session.exec(enabled_stmt.order_by(Student.name)).all()
    not_attended = [
        {"student_id": sid, "student_name": name, "branch": branch_name}
        for sid, name, branch_name in enabled
        if sid not in attended_ids
    ]

    pass_count = sum(1 for r in attended if r["status"].lower() == PASS.lower())
    average = sum(float(r["score"]) for r in attended) / len(attended) if attended else 0.0
    return {
        "exam_title": exam.title,
        "total_enabled": len(enabled),
        "attended_count": len(attended),
        "not_attended_count": len(not_attended),
        "pass_count": pass_count,
        "fail_count": len(attended) - pass_count,
        "average_score": f"{average:.2f}",
        "attended_list": attended,
        "not_attended_list": not_attended,
    }


def results_for_student(session: Session, institute_id: int, student_id: int) -> list[dict]:
    """Raw ledger rows of one of the institute's students."""
    student = session.get(Student, student_id)
    if not student or student.institute_id != institute_id:
        raise NotFound("Student not found")
    rows = session.exec(
        select(StudentExamResult, Exam.title, Exam.total_marks)
        .join(Exam, Exam.id == StudentExamResult.exam_id)
        .where(StudentExamResult.student_id == student_id)
        .order_by(StudentExamResult.exam_id)
    ).all()
    return [
        {
            "exam_id": result.exam_id,
            "exam_title": title,
            "score": result.score,
            "total_marks": total_marks,
            "status": result.status,
            "submitted_at": result.submitted_at,
        }
        for result, title, total_marks in rows
    ]
