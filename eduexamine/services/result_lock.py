"""Result lock gate.

A locked exam keeps its real outcomes in the ledger, but every
student-facing read projects them away.
"""

import logging
from typing import Optional

from sqlmodel import Session, select

from eduexamine.database import transaction
from eduexamine.exceptions import NotFound
from eduexamine.models import (
    Exam,
    ExamStudentAssignment,
    Institute,
    Student,
    StudentExamResult,
)
from eduexamine.services.evaluator import PENDING
from eduexamine.services.exams import get_owned_exam

logger = logging.getLogger(__name__)


def project_result(
    exam: Exam,
    assignment: Optional[ExamStudentAssignment],
    result: Optional[StudentExamResult],
) -> dict:
    """Student-facing view of one exam outcome with the lock applied."""
    locked = exam.result_locked
    return {
        "exam_id": exam.id,
        "title": exam.title,
        "scheduled_date": exam.scheduled_date,
        "duration_min": None if locked else exam.duration_min,
        "pass_percentage": None if locked else exam.pass_percentage,
        "is_enabled": None if locked else (assignment.is_enabled if assignment else None),
        "score": None if locked or result is None else result.score,
        "total_marks": None if locked else exam.total_marks,
        "status": PENDING if locked or result is None else result.status,
        "submitted_at": result.submitted_at if result else None,
        "result_locked": locked,
    }


def set_result_lock(session: Session, institute_id: int, exam_id: int, locked: bool) -> dict:
    """Flip the lock flag. Nothing else about the exam or its results changes."""
    with transaction(session):
        exam = get_owned_exam(session, exam_id, institute_id)
        exam.result_locked = locked
        session.add(exam)
    logger.info("Results of exam %s %s", exam_id, "locked" if locked else "unlocked")
    return {"id": exam_id, "result_locked": locked}


def student_results(session: Session, student_id: int) -> dict:
    """Outcomes of every exam the student has submitted, lock applied."""
    row = session.exec(
        select(Student.id, Student.name, Institute.name)
        .join(Institute, Institute.id == Student.institute_id)
        .where(Student.id == student_id)
    ).first()
    if row is None:
        raise NotFound("Student not found")

    submitted = session.exec(
        select(ExamStudentAssignment, Exam)
        .join(Exam, Exam.id == ExamStudentAssignment.exam_id)
        .where(
            ExamStudentAssignment.student_id == student_id,
            ExamStudentAssignment.has_submitted == True,
        )
        .order_by(Exam.id)
    ).all()
    results = {
        r.exam_id: r
        for r in session.exec(
            select(StudentExamResult).where(StudentExamResult.student_id == student_id)
        ).all()
    }
    return {
        "student": {"student_id": row[0], "student_name": row[1], "institute_name": row[2]},
        "exams": [
            project_result(exam, assignment, results.get(exam.id))
            for assignment, exam in submitted
        ],
    }
