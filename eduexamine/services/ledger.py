"""Exam submission: evaluate answers and record the outcome in the ledger."""

import logging
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy import update
from sqlmodel import Session, select

from eduexamine.database import transaction, upsert
from eduexamine.exceptions import Forbidden, NotFound
from eduexamine.models import Exam, ExamStudentAssignment, Question, Student, StudentExamResult
from eduexamine.services.evaluator import PENDING, Evaluation, ScoredQuestion, evaluate
from eduexamine.utils import utcnow

logger = logging.getLogger(__name__)


def record_result(
    session: Session, student_id: int, exam_id: int, evaluation: Evaluation, now: datetime
) -> None:
    """Upsert the (student, exam) ledger row and mark the assignment submitted.

    Runs inside the caller's transaction. A resubmission overwrites the
    previous score, status and timestamp.
    """
    upsert(
        session,
        StudentExamResult,
        values={
            "student_id": student_id,
            "exam_id": exam_id,
            "score": evaluation.score,
            "status": evaluation.status,
            "submitted_at": now,
        },
        conflict_cols=["student_id", "exam_id"],
        update={
            "score": lambda excluded: excluded.score,
            "status": lambda excluded: excluded.status,
            "submitted_at": lambda excluded: excluded.submitted_at,
        },
    )
    session.exec(
        update(ExamStudentAssignment)
        .where(
            ExamStudentAssignment.student_id == student_id,
            ExamStudentAssignment.exam_id == exam_id,
        )
        .values(has_submitted=True)
        .execution_options(synchronize_session=False)
    )


def submit_exam(
    session: Session,
    student_id: int,
    exam_id: int,
    answers: Mapping[Any, Any],
    default_pass_percentage: float = 35.0,
) -> dict:
    """Score a student's answers and store the outcome atomically.

    The assignment row is locked first so that concurrent submissions by the
    same student serialize on it. An enabled student needs an enabled
    assignment on a globally enabled exam; resubmitting is allowed and
    replaces the result.
    """
    with transaction(session):
        assignment = session.exec(
            select(ExamStudentAssignment)
            .where(
                ExamStudentAssignment.student_id == student_id,
                ExamStudentAssignment.exam_id == exam_id,
            )
            .with_for_update()
        ).first()
        student = session.get(Student, student_id)
        if student is None or not student.is_enabled:
            raise Forbidden("Your account is disabled. Please contact your institute.")
        exam = session.get(Exam, exam_id)
        if exam is None:
            raise NotFound("Exam not found")
        if assignment is None or not assignment.is_enabled or not exam.is_enabled:
            raise Forbidden("This exam is not available to you")

        questions = session.exec(select(Question).where(Question.exam_id == exam_id)).all()
        evaluation = evaluate(
            [ScoredQuestion(q.id, q.correct_answer, q.marks) for q in questions],
            answers,
            exam.pass_percentage,
            default_pass_percentage,
        )
        result_locked = exam.result_locked
        record_result(session, student_id, exam_id, evaluation, utcnow())

    logger.info(
        "Student %s submitted exam %s: %s (%s)",
        student_id,
        exam_id,
        evaluation.score_label,
        evaluation.status,
    )
    if result_locked:
        # Stored for real; hidden until the institute unlocks results
        return {"message": "Exam submitted", "score": None, "status": PENDING}
    return {
        "message": "Exam submitted",
        "score": evaluation.score_label,
        "percentage": round(evaluation.percentage, 2),
        "status": evaluation.status,
    }
