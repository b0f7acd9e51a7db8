"""Student routes: profile, available exams, submission and results."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from eduexamine.config import Settings
from eduexamine.database import get_session
from eduexamine.deps import Identity, get_app_settings, require_student
from eduexamine.schemas import SubmitExamIn
from eduexamine.services import assignments, exams, ledger, result_lock

router = APIRouter(prefix="/student")


@router.get("/profile")
def get_profile(
    session: Session = Depends(get_session),
    student: Identity = Depends(require_student),
):
    return assignments.student_profile(session, student.id)


@router.get("/exams")
def get_exams(
    exam_status: Optional[str] = Query(
        None, alias="status", pattern="^(?i:pending|submitted|closed|unknown)$"
    ),
    session: Session = Depends(get_session),
    student: Identity = Depends(require_student),
):
    return assignments.list_student_exams(session, student.id, exam_status)


@router.get("/exams/{exam_id}")
def get_exam(
    exam_id: int,
    session: Session = Depends(get_session),
    student: Identity = Depends(require_student),
):
    """Exam with its questions, minus the correct answers."""
    exam = assignments.get_visible_exam(session, student.id, exam_id)
    return exams.exam_with_questions(session, exam, include_answers=False)


@router.post("/submitExam")
def submit_exam(
    payload: SubmitExamIn,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
    student: Identity = Depends(require_student),
):
    return ledger.submit_exam(
        session,
        student.id,
        payload.exam_id,
        payload.answers,
        default_pass_percentage=settings.default_pass_percentage,
    )


@router.get("/results")
def get_results(
    session: Session = Depends(get_session),
    student: Identity = Depends(require_student),
):
    return result_lock.student_results(session, student.id)
