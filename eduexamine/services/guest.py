"""Guest exams: anonymous creators, shareable exam links, append-only attempts.

Guests live in their own tables and never touch institute data.
"""

import logging
import math
from typing import Any, Mapping

from sqlmodel import Session, select

from eduexamine.config import Settings
from eduexamine.database import transaction
from eduexamine.exceptions import NotFound
from eduexamine.models import GuestExam, GuestExamAttempt, GuestQuestion, GuestUser
from eduexamine.schemas import GuestExamIn, QuestionOptions
from eduexamine.services.evaluator import ScoredQuestion, evaluate
from eduexamine.utils import clean_optional, sanitize_plain_text, sanitize_question_text, utcnow

logger = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"


def register_guest(session: Session, guest_name: str) -> dict:
    with transaction(session):
        guest = GuestUser(username=sanitize_plain_text(guest_name) or guest_name.strip())
        session.add(guest)
    session.refresh(guest)
    logger.info("Registered guest %s", guest.id)
    return {"guest_code": guest.id, "guest_name": guest.username}


def get_guest(session: Session, guest_id: int) -> GuestUser:
    guest = session.get(GuestUser, guest_id)
    if not guest:
        raise NotFound("Guest user not found")
    return guest


def create_guest_exam(session: Session, settings: Settings, payload: GuestExamIn) -> dict:
    """Create a guest exam with its questions and a shareable link.

    Without ``enable_time_limit`` the exam is stored with no duration.
    """
    if payload.guest_id is not None:
        get_guest(session, payload.guest_id)

    with transaction(session):
        exam = GuestExam(
            guest_user_id=payload.guest_id,
            title=sanitize_plain_text(payload.title) or payload.title.strip(),
            description=clean_optional(payload.description),
            scheduled_date=payload.scheduled_date,
            duration_min=payload.duration_min if payload.enable_time_limit else None,
            pass_percentage=payload.pass_percentage,
            created_by=payload.created_by.strip(),
        )
        session.add(exam)
        session.flush()
        exam.exam_link = f"{settings.frontend_url.rstrip('/')}/guest-exam/{exam.id}"
        session.add_all(
            GuestQuestion(
                guest_exam_id=exam.id,
                question_text=sanitize_question_text(q.question) or q.question.strip(),
                options=q.normalized_options().model_dump(mode="json"),
                correct_answer=q.correct_answer.strip(),
                marks=q.marks,
            )
            for q in payload.questions
        )
    session.refresh(exam)
    logger.info("Guest %s created guest exam %s", payload.guest_id, exam.id)
    return {
        "message": "Guest Exam created successfully",
        "exam_id": exam.id,
        "exam_link": exam.exam_link,
    }


def list_guest_exams(session: Session, guest_id: int) -> dict:
    exams = session.exec(
        select(GuestExam)
        .where(GuestExam.guest_user_id == guest_id)
        .order_by(GuestExam.created_at.desc(), GuestExam.id.desc())
    ).all()
    return {
        "exams": [
            {
                "id": e.id,
                "title": e.title,
                "description": e.description,
                "scheduled_date": e.scheduled_date,
                "duration_min": e.duration_min,
                "pass_percentage": e.pass_percentage,
                "exam_link": e.exam_link,
                "created_at": e.created_at,
            }
            for e in exams
        ]
    }


def _guest_questions(session: Session, exam_id: int) -> list[GuestQuestion]:
    return session.exec(
        select(GuestQuestion).where(GuestQuestion.guest_exam_id == exam_id).order_by(GuestQuestion.id)
    ).all()


def get_guest_exam(session: Session, exam_id: int) -> dict:
    """Exam as shown to whoever opens the link: no correct answers."""
    exam = session.get(GuestExam, exam_id)
    if not exam:
        raise NotFound("Exam not found")
    questions = []
    for q in _guest_questions(session, exam_id):
        options = QuestionOptions.parse(q.options)
        questions.append(
            {
                "id": q.id,
                "type": options.kind.value,
                "text": q.question_text,
                "options": options.choices,
                "marks": q.marks,
            }
        )
    return {
        "exam": {
            "id": exam.id,
            "title": exam.title,
            "description": exam.description,
            "scheduled_date": exam.scheduled_date,
            "duration_min": exam.duration_min,
            "pass_percentage": exam.pass_percentage,
            "questions": questions,
        }
    }


def submit_guest_exam(
    session: Session, exam_id: int, student_name, answers: Mapping[Any, Any]
) -> dict:
    """Score an anonymous attempt and append it. Attempts are never overwritten."""
    with transaction(session):
        questions = _guest_questions(session, exam_id)
        if not questions:
            raise NotFound("No questions found for exam")
        evaluation = evaluate(
            [ScoredQuestion(q.id, q.correct_answer, q.marks or 1) for q in questions],
            answers,
            session.get(GuestExam, exam_id).pass_percentage,
        )
        # Half-up, so 62.5 rounds to 63
        percentage = math.floor(evaluation.percentage + 0.5)
        session.add(
            GuestExamAttempt(
                guest_exam_id=exam_id,
                student_name=(student_name or "").strip() or ANONYMOUS,
                score=percentage,
                submitted_at=utcnow(),
            )
        )
    logger.info("Guest exam %s attempt scored %s%%", exam_id, percentage)
    return {
        "total_score": evaluation.score,
        "total_marks": evaluation.total,
        "score_percentage": percentage,
        "status": evaluation.status,
    }


def guest_results(session: Session, guest_code: int) -> dict:
    """Every attempt at any exam the guest created, newest first."""
    get_guest(session, guest_code)
    rows = session.exec(
        select(GuestExamAttempt, GuestExam.title)
        .join(GuestExam, GuestExam.id == GuestExamAttempt.guest_exam_id)
        .where(GuestExam.guest_user_id == guest_code)
        .order_by(GuestExamAttempt.submitted_at.desc(), GuestExamAttempt.id.desc())
    ).all()
    return {
        "results": [
            {
                "id": attempt.id,
                "exam_title": title,
                "student_name": attempt.student_name,
                "score": attempt.score,
                "submitted_at": attempt.submitted_at,
            }
            for attempt, title in rows
        ]
    }
