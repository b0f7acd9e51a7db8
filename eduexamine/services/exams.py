"""Exam authoring: create, replace, fetch, list and toggle exams."""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import delete, func
from sqlmodel import Session, select

from eduexamine.database import transaction
from eduexamine.exceptions import NotFound
from eduexamine.models import Branch, Exam, ExamBranchAssignment, Question
from eduexamine.schemas import ExamIn, ExamUpdateIn, QuestionIn, QuestionOptions
from eduexamine.utils import (
    as_utc,
    clean_optional,
    escape_like,
    sanitize_plain_text,
    sanitize_question_text,
)

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {"title": Exam.title, "created_at": Exam.created_at}


def get_owned_exam(session: Session, exam_id: int, institute_id: int) -> Exam:
    """Get an exam created by ``institute_id`` or raise 404."""
    exam = session.get(Exam, exam_id)
    if not exam or exam.created_by != institute_id:
        raise NotFound("Exam not found")
    return exam


def _build_questions(exam_id: int, questions: list[QuestionIn]) -> list[Question]:
    rows = []
    for q in questions:
        text = sanitize_question_text(q.text)
        if not text:
            text = q.text.strip()
        rows.append(
            Question(
                exam_id=exam_id,
                question_text=text,
                options=q.normalized_options().model_dump(mode="json"),
                correct_answer=q.correct_answer.strip(),
                marks=q.marks,
            )
        )
    return rows


def _apply_fields(exam: Exam, payload: ExamIn) -> None:
    exam.title = sanitize_plain_text(payload.title) or payload.title.strip()
    exam.description = clean_optional(payload.description)
    exam.scheduled_date = payload.scheduled_date
    exam.expires_at = as_utc(payload.expiry_date)
    exam.duration_min = payload.duration_min
    exam.pass_percentage = payload.pass_percentage
    exam.total_marks = sum(q.marks for q in payload.questions)


def create_exam(session: Session, institute_id: int, payload: ExamIn) -> Exam:
    """Insert an exam and all of its questions in one transaction."""
    with transaction(session):
        exam = Exam(title=payload.title, created_by=institute_id)
        _apply_fields(exam, payload)
        session.add(exam)
        session.flush()
        session.add_all(_build_questions(exam.id, payload.questions))
    session.refresh(exam)
    logger.info(
        "Institute %s created exam %s with %d questions",
        institute_id,
        exam.id,
        len(payload.questions),
    )
    return exam


def update_exam(session: Session, institute_id: int, payload: ExamUpdateIn) -> Exam:
    """Update exam details and replace its question set wholesale."""
    with transaction(session):
        exam = get_owned_exam(session, payload.id, institute_id)
        _apply_fields(exam, payload)
        session.add(exam)
        session.exec(delete(Question).where(Question.exam_id == exam.id))
        session.add_all(_build_questions(exam.id, payload.questions))
    session.refresh(exam)
    logger.info("Institute %s replaced exam %s", institute_id, exam.id)
    return exam


def list_questions(session: Session, exam_id: int) -> list[Question]:
    return session.exec(
        select(Question).where(Question.exam_id == exam_id).order_by(Question.id)
    ).all()


def serialize_question(question: Question, include_answer: bool) -> dict:
    options = QuestionOptions.parse(question.options)
    data = {
        "id": question.id,
        "text": question.question_text,
        "type": options.kind.value,
        "options": options.choices,
        "marks": question.marks,
    }
    if include_answer:
        data["correct_answer"] = question.correct_answer
    return data


def serialize_exam(exam: Exam) -> dict:
    return {
        "id": exam.id,
        "title": exam.title,
        "description": exam.description,
        "scheduled_date": exam.scheduled_date,
        "expires_at": exam.expires_at,
        "duration_min": exam.duration_min,
        "pass_percentage": exam.pass_percentage,
        "total_marks": exam.total_marks,
        "is_enabled": exam.is_enabled,
        "result_locked": exam.result_locked,
        "created_by": exam.created_by,
        "created_at": exam.created_at,
    }


def exam_with_questions(session: Session, exam: Exam, include_answers: bool) -> dict:
    data = serialize_exam(exam)
    data["questions"] = [
        serialize_question(q, include_answers) for q in list_questions(session, exam.id)
    ]
    return data


def get_exam_for_authoring(session: Session, institute_id: int, exam_id: int) -> dict:
    """Full exam including correct answers, for the owning institute only."""
    exam = get_owned_exam(session, exam_id, institute_id)
    return exam_with_questions(session, exam, include_answers=True)


def list_exams(session: Session, institute_id: int, scheduled: bool = False) -> list[dict]:
    stmt = select(Exam).where(Exam.created_by == institute_id)
    if scheduled:
        stmt = stmt.where(Exam.scheduled_date > date.today())
    exams = session.exec(stmt.order_by(Exam.created_at.desc(), Exam.id.desc())).all()
    return [
        {
            "id": e.id,
            "title": e.title,
            "created_at": e.created_at,
            "scheduled_date": e.scheduled_date,
            "duration_min": e.duration_min,
            "is_enabled": e.is_enabled,
        }
        for e in exams
    ]


def search_exams(
    session: Session,
    institute_id: int,
    search: str = "",
    branch: str = "",
    created_on: Optional[date] = None,
    sort_field: str = "created_at",
    sort_order: str = "asc",
) -> list[dict]:
    """Filter an institute's exams by title, enabled branch and creation date.

    Unknown sort fields fall back to ``created_at`` and unknown orders to
    ascending.
    """
    stmt = select(Exam).where(Exam.created_by == institute_id)
    if search:
        term = f"%{escape_like(search.lower())}%"
        stmt = stmt.where(func.lower(Exam.title).like(term, escape="\\"))
    if branch:
        branch_exam_ids = (
            select(ExamBranchAssignment.exam_id)
            .join(Branch, Branch.id == ExamBranchAssignment.branch_id)
            .where(
                ExamBranchAssignment.is_enabled == True,
                func.lower(Branch.name) == branch.lower(),
            )
        )
        stmt = stmt.where(Exam.id.in_(branch_exam_ids))
    if created_on:
        stmt = stmt.where(func.date(Exam.created_at) == created_on.isoformat())

    column = SORTABLE_FIELDS.get(sort_field, Exam.created_at)
    ordering = column.desc() if sort_order.lower() == "desc" else column.asc()
    exams = session.exec(stmt.order_by(ordering, Exam.id)).all()
    return [
        {
            "id": e.id,
            "title": e.title,
            "created_at": e.created_at,
            "duration_min": e.duration_min,
            "pass_percentage": e.pass_percentage,
            "is_enabled": e.is_enabled,
            "expires_at": e.expires_at,
            "result_locked": e.result_locked,
        }
        for e in exams
    ]


def set_exam_enabled(session: Session, institute_id: int, exam_id: int, enabled: bool) -> Exam:
    """Globally enable or disable an exam. Assignment rows are left alone."""
    with transaction(session):
        exam = get_owned_exam(session, exam_id, institute_id)
        exam.is_enabled = enabled
        session.add(exam)
    session.refresh(exam)
    logger.info("Exam %s %s", exam_id, "enabled" if enabled else "disabled")
    return exam
