"""Branches and the institute's student directory."""

import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from eduexamine.database import transaction
from eduexamine.exceptions import Conflict, NotFound
from eduexamine.models import Branch, Student
from eduexamine.schemas import StudentUpdateIn
from eduexamine.services.accounts import normalize_email
from eduexamine.services.assignments import (
    assign_branch_exams_to_student,
    release_branch_exams_of_student,
)
from eduexamine.utils import escape_like, sanitize_plain_text

logger = logging.getLogger(__name__)


def find_branch_by_name(session: Session, institute_id: int, name: str):
    return session.exec(
        select(Branch).where(
            Branch.institute_id == institute_id,
            func.lower(Branch.name) == name.strip().lower(),
        )
    ).first()


def create_branch(session: Session, institute_id: int, name: str) -> dict:
    """Create a branch. Names are unique per institute, ignoring case."""
    clean = sanitize_plain_text(name) or name.strip()
    if find_branch_by_name(session, institute_id, clean):
        raise Conflict("Branch already exists for this institute.")
    try:
        with transaction(session):
            branch = Branch(name=clean, institute_id=institute_id)
            session.add(branch)
    except IntegrityError as exc:
        # Lost a race against a concurrent create of the same name
        raise Conflict("Branch already exists (case-insensitive match).") from exc
    session.refresh(branch)
    logger.info("Institute %s created branch %s (%s)", institute_id, branch.id, branch.name)
    return {"id": branch.id, "name": branch.name}


def list_branches(session: Session, institute_id: int) -> list[dict]:
    branches = session.exec(
        select(Branch).where(Branch.institute_id == institute_id).order_by(Branch.name)
    ).all()
    return [{"id": b.id, "name": b.name, "created_at": b.created_at} for b in branches]


def _student_row(student: Student, branch_name) -> dict:
    return {
        "id": student.id,
        "name": student.name,
        "email": student.email,
        "branch": branch_name,
        "is_enabled": student.is_enabled,
    }


def search_students(session: Session, institute_id: int, query: str = "") -> list[dict]:
    """Enabled students whose name or email contains ``query``."""
    term = f"%{escape_like(query.strip().lower())}%"
    rows = session.exec(
        select(Student, Branch.name)
        .join(Branch, Branch.id == Student.branch_id, isouter=True)
        .where(
            Student.institute_id == institute_id,
            Student.is_enabled == True,
            or_(
                func.lower(Student.name).like(term, escape="\\"),
                func.lower(Student.email).like(term, escape="\\"),
            ),
        )
        .order_by(Student.name)
    ).all()
    return [_student_row(student, branch_name) for student, branch_name in rows]


def list_students(session: Session, institute_id: int, query: str = "", branch: str = "") -> list[dict]:
    """All students of an institute, enabled or not, optionally filtered."""
    stmt = (
        select(Student, Branch.name)
        .join(Branch, Branch.id == Student.branch_id, isouter=True)
        .where(Student.institute_id == institute_id)
    )
    if query.strip():
        term = f"%{escape_like(query.strip().lower())}%"
        stmt = stmt.where(
            or_(
                func.lower(Student.name).like(term, escape="\\"),
                func.lower(Student.email).like(term, escape="\\"),
            )
        )
    if branch.strip():
        stmt = stmt.where(func.lower(Branch.name) == branch.strip().lower())
    rows = session.exec(stmt.order_by(Student.name, Student.id)).all()
    return [_student_row(student, branch_name) for student, branch_name in rows]


def update_student(session: Session, institute_id: int, payload: StudentUpdateIn) -> dict:
    """Update a student's details, moving them to another branch if needed.

    A student moved into a new branch picks up the exams enabled for it.
    Branch-derived assignments the new branch does not offer are closed;
    direct assignments are kept.
    """
    student = session.get(Student, payload.id)
    if not student or student.institute_id != institute_id:
        raise NotFound("Student not found.")
    branch = find_branch_by_name(session, institute_id, payload.branch)
    if branch is None:
        raise NotFound("Branch not found.")

    email = normalize_email(payload.email)
    clash = session.exec(
        select(Student.id).where(Student.email == email, Student.id != student.id)
    ).first()
    if clash is not None:
        raise Conflict("Email already registered")

    moved = student.branch_id != branch.id
    with transaction(session):
        student.name = sanitize_plain_text(payload.name) or payload.name.strip()
        student.email = email
        student.branch_id = branch.id
        student.is_enabled = payload.is_enabled
        session.add(student)
        if moved:
            session.flush()
            release_branch_exams_of_student(session, student.id, branch.id)
            assign_branch_exams_to_student(session, student.id, branch.id)
    session.refresh(student)
    logger.info("Institute %s updated student %s", institute_id, student.id)
    return {
        "message": "Student updated successfully.",
        "student": _student_row(student, branch.name),
    }
