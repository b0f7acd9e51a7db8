"""Registration, login and token lifecycle for institutes and students."""

import logging
from typing import Optional

from sqlalchemy import delete, func
from sqlmodel import Session, select

from eduexamine.auth_utils import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)
from eduexamine.config import Settings
from eduexamine.database import transaction, upsert
from eduexamine.exceptions import AuthenticationFailed, Conflict, Forbidden, NotFound
from eduexamine.models import Branch, Institute, RefreshToken, Student
from eduexamine.schemas import (
    BulkStudentRow,
    InstituteRegisterIn,
    LoginIn,
    StudentRegisterIn,
)
from eduexamine.services.assignments import assign_branch_exams_to_student
from eduexamine.utils import sanitize_plain_text

logger = logging.getLogger(__name__)

ROLE_INSTITUTE = "institute"
ROLE_STUDENT = "student"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def issue_tokens(session: Session, settings: Settings, user_id: int, email: str, role: str) -> dict:
    """Create an access/refresh pair and persist the refresh token for (user, role)."""
    access = create_access_token(settings, user_id, email, role)
    refresh = create_refresh_token(settings, user_id, email, role)
    with transaction(session):
        upsert(
            session,
            RefreshToken,
            values={"user_id": user_id, "user_type": role, "token": refresh},
            conflict_cols=["user_id", "user_type"],
            update={"token": lambda excluded: excluded.token},
        )
    return {"token": access, "refresh_token": refresh}


def register_institute(session: Session, settings: Settings, payload: InstituteRegisterIn) -> dict:
    email = normalize_email(payload.email)
    if session.exec(select(Institute).where(Institute.email == email)).first():
        raise Conflict("Email already registered")

    with transaction(session):
        institute = Institute(
            name=sanitize_plain_text(payload.name) or payload.name.strip(),
            email=email,
            password_hash=hash_password(payload.password),
            address=payload.address.strip(),
        )
        session.add(institute)
    session.refresh(institute)
    logger.info("Registered institute %s", institute.id)

    tokens = issue_tokens(session, settings, institute.id, institute.email, ROLE_INSTITUTE)
    return {
        **tokens,
        "institute": {
            "id": institute.id,
            "name": institute.name,
            "email": institute.email,
            "role": ROLE_INSTITUTE,
        },
    }


def _branch_for_institute(session: Session, institute_id: int, branch_id: Optional[int]) -> Optional[Branch]:
    if branch_id is None:
        return None
    branch = session.get(Branch, branch_id)
    if not branch or branch.institute_id != institute_id:
        raise NotFound("Branch not found")
    return branch


def register_student(session: Session, settings: Settings, payload: StudentRegisterIn) -> dict:
    email = normalize_email(payload.email)
    if not session.get(Institute, payload.institute_id):
        raise NotFound("Institute not found")
    _branch_for_institute(session, payload.institute_id, payload.branch_id)
    if session.exec(select(Student).where(Student.email == email)).first():
        raise Conflict("Email already registered")

    with transaction(session):
        student = Student(
            name=sanitize_plain_text(payload.name) or payload.name.strip(),
            email=email,
            password_hash=hash_password(payload.password),
            institute_id=payload.institute_id,
            branch_id=payload.branch_id,
        )
        session.add(student)
        session.flush()
        assign_branch_exams_to_student(session, student.id, student.branch_id)
    session.refresh(student)
    logger.info("Registered student %s in institute %s", student.id, student.institute_id)

    tokens = issue_tokens(session, settings, student.id, student.email, ROLE_STUDENT)
    return {
        **tokens,
        "student": {
            "id": student.id,
            "name": student.name,
            "email": student.email,
            "role": ROLE_STUDENT,
        },
    }


def bulk_register_students(session: Session, institute_id: int, rows: list[BulkStudentRow]) -> dict:
    """Register a batch of students, or none of them.

    Every row is validated before anything is inserted; if any row fails,
    the whole batch is rejected with the full list of row errors.
    """
    branches = {
        b.name.lower(): b.id
        for b in session.exec(select(Branch).where(Branch.institute_id == institute_id)).all()
    }
    failed: list[dict] = []
    valid: list[tuple[BulkStudentRow, str, int]] = []
    seen_emails: set[str] = set()

    for index, row in enumerate(rows):
        name = (row.name or "").strip()
        email = normalize_email(row.email or "")
        password = row.password or ""
        branch = (row.branch or "").strip()
        if not name or not email or not password or not branch:
            failed.append({"row": index, "email": row.email, "reason": "Missing required fields"})
            continue
        if email in seen_emails:
            failed.append({"row": index, "email": email, "reason": "Duplicate email in upload"})
            continue
        seen_emails.add(email)
        if session.exec(select(Student.id).where(Student.email == email)).first() is not None:
            failed.append({"row": index, "email": email, "reason": "Email already exists"})
            continue
        branch_id = branches.get(branch.lower())
        if branch_id is None:
            failed.append({"row": index, "email": email, "reason": f"Invalid branch: {branch}"})
            continue
        valid.append((row, email, branch_id))

    if failed:
        raise Conflict("Some records failed validation", errors=failed)

    with transaction(session):
        for row, email, branch_id in valid:
            student = Student(
                name=sanitize_plain_text(row.name) or row.name.strip(),
                email=email,
                password_hash=hash_password(row.password),
                institute_id=institute_id,
                branch_id=branch_id,
            )
            session.add(student)
            session.flush()
            assign_branch_exams_to_student(session, student.id, branch_id)

    logger.info("Bulk registered %d students for institute %s", len(valid), institute_id)
    return {"message": "All students registered successfully", "count": len(valid)}


def login(session: Session, settings: Settings, payload: LoginIn) -> dict:
    email = normalize_email(payload.email)

    if payload.role == ROLE_INSTITUTE:
        institute = session.exec(select(Institute).where(Institute.email == email)).first()
        if not institute or not verify_password(payload.password, institute.password_hash):
            raise AuthenticationFailed("Invalid credentials")
        tokens = issue_tokens(session, settings, institute.id, institute.email, ROLE_INSTITUTE)
        return {
            **tokens,
            "user": {
                "id": institute.id,
                "name": institute.name,
                "email": institute.email,
                "role": ROLE_INSTITUTE,
            },
        }

    row = session.exec(
        select(Student, Institute.name, Branch.name)
        .join(Institute, Institute.id == Student.institute_id)
        .join(Branch, Branch.id == Student.branch_id, isouter=True)
        .where(func.lower(Student.email) == email)
    ).first()
    if row is None or not verify_password(payload.password, row[0].password_hash):
        raise AuthenticationFailed("Invalid credentials")
    student, institute_name, branch_name = row
    if not student.is_enabled:
        raise Forbidden("Your account is disabled. Please contact your institute.")

    tokens = issue_tokens(session, settings, student.id, student.email, ROLE_STUDENT)
    return {
        **tokens,
        "user": {
            "id": student.id,
            "name": student.name,
            "email": student.email,
            "institute_name": institute_name,
            "branch_name": branch_name,
            "role": ROLE_STUDENT,
        },
    }


def refresh_access_token(session: Session, settings: Settings, refresh_token: str, user_type: str) -> dict:
    """Issue a new access token for a refresh token that is still on record."""
    claims = decode_refresh_token(settings, refresh_token)
    if claims.get("role") != user_type:
        raise Forbidden("Invalid refresh token")
    stored = session.exec(
        select(RefreshToken).where(
            RefreshToken.user_id == claims["id"],
            RefreshToken.user_type == user_type,
            RefreshToken.token == refresh_token,
        )
    ).first()
    if stored is None:
        raise Forbidden("Invalid refresh token")
    return {"token": create_access_token(settings, claims["id"], claims["email"], user_type)}


def logout(session: Session, user_id: int, refresh_token: str, user_type: str) -> dict:
    with transaction(session):
        session.exec(
            delete(RefreshToken).where(
                RefreshToken.user_id == user_id,
                RefreshToken.user_type == user_type,
                RefreshToken.token == refresh_token,
            )
        )
    logger.info("%s %s logged out", user_type.capitalize(), user_id)
    return {"message": "Logged out successfully"}
