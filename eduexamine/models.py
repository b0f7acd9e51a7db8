"""SQLModel models for the EduExamine exam-management backend."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Index, UniqueConstraint, func
from sqlmodel import Field, SQLModel

from eduexamine.utils import utcnow

# Values of ExamStudentAssignment.assigned_from
ASSIGNED_FROM_BRANCH = "branch"
ASSIGNED_FROM_DIRECT = "direct"


class Institute(SQLModel, table=True):
    __tablename__ = "institutes"
    __table_args__ = (UniqueConstraint("email", name="uq_institute_email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str
    password_hash: str
    address: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Branch(SQLModel, table=True):
    """An institute's grouping of students (e.g. a class section)."""

    __tablename__ = "branches"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    institute_id: int = Field(foreign_key="institutes.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


# Branch names are unique per institute regardless of case
Index(
    "unique_branch_name_per_institute",
    func.lower(Branch.__table__.c.name),
    Branch.__table__.c.institute_id,
    unique=True,
)


class Student(SQLModel, table=True):
    __tablename__ = "students"
    __table_args__ = (UniqueConstraint("email", name="uq_student_email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str
    password_hash: str
    institute_id: int = Field(foreign_key="institutes.id", index=True)
    branch_id: Optional[int] = Field(default=None, foreign_key="branches.id", index=True)
    # Disabled students cannot log in, see exams or submit
    is_enabled: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Exam(SQLModel, table=True):
    __tablename__ = "exams"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    scheduled_date: Optional[date] = None
    expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    duration_min: Optional[int] = None
    pass_percentage: Optional[float] = None
    # Sum of question marks, recomputed whenever questions are replaced
    total_marks: int = Field(default=0)
    is_enabled: bool = Field(default=True)
    result_locked: bool = Field(default=False)
    created_by: int = Field(foreign_key="institutes.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Question(SQLModel, table=True):
    """A question belonging to exactly one exam.

    ``options`` always holds the normalized ``{"kind": ..., "choices": [...]}``
    shape; see ``eduexamine.schemas.QuestionOptions``.
    """

    __tablename__ = "questions"

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exams.id", index=True)
    question_text: str
    options: dict = Field(sa_column=Column(JSON, nullable=False))
    correct_answer: str
    marks: int = Field(default=1)


class ExamBranchAssignment(SQLModel, table=True):
    __tablename__ = "exam_branch_assignments"
    __table_args__ = (
        UniqueConstraint("exam_id", "branch_id", name="uq_exam_branch"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exams.id", index=True)
    branch_id: int = Field(foreign_key="branches.id", index=True)
    is_enabled: bool = Field(default=True)
    assigned_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class ExamStudentAssignment(SQLModel, table=True):
    """Authoritative visibility and progress record for one student and exam."""

    __tablename__ = "exam_student_assignments"
    __table_args__ = (
        UniqueConstraint("exam_id", "student_id", name="uq_exam_student"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exams.id", index=True)
    student_id: int = Field(foreign_key="students.id", index=True)
    is_enabled: bool = Field(default=True)
    has_submitted: bool = Field(default=False)
    assigned_from: str = Field(default=ASSIGNED_FROM_DIRECT)  # "branch" | "direct"
    assigned_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    # Stamped on an enabled -> disabled transition, cleared on re-enable
    disabled_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))


class StudentExamResult(SQLModel, table=True):
    """Ledger row: latest scored outcome of a student's exam submission."""

    __tablename__ = "student_exam_results"
    __table_args__ = (
        UniqueConstraint("student_id", "exam_id", name="uq_student_exam_result"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="students.id", index=True)
    exam_id: int = Field(foreign_key="exams.id", index=True)
    score: float
    status: str  # "Pass" | "Fail"
    submitted_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class RefreshToken(SQLModel, table=True):
    __tablename__ = "refresh_tokens"
    __table_args__ = (
        UniqueConstraint("user_id", "user_type", name="uq_refresh_token_user"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int
    user_type: str  # "institute" | "student"
    token: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Announcement(SQLModel, table=True):
    __tablename__ = "announcements"

    id: Optional[int] = Field(default=None, primary_key=True)
    institute_id: int = Field(foreign_key="institutes.id", index=True)
    title: str
    content: str
    visible_to: str = Field(default="all")
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


# ===================== GUEST MODELS =====================


class GuestUser(SQLModel, table=True):
    __tablename__ = "guest_users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class GuestExam(SQLModel, table=True):
    __tablename__ = "guest_exams"

    id: Optional[int] = Field(default=None, primary_key=True)
    guest_user_id: Optional[int] = Field(default=None, foreign_key="guest_users.id", index=True)
    title: str
    description: Optional[str] = None
    scheduled_date: Optional[date] = None
    # NULL means the exam has no time limit
    duration_min: Optional[int] = None
    pass_percentage: Optional[float] = None
    created_by: Optional[str] = None
    exam_link: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class GuestQuestion(SQLModel, table=True):
    __tablename__ = "guest_questions"

    id: Optional[int] = Field(default=None, primary_key=True)
    guest_exam_id: int = Field(foreign_key="guest_exams.id", index=True)
    question_text: str
    options: dict = Field(sa_column=Column(JSON, nullable=False))
    correct_answer: str
    marks: int = Field(default=1)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class GuestExamAttempt(SQLModel, table=True):
    """Append-only record of an anonymous attempt at a guest exam."""

    __tablename__ = "guest_exam_attempts"

    id: Optional[int] = Field(default=None, primary_key=True)
    guest_exam_id: int = Field(foreign_key="guest_exams.id", index=True)
    student_name: str = Field(default="Anonymous")
    # Rounded percentage
    score: int
    submitted_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
