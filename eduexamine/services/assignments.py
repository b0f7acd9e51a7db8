"""Exam visibility.

Write side: reconciles branch-level and direct student assignment requests
into ``exam_student_assignments`` rows. Read side: decides which exams a
student can see and classifies each one as pending, submitted, closed or
unknown.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import case, func, or_, update
from sqlmodel import Session, select

from eduexamine.database import transaction, upsert
from eduexamine.exceptions import NotFound
from eduexamine.models import (
    ASSIGNED_FROM_BRANCH,
    ASSIGNED_FROM_DIRECT,
    Branch,
    Exam,
    ExamBranchAssignment,
    ExamStudentAssignment,
    Institute,
    Student,
    StudentExamResult,
)
from eduexamine.services.exams import get_owned_exam
from eduexamine.utils import utcnow

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_SUBMITTED = "submitted"
STATUS_CLOSED = "closed"
STATUS_UNKNOWN = "unknown"


# ===================== WRITE SIDE =====================


def enabled_branch_ids(session: Session, exam_id: int) -> list[int]:
    return list(
        session.exec(
            select(ExamBranchAssignment.branch_id).where(
                ExamBranchAssignment.exam_id == exam_id,
                ExamBranchAssignment.is_enabled == True,
            )
        ).all()
    )


def assigned_branches(session: Session, institute_id: int, exam_id: int) -> dict:
    get_owned_exam(session, exam_id, institute_id)
    return {"assigned_branch_ids": sorted(enabled_branch_ids(session, exam_id))}


def assigned_students(session: Session, institute_id: int, exam_id: int) -> dict:
    """Students holding a live direct assignment for the exam."""
    get_owned_exam(session, exam_id, institute_id)
    student_ids = session.exec(
        select(ExamStudentAssignment.student_id).where(
            ExamStudentAssignment.exam_id == exam_id,
            ExamStudentAssignment.assigned_from == ASSIGNED_FROM_DIRECT,
            ExamStudentAssignment.is_enabled == True,
        )
    ).all()
    return {"assigned_student_ids": sorted(student_ids)}


def _enable_assignment(
    session: Session, exam_id: int, student_id: int, source: str, now: datetime
) -> None:
    """Upsert an enabled assignment row, clearing any previous disable stamp."""
    table = ExamStudentAssignment.__table__
    update_cols = {"is_enabled": True, "disabled_at": None}
    if source == ASSIGNED_FROM_DIRECT:
        # An explicit assignment takes the row over from its branch
        update_cols["assigned_from"] = ASSIGNED_FROM_DIRECT
    else:
        # A live direct row stays direct; a disabled one is revived by the branch
        update_cols["assigned_from"] = case(
            (table.c.is_enabled == False, ASSIGNED_FROM_BRANCH),
            else_=table.c.assigned_from,
        )
    upsert(
        session,
        ExamStudentAssignment,
        values={
            "exam_id": exam_id,
            "student_id": student_id,
            "is_enabled": True,
            "has_submitted": False,
            "assigned_from": source,
            "assigned_at": now,
            "disabled_at": None,
        },
        conflict_cols=["exam_id", "student_id"],
        update=update_cols,
    )


def _check_branches(session: Session, institute_id: int, branch_ids: Iterable[int]) -> None:
    wanted = set(branch_ids)
    if not wanted:
        return
    found = set(
        session.exec(
            select(Branch.id).where(Branch.id.in_(wanted), Branch.institute_id == institute_id)
        ).all()
    )
    missing = sorted(wanted - found)
    if missing:
        raise NotFound(f"Branch not found: {', '.join(str(b) for b in missing)}")


def _check_students(session: Session, institute_id: int, student_ids: Iterable[int]) -> None:
    wanted = set(student_ids)
    if not wanted:
        return
    found = set(
        session.exec(
            select(Student.id).where(Student.id.in_(wanted), Student.institute_id == institute_id)
        ).all()
    )
    missing = sorted(wanted - found)
    if missing:
        raise NotFound(f"Student not found: {', '.join(str(s) for s in missing)}")


def assign_exam_to_branches(
    session: Session, institute_id: int, exam_id: int, branch_ids: list[int]
) -> dict:
    """Make the set of enabled branches for an exam equal ``branch_ids``.

    Newly included branches enable every student of the branch. Newly
    excluded branches disable only the branch-derived rows of their
    students; direct assignments are left as they are. All-or-nothing.
    """
    wanted = {int(b) for b in branch_ids}
    with transaction(session):
        get_owned_exam(session, exam_id, institute_id)
        _check_branches(session, institute_id, wanted)

        current = set(enabled_branch_ids(session, exam_id))
        to_add = sorted(wanted - current)
        to_remove = sorted(current - wanted)
        now = utcnow()
        enabled = disabled = 0

        for branch_id in to_add:
            upsert(
                session,
                ExamBranchAssignment,
                values={
                    "exam_id": exam_id,
                    "branch_id": branch_id,
                    "is_enabled": True,
                    "assigned_at": now,
                },
                conflict_cols=["exam_id", "branch_id"],
                update={"is_enabled": True},
            )
            student_ids = session.exec(
                select(Student.id).where(Student.branch_id == branch_id)
            ).all()
            for student_id in student_ids:
                _enable_assignment(session, exam_id, student_id, ASSIGNED_FROM_BRANCH, now)
            enabled += len(student_ids)

        for branch_id in to_remove:
            session.exec(
                update(ExamBranchAssignment)
                .where(
                    ExamBranchAssignment.exam_id == exam_id,
                    ExamBranchAssignment.branch_id == branch_id,
                )
                .values(is_enabled=False)
                .execution_options(synchronize_session=False)
            )
            result = session.exec(
                update(ExamStudentAssignment)
                .where(
                    ExamStudentAssignment.exam_id == exam_id,
                    ExamStudentAssignment.assigned_from == ASSIGNED_FROM_BRANCH,
                    ExamStudentAssignment.is_enabled == True,
                    ExamStudentAssignment.student_id.in_(
                        select(Student.id).where(Student.branch_id == branch_id)
                    ),
                )
                .values(is_enabled=False, disabled_at=now)
                .execution_options(synchronize_session=False)
            )
            disabled += result.rowcount

    logger.info(
        "Exam %s branches +%s -%s (%d student rows enabled, %d disabled)",
        exam_id,
        to_add,
        to_remove,
        enabled,
        disabled,
    )
    return {
        "added_branch_ids": to_add,
        "removed_branch_ids": to_remove,
        "students_enabled": enabled,
        "students_disabled": disabled,
    }


def assign_exam_to_students(
    session: Session, institute_id: int, exam_id: int, student_ids: list[int]
) -> dict:
    """Make the set of enabled direct assignments for an exam equal ``student_ids``.

    A removed student whose branch still has the exam enabled keeps an
    enabled row, handed back to the branch; otherwise the row is disabled.
    """
    wanted = {int(s) for s in student_ids}
    with transaction(session):
        get_owned_exam(session, exam_id, institute_id)
        _check_students(session, institute_id, wanted)

        current = set(
            session.exec(
                select(ExamStudentAssignment.student_id).where(
                    ExamStudentAssignment.exam_id == exam_id,
                    ExamStudentAssignment.assigned_from == ASSIGNED_FROM_DIRECT,
                    ExamStudentAssignment.is_enabled == True,
                )
            ).all()
        )
        to_add = sorted(wanted - current)
        to_remove = sorted(current - wanted)
        now = utcnow()

        for student_id in to_add:
            _enable_assignment(session, exam_id, student_id, ASSIGNED_FROM_DIRECT, now)

        if to_remove:
            covered_by_branch = set(
                session.exec(
                    select(Student.id).where(
                        Student.id.in_(to_remove),
                        Student.branch_id.in_(enabled_branch_ids(session, exam_id)),
                    )
                ).all()
            )
            handed_back = sorted(covered_by_branch)
            to_disable = sorted(set(to_remove) - covered_by_branch)
            if handed_back:
                session.exec(
                    update(ExamStudentAssignment)
                    .where(
                        ExamStudentAssignment.exam_id == exam_id,
                        ExamStudentAssignment.student_id.in_(handed_back),
                    )
                    .values(assigned_from=ASSIGNED_FROM_BRANCH)
                    .execution_options(synchronize_session=False)
                )
            if to_disable:
                session.exec(
                    update(ExamStudentAssignment)
                    .where(
                        ExamStudentAssignment.exam_id == exam_id,
                        ExamStudentAssignment.student_id.in_(to_disable),
                        ExamStudentAssignment.is_enabled == True,
                    )
                    .values(is_enabled=False, disabled_at=now)
                    .execution_options(synchronize_session=False)
                )

    logger.info("Exam %s direct students +%s -%s", exam_id, to_add, to_remove)
    return {"added_student_ids": to_add, "removed_student_ids": to_remove}


def assign_branch_exams_to_student(session: Session, student_id: int, branch_id: Optional[int]) -> int:
    """Give a student joining ``branch_id`` the exams currently enabled for it.

    Runs inside the caller's transaction.
    """
    if branch_id is None:
        return 0
    exam_ids = session.exec(
        select(ExamBranchAssignment.exam_id).where(
            ExamBranchAssignment.branch_id == branch_id,
            ExamBranchAssignment.is_enabled == True,
        )
    ).all()
    now = utcnow()
    for exam_id in exam_ids:
        _enable_assignment(session, exam_id, student_id, ASSIGNED_FROM_BRANCH, now)
    return len(exam_ids)


def release_branch_exams_of_student(session: Session, student_id: int, branch_id: Optional[int]) -> int:
    """Close a moved student's branch-derived rows that ``branch_id`` does not offer.

    Runs inside the caller's transaction.
    """
    kept_exam_ids = select(ExamBranchAssignment.exam_id).where(
        ExamBranchAssignment.branch_id == branch_id,
        ExamBranchAssignment.is_enabled == True,
    )
    result = session.exec(
        update(ExamStudentAssignment)
        .where(
            ExamStudentAssignment.student_id == student_id,
            ExamStudentAssignment.assigned_from == ASSIGNED_FROM_BRANCH,
            ExamStudentAssignment.is_enabled == True,
            ExamStudentAssignment.exam_id.not_in(kept_exam_ids),
        )
        .values(is_enabled=False, disabled_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("Student %s left %d branch exam(s)", student_id, result.rowcount)
    return result.rowcount


# ===================== READ SIDE =====================


def classify(assignment: Optional[ExamStudentAssignment]) -> str:
    """Status of one exam for one student, by precedence."""
    has_submitted = bool(assignment and assignment.has_submitted)
    if has_submitted:
        return STATUS_SUBMITTED
    if assignment is not None and assignment.is_enabled:
        return STATUS_PENDING
    if assignment is not None and not assignment.is_enabled and assignment.disabled_at is not None:
        return STATUS_CLOSED
    return STATUS_UNKNOWN


def get_student(session: Session, student_id: int) -> Student:
    student = session.get(Student, student_id)
    if not student:
        raise NotFound("Student not found")
    return student


def visible_exams(session: Session, student: Student) -> list[tuple[Exam, Optional[ExamStudentAssignment]]]:
    """Globally enabled exams offered to the student's branch or assigned directly.

    A disabled student sees nothing.
    """
    if not student.is_enabled:
        return []
    assignments = {
        a.exam_id: a
        for a in session.exec(
            select(ExamStudentAssignment).where(ExamStudentAssignment.student_id == student.id)
        ).all()
    }
    branch_exam_ids = select(ExamBranchAssignment.exam_id).where(
        ExamBranchAssignment.branch_id == student.branch_id,
        ExamBranchAssignment.is_enabled == True,
    )
    exams = session.exec(
        select(Exam)
        .where(
            Exam.is_enabled == True,
            or_(Exam.id.in_(branch_exam_ids), Exam.id.in_(list(assignments))),
        )
        .order_by(Exam.created_at.desc(), Exam.id.desc())
    ).all()
    return [(exam, assignments.get(exam.id)) for exam in exams]


def get_visible_exam(session: Session, student_id: int, exam_id: int) -> Exam:
    student = get_student(session, student_id)
    for exam, _ in visible_exams(session, student):
        if exam.id == exam_id:
            return exam
    raise NotFound("Exam not found")


def list_student_exams(session: Session, student_id: int, exam_status: Optional[str] = None) -> list[dict]:
    """Visible exams for a student, optionally filtered by status."""
    student = get_student(session, student_id)
    taken = {
        r.exam_id: r.submitted_at
        for r in session.exec(
            select(StudentExamResult).where(StudentExamResult.student_id == student_id)
        ).all()
    }
    wanted = (exam_status or "").lower() or None
    exams = []
    for exam, assignment in visible_exams(session, student):
        status = classify(assignment)
        if wanted and status != wanted:
            continue
        exams.append(
            {
                "exam_id": exam.id,
                "title": exam.title,
                "description": exam.description,
                "scheduled_date": exam.scheduled_date,
                "duration_min": exam.duration_min,
                "taken_date": taken.get(exam.id),
                "status": status,
            }
        )
    return exams


def student_profile(session: Session, student_id: int) -> dict:
    """Assignment counters for a student's dashboard."""
    row = session.exec(
        select(Student.id, Student.name, Institute.name)
        .join(Institute, Institute.id == Student.institute_id)
        .where(Student.id == student_id)
    ).first()
    if row is None:
        raise NotFound("Student not found")
    sid, student_name, institute_name = row

    esa = ExamStudentAssignment
    counts = session.exec(
        select(
            func.count(esa.id).filter(esa.is_enabled == True),
            func.count(esa.id).filter(esa.has_submitted == True, esa.is_enabled == True),
            func.count(esa.id).filter(esa.has_submitted == False, esa.is_enabled == True),
            func.count(esa.id).filter(
                esa.has_submitted == False,
                esa.is_enabled == False,
                esa.disabled_at.is_not(None),
            ),
        ).where(esa.student_id == student_id)
    ).one()
    total, submitted, pending, closed = counts
    return {
        "student_id": sid,
        "student_name": student_name,
        "institute_name": institute_name,
        "total_exams": total,
        "submitted": submitted,
        "pending": pending,
        "closed": closed,
    }
