"""Institute routes: branches, exam authoring, assignment, students and reports."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from eduexamine.database import get_session
from eduexamine.deps import Identity, require_institute
from eduexamine.schemas import (
    AnnouncementIn,
    AssignBranchesIn,
    AssignStudentsIn,
    BranchIn,
    BulkUploadIn,
    ExamEnabledIn,
    ExamIn,
    ExamUpdateIn,
    ResultLockIn,
    StudentUpdateIn,
)
from eduexamine.services import (
    accounts,
    announcements,
    assignments,
    directory,
    exams,
    reports,
    result_lock,
)

router = APIRouter(prefix="/institute")


@router.get("")
def get_dashboard(
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return reports.dashboard(session, institute.id)


# ===================== BRANCHES =====================


@router.get("/branches")
def get_branches(
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return directory.list_branches(session, institute.id)


@router.post("/create-branch", status_code=status.HTTP_201_CREATED)
def create_branch(
    payload: BranchIn,
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    branch = directory.create_branch(session, institute.id, payload.name)
    return {"message": "Branch created successfully", "branch": branch}


# ===================== EXAMS =====================


@router.post("/createExam", status_code=status.HTTP_201_CREATED)
def create_exam(
    payload: ExamIn,
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    exam = exams.create_exam(session, institute.id, payload)
    return {"message": "Exam created successfully", "exam_id": exam.id}


@router.post("/updateExam")
def update_exam(
    payload: ExamUpdateIn,
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    exam = exams.update_exam(session, institute.id, payload)
    return {"message": "Exam updated successfully", "exam": exams.serialize_exam(exam)}


@router.get("/exams")
def list_exams(
    scheduled: bool = Query(False),
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return exams.list_exams(session, institute.id, scheduled=scheduled)


@router.get("/exams/{exam_id}")
def get_exam(
    exam_id: int,
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return exams.get_exam_for_authoring(session, institute.id, exam_id)


@router.get("/search-exam")
def search_exams(
    search: str = Query(""),
    branch: str = Query(""),
    created_on: Optional[date] = Query(None, alias="date"),
    sort_field: str = Query("created_at", alias="sortField"),
    sort_order: str = Query("asc", alias="sortOrder"),
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return exams.search_exams(
        session,
        institute.id,
        search=search,
        branch=branch,
        created_on=created_on,
        sort_field=sort_field,
        sort_order=sort_order,
    )


@router.put("/exams/{exam_id}/enable")
def toggle_exam(
    exam_id: int,
    payload: ExamEnabledIn,
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    exam = exams.set_exam_enabled(session, institute.id, exam_id, payload.is_enabled)
    return {"message": "Exam status updated", "id": exam.id, "is_enabled": exam.is_enabled}


@router.put("/exams/{exam_id}/lock-result")
def lock_result(
    exam_id: int,
    payload: ResultLockIn,
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return {
        "message": "Result lock updated",
        "exam": result_lock.set_result_lock(session, institute.id, exam_id, payload.result_locked),
    }


# ===================== ASSIGNMENT =====================


@router.post("/assign-exam-to-branches")
def assign_exam_to_branches(
    payload: AssignBranchesIn,
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    summary = assignments.assign_exam_to_branches(
        session, institute.id, payload.exam_id, payload.branch_ids
    )
    return {"message": "Exam assignment updated successfully", **summary}


@router.post("/assign-exam-to-students")
def assign_exam_to_students(
    payload: AssignStudentsIn,
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    summary = assignments.assign_exam_to_students(
        session, institute.id, payload.exam_id, payload.student_ids
    )
    return {"message": "Exam assignment updated successfully", **summary}


@router.get("/exam-assigned-branches")
def exam_assigned_branches(
    exam_id: int = Query(..., alias="examId"),
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return assignments.assigned_branches(session, institute.id, exam_id)


@router.get("/exam-assigned-students")
def exam_assigned_students(
    exam_id: int = Query(..., alias="examId"),
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return assignments.assigned_students(session, institute.id, exam_id)


# ===================== STUDENTS =====================


@router.post("/bulk-upload", status_code=status.HTTP_201_CREATED)
def bulk_upload(
    payload: BulkUploadIn,
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return accounts.bulk_register_students(session, institute.id, payload.students)


@router.get("/search-students")
def search_students(
    query: str = Query(""),
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return directory.search_students(session, institute.id, query)


@router.get("/students")
def list_students(
    query: str = Query(""),
    branch: str = Query(""),
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return directory.list_students(session, institute.id, query=query, branch=branch)


@router.post("/update-student")
def update_student(
    payload: StudentUpdateIn,
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return directory.update_student(session, institute.id, payload)


@router.get("/students/{student_id}/results")
def student_results(
    student_id: int,
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return reports.results_for_student(session, institute.id, student_id)


# ===================== REPORTS =====================


@router.get("/allResults")
def all_results(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = Query(""),
    branch: str = Query(""),
    exam_title: str = Query("", alias="examTitle"),
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return reports.all_results(
        session,
        institute.id,
        page=page,
        limit=limit,
        search=search,
        branch=branch,
        exam_title=exam_title,
    )


@router.get("/topPerformers")
def top_performers(
    exam_title: str = Query(..., alias="examTitle", min_length=1),
    branch: str = Query(""),
    limit: int = Query(5, ge=1, le=100),
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return reports.top_performers(session, institute.id, exam_title, branch=branch, limit=limit)


@router.get("/student-report")
def student_report(
    student_name: str = Query(..., alias="studentName", min_length=1),
    branch: str = Query(""),
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return reports.student_report(session, institute.id, student_name, branch=branch)


@router.get("/exam-summary")
def exam_summary(
    exam_title: str = Query(..., alias="examTitle", min_length=1),
    branch: Optional[str] = Query(None),
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return reports.exam_summary(session, institute.id, exam_title, branch=branch)


# ===================== ANNOUNCEMENTS =====================


@router.get("/announcements")
def get_announcements(
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return announcements.list_announcements(session, institute.id)


@router.post("/announcements", status_code=status.HTTP_201_CREATED)
def create_announcement(
    payload: AnnouncementIn,
    session: Session = Depends(get_session),
    institute: Identity = Depends(require_institute),
):
    return announcements.create_announcement(session, institute.id, payload)
