"""Public guest-exam routes. No authentication; guests are identified by code."""

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from eduexamine.config import Settings
from eduexamine.database import get_session
from eduexamine.deps import get_app_settings
from eduexamine.schemas import GuestExamIn, GuestRegisterIn, GuestSubmitIn
from eduexamine.services import guest

router = APIRouter(prefix="/guest")


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: GuestRegisterIn, session: Session = Depends(get_session)):
    return guest.register_guest(session, payload.guest_name)


@router.post("/createExam", status_code=status.HTTP_201_CREATED)
def create_exam(
    payload: GuestExamIn,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    return guest.create_guest_exam(session, settings, payload)


@router.get("/getAllExam")
def get_all_exams(
    guest_id: int = Query(..., alias="guestId"),
    session: Session = Depends(get_session),
):
    return guest.list_guest_exams(session, guest_id)


@router.get("/getExam/{exam_id}")
def get_exam(exam_id: int, session: Session = Depends(get_session)):
    return guest.get_guest_exam(session, exam_id)


@router.post("/submitExam")
def submit_exam(payload: GuestSubmitIn, session: Session = Depends(get_session)):
    return guest.submit_guest_exam(session, payload.exam_id, payload.student_name, payload.answers)


@router.get("/getAllResults")
def get_all_results(
    guest_code: int = Query(..., alias="guestCode"),
    session: Session = Depends(get_session),
):
    return guest.guest_results(session, guest_code)
