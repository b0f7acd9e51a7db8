"""Login, token and registration routes."""

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from eduexamine.config import Settings
from eduexamine.database import get_session
from eduexamine.deps import Identity, get_app_settings, get_current_identity
from eduexamine.exceptions import Forbidden
from eduexamine.schemas import (
    InstituteRegisterIn,
    LoginIn,
    StudentRegisterIn,
    TokenIn,
)
from eduexamine.services import accounts

router = APIRouter()


@router.post("/login")
def login(
    payload: LoginIn,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    return accounts.login(session, settings, payload)


@router.post("/refresh-token")
def refresh_token(
    payload: TokenIn,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    return accounts.refresh_access_token(session, settings, payload.refresh_token, payload.user_type)


@router.post("/logout")
def logout(
    payload: TokenIn,
    session: Session = Depends(get_session),
    identity: Identity = Depends(get_current_identity),
):
    if identity.role != payload.user_type:
        raise Forbidden("Token does not belong to this user")
    return accounts.logout(session, identity.id, payload.refresh_token, payload.user_type)


@router.post("/inst-register", status_code=status.HTTP_201_CREATED)
def register_institute(
    payload: InstituteRegisterIn,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    return accounts.register_institute(session, settings, payload)


@router.post("/student/register", status_code=status.HTTP_201_CREATED)
def register_student(
    payload: StudentRegisterIn,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    return accounts.register_student(session, settings, payload)
