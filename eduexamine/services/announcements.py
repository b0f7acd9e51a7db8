import logging

from sqlmodel import Session, select

from eduexamine.database import transaction
from eduexamine.exceptions import ValidationFailed
from eduexamine.models import Announcement
from eduexamine.schemas import AnnouncementIn
from eduexamine.utils import sanitize_plain_text

logger = logging.getLogger(__name__)


def serialize_announcement(a: Announcement) -> dict:
    return {
        "id": a.id,
        "title": a.title,
        "content": a.content,
        "visible_to": a.visible_to,
        "institute_id": a.institute_id,
        "created_at": a.created_at,
    }


def list_announcements(session: Session, institute_id: int) -> list[dict]:
    rows = session.exec(
        select(Announcement)
        .where(Announcement.institute_id == institute_id)
        .order_by(Announcement.created_at.desc(), Announcement.id.desc())
    ).all()
    return [serialize_announcement(a) for a in rows]


def create_announcement(session: Session, institute_id: int, payload: AnnouncementIn) -> dict:
    title = sanitize_plain_text(payload.title)
    content = sanitize_plain_text(payload.message)
    if not title or not content:
        raise ValidationFailed("Title and message are required")
    with transaction(session):
        announcement = Announcement(
            institute_id=institute_id,
            title=title,
            content=content,
            visible_to=payload.visible_to.strip() or "all",
        )
        session.add(announcement)
    session.refresh(announcement)
    logger.info("Institute %s posted announcement %s", institute_id, announcement.id)
    return serialize_announcement(announcement)
