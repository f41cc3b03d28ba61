import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from models import Notification

logger = logging.getLogger(__name__)


def notify(
    session: Session,
    user_id: int,
    type: str,
    title: str,
    message: str,
    related_id: Optional[int] = None,
) -> Optional[Notification]:
    """
    Insert one inbox entry in its own commit.

    Runs after the state change it reports has already been committed, so a
    failure here is logged and rolled back but never undoes that change.
    Returns the notification, or None if the insert failed.
    """
    note = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        related_id=related_id,
    )
    try:
        session.add(note)
        session.commit()
        session.refresh(note)
    except SQLAlchemyError:
        session.rollback()
        logger.exception(
            "Failed to create %s notification for user %s", type, user_id
        )
        return None
    return note
