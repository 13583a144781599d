import logging
from typing import Iterable, List, NamedTuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bookbridge import models
from bookbridge.database import commit

logger = logging.getLogger(__name__)


class NotificationDraft(NamedTuple):
    user_id: int
    type: str
    title: str
    message: str


def create_book_notification(
    db: Session, user_id: int, notification_type: str, title: str, message: str
) -> models.Notification:
    """
    Insert one notification row and commit.

    This is the remote procedure clients call directly; it performs no
    validation beyond the constraints of the table itself.

    Raises:
        StoreError: if the row cannot be stored
    """
    notification = models.Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        read=False,
    )
    db.add(notification)
    commit(db, "Failed to create notification. Please try again.")
    db.refresh(notification)
    return notification


def dispatch(db: Session, drafts: Iterable[NotificationDraft]) -> bool:
    """
    Best-effort delivery of workflow notifications.

    Runs after the primary transition has been committed. A failure is
    logged and rolled back on its own; it never reaches the caller and is
    not retried.

    Returns:
        True if every notification was stored
    """
    drafts = list(drafts)
    if not drafts:
        return True
    try:
        for draft in drafts:
            db.add(
                models.Notification(
                    user_id=draft.user_id,
                    type=draft.type,
                    title=draft.title,
                    message=draft.message,
                    read=False,
                )
            )
        db.commit()
        return True
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Failed to deliver %d notification(s) of type %s",
            len(drafts),
            ", ".join(sorted({draft.type for draft in drafts})),
        )
        return False


def list_for_user(
    db: Session, user: models.Profile, unread_only: bool = False
) -> List[models.Notification]:
    query = db.query(models.Notification).filter(
        models.Notification.user_id == user.id
    )
    if unread_only:
        query = query.filter(models.Notification.read == False)
    return query.order_by(
        models.Notification.created_at.desc(), models.Notification.id.desc()
    ).all()


def unread_count(db: Session, user: models.Profile) -> int:
    return (
        db.query(models.Notification)
        .filter(
            models.Notification.user_id == user.id,
            models.Notification.read == False,
        )
        .count()
    )


def mark_read(db: Session, notification: models.Notification) -> models.Notification:
    """Mark one notification read. Already-read rows are left untouched."""
    if not notification.read:
        notification.read = True
        commit(db, "Failed to mark notification as read. Please try again.")
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user: models.Profile) -> int:
    """Mark every unread notification of `user` read; returns how many changed."""
    unread = (
        db.query(models.Notification)
        .filter(
            models.Notification.user_id == user.id,
            models.Notification.read == False,
        )
        .all()
    )
    for notification in unread:
        notification.read = True
    commit(db, "Failed to mark notifications as read. Please try again.")
    return len(unread)
