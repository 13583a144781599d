from typing import List

from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends, HTTPException, Query, status

from bookbridge import models, notifications, schemas
from bookbridge.auth import get_current_user
from bookbridge.database import commit, get_db
from bookbridge.routes.errors import run

router = APIRouter(tags=["notifications"])


def _get_own_notification(
    db: Session, notification_id: int, user: models.Profile
) -> models.Notification:
    notification = (
        db.query(models.Notification)
        .filter(
            models.Notification.id == notification_id,
            models.Notification.user_id == user.id,
        )
        .first()
    )
    if not notification:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Notification with id {notification_id} not found",
        )
    return notification


@router.get("/notifications", response_model=List[schemas.Notification])
async def list_notifications(
    unread_only: bool = Query(False),
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the caller's notifications, newest first."""
    return notifications.list_for_user(db, current_user, unread_only=unread_only)


@router.get("/notifications/unread-count", response_model=schemas.UnreadCount)
async def get_unread_count(
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Number of unread notifications, for the navigation badge."""
    return {"unread": notifications.unread_count(db, current_user)}


@router.put("/notifications/read-all", response_model=schemas.Message)
async def mark_all_notifications_read(
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changed = run(notifications.mark_all_read, db, current_user)
    return {"message": f"{changed} notification(s) marked as read"}


@router.put("/notifications/{notification_id}/read", response_model=schemas.Notification)
async def mark_notification_read(
    notification_id: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Mark one notification read.

    Marking an already-read notification again is a no-op, so the unread
    count drops by exactly one per unread notification.
    """
    notification = _get_own_notification(db, notification_id, current_user)
    return run(notifications.mark_read, db, notification)


@router.delete("/notifications/{notification_id}", response_model=schemas.Message)
async def delete_notification(
    notification_id: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete one of the caller's notifications.

    Raises:
        HTTPException: 404 if it does not exist or belongs to someone else
    """
    notification = _get_own_notification(db, notification_id, current_user)
    db.delete(notification)
    run(commit, db, "Failed to delete notification. Please try again.")
    return {"message": f"Notification with id {notification_id} deleted"}


@router.post(
    "/rpc/create_book_notification",
    response_model=schemas.Notification,
    status_code=status.HTTP_201_CREATED,
)
async def create_book_notification(
    call: schemas.NotificationCall,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Remote procedure creating a notification for any user.

    Any signed-in user may address any profile, the same as the procedure
    it stands in for.

    Raises:
        HTTPException: 404 if the addressed profile does not exist,
        500 if the notification cannot be stored
    """
    recipient = (
        db.query(models.Profile).filter(models.Profile.id == call.user_id).first()
    )
    if not recipient:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Profile with id {call.user_id} not found",
        )
    return run(
        notifications.create_book_notification,
        db,
        recipient.id,
        call.notification_type,
        call.notification_title,
        call.notification_message,
    )
