from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends, HTTPException, status

from bookbridge import activity, models, schemas
from bookbridge.auth import get_current_user
from bookbridge.database import get_db
from bookbridge.routes.errors import run

router = APIRouter(prefix="/me", tags=["activity"])


@router.get("/activity", response_model=schemas.ActivitySummary)
async def get_activity(
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Counters behind the navigation badges.

    Returns:
        Unread notifications, all requests the caller is party to, and
        received pending requests that arrived since the caller last
        viewed their requests
    """
    return activity.summarize(db, current_user)


@router.post("/seen/{resource}", response_model=schemas.SeenMarker)
async def mark_seen(
    resource: str,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Record that the caller has just viewed `resource` (requests or
    notifications). Badges count activity newer than this moment.

    Raises:
        HTTPException: 404 for an unknown resource
    """
    if resource not in activity.RESOURCES:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown resource '{resource}'",
        )
    return run(activity.mark_seen, db, current_user, resource)
