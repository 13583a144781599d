from typing import Optional

from fastapi import APIRouter, Depends, Query

from bookbridge import models, realtime, schemas
from bookbridge.auth import get_current_user

router = APIRouter(tags=["realtime"])


@router.get("/changes", response_model=schemas.ChangeFeed)
async def read_changes(
    since: int = Query(0, ge=0),
    tables: Optional[str] = Query(None, description="Comma-separated table names"),
    current_user: models.Profile = Depends(get_current_user),
):
    """
    Row changes committed after sequence number `since`.

    Events only name the table, the kind of change and the row id.
    Clients refetch whatever they display and pass the returned
    last_seq back as `since` on the next poll. Changes to another user's
    requests, notifications, bookmarks or seen markers are not listed.
    """
    wanted = None
    if tables:
        wanted = [name.strip() for name in tables.split(",") if name.strip()]
    return {
        "last_seq": realtime.feed.last_seq,
        "events": realtime.feed.since(since, wanted, viewer=current_user.id),
    }
