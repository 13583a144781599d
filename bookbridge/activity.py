"""
Per-user activity summary behind the navigation badges.

All counters are derived here, in one place, from the rows themselves and
from server-side seen markers, so two badges can never disagree about the
same underlying fact.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from bookbridge import models, notifications
from bookbridge.database import commit
from bookbridge.models import RequestStatus

REQUESTS = "requests"
NOTIFICATIONS = "notifications"
RESOURCES = (REQUESTS, NOTIFICATIONS)


@dataclass
class ActivitySummary:
    unread_notifications: int
    total_requests: int
    new_pending_requests: int
    requests_seen_at: Optional[datetime]
    notifications_seen_at: Optional[datetime]


def seen_at(db: Session, user: models.Profile, resource: str) -> Optional[datetime]:
    marker = (
        db.query(models.SeenMarker)
        .filter(
            models.SeenMarker.profile_id == user.id,
            models.SeenMarker.resource == resource,
        )
        .first()
    )
    return marker.seen_at if marker else None


def mark_seen(db: Session, user: models.Profile, resource: str) -> models.SeenMarker:
    """Record that `user` has just viewed `resource`, using the server clock."""
    if resource not in RESOURCES:
        raise ValueError(f"Unknown resource '{resource}'")

    marker = (
        db.query(models.SeenMarker)
        .filter(
            models.SeenMarker.profile_id == user.id,
            models.SeenMarker.resource == resource,
        )
        .first()
    )
    if marker is None:
        marker = models.SeenMarker(profile_id=user.id, resource=resource)
        db.add(marker)
    marker.seen_at = datetime.now()
    commit(db, "Failed to update your activity. Please try again.")
    db.refresh(marker)
    return marker


def summarize(db: Session, user: models.Profile) -> ActivitySummary:
    requests_seen = seen_at(db, user, REQUESTS)

    total_requests = (
        db.query(models.BookRequest)
        .filter(
            or_(
                models.BookRequest.requester_id == user.id,
                models.BookRequest.donor_id == user.id,
            )
        )
        .count()
    )

    pending_received = db.query(models.BookRequest).filter(
        models.BookRequest.donor_id == user.id,
        models.BookRequest.status == RequestStatus.PENDING.value,
    )
    if requests_seen is not None:
        pending_received = pending_received.filter(
            models.BookRequest.created_at > requests_seen
        )

    return ActivitySummary(
        unread_notifications=notifications.unread_count(db, user),
        total_requests=total_requests,
        new_pending_requests=pending_received.count(),
        requests_seen_at=requests_seen,
        notifications_seen_at=seen_at(db, user, NOTIFICATIONS),
    )
