"""
Row-level change feed.

Every flush records which rows were inserted, updated or deleted; the
records are published once the surrounding transaction commits and dropped
if it rolls back. Subscribers register a callback for a set of table names,
and the most recent events are kept in a bounded buffer so HTTP clients can
poll with a cursor. Events carry only the table, the kind of change and the
row id: consumers refetch whatever list they display. Rows that belong to
particular users (requests, notifications, bookmarks) carry an audience, and
only those users see their events when polling.
"""

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from bookbridge.config import settings

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

_PENDING_KEY = "bookbridge_pending_changes"

Listener = Callable[[dict], None]


class Subscription:
    def __init__(self, feed: "ChangeFeed", tables: Optional[Iterable[str]], callback: Listener):
        self.feed = feed
        self.tables = frozenset(tables) if tables else None
        self.callback = callback

    def wants(self, table: str) -> bool:
        return self.tables is None or table in self.tables

    def unsubscribe(self) -> None:
        self.feed.unsubscribe(self)


class ChangeFeed:
    """In-process publisher of committed row changes."""

    def __init__(self, maxlen: int = 1000):
        self._lock = threading.RLock()
        self._events = deque(maxlen=maxlen)
        self._subscriptions: List[Subscription] = []
        self._seq = 0

    @property
    def last_seq(self) -> int:
        with self._lock:
            return self._seq

    def subscribe(self, callback: Listener, tables: Optional[Iterable[str]] = None) -> Subscription:
        """Register `callback` for changes on `tables` (all tables when None)."""
        subscription = Subscription(self, tables, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, changes: Iterable[Dict]) -> List[dict]:
        published = []
        with self._lock:
            for change in changes:
                self._seq += 1
                change_event = dict(change, seq=self._seq, at=datetime.now().isoformat())
                self._events.append(change_event)
                published.append(change_event)
            subscriptions = list(self._subscriptions)

        for change_event in published:
            for subscription in subscriptions:
                if not subscription.wants(change_event["table"]):
                    continue
                try:
                    subscription.callback(change_event)
                except Exception:
                    # the write is already committed
                    logger.exception(
                        "Change listener failed for %s event on %s",
                        change_event["event"],
                        change_event["table"],
                    )
        return published

    def since(
        self,
        seq: int = 0,
        tables: Optional[Iterable[str]] = None,
        viewer: Optional[int] = None,
    ) -> List[dict]:
        """
        Buffered events with a sequence number greater than `seq`.

        With a `viewer`, events on rows addressed to other users are left out.
        Events without an audience are public.
        """
        wanted = frozenset(tables) if tables else None
        with self._lock:
            return [
                change_event
                for change_event in self._events
                if change_event["seq"] > seq
                and (wanted is None or change_event["table"] in wanted)
                and _visible_to(change_event, viewer)
            ]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


feed = ChangeFeed(maxlen=settings.change_feed_size)


def _visible_to(change_event: dict, viewer: Optional[int]) -> bool:
    audience = change_event.get("audience")
    return viewer is None or audience is None or viewer in audience


def record_change(
    session: Session, table: str, kind: str, row_id, audience: Optional[Iterable[int]] = None
) -> None:
    """
    Queue a change on `session`; it is published when the session commits.

    `audience` lists the profile ids allowed to see the event. None means
    everyone.
    """
    session.info.setdefault(_PENDING_KEY, []).append(
        {
            "table": table,
            "event": kind,
            "id": row_id,
            "audience": list(audience) if audience is not None else None,
        }
    )


def _primary_key(instance):
    # identity keys are only assigned after after_flush returns
    values = inspect(instance).mapper.primary_key_from_instance(instance)
    return values[0] if len(values) == 1 else list(values)


@event.listens_for(Session, "after_flush")
def _collect_flushed_changes(session, flush_context):
    def collect(instance, kind):
        record_change(
            session,
            instance.__tablename__,
            kind,
            _primary_key(instance),
            getattr(instance, "audience", None),
        )

    for instance in session.new:
        collect(instance, INSERT)
    for instance in session.dirty:
        if session.is_modified(instance, include_collections=False):
            collect(instance, UPDATE)
    for instance in session.deleted:
        collect(instance, DELETE)


@event.listens_for(Session, "after_commit")
def _publish_committed_changes(session):
    changes = session.info.pop(_PENDING_KEY, None)
    if changes:
        feed.publish(changes)


@event.listens_for(Session, "after_soft_rollback")
def _discard_rolled_back_changes(session, previous_transaction):
    session.info.pop(_PENDING_KEY, None)
