import pytest
from sqlalchemy.exc import IntegrityError

from bookbridge import models, realtime
from bookbridge.realtime import ChangeFeed


def test_changes_feed_records_committed_rows(client, donor, requester, donate, request_book):
    """
    Test the change feed served to polling clients.

    Verifies:
    - Inserts of books and requests appear as INSERT events
    - Accepting a request produces UPDATE events for both rows
    - The tables filter narrows the events
    """
    book = donate(donor)
    book_request = request_book(requester, book["id"])
    client.post(f"/requests/{book_request['id']}/accept", headers=donor["headers"])

    response = client.get(
        "/changes", params={"tables": "books,book_requests"}, headers=donor["headers"]
    )
    assert response.status_code == 200
    events = [(e["table"], e["event"], e["id"]) for e in response.json()["events"]]
    assert ("books", "INSERT", book["id"]) in events
    assert ("book_requests", "INSERT", book_request["id"]) in events
    assert ("book_requests", "UPDATE", book_request["id"]) in events
    assert ("books", "UPDATE", book["id"]) in events
    assert all(table in ("books", "book_requests") for table, _, _ in events)


def test_changes_cursor(client, donor, donate):
    donate(donor, title="First")
    cursor = client.get("/changes", headers=donor["headers"]).json()["last_seq"]

    second = donate(donor, title="Second")
    response = client.get(
        "/changes", params={"since": cursor, "tables": "books"}, headers=donor["headers"]
    )
    events = response.json()["events"]
    assert [(e["event"], e["id"]) for e in events] == [("INSERT", second["id"])]
    assert all(e["seq"] > cursor for e in events)


def test_changes_requires_sign_in(client):
    assert client.get("/changes").status_code == 401


def test_rolled_back_changes_are_not_published(make_user, db_session):
    make_user("Reader")
    before = realtime.feed.last_seq

    db_session.add(models.Notification(user_id=99999, type="x", title="x", message="x"))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()

    assert realtime.feed.last_seq == before


def test_subscribers_receive_matching_tables(client, donor, donate):
    received = []
    subscription = realtime.feed.subscribe(received.append, tables=["books"])
    try:
        donate(donor, title="Watched")
    finally:
        subscription.unsubscribe()

    assert [e["table"] for e in received] == ["books"]
    assert received[0]["event"] == "INSERT"

    donate(donor, title="Unwatched")
    assert len(received) == 1


def test_broken_subscriber_does_not_block_others():
    feed = ChangeFeed(maxlen=2)
    received = []

    def broken(change_event):
        raise RuntimeError("listener bug")

    feed.subscribe(broken)
    feed.subscribe(received.append)
    feed.publish([{"table": "books", "event": "INSERT", "id": i} for i in range(3)])

    assert [e["id"] for e in received] == [0, 1, 2]
    assert [e["seq"] for e in feed.since(0)] == [2, 3]
    assert feed.last_seq == 3


def test_changes_to_other_users_rows_are_hidden(client, donor, requester, make_user, donate, request_book):
    """
    Test that the feed only lists private rows to the users they belong to.

    Verifies:
    - A notification event is listed for its recipient only
    - Request events are listed for both parties but not for a bystander
    - Book events stay visible to everyone
    """
    bystander = make_user("Bystander")
    book = donate(donor)
    book_request = request_book(requester, book["id"])

    def events_for(user, tables):
        response = client.get("/changes", params={"tables": tables}, headers=user["headers"])
        assert response.status_code == 200
        return [(e["table"], e["event"], e["id"]) for e in response.json()["events"]]

    donor_notifications = client.get("/notifications", headers=donor["headers"]).json()
    donor_ids = {n["id"] for n in donor_notifications}
    assert donor_ids
    assert {row_id for _, _, row_id in events_for(donor, "notifications")} >= donor_ids
    assert not donor_ids & {row_id for _, _, row_id in events_for(requester, "notifications")}
    assert events_for(bystander, "notifications") == []

    request_event = ("book_requests", "INSERT", book_request["id"])
    assert request_event in events_for(donor, "book_requests")
    assert request_event in events_for(requester, "book_requests")
    assert events_for(bystander, "book_requests") == []

    assert ("books", "INSERT", book["id"]) in events_for(bystander, "books")


def test_since_filters_by_viewer():
    feed = ChangeFeed()
    feed.publish(
        [
            {"table": "books", "event": "INSERT", "id": 1, "audience": None},
            {"table": "notifications", "event": "INSERT", "id": 2, "audience": [7]},
            {"table": "book_requests", "event": "UPDATE", "id": 3, "audience": [7, 8]},
        ]
    )

    assert [e["id"] for e in feed.since(0, viewer=7)] == [1, 2, 3]
    assert [e["id"] for e in feed.since(0, viewer=8)] == [1, 3]
    assert [e["id"] for e in feed.since(0, viewer=9)] == [1]
    assert [e["id"] for e in feed.since(0)] == [1, 2, 3]
