from bookbridge import activity, models


def _summary(client, user):
    response = client.get("/me/activity", headers=user["headers"])
    assert response.status_code == 200
    return response.json()


def test_summary_counts(client, donor, requester, donate, request_book):
    """
    Test the navigation badge counters.

    Verifies:
    - Requests are counted for both parties
    - Only the donor sees a new pending request
    - Unread notifications match the notification badge
    """
    book = donate(donor)
    request_book(requester, book["id"])

    donor_summary = _summary(client, donor)
    assert donor_summary["total_requests"] == 1
    assert donor_summary["new_pending_requests"] == 1
    assert donor_summary["requests_seen_at"] is None
    unread = client.get("/notifications/unread-count", headers=donor["headers"]).json()
    assert donor_summary["unread_notifications"] == unread["unread"] == 2

    requester_summary = _summary(client, requester)
    assert requester_summary["total_requests"] == 1
    assert requester_summary["new_pending_requests"] == 0


def test_seen_marker_resets_new_requests(client, donor, make_user, donate, request_book):
    """
    Test that viewing the requests list clears the "new" badge.

    Verifies:
    - Marking requests seen stores a server-side timestamp
    - Requests arriving afterwards count as new again
    """
    book = donate(donor)
    request_book(make_user("First Reader"), book["id"])

    response = client.post("/me/seen/requests", headers=donor["headers"])
    assert response.status_code == 200
    assert response.json()["resource"] == "requests"

    summary = _summary(client, donor)
    assert summary["new_pending_requests"] == 0
    assert summary["requests_seen_at"] is not None

    request_book(make_user("Second Reader"), book["id"])
    assert _summary(client, donor)["new_pending_requests"] == 1


def test_accepted_requests_are_not_new(client, donor, requester, accepted_request):
    summary = _summary(client, donor)
    assert summary["new_pending_requests"] == 0
    assert summary["total_requests"] == 1


def test_unknown_seen_resource(client, donor):
    response = client.post("/me/seen/books", headers=donor["headers"])
    assert response.status_code == 404


def test_mark_seen_updates_existing_marker(make_user, db_session):
    user = make_user("Reader")
    profile = db_session.query(models.Profile).filter(models.Profile.id == user["id"]).first()

    first = activity.mark_seen(db_session, profile, activity.NOTIFICATIONS)
    first_seen = first.seen_at
    second = activity.mark_seen(db_session, profile, activity.NOTIFICATIONS)

    assert second.id == first.id
    assert second.seen_at >= first_seen
    assert db_session.query(models.SeenMarker).count() == 1
    assert activity.seen_at(db_session, profile, activity.NOTIFICATIONS) == second.seen_at


def test_mark_seen_store_failure(client, donor, break_commits):
    break_commits()

    response = client.post("/me/seen/requests", headers=donor["headers"])
    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to update your activity. Please try again."
    assert _summary(client, donor)["requests_seen_at"] is None
