from bookbridge import models


def _titles(response):
    return [book["title"] for book in response.json()["books"]]


def test_donate_book_success(client, donor):
    """
    Test donating a book.

    Verifies:
    - Returns 201 Created
    - The book is available, owned by the caller and uses the defaults
    - The donor receives a "book_donated" notification
    """
    response = client.post(
        "/books",
        json={
            "title": "  The Left Hand of Darkness ",
            "author": "Ursula K. Le Guin",
            "category": "Fiction",
            "description": "A classic",
        },
        headers=donor["headers"],
    )
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "The Left Hand of Darkness"
    assert data["status"] == "available"
    assert data["condition"] == "good"
    assert data["sharing_type"] == "free_donation"
    assert data["donor_id"] == donor["id"]
    assert data["donor"]["full_name"] == "Dana Donor"

    notifications = client.get("/notifications", headers=donor["headers"]).json()
    assert [n["type"] for n in notifications] == ["book_donated"]
    assert notifications[0]["title"] == "Book Donated Successfully"


def test_donate_requires_sign_in(client):
    response = client.post(
        "/books", json={"title": "Dune", "author": "Frank Herbert", "category": "Fiction"}
    )
    assert response.status_code == 401


def test_donate_missing_required_fields(client, donor):
    """
    Test that title, author and category are required and cannot be blank.

    Verifies:
    - Returns 422 Unprocessable Entity
    - Nothing is stored
    """
    response = client.post(
        "/books",
        json={"title": "   ", "author": "Someone", "category": "Fiction"},
        headers=donor["headers"],
    )
    assert response.status_code == 422

    response = client.post("/books", json={"title": "Dune"}, headers=donor["headers"])
    assert response.status_code == 422

    assert client.get("/books").json()["total"] == 0


def test_donate_sharing_terms(client, donor):
    response = client.post(
        "/books",
        json={
            "title": "Dune",
            "author": "Frank Herbert",
            "category": "Fiction",
            "sharing_type": "sell_book",
        },
        headers=donor["headers"],
    )
    assert response.status_code == 422

    response = client.post(
        "/books",
        json={
            "title": "Dune",
            "author": "Frank Herbert",
            "category": "Fiction",
            "sharing_type": "sell_book",
            "price": 4.5,
        },
        headers=donor["headers"],
    )
    assert response.status_code == 201
    assert response.json()["price"] == 4.5

    response = client.post(
        "/books",
        json={
            "title": "Emma",
            "author": "Jane Austen",
            "category": "Classics",
            "sharing_type": "donate_period",
        },
        headers=donor["headers"],
    )
    assert response.status_code == 422


def test_donate_invalid_condition(client, donor):
    response = client.post(
        "/books",
        json={
            "title": "Dune",
            "author": "Frank Herbert",
            "category": "Fiction",
            "condition": "mint",
        },
        headers=donor["headers"],
    )
    assert response.status_code == 422


def test_browse_excludes_unavailable_and_free_to_read(client, donor, donate, db_session):
    """
    Test which books the catalog lists.

    Verifies:
    - Available books are listed
    - Donated books are never listed
    - Free-to-read books are never listed, even while available
    """
    donate(donor, title="Available Book")
    donated = donate(donor, title="Gone Book")
    donate(donor, title="Public Domain Book", is_free_to_read=True, pages=["Page one"])

    book = db_session.query(models.Book).filter(models.Book.id == donated["id"]).first()
    book.status = models.BookStatus.DONATED.value
    db_session.commit()

    response = client.get("/books")
    assert response.status_code == 200
    assert _titles(response) == ["Available Book"]
    assert response.json()["total"] == 1


def test_browse_newest_first(client, donor, donate):
    donate(donor, title="First")
    donate(donor, title="Second")
    donate(donor, title="Third")

    assert _titles(client.get("/books")) == ["Third", "Second", "First"]


def test_browse_category_and_search(client, donor, donate):
    """
    Test combining a category filter with a search term.

    Verifies:
    - Only books matching both predicates are returned
    - The category list still offers every category on the shelf
    """
    donate(donor, title="A", category="History")
    donate(donor, title="Climate Change Solutions", category="Science")
    donate(donor, title="B", category="Fiction")

    response = client.get("/books", params={"category": "Science", "search": "Solutions"})
    assert response.status_code == 200
    assert _titles(response) == ["Climate Change Solutions"]
    assert sorted(response.json()["categories"]) == ["Fiction", "History", "Science"]


def test_browse_search_matches_author_case_insensitively(client, donor, donate):
    donate(donor, title="Dune", author="Frank Herbert")
    donate(donor, title="Emma", author="Jane Austen")

    assert _titles(client.get("/books", params={"search": "HERBERT"})) == ["Dune"]
    assert _titles(client.get("/books", params={"search": "em"})) == ["Emma"]


def test_browse_all_disables_filter(client, donor, donate):
    donate(donor, title="Dune", condition="excellent")
    donate(donor, title="Emma", condition="fair", sharing_type="sell_book", price=3)

    assert len(_titles(client.get("/books", params={"condition": "All"}))) == 2
    assert _titles(client.get("/books", params={"condition": "fair"})) == ["Emma"]
    assert _titles(client.get("/books", params={"sharing_type": "sell_book"})) == ["Emma"]


def test_free_books_listing(client, donor, donate):
    donate(donor, title="Donation")
    donate(donor, title="Public Domain", is_free_to_read=True, pages=["One", "Two"])

    response = client.get("/books/free")
    assert response.status_code == 200
    data = response.json()
    assert [book["title"] for book in data] == ["Public Domain"]
    assert data[0]["page_count"] == 2


def test_my_books_lists_every_status(client, donor, requester, donate, db_session):
    donate(donor, title="Mine")
    gone = donate(donor, title="Mine Too")
    donate(requester, title="Not Mine")

    book = db_session.query(models.Book).filter(models.Book.id == gone["id"]).first()
    book.status = models.BookStatus.DONATED.value
    db_session.commit()

    response = client.get("/books/mine", headers=donor["headers"])
    assert response.status_code == 200
    assert sorted(book["title"] for book in response.json()) == ["Mine", "Mine Too"]


def test_get_book_not_found(client):
    response = client.get("/books/99999")
    assert response.status_code == 404
    assert response.json()["detail"] == "Book with id 99999 not found"


def test_delete_book_removes_its_requests(
    client, donor, make_user, donate, request_book, db_session
):
    """
    Test that deleting a book removes every request made for it.

    Verifies:
    - Both requests disappear with the book
    - Neither requester can still see them
    """
    book = donate(donor)
    first = make_user("First Reader")
    second = make_user("Second Reader")
    first_request = request_book(first, book["id"])
    second_request = request_book(second, book["id"])

    response = client.delete(f"/books/{book['id']}", headers=donor["headers"])
    assert response.status_code == 200

    assert client.get(f"/books/{book['id']}").status_code == 404
    assert client.get(f"/requests/{first_request['id']}", headers=first["headers"]).status_code == 404
    assert client.get(f"/requests/{second_request['id']}", headers=second["headers"]).status_code == 404
    assert (
        db_session.query(models.BookRequest)
        .filter(models.BookRequest.book_id == book["id"])
        .count()
        == 0
    )


def test_delete_book_only_by_donor(client, donor, requester, donate):
    book = donate(donor)

    response = client.delete(f"/books/{book['id']}", headers=requester["headers"])
    assert response.status_code == 403
    assert client.get(f"/books/{book['id']}").status_code == 200


def test_read_pages_and_toggle_bookmarks(client, donor, requester, donate):
    """
    Test reading a free-to-read book page by page and bookmarking pages.

    Verifies:
    - Pages are numbered from 1 and report the total
    - Toggling adds and then removes a bookmark
    - Bookmarks are per reader
    """
    book = donate(
        donor,
        title="Public Domain",
        is_free_to_read=True,
        pages=["It was a dark night.", "The end."],
    )

    response = client.get(f"/books/{book['id']}/pages/2", headers=requester["headers"])
    assert response.status_code == 200
    page = response.json()
    assert page["text"] == "The end."
    assert page["total_pages"] == 2
    assert page["bookmarked"] is False

    response = client.post(f"/books/{book['id']}/bookmarks/2", headers=requester["headers"])
    assert response.json()["pages"] == [2]
    response = client.post(f"/books/{book['id']}/bookmarks/1", headers=requester["headers"])
    assert response.json()["pages"] == [1, 2]

    page = client.get(f"/books/{book['id']}/pages/2", headers=requester["headers"]).json()
    assert page["bookmarked"] is True

    response = client.post(f"/books/{book['id']}/bookmarks/2", headers=requester["headers"])
    assert response.json()["pages"] == [1]

    response = client.get(f"/books/{book['id']}/bookmarks", headers=donor["headers"])
    assert response.json()["pages"] == []


def test_read_page_out_of_range(client, donor, donate):
    book = donate(donor, is_free_to_read=True, pages=["Only page"])

    response = client.get(f"/books/{book['id']}/pages/5", headers=donor["headers"])
    assert response.status_code == 404
    response = client.post(f"/books/{book['id']}/bookmarks/0", headers=donor["headers"])
    assert response.status_code == 404


def test_read_page_of_regular_book(client, donor, donate):
    book = donate(donor)

    response = client.get(f"/books/{book['id']}/pages/1", headers=donor["headers"])
    assert response.status_code == 400


def test_donate_store_failure_returns_error_detail(client, donor, break_commits):
    """
    Test donating a book while the database refuses writes.

    Verifies:
    - Returns 500 with a JSON detail message
    - No book is stored and no notification is sent
    """
    break_commits()

    response = client.post(
        "/books",
        json={"title": "Dune", "author": "Frank Herbert", "category": "Fiction"},
        headers=donor["headers"],
    )
    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to donate book. Please try again."

    assert client.get("/books/mine", headers=donor["headers"]).json() == []
    assert client.get("/notifications", headers=donor["headers"]).json() == []


def test_delete_and_bookmark_store_failures(client, donor, donate, break_commits):
    free_book = donate(donor, title="Open Text", is_free_to_read=True, pages=["One", "Two"])
    break_commits()

    response = client.post(f"/books/{free_book['id']}/bookmarks/1", headers=donor["headers"])
    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to update bookmark. Please try again."
    assert client.get(f"/books/{free_book['id']}/bookmarks", headers=donor["headers"]).json()["pages"] == []

    response = client.delete(f"/books/{free_book['id']}", headers=donor["headers"])
    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to delete book. Please try again."
    assert client.get(f"/books/{free_book['id']}").status_code == 200
