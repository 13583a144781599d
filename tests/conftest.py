from bookbridge import realtime
from bookbridge.endpoints import app
from bookbridge.database import Base, get_db

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from fastapi.testclient import TestClient


SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """
    Override function for the database dependency.

    This replaces the normal get_db() with one that uses the test database.
    FastAPI's dependency injection will call this instead during tests.
    """
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    """
    Fixture to set up and tear down the database for each test.

    Internal Working:
    1. autouse=True: This fixture runs automatically before each test
    2. Before yield: Create all tables and empty the change feed buffer
    3. yield: Control passes to the test function
    4. After yield: Drop all tables to ensure clean slate for next test
    """
    Base.metadata.create_all(bind=engine)
    realtime.feed.clear()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db_session():
    """A session on the test database for asserting on rows directly."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(client):
    """
    Factory fixture registering a user through the API.

    Returns:
        Function taking a display name (and optional profile fields) and
        returning a dict with the new profile id and bearer auth headers
    """

    def _make_user(full_name, **profile_fields):
        payload = {
            "email": f"{full_name.lower().replace(' ', '.')}@example.com",
            "password": "secret123",
            "full_name": full_name,
        }
        payload.update(profile_fields)
        response = client.post("/auth/register", json=payload)
        assert response.status_code == 201, response.text
        data = response.json()
        return {
            "id": data["profile"]["id"],
            "headers": {"Authorization": f"Bearer {data['access_token']}"},
        }

    return _make_user


@pytest.fixture
def donor(make_user):
    return make_user("Dana Donor", phone="555-0100", address="1 Library Lane")


@pytest.fixture
def requester(make_user):
    return make_user("Riley Reader")


@pytest.fixture
def donate(client):
    """Factory fixture donating a book as the given user."""

    def _donate(user, title="Dune", author="Frank Herbert", category="Fiction", **extra):
        payload = {"title": title, "author": author, "category": category}
        payload.update(extra)
        response = client.post("/books", json=payload, headers=user["headers"])
        assert response.status_code == 201, response.text
        return response.json()

    return _donate


@pytest.fixture
def request_book(client):
    """Factory fixture requesting a book as the given user."""

    def _request_book(user, book_id, message=None):
        response = client.post(
            "/requests",
            json={"book_id": book_id, "message": message},
            headers=user["headers"],
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _request_book


@pytest.fixture
def accepted_request(client, donor, requester, donate, request_book):
    """A request that the donor has already accepted."""
    book = donate(donor)
    book_request = request_book(requester, book["id"], "I'd love to read this")
    response = client.post(
        f"/requests/{book_request['id']}/accept", headers=donor["headers"]
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def break_commits(monkeypatch):
    """
    Factory fixture making every later session commit fail.

    Call it once the test data is in place; from then on Session.commit
    raises OperationalError, as a locked or full database would.
    """

    def _break_commits():
        def failing_commit(self):
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(Session, "commit", failing_commit)

    return _break_commits
