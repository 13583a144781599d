import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base

from bookbridge.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in DATABASE_URL else {},
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


@event.listens_for(Engine, "connect")
def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """
    Turn on foreign key enforcement for SQLite connections.

    SQLite ships with foreign keys disabled, which would leave the
    ON DELETE CASCADE clauses on book_requests and contact_exchanges inert
    for anything that bypasses the ORM relationship cascades.
    """
    module = type(dbapi_connection).__module__
    if not module.startswith("sqlite3"):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_db():
    """
    Dependency function that provides a database session.

    This generator function:
    1. Creates a new SQLAlchemy session
    2. Yields it to the caller (FastAPI endpoint)
    3. Ensures the session is closed after use (in finally block)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class StoreError(Exception):
    """A write failed and the session was rolled back."""

    status_code = 500


def commit(db, failure_message: str) -> None:
    """
    Commit the session, turning store failures into StoreError.

    On failure the session is rolled back and the error logged with its
    traceback; `failure_message` is what the caller gets to see.
    """
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(failure_message)
        raise StoreError(failure_message) from exc
