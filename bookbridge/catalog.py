import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from bookbridge import models
from bookbridge.database import commit
from bookbridge.models import BookStatus

logger = logging.getLogger(__name__)

ALL = "All"


@dataclass
class CatalogFilter:
    """
    Criteria for narrowing the browse list.

    `search` matches title or author as a case-insensitive substring.
    The other fields are exact matches. None, "" and "All" disable a field.
    """

    search: Optional[str] = None
    category: Optional[str] = None
    condition: Optional[str] = None
    sharing_type: Optional[str] = None


def _active(value: Optional[str]) -> bool:
    return bool(value) and value != ALL


def matches(book: models.Book, criteria: CatalogFilter) -> bool:
    if _active(criteria.search):
        term = criteria.search.lower()
        if term not in book.title.lower() and term not in book.author.lower():
            return False
    if _active(criteria.category) and book.category != criteria.category:
        return False
    if _active(criteria.condition) and book.condition != criteria.condition:
        return False
    if _active(criteria.sharing_type) and book.sharing_type != criteria.sharing_type:
        return False
    return True


def filter_books(
    books: Iterable[models.Book], criteria: CatalogFilter
) -> List[models.Book]:
    """Apply every active predicate of `criteria`, preserving order."""
    return [book for book in books if matches(book, criteria)]


def is_browsable(book: models.Book) -> bool:
    return book.status == BookStatus.AVAILABLE.value and not book.is_free_to_read


def browsable_books(db: Session) -> List[models.Book]:
    """
    Every book that can currently be requested, newest first.

    Donated, requested and free-to-read books are excluded. The list is
    fetched wholesale; narrowing happens in filter_books().
    """
    return (
        db.query(models.Book)
        .filter(
            models.Book.status == BookStatus.AVAILABLE.value,
            models.Book.is_free_to_read == False,
        )
        .order_by(models.Book.created_at.desc(), models.Book.id.desc())
        .all()
    )


def free_books(db: Session) -> List[models.Book]:
    return (
        db.query(models.Book)
        .filter(models.Book.is_free_to_read == True)
        .order_by(
            models.Book.is_featured.desc(),
            models.Book.created_at.desc(),
            models.Book.id.desc(),
        )
        .all()
    )


def donated_by(db: Session, donor: models.Profile) -> List[models.Book]:
    return (
        db.query(models.Book)
        .filter(models.Book.donor_id == donor.id)
        .order_by(models.Book.created_at.desc(), models.Book.id.desc())
        .all()
    )


def categories(books: Iterable[models.Book]) -> List[str]:
    """Distinct categories of `books` in first-seen order, for filter menus."""
    seen = []
    for book in books:
        if book.category not in seen:
            seen.append(book.category)
    return seen


def retire_books_by_title(db: Session, titles: Iterable[str]) -> List[models.Book]:
    """
    Mark books whose titles overlap any of `titles` as donated.

    A book matches when its title contains one of the given titles, or is
    contained in one, ignoring case. Matching books disappear from browse
    listings; their rows and requests are kept.
    """
    needles = [title.lower() for title in titles if title and title.strip()]
    if not needles:
        return []

    retired = []
    for book in db.query(models.Book).all():
        title = book.title.lower()
        if any(needle in title or title in needle for needle in needles):
            if book.status != BookStatus.DONATED.value:
                book.status = BookStatus.DONATED.value
                retired.append(book)

    commit(db, "Failed to retire books. Please try again.")
    for book in retired:
        db.refresh(book)
    logger.info("Retired %d book(s) by title", len(retired))
    return retired
