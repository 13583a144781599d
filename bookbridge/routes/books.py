import logging
from typing import List, Optional

from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends, HTTPException, Query, status

from bookbridge import catalog, models, notifications, schemas
from bookbridge.auth import get_current_user
from bookbridge.database import commit, get_db
from bookbridge.notifications import NotificationDraft
from bookbridge.routes.errors import run

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/books", tags=["books"])


def _get_book(db: Session, book_id: int) -> models.Book:
    book = db.query(models.Book).filter(models.Book.id == book_id).first()
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Book with id {book_id} not found",
        )
    return book


def _get_readable_book(db: Session, book_id: int) -> models.Book:
    book = _get_book(db, book_id)
    if not book.is_free_to_read:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Book with id {book_id} is not free to read",
        )
    return book


def _bookmarked_pages(db: Session, book: models.Book, user: models.Profile) -> List[int]:
    rows = (
        db.query(models.Bookmark)
        .filter(
            models.Bookmark.book_id == book.id,
            models.Bookmark.profile_id == user.id,
        )
        .order_by(models.Bookmark.page_number)
        .all()
    )
    return [row.page_number for row in rows]


@router.post("", response_model=schemas.Book, status_code=status.HTTP_201_CREATED)
async def donate_book(
    book: schemas.BookCreate,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Donate a book on behalf of the signed-in user.

    Internal Working:
    1. BookCreate validates required fields and the sharing terms
    2. The book is stored as available, with the caller as donor
    3. Readable pages of a free-to-read book are numbered from 1
    4. After the commit the donor gets a "book_donated" notification;
       a failure there is logged and does not affect the response

    Returns:
        The created book

    Raises:
        HTTPException: 500 if the book cannot be stored
    """
    book_data = book.model_dump(exclude={"pages"}, mode="json")
    db_book = models.Book(**book_data, donor_id=current_user.id)
    for number, text in enumerate(book.pages, start=1):
        db_book.pages.append(models.BookPage(page_number=number, text=text))

    db.add(db_book)
    run(commit, db, "Failed to donate book. Please try again.")
    db.refresh(db_book)
    logger.info("Book %s donated by %s", db_book.id, current_user.id)

    notifications.dispatch(
        db,
        [
            NotificationDraft(
                current_user.id,
                "book_donated",
                "Book Donated Successfully",
                f'Your book "{db_book.title}" has been added to the platform '
                "and is now available for requests.",
            )
        ],
    )
    db.refresh(db_book)
    return db_book


@router.get("", response_model=schemas.Catalog)
async def browse_books(
    search: Optional[str] = Query(None, max_length=200),
    category: Optional[str] = Query(None),
    condition: Optional[str] = Query(None),
    sharing_type: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """
    Browse the books that can currently be requested.

    Donated, requested and free-to-read books never appear here. The
    categories list is computed before filtering so a filter menu keeps
    offering every category on the shelf.

    Args:
        search: Case-insensitive text matched against title and author
        category: Exact category, or "All"
        condition: Exact condition, or "All"
        sharing_type: Exact sharing type, or "All"
    """
    books = catalog.browsable_books(db)
    criteria = catalog.CatalogFilter(
        search=search.strip() if search else None,
        category=category,
        condition=condition,
        sharing_type=sharing_type,
    )
    matching = catalog.filter_books(books, criteria)
    return {
        "total": len(matching),
        "categories": catalog.categories(books),
        "books": matching,
    }


@router.get("/free", response_model=List[schemas.Book])
async def list_free_books(db: Session = Depends(get_db)):
    """Free-to-read books, which are read online rather than requested."""
    return catalog.free_books(db)


@router.get("/mine", response_model=List[schemas.Book])
async def list_my_books(
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Every book the signed-in user has donated, whatever its status."""
    return catalog.donated_by(db, current_user)


@router.get("/{book_id}", response_model=schemas.Book)
async def get_book(book_id: int, db: Session = Depends(get_db)):
    """
    A single book, whatever its status.

    Raises:
        HTTPException: 404 if the book does not exist
    """
    return _get_book(db, book_id)


@router.delete("/{book_id}", response_model=schemas.Message)
async def delete_book(
    book_id: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Remove a book. Only its donor may do this.

    Every request for the book goes with it, together with their contact
    exchanges, pages and bookmarks.

    Raises:
        HTTPException: 404 if the book does not exist, 403 for anyone but the donor
    """
    book = _get_book(db, book_id)
    if book.donor_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the donor can delete this book.",
        )

    db.delete(book)
    run(commit, db, "Failed to delete book. Please try again.")
    logger.info("Book %s deleted by %s", book_id, current_user.id)
    return {"message": f"Book with id {book_id} deleted"}


@router.get("/{book_id}/pages/{page_number}", response_model=schemas.BookPage)
async def read_page(
    book_id: int,
    page_number: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    One page of a free-to-read book, numbered from 1.

    Returns:
        The page text, the total page count and whether the caller has
        bookmarked this page

    Raises:
        HTTPException: 400 if the book is not free to read, 404 if the book
        or page does not exist
    """
    book = _get_readable_book(db, book_id)
    page = (
        db.query(models.BookPage)
        .filter(
            models.BookPage.book_id == book.id,
            models.BookPage.page_number == page_number,
        )
        .first()
    )
    if not page:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Page {page_number} of book with id {book_id} not found",
        )
    return {
        "book_id": book.id,
        "page_number": page.page_number,
        "total_pages": book.page_count,
        "text": page.text,
        "bookmarked": page.page_number in _bookmarked_pages(db, book, current_user),
    }


@router.get("/{book_id}/bookmarks", response_model=schemas.Bookmarks)
async def list_bookmarks(
    book_id: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The caller's bookmarked page numbers for one book."""
    book = _get_readable_book(db, book_id)
    return {"book_id": book.id, "pages": _bookmarked_pages(db, book, current_user)}


@router.post("/{book_id}/bookmarks/{page_number}", response_model=schemas.Bookmarks)
async def toggle_bookmark(
    book_id: int,
    page_number: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Bookmark a page, or remove the bookmark if the page already has one.

    Returns:
        The caller's bookmarked pages of this book after the toggle
    """
    book = _get_readable_book(db, book_id)
    if not 1 <= page_number <= book.page_count:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Page {page_number} of book with id {book_id} not found",
        )

    existing = (
        db.query(models.Bookmark)
        .filter(
            models.Bookmark.book_id == book.id,
            models.Bookmark.profile_id == current_user.id,
            models.Bookmark.page_number == page_number,
        )
        .first()
    )
    if existing:
        db.delete(existing)
    else:
        db.add(
            models.Bookmark(
                profile_id=current_user.id,
                book_id=book.id,
                page_number=page_number,
            )
        )
    run(commit, db, "Failed to update bookmark. Please try again.")
    return {"book_id": book.id, "pages": _bookmarked_pages(db, book, current_user)}
