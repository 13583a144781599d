from enum import Enum
from datetime import datetime
from bookbridge.database import Base
from sqlalchemy.orm import relationship
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Float,
    ForeignKey,
    DateTime,
    Boolean,
    UniqueConstraint,
)


class BookStatus(str, Enum):
    AVAILABLE = "available"
    REQUESTED = "requested"
    DONATED = "donated"


class BookCondition(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class SharingType(str, Enum):
    FREE_DONATION = "free_donation"
    SELL_BOOK = "sell_book"
    DONATE_PERIOD = "donate_period"


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"


class Profile(Base):
    """
    Profile model representing a registered user.

    Profiles double as the authentication record: the password hash lives
    here and the profile id is the subject of issued access tokens.

    Relationships:
    - One profile can donate many books (one-to-many)
    - One profile owns many notifications, bookmarks and seen markers
    """

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    username = Column(String, unique=True, nullable=True, index=True)
    phone = Column(String, nullable=True)
    address = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    books = relationship("Book", back_populates="donor")

    notifications = relationship(
        "Notification",
        back_populates="user",
        cascade="all, delete-orphan",
    )


class Book(Base):
    """
    Book model representing a donated or free-to-read book.

    Lifecycle:
    - available: listed in the catalog and open to requests
    - requested: a request for it has been accepted, hand-off in progress
    - donated: the exchange completed; never listed again

    Free-to-read books are never requested; their content is stored as
    BookPage rows and read page by page.
    """

    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    condition = Column(String, default=BookCondition.GOOD.value, nullable=False)
    status = Column(
        String, default=BookStatus.AVAILABLE.value, nullable=False, index=True
    )
    is_free_to_read = Column(Boolean, default=False, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    cover_url = Column(String, nullable=True)
    donor_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    sharing_type = Column(
        String, default=SharingType.FREE_DONATION.value, nullable=False
    )
    price = Column(Float, nullable=True)
    time_span_days = Column(Integer, nullable=True)
    donor_location = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    donor = relationship("Profile", back_populates="books")

    requests = relationship(
        "BookRequest",
        back_populates="book",
        cascade="all, delete-orphan",
    )

    pages = relationship(
        "BookPage",
        back_populates="book",
        cascade="all, delete-orphan",
        order_by="BookPage.page_number",
    )

    bookmarks = relationship(
        "Bookmark",
        back_populates="book",
        cascade="all, delete-orphan",
    )

    @property
    def page_count(self):
        return len(self.pages)


class BookPage(Base):
    """One page of readable content for a free-to-read book."""

    __tablename__ = "book_pages"
    __table_args__ = (UniqueConstraint("book_id", "page_number"),)

    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(
        Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False
    )
    page_number = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)

    book = relationship("Book", back_populates="pages")


class Bookmark(Base):
    __tablename__ = "bookmarks"
    __table_args__ = (UniqueConstraint("profile_id", "book_id", "page_number"),)

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(
        Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    book_id = Column(
        Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False
    )
    page_number = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    book = relationship("Book", back_populates="bookmarks")

    @property
    def audience(self):
        return (self.profile_id,)


class BookRequest(Base):
    """
    BookRequest model: a proposal by one user to receive a book from its donor.

    Status moves pending -> accepted | rejected, and accepted -> completed.
    donor_id is copied from the book at request time so both parties can be
    resolved without joining through books.
    """

    __tablename__ = "book_requests"

    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(
        Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    requester_id = Column(
        Integer, ForeignKey("profiles.id"), nullable=False, index=True
    )
    donor_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(
        String, default=RequestStatus.PENDING.value, nullable=False, index=True
    )
    message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    book = relationship("Book", back_populates="requests")
    requester = relationship("Profile", foreign_keys=[requester_id])
    donor = relationship("Profile", foreign_keys=[donor_id])

    contact_exchange = relationship(
        "ContactExchange",
        back_populates="request",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def audience(self):
        """Profiles allowed to see changes to this row."""
        return (self.requester_id, self.donor_id)


class ContactExchange(Base):
    """
    ContactExchange model: the paired disclosure of pickup details.

    Exactly one row per request (request_id is unique). Each party fills in
    its own phone/address columns; a side counts as shared once either of
    its two columns is non-empty.
    """

    __tablename__ = "contact_exchanges"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(
        Integer,
        ForeignKey("book_requests.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    donor_phone = Column(String, nullable=True)
    donor_address = Column(String, nullable=True)
    requester_phone = Column(String, nullable=True)
    requester_address = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    request = relationship("BookRequest", back_populates="contact_exchange")

    @property
    def donor_shared(self):
        return bool(self.donor_phone or self.donor_address)

    @property
    def requester_shared(self):
        return bool(self.requester_phone or self.requester_address)

    @property
    def audience(self):
        request = self.request
        return request.audience if request is not None else ()


class Notification(Base):
    """
    Notification model: a user-directed message describing a workflow event.

    The type column is a free tag (book_request, request_accepted,
    contact_shared, exchange_completed, ...).
    """

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    user = relationship("Profile", back_populates="notifications")

    @property
    def audience(self):
        return (self.user_id,)


class SeenMarker(Base):
    """
    Server-side record of when a user last viewed a resource list.

    Replaces per-browser "last visited" timestamps so that "new activity"
    badges are computed against the server clock.
    """

    __tablename__ = "seen_markers"
    __table_args__ = (UniqueConstraint("profile_id", "resource"),)

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(
        Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    resource = Column(String, nullable=False)
    seen_at = Column(DateTime, default=datetime.now, nullable=False)

    @property
    def audience(self):
        return (self.profile_id,)
