from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from bookbridge.models import BookCondition, SharingType


class ProfilePublic(BaseModel):
    """
    Schema for what any signed-in user may see of another profile.

    Phone and address are absent: they are only disclosed
    through a contact exchange.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: Optional[str] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None


class ProfilePrivate(ProfilePublic):
    """Schema for the signed-in user's own profile."""

    email: EmailStr
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: datetime


class ProfileCreate(BaseModel):
    """
    Schema for signing up.

    The optional phone and address are stored on the profile and offered as
    defaults whenever contact details are shared.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    full_name: str = Field(..., min_length=1, max_length=200)
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)
    avatar_url: Optional[str] = Field(None, max_length=1000)


class ProfileUpdate(BaseModel):
    """All fields optional to support partial updates."""

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)
    avatar_url: Optional[str] = Field(None, max_length=1000)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    profile: ProfilePrivate


class BookBase(BaseModel):
    """Base schema with the fields a donor fills in."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=300)
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=5000)
    condition: BookCondition = BookCondition.GOOD
    is_free_to_read: bool = False
    sharing_type: SharingType = SharingType.FREE_DONATION
    price: Optional[float] = Field(None, gt=0)
    time_span_days: Optional[int] = Field(None, ge=1, le=365)
    donor_location: Optional[str] = Field(None, max_length=500)
    cover_url: Optional[str] = Field(None, max_length=1000)


class BookCreate(BookBase):
    """
    Schema for donating a book.

    Business Logic:
    - A book offered for sale needs a price
    - A book lent for a period needs the number of days
    - pages holds the readable text of a free-to-read book, one entry per page
    """

    pages: List[str] = []

    @model_validator(mode="after")
    def check_sharing_terms(self):
        if self.sharing_type == SharingType.SELL_BOOK and self.price is None:
            raise ValueError("A price is required when selling a book")
        if self.sharing_type == SharingType.DONATE_PERIOD and self.time_span_days is None:
            raise ValueError("time_span_days is required when lending a book for a period")
        if self.pages and not self.is_free_to_read:
            raise ValueError("Only free-to-read books can carry readable pages")
        if self.description == "":
            self.description = None
        return self


class Book(BookBase):
    """Schema for book responses, including the donor's public profile."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    is_featured: bool = False
    donor_id: Optional[int] = None
    donor: Optional[ProfilePublic] = None
    page_count: int = 0
    created_at: datetime


class BookSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    author: str
    category: str
    condition: str
    description: Optional[str] = None
    status: str


class Catalog(BaseModel):
    """Browse response: the filtered books plus the categories on offer."""

    total: int
    categories: List[str]
    books: List[Book]


class BookPage(BaseModel):
    book_id: int
    page_number: int
    total_pages: int
    text: str
    bookmarked: bool = False


class Bookmarks(BaseModel):
    book_id: int
    pages: List[int]


class BookRequestCreate(BaseModel):
    book_id: int = Field(..., gt=0)
    message: Optional[str] = Field(None, max_length=1000)


class BookRequest(BaseModel):
    """
    Schema for request responses.

    Includes the book summary and both parties' public profiles so a list
    of requests renders without further lookups.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    requester_id: int
    donor_id: int
    status: str
    message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    book: BookSummary
    requester: Optional[ProfilePublic] = None
    donor: Optional[ProfilePublic] = None


class ContactShare(BaseModel):
    """Both fields optional: blanks fall back to the profile's details."""

    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)


class ExchangeState(BaseModel):
    request_id: int
    role: str
    status: str
    book_title: str
    book_author: str
    counterpart_name: str
    my_info_shared: bool
    their_info_shared: bool
    can_complete: bool
    my_phone: Optional[str] = None
    my_address: Optional[str] = None
    their_phone: Optional[str] = None
    their_address: Optional[str] = None


class Notification(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    type: str
    title: str
    message: str
    read: bool
    created_at: datetime


class UnreadCount(BaseModel):
    unread: int


class NotificationCall(BaseModel):
    """Arguments of the create_book_notification procedure."""

    user_id: int = Field(..., gt=0)
    notification_type: str = Field(..., min_length=1, max_length=100)
    notification_title: str = Field(..., min_length=1, max_length=300)
    notification_message: str = Field(..., min_length=1, max_length=2000)


class ActivitySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    unread_notifications: int
    total_requests: int
    new_pending_requests: int
    requests_seen_at: Optional[datetime] = None
    notifications_seen_at: Optional[datetime] = None


class SeenMarker(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    resource: str
    seen_at: datetime


class ChangeEvent(BaseModel):
    seq: int
    table: str
    event: str
    id: Any = None
    at: str


class ChangeFeed(BaseModel):
    last_seq: int
    events: List[ChangeEvent]


class GeocodeResult(BaseModel):
    latitude: float
    longitude: float
    address: str


class RetireBooks(BaseModel):
    titles: List[str] = Field(..., min_length=1)


class Message(BaseModel):
    message: str
