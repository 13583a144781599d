"""
Book request lifecycle and contact exchange.

    pending --accept--> accepted --complete--> completed
       |
       +--reject--> rejected

Requests may be deleted while pending or rejected. Accepting a request
moves its book from available to requested; completing the exchange moves
the book to donated. Every multi-row transition is a single transaction,
and notifications are sent only after that transaction has committed.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from bookbridge import catalog, models, notifications, realtime
from bookbridge.database import StoreError, commit as _commit
from bookbridge.models import BookStatus, RequestStatus
from bookbridge.notifications import NotificationDraft

logger = logging.getLogger(__name__)

DONOR = "donor"
REQUESTER = "requester"

DELETABLE_STATUSES = (RequestStatus.PENDING.value, RequestStatus.REJECTED.value)


class WorkflowError(Exception):
    """Base class for refused workflow operations."""

    status_code = 400


class ValidationFailed(WorkflowError):
    status_code = 400


class PermissionDenied(WorkflowError):
    status_code = 403


class InvalidTransition(WorkflowError):
    status_code = 409


def role_of(request: models.BookRequest, user: models.Profile) -> Optional[str]:
    if user.id == request.donor_id:
        return DONOR
    if user.id == request.requester_id:
        return REQUESTER
    return None


def _require_party(request: models.BookRequest, user: models.Profile) -> str:
    role = role_of(request, user)
    if role is None:
        raise PermissionDenied("You are not a party to this request.")
    return role


def _require_donor(request: models.BookRequest, user: models.Profile, action: str):
    if role_of(request, user) != DONOR:
        raise PermissionDenied(f"Only the donor can {action} this request.")


def _transition(db: Session, request: models.BookRequest, expected: str, target: str) -> None:
    """
    Conditionally move `request` from `expected` to `target`.

    The WHERE clause on the current status makes concurrent transitions of
    the same request mutually exclusive: only one UPDATE can match.
    """
    updated = (
        db.query(models.BookRequest)
        .filter(
            models.BookRequest.id == request.id,
            models.BookRequest.status == expected,
        )
        .update(
            {"status": target, "updated_at": datetime.now()},
            synchronize_session=False,
        )
    )
    if not updated:
        db.rollback()
        db.refresh(request)
        raise InvalidTransition(
            f"Request cannot be {target} because it is already {request.status}."
        )
    realtime.record_change(
        db, "book_requests", realtime.UPDATE, request.id, request.audience
    )


def create_request(
    db: Session,
    book: models.Book,
    requester: models.Profile,
    message: Optional[str] = None,
) -> models.BookRequest:
    if book.donor_id == requester.id:
        raise ValidationFailed("You cannot request your own book.")
    if not catalog.is_browsable(book) or book.donor_id is None:
        raise InvalidTransition("This book is no longer available for requests.")

    open_request = (
        db.query(models.BookRequest)
        .filter(
            models.BookRequest.book_id == book.id,
            models.BookRequest.requester_id == requester.id,
            models.BookRequest.status.in_(
                [RequestStatus.PENDING.value, RequestStatus.ACCEPTED.value]
            ),
        )
        .first()
    )
    if open_request:
        raise InvalidTransition("You have already requested this book.")

    request = models.BookRequest(
        book_id=book.id,
        requester_id=requester.id,
        donor_id=book.donor_id,
        message=message,
        status=RequestStatus.PENDING.value,
    )
    db.add(request)
    _commit(db, "Failed to send request. Please try again.")
    db.refresh(request)
    logger.info("Request %s created for book %s by %s", request.id, book.id, requester.id)

    notifications.dispatch(
        db,
        [
            NotificationDraft(
                book.donor_id,
                "book_request",
                "New Book Request! 📚",
                f'Someone has requested your book "{book.title}". '
                "Check your requests to accept or decline.",
            ),
            NotificationDraft(
                requester.id,
                "request_sent",
                "Request Sent! 📤",
                f'Your request for "{book.title}" has been sent to the donor. '
                "You'll be notified when they respond.",
            ),
        ],
    )
    return request


def accept_request(
    db: Session, request: models.BookRequest, actor: models.Profile
) -> models.BookRequest:
    """
    Accept a pending request and reserve its book.

    Both conditional updates commit together. If the book has meanwhile
    been reserved by another accepted request, nothing changes.
    """
    _require_donor(request, actor, "accept")
    _transition(db, request, RequestStatus.PENDING.value, RequestStatus.ACCEPTED.value)

    reserved = (
        db.query(models.Book)
        .filter(
            models.Book.id == request.book_id,
            models.Book.status == BookStatus.AVAILABLE.value,
        )
        .update({"status": BookStatus.REQUESTED.value}, synchronize_session=False)
    )
    if not reserved:
        db.rollback()
        raise InvalidTransition("This book is no longer available for this request.")
    realtime.record_change(db, "books", realtime.UPDATE, request.book_id)

    _commit(db, "Failed to accept request. Please try again.")
    db.refresh(request)
    logger.info("Request %s accepted", request.id)

    notifications.dispatch(
        db,
        [
            NotificationDraft(
                request.requester_id,
                "request_accepted",
                "Book Request Accepted! 📚",
                f'Great news! Your request for "{request.book.title}" has been accepted. '
                "You can now exchange contact information with the donor to arrange pickup.",
            )
        ],
    )
    return request


def reject_request(
    db: Session, request: models.BookRequest, actor: models.Profile
) -> models.BookRequest:
    _require_donor(request, actor, "reject")
    _transition(db, request, RequestStatus.PENDING.value, RequestStatus.REJECTED.value)
    _commit(db, "Failed to decline request. Please try again.")
    db.refresh(request)
    logger.info("Request %s rejected", request.id)

    notifications.dispatch(
        db,
        [
            NotificationDraft(
                request.requester_id,
                "request_rejected",
                "Book Request Declined",
                f'Unfortunately, your request for "{request.book.title}" has been declined '
                "by the donor. Don't worry, there are many other books available!",
            )
        ],
    )
    return request


def delete_request(
    db: Session, request: models.BookRequest, actor: models.Profile
) -> None:
    """
    Delete a pending or rejected request.

    The status check is part of the DELETE itself, so a request accepted
    in the meantime is never removed.
    """
    _require_party(request, actor)
    request_id = request.id
    audience = request.audience
    deleted = (
        db.query(models.BookRequest)
        .filter(
            models.BookRequest.id == request_id,
            models.BookRequest.status.in_(DELETABLE_STATUSES),
        )
        .delete(synchronize_session=False)
    )
    if not deleted:
        db.rollback()
        db.refresh(request)
        raise InvalidTransition(
            f"Only pending or rejected requests can be deleted, this one is {request.status}."
        )
    realtime.record_change(db, "book_requests", realtime.DELETE, request_id, audience)
    _commit(db, "Failed to delete request. Please try again.")
    logger.info("Request %s deleted by %s", request_id, actor.id)


def share_contact(
    db: Session,
    request: models.BookRequest,
    actor: models.Profile,
    phone: Optional[str] = None,
    address: Optional[str] = None,
) -> models.ContactExchange:
    """
    Store the actor's side of the contact exchange.

    Blank values fall back to the actor's profile. The request keeps a
    single exchange row: sharing again rewrites the actor's columns in
    place.
    """
    role = _require_party(request, actor)
    if request.status != RequestStatus.ACCEPTED.value:
        raise InvalidTransition(
            "Contact details can only be shared once the request has been accepted."
        )

    phone = (phone or "").strip() or (actor.phone or "").strip()
    address = (address or "").strip() or (actor.address or "").strip()
    if not phone and not address:
        raise ValidationFailed("Please provide at least your phone number or address.")

    exchange = request.contact_exchange
    if exchange is None:
        exchange = models.ContactExchange(request_id=request.id)
        db.add(exchange)
    _apply_side(exchange, role, phone, address)

    try:
        db.commit()
    except IntegrityError:
        # the counterparty created the row first
        db.rollback()
        exchange = (
            db.query(models.ContactExchange)
            .filter(models.ContactExchange.request_id == request.id)
            .first()
        )
        if exchange is None:
            logger.exception("Contact exchange for request %s vanished", request.id)
            raise StoreError("Failed to share contact information. Please try again.")
        _apply_side(exchange, role, phone, address)
        _commit(db, "Failed to share contact information. Please try again.")
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to share contact information for request %s", request.id)
        raise StoreError("Failed to share contact information. Please try again.") from exc

    db.refresh(exchange)
    logger.info("Request %s: %s shared contact details", request.id, role)

    counterparty_id = request.requester_id if role == DONOR else request.donor_id
    role_text = "donor" if role == DONOR else "recipient"
    notifications.dispatch(
        db,
        [
            NotificationDraft(
                counterparty_id,
                "contact_shared",
                "Contact Details Shared",
                f"The book {role_text} has shared their contact information "
                f'for "{request.book.title}".',
            )
        ],
    )
    return exchange


def _apply_side(exchange: models.ContactExchange, role: str, phone: str, address: str):
    if role == DONOR:
        exchange.donor_phone = phone or None
        exchange.donor_address = address or None
    else:
        exchange.requester_phone = phone or None
        exchange.requester_address = address or None


def exchange_state(request: models.BookRequest, actor: models.Profile) -> dict:
    """
    What the actor may see of the exchange.

    The counterparty's details are only revealed once they have shared
    them; completion is possible only when both sides have.
    """
    role = _require_party(request, actor)
    exchange = request.contact_exchange
    if role == DONOR:
        counterpart = request.requester
        mine = (exchange.donor_phone, exchange.donor_address) if exchange else (None, None)
        theirs = (
            (exchange.requester_phone, exchange.requester_address)
            if exchange
            else (None, None)
        )
    else:
        counterpart = request.donor
        mine = (exchange.requester_phone, exchange.requester_address) if exchange else (None, None)
        theirs = (exchange.donor_phone, exchange.donor_address) if exchange else (None, None)

    my_info_shared = any(mine)
    their_info_shared = any(theirs)
    return {
        "request_id": request.id,
        "role": role,
        "status": request.status,
        "book_title": request.book.title,
        "book_author": request.book.author,
        "counterpart_name": (counterpart.full_name if counterpart else None) or "Anonymous",
        "my_info_shared": my_info_shared,
        "their_info_shared": their_info_shared,
        "can_complete": (
            my_info_shared
            and their_info_shared
            and request.status == RequestStatus.ACCEPTED.value
        ),
        "my_phone": mine[0] if my_info_shared else actor.phone,
        "my_address": mine[1] if my_info_shared else actor.address,
        "their_phone": theirs[0] if their_info_shared else None,
        "their_address": theirs[1] if their_info_shared else None,
    }


def _mark_book_donated(db: Session, book: models.Book) -> None:
    book.status = BookStatus.DONATED.value
    db.flush()


def complete_exchange(
    db: Session, request: models.BookRequest, actor: models.Profile
) -> models.BookRequest:
    """
    Finish the hand-off: book becomes donated, request becomes completed.

    The request moves with a conditional UPDATE, so of two concurrent
    completions only one succeeds. Both writes belong to one transaction.
    If either fails, both are rolled back and StoreError is raised; the
    caller never sees a half-completed exchange as success.
    """
    _require_party(request, actor)
    if request.status == RequestStatus.COMPLETED.value:
        raise InvalidTransition("This exchange has already been completed.")
    if request.status != RequestStatus.ACCEPTED.value:
        raise InvalidTransition(
            f"Only accepted requests can be completed, this one is {request.status}."
        )

    exchange = request.contact_exchange
    if exchange is None or not (exchange.donor_shared and exchange.requester_shared):
        raise InvalidTransition(
            "Both parties must share their contact information before completing the exchange."
        )

    book = request.book
    try:
        _transition(
            db, request, RequestStatus.ACCEPTED.value, RequestStatus.COMPLETED.value
        )
        _mark_book_donated(db, book)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to complete exchange for request %s", request.id)
        raise StoreError("Failed to complete exchange. Please try again.") from exc

    db.refresh(request)
    logger.info("Request %s completed, book %s donated", request.id, book.id)

    notifications.dispatch(
        db,
        [
            NotificationDraft(
                request.donor_id,
                "exchange_completed",
                "Book Exchange Completed! 🎉",
                f'Congratulations! Your book "{book.title}" has been successfully donated. '
                "Thank you for contributing to our community!",
            ),
            NotificationDraft(
                request.requester_id,
                "exchange_completed",
                "Book Received! 📖",
                f'You have successfully received "{book.title}". Happy reading! '
                "Don't forget to consider donating books when you're done.",
            ),
        ],
    )
    return request
