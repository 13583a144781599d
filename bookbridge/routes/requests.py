from typing import List

from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends, HTTPException, status

from bookbridge import models, schemas, workflow
from bookbridge.auth import get_current_user
from bookbridge.database import get_db
from bookbridge.routes.errors import run

router = APIRouter(prefix="/requests", tags=["requests"])


def _get_request(db: Session, request_id: int) -> models.BookRequest:
    request = (
        db.query(models.BookRequest)
        .filter(models.BookRequest.id == request_id)
        .first()
    )
    if not request:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Request with id {request_id} not found",
        )
    return request


def _get_own_request(
    db: Session, request_id: int, user: models.Profile
) -> models.BookRequest:
    """Fetch a request the user is a party to; strangers get a 403."""
    request = _get_request(db, request_id)
    if workflow.role_of(request, user) is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a party to this request.",
        )
    return request


@router.post("", response_model=schemas.BookRequest, status_code=status.HTTP_201_CREATED)
async def create_request(
    payload: schemas.BookRequestCreate,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Request a book from its donor.

    Business Logic:
    - Donors cannot request their own books (400)
    - Only available, non free-to-read books can be requested (409)
    - One open (pending or accepted) request per requester and book (409)

    Raises:
        HTTPException: 404 if the book does not exist
    """
    book = db.query(models.Book).filter(models.Book.id == payload.book_id).first()
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Book with id {payload.book_id} not found",
        )
    return run(workflow.create_request, db, book, current_user, payload.message)


@router.get("/sent", response_model=List[schemas.BookRequest])
async def list_sent_requests(
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Requests the signed-in user has sent, newest first."""
    return (
        db.query(models.BookRequest)
        .filter(models.BookRequest.requester_id == current_user.id)
        .order_by(models.BookRequest.created_at.desc(), models.BookRequest.id.desc())
        .all()
    )


@router.get("/received", response_model=List[schemas.BookRequest])
async def list_received_requests(
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Requests for the signed-in user's books, newest first.

    Every status is listed, so a donor also sees requests they have
    already accepted, declined or completed.
    """
    return (
        db.query(models.BookRequest)
        .filter(models.BookRequest.donor_id == current_user.id)
        .order_by(models.BookRequest.created_at.desc(), models.BookRequest.id.desc())
        .all()
    )


@router.get("/{request_id}", response_model=schemas.BookRequest)
async def get_request(
    request_id: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    One request, visible to its requester and donor only.

    Raises:
        HTTPException: 404 if the request does not exist, 403 for anyone else
    """
    return _get_own_request(db, request_id, current_user)


@router.post("/{request_id}/accept", response_model=schemas.BookRequest)
async def accept_request(
    request_id: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Accept a pending request (donor only).

    Internal Working:
    1. The request moves pending -> accepted with a conditional UPDATE
    2. The book moves available -> requested the same way
    3. Both commit together; if either row was already moved on by a
       concurrent call, nothing changes and the caller gets a 409
    """
    request = _get_own_request(db, request_id, current_user)
    return run(workflow.accept_request, db, request, current_user)


@router.post("/{request_id}/reject", response_model=schemas.BookRequest)
async def reject_request(
    request_id: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Decline a pending request (donor only). The book stays available."""
    request = _get_own_request(db, request_id, current_user)
    return run(workflow.reject_request, db, request, current_user)


@router.delete("/{request_id}", response_model=schemas.Message)
async def delete_request(
    request_id: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete a request, by either party.

    Business Logic:
    - Only pending or rejected requests can be deleted (409 otherwise)
    - The status is checked by the DELETE itself, so a request accepted
      between loading and deleting is kept
    """
    request = _get_own_request(db, request_id, current_user)
    run(workflow.delete_request, db, request, current_user)
    return {"message": f"Request with id {request_id} deleted"}


@router.get("/{request_id}/exchange", response_model=schemas.ExchangeState)
async def get_exchange(
    request_id: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Contact exchange state as seen by the caller.

    The counterparty's phone and address stay hidden until they have
    shared them. The caller's own fields are prefilled from their profile
    until they share.
    """
    request = _get_own_request(db, request_id, current_user)
    return run(workflow.exchange_state, request, current_user)


@router.put("/{request_id}/exchange", response_model=schemas.ExchangeState)
async def share_contact(
    request_id: int,
    contact: schemas.ContactShare,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Share the caller's contact details for an accepted request.

    Sharing again overwrites the caller's side of the same exchange.

    Raises:
        HTTPException: 409 unless the request is accepted, 400 when neither
        the body nor the profile supplies a phone number or address
    """
    request = _get_own_request(db, request_id, current_user)
    run(
        workflow.share_contact,
        db,
        request,
        current_user,
        phone=contact.phone,
        address=contact.address,
    )
    db.refresh(request)
    return run(workflow.exchange_state, request, current_user)


@router.post("/{request_id}/complete", response_model=schemas.BookRequest)
async def complete_exchange(
    request_id: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Mark the exchange complete once both parties have shared their details.

    The book becomes donated and the request completed in one transaction.
    A storage failure leaves both untouched and is reported as a 500.
    """
    request = _get_own_request(db, request_id, current_user)
    return run(workflow.complete_exchange, db, request, current_user)
