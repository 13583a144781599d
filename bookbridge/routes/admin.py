from typing import List

from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends

from bookbridge import catalog, schemas
from bookbridge.auth import verify_api_key
from bookbridge.database import get_db
from bookbridge.routes.errors import run

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(verify_api_key)],
)


@router.post("/books/retire", response_model=List[schemas.Book])
async def retire_books(payload: schemas.RetireBooks, db: Session = Depends(get_db)):
    """
    Take books off the shelf by title (requires API key).

    Internal Working:
    1. verify_api_key guards every route of this router
    2. A book matches when its title contains one of the given titles,
       or is contained in one, ignoring case
    3. Matches are marked donated; rows and requests are kept

    Returns:
        The books that changed status
    """
    return run(catalog.retire_books_by_title, db, payload.titles)
