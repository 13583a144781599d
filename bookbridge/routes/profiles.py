import logging
from datetime import timedelta

from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends, HTTPException, status

from bookbridge import models, schemas
from bookbridge.auth import (
    create_access_token,
    get_current_user,
    hash_password,
    verify_password,
)
from bookbridge.config import settings
from bookbridge.database import commit, get_db
from bookbridge.routes.errors import run

logger = logging.getLogger(__name__)

router = APIRouter(tags=["profiles"])


def _issue_token(profile: models.Profile) -> dict:
    expires = timedelta(minutes=settings.access_token_expire_minutes)
    return {
        "access_token": create_access_token({"sub": str(profile.id)}, expires),
        "token_type": "bearer",
        "expires_in": int(expires.total_seconds()),
        "profile": profile,
    }


@router.post(
    "/auth/register",
    response_model=schemas.Token,
    status_code=status.HTTP_201_CREATED,
)
async def register(payload: schemas.ProfileCreate, db: Session = Depends(get_db)):
    """
    Create a profile and sign it in.

    Internal Working:
    1. Email and username uniqueness are checked up front
    2. The password is hashed with passlib before it is stored
    3. A bearer token whose subject is the new profile id is returned

    Raises:
        HTTPException: 400 if the email or username is already taken,
        500 if the profile cannot be stored
    """
    email = payload.email.lower()
    if db.query(models.Profile).filter(models.Profile.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An account with this email already exists",
        )
    if payload.username and (
        db.query(models.Profile)
        .filter(models.Profile.username == payload.username)
        .first()
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Username {payload.username} is already taken",
        )

    profile = models.Profile(
        email=email,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name,
        username=payload.username,
        phone=payload.phone or None,
        address=payload.address or None,
        avatar_url=payload.avatar_url or None,
    )
    db.add(profile)
    run(commit, db, "Failed to create your account. Please try again.")
    db.refresh(profile)
    logger.info("Registered profile %s", profile.id)
    return _issue_token(profile)


@router.post("/auth/login", response_model=schemas.Token)
async def login(credentials: schemas.LoginRequest, db: Session = Depends(get_db)):
    """
    Exchange email and password for a bearer token.

    Raises:
        HTTPException: 401 for an unknown email or a wrong password; the
        message does not say which
    """
    profile = (
        db.query(models.Profile)
        .filter(models.Profile.email == credentials.email.lower())
        .first()
    )
    if not profile or not verify_password(credentials.password, profile.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _issue_token(profile)


@router.get("/profiles/me", response_model=schemas.ProfilePrivate)
async def read_my_profile(current_user: models.Profile = Depends(get_current_user)):
    """The signed-in profile, including phone and address."""
    return current_user


@router.put("/profiles/me", response_model=schemas.ProfilePrivate)
async def update_my_profile(
    profile_update: schemas.ProfileUpdate,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update the signed-in profile.

    Only the fields present in the body are changed. The phone and address
    saved here are what contact sharing falls back to.

    Raises:
        HTTPException: 400 if the new username belongs to someone else
    """
    update_data = profile_update.model_dump(exclude_unset=True)

    username = update_data.get("username")
    if username and username != current_user.username:
        taken = (
            db.query(models.Profile)
            .filter(models.Profile.username == username)
            .first()
        )
        if taken:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Username {username} is already taken",
            )

    for key, value in update_data.items():
        setattr(current_user, key, value)

    run(commit, db, "Failed to update your profile. Please try again.")
    db.refresh(current_user)
    return current_user


@router.get("/profiles/{profile_id}", response_model=schemas.ProfilePublic)
async def read_profile(
    profile_id: int,
    current_user: models.Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Another user's public profile. Phone and address are never included."""
    profile = db.query(models.Profile).filter(models.Profile.id == profile_id).first()
    if not profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Profile with id {profile_id} not found",
        )
    return profile
