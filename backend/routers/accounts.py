"""Registration, login and profile endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession

from auth import (
    get_current_user, get_settings, hash_password, verify_password, create_access_token,
)
from config import Settings
from database import get_db
from models import User
from schemas import (
    RegisterRequest, LoginRequest, ProfileUpdateRequest, ChangePasswordRequest,
    UserOut, envelope, dump,
)
from services.observability import logger, metrics


router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _get_user(db: DBSession, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    db: DBSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Create an account and return it with an access token."""
    email = _normalize_email(body.email)
    if db.query(User.id).filter(User.email == email).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")

    user = User(
        email=email,
        password_hash=hash_password(body.password),
        name=body.name.strip(),
        phone=body.phone.strip() if body.phone else None,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")
    db.refresh(user)

    logger.info("User registered", user=user.id[:8])
    metrics.increment("auth.registered")

    return envelope(
        {"user": dump(UserOut, user), "token": create_access_token(user, settings)},
        message="User registered successfully",
    )


@router.post("/login")
async def login(
    body: LoginRequest,
    db: DBSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = db.query(User).filter(User.email == _normalize_email(body.email)).first()
    if not user or not verify_password(body.password, user.password_hash):
        metrics.increment("auth.login_failed")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    logger.info("User logged in", user=user.id[:8])
    return envelope(
        {"user": dump(UserOut, user), "token": create_access_token(user, settings)},
        message="Login successful",
    )


@router.get("/profile")
async def get_profile(
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    return envelope(dump(UserOut, _get_user(db, user_id)))


@router.put("/profile")
async def update_profile(
    body: ProfileUpdateRequest,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    user = _get_user(db, user_id)

    if body.name is not None:
        user.name = body.name.strip()
    if body.phone is not None:
        user.phone = body.phone.strip() or None

    db.commit()
    db.refresh(user)
    return envelope(dump(UserOut, user), message="Profile updated successfully")


@router.put("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    user_id: str = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    user = _get_user(db, user_id)

    if not verify_password(body.current_password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")

    user.password_hash = hash_password(body.new_password)
    db.commit()

    logger.info("Password changed", user=user_id[:8])
    return envelope(message="Password changed successfully")
