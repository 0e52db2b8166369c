"""
Module: auth.py
Description: Password hashing and JWT bearer authentication for PiggyBank.

Provides:
    - bcrypt password hashing
    - HS256 access tokens (PyJWT)
    - get_current_user dependency for FastAPI

Usage:
    @router.get("/protected")
    async def protected_route(user_id: str = Depends(get_current_user)):
        ...
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import HTTPException, Request, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session as DBSession

from config import Settings
from database import get_db
from models import User
from services.observability import logger


# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    """Dependency: the Settings the app was created with."""
    return request.app.state.settings


# =============================================================================
# Passwords
# =============================================================================

def hash_password(password: str) -> str:
    secret = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(secret, bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    secret = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(secret, password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# =============================================================================
# Tokens
# =============================================================================

def create_access_token(user: User, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a signed access token for user."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_expires_minutes)
    )
    payload = {"sub": user.id, "email": user.email, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> Optional[dict]:
    """
    Verify a token and return its claims.

    Args:
        token: The JWT from the Authorization header.
        settings: Settings holding the signing secret.

    Returns:
        Dict of claims if valid, None otherwise.
    """
    if not token:
        return None

    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.warning("Token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token", error=str(e))
        return None


# =============================================================================
# FastAPI Dependencies
# =============================================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
    db: DBSession = Depends(get_db),
) -> str:
    """
    FastAPI dependency to get the current authenticated user.

    Returns:
        The user id (sub claim) of an existing user.

    Raises:
        HTTPException: 401 if the token is missing, invalid, expired,
            or belongs to a user that no longer exists.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization token missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = decode_access_token(credentials.credentials, settings)
    user_id = claims.get("sub") if claims else None

    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    exists = db.query(User.id).filter(User.id == user_id).first()
    if not exists:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user_id
