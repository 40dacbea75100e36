from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from fastapi import HTTPException, Response
from jose import JWTError
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.security import (
    TOKEN_TYPE_REFRESH,
    create_access_token,
    create_refresh_token,
    decode_jwt,
    hash_password,
    hash_refresh_token,
    verify_password,
)
from storefront.models.refresh_token import UserRefreshToken
from storefront.models.user import ROLE_CUSTOMER, User
from storefront.schemas.auth import LoginIn, ProfileUpdate, RegisterIn
from storefront.services.customers import NAME_MAX, commit_user_or_409
from storefront.services.sanitize import escape_text, is_valid_email

_LOG = logging.getLogger("storefront.auth")

PASSWORD_MIN_LENGTH = 6


def normalize_email(raw: str | None) -> str:
    return str(raw or "").strip().lower()


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def register_user(db: Session, payload: RegisterIn) -> User:
    if not payload.email or not payload.password or not payload.name:
        raise HTTPException(status_code=400, detail="Email, password and name are required")
    email = normalize_email(payload.email)
    if not is_valid_email(email):
        raise HTTPException(status_code=400, detail="Invalid email")
    if len(payload.password) < PASSWORD_MIN_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {PASSWORD_MIN_LENGTH} characters long",
        )
    if db.query(User).filter(User.email == email).first() is not None:
        raise HTTPException(status_code=409, detail="A user with this email already exists")

    user = User(
        email=email,
        name=escape_text(payload.name, NAME_MAX),
        password_hash=hash_password(payload.password),
        roles=[ROLE_CUSTOMER],
    )
    user = commit_user_or_409(db, user)
    _LOG.info("user registered id=%s", user.id)
    return user


def authenticate_or_401(db: Session, payload: LoginIn) -> User:
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Email and password are required")
    email = normalize_email(payload.email)
    if not is_valid_email(email):
        raise HTTPException(status_code=400, detail="Invalid email")
    user = db.query(User).filter(User.email == email).first()
    if user is None or not verify_password(payload.password, user.password_hash):
        _LOG.warning("failed login email=%s", email)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return user


def issue_tokens(db: Session, user: User, response: Response) -> str:
    """Create an access token and a stored refresh token, setting the refresh cookie."""
    refresh_token, expires_at = create_refresh_token(str(user.id))
    db.add(UserRefreshToken(user_id=user.id, token_hash=hash_refresh_token(refresh_token), expires_at=expires_at))
    db.commit()
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=refresh_token,
        httponly=True,
        secure=bool(settings.COOKIE_SECURE),
        samesite=settings.COOKIE_SAMESITE,
        max_age=settings.REFRESH_TOKEN_TTL_DAYS * 24 * 3600,
    )
    return create_access_token(str(user.id), list(user.roles or []))


def _stored_token_or_401(db: Session, refresh_token: str | None) -> UserRefreshToken:
    if not refresh_token:
        raise HTTPException(status_code=401, detail="Refresh token is missing")
    try:
        claims = decode_jwt(refresh_token, settings.refresh_token_secret)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    if claims.get("type") != TOKEN_TYPE_REFRESH:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    try:
        user_id = uuid.UUID(str(claims.get("sub") or ""))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    stored = (
        db.query(UserRefreshToken)
        .filter(
            UserRefreshToken.user_id == user_id,
            UserRefreshToken.token_hash == hash_refresh_token(refresh_token),
        )
        .first()
    )
    if stored is None or _as_utc(stored.expires_at) <= datetime.now(timezone.utc):
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    return stored


def rotate_tokens(db: Session, refresh_token: str | None, response: Response) -> tuple[User, str]:
    stored = _stored_token_or_401(db, refresh_token)
    user = stored.user
    db.delete(stored)
    db.flush()
    access_token = issue_tokens(db, user, response)
    return user, access_token


def revoke_refresh_token(db: Session, refresh_token: str | None, response: Response) -> None:
    stored = _stored_token_or_401(db, refresh_token)
    db.delete(stored)
    db.commit()
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        httponly=True,
        secure=bool(settings.COOKIE_SECURE),
        samesite=settings.COOKIE_SAMESITE,
    )


def update_profile(db: Session, user: User, payload: ProfileUpdate) -> User:
    provided = payload.model_fields_set
    if "name" in provided:
        name = escape_text(payload.name, NAME_MAX)
        if not name:
            raise HTTPException(status_code=400, detail="Name must not be empty")
        user.name = name
    if "email" in provided:
        email = normalize_email(payload.email)
        if not is_valid_email(email):
            raise HTTPException(status_code=400, detail="Invalid email")
        user.email = email
    return commit_user_or_409(db, user)
