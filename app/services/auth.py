from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import decode_access_token, generate_url_token, sha256_hex
from app.db.session import get_db
from app.models.common import utcnow
from app.models.user import SignupOtp, User

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _decode_token(token: str) -> dict[str, Any]:
    try:
        return decode_access_token(token)
    except jwt.ExpiredSignatureError as exc:
        raise _unauthorized("Token expired") from exc
    except jwt.PyJWTError as exc:
        raise _unauthorized("Invalid token") from exc


def _parse_user_id(payload: dict[str, Any]) -> int:
    raw_id = payload.get("sub") or payload.get("id")
    try:
        return int(raw_id)
    except (TypeError, ValueError) as exc:
        raise _unauthorized("Invalid token") from exc


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    return (await db.execute(select(User).where(User.email == normalize_email(email)))).scalar_one_or_none()


async def get_signup_otp(db: AsyncSession, email: str) -> SignupOtp | None:
    return (await db.execute(select(SignupOtp).where(SignupOtp.email == normalize_email(email)))).scalar_one_or_none()


def issued_before_password_change(payload: dict[str, Any], user: User) -> bool:
    if user.password_changed_at is None:
        return False
    try:
        issued_at = int(payload["iat"])
    except (KeyError, TypeError, ValueError):
        return True
    # iat has whole-second precision; a token minted in the same second stays valid.
    return issued_at < int(user.password_changed_at.timestamp())


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authorized to access this route")

    payload = _decode_token(credentials.credentials)
    user = await db.get(User, _parse_user_id(payload))
    if user is None:
        raise _unauthorized("User not found")
    if issued_before_password_change(payload, user):
        raise _unauthorized("Password recently changed. Please log in again.")
    return user


def issue_password_reset_token(user: User) -> str:
    token, token_hash = generate_url_token()
    user.password_reset_token_hash = token_hash
    user.password_reset_expires_at = utcnow() + timedelta(minutes=settings.password_reset_ttl_minutes)
    return token


def issue_email_verification_token(user: User) -> str:
    token, token_hash = generate_url_token()
    user.email_verification_token_hash = token_hash
    user.email_verification_expires_at = utcnow() + timedelta(hours=settings.email_verification_ttl_hours)
    return token


async def find_user_by_reset_token(db: AsyncSession, token: str) -> User | None:
    return (
        await db.execute(
            select(User).where(
                User.password_reset_token_hash == sha256_hex(token),
                User.password_reset_expires_at > utcnow(),
            )
        )
    ).scalar_one_or_none()


async def find_user_by_verification_token(db: AsyncSession, token: str) -> User | None:
    return (
        await db.execute(
            select(User).where(
                User.email_verification_token_hash == sha256_hex(token),
                User.email_verification_expires_at > utcnow(),
            )
        )
    ).scalar_one_or_none()
