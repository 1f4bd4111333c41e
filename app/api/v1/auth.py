from __future__ import annotations

import asyncio
import hmac
import logging
from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import create_access_token, generate_otp, hash_password, sha256_hex, verify_password
from app.db.session import get_db
from app.models.common import is_expired, utcnow
from app.models.user import SignupOtp, User, default_preferences
from app.schemas.auth import (
    AuthTokenOut,
    ChangePasswordIn,
    EmailIn,
    LoginIn,
    PreferencesIn,
    ResetPasswordIn,
    SignupIn,
    SignupOtpRequestIn,
    SignupOtpVerifyIn,
    UserData,
    UserOut,
)
from app.schemas.common import Envelope, MessageResponse
from app.services.auth import (
    find_user_by_reset_token,
    find_user_by_verification_token,
    get_current_user,
    get_signup_otp,
    get_user_by_email,
    issue_email_verification_token,
    issue_password_reset_token,
)
from app.services.email import (
    EmailDelivery,
    EmailDeliveryError,
    build_reset_url,
    build_verify_email_url,
    send_email_verification_email,
    send_password_reset_email,
    send_signup_otp_email,
)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

EMAIL_NOT_CONFIGURED = "Email service is not configured. Please contact support."
FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent."
RESEND_VERIFICATION_MESSAGE = "If your account exists and is not verified, a verification link has been sent."


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        email_verified=user.email_verified,
        preferences={**default_preferences(), **(user.preferences or {})},
        last_login=user.last_login_at,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _token_response(user: User) -> AuthTokenOut:
    return AuthTokenOut(token=create_access_token(user.id), data=UserData(user=_user_out(user)))


def _undelivered_data(delivery: EmailDelivery, key: str, value: str, what: str) -> dict[str, Any] | None:
    """Outside production an undelivered OTP or link is echoed back for local testing."""
    if delivery.delivered:
        return None
    if settings.is_production:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=EMAIL_NOT_CONFIGURED)
    return {key: value, "note": f"SMTP is not configured, so {what} is returned for local testing."}


async def _ensure_email_available(db: AsyncSession, email: str) -> None:
    if await get_user_by_email(db, email) is not None:
        raise HTTPException(status_code=400, detail="User already exists with this email")


@router.post("/send-signup-otp", response_model=MessageResponse, response_model_exclude_none=True)
async def send_signup_otp(payload: SignupOtpRequestIn, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    await _ensure_email_available(db, payload.email)

    otp = generate_otp()
    row = await get_signup_otp(db, payload.email)
    if row is None:
        row = SignupOtp(email=payload.email, otp_expires_at=utcnow())
        db.add(row)
    row.otp_hash = sha256_hex(otp)
    row.otp_expires_at = utcnow() + timedelta(minutes=settings.signup_otp_ttl_minutes)
    row.verified_at = None
    row.attempts = 0
    await db.commit()

    try:
        delivery = await send_signup_otp_email(to=payload.email, name=payload.name, otp=otp)
    except EmailDeliveryError as exc:
        raise HTTPException(status_code=503, detail="Unable to send OTP right now. Please try again later.") from exc

    return MessageResponse(
        message="OTP sent to your email.",
        data=_undelivered_data(delivery, "otp", otp, "OTP"),
    )


@router.post("/verify-signup-otp", response_model=MessageResponse, response_model_exclude_none=True)
async def verify_signup_otp(payload: SignupOtpVerifyIn, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    row = await get_signup_otp(db, payload.email)
    if row is None or not row.otp_hash:
        raise HTTPException(status_code=400, detail="OTP not found. Please request a new OTP.")
    if is_expired(row.otp_expires_at):
        raise HTTPException(status_code=400, detail="OTP has expired. Please request a new OTP.")
    if row.attempts >= settings.signup_otp_max_attempts:
        raise HTTPException(status_code=429, detail="Too many failed attempts. Please request a new OTP.")

    if not hmac.compare_digest(sha256_hex(payload.otp), row.otp_hash):
        row.attempts += 1
        await db.commit()
        raise HTTPException(status_code=400, detail="Invalid OTP")

    row.verified_at = utcnow()
    row.otp_hash = None
    row.attempts = 0
    row.otp_expires_at = utcnow() + timedelta(minutes=settings.signup_otp_verified_ttl_minutes)
    await db.commit()
    return MessageResponse(message="Email verified with OTP. You can now create your account.")


@router.post(
    "/signup",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def signup(payload: SignupIn, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    await _ensure_email_available(db, payload.email)

    otp_row = await get_signup_otp(db, payload.email)
    if otp_row is None or otp_row.verified_at is None or is_expired(otp_row.otp_expires_at):
        raise HTTPException(status_code=400, detail="Please verify your email with OTP before creating an account.")

    db.add(
        User(
            name=payload.name,
            email=payload.email,
            password_hash=await asyncio.to_thread(hash_password, payload.password),
            email_verified=True,
            preferences=default_preferences(),
        )
    )
    await db.execute(delete(SignupOtp).where(SignupOtp.email == payload.email))
    await db.commit()
    logger.info("New account created for %s", payload.email)
    return MessageResponse(message="Signup successful. You can now log in.")


@router.post("/login", response_model=AuthTokenOut)
async def login(payload: LoginIn, db: AsyncSession = Depends(get_db)) -> AuthTokenOut:
    user = await get_user_by_email(db, payload.email)
    if user is None or not await asyncio.to_thread(verify_password, payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.email_verified:
        raise HTTPException(
            status_code=403,
            detail="Please verify your email before logging in. Use resend verification if needed.",
        )

    user.last_login_at = utcnow()
    await db.commit()
    await db.refresh(user)
    return _token_response(user)


@router.post("/logout", response_model=MessageResponse, response_model_exclude_none=True)
async def logout(current_user: User = Depends(get_current_user)) -> MessageResponse:
    # Tokens are stateless; the client discards its copy.
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=Envelope[UserData])
async def me(current_user: User = Depends(get_current_user)) -> Envelope[UserData]:
    return Envelope[UserData](data=UserData(user=_user_out(current_user)))


@router.patch("/preferences", response_model=Envelope[UserData])
async def update_preferences(
    payload: PreferencesIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[UserData]:
    current = {**default_preferences(), **(current_user.preferences or {})}
    current_user.preferences = {
        "theme": payload.theme or current["theme"],
        "defaultMode": payload.default_mode or current["defaultMode"],
    }
    await db.commit()
    await db.refresh(current_user)
    return Envelope[UserData](data=UserData(user=_user_out(current_user)))


@router.patch("/change-password", response_model=AuthTokenOut)
async def change_password(
    payload: ChangePasswordIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> AuthTokenOut:
    if not await asyncio.to_thread(verify_password, payload.current_password, current_user.password_hash):
        raise HTTPException(status_code=401, detail="Current password is incorrect")

    current_user.password_hash = await asyncio.to_thread(hash_password, payload.new_password)
    current_user.password_changed_at = utcnow()
    await db.commit()
    await db.refresh(current_user)
    return _token_response(current_user)


@router.post("/forgot-password", response_model=MessageResponse, response_model_exclude_none=True)
async def forgot_password(payload: EmailIn, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    user = await get_user_by_email(db, payload.email)
    if user is None:
        return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

    reset_url = build_reset_url(issue_password_reset_token(user))
    await db.commit()

    try:
        delivery = await send_password_reset_email(to=user.email, name=user.name, reset_url=reset_url)
    except EmailDeliveryError as exc:
        raise HTTPException(
            status_code=503,
            detail="Unable to send reset email right now. Please try again later.",
        ) from exc

    return MessageResponse(
        message=FORGOT_PASSWORD_MESSAGE,
        data=_undelivered_data(delivery, "resetUrl", reset_url, "reset link"),
    )


@router.patch("/reset-password/{token}", response_model=AuthTokenOut)
async def reset_password(token: str, payload: ResetPasswordIn, db: AsyncSession = Depends(get_db)) -> AuthTokenOut:
    user = await find_user_by_reset_token(db, token.strip())
    if user is None:
        raise HTTPException(status_code=400, detail="Reset token is invalid or has expired")

    user.password_hash = await asyncio.to_thread(hash_password, payload.password)
    user.password_changed_at = utcnow()
    user.password_reset_token_hash = None
    user.password_reset_expires_at = None
    await db.commit()
    await db.refresh(user)
    return _token_response(user)


@router.get("/verify-email/{token}", response_model=MessageResponse, response_model_exclude_none=True)
async def verify_email(token: str, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    user = await find_user_by_verification_token(db, token.strip())
    if user is None:
        raise HTTPException(status_code=400, detail="Verification token is invalid or has expired")

    user.email_verified = True
    user.email_verification_token_hash = None
    user.email_verification_expires_at = None
    await db.commit()
    return MessageResponse(message="Email verified successfully. You can now log in.")


@router.post("/resend-verification", response_model=MessageResponse, response_model_exclude_none=True)
async def resend_verification(payload: EmailIn, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    user = await get_user_by_email(db, payload.email)
    if user is None or user.email_verified:
        return MessageResponse(message=RESEND_VERIFICATION_MESSAGE)

    verify_url = build_verify_email_url(issue_email_verification_token(user))
    await db.commit()

    try:
        delivery = await send_email_verification_email(to=user.email, name=user.name, verify_url=verify_url)
    except EmailDeliveryError as exc:
        raise HTTPException(
            status_code=503,
            detail="Unable to send verification email right now. Please try again later.",
        ) from exc

    return MessageResponse(
        message=RESEND_VERIFICATION_MESSAGE,
        data=_undelivered_data(delivery, "verifyUrl", verify_url, "verify link"),
    )
