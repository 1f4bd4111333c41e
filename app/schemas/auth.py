from __future__ import annotations

import re
from datetime import datetime

from pydantic import Field, field_validator

from app.schemas.common import CamelModel


_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_OTP_RE = re.compile(r"^\d{6}$")


def validate_email(value: object) -> str:
    email = str(value or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValueError("Please provide a valid email")
    return email


def validate_new_password(value: object, *, label: str = "Password") -> str:
    password = str(value or "")
    if len(password) < 6:
        raise ValueError(f"{label} must be at least 6 characters")
    if not re.search(r"\d", password):
        raise ValueError(f"{label} must contain at least one number")
    if not re.search(r"[A-Z]", password):
        raise ValueError(f"{label} must contain at least one uppercase letter")
    return password


class EmailIn(CamelModel):
    email: str

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, value: object) -> str:
        return validate_email(value)


class SignupOtpRequestIn(EmailIn):
    name: str | None = Field(default=None, max_length=50)


class SignupOtpVerifyIn(EmailIn):
    otp: str

    @field_validator("otp", mode="before")
    @classmethod
    def _otp(cls, value: object) -> str:
        otp = str(value or "").strip()
        if not _OTP_RE.match(otp):
            raise ValueError("OTP must be a 6-digit code")
        return otp


class SignupIn(EmailIn):
    name: str
    password: str

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: object) -> str:
        name = str(value or "").strip()
        if not name:
            raise ValueError("Name is required")
        if not 2 <= len(name) <= 50:
            raise ValueError("Name must be between 2 and 50 characters")
        return name

    @field_validator("password", mode="before")
    @classmethod
    def _password(cls, value: object) -> str:
        return validate_new_password(value)


class LoginIn(EmailIn):
    password: str

    @field_validator("password", mode="before")
    @classmethod
    def _password(cls, value: object) -> str:
        if not value:
            raise ValueError("Password is required")
        return str(value)


class PreferencesIn(CamelModel):
    theme: str | None = Field(default=None, max_length=20)
    default_mode: str | None = Field(default=None, max_length=20)


class ChangePasswordIn(CamelModel):
    current_password: str
    new_password: str

    @field_validator("current_password", mode="before")
    @classmethod
    def _current(cls, value: object) -> str:
        if not value:
            raise ValueError("Current password is required")
        return str(value)

    @field_validator("new_password", mode="before")
    @classmethod
    def _new(cls, value: object) -> str:
        return validate_new_password(value, label="New password")


class ResetPasswordIn(CamelModel):
    password: str

    @field_validator("password", mode="before")
    @classmethod
    def _password(cls, value: object) -> str:
        return validate_new_password(value)


class UserOut(CamelModel):
    id: int
    name: str
    email: str
    role: str
    email_verified: bool
    preferences: dict[str, str]
    last_login: datetime | None = None
    created_at: datetime
    updated_at: datetime


class UserData(CamelModel):
    user: UserOut


class AuthTokenOut(CamelModel):
    success: bool = True
    token: str
    data: UserData
