import jwt
import pytest
from fastapi import HTTPException

from app.core.security import (
    create_access_token,
    decode_access_token,
    generate_otp,
    generate_url_token,
    hash_password,
    sha256_hex,
    verify_password,
)
from app.services.auth import _decode_token, _parse_user_id, normalize_email


def test_password_hash_round_trip() -> None:
    hashed = hash_password("Secret123")
    assert hashed != "Secret123"
    assert verify_password("Secret123", hashed) is True
    assert verify_password("secret123", hashed) is False
    assert verify_password("Secret123", None) is False
    assert verify_password("Secret123", "not-a-bcrypt-hash") is False


def test_otp_is_six_digits() -> None:
    for _ in range(50):
        otp = generate_otp()
        assert len(otp) == 6 and otp.isdigit()
        assert otp[0] != "0"


def test_url_token_hash_matches() -> None:
    token, token_hash = generate_url_token()
    assert len(token) == 64
    assert sha256_hex(token) == token_hash


def test_access_token_claims() -> None:
    payload = decode_access_token(create_access_token(42))
    assert payload["sub"] == "42"
    assert payload["exp"] > payload["iat"]


def test_expired_token_is_rejected() -> None:
    token = create_access_token(1, expires_minutes=-5)
    with pytest.raises(jwt.ExpiredSignatureError):
        decode_access_token(token)
    with pytest.raises(HTTPException) as excinfo:
        _decode_token(token)
    assert excinfo.value.status_code == 401
    assert excinfo.value.detail == "Token expired"


def test_tampered_token_is_invalid() -> None:
    with pytest.raises(HTTPException) as excinfo:
        _decode_token(create_access_token(1) + "x")
    assert excinfo.value.detail == "Invalid token"


def test_parse_user_id() -> None:
    assert _parse_user_id({"sub": "123"}) == 123
    assert _parse_user_id({"id": 7}) == 7
    with pytest.raises(HTTPException):
        _parse_user_id({"email": "u@example.com"})


def test_normalize_email() -> None:
    assert normalize_email("  User@Example.COM ") == "user@example.com"
    assert normalize_email(None) == ""
