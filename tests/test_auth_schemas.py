import pytest
from pydantic import ValidationError

from app.schemas.auth import ChangePasswordIn, LoginIn, SignupIn, SignupOtpVerifyIn
from app.schemas.chat import ChatSessionSaveIn


def _message(excinfo) -> str:
    return str(excinfo.value.errors()[0]["ctx"]["error"])


def test_signup_normalizes_email_and_name() -> None:
    payload = SignupIn(name="  Ada  ", email=" Ada@Example.com ", password="Secret1A")
    assert payload.email == "ada@example.com"
    assert payload.name == "Ada"


@pytest.mark.parametrize(
    "password, message",
    [
        ("Ab1", "Password must be at least 6 characters"),
        ("Abcdefg", "Password must contain at least one number"),
        ("abcdef1", "Password must contain at least one uppercase letter"),
    ],
)
def test_signup_password_rules(password, message) -> None:
    with pytest.raises(ValidationError) as excinfo:
        SignupIn(name="Ada", email="ada@example.com", password=password)
    assert _message(excinfo) == message


def test_invalid_email() -> None:
    with pytest.raises(ValidationError) as excinfo:
        LoginIn(email="not-an-email", password="x")
    assert _message(excinfo) == "Please provide a valid email"


def test_otp_must_be_six_digits() -> None:
    assert SignupOtpVerifyIn(email="a@b.co", otp=" 123456 ").otp == "123456"
    with pytest.raises(ValidationError):
        SignupOtpVerifyIn(email="a@b.co", otp="12345a")


def test_change_password_uses_camel_case() -> None:
    payload = ChangePasswordIn.model_validate({"currentPassword": "old", "newPassword": "NewPass1"})
    assert payload.new_password == "NewPass1"
    with pytest.raises(ValidationError) as excinfo:
        ChangePasswordIn.model_validate({"currentPassword": "old", "newPassword": "short"})
    assert _message(excinfo) == "New password must be at least 6 characters"


def test_chat_save_defaults() -> None:
    payload = ChatSessionSaveIn.model_validate(
        {"sessionId": "abc", "name": "  ", "messages": [{"text": " hi ", "sender": "user"}]}
    )
    assert payload.name == "New Chat"
    assert payload.messages[0].text == "hi"
    assert payload.metadata.tags is None
    with pytest.raises(ValidationError):
        ChatSessionSaveIn.model_validate({"sessionId": "abc", "messages": [{"text": "x", "sender": "bot"}]})
