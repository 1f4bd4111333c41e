from app.models.chat import ChatSession, ChatSessionMessage
from app.models.user import SignupOtp, User

__all__ = [
    "ChatSession",
    "ChatSessionMessage",
    "SignupOtp",
    "User",
]
