from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field, field_validator

from app.schemas.common import CamelModel


class ChatMessageIn(CamelModel):
    text: str
    sender: Literal["user", "ai"]
    timestamp: datetime | None = None

    @field_validator("text", mode="before")
    @classmethod
    def _text(cls, value: object) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("Message text is required")
        return text


class ChatMetadataIn(CamelModel):
    is_archived: bool | None = None
    tags: list[str] | None = None
    tokens_used: int | None = Field(default=None, ge=0)


class ChatSessionSaveIn(CamelModel):
    session_id: str = Field(min_length=1, max_length=128)
    name: str = Field(default="New Chat", max_length=100)
    messages: list[ChatMessageIn]
    metadata: ChatMetadataIn = Field(default_factory=ChatMetadataIn)

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: object) -> str:
        return str(value or "").strip() or "New Chat"


class ChatSessionUpdateIn(CamelModel):
    name: str | None = Field(default=None, max_length=100)
    messages: list[ChatMessageIn] | None = None
    metadata: ChatMetadataIn | None = None


class ChatMessageOut(CamelModel):
    id: int
    text: str
    sender: str
    timestamp: datetime


class ChatMetadataOut(CamelModel):
    last_message: str = ""
    message_count: int = 0
    is_archived: bool = False
    tags: list[str] = Field(default_factory=list)
    tokens_used: int = 0


class ChatSessionOut(CamelModel):
    id: int
    session_id: str
    name: str
    messages: list[ChatMessageOut] = Field(default_factory=list)
    metadata: ChatMetadataOut
    created_at: datetime
    updated_at: datetime


class PaginationOut(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class ChatSessionListData(CamelModel):
    sessions: list[ChatSessionOut]
    pagination: PaginationOut
