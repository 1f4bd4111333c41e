from __future__ import annotations

from typing import Any, Literal

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.schemas.common import CamelModel


class ConversationMessage(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow")

    role: Literal["user", "assistant", "system"]
    content: str | list[str | dict[str, Any] | None]

    def to_provider(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ChatCompletionIn(CamelModel):
    messages: list[ConversationMessage] = Field(default=None, validate_default=True)
    web_search_enabled: bool = True

    @field_validator("messages", mode="before")
    @classmethod
    def _require_messages(cls, value: Any) -> Any:
        if not isinstance(value, list) or not value:
            raise ValueError("messages must be a non-empty array")
        return value


class SourceOut(CamelModel):
    title: str = ""
    url: str = ""
    snippet: str = ""


class WebSearchOut(CamelModel):
    used: bool = False
    provider: str | None = None
    sources: list[SourceOut] = Field(default_factory=list)


class ChatCompletionData(CamelModel):
    content: str
    model: str
    web_search: WebSearchOut = Field(default_factory=WebSearchOut)


class ChatCompletionOut(CamelModel):
    success: bool = True
    data: ChatCompletionData
