from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(CamelModel, Generic[T]):
    success: bool = True
    data: T


class MessageResponse(CamelModel):
    success: bool = True
    message: str
    data: dict[str, Any] | None = None
