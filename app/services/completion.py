from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from app.core.config import settings
from app.core.errors import ServerMisconfigurationError, UpstreamCompletionError, UpstreamFormatError

logger = logging.getLogger(__name__)

INVALID_FORMAT_MESSAGE = "Invalid Groq API response format"


class DispatchState(str, Enum):
    NOT_STARTED = "not_started"
    PRIMARY_ATTEMPTED = "primary_attempted"
    FALLBACK_ATTEMPTED = "fallback_attempted"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(slots=True)
class CompletionResult:
    ok: bool
    model: str
    content: str | None = None
    error: str | None = None


def is_fallback_eligible(model: str) -> bool:
    """Models from vendors known to fail intermittently get one retry on the fallback model."""
    return re.search(settings.fallback_eligible_pattern, model or "", re.IGNORECASE) is not None


def extract_content(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, str) or not content:
        return None
    return content


class CompletionDispatcher:
    """Single use: the primary model, then at most one fallback attempt."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str | None = None,
        api_url: str | None = None,
        fallback_model: str | None = None,
    ):
        self.client = client
        self.api_key = api_key if api_key is not None else settings.groq_api_key
        self.api_url = api_url or settings.groq_api_url
        self.fallback_model = fallback_model or settings.fallback_model
        self.state = DispatchState.NOT_STARTED
        self.attempts: list[CompletionResult] = []
        if not self.api_key:
            raise ServerMisconfigurationError("Missing GROQ_API_KEY on server")

    @staticmethod
    def build_payload(model: str, messages: list[dict[str, Any]]) -> dict[str, Any]:
        return {
            "model": model,
            "messages": messages,
            "temperature": settings.completion_temperature,
            "max_tokens": settings.completion_max_tokens,
            "stream": False,
        }

    async def _request_model(self, model: str, messages: list[dict[str, Any]]) -> CompletionResult:
        try:
            response = await self.client.post(
                self.api_url,
                json=self.build_payload(model, messages),
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=settings.completion_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            result = CompletionResult(ok=False, model=model, error=f"Groq API request failed: {exc!r}")
        else:
            if response.is_error:
                result = CompletionResult(
                    ok=False,
                    model=model,
                    error=f"Groq API error {response.status_code}: {response.text}",
                )
            else:
                try:
                    data = response.json()
                except ValueError:
                    data = None
                result = CompletionResult(ok=True, model=model, content=extract_content(data))
        self.attempts.append(result)
        return result

    async def dispatch(self, model: str, messages: list[dict[str, Any]]) -> CompletionResult:
        if self.state is not DispatchState.NOT_STARTED:
            raise RuntimeError("CompletionDispatcher instances are single use")

        result = await self._request_model(model, messages)
        self.state = DispatchState.PRIMARY_ATTEMPTED

        if not result.ok and is_fallback_eligible(model):
            logger.warning("Completion with %s failed, retrying on %s: %s", model, self.fallback_model, result.error)
            result = await self._request_model(self.fallback_model, messages)
            self.state = DispatchState.FALLBACK_ATTEMPTED

        if not result.ok:
            self.state = DispatchState.FAILED
            raise UpstreamCompletionError(result.error or "Groq API request failed")

        if not result.content:
            self.state = DispatchState.FAILED
            raise UpstreamFormatError(INVALID_FORMAT_MESSAGE)

        self.state = DispatchState.SUCCESS
        return result
