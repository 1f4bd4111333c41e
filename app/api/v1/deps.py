from __future__ import annotations

from collections.abc import AsyncIterator

import httpx

from app.core.config import settings


USER_AGENT = "LexaChat/1.0"


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(
        timeout=settings.completion_timeout_seconds,
        headers={"User-Agent": USER_AGENT},
    ) as client:
        yield client
