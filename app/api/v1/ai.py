from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends

from app.api.v1.deps import get_http_client
from app.middleware.rate_limit import enforce_ai_rate_limit
from app.schemas.ai import ChatCompletionIn, ChatCompletionOut
from app.services.assistant import answer_chat

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/chat", response_model=ChatCompletionOut, dependencies=[Depends(enforce_ai_rate_limit)])
async def chat_completion(
    payload: ChatCompletionIn,
    client: httpx.AsyncClient = Depends(get_http_client),
) -> ChatCompletionOut:
    data = await answer_chat(
        payload.messages,
        web_search_enabled=payload.web_search_enabled,
        client=client,
    )
    return ChatCompletionOut(data=data)
