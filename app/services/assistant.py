from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx

from app.core.errors import SearchUnavailableError
from app.schemas.ai import ChatCompletionData, ConversationMessage, SourceOut, WebSearchOut
from app.services.citations import ensure_citations
from app.services.completion import CompletionDispatcher
from app.services.intent import STATIC_MODEL, classify, select_model
from app.services.search_context import with_search_context
from app.services.web_search import SearchProvider, SearchResult, search_web

logger = logging.getLogger(__name__)


def _web_search_out(result: SearchResult | None) -> WebSearchOut:
    if result is None:
        return WebSearchOut()
    return WebSearchOut(
        used=True,
        provider=result.provider,
        sources=[SourceOut(title=s.title, url=s.url, snippet=s.snippet) for s in result.sources],
    )


async def answer_chat(
    messages: Sequence[ConversationMessage],
    *,
    web_search_enabled: bool,
    client: httpx.AsyncClient,
    search_providers: Sequence[SearchProvider] | None = None,
) -> ChatCompletionData:
    dispatcher = CompletionDispatcher(client)

    intent = classify(messages)
    if intent.faq_answer:
        return ChatCompletionData(content=intent.faq_answer, model=STATIC_MODEL, web_search=WebSearchOut())

    provider_messages = [message.to_provider() for message in messages]
    model_messages = provider_messages
    search_result: SearchResult | None = None

    if web_search_enabled and intent.wants_search and intent.text:
        try:
            search_result = await search_web(intent.text, client=client, providers=search_providers)
        except SearchUnavailableError as exc:
            logger.warning("Continuing without web search: %s", exc)
        else:
            if search_result.sources:
                model_messages = with_search_context(provider_messages, search_result)

    model = select_model(intent.text)
    logger.info(
        "Chat completion model=%s coding=%s search=%s",
        model,
        intent.is_coding,
        search_result.provider if search_result else None,
    )
    result = await dispatcher.dispatch(model, model_messages)

    return ChatCompletionData(
        content=ensure_citations(result.content or "", search_result),
        model=result.model,
        web_search=_web_search_out(search_result),
    )
