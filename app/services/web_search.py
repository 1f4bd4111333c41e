from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.core.config import settings
from app.core.errors import SearchProviderError, SearchUnavailableError

logger = logging.getLogger(__name__)

MAX_SOURCES = 5


@dataclass(slots=True)
class Source:
    title: str = ""
    url: str = ""
    snippet: str = ""


@dataclass(slots=True)
class SearchResult:
    provider: str
    answer: str = ""
    sources: list[Source] = field(default_factory=list)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _items(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class SearchProvider(ABC):
    name: str = ""

    async def _request_json(self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await client.request(method, url, timeout=settings.search_timeout_seconds, **kwargs)
        except httpx.HTTPError as exc:
            raise SearchProviderError(self.name, f"request failed: {exc!r}") from exc
        if response.is_error:
            raise SearchProviderError(self.name, f"API error {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise SearchProviderError(self.name, "invalid JSON response") from exc
        return payload if isinstance(payload, dict) else {}

    @abstractmethod
    async def attempt(self, client: httpx.AsyncClient, query: str) -> SearchResult:
        ...


class TavilySearch(SearchProvider):
    name = "tavily"

    def __init__(self, api_key: str, url: str | None = None):
        self.api_key = api_key
        self.url = url or settings.tavily_api_url

    async def attempt(self, client: httpx.AsyncClient, query: str) -> SearchResult:
        data = await self._request_json(
            client,
            "POST",
            self.url,
            json={
                "api_key": self.api_key,
                "query": query,
                "max_results": MAX_SOURCES,
                "include_answer": True,
                "search_depth": "basic",
            },
        )
        sources = [
            Source(
                title=_text(item.get("title")) or _text(item.get("url")) or "Untitled",
                url=_text(item.get("url")),
                snippet=_text(item.get("content")),
            )
            for item in _items(data.get("results"))[:MAX_SOURCES]
        ]
        return SearchResult(provider=self.name, answer=_text(data.get("answer")), sources=sources)


class SerperSearch(SearchProvider):
    name = "serper"

    def __init__(self, api_key: str, url: str | None = None):
        self.api_key = api_key
        self.url = url or settings.serper_api_url

    async def attempt(self, client: httpx.AsyncClient, query: str) -> SearchResult:
        data = await self._request_json(
            client,
            "POST",
            self.url,
            headers={"X-API-KEY": self.api_key},
            json={"q": query, "num": MAX_SOURCES},
        )
        sources = [
            Source(
                title=_text(item.get("title")) or _text(item.get("link")) or "Untitled",
                url=_text(item.get("link")),
                snippet=_text(item.get("snippet")),
            )
            for item in _items(data.get("organic"))[:MAX_SOURCES]
        ]
        return SearchResult(provider=self.name, sources=sources)


def _topic_source(topic: dict[str, Any]) -> Source | None:
    text = _text(topic.get("Text"))
    url = _text(topic.get("FirstURL"))
    if not text and not url:
        return None
    return Source(title=text.split("-")[0].strip() or "Related Topic", url=url, snippet=text)


class DuckDuckGoSearch(SearchProvider):
    name = "duckduckgo"

    def __init__(self, url: str | None = None):
        self.url = url or settings.duckduckgo_api_url

    async def attempt(self, client: httpx.AsyncClient, query: str) -> SearchResult:
        data = await self._request_json(
            client,
            "GET",
            self.url,
            params={"q": query, "format": "json", "no_html": 1, "skip_disambig": 1},
            headers={"Accept": "application/json"},
        )
        sources: list[Source] = []
        abstract_url = _text(data.get("AbstractURL"))
        abstract_text = _text(data.get("AbstractText"))
        if abstract_url or abstract_text:
            sources.append(
                Source(
                    title=_text(data.get("Heading")) or _text(data.get("AbstractSource")) or "DuckDuckGo Result",
                    url=abstract_url,
                    snippet=abstract_text,
                )
            )

        for topic in _items(data.get("RelatedTopics")):
            if len(sources) >= MAX_SOURCES:
                break
            source = _topic_source(topic)
            if source is not None:
                sources.append(source)
            # Category groups carry their entries one level down.
            for nested in _items(topic.get("Topics")):
                if len(sources) >= MAX_SOURCES:
                    break
                source = _topic_source(nested)
                if source is not None:
                    sources.append(source)

        return SearchResult(provider=self.name, sources=sources)


def configured_providers() -> list[SearchProvider]:
    providers: list[SearchProvider] = []
    if settings.tavily_api_key:
        providers.append(TavilySearch(settings.tavily_api_key))
    if settings.serper_api_key:
        providers.append(SerperSearch(settings.serper_api_key))
    providers.append(DuckDuckGoSearch())
    return providers


async def first_success(
    providers: Sequence[SearchProvider],
    client: httpx.AsyncClient,
    query: str,
) -> SearchResult:
    errors: list[SearchProviderError] = []
    for provider in providers:
        try:
            return await provider.attempt(client, query)
        except SearchProviderError as exc:
            logger.warning("Web search provider %s failed, trying next: %s", provider.name, exc)
            errors.append(exc)
    raise SearchUnavailableError(errors)


async def search_web(
    query: str,
    *,
    client: httpx.AsyncClient,
    providers: Sequence[SearchProvider] | None = None,
) -> SearchResult:
    if not (query or "").strip():
        raise ValueError("query must be a non-empty string")
    return await first_success(providers if providers is not None else configured_providers(), client, query)
