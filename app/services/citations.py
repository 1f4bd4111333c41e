from __future__ import annotations

import re

from app.services.web_search import SearchResult


MAX_CITED_SOURCES = 3

_URL_RE = re.compile(r"https?://[^\s]+", re.IGNORECASE)


def has_links(text: str) -> bool:
    return _URL_RE.search(text or "") is not None


def source_lines(result: SearchResult, limit: int = MAX_CITED_SOURCES) -> list[str]:
    linked = [source for source in result.sources if source.url][:limit]
    return [f"{index}. {source.title or source.url} - {source.url}" for index, source in enumerate(linked, start=1)]


def ensure_citations(content: str, result: SearchResult | None) -> str:
    if result is None or not result.sources or has_links(content):
        return content
    lines = source_lines(result)
    if not lines:
        return content
    return f"{content}\n\nSources:\n" + "\n".join(lines)
