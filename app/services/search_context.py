from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from app.services.web_search import SearchResult


SEARCH_CONTEXT_HEADER = "Live web search context (use this if relevant and cite links):"
SEARCH_CONTEXT_FOOTER = "If sources are weak or missing, explicitly say that and ask the user to refine the query."


def build_search_context_message(result: SearchResult) -> str:
    lines = [SEARCH_CONTEXT_HEADER]
    if (result.answer or "").strip():
        lines.append(f"Summary: {result.answer.strip()}")
    for index, source in enumerate(result.sources, start=1):
        lines.append(
            f"[{index}] {source.title or 'Untitled'}\n"
            f"URL: {source.url or 'N/A'}\n"
            f"Snippet: {source.snippet or 'N/A'}"
        )
    lines.append(SEARCH_CONTEXT_FOOTER)
    return "\n\n".join(lines)


def with_search_context(messages: Sequence[dict[str, Any]], result: SearchResult) -> list[dict[str, Any]]:
    return [*messages, {"role": "system", "content": build_search_context_message(result)}]
