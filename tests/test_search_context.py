from app.services.citations import ensure_citations, has_links
from app.services.search_context import (
    SEARCH_CONTEXT_FOOTER,
    SEARCH_CONTEXT_HEADER,
    build_search_context_message,
    with_search_context,
)
from app.services.web_search import SearchResult, Source


def _result(**kwargs) -> SearchResult:
    kwargs.setdefault("provider", "tavily")
    return SearchResult(**kwargs)


def test_context_message_layout() -> None:
    result = _result(
        answer="Short answer",
        sources=[Source(title="One", url="https://one.test", snippet="first"), Source()],
    )
    message = build_search_context_message(result)
    blocks = message.split("\n\n")
    assert blocks[0] == SEARCH_CONTEXT_HEADER
    assert blocks[1] == "Summary: Short answer"
    assert blocks[2] == "[1] One\nURL: https://one.test\nSnippet: first"
    assert blocks[3] == "[2] Untitled\nURL: N/A\nSnippet: N/A"
    assert blocks[-1] == SEARCH_CONTEXT_FOOTER


def test_context_message_omits_empty_summary() -> None:
    message = build_search_context_message(_result(answer="   ", sources=[Source(title="t", url="u")]))
    assert "Summary:" not in message


def test_with_search_context_appends_without_mutating() -> None:
    messages = [{"role": "user", "content": "latest news"}]
    augmented = with_search_context(messages, _result(sources=[Source(title="t", url="https://t.test")]))
    assert len(messages) == 1
    assert augmented[0] == messages[0]
    assert augmented[-1]["role"] == "system"
    assert augmented[-1]["content"].startswith(SEARCH_CONTEXT_HEADER)


def test_citations_appended_when_reply_has_no_links() -> None:
    result = _result(
        sources=[
            Source(title="A", url="https://a.test"),
            Source(title="", url="https://b.test"),
            Source(title="No link"),
            Source(title="C", url="https://c.test"),
            Source(title="D", url="https://d.test"),
        ]
    )
    content = ensure_citations("Here is the answer.", result)
    assert content == (
        "Here is the answer.\n\nSources:\n"
        "1. A - https://a.test\n"
        "2. https://b.test - https://b.test\n"
        "3. C - https://c.test"
    )


def test_citations_left_alone_when_reply_links_or_no_search() -> None:
    result = _result(sources=[Source(title="A", url="https://a.test")])
    assert ensure_citations("See http://docs.test/page", result) == "See http://docs.test/page"
    assert ensure_citations("No search", None) == "No search"
    assert ensure_citations("Empty", _result()) == "Empty"
    assert ensure_citations("Unlinked", _result(sources=[Source(title="x")])) == "Unlinked"


def test_has_links() -> None:
    assert has_links("go to HTTPS://Example.com now") is True
    assert has_links("no links here") is False


def test_citation_count_matches_linked_sources() -> None:
    result = _result(sources=[Source(title="A", url="https://a.test"), Source(title="B", url="https://b.test")])
    content = ensure_citations("Plain reply.", result)
    assert len(content) > len("Plain reply.")
    assert content.splitlines()[-2:] == ["1. A - https://a.test", "2. B - https://b.test"]
