from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from app.core.config import settings


STATIC_MODEL = "static"

_SEARCH_INTENT_RE = re.compile(
    r"\b(search|find|look\s*up|google|latest|today|news|current|real[-\s]?time|updated?)\b",
    re.IGNORECASE,
)
_CODE_INTENT_RE = re.compile(
    r"(```|`[^`]+`|\b(code|coding|programming|debug|bug|error|stack trace|exception|refactor"
    r"|optimiz(e|ation)|algorithm|complexity|regex|sql|query|api|endpoint|function|class"
    r"|typescript|javascript|python|java|react|node|express|mongodb)\b|\bc\+\+)",
    re.IGNORECASE,
)

_FAQ_RESPONSES: list[tuple[re.Pattern[str], str]] = [
    (
        re.compile(
            r"\b(who\s+created\s+you|who\s+made\s+you|who\s+built\s+you|your\s+creator|your\s+founder)\b",
            re.IGNORECASE,
        ),
        "I was created by Sultan Salauddin Ansari, a Computer Science Engineering student at Presidency "
        "University, Bengaluru, and the builder behind the FuncLexa AI ecosystem. LexaChat is part of his "
        "vision to develop fast, reliable, and developer-focused AI tools for real-world productivity.",
    ),
    (
        re.compile(r"\b(about\s+funclexa|what\s+is\s+funclexa|tell\s+me\s+about\s+funclexa)\b", re.IGNORECASE),
        "FuncLexa is an AI-driven SaaS ecosystem focused on building intelligent, practical tools for "
        "developers, students, and modern digital workflows. The platform combines full-stack engineering, "
        "voice AI, and applied artificial intelligence to deliver real-world productivity solutions. "
        "LexaChat serves as one of the flagship products within the FuncLexa ecosystem.",
    ),
    (
        re.compile(
            r"\b(about\s+creator|about\s+the\s+creator|who\s+is\s+the\s+creator|about\s+sultan)\b",
            re.IGNORECASE,
        ),
        "Sultan Salauddin Ansari is a B.Tech Computer Science Engineering student at Presidency University, "
        "Bengaluru, and an aspiring AI Engineer and MERN stack developer. He specializes in building "
        "production-ready full-stack applications and applied AI systems. His key work includes the FuncLexa "
        "ecosystem, the LexaChat real-time AI platform, and an advanced AI voice assistant, all focused on "
        "solving real-world problems through modern web technologies.",
    ),
    (
        re.compile(r"\b(about\s+lexachat|what\s+is\s+lexachat|tell\s+me\s+about\s+lexachat)\b", re.IGNORECASE),
        "LexaChat is a developer-focused AI chat assistant built under the FuncLexa ecosystem. It is designed "
        "to provide fast, accurate, and context-aware assistance for coding, debugging, learning, and "
        "real-world productivity. Built with modern full-stack technologies and advanced AI integration, "
        "LexaChat aims to deliver a smooth, reliable, and intelligent chat experience for developers and "
        "tech enthusiasts.",
    ),
]


@dataclass(slots=True, frozen=True)
class Intent:
    text: str
    wants_search: bool
    is_coding: bool
    faq_answer: str | None


def _field(message: Any, name: str) -> Any:
    if isinstance(message, Mapping):
        return message.get(name)
    return getattr(message, name, None)


def text_from_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, Iterable) and not isinstance(content, (bytes, Mapping)):
        parts: list[str] = []
        for part in content:
            if not part:
                parts.append("")
            elif isinstance(part, str):
                parts.append(part)
            elif _field(part, "type") == "text":
                parts.append(str(_field(part, "text") or ""))
            else:
                parts.append("")
        return " ".join(parts).strip()
    return ""


def last_user_text(messages: Sequence[Any] | None) -> str:
    for message in reversed(messages or []):
        if _field(message, "role") == "user":
            return text_from_content(_field(message, "content"))
    return ""


def needs_realtime_search(text: str) -> bool:
    if not text:
        return False
    return _SEARCH_INTENT_RE.search(text) is not None


def is_coding_request(text: str) -> bool:
    if not text:
        return False
    return _CODE_INTENT_RE.search(text) is not None


def match_faq(text: str) -> str | None:
    if not text:
        return None
    for pattern, answer in _FAQ_RESPONSES:
        if pattern.search(text):
            return answer
    return None


def select_model(text: str) -> str:
    return settings.coding_model if is_coding_request(text) else settings.general_model


def classify(messages: Sequence[Any] | None) -> Intent:
    text = last_user_text(messages)
    return Intent(
        text=text,
        wants_search=needs_realtime_search(text),
        is_coding=is_coding_request(text),
        faq_answer=match_faq(text),
    )
