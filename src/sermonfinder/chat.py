"""Retrieval-grounded question answering over the corpus.

The LLM provider and the credential store are external collaborators and are
only described here as protocols. This module owns what happens around them:
picking the documents to ground an answer in, building the system prompt, and
mapping the ``[SOURCES: 1, 3]`` tag of the reply back to document ids.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Protocol, Sequence

from sermonfinder.config import MAX_CONTEXT_DOCUMENTS
from sermonfinder.index.search import MAX_QUERY_LENGTH, Searcher
from sermonfinder.models import Document

LOGGER = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 50_000
MAX_HISTORY_LENGTH = 100
CONTEXT_CONTENT_CHARS = 2500
SOURCE_SNIPPET_CHARS = 200

_SOURCES_TAG = re.compile(r"\[SOURCES:\s*([^\]]+)\]", re.IGNORECASE)
_SOURCES_STRIP = re.compile(r"\s*\[SOURCES:[^\]]*\]\s*", re.IGNORECASE)
_NO_SOURCES = {"none", "aucune"}

Role = Literal["user", "assistant"]


class ChatError(Exception):
    """Base class for chat failures; messages are safe to show to users."""

    message = "Something went wrong while answering. Please try again."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)


class CredentialsMissingError(ChatError):
    message = "No API key is configured."


class InvalidCredentialsError(ChatError):
    message = "The API key was rejected by the AI service."


class RateLimitedError(ChatError):
    message = "Too many requests to the AI service. Please wait a moment."


class ServiceError(ChatError):
    message = "The AI service is unavailable right now."


@dataclass(slots=True)
class ChatTurn:
    role: Role
    content: str


@dataclass(slots=True)
class Completion:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(slots=True)
class Source:
    id: int
    title: str
    snippet: str


@dataclass(slots=True)
class ChatAnswer:
    text: str
    tokens_used: int
    sources: List[Source] = field(default_factory=list)


class ChatClient(Protocol):
    """An LLM completion service.

    Implementations raise :class:`InvalidCredentialsError`,
    :class:`RateLimitedError` or :class:`ServiceError` and must apply their own
    request timeout.
    """

    def complete(self, system: str, messages: Sequence[ChatTurn]) -> Completion: ...


class CredentialStore(Protocol):
    def is_available(self) -> bool: ...

    def get(self) -> Optional[str]: ...

    def set(self, secret: str) -> None: ...

    def delete(self) -> None: ...

    def has(self) -> bool: ...


def _format_document(document: Document, number: int) -> str:
    content = document.content
    if len(content) > CONTEXT_CONTENT_CHARS:
        content = content[:CONTEXT_CONTENT_CHARS] + "..."
    lines = ["---", f'<sermon id="{number}">', f"<title>{document.title}</title>"]
    if document.date:
        lines.append(f"<date>{document.date}</date>")
    if document.bible_ref:
        lines.append(f"<reference>{document.bible_ref}</reference>")
    lines.extend(["<content>", content, "</content>", "</sermon>", "---"])
    return "\n".join(lines)


def build_context_prompt(documents: Sequence[Document], total_documents: Optional[int] = None) -> str:
    """System prompt grounding the assistant in ``documents`` (numbered from 1)."""
    parts = [
        "You are an assistant for preachers. You help them search, analyse and "
        "reuse their archive of sermons."
    ]
    if total_documents is not None:
        plural = "s" if total_documents != 1 else ""
        info = f"CORPUS: the user has {total_documents} sermon{plural} in their library."
        if documents:
            info += f" The {len(documents)} below are the most relevant to the question."
        parts.append(info)
    if documents:
        context = "\n".join(_format_document(doc, i) for i, doc in enumerate(documents, start=1))
        parts.append("CONTEXT - relevant sermons:\n\n" + context)
    parts.append(
        "INSTRUCTIONS:\n"
        "1. Ground your answer in the sermons above when they are relevant\n"
        "2. Quote the title of any sermon you draw on\n"
        "3. Say clearly when the information is not in the sermons\n"
        "4. Be concise but complete\n"
        "5. At the very end, list the sermons you used in the exact format "
        "[SOURCES: 1, 3] or write [SOURCES: none]"
    )
    return "\n\n".join(parts)


def parse_sources(text: str) -> List[int]:
    """Context numbers cited in the reply's ``[SOURCES: ...]`` tag."""
    match = _SOURCES_TAG.search(text)
    if not match or match.group(1).strip().lower() in _NO_SOURCES:
        return []
    numbers = []
    for item in match.group(1).split(","):
        item = item.strip()
        if item.isdigit():
            numbers.append(int(item))
    return numbers


def strip_sources(text: str) -> str:
    return _SOURCES_STRIP.sub(" ", text).strip()


def _validate(message: str, history: Sequence[ChatTurn]) -> None:
    if not message or not message.strip():
        raise ValueError("Empty message")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValueError(f"Message too long (max {MAX_MESSAGE_LENGTH} characters)")
    if len(history) > MAX_HISTORY_LENGTH:
        raise ValueError(f"History too long (max {MAX_HISTORY_LENGTH} messages)")


def answer(
    message: str,
    searcher: Searcher,
    client: ChatClient,
    *,
    history: Sequence[ChatTurn] = (),
    credentials: Optional[CredentialStore] = None,
    limit: int = MAX_CONTEXT_DOCUMENTS,
) -> ChatAnswer:
    """Answer ``message`` using the best hybrid-search hits as context."""
    _validate(message, history)
    if credentials is not None and not (credentials.is_available() and credentials.has()):
        raise CredentialsMissingError()

    # long questions still search; only their head is used as the query
    results = searcher.hybrid(message.strip()[:MAX_QUERY_LENGTH], limit=limit)
    LOGGER.info(
        "Chat context: %s",
        [(r.document.id, round(r.score, 3), r.match_type) for r in results],
    )
    documents = [result.document for result in results]
    system = build_context_prompt(documents, searcher.store.count_documents())
    turns = [*history, ChatTurn(role="user", content=message)]

    try:
        completion = client.complete(system, turns)
    except ChatError:
        raise
    except Exception as exc:
        LOGGER.error("Chat client failed: %s", exc)
        raise ChatError() from exc

    cited = set(parse_sources(completion.text))
    sources = [
        Source(
            id=doc.id,
            title=doc.title,
            snippet=doc.content[:SOURCE_SNIPPET_CHARS] + "...",
        )
        for number, doc in enumerate(documents, start=1)
        if number in cited
    ]
    return ChatAnswer(
        text=strip_sources(completion.text),
        tokens_used=completion.input_tokens + completion.output_tokens,
        sources=sources,
    )
