"""Retrieval-augmented question answering over community posts."""

from __future__ import annotations

import json
import math
import re
import urllib.error
import urllib.request
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

DEFAULT_TOP_K = 4
DEFAULT_MAX_CONTEXT_CHARS = 3600
DEFAULT_TEMPERATURE = 0.2
DEFAULT_TIMEOUT_SECONDS = 45

QUERY_HISTORY_ITEMS = 6
QUERY_ITEM_MAX_CHARS = 260
PROMPT_HISTORY_ITEMS = 8

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_DECIMAL_RE = re.compile(r"[+-]?[0-9]+")


class RAGChatError(Exception):
    """Raised when the assistant is misconfigured or cannot produce an answer."""

    def __init__(self, message: str, hits: list[RAGHit] | None = None) -> None:
        super().__init__(message)
        self.hits: list[RAGHit] = hits or []


@dataclass(frozen=True)
class ChatMessage:
    """One chat turn: a role (system, user or assistant) and its text."""

    role: str
    content: str


@dataclass
class Document:
    """A retrieved snippet with its metadata and relevance score."""

    content: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    score: float = 0.0


@dataclass(frozen=True)
class RAGHit:
    """A retrieved post chunk as reported to clients."""

    post_id: int = 0
    score: float = 0.0
    title: str = ""
    content: str = ""
    chunk_index: int = 0
    chunk_text: str = ""
    community_id: int = 0
    author_id: int = 0


@dataclass
class RAGChatConfig:
    """Settings of the chat model and the retrieval context."""

    enabled: bool = False
    base_url: str = ""
    api_key: str = ""
    model: str = ""
    timeout_seconds: int = 0
    temperature: float = 0.0
    top_k: int = 0
    max_context_chars: int = 0


class Retriever(Protocol):
    def __call__(self, query: str, top_k: int) -> Sequence[Document | None]: ...


ChatModel = Callable[[list[ChatMessage]], Iterable[str]]


class _OpenAICompatibleModel:
    """Streams completions from an OpenAI-compatible chat endpoint."""

    def __init__(self, base_url: str, api_key: str, model: str, temperature: float, timeout: float) -> None:
        self._url = normalize_base_url(base_url) + "/chat/completions"
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._timeout = timeout

    def __call__(self, messages: list[ChatMessage]) -> Iterable[str]:
        payload = {
            "model": self._model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": self._temperature,
            "stream": True,
        }
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        request = urllib.request.Request(
            self._url,
            data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            headers=headers,
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                for raw in response:
                    line = raw.decode("utf-8", errors="replace").strip()
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    event = json.loads(data)
                    for choice in event.get("choices") or []:
                        content = (choice.get("delta") or {}).get("content")
                        if content:
                            yield content
        except (OSError, urllib.error.URLError, ValueError) as exc:
            raise RAGChatError(f"rag chat request failed: {exc}") from exc


class RAGChat:
    """Answers questions from retrieved post snippets with a streaming chat model."""

    def __init__(
        self,
        config: RAGChatConfig | None,
        retriever: Retriever | None,
        model: ChatModel | None = None,
    ) -> None:
        self._config = config
        self._retriever: Retriever | None = None
        self._model: ChatModel | None = None
        if config is None or not config.enabled:
            return
        if not config.base_url or not config.model:
            raise RAGChatError("rag_chat base_url/model is empty")
        if retriever is None:
            raise RAGChatError("rag_chat retriever is nil")

        timeout = config.timeout_seconds if config.timeout_seconds > 0 else DEFAULT_TIMEOUT_SECONDS
        self._retriever = retriever
        self._model = model or _OpenAICompatibleModel(
            config.base_url, config.api_key, config.model, self.temperature(), float(timeout)
        )

    @property
    def model_name(self) -> str:
        """The configured model name, or '' without a configuration."""
        return self._config.model if self._config is not None else ""

    def enabled(self) -> bool:
        """Tell whether the assistant is configured and ready."""
        return (
            self._config is not None
            and self._config.enabled
            and self._model is not None
            and self._retriever is not None
        )

    def top_k(self) -> int:
        """Number of snippets to retrieve, 4 when unset."""
        if self._config is None or self._config.top_k <= 0:
            return DEFAULT_TOP_K
        return self._config.top_k

    def max_context_chars(self) -> int:
        """Character budget for snippets in the system prompt, 3600 when unset."""
        if self._config is None or self._config.max_context_chars <= 0:
            return DEFAULT_MAX_CONTEXT_CHARS
        return self._config.max_context_chars

    def temperature(self) -> float:
        """Sampling temperature clamped to [0, 2]; 0.2 without a configuration."""
        if self._config is None:
            return DEFAULT_TEMPERATURE
        return min(max(float(self._config.temperature), 0.0), 2.0)

    def build_system_prompt(self, docs: Sequence[Document | None]) -> str:
        """Render the instructions followed by the retrieved snippets."""
        parts = [
            "You are a concise Chinese community knowledge assistant.\n",
            "Answer only from the retrieved GameBase post snippets below. ",
            "If the snippets are insufficient, say that the knowledge base does not contain enough information. ",
            "Do not invent facts, expose internal IDs, database fields, or backend implementation details.\n\n",
            "Retrieved snippets:\n",
        ]
        if not docs:
            parts.append("No relevant snippets were retrieved.\n")
            return "".join(parts)

        remaining = self.max_context_chars()
        for number, doc in enumerate(docs, start=1):
            if doc is None or remaining <= 0:
                continue
            meta = doc.metadata or {}
            title = string_from_meta(meta.get("title"))
            text = (
                doc.content.strip()
                or string_from_meta(meta.get("chunk_text"))
                or string_from_meta(meta.get("content"))
            )
            if not text:
                continue
            item = truncate_runes(f"[{number}] Title: {title}\nSnippet: {text}\n", remaining)
            parts.append(item)
            remaining -= len(item)
        return "".join(parts)

    def build_prompt_messages(
        self,
        question: str,
        history: Sequence[ChatMessage] | None,
        docs: Sequence[Document | None],
    ) -> list[ChatMessage]:
        """Build the system prompt, recent user/assistant turns and the question."""
        messages = [ChatMessage("system", self.build_system_prompt(docs))]
        for item in list(history or [])[-PROMPT_HISTORY_ITEMS:]:
            role = item.role.strip().lower()
            content = item.content.strip()
            if content and role in ("user", "assistant"):
                messages.append(ChatMessage(role, content))
        messages.append(ChatMessage("user", question.strip()))
        return messages

    def stream_answer(
        self,
        question: str,
        history: Sequence[ChatMessage] | None = None,
        top_k: int = 0,
        on_chunk: Callable[[str], None] | None = None,
    ) -> tuple[str, list[RAGHit]]:
        """Retrieve snippets, stream the model's answer and return it with the hits."""
        if not self.enabled():
            raise RAGChatError("rag chat is disabled")
        if not question.strip():
            raise RAGChatError("question is empty")
        if top_k <= 0:
            top_k = self.top_k()
        assert self._retriever is not None and self._model is not None

        question = question.strip()
        query = build_retriever_query(question, history)
        docs = list(self._retriever(query, top_k))
        hits = docs_to_hits(docs)
        messages = self.build_prompt_messages(question, history, docs)

        pieces: list[str] = []
        for chunk in self._model(messages):
            if not chunk:
                continue
            pieces.append(chunk)
            if on_chunk is not None:
                on_chunk(chunk)

        answer = "".join(pieces).strip()
        if not answer:
            raise RAGChatError("rag chat response is empty", hits)
        return answer, hits


def build_retriever_query(question: str, history: Sequence[ChatMessage] | None) -> str:
    """Join recent history (each cut to 260 characters) and the question into a query."""
    parts = [
        truncate_runes(content, QUERY_ITEM_MAX_CHARS)
        for content in (m.content.strip() for m in list(history or [])[-QUERY_HISTORY_ITEMS:])
        if content
    ]
    parts.append(question.strip())
    return "\n".join(parts).strip()


def docs_to_hits(docs: Iterable[Document | None]) -> list[RAGHit]:
    """Convert retrieved documents into hits, skipping missing ones."""
    hits = []
    for doc in docs:
        if doc is None:
            continue
        meta: Mapping[str, Any] = doc.metadata or {}
        hits.append(
            RAGHit(
                post_id=int_from_meta(meta.get("post_id")),
                score=float(doc.score),
                title=string_from_meta(meta.get("title")),
                content=string_from_meta(meta.get("content")),
                chunk_index=int_from_meta(meta.get("chunk_index")),
                chunk_text=string_from_meta(meta.get("chunk_text")),
                community_id=int_from_meta(meta.get("community_id")),
                author_id=int_from_meta(meta.get("author_id")),
            )
        )
    return hits


def string_from_meta(value: Any) -> str:
    """Return value when it is a string, else ''."""
    return str(value) if isinstance(value, str) else ""


def int_from_meta(value: Any) -> int:
    """Read an int64 from a metadata value: ints, floats or decimal strings; else 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return ((value - _INT64_MIN) % 2**64) + _INT64_MIN
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        if not _DECIMAL_RE.fullmatch(value):
            return 0
        return min(max(int(value), _INT64_MIN), _INT64_MAX)
    return 0


def normalize_base_url(url: str) -> str:
    """Trim whitespace and trailing slashes from a base URL."""
    return url.strip().rstrip("/")


def truncate_runes(value: str, limit: int) -> str:
    """Cut value to at most limit characters; '' for a non-positive limit."""
    if limit <= 0:
        return ""
    return value if len(value) <= limit else value[:limit]