"""Chat answers: freeform, or grounded in retrieved chunks with citations.

Grounded ("lookup") pipeline:
  1. Embed the query.
  2. Query the public namespace and the caller's private namespace.
  3. Merge by best score, keep the top K.
  4. Fetch chunk content; drop matches whose chunk no longer exists.
  5. Ask the model for ``{answer, citations}`` against a JSON schema.
  6. Parse defensively; drop citations that do not match an offered chunk.
  7. Record the exchange.

Empty retrieval and unparseable model output return fixed, clearly
non-authoritative answers instead of errors.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from marble.config import MarbleConfig
from marble.db.models import ChatMessage
from marble.db.repository import Repository
from marble.errors import InvalidInput
from marble.rag import llm_client
from marble.rag.retriever import retrieve
from marble.rag.vector_store import VectorMatch, VectorStore

logger = logging.getLogger(__name__)

NOTHING_FOUND_ANSWER = "I couldn't find anything relevant in your Marble files."
PARSE_FAILURE_ANSWER = "I had trouble parsing the model response."

_LOOKUP_RE = re.compile(r"^/lookup\s*(.*)$", re.IGNORECASE | re.DOTALL)

ANSWER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "answer": {"type": "string"},
        "citations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "folder": {"type": "string"},
                    "file": {"type": "string"},
                    "lines": {
                        "type": "array",
                        "items": {"type": "integer"},
                        "minItems": 2,
                        "maxItems": 2,
                    },
                },
                "required": ["folder", "file", "lines"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["answer", "citations"],
    "additionalProperties": False,
}

RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {"name": "marble_answer", "schema": ANSWER_SCHEMA, "strict": True},
}

_GROUNDED_SYSTEM = (
    "You are Marble, an assistant that answers questions about uploaded .txt files. "
    "Use only the provided context. Do not fabricate information. When citing, ensure "
    "the citations array includes the exact folder, file, and inclusive line range used."
)

_FREEFORM_SYSTEM = (
    "You are Marble, a friendly assistant. Answer conversationally. You have no lookup "
    "context, so respond from general knowledge and set the citations array to empty."
)


# ------------------------------------------------------------------
# Result types
# ------------------------------------------------------------------


@dataclass(frozen=True)
class Citation:
    folder: str
    file: str
    lines: tuple[int, int]

    def to_dict(self) -> dict[str, Any]:
        return {"folder": self.folder, "file": self.file, "lines": list(self.lines)}


@dataclass
class ChatResult:
    answer: str
    citations: list[Citation] = field(default_factory=list)


@dataclass
class Context:
    """A chunk offered to the model, in ranking order."""

    order: int
    chunk_id: str
    folder_name: str
    file_name: str
    start_line: int
    end_line: int
    content: str
    score: float = 0.0


@dataclass
class ChatResponse:
    """What a chat call returns: the answer, model citations, offered sources."""

    id: str
    answer: str
    citations: list[Citation] = field(default_factory=list)
    sources: list[Context] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "answer": self.answer,
            "citations": [c.to_dict() for c in self.citations],
            "sources": [asdict(s) for s in self.sources],
        }


# ------------------------------------------------------------------
# Model output parsing
# ------------------------------------------------------------------


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_citation(item: Any) -> Citation | None:
    if not isinstance(item, Mapping):
        return None
    folder, file, lines = item.get("folder"), item.get("file"), item.get("lines")
    if not isinstance(folder, str) or not isinstance(file, str):
        return None
    if not isinstance(lines, (list, tuple)) or len(lines) != 2 or not all(_is_int(n) for n in lines):
        return None
    start, end = lines
    if start < 1 or end < start:
        return None
    return Citation(folder=folder, file=file, lines=(start, end))


def normalize_chat_result(candidate: Any) -> ChatResult | None:
    """Build a ChatResult from a decoded object; None if it has neither field."""
    if not isinstance(candidate, Mapping):
        return None
    answer = candidate.get("answer")
    raw_citations = candidate.get("citations")
    if not isinstance(answer, str) and not isinstance(raw_citations, list):
        return None
    if not isinstance(raw_citations, list):
        raw_citations = []
    citations = [c for c in map(_parse_citation, raw_citations) if c is not None]
    return ChatResult(answer=answer if isinstance(answer, str) else "", citations=citations)


def _message_content(message: Any) -> Any:
    if isinstance(message, Mapping):
        return message.get("content")
    return getattr(message, "content", None)


def _message_text(message: Any) -> str | None:
    """Text content of *message*; list-of-blocks content is concatenated."""
    content = _message_content(message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            text = block.get("text") if isinstance(block, Mapping) else getattr(block, "text", None)
            if isinstance(text, str):
                parts.append(text)
        return "".join(parts) if parts else None
    return None


def _from_structured(message: Any) -> ChatResult | None:
    """Provider already decoded the schema: dict content or ``parsed``."""
    content = _message_content(message)
    if isinstance(content, Mapping):
        return normalize_chat_result(content)
    parsed = message.get("parsed") if isinstance(message, Mapping) else getattr(message, "parsed", None)
    return normalize_chat_result(parsed)


def _from_json_text(message: Any) -> ChatResult | None:
    text = _message_text(message)
    if not text:
        return None
    try:
        return normalize_chat_result(json.loads(text))
    except (ValueError, TypeError):
        return None


def _from_embedded_json(message: Any) -> ChatResult | None:
    """JSON object wrapped in prose or a code fence."""
    text = _message_text(message)
    if not text:
        return None
    try:
        start = text.index("{")
        end = text.rindex("}") + 1
        return normalize_chat_result(json.loads(text[start:end]))
    except (ValueError, TypeError):
        return None


def _from_prose(message: Any) -> ChatResult | None:
    text = _message_text(message)
    if text and text.strip():
        return ChatResult(answer=text.strip(), citations=[])
    return None


# Tried in order; the first strategy that returns a value wins.
ANSWER_STRATEGIES: list[tuple[str, Callable[[Any], ChatResult | None]]] = [
    ("structured", _from_structured),
    ("json_text", _from_json_text),
    ("embedded_json", _from_embedded_json),
    ("prose", _from_prose),
]


def parse_chat_result(message: Any) -> ChatResult:
    """Extract a ChatResult from a model message; never raises.

    Falls back to PARSE_FAILURE_ANSWER with no citations.
    """
    for name, strategy in ANSWER_STRATEGIES:
        result = strategy(message)
        if result is not None:
            logger.debug("Model output matched strategy %r", name)
            return result
    logger.error("Model response unparsed: %r", message)
    return ChatResult(answer=PARSE_FAILURE_ANSWER, citations=[])


def validate_citations(citations: list[Citation], contexts: list[Context]) -> list[Citation]:
    """Keep citations whose folder, file, and line range match an offered context."""
    offered = {(c.folder_name, c.file_name, (c.start_line, c.end_line)) for c in contexts}
    valid = [c for c in citations if (c.folder, c.file, c.lines) in offered]
    if len(valid) != len(citations):
        logger.warning("Dropped %d citation(s) not matching any source", len(citations) - len(valid))
    return valid


# ------------------------------------------------------------------
# Prompt
# ------------------------------------------------------------------


def build_context_block(contexts: list[Context]) -> str:
    """One labeled block per context: folder / file / inclusive lines, then content."""
    return "\n\n".join(
        f"Source {i} [{c.folder_name} / {c.file_name} : lines {c.start_line}-{c.end_line}]\n"
        f"{c.content}"
        for i, c in enumerate(contexts, start=1)
    )


def build_grounded_messages(question: str, contexts: list[Context]) -> list[dict]:
    return [
        {"role": "system", "content": _GROUNDED_SYSTEM},
        {"role": "system", "content": f"Context:\n{build_context_block(contexts)}"},
        {"role": "user", "content": question},
    ]


def build_freeform_messages(question: str) -> list[dict]:
    return [
        {"role": "system", "content": _FREEFORM_SYSTEM},
        {"role": "user", "content": question},
    ]


def parse_question(question: str, lookup: bool | None = None) -> tuple[bool, str]:
    """Return ``(is_lookup, query)`` for a raw question.

    A leading ``/lookup`` (any case) selects grounded mode and is stripped.
    An explicit *lookup* flag overrides prefix detection.

    Raises:
        InvalidInput: Empty question, or grounded mode with an empty query.
    """
    raw = question.strip()
    if not raw:
        raise InvalidInput("Question cannot be empty")

    match = _LOOKUP_RE.match(raw)
    is_lookup = bool(match) if lookup is None else lookup
    query = match.group(1).strip() if match else raw

    if is_lookup and not query:
        raise InvalidInput("Lookup query cannot be empty")
    return is_lookup, query


# ------------------------------------------------------------------
# Service
# ------------------------------------------------------------------


class ChatService:
    """Answer questions for a user, freeform or grounded in their readable files.

    Args:
        repo: Relational store (chunk content, chat history).
        store: Vector store adapter.
        config: Loaded configuration (models, timeouts, top_k).
    """

    def __init__(self, repo: Repository, store: VectorStore, config: MarbleConfig) -> None:
        self._repo = repo
        self._store = store
        self._config = config

    def ask(self, question: str, user_id: str, lookup: bool | None = None) -> ChatResponse:
        is_lookup, query = parse_question(question, lookup)
        if not is_lookup:
            return self._freeform(question.strip(), user_id)
        return self._grounded(question.strip(), query, user_id)

    # ------------------------------------------------------------------

    def _complete(self, messages: list[dict]) -> ChatResult:
        gen = self._config.generation
        message = llm_client.complete(
            gen.model,
            messages,
            response_format=RESPONSE_FORMAT,
            max_tokens=gen.max_tokens,
            timeout=gen.timeout,
        )
        return parse_chat_result(message)

    def _freeform(self, question: str, user_id: str) -> ChatResponse:
        result = self._complete(build_freeform_messages(question))
        response = ChatResponse(id=str(uuid.uuid4()), answer=result.answer)
        self._record(response, user_id, question)
        return response

    def _grounded(self, question: str, query: str, user_id: str) -> ChatResponse:
        emb = self._config.embedding
        top_k = self._config.retrieval.top_k
        vector = llm_client.embed_query(emb.model, query, timeout=emb.timeout)

        matches = retrieve(self._store, user_id, vector, top_k)
        if not matches:
            return _nothing_found()

        contexts = self._resolve_contexts(matches)
        if not contexts:
            return _nothing_found()
        logger.info("Lookup %r: %d contexts, first %s", query, len(contexts), contexts[0].chunk_id)

        result = self._complete(build_grounded_messages(query, contexts))
        response = ChatResponse(
            id=str(uuid.uuid4()),
            answer=result.answer,
            citations=validate_citations(result.citations, contexts),
            sources=contexts,
        )
        self._record(response, user_id, question)
        return response

    def _resolve_contexts(self, matches: list[VectorMatch]) -> list[Context]:
        """Join matches to chunk rows in ranking order; unresolved ids are dropped."""
        records = self._repo.get_chunks_by_ids([m.chunk_id for m in matches])
        by_id = {r.id: r for r in records}
        contexts: list[Context] = []
        for match in matches:
            record = by_id.get(match.chunk_id)
            if record is None:
                logger.debug("Dropping dangling vector %s", match.chunk_id)
                continue
            contexts.append(
                Context(
                    order=len(contexts),
                    chunk_id=record.id,
                    folder_name=record.folder_name,
                    file_name=record.file_name,
                    start_line=record.start_line,
                    end_line=record.end_line,
                    content=record.content,
                    score=match.score,
                )
            )
        return contexts

    def _record(self, response: ChatResponse, user_id: str, question: str) -> None:
        self._repo.record_chat(
            ChatMessage(
                id=response.id,
                user_id=user_id,
                question=question,
                answer=response.answer,
                citations=json.dumps([c.to_dict() for c in response.citations]),
            )
        )


def _nothing_found() -> ChatResponse:
    return ChatResponse(id=str(uuid.uuid4()), answer=NOTHING_FOUND_ANSWER)
