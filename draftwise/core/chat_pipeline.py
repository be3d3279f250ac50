"""
Chat pipeline: one user turn from request to streamed answer or reviewed rewrite.

Conversational turns:
    request -> scope -> retrieval -> history budget -> prompt -> streamed deltas

Agent full rewrites:
    request -> size guard -> rewrite prompt -> completion -> validation -> diff
"""

import asyncio
import logging
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

from draftwise.core import diff_engine
from draftwise.core.ai_gateway import CompletionTransportError
from draftwise.core.config import Settings, get_settings
from draftwise.core.history_cache import HistoryCache
from draftwise.core.logging import get_logger, log_with_context
from draftwise.core.prompts import PromptTemplate, assemble, select_template
from draftwise.core.retrieval import KnowledgeStore
from draftwise.core.schemas_chat import (
    AgentEditRequest,
    AgentEditResponse,
    ChatMode,
    ChatQueryRequest,
    ChatRole,
    ChunkScope,
    HistoryEntry,
    PromptMessage,
    RetrievedChunk,
    StreamFrame,
)
from draftwise.core.tokens import history_token_budget

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"^```[\w-]*\s*\n?(.*?)\n?```$", re.DOTALL)


class DocumentTooLargeError(ValueError):
    """Document markup exceeds what the rewrite agent accepts."""


class AgentOutputError(RuntimeError):
    """The model's rewrite was empty or not markup."""


class DocumentStore(Protocol):
    """Document/project lookups (the db.documents module satisfies this)."""

    def get_document(self, document_uuid: UUID | str, user_id: str) -> dict[str, Any]: ...

    def get_project(self, project_uuid: UUID | str, user_id: str) -> dict[str, Any]: ...


class CompletionProvider(Protocol):
    async def complete(self, messages: list[PromptMessage], max_tokens: int | None = None) -> str: ...

    def stream(
        self, messages: list[PromptMessage], cancel: asyncio.Event | None = None
    ) -> AsyncIterator[str]: ...


@dataclass
class PreparedTurn:
    """Everything resolved for a conversational turn before the model is called."""

    user_id: str
    mode: ChatMode
    template: PromptTemplate
    scope: ChunkScope
    messages: list[PromptMessage]
    chunks: list[RetrievedChunk] = field(default_factory=list)
    history_budget: int = 0


def clean_agent_output(raw: str | None) -> str:
    """
    Validate a full-rewrite completion.

    A wrapping markdown fence is removed; what remains must start with a tag.

    Raises:
        AgentOutputError: Empty output or output that is not markup
    """
    text = (raw or "").strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1).strip()

    if not text:
        raise AgentOutputError("AI agent returned an empty response.")
    if not text.startswith("<"):
        raise AgentOutputError("AI agent returned an invalid HTML response.")
    return text


class ChatPipeline:
    """Stateless per-request orchestration over injected collaborators."""

    def __init__(
        self,
        documents: DocumentStore,
        knowledge: KnowledgeStore,
        history: HistoryCache,
        completions: CompletionProvider,
        settings: Settings | None = None,
    ):
        self.documents = documents
        self.knowledge = knowledge
        self.history_cache = history
        self.completions = completions
        self.settings = settings or get_settings()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _project_context(self, project_uuid: UUID | None, user_id: str) -> dict[str, Any] | None:
        if project_uuid is None:
            return None
        try:
            return self.documents.get_project(project_uuid, user_id)
        except Exception as e:
            log_with_context(
                logger,
                logging.WARNING,
                f"Could not load project {project_uuid}, continuing without it: {e}",
                user_id=user_id,
            )
            return None

    def _record_turn(self, user_id: str, role: ChatRole, content: str, mode: ChatMode) -> None:
        """Best-effort history write; failures are logged for reconciliation."""
        try:
            self.history_cache.append(user_id, role, content, mode=mode)
        except Exception as e:
            log_with_context(
                logger,
                logging.ERROR,
                f"Failed to persist {role.value} turn: {e}",
                user_id=user_id,
                mode=mode.value,
            )

    async def _retrieve(self, query: str, scope: ChunkScope) -> list[RetrievedChunk]:
        try:
            return await self.knowledge.retrieve(query, scope, self.settings.RETRIEVAL_TOP_K)
        except Exception as e:
            logger.warning(f"Retrieval failed, continuing without context: {e}")
            return []

    def _recent_history(self, user_id: str, budget: int) -> list[dict[str, str]]:
        try:
            return self.history_cache.recent(user_id, budget)
        except Exception as e:
            logger.warning(f"History lookup failed for user {user_id}, continuing without it: {e}")
            return []

    # =========================================================================
    # Conversational turn
    # =========================================================================

    async def prepare_turn(self, user_id: str, request: ChatQueryRequest) -> PreparedTurn:
        """
        Resolve scope, retrieval and history, record the user turn, and build the prompt.

        Raises:
            PromptSelectionError: Agent mode without a document
            DocumentNotFoundError: Document missing or not owned by the user
        """
        template = select_template(request.mode, has_document_scope=request.document_uuid is not None)

        project = self._project_context(request.project_uuid, user_id)

        if request.document_uuid is not None:
            document = self.documents.get_document(request.document_uuid, user_id)
            scope = ChunkScope(
                user_id=user_id,
                project_id=str(document["project_id"]) if document.get("project_id") else None,
                document_id=str(document["id"]),
            )
        elif project is not None:
            scope = ChunkScope(user_id=user_id, project_id=str(project["id"]))
        else:
            scope = ChunkScope(user_id=user_id)

        chunks = await self._retrieve(request.prompt_text, scope)

        budget = history_token_budget(
            request.prompt_text,
            [c.render() for c in chunks],
            context_window=self.settings.CHAT_CONTEXT_WINDOW_TOKENS,
            reserved_for_output=self.settings.CHAT_RESPONSE_RESERVE_TOKENS,
        )
        history = self._recent_history(user_id, budget)

        self._record_turn(user_id, ChatRole.USER, request.prompt_text, request.mode)

        messages = assemble(
            template,
            chunks,
            history,
            request.prompt_text,
            custom_instructions=(project or {}).get("custom_instructions"),
            project_name=(project or {}).get("name"),
        )

        log_with_context(
            logger,
            logging.INFO,
            f"Prepared {template.value} turn",
            user_id=user_id,
            scope_mode=scope.mode.value,
            chunks=len(chunks),
            history_turns=len(history),
            history_budget=budget,
        )

        return PreparedTurn(
            user_id=user_id,
            mode=request.mode,
            template=template,
            scope=scope,
            messages=messages,
            chunks=chunks,
            history_budget=budget,
        )

    async def stream_prepared(
        self,
        turn: PreparedTurn,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamFrame]:
        """
        Stream the model's answer as frames, pushing each delta as it is decoded.

        A transport failure ends the stream with one error frame. Cancellation
        (or the consumer closing the generator) stops without recording the answer.
        """
        parts: list[str] = []
        try:
            async for delta in self.completions.stream(turn.messages, cancel):
                parts.append(delta)
                yield StreamFrame.chunk(delta)
        except CompletionTransportError as e:
            log_with_context(logger, logging.ERROR, f"Stream failed: {e}", user_id=turn.user_id)
            yield StreamFrame.error(f"AI service error: {e}")
            return

        if cancel is not None and cancel.is_set():
            log_with_context(logger, logging.INFO, "Stream cancelled by caller", user_id=turn.user_id)
            return

        answer = "".join(parts)
        if answer:
            self._record_turn(turn.user_id, ChatRole.ASSISTANT, answer, turn.mode)

    async def stream_turn(
        self,
        user_id: str,
        request: ChatQueryRequest,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamFrame]:
        turn = await self.prepare_turn(user_id, request)
        async for frame in self.stream_prepared(turn, cancel):
            yield frame

    # =========================================================================
    # Full-document rewrite
    # =========================================================================

    async def agent_edit(self, user_id: str, request: AgentEditRequest) -> AgentEditResponse:
        """
        Rewrite a whole document and diff the result against the original.

        The document itself is not modified.

        Raises:
            DocumentNotFoundError: Document missing or not owned by the user
            DocumentTooLargeError: Markup above AGENT_MAX_DOCUMENT_BYTES
            CompletionTransportError: Model call failed
            AgentOutputError: Model output empty or not markup
        """
        self._record_turn(user_id, ChatRole.USER, request.prompt_text, ChatMode.AGENT)

        document = self.documents.get_document(request.document_uuid, user_id)
        original = document.get("content") or ""

        size = len(original.encode("utf-8"))
        if size > self.settings.AGENT_MAX_DOCUMENT_BYTES:
            log_with_context(
                logger,
                logging.WARNING,
                "Rejected oversized document for agent rewrite",
                user_id=user_id,
                document_uuid=str(request.document_uuid),
                size_bytes=size,
            )
            raise DocumentTooLargeError("Document is too large for the AI agent to process.")

        project = self._project_context(request.project_uuid, user_id)

        template = select_template(ChatMode.AGENT, has_document_scope=True, full_rewrite=True)
        messages = assemble(
            template,
            [],
            [],
            request.prompt_text,
            custom_instructions=(project or {}).get("custom_instructions"),
            document_html=original,
        )

        logger.info(f"Requesting full-document rewrite for {request.document_uuid} ({size} bytes)")
        raw = await self.completions.complete(messages, max_tokens=self.settings.AGENT_MAX_TOKENS)

        try:
            suggested = clean_agent_output(raw)
        except AgentOutputError:
            logger.error(f"Invalid agent output for document {request.document_uuid}: {(raw or '')[:200]!r}")
            raise

        # Diffing a large document is CPU-bound; keep it off the event loop
        result = await asyncio.to_thread(diff_engine.diff, original, suggested)

        title = document.get("title") or "the document"
        self._record_turn(
            user_id,
            ChatRole.ASSISTANT,
            f'I\'ve analyzed your request "{request.prompt_text}" and generated suggested edits for '
            f'"{title}". Review the changes to accept or reject each one.',
            ChatMode.AGENT,
        )

        return AgentEditResponse(
            original_content=original,
            suggested_content=suggested,
            diff_html=result.markup,
        )

    # =========================================================================
    # History
    # =========================================================================

    def history(self, user_id: str, limit: int) -> list[HistoryEntry]:
        """Most recent `limit` turns from the durable log, oldest first."""
        return [
            HistoryEntry(role=t.role, content=t.content, mode=t.mode, created_at=t.created_at)
            for t in self.history_cache.listing(user_id, limit)
        ]
