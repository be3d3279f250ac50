"""Pydantic models for the chat and retrieval pipeline."""

import json
from datetime import datetime
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Enums
# =============================================================================


class ChatRole(str, Enum):
    """Author of a conversational turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMode(str, Enum):
    """How the assistant should respond."""

    CHAT = "chat"  # conversational answer
    AGENT = "agent"  # edit proposals


class ScopeMode(str, Enum):
    """Which slice of the corpus a retrieval covers."""

    DOCUMENT = "document"
    PROJECT = "project"
    USER = "user"


# =============================================================================
# Conversation history
# =============================================================================


class ChatTurn(BaseModel):
    """One persisted conversational turn. Immutable once written."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    user_id: str
    role: ChatRole
    content: str
    token_count: int = 0
    mode: ChatMode = ChatMode.CHAT
    created_at: datetime | None = None


class HistoryEntry(BaseModel):
    """A turn as listed back to the UI."""

    model_config = ConfigDict(populate_by_name=True)

    role: ChatRole
    content: str
    mode: ChatMode | None = None
    created_at: datetime | None = Field(None, alias="createdAt")


# =============================================================================
# Knowledge store
# =============================================================================


class ChunkScope(BaseModel):
    """Ownership of a chunk, or the restriction applied to a retrieval."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    project_id: str | None = None
    document_id: str | None = None

    @property
    def mode(self) -> ScopeMode:
        if self.document_id:
            return ScopeMode.DOCUMENT
        if self.project_id:
            return ScopeMode.PROJECT
        return ScopeMode.USER

    def admits(self, chunk_scope: "ChunkScope") -> bool:
        """True if a chunk owned by `chunk_scope` falls inside this retrieval scope.

        Document beats project beats the whole user corpus.
        """
        if chunk_scope.user_id != self.user_id:
            return False
        if self.document_id:
            return chunk_scope.document_id == self.document_id
        if self.project_id:
            return chunk_scope.project_id == self.project_id
        return True


class ChunkMetadata(BaseModel):
    """Descriptive metadata stored alongside each chunk."""

    title: str | None = None
    file_name: str | None = None
    upload_date: str | None = None  # YYYY-MM-DD
    char_count: int = 0

    @property
    def source_label(self) -> str:
        return self.title or self.file_name or "document"


class KnowledgeChunk(BaseModel):
    """An indexed segment of a document."""

    model_config = ConfigDict(frozen=True)

    content: str
    embedding: list[float] | None = None
    chunk_index: int
    scope: ChunkScope
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)


class RetrievedChunk(BaseModel):
    """A chunk selected for a prompt, with the score that selected it."""

    content: str
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)
    score: float = 0.0

    def render(self) -> str:
        """Chunk text prefixed with its source label."""
        return f"(From: {self.metadata.source_label})\n{self.content}"


# =============================================================================
# Prompting
# =============================================================================


class PromptMessage(BaseModel):
    """A role-tagged message sent to the model for a single call."""

    role: ChatRole
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


# =============================================================================
# HTTP contracts
# =============================================================================


class ChatQueryRequest(BaseModel):
    """A conversational or agent turn."""

    model_config = ConfigDict(populate_by_name=True)

    prompt_text: str = Field(..., min_length=1, max_length=2000, alias="promptText")
    document_uuid: UUID | None = Field(None, alias="documentUuid")
    project_uuid: UUID | None = Field(None, alias="projectUuid")
    mode: ChatMode = ChatMode.CHAT


class AgentEditRequest(BaseModel):
    """A full-document rewrite request."""

    model_config = ConfigDict(populate_by_name=True)

    document_uuid: UUID = Field(..., alias="documentUuid")
    prompt_text: str = Field(..., min_length=1, max_length=2000, alias="promptText")
    project_uuid: UUID | None = Field(None, alias="projectUuid")


class AgentEditResponse(BaseModel):
    """Original markup, the model's rewrite, and the tagged diff between them."""

    model_config = ConfigDict(populate_by_name=True)

    original_content: str = Field(..., alias="originalContent")
    suggested_content: str = Field(..., alias="suggestedContent")
    diff_html: str = Field(..., alias="diffHtml")


class StreamFrame(BaseModel):
    """One frame of a streamed chat response."""

    type: Literal["chunk", "error"]
    content: str | None = None
    message: str | None = None

    @classmethod
    def chunk(cls, content: str) -> "StreamFrame":
        return cls(type="chunk", content=content)

    @classmethod
    def error(cls, message: str) -> "StreamFrame":
        return cls(type="error", message=message)

    def to_sse(self) -> str:
        """Format as an SSE data line."""
        return f"data: {json.dumps(self.model_dump(exclude_none=True))}\n\n"
