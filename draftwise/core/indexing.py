"""Document indexing: markup -> plain text -> chunks -> embeddings -> knowledge store."""

import html
import re
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import Any, Protocol

from draftwise.core.ai_gateway import EmbeddingError
from draftwise.core.chunking import chunk_text
from draftwise.core.logging import get_logger
from draftwise.core.schemas_chat import ChunkMetadata, ChunkScope, KnowledgeChunk

logger = get_logger(__name__)

_BLOCK_TAG_RE = re.compile(r"</?(p|div|h[1-6]|li|ul|ol|br|tr|table|blockquote|pre)\b[^>]*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")

Embedder = Callable[[list[str]], Awaitable[list[list[float]]]]


class ChunkWriter(Protocol):
    def replace_document_chunks(self, document_id: str, chunks: list[KnowledgeChunk]) -> int: ...


def markup_to_text(markup: str) -> str:
    """Strip tags (block tags become line breaks) and unescape entities."""
    text = _BLOCK_TAG_RE.sub("\n", markup or "")
    text = _TAG_RE.sub("", text)
    return html.unescape(text).strip()


def _upload_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and len(value) >= 10:
        return value[:10]
    return date.today().isoformat()


async def index_document(
    document: dict[str, Any],
    text: str,
    *,
    embedder: Embedder,
    store: ChunkWriter,
    target_size: int = 400,
    overlap_size: int = 80,
) -> int:
    """
    Chunk, embed and store one document's text, replacing any previous chunks.

    Args:
        document: Document row (id, user_id, project_id, title, file_name, created_at)
        text: Extracted plain text
        embedder: Async embedding function
        store: Chunk writer
        target_size: Chunk size hint in characters
        overlap_size: Overlap hint

    Returns:
        Number of chunks stored

    Raises:
        EmbeddingError: If the embedder returns the wrong number of vectors
    """
    document_id = str(document["id"])

    if not text or not text.strip():
        logger.warning(f"Document {document_id} has no extractable text, skipping indexing")
        return 0

    chunks = chunk_text(text, target_size=target_size, overlap_size=overlap_size)
    logger.info(f"Split document {document_id} into {len(chunks)} chunks")

    embeddings = await embedder(chunks)
    if len(embeddings) != len(chunks):
        raise EmbeddingError(
            f"Embedding count mismatch for document {document_id}: "
            f"expected {len(chunks)}, got {len(embeddings)}"
        )

    scope = ChunkScope(
        user_id=str(document["user_id"]),
        project_id=str(document["project_id"]) if document.get("project_id") else None,
        document_id=document_id,
    )
    metadata = ChunkMetadata(
        title=document.get("title"),
        file_name=document.get("file_name"),
        upload_date=_upload_date(document.get("created_at")),
        char_count=len(text),
    )

    knowledge_chunks = [
        KnowledgeChunk(
            content=content,
            embedding=embedding,
            chunk_index=index,
            scope=scope,
            metadata=metadata,
        )
        for index, (content, embedding) in enumerate(zip(chunks, embeddings))
    ]

    return store.replace_document_chunks(document_id, knowledge_chunks)
