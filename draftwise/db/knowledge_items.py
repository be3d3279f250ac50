"""Chunk store for retrieval: knowledge_items table operations."""

import logging
from typing import Any

from draftwise.core.logging import get_logger, log_with_context
from draftwise.core.schemas_chat import ChunkMetadata, ChunkScope, KnowledgeChunk
from draftwise.db.supabase_client import get_supabase

logger = get_logger(__name__)

TABLE = "knowledge_items"
INSERT_BATCH_SIZE = 100


def _row_to_chunk(row: dict[str, Any]) -> KnowledgeChunk:
    metadata = row.get("metadata") or {}
    return KnowledgeChunk(
        content=row.get("content") or "",
        embedding=row.get("embedding"),
        chunk_index=row.get("chunk_index") or 0,
        scope=ChunkScope(
            user_id=str(row["user_id"]),
            project_id=str(row["project_id"]) if row.get("project_id") else None,
            document_id=str(row["document_id"]) if row.get("document_id") else None,
        ),
        metadata=ChunkMetadata(
            title=metadata.get("title"),
            file_name=metadata.get("fileName"),
            upload_date=metadata.get("uploadDate"),
            char_count=metadata.get("charCount") or 0,
        ),
    )


def _chunk_to_row(chunk: KnowledgeChunk) -> dict[str, Any]:
    return {
        "user_id": chunk.scope.user_id,
        "project_id": chunk.scope.project_id,
        "document_id": chunk.scope.document_id,
        "chunk_index": chunk.chunk_index,
        "content": chunk.content,
        "embedding": chunk.embedding,
        "metadata": {
            "title": chunk.metadata.title,
            "fileName": chunk.metadata.file_name,
            "uploadDate": chunk.metadata.upload_date,
            "charCount": chunk.metadata.char_count,
        },
    }


def list_chunks(
    scope: ChunkScope,
    keyword: str | None = None,
    limit: int | None = None,
) -> list[KnowledgeChunk]:
    """
    List chunks inside a retrieval scope.

    Document scope wins over project scope, which wins over the whole user corpus.

    Args:
        scope: Retrieval scope
        keyword: Optional case-insensitive containment prefilter on content
        limit: Optional row cap

    Returns:
        Chunks in (document_id, chunk_index) order
    """
    supabase = get_supabase()

    columns = "user_id, project_id, document_id, chunk_index, content, metadata"
    if keyword is None:
        columns += ", embedding"

    query = supabase.table(TABLE).select(columns).eq("user_id", scope.user_id)

    if scope.document_id:
        query = query.eq("document_id", scope.document_id)
    elif scope.project_id:
        query = query.eq("project_id", scope.project_id)

    if keyword:
        query = query.ilike("content", f"%{keyword}%")

    query = query.order("document_id").order("chunk_index")
    if limit:
        query = query.limit(limit)

    response = query.execute()
    return [_row_to_chunk(row) for row in response.data or []]


def replace_document_chunks(document_id: str, chunks: list[KnowledgeChunk]) -> int:
    """
    Replace every chunk of a document with a fresh set.

    Args:
        document_id: Owning document
        chunks: New chunks (all scoped to document_id)

    Returns:
        Number of chunks inserted
    """
    supabase = get_supabase()

    supabase.table(TABLE).delete().eq("document_id", document_id).execute()

    inserted = 0
    for start in range(0, len(chunks), INSERT_BATCH_SIZE):
        batch = [_chunk_to_row(c) for c in chunks[start : start + INSERT_BATCH_SIZE]]
        supabase.table(TABLE).insert(batch).execute()
        inserted += len(batch)

    log_with_context(logger, logging.INFO, "Stored knowledge items", document_id=document_id, chunk_count=inserted)
    return inserted
