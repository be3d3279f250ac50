"""Document agent endpoints: full rewrite, indexing, and review commit."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from draftwise.api.deps import (
    get_chat_pipeline,
    get_chunk_store,
    get_current_user_id,
    get_document_store,
    get_gateway,
)
from draftwise.core.ai_gateway import AIGatewayClient, CompletionTransportError, EmbeddingError
from draftwise.core.chat_pipeline import AgentOutputError, ChatPipeline, DocumentTooLargeError
from draftwise.core.config import get_settings
from draftwise.core.indexing import index_document, markup_to_text
from draftwise.core.logging import get_logger
from draftwise.core.schemas_chat import AgentEditRequest, AgentEditResponse
from draftwise.core.schemas_review import ReviewApplyRequest, ReviewApplyResponse
from draftwise.core.suggestion_review import PendingSuggestionsError, ReviewSession
from draftwise.db.documents import DocumentNotFoundError

logger = get_logger(__name__)

router = APIRouter()


@router.post("/agent-edit", response_model=AgentEditResponse)
async def agent_edit(
    request: AgentEditRequest,
    user_id: str = Depends(get_current_user_id),
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
) -> AgentEditResponse:
    """
    Rewrite the whole document per the instruction and return a reviewable diff.

    The stored document is left untouched.
    """
    try:
        return await pipeline.agent_edit(user_id, request)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DocumentTooLargeError as e:
        raise HTTPException(status_code=413, detail=str(e))
    except (AgentOutputError, CompletionTransportError) as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/{document_uuid}/index")
async def index_document_content(
    document_uuid: UUID,
    user_id: str = Depends(get_current_user_id),
    documents=Depends(get_document_store),
    chunk_store=Depends(get_chunk_store),
    gateway: AIGatewayClient = Depends(get_gateway),
) -> dict[str, Any]:
    """(Re)build the knowledge chunks for a document from its current content."""
    settings = get_settings()

    try:
        document = documents.get_document(document_uuid, user_id)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    text = markup_to_text(document.get("content") or "")

    try:
        count = await index_document(
            document,
            text,
            embedder=gateway.embed,
            store=chunk_store,
            target_size=settings.CHUNK_TARGET_CHARS,
            overlap_size=settings.CHUNK_OVERLAP_CHARS,
        )
    except EmbeddingError as e:
        logger.error(f"Indexing failed for document {document_uuid}: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return {"document_uuid": str(document_uuid), "chunk_count": count}


@router.post(
    "/{document_uuid}/review/apply",
    response_model=ReviewApplyResponse,
)
async def apply_review(
    document_uuid: UUID,
    request: ReviewApplyRequest,
    user_id: str = Depends(get_current_user_id),
    documents=Depends(get_document_store),
) -> ReviewApplyResponse:
    """
    Replay the reviewer's decisions over a diff and save the reconstructed content.

    Returns 409 while suggestions are still pending (unless allowPending is set).
    """
    try:
        documents.get_document(document_uuid, user_id)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    session = ReviewSession.from_markup(
        request.diff_html,
        on_apply=lambda content: documents.update_document_content(document_uuid, user_id, content),
    )

    try:
        for suggestion_id, status in request.decisions.items():
            session.decide(suggestion_id, status)
    except KeyError as e:
        raise HTTPException(status_code=400, detail=f"Unknown suggestion: {e.args[0]}")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    pending = session.engine.pending_count
    try:
        content = session.apply(allow_pending=request.allow_pending)
    except PendingSuggestionsError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return ReviewApplyResponse(
        content=content,
        suggestion_count=len(session.engine.suggestions),
        pending_count=pending,
        informational=session.is_informational,
    )
