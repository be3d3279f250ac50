"""Chat assistant API endpoints."""

import asyncio
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from draftwise.api.deps import get_chat_pipeline, get_current_user_id
from draftwise.core.chat_pipeline import ChatPipeline
from draftwise.core.config import get_settings
from draftwise.core.logging import get_logger
from draftwise.core.prompts import PromptSelectionError
from draftwise.core.schemas_chat import ChatQueryRequest, HistoryEntry, StreamFrame
from draftwise.db.documents import DocumentNotFoundError

logger = get_logger(__name__)

router = APIRouter()


@router.post("/chat")
async def chat_query(
    request: ChatQueryRequest,
    user_id: str = Depends(get_current_user_id),
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
) -> StreamingResponse:
    """
    Answer a chat or agent turn as Server-Sent Events.

    Each event is `{"type": "chunk", "content": ...}` or a terminal
    `{"type": "error", "message": ...}`. The stream ends when the model does.
    """
    try:
        turn = await pipeline.prepare_turn(user_id, request)
    except PromptSelectionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    cancel = asyncio.Event()

    async def generate() -> AsyncGenerator[str, None]:
        try:
            async for frame in pipeline.stream_prepared(turn, cancel):
                yield frame.to_sse()
        except Exception as e:
            logger.error(f"Error in chat stream: {e}", exc_info=True)
            yield StreamFrame.error(str(e)).to_sse()
        finally:
            # Client went away or stream finished: stop any further decoding
            cancel.set()

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.get("/chat/history", response_model=list[HistoryEntry])
async def chat_history(
    limit: int | None = Query(None, ge=1, le=100, description="Maximum number of turns"),
    user_id: str = Depends(get_current_user_id),
    pipeline: ChatPipeline = Depends(get_chat_pipeline),
) -> list[HistoryEntry]:
    """Most recent turns for the user, oldest first."""
    try:
        return pipeline.history(user_id, limit or get_settings().HISTORY_DISPLAY_LIMIT)
    except Exception as e:
        logger.error(f"Error loading chat history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load chat history")
