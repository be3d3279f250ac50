"""Request-scoped collaborators for the API routes."""

from functools import lru_cache

from fastapi import Header, HTTPException, status

from draftwise.core.ai_gateway import AIGatewayClient
from draftwise.core.chat_pipeline import ChatPipeline
from draftwise.core.config import get_settings
from draftwise.core.history_cache import HistoryCache
from draftwise.core.retrieval import KnowledgeStore, build_scorer
from draftwise.db import chat_messages, documents, knowledge_items


def get_current_user_id(x_user_id: str | None = Header(None, alias="X-User-Id")) -> str:
    """User id forwarded by the upstream auth layer."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )
    return x_user_id.strip()


@lru_cache
def get_gateway() -> AIGatewayClient:
    return AIGatewayClient(get_settings())


@lru_cache
def get_history_cache() -> HistoryCache:
    """Process-wide history cache over the chat_messages log."""
    settings = get_settings()
    return HistoryCache(
        chat_messages,
        max_length=settings.HISTORY_CACHE_MAX_LENGTH,
        ttl_seconds=settings.HISTORY_CACHE_TTL_SECONDS,
    )


def get_document_store():
    return documents


def get_chunk_store():
    return knowledge_items


def get_knowledge_store() -> KnowledgeStore:
    settings = get_settings()
    scorer = build_scorer(settings.RETRIEVAL_STRATEGY)
    embedder = get_gateway().embed if scorer.needs_query_embedding else None
    return KnowledgeStore(knowledge_items, scorer, embedder=embedder)


def get_chat_pipeline() -> ChatPipeline:
    return ChatPipeline(
        documents=documents,
        knowledge=get_knowledge_store(),
        history=get_history_cache(),
        completions=get_gateway(),
        settings=get_settings(),
    )
