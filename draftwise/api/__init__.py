"""API router for v1 endpoints."""

from fastapi import APIRouter

from draftwise.api import chat, documents

router = APIRouter()

# Chat turns and history
router.include_router(chat.router, tags=["chat"])

# Agent rewrites, indexing and review commit
router.include_router(documents.router, prefix="/documents", tags=["documents"])
