"""Durable, append-only log of chat turns."""

from typing import Any

from draftwise.core.logging import get_logger
from draftwise.core.schemas_chat import ChatMode, ChatRole, ChatTurn
from draftwise.db.supabase_client import get_supabase

logger = get_logger(__name__)

TABLE = "chat_messages"


def _row_to_turn(row: dict[str, Any]) -> ChatTurn:
    return ChatTurn(
        id=str(row["id"]) if row.get("id") is not None else None,
        user_id=str(row["user_id"]),
        role=ChatRole(row["role"]),
        content=row.get("content") or "",
        token_count=row.get("tokens") or 0,
        mode=ChatMode(row.get("mode") or ChatMode.CHAT.value),
        created_at=row.get("created_at"),
    )


def insert_turn(turn: ChatTurn) -> ChatTurn:
    """
    Append a turn to the log.

    Args:
        turn: Turn to persist (id and created_at are assigned by the database)

    Returns:
        The stored turn as read back from the database

    Raises:
        RuntimeError: If the insert returned no row
    """
    supabase = get_supabase()

    payload = {
        "user_id": turn.user_id,
        "role": turn.role.value,
        "content": turn.content,
        "tokens": turn.token_count,
        "mode": turn.mode.value,
    }
    response = supabase.table(TABLE).insert(payload).execute()

    if not response.data:
        raise RuntimeError(f"Failed to persist chat turn for user {turn.user_id}")

    return _row_to_turn(response.data[0])


def list_recent_turns(user_id: str, limit: int) -> list[ChatTurn]:
    """
    List a user's most recent turns, newest first.

    Args:
        user_id: Owner of the turns
        limit: Maximum number of turns

    Returns:
        Turns ordered by created_at descending
    """
    supabase = get_supabase()

    response = (
        supabase.table(TABLE)
        .select("id, user_id, role, content, tokens, mode, created_at")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )

    return [_row_to_turn(row) for row in response.data or []]
