"""Token-budgeted cache of recent conversational turns, backed by a durable log.

Each user has one entry: a most-recent-first list of turns capped at
`max_length`, with a time-to-live refreshed whenever a turn is pushed. A
miss is rebuilt from the log and rehydrated with only the turns a budget
selected. Expired entries are swept periodically, and per-user locks live
only while held.
"""

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from time import monotonic
from typing import Protocol

from draftwise.core.logging import get_logger
from draftwise.core.schemas_chat import ChatMode, ChatRole, ChatTurn
from draftwise.core.tokens import estimate_tokens

logger = get_logger(__name__)


class ChatLog(Protocol):
    """Durable append-only turn log (the chat_messages module satisfies this)."""

    def insert_turn(self, turn: ChatTurn) -> ChatTurn: ...

    def list_recent_turns(self, user_id: str, limit: int) -> list[ChatTurn]: ...


@dataclass
class _Entry:
    turns: list[ChatTurn]  # newest first
    expires_at: float


@dataclass
class _LockSlot:
    lock: threading.Lock
    holders: int = 0


def _turn_tokens(turn: ChatTurn) -> int:
    return turn.token_count or estimate_tokens(turn.content)


def select_within_budget(turns_newest_first: list[ChatTurn], token_budget: int) -> list[ChatTurn]:
    """Greedy newest-first walk; stops at the first turn that would overflow the budget."""
    selected: list[ChatTurn] = []
    used = 0
    for turn in turns_newest_first:
        tokens = _turn_tokens(turn)
        if used + tokens > token_budget:
            break
        selected.append(turn)
        used += tokens
    return selected


class HistoryCache:
    """Per-user recent-turn cache. Writers are serialized per user."""

    def __init__(
        self,
        log: ChatLog,
        max_length: int = 100,
        ttl_seconds: float = 60 * 60 * 24 * 7,
        clock: Callable[[], float] = monotonic,
        sweep_interval_seconds: float = 60 * 10,
    ):
        self._log = log
        self.max_length = max_length
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.sweep_interval_seconds = sweep_interval_seconds
        self._entries: dict[str, _Entry] = {}
        self._next_sweep = clock() + sweep_interval_seconds
        self._locks: dict[str, _LockSlot] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _user_lock(self, user_id: str) -> Iterator[None]:
        """Hold the user's lock; the slot is dropped once nobody holds or waits on it."""
        with self._locks_guard:
            slot = self._locks.get(user_id)
            if slot is None:
                slot = self._locks[user_id] = _LockSlot(threading.Lock())
            slot.holders += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._locks_guard:
                slot.holders -= 1
                if slot.holders == 0:
                    del self._locks[user_id]

    def _sweep_expired(self) -> None:
        """Drop every expired entry, at most once per sweep interval. Call without a user lock held."""
        now = self._clock()
        if now < self._next_sweep:
            return
        self._next_sweep = now + self.sweep_interval_seconds

        expired = [user_id for user_id, entry in list(self._entries.items()) if now >= entry.expires_at]
        for user_id in expired:
            with self._user_lock(user_id):
                self._live_entry(user_id)

        if expired:
            logger.debug(f"Swept {len(expired)} expired history entries")

    def _live_entry(self, user_id: str) -> _Entry | None:
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[user_id]
            return None
        return entry

    def append(
        self,
        user_id: str,
        role: ChatRole,
        content: str,
        tokens: int | None = None,
        mode: ChatMode = ChatMode.CHAT,
    ) -> ChatTurn:
        """
        Persist a turn to the log, then push it onto the user's cached list.

        Only a live entry is pushed onto (and has its TTL refreshed). For a user
        with no live entry nothing is cached: a list holding just this turn
        would hide the older turns still in the log, so the next `recent` call
        rebuilds from the log instead, which already includes this turn.

        Args:
            user_id: Owner of the turn
            role: Turn author
            content: Turn text
            tokens: Token count; estimated from content if omitted
            mode: chat or agent

        Returns:
            The stored turn

        Raises:
            Whatever the log raises; the cache is left untouched in that case
        """
        if tokens is None:
            tokens = estimate_tokens(content)

        turn = ChatTurn(user_id=user_id, role=role, content=content, token_count=tokens, mode=mode)

        self._sweep_expired()
        with self._user_lock(user_id):
            stored = self._log.insert_turn(turn)

            entry = self._live_entry(user_id)
            if entry is not None:
                entry.turns.insert(0, stored)
                del entry.turns[self.max_length :]
                entry.expires_at = self._clock() + self.ttl_seconds

        return stored

    def recent(self, user_id: str, token_budget: int) -> list[dict[str, str]]:
        """
        Most recent turns that fit the budget, oldest first.

        Args:
            user_id: Owner of the turns
            token_budget: Maximum total tokens of returned turns

        Returns:
            [{"role": ..., "content": ...}] in chronological order
        """
        budget = max(0, token_budget)

        self._sweep_expired()
        with self._user_lock(user_id):
            entry = self._live_entry(user_id)

            if entry is not None:
                logger.debug(f"History cache hit for user {user_id} ({len(entry.turns)} turns)")
                selected = select_within_budget(entry.turns, budget)
            else:
                logger.debug(f"History cache miss for user {user_id}, loading from log")
                turns = self._log.list_recent_turns(user_id, self.max_length)
                selected = select_within_budget(turns, budget)
                if selected:
                    self._entries[user_id] = _Entry(
                        turns=list(selected),
                        expires_at=self._clock() + self.ttl_seconds,
                    )
                    logger.debug(f"Rehydrated history cache for user {user_id} with {len(selected)} turns")

        return [{"role": t.role.value, "content": t.content} for t in reversed(selected)]

    def listing(self, user_id: str, limit: int) -> list[ChatTurn]:
        """The log's most recent `limit` turns, oldest first."""
        return list(reversed(self._log.list_recent_turns(user_id, limit)))

    def invalidate(self, user_id: str) -> None:
        """Drop the cached entry for a user."""
        with self._user_lock(user_id):
            self._entries.pop(user_id, None)
