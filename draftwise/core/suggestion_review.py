"""
Suggestion review: turns diff markup into independently decidable edits.

The engine keeps a flat span list and an undo stack of status snapshots.
Reconstruction is a pure fold over the spans and the current snapshot; no
markup is mutated in place.

Usage:
    engine = SuggestionReviewEngine.from_markup(diff_html)
    engine.decide("suggestion_1", SuggestionStatus.ACCEPTED)
    engine.reject_all()
    engine.undo()
    content = engine.reconstruct()

A ReviewSession wraps one engine with a ReviewChannel so other components can
follow the review without reaching into global state.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from draftwise.core.diff_engine import DEL_TAG, INS_TAG, render_span
from draftwise.core.logging import get_logger
from draftwise.core.schemas_review import (
    DiffSpan,
    DiffSpanKind,
    Suggestion,
    SuggestionStatus,
    SuggestionType,
)

logger = get_logger(__name__)

SUGGESTION_ID_PREFIX = "suggestion_"

_TAG_RE = re.compile(rf"<({INS_TAG}|{DEL_TAG})(?:\s[^>]*)?>(.*?)</\1\s*>", re.DOTALL | re.IGNORECASE)


class ReviewSessionClosedError(RuntimeError):
    """The review session was applied or cancelled."""


class PendingSuggestionsError(RuntimeError):
    """Suggestions are still pending."""


def parse_markup(markup: str) -> list[DiffSpan]:
    """Split tagged diff markup into a flat span list, in document order."""
    spans: list[DiffSpan] = []
    pos = 0
    for match in _TAG_RE.finditer(markup):
        if match.start() > pos:
            spans.append(DiffSpan(kind=DiffSpanKind.UNCHANGED, text=markup[pos : match.start()]))
        kind = DiffSpanKind.INSERTED if match.group(1).lower() == INS_TAG else DiffSpanKind.DELETED
        spans.append(DiffSpan(kind=kind, text=match.group(2)))
        pos = match.end()
    if pos < len(markup):
        spans.append(DiffSpan(kind=DiffSpanKind.UNCHANGED, text=markup[pos:]))
    return spans


def bind_suggestions(spans: list[DiffSpan]) -> list[Suggestion]:
    """
    Bind every changed span to exactly one suggestion.

    A deletion immediately followed by an insertion becomes one replacement;
    any other changed span stands alone.
    """
    suggestions: list[Suggestion] = []
    claimed: set[int] = set()

    for i, span in enumerate(spans):
        if i in claimed or span.kind == DiffSpanKind.UNCHANGED:
            continue

        suggestion_id = f"{SUGGESTION_ID_PREFIX}{len(suggestions) + 1}"
        nxt = i + 1

        if span.kind == DiffSpanKind.DELETED:
            if nxt < len(spans) and nxt not in claimed and spans[nxt].kind == DiffSpanKind.INSERTED:
                suggestions.append(
                    Suggestion(
                        id=suggestion_id,
                        type=SuggestionType.REPLACEMENT,
                        deleted_index=i,
                        inserted_index=nxt,
                    )
                )
                claimed.update((i, nxt))
            else:
                suggestions.append(Suggestion(id=suggestion_id, type=SuggestionType.DELETION, deleted_index=i))
                claimed.add(i)
        else:
            suggestions.append(Suggestion(id=suggestion_id, type=SuggestionType.INSERTION, inserted_index=i))
            claimed.add(i)

    return suggestions


class SuggestionReviewEngine:
    """Single-writer review state over one diff."""

    def __init__(self, spans: list[DiffSpan]):
        self._spans = tuple(spans)
        self._suggestions = {s.id: s for s in bind_suggestions(list(spans))}
        self._owner: dict[int, str] = {}
        for suggestion in self._suggestions.values():
            for index in suggestion.span_indexes:
                self._owner[index] = suggestion.id

        initial = {sid: SuggestionStatus.PENDING for sid in self._suggestions}
        self._history: list[dict[str, SuggestionStatus]] = [initial]

    @classmethod
    def from_markup(cls, markup: str) -> "SuggestionReviewEngine":
        return cls(parse_markup(markup))

    @classmethod
    def from_spans(cls, spans: list[DiffSpan]) -> "SuggestionReviewEngine":
        return cls(spans)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def _current(self) -> dict[str, SuggestionStatus]:
        return self._history[-1]

    @property
    def statuses(self) -> dict[str, SuggestionStatus]:
        return dict(self._current)

    @property
    def suggestions(self) -> list[Suggestion]:
        current = self._current
        return [s.model_copy(update={"status": current[s.id]}) for s in self._suggestions.values()]

    def get(self, suggestion_id: str) -> Suggestion:
        if suggestion_id not in self._suggestions:
            raise KeyError(suggestion_id)
        return self._suggestions[suggestion_id].model_copy(update={"status": self._current[suggestion_id]})

    def span_text(self, suggestion_id: str) -> tuple[str | None, str | None]:
        """(deleted text, inserted text) of a suggestion."""
        s = self.get(suggestion_id)
        deleted = self._spans[s.deleted_index].text if s.deleted_index is not None else None
        inserted = self._spans[s.inserted_index].text if s.inserted_index is not None else None
        return deleted, inserted

    @property
    def pending_count(self) -> int:
        return sum(1 for status in self._current.values() if status == SuggestionStatus.PENDING)

    @property
    def is_informational(self) -> bool:
        """No suggestions: show the proposal without accept/reject affordances."""
        return not self._suggestions

    @property
    def can_undo(self) -> bool:
        return len(self._history) > 1

    # =========================================================================
    # Decisions
    # =========================================================================

    def decide(self, suggestion_id: str, status: SuggestionStatus) -> None:
        """
        Accept or reject one pending suggestion and push a snapshot.

        Raises:
            KeyError: Unknown suggestion id
            ValueError: Status is PENDING, or the suggestion is already decided
        """
        if suggestion_id not in self._suggestions:
            raise KeyError(suggestion_id)
        if status == SuggestionStatus.PENDING:
            raise ValueError("A decision must accept or reject")
        if self._current[suggestion_id] != SuggestionStatus.PENDING:
            raise ValueError(f"Suggestion {suggestion_id} is already {self._current[suggestion_id].value}")

        snapshot = dict(self._current)
        snapshot[suggestion_id] = status
        self._history.append(snapshot)

    def accept(self, suggestion_id: str) -> None:
        self.decide(suggestion_id, SuggestionStatus.ACCEPTED)

    def reject(self, suggestion_id: str) -> None:
        self.decide(suggestion_id, SuggestionStatus.REJECTED)

    def _decide_all(self, status: SuggestionStatus) -> int:
        snapshot = dict(self._current)
        changed = 0
        for sid, current in snapshot.items():
            if current == SuggestionStatus.PENDING:
                snapshot[sid] = status
                changed += 1
        if changed:
            self._history.append(snapshot)
        return changed

    def accept_all(self) -> int:
        """Accept every pending suggestion in one step. Returns how many changed."""
        return self._decide_all(SuggestionStatus.ACCEPTED)

    def reject_all(self) -> int:
        """Reject every pending suggestion in one step. Returns how many changed."""
        return self._decide_all(SuggestionStatus.REJECTED)

    def undo(self) -> bool:
        """Restore the previous snapshot. No-op at the initial snapshot."""
        if not self.can_undo:
            return False
        self._history.pop()
        return True

    # =========================================================================
    # Rendering
    # =========================================================================

    def annotated_markup(self) -> str:
        """Diff markup with every tag carrying its data-suggestion-id."""
        return "".join(render_span(span, self._owner.get(i)) for i, span in enumerate(self._spans))

    def reconstruct(self) -> str:
        """
        Fold spans and current decisions into content.

        Accepted insertions and rejected deletions keep their text; accepted
        deletions and rejected insertions drop it. Pending spans keep their
        tags, so this is safe to call for a preview at any time.
        """
        current = self._current
        parts: list[str] = []
        for i, span in enumerate(self._spans):
            if span.kind == DiffSpanKind.UNCHANGED:
                parts.append(span.text)
                continue

            sid = self._owner[i]
            status = current[sid]
            if status == SuggestionStatus.PENDING:
                parts.append(render_span(span, sid))
            elif (span.kind == DiffSpanKind.INSERTED) == (status == SuggestionStatus.ACCEPTED):
                parts.append(span.text)
        return "".join(parts)


# =============================================================================
# Session + channel
# =============================================================================


class ReviewEventKind(str, Enum):
    DECIDED = "decided"
    BULK_DECIDED = "bulk_decided"
    UNDONE = "undone"
    APPLIED = "applied"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ReviewEvent:
    kind: ReviewEventKind
    suggestion_id: str | None = None
    status: SuggestionStatus | None = None
    pending_count: int = 0
    content: str | None = None


Subscriber = Callable[[ReviewEvent], None]


class ReviewChannel:
    """Publish/subscribe channel owned by one review session."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a subscriber; returns a function that removes it."""
        if self._closed:
            raise ReviewSessionClosedError("Review channel is closed")
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: ReviewEvent) -> None:
        if self._closed:
            raise ReviewSessionClosedError("Review channel is closed")
        for callback in list(self._subscribers):
            callback(event)

    def close(self) -> None:
        self._subscribers.clear()
        self._closed = True


class ReviewSession:
    """
    One reviewer's pass over a diff.

    The channel is created with the session and torn down when the session is
    applied or cancelled. `on_apply` receives the final content (typically the
    document store's setContent).
    """

    def __init__(
        self,
        engine: SuggestionReviewEngine,
        on_apply: Callable[[str], None] | None = None,
        channel: ReviewChannel | None = None,
    ):
        self.engine = engine
        self.channel = channel or ReviewChannel()
        self._on_apply = on_apply
        self._closed = False

    @classmethod
    def from_markup(cls, markup: str, on_apply: Callable[[str], None] | None = None) -> "ReviewSession":
        return cls(SuggestionReviewEngine.from_markup(markup), on_apply=on_apply)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_informational(self) -> bool:
        return self.engine.is_informational

    def _ensure_open(self) -> None:
        if self._closed:
            raise ReviewSessionClosedError("Review session has ended")

    def decide(self, suggestion_id: str, status: SuggestionStatus) -> None:
        self._ensure_open()
        self.engine.decide(suggestion_id, status)
        self.channel.publish(
            ReviewEvent(
                kind=ReviewEventKind.DECIDED,
                suggestion_id=suggestion_id,
                status=status,
                pending_count=self.engine.pending_count,
            )
        )

    def accept_all(self) -> int:
        return self._decide_all(SuggestionStatus.ACCEPTED)

    def reject_all(self) -> int:
        return self._decide_all(SuggestionStatus.REJECTED)

    def _decide_all(self, status: SuggestionStatus) -> int:
        self._ensure_open()
        if status == SuggestionStatus.ACCEPTED:
            changed = self.engine.accept_all()
        else:
            changed = self.engine.reject_all()
        if changed:
            self.channel.publish(
                ReviewEvent(kind=ReviewEventKind.BULK_DECIDED, status=status, pending_count=self.engine.pending_count)
            )
        return changed

    def undo(self) -> bool:
        self._ensure_open()
        undone = self.engine.undo()
        if undone:
            self.channel.publish(ReviewEvent(kind=ReviewEventKind.UNDONE, pending_count=self.engine.pending_count))
        return undone

    def preview(self) -> str:
        return self.engine.reconstruct()

    def apply(self, allow_pending: bool = False) -> str:
        """
        Reconstruct the final content, hand it to on_apply, and end the session.

        Raises:
            PendingSuggestionsError: Undecided suggestions remain and allow_pending is False
            ReviewSessionClosedError: Session already ended
        """
        self._ensure_open()
        pending = self.engine.pending_count
        if pending and not allow_pending:
            raise PendingSuggestionsError(f"{pending} suggestion(s) still pending")

        content = self.engine.reconstruct()
        if self._on_apply is not None:
            self._on_apply(content)

        self.channel.publish(ReviewEvent(kind=ReviewEventKind.APPLIED, content=content, pending_count=pending))
        self._end()
        logger.info(f"Review session applied ({len(self.engine.suggestions)} suggestions)")
        return content

    def cancel(self) -> None:
        self._ensure_open()
        self.channel.publish(ReviewEvent(kind=ReviewEventKind.CANCELLED, pending_count=self.engine.pending_count))
        self._end()

    def _end(self) -> None:
        self._closed = True
        self.channel.close()
