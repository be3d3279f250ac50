"""Types for word-level diffs and the suggestion review state machine."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DiffSpanKind(str, Enum):
    UNCHANGED = "unchanged"
    INSERTED = "inserted"
    DELETED = "deleted"


class DiffSpan(BaseModel):
    """A contiguous run of unchanged, inserted, or deleted text."""

    model_config = ConfigDict(frozen=True)

    kind: DiffSpanKind
    text: str


class SuggestionType(str, Enum):
    INSERTION = "insertion"
    DELETION = "deletion"
    REPLACEMENT = "replacement"


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Suggestion(BaseModel):
    """
    A user-decidable edit bound to one or two tagged spans.

    `deleted_index` / `inserted_index` are positions in the review engine's span
    list; a replacement has both, a lone deletion or insertion has one.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    type: SuggestionType
    status: SuggestionStatus = SuggestionStatus.PENDING
    deleted_index: int | None = None
    inserted_index: int | None = None

    @property
    def span_indexes(self) -> tuple[int, ...]:
        return tuple(i for i in (self.deleted_index, self.inserted_index) if i is not None)


class ReviewApplyRequest(BaseModel):
    """Reviewer decisions to replay over a diff before committing it."""

    model_config = ConfigDict(populate_by_name=True)

    diff_html: str = Field(..., alias="diffHtml")
    decisions: dict[str, SuggestionStatus] = Field(default_factory=dict)
    allow_pending: bool = Field(False, alias="allowPending")


class ReviewApplyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str
    suggestion_count: int = Field(..., alias="suggestionCount")
    pending_count: int = Field(0, alias="pendingCount")
    informational: bool = False
