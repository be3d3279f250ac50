"""Tests for the suggestion review engine and review session."""

import pytest

from draftwise.core.diff_engine import diff
from draftwise.core.schemas_review import SuggestionStatus, SuggestionType
from draftwise.core.suggestion_review import (
    PendingSuggestionsError,
    ReviewEventKind,
    ReviewSession,
    ReviewSessionClosedError,
    SuggestionReviewEngine,
    parse_markup,
)
from tests.test_diff_engine import PAIRS

MIXED = 'A <del class="diffdel">x</del> B <ins class="diffins">y</ins> C'


# ──────────────────────────────────────────────────────────────────────
# Construction
# ──────────────────────────────────────────────────────────────────────


def test_cat_dog_replacement():
    markup = diff("The cat sat.", "The dog sat.").markup

    engine = SuggestionReviewEngine.from_markup(markup)
    [suggestion] = engine.suggestions
    assert suggestion.id == "suggestion_1"
    assert suggestion.type == SuggestionType.REPLACEMENT
    assert engine.span_text("suggestion_1") == ("cat", "dog")

    engine.accept("suggestion_1")
    assert engine.reconstruct() == "The dog sat."

    engine = SuggestionReviewEngine.from_markup(markup)
    engine.reject("suggestion_1")
    assert engine.reconstruct() == "The cat sat."


def test_lone_deletion_and_insertion():
    engine = SuggestionReviewEngine.from_markup(MIXED)

    assert [(s.id, s.type) for s in engine.suggestions] == [
        ("suggestion_1", SuggestionType.DELETION),
        ("suggestion_2", SuggestionType.INSERTION),
    ]

    engine.accept_all()
    assert engine.reconstruct() == "A  B y C"

    engine.undo()
    engine.reject_all()
    assert engine.reconstruct() == "A x B  C"


def test_deletion_pairs_only_with_the_immediately_following_insertion():
    markup = '<del class="diffdel">x</del><ins class="diffins">y</ins><ins class="diffins">z</ins>'

    engine = SuggestionReviewEngine.from_markup(markup)

    assert [s.type for s in engine.suggestions] == [SuggestionType.REPLACEMENT, SuggestionType.INSERTION]


def test_every_tag_is_bound_exactly_once():
    for original, proposed in PAIRS:
        result = diff(original, proposed)
        engine = SuggestionReviewEngine.from_spans(result.spans)

        bound = [i for s in engine.suggestions for i in s.span_indexes]
        changed = [i for i, span in enumerate(result.spans) if span.kind.value != "unchanged"]
        assert sorted(bound) == changed
        assert len(bound) == len(set(bound))


def test_annotated_markup_carries_ids():
    engine = SuggestionReviewEngine.from_markup(MIXED)
    annotated = engine.annotated_markup()

    assert 'data-suggestion-id="suggestion_1">x</del>' in annotated
    assert 'data-suggestion-id="suggestion_2">y</ins>' in annotated


def test_parse_markup_keeps_unchanged_text():
    spans = parse_markup("<p>a</p>" + '<ins class="diffins">b</ins>' + "<p>c</p>")
    assert "".join(s.text for s in spans) == "<p>a</p>b<p>c</p>"


# ──────────────────────────────────────────────────────────────────────
# Round trips
# ──────────────────────────────────────────────────────────────────────


def test_accept_all_reconstructs_suggested_content():
    for original, proposed in PAIRS:
        engine = SuggestionReviewEngine.from_markup(diff(original, proposed).markup)
        engine.accept_all()
        assert engine.reconstruct() == proposed


def test_reject_all_reconstructs_original_content():
    for original, proposed in PAIRS:
        engine = SuggestionReviewEngine.from_markup(diff(original, proposed).markup)
        engine.reject_all()
        assert engine.reconstruct() == original


# ──────────────────────────────────────────────────────────────────────
# Decisions and undo
# ──────────────────────────────────────────────────────────────────────


def test_undo_restores_previous_status_map():
    engine = SuggestionReviewEngine.from_markup(MIXED)
    engine.accept("suggestion_1")
    before = engine.statuses

    engine.reject("suggestion_2")
    assert engine.undo() is True

    assert engine.statuses == before


def test_undo_at_initial_snapshot_is_noop():
    engine = SuggestionReviewEngine.from_markup(MIXED)

    assert engine.undo() is False
    assert engine.pending_count == 2


def test_bulk_decisions_touch_only_pending():
    engine = SuggestionReviewEngine.from_markup(MIXED)
    engine.reject("suggestion_1")

    assert engine.accept_all() == 1
    assert engine.statuses == {
        "suggestion_1": SuggestionStatus.REJECTED,
        "suggestion_2": SuggestionStatus.ACCEPTED,
    }

    engine.undo()
    assert engine.statuses["suggestion_2"] == SuggestionStatus.PENDING
    assert engine.accept_all() == 1
    assert engine.reject_all() == 0


def test_decide_validation():
    engine = SuggestionReviewEngine.from_markup(MIXED)

    with pytest.raises(KeyError):
        engine.accept("suggestion_99")
    with pytest.raises(ValueError):
        engine.decide("suggestion_1", SuggestionStatus.PENDING)

    engine.accept("suggestion_1")
    with pytest.raises(ValueError):
        engine.reject("suggestion_1")


def test_reconstruct_preview_keeps_pending_tags():
    engine = SuggestionReviewEngine.from_markup(MIXED)
    engine.accept("suggestion_1")

    preview = engine.reconstruct()

    assert preview.startswith("A  B ")
    assert '<ins class="diffins" data-suggestion-id="suggestion_2">y</ins>' in preview


def test_zero_suggestions_is_informational():
    engine = SuggestionReviewEngine.from_markup("<p>Nothing changed</p>")

    assert engine.is_informational
    assert engine.suggestions == []
    assert engine.reconstruct() == "<p>Nothing changed</p>"


# ──────────────────────────────────────────────────────────────────────
# Session + channel
# ──────────────────────────────────────────────────────────────────────


def test_session_publishes_events_and_applies():
    applied = []
    session = ReviewSession.from_markup(MIXED, on_apply=applied.append)
    events = []
    session.channel.subscribe(events.append)

    session.decide("suggestion_1", SuggestionStatus.ACCEPTED)
    session.accept_all()
    session.undo()
    session.reject_all()
    content = session.apply()

    assert [e.kind for e in events] == [
        ReviewEventKind.DECIDED,
        ReviewEventKind.BULK_DECIDED,
        ReviewEventKind.UNDONE,
        ReviewEventKind.BULK_DECIDED,
        ReviewEventKind.APPLIED,
    ]
    assert events[0].suggestion_id == "suggestion_1"
    assert events[-1].content == content == "A  B  C"
    assert applied == ["A  B  C"]


def test_session_closes_after_apply():
    session = ReviewSession.from_markup(MIXED)
    session.accept_all()
    session.apply()

    assert session.closed
    assert session.channel.closed
    with pytest.raises(ReviewSessionClosedError):
        session.decide("suggestion_1", SuggestionStatus.REJECTED)
    with pytest.raises(ReviewSessionClosedError):
        session.undo()
    with pytest.raises(ReviewSessionClosedError):
        session.channel.subscribe(lambda event: None)


def test_session_apply_refuses_pending_unless_allowed():
    applied = []
    session = ReviewSession.from_markup(MIXED, on_apply=applied.append)

    with pytest.raises(PendingSuggestionsError):
        session.apply()
    assert applied == []
    assert not session.closed

    session.apply(allow_pending=True)
    assert len(applied) == 1


def test_session_cancel():
    applied = []
    session = ReviewSession.from_markup(MIXED, on_apply=applied.append)
    events = []
    session.channel.subscribe(events.append)

    session.cancel()

    assert [e.kind for e in events] == [ReviewEventKind.CANCELLED]
    assert applied == []
    with pytest.raises(ReviewSessionClosedError):
        session.apply()


def test_unsubscribe():
    session = ReviewSession.from_markup(MIXED)
    events = []
    unsubscribe = session.channel.subscribe(events.append)

    unsubscribe()
    session.accept_all()

    assert events == []


def test_informational_session_applies_proposal_as_is():
    session = ReviewSession.from_markup("<p>Same</p>")

    assert session.is_informational
    assert session.apply() == "<p>Same</p>"
