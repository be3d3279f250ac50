"""Tests for the word-level diff engine."""

import time

from draftwise.core.diff_engine import diff, diff_spans, tokenize
from draftwise.core.schemas_review import DiffSpan, DiffSpanKind

PAIRS = [
    ("The cat sat.", "The dog sat."),
    ("<p>Hello world.</p>", "<p>Hello brave new world.</p>"),
    ("<h1>Title</h1><p>Remove this sentence. Keep this.</p>", "<h1>Title</h1><p>Keep this.</p>"),
    ("<p>Name: ______</p><p>Date: ______</p>", "<p>Name: Ada Lovelace</p><p>Date: 1843-07-10</p>"),
    ("", "<p>Brand new</p>"),
    ("<p>Going away</p>", ""),
    ("<ul><li>one</li><li>two</li></ul>", "<ol><li>one</li><li>two</li><li>three</li></ol>"),
]


def _side(spans, keep):
    return "".join(s.text for s in spans if s.kind in (DiffSpanKind.UNCHANGED, keep))


def test_cat_dog_is_one_adjacent_replacement():
    spans = diff_spans("The cat sat.", "The dog sat.")

    assert spans == [
        DiffSpan(kind=DiffSpanKind.UNCHANGED, text="The "),
        DiffSpan(kind=DiffSpanKind.DELETED, text="cat"),
        DiffSpan(kind=DiffSpanKind.INSERTED, text="dog"),
        DiffSpan(kind=DiffSpanKind.UNCHANGED, text=" sat."),
    ]
    assert diff("The cat sat.", "The dog sat.").markup == (
        'The <del class="diffdel">cat</del><ins class="diffins">dog</ins> sat.'
    )


def test_diff_is_deterministic():
    for original, proposed in PAIRS:
        assert diff(original, proposed).markup == diff(original, proposed).markup


def test_spans_rebuild_both_sides():
    for original, proposed in PAIRS:
        spans = diff_spans(original, proposed)
        assert _side(spans, DiffSpanKind.DELETED) == original
        assert _side(spans, DiffSpanKind.INSERTED) == proposed


def test_identical_documents_have_no_changes():
    result = diff("<p>Same</p>", "<p>Same</p>")

    assert [s.kind for s in result.spans] == [DiffSpanKind.UNCHANGED]
    assert result.markup == "<p>Same</p>"


def test_adjacent_spans_never_share_a_kind():
    for original, proposed in PAIRS:
        spans = diff_spans(original, proposed)
        for a, b in zip(spans, spans[1:]):
            assert a.kind != b.kind


def test_tokenize_round_trips():
    text = "<p class=\"x\">Hello,  world!\n  Ünïcode € ok</p>"
    assert "".join(tokenize(text)) == text


# ──────────────────────────────────────────────────────────────────────
# Large documents
# ──────────────────────────────────────────────────────────────────────


def _paragraphs(count):
    return [
        f"<p>Paragraph {i} covers topic {i % 37} with the usual words, details and notes.</p>\n"
        for i in range(count)
    ]


def _changed(spans):
    return [s for s in spans if s.kind != DiffSpanKind.UNCHANGED]


def test_large_document_with_few_edits_diffs_quickly():
    paragraphs = _paragraphs(4000)
    original = "".join(paragraphs)
    assert len(original) > 300_000

    edited = list(paragraphs)
    edited[10] = edited[10].replace("usual words", "unusual words")
    edited[2000] = edited[2000].replace("details", "particulars")
    del edited[3000]
    edited.insert(3500, "<p>A freshly inserted paragraph.</p>\n")
    proposed = "".join(edited)

    start = time.perf_counter()
    spans = diff_spans(original, proposed)
    elapsed = time.perf_counter() - start

    assert elapsed < 5.0
    assert _side(spans, DiffSpanKind.DELETED) == original
    assert _side(spans, DiffSpanKind.INSERTED) == proposed

    changed = _changed(spans)
    assert len(changed) <= 8
    assert DiffSpan(kind=DiffSpanKind.DELETED, text="usual") in changed
    assert DiffSpan(kind=DiffSpanKind.INSERTED, text="unusual") in changed
    assert DiffSpan(kind=DiffSpanKind.DELETED, text=paragraphs[3000]) in changed
    assert DiffSpan(kind=DiffSpanKind.DELETED, text="details") in changed
    assert DiffSpan(kind=DiffSpanKind.INSERTED, text="particulars") in changed


def test_large_single_block_is_refined_by_sentence():
    sentences = [f"Sentence number {i} says something plain. " for i in range(6000)]
    original = "".join(sentences)
    edited = list(sentences)
    edited[4321] = "Sentence number 4321 says something bold. "
    proposed = "".join(edited)

    start = time.perf_counter()
    spans = diff_spans(original, proposed)
    elapsed = time.perf_counter() - start

    assert elapsed < 5.0
    assert _side(spans, DiffSpanKind.DELETED) == original
    assert _side(spans, DiffSpanKind.INSERTED) == proposed
    assert _changed(spans) == [
        DiffSpan(kind=DiffSpanKind.DELETED, text="plain"),
        DiffSpan(kind=DiffSpanKind.INSERTED, text="bold"),
    ]


def test_every_paragraph_edited_in_place_stays_word_level():
    paragraphs = _paragraphs(2000)
    original = "".join(paragraphs)
    proposed = "".join(p.replace("notes", "remarks") for p in paragraphs)

    start = time.perf_counter()
    spans = diff_spans(original, proposed)
    elapsed = time.perf_counter() - start

    assert elapsed < 10.0
    assert _side(spans, DiffSpanKind.DELETED) == original
    assert _side(spans, DiffSpanKind.INSERTED) == proposed
    assert {s.text for s in _changed(spans)} == {"notes", "remarks"}
