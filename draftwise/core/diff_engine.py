"""Word-level diff between an original document and a proposed rewrite.

Both sides are tokenized into words, whitespace runs and single punctuation
characters, aligned with difflib, and rendered back as the original markup
with `<del>`/`<ins>` wrappers around the changed runs.

Large documents are aligned top-down: blocks (paragraphs, list items, lines)
first, then sentences inside changed blocks, and words only inside changed
regions small enough to align cheaply. A document with a handful of edits
therefore costs roughly its length rather than its length squared.
"""

import re
from dataclasses import dataclass
from difflib import SequenceMatcher

from draftwise.core.schemas_review import DiffSpan, DiffSpanKind

INS_TAG = "ins"
DEL_TAG = "del"
INS_CLASS = "diffins"
DEL_CLASS = "diffdel"

_TOKEN_RE = re.compile(r"\w+|\s+|[^\w\s]")

_BLOCK_END = r"</(?:p|div|h[1-6]|li|tr|blockquote|pre|table|ul|ol|section)\s*>|<br\s*/?>|\n"
_BLOCK_RE = re.compile(rf".*?(?:{_BLOCK_END})\s*|.+", re.IGNORECASE | re.DOTALL)
_SENTENCE_RE = re.compile(rf".*?(?:{_BLOCK_END}|[.!?](?=\s))\s*|.+", re.IGNORECASE | re.DOTALL)

# Coarse-to-fine splitters tried before falling back to words
_LEVELS = (_BLOCK_RE, _SENTENCE_RE)

# Word alignment is only attempted when len(a) * len(b) stays under these
WORD_DIFF_CELLS = 250_000
FINAL_WORD_DIFF_CELLS = 1_000_000


@dataclass(frozen=True)
class DiffResult:
    spans: list[DiffSpan]
    markup: str


def tokenize(text: str) -> list[str]:
    """Split text into tokens that concatenate back to the input."""
    return _TOKEN_RE.findall(text)


def _append(spans: list[DiffSpan], kind: DiffSpanKind, text: str) -> None:
    if not text:
        return
    if spans and spans[-1].kind == kind:
        spans[-1] = DiffSpan(kind=kind, text=spans[-1].text + text)
    else:
        spans.append(DiffSpan(kind=kind, text=text))


def _replace(spans: list[DiffSpan], original: str, proposed: str) -> None:
    _append(spans, DiffSpanKind.DELETED, original)
    _append(spans, DiffSpanKind.INSERTED, proposed)


def _diff_words(a: list[str], b: list[str], spans: list[DiffSpan]) -> None:
    matcher = SequenceMatcher(None, a, b, autojunk=False)
    for op, i1, i2, j1, j2 in matcher.get_opcodes():
        if op == "equal":
            _append(spans, DiffSpanKind.UNCHANGED, "".join(a[i1:i2]))
        else:
            _replace(spans, "".join(a[i1:i2]), "".join(b[j1:j2]))


def _diff_region(original: str, proposed: str, level: int, spans: list[DiffSpan]) -> None:
    if original == proposed:
        _append(spans, DiffSpanKind.UNCHANGED, original)
        return
    if not original or not proposed:
        _replace(spans, original, proposed)
        return

    a = tokenize(original)
    b = tokenize(proposed)
    cells = len(a) * len(b)

    if level >= len(_LEVELS):
        if cells <= FINAL_WORD_DIFF_CELLS:
            _diff_words(a, b, spans)
        else:
            # A wholesale rewrite with no shared block or sentence
            _replace(spans, original, proposed)
        return

    if cells <= WORD_DIFF_CELLS:
        _diff_words(a, b, spans)
        return

    a_units = _LEVELS[level].findall(original)
    b_units = _LEVELS[level].findall(proposed)

    # Default autojunk keeps boilerplate units (empty paragraphs) from anchoring
    matcher = SequenceMatcher(None, a_units, b_units)
    for op, i1, i2, j1, j2 in matcher.get_opcodes():
        if op == "equal":
            _append(spans, DiffSpanKind.UNCHANGED, "".join(a_units[i1:i2]))
        elif op == "replace" and i2 - i1 == j2 - j1:
            # Units edited in place: refine each pair on its own
            for a_unit, b_unit in zip(a_units[i1:i2], b_units[j1:j2]):
                _diff_region(a_unit, b_unit, level + 1, spans)
        else:
            _diff_region("".join(a_units[i1:i2]), "".join(b_units[j1:j2]), level + 1, spans)


def diff_spans(original: str, proposed: str) -> list[DiffSpan]:
    """
    Align two documents word by word.

    Within a changed region the deleted run comes first, then the inserted
    run, so a replacement always appears as an adjacent deletion/insertion
    pair. Concatenating unchanged and deleted spans gives back `original`;
    unchanged and inserted spans give back `proposed`.
    """
    spans: list[DiffSpan] = []
    _diff_region(original, proposed, 0, spans)
    return spans


def render_span(span: DiffSpan, suggestion_id: str | None = None) -> str:
    """Render one span; changed spans get their diff tag and optional suggestion id."""
    if span.kind == DiffSpanKind.UNCHANGED:
        return span.text

    tag, css = (INS_TAG, INS_CLASS) if span.kind == DiffSpanKind.INSERTED else (DEL_TAG, DEL_CLASS)
    attrs = f' class="{css}"'
    if suggestion_id is not None:
        attrs += f' data-suggestion-id="{suggestion_id}"'
    return f"<{tag}{attrs}>{span.text}</{tag}>"


def render_markup(spans: list[DiffSpan]) -> str:
    return "".join(render_span(span) for span in spans)


def diff(original: str, proposed: str) -> DiffResult:
    """Diff two documents. Deterministic: same inputs, same markup.

    CPU-bound; async callers should run it in a worker thread.
    """
    spans = diff_spans(original, proposed)
    return DiffResult(spans=spans, markup=render_markup(spans))
