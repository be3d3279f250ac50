"""Tests for text chunking functionality."""

import pytest

from draftwise.core.chunking import chunk_text


def test_chunk_text_carries_trailing_word_forward():
    """Each chunk starts with the previous chunk's last word when overlap allows one word."""
    chunks = chunk_text("a b c d e f", target_size=3, overlap_size=10)

    assert chunks == ["a b", "b c", "c d", "d e", "e f"]
    for prev, cur in zip(chunks, chunks[1:]):
        assert cur.split()[0] == prev.split()[-1]


def test_chunk_text_without_overlap():
    chunks = chunk_text("a b c d e f", target_size=3, overlap_size=0)

    assert chunks == ["a b", "c d", "e f"]


def test_chunk_text_overlap_is_word_based():
    """overlap_size // 10 words are carried, regardless of their length."""
    text = "alpha beta gamma delta epsilon zeta"
    chunks = chunk_text(text, target_size=16, overlap_size=25)

    # 2 words carried forward
    assert chunks[0] == "alpha beta gamma"
    assert chunks[1].startswith("beta gamma")


def test_chunk_text_empty():
    assert chunk_text("") == []
    assert chunk_text("   \n\t ") == []


def test_chunk_text_shorter_than_target():
    text = "Short text"
    assert chunk_text(text, target_size=100, overlap_size=10) == ["Short text"]


def test_chunk_text_never_splits_long_word():
    word = "supercalifragilistic"
    chunks = chunk_text(f"short {word} end", target_size=5, overlap_size=0)

    assert chunks == ["short", word, "end"]


def test_chunk_text_respects_target_size():
    """Without overlap, a chunk only exceeds the target when it is a single word."""
    text = " ".join(f"word{i}" * (1 + i % 3) for i in range(200))
    target = 40

    chunks = chunk_text(text, target_size=target, overlap_size=0)

    assert chunks
    for chunk in chunks:
        assert chunk.strip()
        assert len(chunk) <= target or len(chunk.split()) == 1


def test_chunk_text_preserves_all_words_without_overlap():
    text = "one two three four five six seven eight nine ten"
    chunks = chunk_text(text, target_size=12, overlap_size=0)

    assert " ".join(chunks).split() == text.split()


def test_chunk_text_is_deterministic():
    text = "The quick brown fox jumps over the lazy dog. " * 30
    assert chunk_text(text, 50, 20) == chunk_text(text, 50, 20)


def test_chunk_text_collapses_whitespace():
    chunks = chunk_text("a\n\nb\tc", target_size=100, overlap_size=0)
    assert chunks == ["a b c"]


def test_chunk_text_invalid_parameters():
    with pytest.raises(ValueError):
        chunk_text("text", target_size=0)
    with pytest.raises(ValueError):
        chunk_text("text", target_size=10, overlap_size=-1)
