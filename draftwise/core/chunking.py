"""Text chunking utilities for document indexing."""


def chunk_text(
    text: str,
    target_size: int = 400,
    overlap_size: int = 80,
) -> list[str]:
    """
    Split text into overlapping, word-aligned chunks.

    Words are accumulated into a buffer. When appending the next word would
    push the buffer past target_size characters, the buffer is emitted and the
    next one is seeded with the last overlap_size // 10 words of the emitted
    chunk followed by the word that triggered the split. Overlap is therefore
    approximate and word-based, not character-exact.

    A single word longer than target_size is never split.

    Args:
        text: Plain text to chunk
        target_size: Soft maximum characters per chunk
        overlap_size: Overlap hint; every 10 units carry one word forward

    Returns:
        List of non-empty chunk strings, in document order

    Raises:
        ValueError: If target_size < 1 or overlap_size < 0
    """
    if target_size < 1:
        raise ValueError(f"target_size ({target_size}) must be at least 1")
    if overlap_size < 0:
        raise ValueError(f"overlap_size ({overlap_size}) must not be negative")

    words = text.split() if text else []
    if not words:
        return []

    overlap_words = overlap_size // 10
    chunks: list[str] = []
    current: list[str] = []
    current_len = 0

    for word in words:
        candidate_len = current_len + 1 + len(word) if current else len(word)

        if candidate_len > target_size and current:
            chunks.append(" ".join(current))

            carried = current[-overlap_words:] if overlap_words else []
            current = [*carried, word]
            current_len = len(" ".join(current))
        else:
            current.append(word)
            current_len = candidate_len

    if current:
        chunks.append(" ".join(current))

    return [chunk for chunk in chunks if chunk.strip()]
