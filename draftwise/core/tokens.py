"""Token estimation and budget helpers."""

import math


def estimate_tokens(text: str | None) -> int:
    """Cheap token-count proxy: one token per four characters, rounded up."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def history_token_budget(
    prompt_text: str,
    context_chunks: list[str],
    context_window: int = 8192,
    reserved_for_output: int = 1000,
) -> int:
    """
    Tokens left for conversation history once the prompt and context are accounted for.

    Args:
        prompt_text: The new user turn
        context_chunks: Rendered retrieval chunks going into the prompt
        context_window: Model context window in tokens
        reserved_for_output: Tokens kept free for the answer

    Returns:
        Remaining budget, never negative
    """
    used = estimate_tokens(prompt_text) + estimate_tokens("".join(context_chunks))
    return max(0, context_window - reserved_for_output - used)
