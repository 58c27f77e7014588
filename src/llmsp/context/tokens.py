"""Token estimation and truncation for prompt budgeting.

Token counts are a heuristic, not a tokenizer: one token per four
characters, rounded up so that a non-empty text always costs at least one
token. Rounding up keeps the budget invariant safe when many small
messages are summed.
"""

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """
    Estimate token count for text.

    Args:
        text: Text to estimate tokens for

    Returns:
        ``ceil(len(text) / 4)``

    Examples:
        >>> estimate_tokens("abcde")
        2
        >>> estimate_tokens("")
        0
    """
    return (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


def truncate_text(text: str, max_tokens: int) -> tuple[str, int]:
    """
    Keep the head of ``text`` so it fits ``max_tokens``.

    Args:
        text: Text to truncate
        max_tokens: Maximum tokens allowed

    Returns:
        Tuple of (possibly truncated text, its token count)
    """
    max_chars = max(max_tokens, 0) * CHARS_PER_TOKEN
    if len(text) > max_chars:
        text = text[:max_chars]
    return text, estimate_tokens(text)


def truncate_text_start(text: str, max_tokens: int) -> tuple[str, int]:
    """
    Keep the tail of ``text`` so it fits ``max_tokens``.

    The end of a message is usually the part the model needs most, so
    prompt trimming drops text from the front.

    Args:
        text: Text to truncate
        max_tokens: Maximum tokens allowed

    Returns:
        Tuple of (possibly truncated text, its token count)
    """
    max_chars = max(max_tokens, 0) * CHARS_PER_TOKEN
    if len(text) > max_chars:
        text = text[len(text) - max_chars:]
    return text, estimate_tokens(text)
