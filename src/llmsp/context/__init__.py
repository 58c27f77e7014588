"""Prompt assembly under a token budget."""

from .assembler import AssembledPrompt, ContextAssembler, count_tokens, trim_messages
from .tokens import estimate_tokens, truncate_text, truncate_text_start

__all__ = [
    "AssembledPrompt",
    "ContextAssembler",
    "count_tokens",
    "estimate_tokens",
    "trim_messages",
    "truncate_text",
    "truncate_text_start",
]
