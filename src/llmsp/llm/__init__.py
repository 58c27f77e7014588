"""Model backend client and prompt types."""

from .client import CompletionClient
from .models import CompletionParameters, Message, Speaker

__all__ = [
    "CompletionClient",
    "CompletionParameters",
    "Message",
    "Speaker",
]
