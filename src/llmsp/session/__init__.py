"""Session state and the completion single-flight protocol."""

from .cancellation import CancellationToken, SingleFlight
from .state import DocumentStore, InteractionMemory, Session

__all__ = [
    "CancellationToken",
    "DocumentStore",
    "InteractionMemory",
    "Session",
    "SingleFlight",
]
