"""Sourcegraph GraphQL client: repository ids, embeddings search, events."""

from .client import EmbeddingResult, EmbeddingsSearchResult, SourcegraphClient

__all__ = [
    "EmbeddingResult",
    "EmbeddingsSearchResult",
    "SourcegraphClient",
]
