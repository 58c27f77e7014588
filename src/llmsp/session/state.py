"""Per-connection session state.

One ``Session`` exists per editor connection. It owns the open documents,
the conversation memory, the repository identity, and the backend clients,
and is passed explicitly to every handler.

Writes to documents and memory go through ``Session.lock``. Reads are not
synchronised: mutations only happen on the change-notification and
memory-command paths, and each write replaces whole values.
"""

import asyncio
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import structlog

from llmsp.config import LlmspSettings
from llmsp.git import RepoIdentity
from llmsp.llm import CompletionClient, Message
from llmsp.sourcegraph import SourcegraphClient
from llmsp.telemetry import EventLogger

from .cancellation import SingleFlight

logger = structlog.get_logger(__name__)


class DocumentStore:
    """Full-text snapshots of open documents, keyed by URI."""

    def __init__(self) -> None:
        self._documents: dict[str, str] = {}

    def get(self, uri: str) -> str:
        """Current text of ``uri``, or "" for a document never opened."""
        return self._documents.get(uri, "")

    def set(self, uri: str, text: str) -> None:
        self._documents[uri] = text

    def remove(self, uri: str) -> None:
        self._documents.pop(uri, None)

    def __contains__(self, uri: object) -> bool:
        return uri in self._documents

    def __len__(self) -> int:
        return len(self._documents)


class InteractionMemory:
    """Append-only conversation history, cleared only by an explicit forget."""

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def append(self, *messages: Message) -> None:
        self._messages.extend(messages)

    def clear(self) -> None:
        self._messages = []

    def snapshot(self) -> list[Message]:
        return list(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __len__(self) -> int:
        return len(self._messages)


def _idle_event() -> asyncio.Event:
    event = asyncio.Event()
    event.set()
    return event


@dataclass
class Session:
    """Everything a handler needs to serve one editor connection."""

    settings: LlmspSettings
    completions: CompletionClient
    sourcegraph: SourcegraphClient
    events: EventLogger
    repo: RepoIdentity = field(default_factory=RepoIdentity)
    documents: DocumentStore = field(default_factory=DocumentStore)
    memory: InteractionMemory = field(default_factory=InteractionMemory)
    single_flight: SingleFlight = field(default_factory=SingleFlight)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    _active: int = field(default=0, init=False, repr=False)
    _idle: asyncio.Event = field(default_factory=_idle_event, init=False, repr=False)

    @classmethod
    def from_settings(
        cls,
        settings: LlmspSettings,
        documents: DocumentStore | None = None,
        memory: InteractionMemory | None = None,
    ) -> "Session":
        """Build a session and its HTTP clients from resolved settings.

        Passing the document store and memory of a previous session carries
        them over a reconfiguration.
        """
        sourcegraph = SourcegraphClient(
            settings.sourcegraph_url,
            settings.access_token,
            timeout=settings.request_timeout,
        )
        completions = CompletionClient(
            settings.sourcegraph_url,
            settings.access_token,
            timeout=settings.request_timeout,
        )
        events = EventLogger.create(
            sourcegraph,
            server_url=settings.sourcegraph_url,
            uid_path=settings.anonymous_uid_file,
            enabled=settings.telemetry_enabled,
            timeout=settings.request_timeout,
        )
        return cls(
            settings=settings,
            completions=completions,
            sourcegraph=sourcegraph,
            events=events,
            documents=documents if documents is not None else DocumentStore(),
            memory=memory if memory is not None else InteractionMemory(),
            single_flight=SingleFlight(settings.debounce_seconds),
        )

    async def update_document(self, uri: str, text: str) -> None:
        async with self.lock:
            self.documents.set(uri, text)

    async def close_document(self, uri: str) -> None:
        async with self.lock:
            self.documents.remove(uri)

    async def remember(self, *messages: Message) -> None:
        async with self.lock:
            self.memory.append(*messages)

    async def forget(self) -> None:
        async with self.lock:
            self.memory.clear()
        logger.info("memory.cleared")

    @asynccontextmanager
    async def track(self) -> AsyncIterator[None]:
        """Mark a request as running on this session's backend clients."""
        self._active += 1
        self._idle.clear()
        try:
            yield
        finally:
            self._active -= 1
            if self._active == 0:
                self._idle.set()

    async def close(self) -> None:
        """Close the backend clients once every tracked request has finished."""
        if self._active:
            logger.info("session.draining", requests=self._active)
        await self._idle.wait()
        await self.events.aclose()
        await self.completions.aclose()
        await self.sourcegraph.aclose()
