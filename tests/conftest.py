"""Pytest configuration and fixtures."""

from collections.abc import AsyncIterator
from typing import Any

import pytest
from lsprotocol.types import Diagnostic, MessageType, WorkspaceEdit

from llmsp.config import LlmspSettings
from llmsp.errors import BackendError
from llmsp.git import RepoIdentity
from llmsp.llm import CompletionParameters
from llmsp.session import Session, SingleFlight
from llmsp.sourcegraph import EmbeddingsSearchResult

# Enable pytest-asyncio for all tests
pytest_plugins = ("pytest_asyncio",)

SERVER_URL = "https://sourcegraph.example.com"


class FakeSearcher:
    """Stands in for SourcegraphClient's embeddings search."""

    def __init__(self, results: EmbeddingsSearchResult | None = None) -> None:
        self.results = results or EmbeddingsSearchResult()
        self.queries: list[tuple[str, str, int, int]] = []
        self.error: BackendError | None = None

    async def get_embeddings(
        self, repo_id: str, query: str, code_results: int, text_results: int
    ) -> EmbeddingsSearchResult:
        self.queries.append((repo_id, query, code_results, text_results))
        if self.error is not None:
            raise self.error
        return self.results

    async def aclose(self) -> None:
        pass


class FakeCompletions:
    """Stands in for CompletionClient; records every prompt it receives."""

    def __init__(self, answer: str = "", chunks: list[str] | None = None) -> None:
        self.answer = answer
        self.chunks = chunks or []
        self.calls: list[CompletionParameters] = []
        self.error: BackendError | None = None

    async def get_completion(
        self, params: CompletionParameters, include_prompt_text: bool = False
    ) -> str:
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        if include_prompt_text:
            return params.priming_text + self.answer
        return self.answer

    async def stream_completion(
        self, params: CompletionParameters, include_prompt_text: bool = False
    ) -> AsyncIterator[str]:
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        prefix = params.priming_text if include_prompt_text else ""
        for chunk in self.chunks:
            yield prefix + chunk

    async def aclose(self) -> None:
        pass


class FakeEvents:
    """Collects telemetry event names instead of sending them."""

    def __init__(self) -> None:
        self.events: list[str] = []

    def log(self, event_name: str) -> None:
        self.events.append(event_name)

    async def aclose(self) -> None:
        pass


class FakeEditor:
    """Records everything the orchestrator asks the editor to do."""

    def __init__(self) -> None:
        self.diagnostics: list[tuple[str, list[Diagnostic]]] = []
        self.edits: list[WorkspaceEdit] = []
        self.nowait_edits: list[WorkspaceEdit] = []
        self.notifications: list[tuple[str, Any]] = []
        self.messages: list[tuple[str, MessageType]] = []

    def publish_diagnostics(self, uri: str, diagnostics: list[Diagnostic]) -> None:
        self.diagnostics.append((uri, diagnostics))

    async def apply_edit(self, edit: WorkspaceEdit) -> bool:
        self.edits.append(edit)
        return True

    def apply_edit_nowait(self, edit: WorkspaceEdit) -> None:
        self.nowait_edits.append(edit)

    def notify(self, method: str, payload: Any) -> None:
        self.notifications.append((method, payload))

    def log_message(self, message: str, message_type: MessageType) -> None:
        self.messages.append((message, message_type))


@pytest.fixture
def settings() -> LlmspSettings:
    """Settings pointing at a fake instance, with telemetry off."""
    return LlmspSettings(
        sourcegraph_url=SERVER_URL,
        access_token="sgp_test",
        telemetry_enabled=False,
        debounce_seconds=0.01,
    )


@pytest.fixture
def repo() -> RepoIdentity:
    return RepoIdentity(
        remote_url="git@github.com:acme/widgets.git",
        canonical_name="github.com/acme/widgets",
        id="UmVwb3NpdG9yeTox",
    )


@pytest.fixture
def searcher() -> FakeSearcher:
    return FakeSearcher()


@pytest.fixture
def completions() -> FakeCompletions:
    return FakeCompletions()


@pytest.fixture
def events() -> FakeEvents:
    return FakeEvents()


@pytest.fixture
def editor() -> FakeEditor:
    return FakeEditor()


@pytest.fixture
def session(
    settings: LlmspSettings,
    repo: RepoIdentity,
    searcher: FakeSearcher,
    completions: FakeCompletions,
    events: FakeEvents,
) -> Session:
    """A session wired to in-memory fakes instead of HTTP clients."""
    return Session(
        settings=settings,
        completions=completions,  # type: ignore[arg-type]
        sourcegraph=searcher,  # type: ignore[arg-type]
        events=events,  # type: ignore[arg-type]
        repo=repo,
        single_flight=SingleFlight(settings.debounce_seconds),
    )
