"""Tests for the language server wiring."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, PropertyMock, patch

import pytest
from lsprotocol.types import (
    ApplyWorkspaceEditResult,
    ClientCapabilities,
    Diagnostic,
    MessageType,
    Position,
    Range,
    WindowClientCapabilities,
    WorkDoneProgressBegin,
    WorkDoneProgressEnd,
    WorkspaceEdit,
)
from pygls.exceptions import JsonRpcException

from llmsp.config import LlmspSettings
from llmsp.errors import CommandArgumentError, ConfigurationError
from llmsp.git import RepoIdentity
from llmsp.llm import CompletionParameters, Message
from llmsp.server import LlmspServer, PyglsEditor, create_server
from tests.conftest import FakeCompletions

EDITOR_SETTINGS = {"llmsp": {"sourcegraph": {"url": "https://sg.example.com"}}}
PY_FILE = "file:///work/app.py"


class HeldCompletions(FakeCompletions):
    """Holds every model call open until released, and records closing."""

    def __init__(self, answer: str) -> None:
        super().__init__(answer)
        self.release = asyncio.Event()
        self.closed = False

    async def get_completion(
        self, params: CompletionParameters, include_prompt_text: bool = False
    ) -> str:
        answer = await super().get_completion(params, include_prompt_text)
        await self.release.wait()
        return answer

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def server_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> LlmspSettings:
    monkeypatch.delenv("LLMSP_SOURCEGRAPH_URL", raising=False)
    return LlmspSettings(
        telemetry_enabled=False,
        anonymous_uid_file=tmp_path / "uid",
        repo_path=str(tmp_path),
    )


@pytest.fixture
def resolve_repo():
    """Avoid touching git while configuring."""
    with patch(
        "llmsp.server.app.resolve_repo_identity",
        AsyncMock(return_value=RepoIdentity()),
    ) as mock:
        yield mock


class TestPyglsEditor:
    """The editor adapter forwards to the pygls server."""

    def test_publish_diagnostics(self) -> None:
        server = MagicMock()
        diagnostic = Diagnostic(
            range=Range(start=Position(line=0, character=0), end=Position(line=0, character=0)),
            message="hint",
        )

        PyglsEditor(server).publish_diagnostics("file:///a.go", [diagnostic])

        [params] = server.text_document_publish_diagnostics.call_args.args
        assert params.uri == "file:///a.go"
        assert params.diagnostics == [diagnostic]

    @pytest.mark.asyncio
    async def test_apply_edit_waits_for_result(self) -> None:
        server = MagicMock()
        server.workspace_apply_edit_async = AsyncMock(
            return_value=ApplyWorkspaceEditResult(applied=False, failure_reason="stale")
        )

        applied = await PyglsEditor(server).apply_edit(WorkspaceEdit())

        assert applied is False
        server.workspace_apply_edit_async.assert_awaited_once()

    def test_apply_edit_nowait(self) -> None:
        server = MagicMock()
        PyglsEditor(server).apply_edit_nowait(WorkspaceEdit())
        server.workspace_apply_edit.assert_called_once()

    def test_notify_and_log(self) -> None:
        server = MagicMock()
        editor = PyglsEditor(server)

        editor.notify("cody/chat", {"message": ["hi"]})
        editor.log_message("explained", MessageType.Log)

        server.protocol.notify.assert_called_once_with("cody/chat", {"message": ["hi"]})
        [params] = server.window_log_message.call_args.args
        assert params.message == "explained"
        assert params.type == MessageType.Log


class TestLlmspServer:
    """Session lifecycle on the server."""

    def test_create_server(self, server_settings: LlmspSettings) -> None:
        server = create_server(server_settings)
        assert isinstance(server, LlmspServer)
        assert server.session is None

    @pytest.mark.asyncio
    async def test_commands_need_configuration(self, server_settings: LlmspSettings) -> None:
        server = LlmspServer(server_settings)
        with pytest.raises(ConfigurationError, match="Sourcegraph settings not present"):
            await server.run_command("cody.forget", [])

    @pytest.mark.asyncio
    async def test_bad_arguments_rejected(self, server_settings: LlmspSettings) -> None:
        server = LlmspServer(server_settings)
        with pytest.raises(CommandArgumentError):
            await server.run_command("suggest", ["file:///a.go"])

    @pytest.mark.asyncio
    async def test_configure_requires_url(self, server_settings: LlmspSettings) -> None:
        server = LlmspServer(server_settings)
        with pytest.raises(ConfigurationError):
            await server.configure({})

    @pytest.mark.asyncio
    async def test_documents_tracked_before_configuration(
        self, server_settings: LlmspSettings, resolve_repo: AsyncMock
    ) -> None:
        server = LlmspServer(server_settings)
        await server.update_document("file:///a.go", "package a")

        session = await server.configure(EDITOR_SETTINGS)

        assert session.documents.get("file:///a.go") == "package a"
        assert session.settings.sourcegraph_url == "https://sg.example.com"
        resolve_repo.assert_awaited_once()
        assert resolve_repo.await_args.args[0] == server_settings.repo_path
        await server.close()

    @pytest.mark.asyncio
    async def test_reconfigure_keeps_memory(
        self, server_settings: LlmspSettings, resolve_repo: AsyncMock
    ) -> None:
        server = LlmspServer(server_settings)
        first = await server.configure(EDITOR_SETTINGS)
        await first.remember(Message.human("q"), Message.assistant("a"))

        second = await server.configure(
            {"llmsp": {"sourcegraph": {"url": "https://other.example.com"}}}
        )

        assert second is not first
        assert len(second.memory) == 2
        assert server.orchestrator is not None
        assert server.orchestrator.session is second
        await server.close()
        assert server.session is None

    @pytest.mark.asyncio
    async def test_run_command(
        self, server_settings: LlmspSettings, resolve_repo: AsyncMock
    ) -> None:
        server = LlmspServer(server_settings)
        session = await server.configure(EDITOR_SETTINGS)
        await session.remember(Message.human("q"), Message.assistant("a"))

        history = await server.run_command("cody.chat/history", [])
        await server.run_command("cody.forget", [])

        assert history == [
            {"speaker": "HUMAN", "text": "q"},
            {"speaker": "ASSISTANT", "text": "a"},
        ]
        assert len(session.memory) == 0
        await server.close()

    @pytest.mark.asyncio
    async def test_close_document(
        self, server_settings: LlmspSettings, resolve_repo: AsyncMock
    ) -> None:
        server = LlmspServer(server_settings)
        await server.configure(EDITOR_SETTINGS)
        await server.update_document("file:///a.go", "package a")

        await server.close_document("file:///a.go")

        assert server.documents.get("file:///a.go") == ""
        await server.close()

    @pytest.mark.asyncio
    async def test_reconfigure_waits_for_running_completion(
        self, server_settings: LlmspSettings, resolve_repo: AsyncMock
    ) -> None:
        """The old session's clients stay open until its completion returns."""
        server = LlmspServer(server_settings)
        first = await server.configure(EDITOR_SETTINGS)
        await first.completions.aclose()
        held = HeldCompletions("total = 0")
        first.completions = held  # type: ignore[assignment]
        await server.update_document(PY_FILE, "tot")
        assert server.completions is not None

        pending = asyncio.create_task(
            server.completions.complete(PY_FILE, Position(line=0, character=3))
        )
        while not held.calls:
            await asyncio.sleep(0.005)

        reconfigure = asyncio.create_task(server.configure(EDITOR_SETTINGS))
        await asyncio.sleep(0.05)
        assert server.session is not first
        assert not held.closed
        assert not reconfigure.done()

        held.release.set()
        [item] = await pending
        await reconfigure

        assert item.label == "total = 0"
        assert held.closed
        await server.close()


def client_capabilities(work_done_progress: bool | None) -> ClientCapabilities:
    return ClientCapabilities(
        window=WindowClientCapabilities(work_done_progress=work_done_progress)
    )


@pytest.fixture
def progress_server(server_settings: LlmspSettings):  # type: ignore[no-untyped-def]
    """A server whose client capabilities and progress manager are stubbed."""
    server = LlmspServer(server_settings)
    server.session = MagicMock()
    server.orchestrator = MagicMock(execute=AsyncMock(return_value=None))
    progress = MagicMock(create_async=AsyncMock())
    with patch.object(
        LlmspServer, "work_done_progress", new_callable=PropertyMock, return_value=progress
    ), patch.object(
        LlmspServer,
        "client_capabilities",
        new_callable=PropertyMock,
        return_value=client_capabilities(True),
    ) as capabilities:
        yield server, progress, capabilities


class TestProgress:
    """Work-done progress around long-running commands."""

    @pytest.mark.asyncio
    async def test_suggest_reports_begin_and_end(self, progress_server) -> None:  # type: ignore[no-untyped-def]
        server, progress, _ = progress_server

        await server.run_command("suggest", ["file:///a.go", 2, 5])

        [created] = progress.create_async.await_args.args
        [begin_token, begin] = progress.begin.call_args.args
        [end_token, end] = progress.end.call_args.args
        assert begin_token == created
        assert end_token == created
        assert isinstance(begin, WorkDoneProgressBegin)
        assert begin.title == "Cody: generating suggestions"
        assert isinstance(end, WorkDoneProgressEnd)

    @pytest.mark.asyncio
    async def test_end_sent_when_command_fails(self, progress_server) -> None:  # type: ignore[no-untyped-def]
        server, progress, _ = progress_server
        server.orchestrator.execute.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await server.run_command("cody.explain", ["file:///a.py", 0, 1, "explain"])

        assert progress.begin.call_args.args[1].title == "Cody: explaining"
        progress.end.assert_called_once()

    @pytest.mark.asyncio
    async def test_skipped_without_client_support(self, progress_server) -> None:  # type: ignore[no-untyped-def]
        server, progress, capabilities = progress_server
        capabilities.return_value = client_capabilities(None)

        await server.run_command("suggest", ["file:///a.go", 2, 5])

        progress.create_async.assert_not_awaited()
        progress.begin.assert_not_called()
        server.orchestrator.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_skipped_when_token_rejected(self, progress_server) -> None:  # type: ignore[no-untyped-def]
        server, progress, _ = progress_server
        progress.create_async.side_effect = JsonRpcException("rejected")

        await server.run_command("suggest", ["file:///a.go", 2, 5])

        progress.begin.assert_not_called()
        progress.end.assert_not_called()
        server.orchestrator.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_commands_have_no_progress(self, progress_server) -> None:  # type: ignore[no-untyped-def]
        server, progress, _ = progress_server

        await server.run_command("cody.forget", [])

        progress.create_async.assert_not_awaited()
