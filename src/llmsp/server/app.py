"""Language server wiring: LSP features and commands onto the session."""

import os
import uuid
from collections.abc import AsyncIterator, Callable, Coroutine
from contextlib import asynccontextmanager
from typing import Any

import structlog
from lsprotocol import types
from pygls.exceptions import JsonRpcException
from pygls.lsp.server import LanguageServer

from llmsp import __version__
from llmsp.commands import (
    COMMAND_TYPES,
    CommandOrchestrator,
    CompletionProvider,
    get_code_actions,
    parse_command,
)
from llmsp.commands.models import EXPLAIN, SUGGEST
from llmsp.config import LlmspSettings, apply_editor_settings
from llmsp.errors import ConfigurationError
from llmsp.git import resolve_repo_identity
from llmsp.session import DocumentStore, Session

logger = structlog.get_logger(__name__)

# Commands long enough to deserve a progress indicator in the editor
PROGRESS_TITLES = {
    SUGGEST: "Cody: generating suggestions",
    EXPLAIN: "Cody: explaining",
}


class PyglsEditor:
    """The orchestrator's editor primitives, sent over a pygls connection."""

    def __init__(self, server: LanguageServer) -> None:
        self._server = server

    def publish_diagnostics(self, uri: str, diagnostics: list[types.Diagnostic]) -> None:
        self._server.text_document_publish_diagnostics(
            types.PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
        )

    async def apply_edit(self, edit: types.WorkspaceEdit) -> bool:
        result = await self._server.workspace_apply_edit_async(
            types.ApplyWorkspaceEditParams(edit=edit)
        )
        if not result.applied:
            logger.warning("edit.rejected", reason=result.failure_reason)
        return result.applied

    def apply_edit_nowait(self, edit: types.WorkspaceEdit) -> None:
        self._server.workspace_apply_edit(types.ApplyWorkspaceEditParams(edit=edit))

    def notify(self, method: str, payload: Any) -> None:
        self._server.protocol.notify(method, payload)

    def log_message(self, message: str, message_type: types.MessageType) -> None:
        self._server.window_log_message(
            types.LogMessageParams(type=message_type, message=message)
        )


class LlmspServer(LanguageServer):
    """Language server holding at most one live session.

    Documents are tracked from the first ``didOpen`` even before the
    Sourcegraph connection is configured, and survive reconfiguration
    together with the conversation memory.
    """

    def __init__(self, settings: LlmspSettings) -> None:
        super().__init__(
            "llmsp",
            __version__,
            text_document_sync_kind=types.TextDocumentSyncKind.Full,
        )
        self.settings = settings
        self.documents = DocumentStore()
        self.session: Session | None = None
        self.orchestrator: CommandOrchestrator | None = None
        self.completions: CompletionProvider | None = None
        self.initialization_options: Any = None
        self.editor = PyglsEditor(self)

    def require_session(self) -> Session:
        if self.session is None:
            raise ConfigurationError("Sourcegraph settings not present")
        return self.session

    async def configure(self, payload: Any, root_path: str | None = None) -> Session:
        """
        (Re)build the session from an editor configuration payload.

        Raises:
            ConfigurationError: If no Sourcegraph URL can be determined
        """
        settings = apply_editor_settings(self.settings, payload)
        previous = self.session
        session = Session.from_settings(
            settings,
            documents=self.documents,
            memory=previous.memory if previous is not None else None,
        )
        repo_path = settings.repo_path or root_path or os.getcwd()
        session.repo = await resolve_repo_identity(repo_path, session.sourcegraph)

        self.session = session
        self.orchestrator = CommandOrchestrator(session, self.editor)
        self.completions = CompletionProvider(session)
        if previous is not None:
            # Waits for requests still running on the old clients
            await previous.close()

        logger.info(
            "server.configured",
            sourcegraph_url=settings.sourcegraph_url,
            repo=session.repo.canonical_name or None,
        )
        return session

    async def update_document(self, uri: str, text: str) -> None:
        if self.session is not None:
            await self.session.update_document(uri, text)
        else:
            self.documents.set(uri, text)

    async def close_document(self, uri: str) -> None:
        if self.session is not None:
            await self.session.close_document(uri)
        else:
            self.documents.remove(uri)

    async def run_command(self, name: str, arguments: list[Any]) -> Any:
        command = parse_command(name, arguments)
        self.require_session()
        assert self.orchestrator is not None

        title = PROGRESS_TITLES.get(name)
        if title is None:
            return await self.orchestrator.execute(command)
        async with self.report_progress(title):
            return await self.orchestrator.execute(command)

    @asynccontextmanager
    async def report_progress(self, title: str) -> AsyncIterator[None]:
        """Report work-done progress around a block, if the client supports it."""
        token = await self._create_progress_token()
        if token is None:
            yield
            return

        self.work_done_progress.begin(token, types.WorkDoneProgressBegin(title=title))
        try:
            yield
        finally:
            self.work_done_progress.end(token, types.WorkDoneProgressEnd())

    async def _create_progress_token(self) -> str | None:
        window = self.client_capabilities.window
        if window is None or not window.work_done_progress:
            return None
        token = str(uuid.uuid4())
        try:
            await self.work_done_progress.create_async(token)
        except JsonRpcException as e:
            logger.debug("progress.create_failed", error=str(e))
            return None
        return token

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None
            self.orchestrator = None
            self.completions = None


def _command_handler(name: str) -> Callable[..., Coroutine[Any, Any, Any]]:
    async def handler(ls: LlmspServer, *args: Any) -> Any:
        return await ls.run_command(name, list(args))

    handler.__name__ = f"command_{name.replace('.', '_').replace('/', '_')}"
    return handler


def _document_text(ls: LlmspServer, params: types.DidChangeTextDocumentParams) -> str:
    change = params.content_changes[-1]
    if isinstance(change, types.TextDocumentContentChangeWholeDocument):
        return change.text
    return ls.workspace.get_text_document(params.text_document.uri).source


def create_server(settings: LlmspSettings | None = None) -> LlmspServer:
    """Create the language server with every feature and command registered."""
    server = LlmspServer(settings or LlmspSettings())

    @server.feature(types.INITIALIZE)
    def initialize(ls: LlmspServer, params: types.InitializeParams) -> None:
        ls.initialization_options = params.initialization_options

    @server.feature(types.INITIALIZED)
    async def initialized(ls: LlmspServer, params: types.InitializedParams) -> None:
        try:
            await ls.configure(ls.initialization_options, ls.workspace.root_path)
        except ConfigurationError as e:
            logger.info("server.awaiting_configuration", reason=str(e))

    @server.feature(types.WORKSPACE_DID_CHANGE_CONFIGURATION)
    async def did_change_configuration(
        ls: LlmspServer, params: types.DidChangeConfigurationParams
    ) -> None:
        try:
            await ls.configure(params.settings, ls.workspace.root_path)
        except ConfigurationError as e:
            logger.warning("server.configuration_rejected", error=str(e))
            ls.editor.log_message(str(e), types.MessageType.Error)

    @server.feature(types.TEXT_DOCUMENT_DID_OPEN)
    async def did_open(ls: LlmspServer, params: types.DidOpenTextDocumentParams) -> None:
        await ls.update_document(params.text_document.uri, params.text_document.text)

    @server.feature(types.TEXT_DOCUMENT_DID_CHANGE)
    async def did_change(
        ls: LlmspServer, params: types.DidChangeTextDocumentParams
    ) -> None:
        if params.content_changes:
            await ls.update_document(params.text_document.uri, _document_text(ls, params))

    @server.feature(types.TEXT_DOCUMENT_DID_CLOSE)
    async def did_close(ls: LlmspServer, params: types.DidCloseTextDocumentParams) -> None:
        await ls.close_document(params.text_document.uri)

    @server.feature(types.TEXT_DOCUMENT_COMPLETION, types.CompletionOptions())
    async def completion(
        ls: LlmspServer, params: types.CompletionParams
    ) -> types.CompletionList:
        if ls.completions is None:
            return types.CompletionList(is_incomplete=False, items=[])
        items = await ls.completions.complete(params.text_document.uri, params.position)
        return types.CompletionList(is_incomplete=True, items=items)

    @server.feature(types.TEXT_DOCUMENT_CODE_ACTION)
    def code_action(
        ls: LlmspServer, params: types.CodeActionParams
    ) -> list[types.Command]:
        if ls.session is None:
            return []
        return get_code_actions(ls.session, params.text_document.uri, params.range)

    @server.feature(types.SHUTDOWN)
    async def shutdown(ls: LlmspServer, params: None = None) -> None:
        await ls.close()
        logger.info("server.shutdown")

    for name in COMMAND_TYPES:
        server.command(name)(_command_handler(name))

    return server
