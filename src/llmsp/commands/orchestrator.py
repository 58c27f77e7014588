"""Command orchestrator: prompt, model call, and editor effect per command.

Every command follows the same outline. It reads the selection from the
session's document store, asks the context assembler for a prompt, calls
the model, and turns the answer into an editor-visible effect: a workspace
edit, a set of diagnostics, a chat notification, or a new memory turn.
"""

from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import unquote, urlparse

import structlog
from lsprotocol.types import MessageType

from llmsp.context import AssembledPrompt, ContextAssembler
from llmsp.context.formatting import (
    fenced,
    format_docstring_request,
    format_error_request,
    format_language,
    format_question_request,
    format_snippet_for_memory,
    format_suggestion_request,
    format_todo_request,
)
from llmsp.context.languages import (
    comment_prefix,
    determine_language,
    fence_tag,
    get_file_snippet,
    number_lines,
)
from llmsp.diagnostics import DiagnosticPublisher
from llmsp.errors import BackendError, CommandArgumentError
from llmsp.llm import CompletionParameters, Message
from llmsp.session import Session

from .editor import Editor, replace_range_edit
from .models import (
    AnswerCommand,
    ChatCommand,
    Command,
    DocstringCommand,
    ExplainCommand,
    ExplainErrorsCommand,
    ForgetCommand,
    HistoryCommand,
    InstructCommand,
    RememberCommand,
    SuggestCommand,
    TodosCommand,
)

logger = structlog.get_logger(__name__)

CODE_FENCE_END = "\n```"
CHAT_NOTIFICATION = "cody/chat"

# Search sizes for commands that do not use the chat defaults
SNIPPET_CODE_RESULTS = 8
SNIPPET_TEXT_RESULTS = 2


def strip_code_fence(text: str, file_name: str) -> str:
    """
    Extract the code from a fenced answer.

    Cuts at the first closing fence and removes a leading opening fence for
    the file's language. Text without a closing fence is kept as is.
    """
    end = text.find(CODE_FENCE_END)
    if end != -1:
        text = text[:end]
    return text.removeprefix(f"```{fence_tag(file_name)}\n")


def uri_to_path(uri: str) -> str:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return unquote(parsed.path)
    return uri


def event_name(command: str) -> str:
    return f"CodyNeovimExtension:codeAction:{command}:executed"


class CommandOrchestrator:
    """Runs workspace commands against one session and one editor."""

    def __init__(self, session: Session, editor: Editor) -> None:
        self.session = session
        self.editor = editor
        self.diagnostics = DiagnosticPublisher(editor.publish_diagnostics)
        self._handlers: dict[type[Command], Callable[[Any], Awaitable[Any]]] = {
            SuggestCommand: self.suggest,
            DocstringCommand: self.docstring,
            TodosCommand: self.implement_todos,
            AnswerCommand: self.answer,
            InstructCommand: self.instruct,
            ExplainCommand: self.explain,
            RememberCommand: self.remember,
            HistoryCommand: self.history,
            ForgetCommand: self.forget,
            ChatCommand: self.chat,
            ExplainErrorsCommand: self.explain_errors,
        }

    def assembler(self) -> ContextAssembler:
        settings = self.session.settings
        return ContextAssembler(
            self.session.sourcegraph,
            self.session.repo,
            max_prompt_tokens=settings.max_prompt_tokens,
            max_current_file_tokens=settings.max_current_file_tokens,
        )

    async def execute(self, command: Command) -> Any:
        """Run ``command`` to completion and return its result payload."""
        handler = self._handlers.get(type(command))
        if handler is None:
            raise CommandArgumentError(command.name, "no handler registered")
        logger.info("command.executing", command=command.name)
        async with self.session.track():
            result = await handler(command)
        logger.info("command.executed", command=command.name)
        return result

    def _selection(self, file: str, start_line: int, end_line: int) -> tuple[str, str]:
        contents = self.session.documents.get(file)
        return contents, get_file_snippet(contents, start_line, end_line)

    async def _complete(
        self, prompt: AssembledPrompt, include_prompt_text: bool = False
    ) -> str:
        params = CompletionParameters(messages=prompt.messages)
        return await self.session.completions.get_completion(
            params, include_prompt_text=include_prompt_text
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def suggest(self, command: SuggestCommand) -> None:
        """Stream line-addressed suggestions for the selection as diagnostics."""
        _, snippet = self._selection(command.file, command.start_line, command.end_line)
        numbered = number_lines(snippet, command.start_line)
        prompt = await self.assembler().add_context(
            [
                Message.human(format_suggestion_request(uri_to_path(command.file), numbered)),
                Message.assistant("Line"),
            ],
            code_results=SNIPPET_CODE_RESULTS,
            text_results=0,
            search_query=snippet,
        )
        params = CompletionParameters(messages=prompt.messages)
        async for chunk in self.session.completions.stream_completion(
            params, include_prompt_text=True
        ):
            await self.diagnostics.publish(command.file, chunk)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    async def docstring(self, command: DocstringCommand) -> None:
        """Insert a generated doc comment above the selection.

        The edit is sent without waiting for the editor to acknowledge it.
        """
        self.session.events.log(event_name(command.name))
        contents, snippet = self._selection(
            command.file, command.start_line, command.end_line
        )
        prefix = comment_prefix(determine_language(command.file))
        prompt = await self.assembler().add_context(
            [
                Message.human(format_docstring_request(command.file, snippet)),
                Message.assistant(prefix),
            ],
            code_results=0,
            text_results=0,
        )
        try:
            docstring = await self._complete(prompt, include_prompt_text=True)
        except BackendError as e:
            logger.error("command.model_failed", command=command.name, error=str(e))
            return

        edit = replace_range_edit(
            command.file,
            contents,
            command.start_line,
            command.end_line,
            f"{docstring}\n{snippet}",
        )
        self.editor.apply_edit_nowait(edit)

    async def implement_todos(self, command: TodosCommand) -> None:
        """Replace the selection with an implementation of its TODOs."""
        self.session.events.log(event_name(command.name))
        contents, snippet = self._selection(
            command.file, command.start_line, command.end_line
        )
        prompt = await self.assembler().add_context(
            [
                Message.human(format_todo_request(command.file, snippet)),
                Message.assistant(f"```{fence_tag(command.file)}"),
            ],
            current_file=command.file,
            current_file_contents=contents,
            code_results=SNIPPET_CODE_RESULTS,
            text_results=0,
        )
        try:
            implemented = await self._complete(prompt, include_prompt_text=True)
        except BackendError as e:
            logger.error("command.model_failed", command=command.name, error=str(e))
            return

        implemented = strip_code_fence(implemented, command.file)
        await self.editor.apply_edit(
            replace_range_edit(
                command.file, contents, command.start_line, command.end_line, implemented
            )
        )

    async def answer(self, command: AnswerCommand) -> None:
        """Answer an ``ASK:`` comment in place, as comment lines below it."""
        self.session.events.log(event_name(command.name))
        contents, snippet = self._selection(
            command.file, command.start_line, command.end_line
        )
        prefix = comment_prefix(determine_language(command.file))
        marker = f"{prefix} ASK: "
        question = snippet.strip()
        if not prefix or not question.startswith(marker):
            raise CommandArgumentError(
                command.name, f"selection must start with '{marker.strip()}'"
            )
        question = question.removeprefix(marker)

        prompt = await self.assembler().add_context(
            [
                Message.human(format_question_request(prefix, question)),
                Message.assistant(f"{prefix} ANSWER: "),
            ],
            current_file=command.file,
            current_file_contents=contents,
            code_results=SNIPPET_CODE_RESULTS,
            text_results=SNIPPET_TEXT_RESULTS,
            search_query=question,
        )
        try:
            answer = await self._complete(prompt, include_prompt_text=True)
        except BackendError as e:
            logger.error("command.model_failed", command=command.name, error=str(e))
            return

        await self.editor.apply_edit(
            replace_range_edit(
                command.file,
                contents,
                command.start_line,
                command.end_line,
                f"{marker}{question}\n{answer}",
            )
        )

    async def instruct(self, command: InstructCommand) -> None:
        """Apply a free-form instruction to the selection.

        With ``overwrite`` the answer replaces the selection, otherwise it is
        inserted above it. With ``code_only`` the model is primed to answer
        with a fenced block and only the code is kept.
        """
        self.session.events.log(event_name(command.name))
        contents, snippet = self._selection(
            command.file, command.start_line, command.end_line
        )
        priming = f"```{fence_tag(command.file)}\n" if command.code_only else ""
        request = f"{command.instruction}\n{snippet}"
        settings = self.session.settings
        prompt = await self.assembler().add_context(
            [Message.human(request), Message.assistant(priming)],
            current_file=command.file,
            current_file_contents=contents,
            memory=self.session.memory.snapshot(),
            code_results=settings.code_results_count,
            text_results=settings.text_results_count,
        )
        try:
            implemented = await self._complete(prompt, include_prompt_text=True)
        except BackendError as e:
            logger.error("command.model_failed", command=command.name, error=str(e))
            return

        remembered = implemented
        if command.code_only:
            implemented = strip_code_fence(implemented, command.file)
            remembered = fenced(implemented, command.file)
        await self.session.remember(Message.human(request), Message.assistant(remembered))

        new_text = implemented
        if not command.overwrite:
            separator = "" if implemented.endswith("\n") else "\n"
            new_text = f"{implemented}{separator}{snippet}"
        await self.editor.apply_edit(
            replace_range_edit(
                command.file, contents, command.start_line, command.end_line, new_text
            )
        )

    # ------------------------------------------------------------------
    # Chat and memory
    # ------------------------------------------------------------------

    async def explain(self, command: ExplainCommand) -> None:
        """Stream an explanation (or code) for the selection to the chat view."""
        self.session.events.log(
            event_name("cody.explain" if command.code_only else "cody.diff")
        )
        contents, snippet = self._selection(
            command.file, command.start_line, command.end_line
        )
        human_message = f"{command.instruction}\n{fenced(snippet, command.file)}"
        priming = f"```{fence_tag(command.file)}\n" if command.code_only else ""
        prompt = await self.assembler().add_context(
            [
                *format_language(command.file),
                Message.human(human_message),
                Message.assistant(priming),
            ],
            current_file=command.file,
            current_file_contents=contents,
            memory=self.session.memory.snapshot(),
            code_results=SNIPPET_CODE_RESULTS,
            text_results=SNIPPET_TEXT_RESULTS,
        )

        final_message = ""
        params = CompletionParameters(messages=prompt.messages)
        async for chunk in self.session.completions.stream_completion(params):
            closed = False
            if command.code_only:
                end = chunk.find(CODE_FENCE_END)
                if end != -1:
                    chunk = chunk[:end]
                    closed = True
            final_message = chunk
            lines = [line.rstrip(" ") for line in chunk.strip().split("\n")]
            self.editor.notify(CHAT_NOTIFICATION, {"message": lines})
            if closed:
                break

        if command.code_only:
            final_message = fenced(final_message, command.file)
        await self.session.remember(
            Message.human(human_message), Message.assistant(final_message)
        )

    async def remember(self, command: RememberCommand) -> None:
        """Put the selection into conversation memory."""
        self.session.events.log(event_name(command.name))
        _, snippet = self._selection(command.file, command.start_line, command.end_line)
        path = uri_to_path(command.file)
        await self.session.remember(
            Message.human(
                format_snippet_for_memory(path, command.file, snippet), file_name=path
            ),
            Message.assistant("Ok."),
        )

    async def history(self, command: HistoryCommand) -> list[dict[str, Any]]:
        return [message.to_dict() for message in self.session.memory.snapshot()]

    async def forget(self, command: ForgetCommand) -> None:
        self.session.events.log(event_name(command.name))
        await self.session.forget()

    async def chat(self, command: ChatCommand) -> dict[str, str]:
        """One chat turn with full context and memory.

        Raises:
            BackendError: If the model call fails
        """
        self.session.events.log(event_name("cody.chat"))
        settings = self.session.settings
        prompt = await self.assembler().add_context(
            [Message.human(command.message), Message.assistant("")],
            current_file=command.file,
            current_file_contents=self.session.documents.get(command.file),
            memory=self.session.memory.snapshot(),
            code_results=settings.code_results_count,
            text_results=settings.text_results_count,
        )
        answer = (await self._complete(prompt)).strip()
        await self.session.remember(Message.human(command.message), Message.assistant(answer))
        return {"message": answer}

    async def explain_errors(self, command: ExplainErrorsCommand) -> dict[str, str]:
        """Explain an error message and echo the answer to the editor log.

        Raises:
            BackendError: If the model call fails; the failure is logged to
                the editor first
        """
        prompt = await self.assembler().add_context(
            [Message.human(format_error_request(command.message)), Message.assistant("")],
            code_results=0,
            text_results=0,
        )
        try:
            answer = await self._complete(prompt)
        except BackendError as e:
            self.editor.log_message(str(e), MessageType.Error)
            raise
        self.editor.log_message(answer, MessageType.Log)
        return {"answer": answer}
