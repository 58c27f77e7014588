"""Live-typing code completion, guarded by the single-flight protocol."""

import structlog
from lsprotocol.types import CompletionItem, CompletionItemKind, Position, Range, TextEdit

from llmsp.context import ContextAssembler
from llmsp.context.formatting import format_completion_request
from llmsp.context.languages import fence_tag, get_file_snippet, leading_whitespace
from llmsp.errors import BackendError, CompletionCancelledError
from llmsp.llm import CompletionParameters, Message
from llmsp.session import CancellationToken, Session

logger = structlog.get_logger(__name__)

CODE_FENCE_END = "\n```"
COMPLETION_CODE_RESULTS = 8


class CompletionProvider:
    """Answers ``textDocument/completion`` with one model-generated snippet.

    Requests that are superseded by a newer keystroke, during the debounce
    or while waiting on a backend, end silently with no items and no further
    network calls.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    async def complete(self, uri: str, position: Position) -> list[CompletionItem]:
        async with self.session.track():
            return await self._complete(uri, position)

    async def _complete(self, uri: str, position: Position) -> list[CompletionItem]:
        flight = self.session.single_flight
        try:
            token = await flight.begin()
        except CompletionCancelledError:
            logger.debug("completion.cancelled", uri=uri, stage="debounce")
            return []

        try:
            completion = await self._request(uri, position, token)
        except CompletionCancelledError:
            logger.debug("completion.cancelled", uri=uri, stage="backend")
            return []
        except BackendError as e:
            logger.warning("completion.failed", uri=uri, error=str(e))
            return []
        finally:
            await flight.finish(token)

        return [self._to_item(uri, position, completion)]

    async def _request(
        self, uri: str, position: Position, token: CancellationToken
    ) -> str:
        settings = self.session.settings
        contents = self.session.documents.get(uri)
        snippet = get_file_snippet(contents, position.line, position.line)
        assembler = ContextAssembler(
            self.session.sourcegraph,
            self.session.repo,
            max_prompt_tokens=settings.max_prompt_tokens,
            max_current_file_tokens=settings.max_current_file_tokens,
        )
        prompt = await assembler.add_context(
            [
                Message.human(format_completion_request(uri, snippet)),
                Message.assistant(f"```{fence_tag(uri)}\n"),
            ],
            current_file=uri,
            current_file_contents=contents,
            code_results=COMPLETION_CODE_RESULTS,
            text_results=0,
            search_query=snippet,
        )
        token.raise_if_cancelled()

        completion = await self.session.completions.get_completion(
            CompletionParameters(messages=prompt.messages)
        )
        token.raise_if_cancelled()
        return completion

    def _to_item(self, uri: str, position: Position, completion: str) -> CompletionItem:
        end = completion.find(CODE_FENCE_END)
        if end != -1:
            completion = completion[:end]

        current_line = get_file_snippet(
            self.session.documents.get(uri), position.line, position.line
        )
        indentation = leading_whitespace(current_line)
        indented = "\n".join(indentation + line for line in completion.split("\n"))

        return CompletionItem(
            label=completion,
            kind=CompletionItemKind.Snippet,
            detail=completion,
            text_edit=TextEdit(
                range=Range(start=Position(line=position.line, character=0), end=position),
                new_text=indented,
            ),
        )
