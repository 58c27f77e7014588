"""Context assembler: packs a token-bounded prompt from several sources."""

from collections.abc import Sequence
from dataclasses import dataclass, field, replace

import structlog

from llmsp.errors import BackendError, ConfigurationError
from llmsp.git import RepoIdentity
from llmsp.llm import Message
from llmsp.sourcegraph import SourcegraphClient

from .formatting import format_current_file, format_preamble, format_search_result
from .tokens import estimate_tokens, truncate_text, truncate_text_start

logger = structlog.get_logger(__name__)

# Head room kept inside the current-file allowance for the message wrapper
CURRENT_FILE_WRAPPER_TOKENS = 10


@dataclass
class AssembledPrompt:
    """A prompt ready for the model, with its budget bookkeeping."""

    messages: list[Message]
    token_count: int
    budget: int
    sources_used: dict[str, int] = field(default_factory=dict)


def count_tokens(messages: Sequence[Message]) -> int:
    return sum(estimate_tokens(m.text) for m in messages)


def trim_messages(
    messages: Sequence[Message],
    max_tokens: int,
) -> tuple[list[Message], int]:
    """
    Fit ``messages`` into ``max_tokens``, keeping the newest content.

    Walks from the last (most important) message backwards, keeping the
    tail of each text that still fits. The kept messages are returned in
    their original order. A prompt must start with a human turn, so a
    leading assistant message is dropped and its tokens refunded.

    Args:
        messages: Chronological messages, most important last
        max_tokens: Sub-budget for this block

    Returns:
        Tuple of (trimmed messages, tokens used)
    """
    trimmed: list[Message] = []
    tokens = 0
    for message in reversed(messages):
        if tokens >= max_tokens:
            break
        text, used = truncate_text_start(message.text, max_tokens - tokens)
        tokens += used
        trimmed.append(replace(message, text=text))
    trimmed.reverse()

    if trimmed and not trimmed[0].is_human:
        tokens -= estimate_tokens(trimmed[0].text)
        trimmed = trimmed[1:]
    return trimmed, tokens


class ContextAssembler:
    """Assemble prompts for one session under a fixed token budget.

    Sources, in priority order: the persona preamble and the immediate input
    (both mandatory), repository search results, the current file, and
    conversation memory. The mandatory blocks are paid for first; every other
    block is sized from what remains and truncated from its oldest end.
    """

    def __init__(
        self,
        searcher: SourcegraphClient,
        repo: RepoIdentity,
        max_prompt_tokens: int = 7000,
        max_current_file_tokens: int = 1000,
    ) -> None:
        """
        Initialize the assembler.

        Args:
            searcher: Client used for embeddings search
            repo: Repository identity; search is skipped without an id
            max_prompt_tokens: Hard ceiling for every assembled prompt
            max_current_file_tokens: Allowance for the current-file block

        Raises:
            ConfigurationError: If the budget cannot hold the preamble
        """
        self._searcher = searcher
        self._repo = repo
        self.max_prompt_tokens = max_prompt_tokens
        self.max_current_file_tokens = max_current_file_tokens
        self._logger = logger.bind(component="context_assembler")

        preamble_tokens = count_tokens(self.preamble())
        if preamble_tokens >= max_prompt_tokens:
            raise ConfigurationError(
                f"max_prompt_tokens={max_prompt_tokens} cannot hold the "
                f"{preamble_tokens}-token preamble"
            )

    def preamble(self) -> list[Message]:
        """Persona messages that open every prompt."""
        repo_name = self._repo.canonical_name if self._repo.available else ""
        return format_preamble(repo_name)

    def file_messages(self, file_name: str, contents: str) -> list[Message]:
        """Current-file block with the contents head-truncated to the cap."""
        excerpt, _ = truncate_text(
            contents, self.max_current_file_tokens - CURRENT_FILE_WRAPPER_TOKENS
        )
        return format_current_file(file_name, excerpt)

    async def search_messages(
        self,
        query: str,
        code_results: int,
        text_results: int,
    ) -> list[Message]:
        """
        Repository search results as human/assistant pairs.

        Results arrive most relevant first and are reversed so that the most
        relevant snippet ends up closest to the end of the prompt. Returns an
        empty list when no repository is resolved or the search fails.
        """
        if not self._repo.available or not query:
            return []
        try:
            found = await self._searcher.get_embeddings(
                self._repo.id, query, code_results, text_results
            )
        except BackendError as e:
            self._logger.warning("embeddings_search_failed", error=str(e))
            return []

        messages: list[Message] = []
        for result in reversed(found.all_results):
            messages.extend(format_search_result(result))
        return messages

    async def add_context(
        self,
        input_messages: Sequence[Message],
        current_file: str | None = None,
        current_file_contents: str = "",
        memory: Sequence[Message] = (),
        code_results: int = 12,
        text_results: int = 3,
        search_query: str | None = None,
    ) -> AssembledPrompt:
        """
        Build a prompt that never exceeds ``max_prompt_tokens``.

        Output order: preamble, search results, current file, memory, input.

        Args:
            input_messages: The immediate ask, usually a human message and an
                assistant priming message; kept whole whenever it fits
            current_file: Name of the open file, or None to omit the block
            current_file_contents: Full text of the open file
            memory: Conversation history, oldest first
            code_results: Code snippets to request from search
            text_results: Text snippets to request from search
            search_query: Query for search; defaults to the last human input

        Returns:
            AssembledPrompt with messages and token accounting
        """
        budget = self.max_prompt_tokens
        preamble = self.preamble()
        remaining = budget - count_tokens(preamble)

        # The input is reserved off the top so nothing else can starve it.
        # It is only cut when it could not fit under any circumstances.
        input_block = list(input_messages)
        input_tokens = count_tokens(input_block)
        if input_tokens > remaining:
            self._logger.warning(
                "input_exceeds_budget", input_tokens=input_tokens, available=remaining
            )
            input_block, input_tokens = trim_messages(input_block, remaining)
        remaining -= input_tokens

        file_block: list[Message] = []
        if current_file is not None:
            file_block, used = trim_messages(
                self.file_messages(current_file, current_file_contents),
                min(self.max_current_file_tokens, remaining),
            )
            remaining -= used

        if search_query is None:
            search_query = next(
                (m.text for m in reversed(input_block) if m.is_human), ""
            )
        search_block: list[Message] = []
        if self._repo.available and (code_results or text_results):
            search_budget = remaining // 2
            candidates = await self.search_messages(
                search_query, code_results, text_results
            )
            search_block, used = trim_messages(candidates, search_budget)
            remaining -= used

        memory_block: list[Message] = []
        for message in reversed(memory):
            if remaining <= 0:
                break
            text, used = truncate_text_start(message.text, remaining)
            remaining -= used
            memory_block.append(replace(message, text=text))
        memory_block.reverse()

        messages = preamble + search_block + file_block + memory_block + input_block
        token_count = budget - remaining
        sources_used = {
            "preamble": len(preamble),
            "search": len(search_block),
            "current_file": len(file_block),
            "memory": len(memory_block),
            "input": len(input_block),
        }
        self._logger.debug(
            "prompt_assembled",
            token_count=token_count,
            budget=budget,
            **sources_used,
        )
        return AssembledPrompt(
            messages=messages,
            token_count=token_count,
            budget=budget,
            sources_used=sources_used,
        )
