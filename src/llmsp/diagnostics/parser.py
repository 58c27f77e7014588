"""Turn free-text, line-addressed model suggestions into diagnostics.

The model is asked to answer in the form ``Line N: message`` or
``Line N-M: message``. It does not always comply, so parsing is tolerant:
any line that does not fit the format is skipped and the rest of the
answer is still used.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog
from lsprotocol.types import Diagnostic, DiagnosticSeverity, Position, Range

logger = structlog.get_logger(__name__)

LINE_PREFIX = "Line "
SEPARATOR = ": "
DIAGNOSTIC_SOURCE = "llmsp"


@dataclass(frozen=True)
class Suggestion:
    """A model suggestion addressed to an inclusive line range."""

    start_line: int
    end_line: int
    message: str


def _parse_line_number(text: str) -> int | None:
    if not (text.isascii() and text.isdecimal()):
        return None
    return int(text)


def _parse_line_range(text: str) -> tuple[int, int] | None:
    start, dash, end = text.partition("-")
    first = _parse_line_number(start)
    last = _parse_line_number(end) if dash else first
    if first is None or last is None:
        return None
    return first, last


def parse_suggestions(text: str) -> list[Suggestion]:
    """
    Parse every well-formed suggestion line in ``text``.

    Args:
        text: Raw (possibly partial) model answer

    Returns:
        Suggestions in the order they appear; malformed lines are skipped

    Example:
        >>> parse_suggestions("Line 5-7: refactor\\ngarbage")
        [Suggestion(start_line=5, end_line=7, message='refactor')]
    """
    suggestions = []
    for line in text.split("\n"):
        parts = line.split(SEPARATOR, 1)
        if len(parts) < 2:
            continue
        address, message = parts
        if not address.startswith(LINE_PREFIX):
            continue
        line_range = _parse_line_range(address[len(LINE_PREFIX):])
        if line_range is None:
            continue
        suggestions.append(Suggestion(*line_range, message))
    return suggestions


def to_diagnostics(suggestions: list[Suggestion]) -> list[Diagnostic]:
    """Informational diagnostics anchored at character 0 of each range."""
    return [
        Diagnostic(
            range=Range(
                start=Position(line=s.start_line, character=0),
                end=Position(line=s.end_line, character=0),
            ),
            message=s.message,
            severity=DiagnosticSeverity.Information,
            source=DIAGNOSTIC_SOURCE,
        )
        for s in suggestions
    ]


PublishFn = Callable[[str, list[Diagnostic]], Awaitable[None] | None]


class DiagnosticPublisher:
    """Publishes the diagnostic set derived from a streamed answer.

    Each streamed chunk is the whole answer so far, so every publish
    re-parses the full text and replaces the document's diagnostics rather
    than adding to them.
    """

    def __init__(self, publish: PublishFn) -> None:
        self._publish = publish
        self.current: dict[str, list[Diagnostic]] = {}

    async def publish(self, uri: str, cumulative_text: str) -> list[Diagnostic]:
        diagnostics = to_diagnostics(parse_suggestions(cumulative_text))
        self.current[uri] = diagnostics
        result = self._publish(uri, diagnostics)
        if result is not None:
            await result
        logger.debug("diagnostics.published", uri=uri, count=len(diagnostics))
        return diagnostics
