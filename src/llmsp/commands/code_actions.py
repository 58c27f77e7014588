"""Code actions offered for a selection."""

from lsprotocol.types import Command as LspCommand
from lsprotocol.types import Range

from llmsp.context.languages import comment_prefix, determine_language, get_file_snippet
from llmsp.session import Session

from .models import ANSWER, DOCSTRING, FORGET, REMEMBER, SUGGEST, TODOS


def get_code_actions(session: Session, uri: str, selection: Range) -> list[LspCommand]:
    """
    Commands applicable to ``selection`` in ``uri``.

    Suggestions, docstrings and remembering are always offered. Forgetting
    needs something in memory; TODO implementation and question answering
    need a ``TODO`` or ``ASK`` comment in the selection.
    """
    arguments = [uri, selection.start.line, selection.end.line]
    commands = [
        LspCommand(title="Provide suggestions", command=SUGGEST, arguments=arguments),
        LspCommand(title="Generate docstring", command=DOCSTRING, arguments=arguments),
        LspCommand(title="Cody: Remember this", command=REMEMBER, arguments=arguments),
    ]
    if len(session.memory) > 0:
        commands.append(LspCommand(title="Cody: Forget", command=FORGET))

    prefix = comment_prefix(determine_language(uri))
    if not prefix:
        return commands

    selected = get_file_snippet(
        session.documents.get(uri), selection.start.line, selection.end.line
    )
    if f"{prefix} TODO" in selected:
        commands.append(
            LspCommand(title="Implement TODOs", command=TODOS, arguments=arguments)
        )
    if f"{prefix} ASK" in selected:
        commands.append(
            LspCommand(title="Answer question", command=ANSWER, arguments=arguments)
        )
    return commands
