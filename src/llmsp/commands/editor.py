"""The editor-side primitives commands need, and edit construction."""

from typing import Any, Protocol

from lsprotocol.types import (
    Diagnostic,
    MessageType,
    OptionalVersionedTextDocumentIdentifier,
    Position,
    Range,
    TextDocumentEdit,
    TextEdit,
    WorkspaceEdit,
)

from llmsp.context.languages import line_length


class Editor(Protocol):
    """What the orchestrator may ask of the connected editor."""

    def publish_diagnostics(self, uri: str, diagnostics: list[Diagnostic]) -> None: ...

    async def apply_edit(self, edit: WorkspaceEdit) -> bool:
        """Apply ``edit`` and wait for the editor's answer."""
        ...

    def apply_edit_nowait(self, edit: WorkspaceEdit) -> None:
        """Send ``edit`` without waiting for the editor's answer."""
        ...

    def notify(self, method: str, payload: Any) -> None: ...

    def log_message(self, message: str, message_type: MessageType) -> None: ...


def replace_range_edit(
    uri: str,
    contents: str,
    start_line: int,
    end_line: int,
    new_text: str,
) -> WorkspaceEdit:
    """
    A single edit replacing whole lines ``start_line..end_line``.

    The range runs from character 0 of the first line to the end of the
    last line as it is in ``contents``. Lines past the end of the document
    are clamped to its last line, matching ``get_file_snippet``.
    """
    last_line = contents.count("\n")
    end_line = min(end_line, last_line)
    start_line = min(start_line, end_line)
    text_edit = TextEdit(
        range=Range(
            start=Position(line=start_line, character=0),
            end=Position(line=end_line, character=line_length(contents, end_line)),
        ),
        new_text=new_text,
    )
    return WorkspaceEdit(
        document_changes=[
            TextDocumentEdit(
                text_document=OptionalVersionedTextDocumentIdentifier(uri=uri, version=None),
                edits=[text_edit],
            )
        ]
    )
