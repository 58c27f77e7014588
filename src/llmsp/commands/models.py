"""Typed arguments for every workspace command llmsp understands.

Editors send ``workspace/executeCommand`` arguments as a positional JSON
list. ``parse_command`` maps that list onto one model per command and
rejects anything that does not fit with a ``CommandArgumentError``.
"""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from llmsp.errors import CommandArgumentError

SUGGEST = "suggest"
DOCSTRING = "docstring"
TODOS = "todos"
ANSWER = "answer"
INSTRUCT = "cody"
EXPLAIN = "cody.explain"
REMEMBER = "cody.remember"
HISTORY = "cody.chat/history"
FORGET = "cody.forget"
CHAT = "cody.chat/message"
EXPLAIN_ERRORS = "cody.explainErrors"


class Command(BaseModel):
    """Base for command argument models."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: ClassVar[str]


class RangeCommand(Command):
    """A command that targets an inclusive line range of a document."""

    file: str = Field(min_length=1)
    start_line: int = Field(ge=0)
    end_line: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_range(self) -> "RangeCommand":
        if self.end_line < self.start_line:
            raise ValueError(
                f"end_line {self.end_line} is before start_line {self.start_line}"
            )
        return self


class SuggestCommand(RangeCommand):
    name = SUGGEST


class DocstringCommand(RangeCommand):
    name = DOCSTRING


class TodosCommand(RangeCommand):
    name = TODOS


class AnswerCommand(RangeCommand):
    name = ANSWER


class InstructCommand(RangeCommand):
    """Free-form instruction applied to the selection."""

    name = INSTRUCT

    instruction: str
    overwrite: bool
    code_only: bool


class ExplainCommand(RangeCommand):
    name = EXPLAIN

    instruction: str
    code_only: bool = False


class RememberCommand(RangeCommand):
    name = REMEMBER


class HistoryCommand(Command):
    name = HISTORY


class ForgetCommand(Command):
    name = FORGET


class ChatCommand(Command):
    name = CHAT

    file: str
    message: str


class ExplainErrorsCommand(Command):
    name = EXPLAIN_ERRORS

    message: str


COMMAND_TYPES: dict[str, type[Command]] = {
    cls.name: cls
    for cls in (
        SuggestCommand,
        DocstringCommand,
        TodosCommand,
        AnswerCommand,
        InstructCommand,
        ExplainCommand,
        RememberCommand,
        HistoryCommand,
        ForgetCommand,
        ChatCommand,
        ExplainErrorsCommand,
    )
}


def parse_command(name: str, arguments: list[Any] | tuple[Any, ...] | None) -> Command:
    """
    Build the typed command for ``name`` from its raw arguments.

    Arguments may be positional, in field order, or a single JSON object
    keyed by field name.

    Raises:
        CommandArgumentError: If the command is unknown or the arguments do
            not match its shape
    """
    command_type = COMMAND_TYPES.get(name)
    if command_type is None:
        raise CommandArgumentError(name, "unknown command")

    args = list(arguments or [])
    if len(args) == 1 and isinstance(args[0], dict):
        data: dict[str, Any] = args[0]
    else:
        fields = list(command_type.model_fields)
        if len(args) > len(fields):
            raise CommandArgumentError(
                name, f"expected at most {len(fields)} arguments, got {len(args)}"
            )
        data = dict(zip(fields, args))

    try:
        return command_type.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
            for err in e.errors()
        )
        raise CommandArgumentError(name, problems) from e
