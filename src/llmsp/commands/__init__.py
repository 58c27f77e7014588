"""Workspace commands, code actions, and completion."""

from .code_actions import get_code_actions
from .completion import CompletionProvider
from .editor import Editor, replace_range_edit
from .models import COMMAND_TYPES, Command, parse_command
from .orchestrator import CommandOrchestrator, strip_code_fence

__all__ = [
    "COMMAND_TYPES",
    "Command",
    "CommandOrchestrator",
    "CompletionProvider",
    "Editor",
    "get_code_actions",
    "parse_command",
    "replace_range_edit",
    "strip_code_fence",
]
