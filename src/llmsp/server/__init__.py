"""llmsp language server."""

from .app import LlmspServer, PyglsEditor, create_server

__all__ = ["LlmspServer", "PyglsEditor", "create_server"]
