"""llmsp - a language server that brings Cody-style assistance to any editor."""

__version__ = "0.1.0"
