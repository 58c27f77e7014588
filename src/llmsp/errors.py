"""Custom error types for llmsp."""


class LlmspError(Exception):
    """Base error for llmsp failures."""

    pass


class ConfigurationError(LlmspError):
    """Required settings are missing or invalid."""

    pass


class CompletionCancelledError(LlmspError):
    """A completion request was superseded by a newer one."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class BackendError(LlmspError):
    """The model or search backend failed or answered with garbage."""

    pass


class CommandArgumentError(LlmspError):
    """A workspace command was unknown or called with ill-shaped arguments."""

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"Invalid arguments for command '{command}': {reason}")
