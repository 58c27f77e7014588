"""llmsp configuration module.

Settings come from two places. The process environment (``LLMSP_`` prefix)
provides defaults, and the editor may override the Sourcegraph connection
details through ``initializationOptions`` or
``workspace/didChangeConfiguration``.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from llmsp.errors import ConfigurationError

SOURCEGRAPH_DOTCOM_URL = "https://sourcegraph.com"

# Default location of the anonymous installation id
DEFAULT_ANONYMOUS_UID_FILE = (
    Path.home() / ".local" / "share" / "nvim" / "llmsp" / "sourcegraphAnonymousUid"
)


class LlmspSettings(BaseSettings):
    """llmsp server configuration.

    All settings can be overridden via environment variables with LLMSP_ prefix.
    For example, LLMSP_MAX_PROMPT_TOKENS=4000 shrinks the prompt budget.
    """

    model_config = SettingsConfigDict(env_prefix="LLMSP_")

    # =========================================================================
    # Sourcegraph connection
    # =========================================================================

    sourcegraph_url: str = Field(
        default="",
        description="Base URL of the Sourcegraph instance serving completions",
    )

    access_token: str = Field(
        default="",
        description="Sourcegraph access token sent as 'Authorization: token ...'",
    )

    request_timeout: float = Field(
        default=60.0,
        description="Timeout in seconds for model and search HTTP calls",
    )

    # =========================================================================
    # Prompt budget
    # =========================================================================

    max_prompt_tokens: int = Field(
        default=7000,
        description="Upper bound on the estimated token size of any prompt",
    )

    max_current_file_tokens: int = Field(
        default=1000,
        description="Share of the prompt reserved for the currently open file",
    )

    code_results_count: int = Field(
        default=12,
        description="Code snippets requested from embeddings search for chat",
    )

    text_results_count: int = Field(
        default=3,
        description="Text snippets requested from embeddings search for chat",
    )

    # =========================================================================
    # Completion
    # =========================================================================

    debounce_seconds: float = Field(
        default=0.1,
        description="Delay before a live completion request hits the network",
    )

    # =========================================================================
    # Telemetry
    # =========================================================================

    telemetry_enabled: bool = Field(
        default=True,
        description="Send anonymous usage events to Sourcegraph",
    )

    anonymous_uid_file: Path = Field(
        default=DEFAULT_ANONYMOUS_UID_FILE,
        description="File holding the anonymous installation id",
    )

    # =========================================================================
    # Git configuration
    # =========================================================================

    repo_path: str | None = Field(
        default=None,
        description=(
            "Git repository path. Optional - the workspace root is used if not set."
        ),
    )

    # =========================================================================
    # Logging configuration
    # =========================================================================

    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )

    log_format: str = Field(
        default="json",
        description=(
            'Logging format: "json" for structured logs, '
            '"console" for human-readable'
        ),
    )

    log_file: Path | None = Field(
        default=None,
        description="Optional log file; stderr is used when unset",
    )

    def with_editor_settings(self, editor: "SourcegraphSettings") -> "LlmspSettings":
        """Return a copy with the editor-provided connection details applied."""
        update: dict[str, Any] = {
            "sourcegraph_url": editor.url,
            "access_token": editor.access_token,
        }
        if editor.anonymous_uid_file:
            update["anonymous_uid_file"] = Path(editor.anonymous_uid_file).expanduser()
        return self.model_copy(update=update)


class SourcegraphSettings(BaseModel):
    """Sourcegraph section of the editor-supplied configuration."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    access_token: str = Field(default="", alias="accessToken")
    anonymous_uid_file: str | None = Field(default=None, alias="anonymousUidFile")
    repos: list[str] = Field(default_factory=list)


class EditorSettings(BaseModel):
    """The ``llmsp`` object an editor sends with its configuration."""

    sourcegraph: SourcegraphSettings | None = None


def parse_editor_settings(payload: Any) -> SourcegraphSettings | None:
    """Extract Sourcegraph settings from an editor configuration payload.

    Accepts either ``{"llmsp": {"sourcegraph": {...}}}`` or the inner
    ``{"sourcegraph": {...}}`` object. Returns None when the payload carries
    no llmsp section at all.

    Raises:
        ConfigurationError: If the section is present but malformed
    """
    if not isinstance(payload, dict):
        return None
    section = payload.get("llmsp", payload)
    if not isinstance(section, dict) or "sourcegraph" not in section:
        return None
    try:
        return EditorSettings.model_validate(section).sourcegraph
    except ValidationError as e:
        raise ConfigurationError(f"Invalid llmsp settings: {e}") from e


def apply_editor_settings(settings: LlmspSettings, payload: Any) -> LlmspSettings:
    """Merge an editor configuration payload into ``settings``.

    Raises:
        ConfigurationError: If no Sourcegraph URL is known afterwards
    """
    editor = parse_editor_settings(payload)
    if editor is not None:
        settings = settings.with_editor_settings(editor)
    if not settings.sourcegraph_url:
        raise ConfigurationError("Sourcegraph settings not present")
    return settings
