"""Configuration management for Quill."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ApiKeyNotConfiguredError, WorkspaceNotFoundError

DEFAULT_SYSTEM_PROMPT = (
    "You are a careful coding assistant working inside the user's workspace. "
    "Use the file tools to inspect files before changing them. "
    "Edits must target exactly one location; if an edit is rejected as ambiguous, "
    "retry with a more specific anchor."
)
WORKSPACE_PROMPT_FILE = "QUILL.md"
MAX_WORKSPACE_PROMPT_CHARS = 12_000


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="QUILL_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Configuration
    api_key: str | None = Field(default=None, description="API key for the model provider")
    api_base: str | None = Field(default=None, description="Optional API base URL")
    model: str = Field(default="claude-3-7-sonnet-20250219", description="Model name")
    max_tokens: int = Field(default=1024, ge=1, description="Maximum output tokens per model call")

    # Conversation Configuration
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="System prompt for the model")
    max_round_trips: int = Field(default=25, ge=1, description="Tool round trips allowed per submission")
    stream_queue_size: int = Field(default=100, ge=1, description="Capacity of the text fragment queue")

    # System Configuration
    workspace: Path | None = Field(default=None, description="Workspace directory path")
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def resolved_api_key(self) -> str:
        key = self.api_key or os.getenv("ANTHROPIC_API_KEY")
        if not key:
            raise ApiKeyNotConfiguredError("API key not configured. Set QUILL_API_KEY or ANTHROPIC_API_KEY.")
        return key

    def resolve_workspace(self) -> Path:
        workspace = (self.workspace or Path.cwd()).expanduser().resolve()
        if not workspace.is_dir():
            raise WorkspaceNotFoundError(f"Workspace not found: {workspace}")
        return workspace


def read_workspace_prompt(workspace: Path) -> str:
    """Read the workspace QUILL.md file if present."""
    prompt_file = workspace / WORKSPACE_PROMPT_FILE
    if not prompt_file.is_file():
        return ""
    try:
        content = prompt_file.read_text(encoding="utf-8").strip()
    except OSError:
        return ""
    return content[:MAX_WORKSPACE_PROMPT_CHARS]


def build_system_prompt(settings: Settings, workspace: Path) -> str:
    workspace_prompt = read_workspace_prompt(workspace)
    if not workspace_prompt:
        return settings.system_prompt
    return f"{settings.system_prompt}\n\n{workspace_prompt}"
