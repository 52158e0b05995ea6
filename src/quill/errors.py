"""Application-level exception types for Quill."""

from __future__ import annotations


class QuillError(Exception):
    """Base exception for Quill."""


class ConfigurationError(QuillError):
    """Base exception for configuration and startup validation errors."""


class WorkspaceNotFoundError(ConfigurationError):
    """Raised when the configured workspace path does not exist."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when an API key is required but missing."""


class ModelCallError(QuillError):
    """Raised when the model call fails; fatal to the current turn."""


class MalformedStreamError(ModelCallError):
    """Raised when the model stream violates the event protocol."""


class TurnCancelledError(QuillError):
    """Raised when a turn is cancelled before the model finished responding."""


class ToolLoopLimitError(QuillError):
    """Raised when one submission exceeds the allowed tool round trips."""


class TranscriptError(QuillError):
    """Raised when an append would break transcript ordering."""


class ToolError(QuillError):
    """Raised by tool handlers; reported back to the model as an error result."""


class EditError(ToolError):
    """Raised when an edit instruction cannot be applied."""
