"""Session construction."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from quill.config import Settings, build_system_prompt
from quill.core.model import AnthropicModelClient, ModelClient
from quill.core.orchestrator import Conversation, SessionContext
from quill.tools.fs import build_file_registry


def build_session(
    workspace: Path | None = None,
    *,
    model: str | None = None,
    max_tokens: int | None = None,
    settings: Settings | None = None,
    client: ModelClient | None = None,
) -> SessionContext:
    """Resolve settings and wire the model client and tool registry for one workspace."""
    base = settings or Settings()
    overrides: dict[str, object] = {}
    if workspace is not None:
        overrides["workspace"] = workspace
    if model:
        overrides["model"] = model
    if max_tokens:
        overrides["max_tokens"] = max_tokens
    resolved = base.model_copy(update=overrides) if overrides else base

    workspace_path = resolved.resolve_workspace()
    registry = build_file_registry(workspace_path)
    context = SessionContext(
        workspace=workspace_path,
        settings=resolved,
        model=client or AnthropicModelClient(resolved),
        registry=registry,
        system_prompt=build_system_prompt(resolved, workspace_path),
    )
    logger.info(
        "session.ready workspace={} model={} tools={}",
        workspace_path,
        resolved.model,
        ",".join(registry.names),
    )
    return context


def build_conversation(workspace: Path | None = None, **kwargs) -> Conversation:
    return Conversation(build_session(workspace, **kwargs))
