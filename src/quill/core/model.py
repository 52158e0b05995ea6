"""Model client adapters."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from typing import Any, Protocol, assert_never

import anthropic
from loguru import logger

from quill.config import Settings
from quill.core.types import (
    ModelRequest,
    Role,
    StreamEvent,
    TextBlock,
    TextDelta,
    ToolInvocation,
    ToolInvocationInputDelta,
    ToolInvocationStarted,
    ToolResult,
    Turn,
    TurnComplete,
)
from quill.errors import MalformedStreamError, ModelCallError, TurnCancelledError


class ModelClient(Protocol):
    def stream(self, request: ModelRequest, cancel: threading.Event) -> Iterator[StreamEvent]:
        """Start a model call and yield its events in arrival order."""
        ...


def turn_to_param(turn: Turn) -> dict[str, Any]:
    """Convert one transcript turn into an Anthropic message param."""
    content: list[dict[str, Any]] = []
    for block in turn.content:
        match block:
            case TextBlock(text=text):
                content.append({"type": "text", "text": text})
            case ToolInvocation(id=tool_id, name=name, input=tool_input):
                content.append({"type": "tool_use", "id": tool_id, "name": name, "input": tool_input})
            case ToolResult(id=tool_id, text=text, is_error=is_error):
                content.append({"type": "tool_result", "tool_use_id": tool_id, "content": text, "is_error": is_error})
            case _:
                assert_never(block)
    role = "assistant" if turn.role is Role.MODEL else "user"
    return {"role": role, "content": content}


def request_to_params(request: ModelRequest) -> dict[str, Any]:
    params: dict[str, Any] = {
        "model": request.model,
        "max_tokens": request.max_tokens,
        "messages": [turn_to_param(turn) for turn in request.turns],
    }
    if request.system:
        params["system"] = request.system
    if request.tools:
        params["tools"] = [
            {"name": tool.name, "description": tool.description, "input_schema": tool.input_schema}
            for tool in request.tools
        ]
    return params


class AnthropicModelClient:
    """Streams Messages API responses as Quill stream events."""

    def __init__(self, settings: Settings, client: anthropic.Anthropic | None = None) -> None:
        self._client = client or anthropic.Anthropic(
            api_key=settings.resolved_api_key,
            base_url=settings.api_base,
        )

    def stream(self, request: ModelRequest, cancel: threading.Event) -> Iterator[StreamEvent]:
        params = request_to_params(request)
        logger.info(
            "model.call.start model={} turns={} tools={}",
            request.model,
            len(request.turns),
            len(request.tools),
        )
        try:
            with self._client.messages.stream(**params) as stream:
                tool_ids: dict[int, str] = {}
                stop_reason: str | None = None
                for event in stream:
                    if cancel.is_set():
                        raise TurnCancelledError("turn cancelled")
                    if event.type == "content_block_start":
                        block = event.content_block
                        if block.type == "tool_use":
                            tool_ids[event.index] = block.id
                            yield ToolInvocationStarted(id=block.id, name=block.name)
                    elif event.type == "content_block_delta":
                        delta = event.delta
                        if delta.type == "text_delta":
                            yield TextDelta(delta.text)
                        elif delta.type == "input_json_delta":
                            tool_id = tool_ids.get(event.index)
                            if tool_id is None:
                                raise MalformedStreamError(f"input delta for unknown block index {event.index}")
                            yield ToolInvocationInputDelta(id=tool_id, partial_json=delta.partial_json)
                    elif event.type == "message_delta":
                        stop_reason = event.delta.stop_reason
                    elif event.type == "message_stop":
                        logger.info("model.call.end model={} stop_reason={}", request.model, stop_reason)
                        yield TurnComplete(stop_reason=stop_reason)
        except anthropic.APIError as exc:
            logger.warning("model.call.error model={} error={}", request.model, exc)
            raise ModelCallError(f"model call failed: {exc}") from exc
