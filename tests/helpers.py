from __future__ import annotations

import json
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from quill.config import Settings
from quill.core.orchestrator import Conversation, SessionContext
from quill.core.types import (
    ModelRequest,
    StreamEvent,
    TextDelta,
    ToolInvocationInputDelta,
    ToolInvocationStarted,
    TurnComplete,
)
from quill.tools.fs import build_file_registry
from quill.tools.registry import ToolRegistry


def text_response(*chunks: str) -> list[StreamEvent]:
    return [*(TextDelta(chunk) for chunk in chunks), TurnComplete("end_turn")]


def tool_response(*calls: tuple[str, str, dict[str, Any]], text: str = "") -> list[StreamEvent]:
    events: list[StreamEvent] = [TextDelta(text)] if text else []
    for call_id, name, payload in calls:
        raw = json.dumps(payload)
        half = len(raw) // 2
        events.append(ToolInvocationStarted(id=call_id, name=name))
        events.append(ToolInvocationInputDelta(id=call_id, partial_json=raw[:half]))
        events.append(ToolInvocationInputDelta(id=call_id, partial_json=raw[half:]))
    events.append(TurnComplete("tool_use"))
    return events


class ScriptedModel:
    """Model client replaying one scripted response per call."""

    def __init__(self, responses: list[list[StreamEvent] | Exception]) -> None:
        self._responses = list(responses)
        self.requests: list[ModelRequest] = []

    def stream(self, request: ModelRequest, cancel: threading.Event) -> Iterator[StreamEvent]:
        self.requests.append(request)
        if not self._responses:
            raise AssertionError("unexpected model call")
        return self._replay(self._responses.pop(0))

    @staticmethod
    def _replay(response: list[StreamEvent] | Exception) -> Iterator[StreamEvent]:
        if isinstance(response, Exception):
            raise response
        yield from response


def make_conversation(
    workspace: Path,
    settings: Settings,
    responses: list[list[StreamEvent] | Exception],
    registry: ToolRegistry | None = None,
) -> tuple[Conversation, ScriptedModel]:
    model = ScriptedModel(responses)
    context = SessionContext(
        workspace=workspace,
        settings=settings,
        model=model,
        registry=registry or build_file_registry(workspace),
        system_prompt="be precise",
    )
    return Conversation(context), model
