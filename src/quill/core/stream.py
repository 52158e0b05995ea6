"""Streamed model response accumulation."""

from __future__ import annotations

import json
import queue
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any, assert_never

from loguru import logger

from quill.core.types import (
    ContentBlock,
    ModelMessage,
    StreamEvent,
    TextBlock,
    TextDelta,
    ToolInvocation,
    ToolInvocationInputDelta,
    ToolInvocationStarted,
    TurnComplete,
)
from quill.errors import MalformedStreamError, ModelCallError, QuillError, TurnCancelledError

DEFAULT_QUEUE_SIZE = 100
PUT_TIMEOUT_SECONDS = 0.1
GET_POLL_SECONDS = 0.05

_CLOSED = object()


@dataclass
class _TextPart:
    parts: list[str] = field(default_factory=list)


@dataclass
class _ToolPart:
    id: str
    name: str
    parts: list[str] = field(default_factory=list)


class _MessageBuilder:
    """Rebuilds one model message from its events, in arrival order."""

    def __init__(self) -> None:
        self._blocks: list[_TextPart | _ToolPart] = []
        self._tools: dict[str, _ToolPart] = {}
        self._complete = False
        self._stop_reason: str | None = None

    def feed(self, event: StreamEvent) -> str | None:
        """Apply one event; return the text fragment it carries, if any."""
        if self._complete:
            raise MalformedStreamError(f"event after turn completion: {type(event).__name__}")
        match event:
            case TextDelta(text=text):
                if not self._blocks or not isinstance(self._blocks[-1], _TextPart):
                    self._blocks.append(_TextPart())
                current = self._blocks[-1]
                assert isinstance(current, _TextPart)
                current.parts.append(text)
                return text or None
            case ToolInvocationStarted(id=tool_id, name=name):
                if tool_id in self._tools:
                    raise MalformedStreamError(f"duplicate tool invocation id: {tool_id}")
                part = _ToolPart(id=tool_id, name=name)
                self._tools[tool_id] = part
                self._blocks.append(part)
            case ToolInvocationInputDelta(id=tool_id, partial_json=partial_json):
                part = self._tools.get(tool_id)
                if part is None:
                    raise MalformedStreamError(f"input for unknown tool invocation: {tool_id}")
                part.parts.append(partial_json)
            case TurnComplete(stop_reason=stop_reason):
                self._complete = True
                self._stop_reason = stop_reason
            case _:
                assert_never(event)
        return None

    def build(self) -> ModelMessage:
        if not self._complete:
            raise MalformedStreamError("stream ended before turn completion")
        content: list[ContentBlock] = []
        for block in self._blocks:
            if isinstance(block, _TextPart):
                text = "".join(block.parts)
                if text:
                    content.append(TextBlock(text))
            else:
                content.append(ToolInvocation(id=block.id, name=block.name, input=_parse_input(block)))
        return ModelMessage(content=tuple(content), stop_reason=self._stop_reason)


def _parse_input(part: _ToolPart) -> dict[str, Any]:
    raw = "".join(part.parts).strip()
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedStreamError(f"invalid input for tool {part.name}: {exc}") from exc
    if not isinstance(parsed, dict):
        raise MalformedStreamError(f"input for tool {part.name} is not an object")
    return parsed


class StreamAccumulator:
    """Consume a model event stream on a worker thread.

    Text fragments are handed to the caller through a bounded queue in
    arrival order; ``result()`` returns the materialized message once the
    stream completes. The source is consumed exactly once.
    """

    def __init__(
        self,
        events: Iterable[StreamEvent],
        *,
        cancel: threading.Event | None = None,
        capacity: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._events = events
        self._cancel = cancel or threading.Event()
        self._queue: queue.Queue[object] = queue.Queue(maxsize=capacity)
        self._message: ModelMessage | None = None
        self._error: QuillError | None = None
        self._worker = threading.Thread(target=self._run, name="quill-stream", daemon=True)
        self._fragments_taken = False

    def start(self) -> StreamAccumulator:
        self._worker.start()
        return self

    def fragments(self) -> Iterator[str]:
        """Yield text fragments until the stream closes or the turn is cancelled."""
        if self._fragments_taken:
            raise RuntimeError("fragments can only be consumed once")
        self._fragments_taken = True
        while True:
            try:
                item = self._queue.get(timeout=GET_POLL_SECONDS)
            except queue.Empty:
                if self._cancel.is_set():
                    return
                if not self._worker.is_alive() and self._queue.empty():
                    return
                continue
            if item is _CLOSED:
                return
            assert isinstance(item, str)
            yield item

    def result(self) -> ModelMessage:
        if self._cancel.is_set() and self._message is None:
            raise TurnCancelledError("turn cancelled")
        self._worker.join()
        if self._error is not None:
            raise self._error
        if self._message is None:
            raise TurnCancelledError("turn cancelled")
        return self._message

    def _run(self) -> None:
        builder = _MessageBuilder()
        try:
            for event in self._events:
                if self._cancel.is_set():
                    raise TurnCancelledError("turn cancelled")
                fragment = builder.feed(event)
                if fragment is not None and not self._put(fragment):
                    raise TurnCancelledError("turn cancelled")
            self._message = builder.build()
        except QuillError as exc:
            self._error = exc
        except Exception as exc:
            logger.exception("stream.source.error")
            error = ModelCallError(f"model stream failed: {exc}")
            error.__cause__ = exc
            self._error = error
        finally:
            self._close_source()
            self._put(_CLOSED)

    def _put(self, item: object) -> bool:
        while True:
            try:
                self._queue.put(item, timeout=PUT_TIMEOUT_SECONDS)
            except queue.Full:
                if self._cancel.is_set():
                    return False
                continue
            return True

    def _close_source(self) -> None:
        close = getattr(self._events, "close", None)
        if callable(close):
            try:
                close()
            except Exception:
                logger.exception("stream.source.close_error")
