"""Tool call execution."""

from __future__ import annotations

import json
import time
from typing import Any

from loguru import logger
from pydantic import ValidationError

from quill.core.types import ToolResult
from quill.tools.registry import ToolRegistry

TOOL_NOT_FOUND = "tool not found"
TOOL_CANCELLED = "tool call cancelled"
PARAM_PREVIEW_WIDTH = 30


def _shorten_text(text: str, width: int = PARAM_PREVIEW_WIDTH, placeholder: str = "...") -> str:
    """Truncate a JSON parameter preview for log lines."""
    if len(text) <= width:
        return text
    available = width - len(placeholder)
    if available <= 0:
        return placeholder
    return text[:available] + placeholder


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "input"
        problems.append(f"{location}: {error.get('msg', 'invalid')}")
    return "invalid input: " + "; ".join(problems)


class ToolDispatcher:
    """Runs one tool call and folds any failure into an error result."""

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def execute(self, call_id: str, name: str, raw_input: dict[str, Any] | str | bytes | None) -> ToolResult:
        definition = self._registry.get(name)
        if definition is None:
            logger.warning("tool.call.missing name={} id={}", name, call_id)
            return ToolResult(id=call_id, text=TOOL_NOT_FOUND, is_error=True)

        try:
            if raw_input is None:
                params = definition.input_model.model_validate({})
            elif isinstance(raw_input, (str, bytes)):
                params = definition.input_model.model_validate_json(raw_input or "{}")
            else:
                params = definition.input_model.model_validate(raw_input)
        except ValidationError as exc:
            message = _format_validation_error(exc)
            logger.info("tool.call.invalid name={} id={} error={}", name, call_id, message)
            return ToolResult(id=call_id, text=message, is_error=True)

        self._log_tool_call(name, call_id, params.model_dump(exclude_none=True))
        start = time.monotonic()
        try:
            output = definition.handler(params)
        except Exception as exc:
            logger.info("tool.call.error name={} id={} error={}", name, call_id, exc)
            return ToolResult(id=call_id, text=str(exc) or type(exc).__name__, is_error=True)
        finally:
            duration = time.monotonic() - start
            logger.info("tool.call.end name={} duration={:.3f}ms", name, duration * 1000)
        return ToolResult(id=call_id, text=output, is_error=False)

    @staticmethod
    def _log_tool_call(name: str, call_id: str, kwargs: dict[str, Any]) -> None:
        params: list[str] = []
        for key, value in kwargs.items():
            try:
                rendered = json.dumps(value, ensure_ascii=False)
            except TypeError:
                rendered = repr(value)
            params.append(f"{key}={_shorten_text(rendered)}")
        logger.info("tool.call.start name={} id={} {{ {} }}", name, call_id, ", ".join(params))
