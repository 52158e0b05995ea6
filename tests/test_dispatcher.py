from __future__ import annotations

import pytest
from loguru import logger
from pydantic import BaseModel, Field

from quill.errors import ToolError
from quill.tools.dispatcher import TOOL_NOT_FOUND, ToolDispatcher
from quill.tools.registry import ToolDefinition, ToolRegistry


class EchoInput(BaseModel):
    value: str = Field(..., description="Value to echo")
    times: int = Field(default=1, ge=1)


def _registry() -> ToolRegistry:
    def echo(params: EchoInput) -> str:
        return params.value * params.times

    def fail(params: EchoInput) -> str:
        raise ToolError(f"cannot handle {params.value}")

    def crash(params: EchoInput) -> str:
        raise RuntimeError("boom")

    return ToolRegistry(
        [
            ToolDefinition("echo", "Echo a value", EchoInput, echo),
            ToolDefinition("fail", "Always fails", EchoInput, fail),
            ToolDefinition("crash", "Raises unexpectedly", EchoInput, crash),
        ]
    )


def test_unknown_tool_returns_error_result() -> None:
    result = ToolDispatcher(_registry()).execute("call-1", "does_not_exist", {})
    assert result.id == "call-1"
    assert result.is_error is True
    assert result.text == TOOL_NOT_FOUND == "tool not found"


def test_successful_call_returns_handler_text() -> None:
    result = ToolDispatcher(_registry()).execute("call-2", "echo", {"value": "ab", "times": 2})
    assert result.is_error is False
    assert result.text == "abab"


def test_raw_json_input_is_decoded() -> None:
    result = ToolDispatcher(_registry()).execute("call-3", "echo", '{"value": "x"}')
    assert result.text == "x"
    assert result.is_error is False


def test_malformed_json_input_becomes_error_result() -> None:
    result = ToolDispatcher(_registry()).execute("call-4", "echo", '{"value": ')
    assert result.is_error is True
    assert result.text.startswith("invalid input:")


def test_missing_required_field_becomes_error_result() -> None:
    result = ToolDispatcher(_registry()).execute("call-5", "echo", {"times": 2})
    assert result.is_error is True
    assert "value" in result.text


def test_constraint_violation_becomes_error_result() -> None:
    result = ToolDispatcher(_registry()).execute("call-6", "echo", {"value": "x", "times": 0})
    assert result.is_error is True
    assert "times" in result.text


@pytest.mark.parametrize(
    ("name", "message"),
    [("fail", "cannot handle v"), ("crash", "boom")],
)
def test_handler_errors_are_folded_into_result(name: str, message: str) -> None:
    result = ToolDispatcher(_registry()).execute("call-7", name, {"value": "v"})
    assert result.is_error is True
    assert result.text == message


def test_dispatcher_logs_call_start_and_end() -> None:
    logs: list[str] = []
    handler_id = logger.add(lambda message: logs.append(message.record["message"]), level="INFO")
    try:
        ToolDispatcher(_registry()).execute("call-8", "echo", {"value": "x"})
    finally:
        logger.remove(handler_id)

    assert 'tool.call.start name=echo id=call-8 { value="x", times=1 }' in logs
    assert any(line.startswith("tool.call.end name=echo duration=") for line in logs)


def test_registry_rejects_duplicate_names() -> None:
    definition = ToolDefinition("echo", "Echo", EchoInput, lambda params: params.value)
    with pytest.raises(ValueError, match="Duplicate tool name: echo"):
        ToolRegistry([definition, definition])


def test_registry_is_read_only_and_exposes_schemas() -> None:
    registry = _registry()
    assert registry.names == ["echo", "fail", "crash"]
    with pytest.raises(TypeError):
        registry["extra"] = registry["echo"]  # type: ignore[index]

    spec = registry["echo"].spec()
    assert spec.input_schema["type"] == "object"
    assert spec.input_schema["required"] == ["value"]
    assert "title" not in spec.input_schema
