"""Conversation data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    USER = "user"
    MODEL = "model"


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class ToolInvocation:
    """A tool call requested by the model; paired with a result by ``id``."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    id: str
    text: str
    is_error: bool = False


ContentBlock = TextBlock | ToolInvocation | ToolResult


@dataclass(frozen=True)
class Turn:
    """One role-attributed unit of conversation. Immutable once built."""

    role: Role
    content: tuple[ContentBlock, ...]

    @classmethod
    def user_text(cls, text: str) -> Turn:
        return cls(role=Role.USER, content=(TextBlock(text),))

    @classmethod
    def tool_results(cls, results: list[ToolResult]) -> Turn:
        return cls(role=Role.USER, content=tuple(results))

    @property
    def tool_invocations(self) -> list[ToolInvocation]:
        return [block for block in self.content if isinstance(block, ToolInvocation)]

    @property
    def text(self) -> str:
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolInvocationStarted:
    id: str
    name: str


@dataclass(frozen=True)
class ToolInvocationInputDelta:
    id: str
    partial_json: str


@dataclass(frozen=True)
class TurnComplete:
    stop_reason: str | None = None


StreamEvent = TextDelta | ToolInvocationStarted | ToolInvocationInputDelta | TurnComplete


@dataclass(frozen=True)
class ModelMessage:
    """Materialized result of one streamed model response."""

    content: tuple[ContentBlock, ...]
    stop_reason: str | None = None

    @property
    def text(self) -> str:
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))

    @property
    def tool_invocations(self) -> list[ToolInvocation]:
        return [block for block in self.content if isinstance(block, ToolInvocation)]

    def to_turn(self) -> Turn:
        return Turn(role=Role.MODEL, content=self.content)


@dataclass(frozen=True)
class ToolSpec:
    """Tool advertisement sent with each model request."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass(frozen=True)
class ModelRequest:
    model: str
    turns: tuple[Turn, ...]
    tools: tuple[ToolSpec, ...]
    system: str
    max_tokens: int
