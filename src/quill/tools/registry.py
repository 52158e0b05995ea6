"""Static tool registry."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel

from quill.core.types import ToolSpec

ToolHandler = Callable[[Any], str]


@dataclass(frozen=True)
class ToolDefinition:
    """Tool metadata and runtime handle.

    ``input_model`` is the pydantic model the raw tool input is validated
    against; the handler receives the validated instance.
    """

    name: str
    description: str
    input_model: type[BaseModel]
    handler: ToolHandler

    @property
    def input_schema(self) -> dict[str, Any]:
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        schema.pop("description", None)
        schema.setdefault("type", "object")
        return schema

    def spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description, input_schema=self.input_schema)


class ToolRegistry(Mapping[str, ToolDefinition]):
    """Immutable name -> definition mapping built once at startup."""

    def __init__(self, definitions: Iterable[ToolDefinition]) -> None:
        tools: dict[str, ToolDefinition] = {}
        for definition in definitions:
            if definition.name in tools:
                raise ValueError(f"Duplicate tool name: {definition.name}")
            tools[definition.name] = definition
        self._tools = MappingProxyType(tools)

    def __getitem__(self, name: str) -> ToolDefinition:
        return self._tools[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> tuple[ToolSpec, ...]:
        return tuple(definition.spec() for definition in self._tools.values())

    def compact_rows(self) -> list[str]:
        rows: list[str] = []
        for definition in self._tools.values():
            summary = definition.description.strip().splitlines()[0] if definition.description.strip() else ""
            rows.append(f"{definition.name}: {summary}")
        return rows
