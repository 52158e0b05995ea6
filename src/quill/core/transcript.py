"""Append-only conversation transcript."""

from __future__ import annotations

from collections.abc import Iterator

from quill.core.types import Role, TextBlock, ToolResult, Turn
from quill.errors import TranscriptError


class Transcript:
    """Ordered turns of one conversation.

    Appends are checked so that roles strictly alternate and every tool
    invocation is answered by exactly one result, in order, in the user turn
    that follows it.
    """

    def __init__(self) -> None:
        self._turns: list[Turn] = []

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def append(self, turn: Turn) -> None:
        previous = self.last
        if previous is not None and previous.role is turn.role:
            raise TranscriptError(f"two consecutive {turn.role} turns")
        if previous is not None and previous.role is Role.MODEL:
            self._check_results(previous, turn)
        elif turn.role is Role.USER and any(isinstance(block, ToolResult) for block in turn.content):
            raise TranscriptError("tool results must follow a model turn with tool invocations")
        self._turns.append(turn)

    def append_user_text(self, text: str) -> None:
        """Add user text, folding it into a trailing user turn if there is one."""
        previous = self.last
        if previous is not None and previous.role is Role.USER:
            self._turns[-1] = Turn(role=Role.USER, content=(*previous.content, TextBlock(text)))
            return
        self.append(Turn.user_text(text))

    def snapshot(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def restore(self, turns: tuple[Turn, ...]) -> None:
        """Roll back to a snapshot taken earlier in the same submission."""
        self._turns = list(turns)

    def reset(self) -> None:
        self._turns.clear()

    @staticmethod
    def _check_results(model_turn: Turn, user_turn: Turn) -> None:
        expected = [invocation.id for invocation in model_turn.tool_invocations]
        actual = [block.id for block in user_turn.content if isinstance(block, ToolResult)]
        if expected != actual:
            raise TranscriptError(f"tool results {actual} do not answer invocations {expected}")
