from __future__ import annotations

import pytest

from quill.core.transcript import Transcript
from quill.core.types import Role, TextBlock, ToolInvocation, ToolResult, Turn
from quill.errors import TranscriptError


def _model_turn(*blocks: TextBlock | ToolInvocation) -> Turn:
    return Turn(role=Role.MODEL, content=blocks)


def test_append_keeps_order_and_exposes_last() -> None:
    transcript = Transcript()
    assert transcript.last is None

    transcript.append(Turn.user_text("hello"))
    transcript.append(_model_turn(TextBlock("hi there")))

    assert len(transcript) == 2
    assert [turn.role for turn in transcript] == [Role.USER, Role.MODEL]
    assert transcript.last is transcript[1]
    assert transcript.turns[1].text == "hi there"


def test_consecutive_model_turns_are_rejected() -> None:
    transcript = Transcript()
    transcript.append(Turn.user_text("hello"))
    transcript.append(_model_turn(TextBlock("one")))
    with pytest.raises(TranscriptError, match="consecutive model turns"):
        transcript.append(_model_turn(TextBlock("two")))
    assert len(transcript) == 2


def test_tool_results_must_answer_every_invocation_in_order() -> None:
    transcript = Transcript()
    transcript.append(Turn.user_text("look around"))
    transcript.append(
        _model_turn(
            ToolInvocation(id="a", name="list_files"),
            ToolInvocation(id="b", name="read_file", input={"path": "x"}),
        )
    )

    with pytest.raises(TranscriptError):
        transcript.append(Turn.tool_results([ToolResult("b", "x"), ToolResult("a", "[]")]))
    with pytest.raises(TranscriptError):
        transcript.append(Turn.tool_results([ToolResult("a", "[]")]))
    with pytest.raises(TranscriptError):
        transcript.append(Turn.user_text("never mind"))

    transcript.append(Turn.tool_results([ToolResult("a", "[]"), ToolResult("b", "x")]))
    assert len(transcript) == 3


def test_orphan_tool_results_are_rejected() -> None:
    transcript = Transcript()
    with pytest.raises(TranscriptError, match="must follow a model turn"):
        transcript.append(Turn.tool_results([ToolResult("a", "ok")]))


def test_consecutive_user_turns_are_rejected() -> None:
    transcript = Transcript()
    transcript.append(Turn.user_text("first"))
    with pytest.raises(TranscriptError, match="consecutive user turns"):
        transcript.append(Turn.user_text("second"))


def test_user_text_folds_into_pending_tool_results() -> None:
    transcript = Transcript()
    transcript.append_user_text("look around")
    transcript.append(_model_turn(ToolInvocation(id="a", name="list_files")))
    transcript.append(Turn.tool_results([ToolResult("a", "tool call cancelled", is_error=True)]))

    transcript.append_user_text("try again")

    assert [turn.role for turn in transcript] == [Role.USER, Role.MODEL, Role.USER]
    assert transcript.last.content == (
        ToolResult("a", "tool call cancelled", is_error=True),
        TextBlock("try again"),
    )


def test_restore_rolls_back_to_snapshot() -> None:
    transcript = Transcript()
    transcript.append_user_text("kept")
    transcript.append(_model_turn(TextBlock("reply")))
    saved = transcript.snapshot()

    transcript.append_user_text("dropped")
    transcript.restore(saved)

    assert transcript.turns == saved
    assert transcript.last.role is Role.MODEL


def test_reset_clears_history() -> None:
    transcript = Transcript()
    transcript.append(Turn.user_text("hello"))
    transcript.reset()
    assert len(transcript) == 0
    assert transcript.turns == ()
