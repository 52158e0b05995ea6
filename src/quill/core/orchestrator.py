"""Tool-calling conversation loop."""

from __future__ import annotations

import threading
from collections.abc import Generator, Iterator
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from loguru import logger

from quill.config import Settings
from quill.core.model import ModelClient
from quill.core.stream import StreamAccumulator
from quill.core.transcript import Transcript
from quill.core.types import ModelMessage, ModelRequest, Role, ToolInvocation, ToolResult, Turn
from quill.errors import ModelCallError, QuillError, ToolLoopLimitError, TranscriptError, TurnCancelledError
from quill.tools.dispatcher import TOOL_CANCELLED, ToolDispatcher
from quill.tools.registry import ToolRegistry


class ConversationState(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    STREAMING = "streaming"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"


@dataclass(frozen=True)
class TextFragment:
    text: str


@dataclass(frozen=True)
class ToolActivity:
    invocation: ToolInvocation
    result: ToolResult


TurnUpdate = TextFragment | ToolActivity


@dataclass(frozen=True)
class TurnOutcome:
    """Result of one fully resolved submission."""

    new_turns: tuple[Turn, ...]
    text: str
    round_trips: int


@dataclass(frozen=True)
class SessionContext:
    """Everything one conversation needs; passed in, never global."""

    workspace: Path
    settings: Settings
    model: ModelClient
    registry: ToolRegistry
    system_prompt: str = ""


class TurnRun:
    """One submission, driven by iterating it on the caller's thread.

    Iteration yields text fragments as they stream in and tool activity as
    tools finish. Errors that end the turn are raised from iteration. After
    iteration ends, ``outcome`` holds the transcript delta.
    """

    def __init__(self, conversation: Conversation, text: str, cancel: threading.Event) -> None:
        self._conversation = conversation
        self._text = text
        self._cancel = cancel
        self._outcome: TurnOutcome | None = None
        self._started = False

    def __iter__(self) -> Iterator[TurnUpdate]:
        if self._started:
            raise RuntimeError("a turn run can only be iterated once")
        self._started = True
        return self._drive()

    @property
    def outcome(self) -> TurnOutcome:
        if self._outcome is None:
            raise RuntimeError("turn has not completed")
        return self._outcome

    def cancel(self) -> None:
        self._cancel.set()

    def _drive(self) -> Generator[TurnUpdate, None, None]:
        try:
            self._outcome = yield from self._conversation._run(self._text, self._cancel)
        finally:
            if self._outcome is None:
                self._cancel.set()


class Conversation:
    """Owns the transcript and resolves user submissions against the model."""

    def __init__(self, context: SessionContext, *, dispatcher: ToolDispatcher | None = None) -> None:
        self._context = context
        self._dispatcher = dispatcher or ToolDispatcher(context.registry)
        self._transcript = Transcript()
        self._state = ConversationState.DONE
        self._lock = threading.Lock()

    @property
    def transcript(self) -> Transcript:
        return self._transcript

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def context(self) -> SessionContext:
        return self._context

    def submit(self, text: str, *, cancel: threading.Event | None = None) -> TurnRun:
        """Start resolving ``text``; empty text re-enters with the current transcript."""
        return TurnRun(self, text, cancel or threading.Event())

    def send(self, text: str, *, cancel: threading.Event | None = None) -> TurnOutcome:
        run = self.submit(text, cancel=cancel)
        for _ in run:
            pass
        return run.outcome

    def reset(self) -> None:
        with self._lock:
            self._transcript.reset()
            self._state = ConversationState.DONE

    def _run(self, text: str, cancel: threading.Event) -> Generator[TurnUpdate, None, TurnOutcome]:
        if not self._lock.acquire(blocking=False):
            raise RuntimeError("another turn is already in progress")
        try:
            return (yield from self._resolve(text, cancel))
        finally:
            self._state = ConversationState.DONE
            self._lock.release()

    def _resolve(self, text: str, cancel: threading.Event) -> Generator[TurnUpdate, None, TurnOutcome]:
        saved = self._transcript.snapshot()
        if text:
            self._transcript.append_user_text(text)
            start = len(self._transcript) - 1
        else:
            last = self._transcript.last
            if last is None or last.role is not Role.USER:
                raise TranscriptError("nothing to resubmit: the transcript does not end with a user turn")
            start = len(self._transcript)

        settings = self._context.settings
        texts: list[str] = []
        round_trips = 0
        committed = False
        try:
            while True:
                self._state = ConversationState.AWAITING_MODEL
                if cancel.is_set():
                    raise TurnCancelledError("turn cancelled")
                logger.info(
                    "conversation.step round_trips={} turns={} model={}",
                    round_trips,
                    len(self._transcript),
                    settings.model,
                )
                message = yield from self._stream_model_turn(cancel, texts)
                if not message.content:
                    logger.warning("conversation.empty_response stop_reason={}", message.stop_reason)
                    return self._finish(start, texts, round_trips)
                self._transcript.append(message.to_turn())
                committed = True

                invocations = message.tool_invocations
                if not invocations:
                    return self._finish(start, texts, round_trips)

                self._state = ConversationState.DISPATCHING_TOOLS
                results = self._dispatch(invocations, cancel)
                round_trips += 1
                for invocation, result in zip(invocations, results, strict=True):
                    yield ToolActivity(invocation=invocation, result=result)

                if round_trips >= settings.max_round_trips:
                    raise ToolLoopLimitError(f"max_round_trips_reached={settings.max_round_trips}")
        except BaseException:
            # a submission with no committed model turn leaves the transcript unchanged
            if not committed:
                self._transcript.restore(saved)
                logger.info("conversation.rollback turns={}", len(saved))
            raise

    def _dispatch(self, invocations: list[ToolInvocation], cancel: threading.Event) -> list[ToolResult]:
        """Run invocations in order and commit their results, even when interrupted."""
        results: list[ToolResult] = []
        try:
            for item in invocations:
                if cancel.is_set():
                    raise TurnCancelledError("turn cancelled")
                results.append(self._dispatcher.execute(item.id, item.name, item.input))
        finally:
            pending = invocations[len(results) :]
            if pending:
                logger.warning("tool.dispatch.interrupted pending={}", ",".join(item.id for item in pending))
                results.extend(ToolResult(id=item.id, text=TOOL_CANCELLED, is_error=True) for item in pending)
            self._transcript.append(Turn.tool_results(results))
        return results

    def _finish(self, start: int, texts: list[str], round_trips: int) -> TurnOutcome:
        self._state = ConversationState.DONE
        new_turns = self._transcript.turns[start:]
        logger.info("conversation.done round_trips={} new_turns={}", round_trips, len(new_turns))
        return TurnOutcome(new_turns=new_turns, text="".join(texts), round_trips=round_trips)

    def _stream_model_turn(
        self, cancel: threading.Event, texts: list[str]
    ) -> Generator[TurnUpdate, None, ModelMessage]:
        request = ModelRequest(
            model=self._context.settings.model,
            turns=self._transcript.turns,
            tools=self._context.registry.specs(),
            system=self._context.system_prompt,
            max_tokens=self._context.settings.max_tokens,
        )
        try:
            events = self._context.model.stream(request, cancel)
        except QuillError:
            raise
        except Exception as exc:
            raise ModelCallError(f"model call failed: {exc}") from exc

        self._state = ConversationState.STREAMING
        accumulator = StreamAccumulator(
            events,
            cancel=cancel,
            capacity=self._context.settings.stream_queue_size,
        ).start()
        try:
            for fragment in accumulator.fragments():
                texts.append(fragment)
                yield TextFragment(fragment)
        except GeneratorExit:
            cancel.set()
            raise
        return accumulator.result()
