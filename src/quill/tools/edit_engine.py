"""Line and substring edits over in-memory file content.

Every targeted edit must resolve to exactly one location. An anchor that
matches nothing or more than once is rejected with an ``EditError`` so the
caller can retry with a more specific anchor; nothing is ever applied to
several places at once.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from quill.errors import EditError


class EditMode(StrEnum):
    REPLACE = "replace"
    INSERT_AFTER = "insert_after"
    INSERT_BEFORE = "insert_before"
    APPEND = "append"
    PREPEND = "prepend"
    DELETE_LINE = "delete_line"


LINE_TARGET_MODES = frozenset({EditMode.INSERT_AFTER, EditMode.INSERT_BEFORE, EditMode.DELETE_LINE})
VALID_MODES = ", ".join(mode.value for mode in EditMode)


@dataclass(frozen=True)
class EditInstruction:
    path: str
    mode: EditMode
    old_text: str | None = None
    new_text: str | None = None
    line_number: int | None = None

    @classmethod
    def build(
        cls,
        path: str,
        mode: str,
        *,
        old_text: str | None = None,
        new_text: str | None = None,
        line_number: int | None = None,
    ) -> EditInstruction:
        try:
            resolved = EditMode(mode)
        except ValueError:
            raise EditError(f"invalid mode: {mode}. Valid modes are: {VALID_MODES}") from None
        return cls(path=path, mode=resolved, old_text=old_text, new_text=new_text, line_number=line_number)


_LINE_BREAK = re.compile(r"(\r\n|\n)")


@dataclass
class _Line:
    text: str
    end: str


class _Document:
    """File content as lines that each keep their own terminator.

    New lines get the file's dominant separator, so a file with mixed
    endings keeps every untouched line byte for byte.
    """

    def __init__(self, content: str) -> None:
        parts = _LINE_BREAK.split(content)
        self.lines = [_Line(text, end) for text, end in zip(parts[0::2], parts[1::2])]
        if parts[-1]:
            self.lines.append(_Line(parts[-1], ""))
        crlf = content.count("\r\n")
        self.separator = "\r\n" if crlf > content.count("\n") - crlf else "\n"

    @property
    def texts(self) -> list[str]:
        return [line.text for line in self.lines]

    def insert(self, index: int, text: str) -> None:
        """Insert a line before ``index``; ``index == len(lines)`` appends."""
        if index == len(self.lines):
            if not self.lines:
                self.lines.append(_Line(text, ""))
                return
            last = self.lines[-1]
            if not last.end:
                last.end = self.separator
                self.lines.append(_Line(text, ""))
                return
        self.lines.insert(index, _Line(text, self.separator))

    def delete(self, index: int) -> None:
        removed = self.lines.pop(index)
        if not removed.end and self.lines:
            self.lines[-1].end = ""

    def render(self) -> str:
        return "".join(line.text + line.end for line in self.lines)


def apply_edit(content: str, instruction: EditInstruction) -> str:
    """Return ``content`` with ``instruction`` applied, or raise ``EditError``."""
    mode = instruction.mode
    if mode is EditMode.REPLACE:
        return _replace(content, instruction)

    document = _Document(content)
    if mode is EditMode.APPEND:
        document.insert(len(document.lines), _require_new_text(instruction))
    elif mode is EditMode.PREPEND:
        document.insert(0, _require_new_text(instruction))
    elif mode in LINE_TARGET_MODES:
        new_text = None if mode is EditMode.DELETE_LINE else _require_new_text(instruction)
        target = _target_line(document.texts, instruction)
        if mode is EditMode.INSERT_AFTER:
            document.insert(target + 1, new_text)
        elif mode is EditMode.INSERT_BEFORE:
            document.insert(target, new_text)
        else:
            document.delete(target)
    else:
        raise EditError(f"unsupported mode: {mode}")
    return document.render()


def _replace(content: str, instruction: EditInstruction) -> str:
    old_text, new_text = instruction.old_text, instruction.new_text
    if not old_text or new_text is None:
        raise EditError("both old_text and new_text are required for replace mode")
    if old_text == new_text:
        raise EditError("old_text and new_text must be different")

    occurrences = content.count(old_text)
    if occurrences == 0:
        raise EditError("old_text not found in file")
    if occurrences > 1:
        raise EditError(f"old_text is ambiguous: found {occurrences} times, expected exactly 1")
    return content.replace(old_text, new_text, 1)


def _require_new_text(instruction: EditInstruction) -> str:
    if instruction.new_text is None:
        raise EditError(f"new_text is required for {instruction.mode} mode")
    return instruction.new_text


def _target_line(lines: list[str], instruction: EditInstruction) -> int:
    """Resolve the 0-based index of the single line an instruction targets."""
    if instruction.line_number is not None:
        line_number = instruction.line_number
        if not 1 <= line_number <= len(lines):
            raise EditError(f"line_number {line_number} is out of range (1-{len(lines)})")
        return line_number - 1

    if not instruction.old_text:
        raise EditError(f"either old_text or line_number is required for {instruction.mode} mode")
    matches = [idx for idx, line in enumerate(lines) if instruction.old_text in line]
    if not matches:
        raise EditError("old_text not found in file")
    if len(matches) > 1:
        numbers = ", ".join(str(idx + 1) for idx in matches)
        raise EditError(f"old_text is ambiguous: found in {len(matches)} lines ({numbers}), expected exactly 1")
    return matches[0]
