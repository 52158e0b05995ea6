"""Filesystem tools bound to a workspace."""

from __future__ import annotations

import json
import os
import stat
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from quill.errors import ToolError
from quill.tools.edit_engine import EditInstruction, apply_edit
from quill.tools.registry import ToolDefinition, ToolRegistry

READ_FILE_DESCRIPTION = (
    "Read the contents of a given relative file path. Use this when you want to see what's inside a file. "
    "Do not use this with directory names."
)
LIST_FILES_DESCRIPTION = (
    "List files and directories at a given path. If no path is provided, lists files in the current directory."
)
CREATE_FILE_DESCRIPTION = (
    "Create a new file with the specified content. "
    "If the file already exists, it will return an error unless overwrite is true."
)
EDIT_FILE_DESCRIPTION = """Make edits to an existing file using various modes:
- 'replace': Replace old_text with new_text (must match exactly once)
- 'insert_after': Insert new_text as a new line after the line containing old_text, or after line_number
- 'insert_before': Insert new_text as a new line before the line containing old_text, or before line_number
- 'append': Append new_text as a new line at the end of the file
- 'prepend': Prepend new_text as a new line at the beginning of the file
- 'delete_line': Delete the line containing old_text, or the line at line_number
Anchors must match exactly one location; ambiguous anchors are rejected."""
APPEND_TO_FILE_DESCRIPTION = "Append content to the end of an existing file. Creates the file if it doesn't exist."
GET_FILE_INFO_DESCRIPTION = (
    "Get information about a file or directory (size, permissions, modification time, line count, etc.)."
)
MOD_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class ReadFileInput(BaseModel):
    path: str = Field(..., description="The relative path of a file in the working directory.")
    start_line: int | None = Field(
        default=None, description="Optional starting line number (1-based). If provided, only reads from this line onwards."
    )
    end_line: int | None = Field(
        default=None,
        description="Optional ending line number (1-based). If provided with start_line, reads only the specified range.",
    )


class ListFilesInput(BaseModel):
    path: str = Field(default=".", description="Optional relative path to list files from. Defaults to the workspace.")
    recursive: bool = Field(default=False, description="Whether to list files recursively. Defaults to false.")
    max_depth: int | None = Field(
        default=None, ge=0, description="Maximum depth to recurse. Only applies if recursive is true."
    )


class CreateFileInput(BaseModel):
    path: str = Field(..., description="The path where the file should be created.")
    content: str = Field(..., description="The content to write to the file.")
    overwrite: bool = Field(default=False, description="Whether to overwrite the file if it already exists.")


class EditFileInput(BaseModel):
    path: str = Field(..., description="The path to the file to edit.")
    mode: str = Field(
        ...,
        description="Edit mode: 'replace', 'insert_after', 'insert_before', 'append', 'prepend', or 'delete_line'.",
    )
    old_text: str | None = Field(
        default=None,
        description="Text to search for (required for replace; anchor for insert_after, insert_before, delete_line).",
    )
    new_text: str | None = Field(
        default=None,
        description="Text to insert or replace with (required for replace, insert_after, insert_before, append, prepend).",
    )
    line_number: int | None = Field(
        default=None, description="Specific target line number (1-based, optional alternative to old_text)."
    )


class AppendToFileInput(BaseModel):
    path: str = Field(..., description="The path to the file to append to.")
    content: str = Field(..., description="The content to append to the file.")
    newline: bool = Field(
        default=True, description="Whether to add a newline before the content when the file does not end with one."
    )


class GetFileInfoInput(BaseModel):
    path: str = Field(..., description="The path to get information about.")


def resolve_path(workspace: Path, raw_path: str) -> Path:
    path = Path(raw_path).expanduser()
    if path.is_absolute():
        return path
    return workspace / path


def _require_path(raw_path: str) -> None:
    if not raw_path.strip():
        raise ToolError("path is required")


def _read_text(file_path: Path, raw_path: str) -> str:
    try:
        with open(file_path, encoding="utf-8", newline="") as handle:
            return handle.read()
    except FileNotFoundError:
        raise ToolError(f"file not found: {raw_path}") from None
    except IsADirectoryError:
        raise ToolError(f"path is a directory: {raw_path}") from None
    except UnicodeDecodeError:
        raise ToolError(f"file is not a text file: {raw_path}") from None
    except OSError as exc:
        raise ToolError(f"failed to read file: {exc}") from exc


def _write_text(file_path: Path, content: str) -> None:
    try:
        with open(file_path, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
    except OSError as exc:
        raise ToolError(f"failed to write file: {exc}") from exc


def _ensure_parent(file_path: Path) -> None:
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ToolError(f"failed to create directory: {exc}") from exc


def read_file(workspace: Path, params: ReadFileInput) -> str:
    _require_path(params.path)
    content = _read_text(resolve_path(workspace, params.path), params.path)
    if params.start_line is None and params.end_line is None:
        return content

    lines = content.split("\n")
    total = len(lines)
    start_line = 1 if params.start_line is None else params.start_line
    end_line = total if params.end_line is None else params.end_line
    if start_line < 1:
        raise ToolError("start_line must be >= 1")
    if end_line < 1:
        raise ToolError("end_line must be >= 1")
    if start_line > end_line:
        raise ToolError("start_line cannot be greater than end_line")
    if start_line > total:
        raise ToolError(f"start_line ({start_line}) exceeds total lines ({total})")
    return "\n".join(lines[start_line - 1 : min(end_line, total)])


def list_files(workspace: Path, params: ListFilesInput) -> str:
    base = resolve_path(workspace, params.path or ".")
    if not base.exists():
        raise ToolError(f"directory not found: {params.path}")
    if not base.is_dir():
        raise ToolError(f"not a directory: {params.path}")

    entries: list[str] = []
    try:
        if not params.recursive:
            for child in sorted(base.iterdir(), key=lambda item: item.name):
                entries.append(f"{child.name}/" if child.is_dir() else child.name)
        else:
            entries = _walk(base, params.max_depth)
    except OSError as exc:
        raise ToolError(f"failed to read directory: {exc}") from exc
    return json.dumps(entries)


def _walk(base: Path, max_depth: int | None) -> list[str]:
    """Relative paths under ``base``; depth 0 is its direct children."""
    entries: list[str] = []

    def _raise(exc: OSError) -> None:
        raise exc

    for root, dirs, files in os.walk(base, onerror=_raise):
        dirs.sort()
        rel_root = Path(root).relative_to(base)
        depth = 0 if rel_root == Path(".") else len(rel_root.parts)
        if max_depth is not None and depth > max_depth:
            dirs[:] = []
            continue
        for name in dirs:
            entries.append(f"{(rel_root / name).as_posix()}/")
        for name in sorted(files):
            entries.append((rel_root / name).as_posix())
        if max_depth is not None and depth == max_depth:
            dirs[:] = []
    return sorted(entries)


def create_file(workspace: Path, params: CreateFileInput) -> str:
    _require_path(params.path)
    file_path = resolve_path(workspace, params.path)
    if file_path.exists() and not params.overwrite:
        raise ToolError(f"file already exists: {params.path} (use overwrite=true to replace)")
    _ensure_parent(file_path)
    _write_text(file_path, params.content)
    return f"Successfully created file: {params.path}"


def edit_file(workspace: Path, params: EditFileInput) -> str:
    _require_path(params.path)
    instruction = EditInstruction.build(
        params.path,
        params.mode,
        old_text=params.old_text,
        new_text=params.new_text,
        line_number=params.line_number,
    )
    file_path = resolve_path(workspace, instruction.path)
    content = _read_text(file_path, params.path)
    _write_text(file_path, apply_edit(content, instruction))
    return f"Successfully edited file using {instruction.mode} mode"


def append_to_file(workspace: Path, params: AppendToFileInput) -> str:
    _require_path(params.path)
    file_path = resolve_path(workspace, params.path)
    _ensure_parent(file_path)
    try:
        existing = file_path.read_bytes() if file_path.exists() else b""
        with open(file_path, "a", encoding="utf-8", newline="") as handle:
            if params.newline and existing and not existing.endswith(b"\n"):
                handle.write("\n")
            handle.write(params.content)
    except OSError as exc:
        raise ToolError(f"failed to append content: {exc}") from exc
    return f"Successfully appended content to: {params.path}"


def get_file_info(workspace: Path, params: GetFileInfoInput) -> str:
    _require_path(params.path)
    file_path = resolve_path(workspace, params.path)
    info: dict[str, object] = {"path": params.path, "exists": False}
    try:
        st = file_path.stat()
    except FileNotFoundError:
        return json.dumps(info)
    except OSError as exc:
        raise ToolError(f"failed to stat file: {exc}") from exc

    is_directory = stat.S_ISDIR(st.st_mode)
    info.update(
        exists=True,
        is_directory=is_directory,
        size=st.st_size,
        mode=stat.filemode(st.st_mode),
        mod_time=datetime.fromtimestamp(st.st_mtime).strftime(MOD_TIME_FORMAT),
    )
    if not is_directory and st.st_size > 0:
        line_count = _count_lines(file_path)
        if line_count is not None:
            info["line_count"] = line_count
    return json.dumps(info)


def _count_lines(file_path: Path) -> int | None:
    try:
        return len(file_path.read_text(encoding="utf-8").splitlines())
    except (OSError, UnicodeDecodeError):
        return None


def build_file_registry(workspace: Path) -> ToolRegistry:
    """Create the static registry of file tools bound to ``workspace``."""

    def _bind(handler):
        return lambda params: handler(workspace, params)

    return ToolRegistry(
        [
            ToolDefinition("read_file", READ_FILE_DESCRIPTION, ReadFileInput, _bind(read_file)),
            ToolDefinition("list_files", LIST_FILES_DESCRIPTION, ListFilesInput, _bind(list_files)),
            ToolDefinition("create_file", CREATE_FILE_DESCRIPTION, CreateFileInput, _bind(create_file)),
            ToolDefinition("edit_file", EDIT_FILE_DESCRIPTION, EditFileInput, _bind(edit_file)),
            ToolDefinition("append_to_file", APPEND_TO_FILE_DESCRIPTION, AppendToFileInput, _bind(append_to_file)),
            ToolDefinition("get_file_info", GET_FILE_INFO_DESCRIPTION, GetFileInfoInput, _bind(get_file_info)),
        ]
    )
