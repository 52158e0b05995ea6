"""CLI renderer for Quill."""

from __future__ import annotations

import threading

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markup import escape

from quill.core.orchestrator import ToolActivity

TOOL_PREVIEW_LIMIT = 200


class Renderer:
    """CLI renderer using Rich for terminal output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console: Console = console or Console()
        self._prompt_session: PromptSession[str] | None = None
        self._print_lock = threading.Lock()
        self._streaming = False

    def info(self, message: str) -> None:
        self._print(message)

    def error(self, message: str) -> None:
        self.end_stream()
        self._print(f"[bold red]Error:[/bold red] {escape(message)}")

    def welcome(self, message: str = "[bold blue]Quill[/bold blue] - chat with your files.") -> None:
        self._print(message)

    def usage_info(self, workspace_path: str | None = None, model: str = "", tools: list[str] | None = None) -> None:
        if workspace_path:
            self._print(f"[bold]Working directory:[/bold] [cyan]{escape(workspace_path)}[/cyan]")
        if model:
            self._print(f"[bold]Model:[/bold] [magenta]{escape(model)}[/magenta]")
        if tools:
            self._print(f"[bold]Available tools:[/bold] [green]{', '.join(tools)}[/green]")
        self._print("[dim]Commands: /reset, /quit. Ctrl-C cancels a running turn.[/dim]")

    def stream_text(self, fragment: str) -> None:
        """Write a streamed fragment without a trailing newline."""
        with self._print_lock:
            if not self._streaming:
                self.console.print("[bold yellow]Quill:[/bold yellow] ", end="")
                self._streaming = True
            self.console.print(fragment, end="", markup=False, highlight=False, soft_wrap=True)

    def end_stream(self) -> None:
        with self._print_lock:
            if self._streaming:
                self.console.print()
                self._streaming = False

    def tool_activity(self, activity: ToolActivity) -> None:
        self.end_stream()
        invocation, result = activity.invocation, activity.result
        preview = result.text.strip().replace("\n", " | ")
        if len(preview) > TOOL_PREVIEW_LIMIT:
            preview = preview[: TOOL_PREVIEW_LIMIT - 3] + "..."
        style = "red" if result.is_error else "dim"
        self._print(f"[green]tool[/green] {escape(invocation.name)} [{style}]{escape(preview)}[/{style}]")

    def get_user_input(self) -> str:
        if self._prompt_session is None:
            self._prompt_session = PromptSession()
        with patch_stdout(raw=True):
            return self._prompt_session.prompt("you> ")

    def _print(self, message: str) -> None:
        with self._print_lock:
            self.console.print(message)


def create_cli_renderer() -> Renderer:
    """Create and return a Renderer instance."""
    return Renderer()
