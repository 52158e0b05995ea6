"""CLI main module for Quill."""

from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.markup import escape

from quill.bootstrap import build_session
from quill.config import Settings
from quill.core.orchestrator import Conversation, TextFragment, ToolActivity, TurnRun
from quill.errors import ConfigurationError, QuillError
from quill.logging_utils import LogProfile, configure_logging
from quill.tools.fs import build_file_registry

from .render import Renderer, create_cli_renderer

QUIT_COMMANDS = frozenset({"/quit", "/exit", "quit", "exit"})
RESET_COMMAND = "/reset"

app = typer.Typer(
    name="quill",
    help="Chat with a model that can read and edit your files.",
    add_completion=False,
    rich_markup_mode="rich",
)


def _render_run(run: TurnRun, renderer: Renderer) -> bool:
    """Render one turn; return False when it ended with an error."""
    try:
        for update in run:
            if isinstance(update, TextFragment):
                renderer.stream_text(update.text)
            elif isinstance(update, ToolActivity):
                renderer.tool_activity(update)
    except KeyboardInterrupt:
        run.cancel()
        renderer.error("turn cancelled")
        return False
    except QuillError as exc:
        logger.warning("chat.turn.error error={}", exc)
        renderer.error(str(exc))
        return False
    finally:
        renderer.end_stream()
    return True


def _chat_loop(conversation: Conversation, renderer: Renderer) -> None:
    while True:
        try:
            user_input = renderer.get_user_input()
        except (KeyboardInterrupt, EOFError):
            renderer.info("\nGoodbye!")
            return

        text = user_input.strip()
        if not text:
            continue
        if text.lower() in QUIT_COMMANDS:
            renderer.info("Goodbye!")
            return
        if text.lower() == RESET_COMMAND:
            conversation.reset()
            renderer.info("[dim]Conversation reset.[/dim]")
            continue

        _render_run(conversation.submit(text), renderer)


def _build_conversation(
    workspace: Optional[Path], model: Optional[str], max_tokens: Optional[int], profile: LogProfile
) -> Conversation:
    try:
        settings = Settings()
        configure_logging(profile=profile, level=settings.log_level)
        return Conversation(build_session(workspace, model=model, max_tokens=max_tokens, settings=settings))
    except ConfigurationError as exc:
        create_cli_renderer().error(str(exc))
        raise typer.Exit(1) from exc


@app.command()
def chat(
    workspace: Optional[Path] = typer.Option(None, "--workspace", "-w", help="Workspace directory"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name"),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens", help="Maximum output tokens per model call"),
) -> None:
    """Start an interactive chat."""
    conversation = _build_conversation(workspace, model, max_tokens, "chat")
    renderer = create_cli_renderer()
    context = conversation.context
    renderer.welcome()
    renderer.usage_info(
        workspace_path=str(context.workspace),
        model=context.settings.model,
        tools=context.registry.names,
    )
    _chat_loop(conversation, renderer)


@app.command()
def run(
    message: str = typer.Argument(..., help="Message to send"),
    workspace: Optional[Path] = typer.Option(None, "--workspace", "-w", help="Workspace directory"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name"),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens", help="Maximum output tokens per model call"),
) -> None:
    """Send a single message and print the resolved response."""
    conversation = _build_conversation(workspace, model, max_tokens, "default")
    if not _render_run(conversation.submit(message), create_cli_renderer()):
        raise typer.Exit(1)


@app.command()
def tools(
    workspace: Optional[Path] = typer.Option(None, "--workspace", "-w", help="Workspace directory"),
) -> None:
    """List the tools offered to the model."""
    registry = build_file_registry((workspace or Path.cwd()).resolve())
    renderer = create_cli_renderer()
    for row in registry.compact_rows():
        renderer.info(escape(row))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
