"""gemrelay CLI implementation.

Provides a command-line interface for one-off queries, API key checks and
cassette housekeeping.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from gemrelay.accounting import get_total_cost, get_total_duration_ms
from gemrelay.config import CLIOverrides, ConfigLoader, FileConfig
from gemrelay.exceptions import GemRelayError
from gemrelay.models.config import RecordMode
from gemrelay.models.conversation import Turn
from gemrelay.models.messages import AssistantMessage, MessageType, UserMessage
from gemrelay.orchestrator import QueryOrchestrator
from gemrelay.persistence import load_messages_from_log, save_messages_to_log
from gemrelay.providers.factory import create_provider
from gemrelay.recording import CassetteStore, ConversationRecorder
from gemrelay.tools import BaseTool, MemoryReadTool, MemoryWriteTool

app = typer.Typer(
    name="gemrelay",
    help="Gemini chat relay with retries, tool calling and record/replay.",
    no_args_is_help=True,
)
cassettes_app = typer.Typer(help="Inspect and manage recorded interactions.", no_args_is_help=True)
app.add_typer(cassettes_app, name="cassettes")

console = Console()

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to gemrelay.yaml configuration file."),
]
LogLevelOption = Annotated[
    str | None,
    typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)."),
]


def _configure_logging(file_config: FileConfig, overrides: CLIOverrides) -> None:
    """Route library logging through rich, plus an optional plain log file."""
    try:
        config = ConfigLoader.resolve_logging_config(file_config, overrides)
    except GemRelayError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    handlers: list[logging.Handler] = [
        RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    ]
    if config.file:
        handlers.append(logging.FileHandler(config.file))
    logging.basicConfig(level=config.level, format="%(message)s", handlers=handlers, force=True)


def _load_file_config(config_file: Path | None) -> FileConfig:
    try:
        return ConfigLoader.load_config(config_file)
    except GemRelayError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e


def _build_recorder(file_config: FileConfig, overrides: CLIOverrides) -> ConversationRecorder:
    recorder_config = ConfigLoader.resolve_recorder_config(file_config, overrides)
    if recorder_config.mode == RecordMode.PASSTHROUGH:
        return ConversationRecorder()
    return ConversationRecorder.from_config(recorder_config)


def _conversation(history: list[MessageType]) -> list[UserMessage | AssistantMessage]:
    """Messages that are conversation turns; progress records are dropped."""
    return [m for m in history if isinstance(m, UserMessage | AssistantMessage)]


@app.command()
def ask(  # noqa: PLR0913 - Typer requires CLI args as function parameters
    prompt: Annotated[str, typer.Argument(help="Prompt to send.")],
    system: Annotated[
        list[str] | None,
        typer.Option("--system", "-s", help="System prompt fragment (repeatable)."),
    ] = None,
    log: Annotated[
        Path | None,
        typer.Option("--log", "-l", help="Message log to resume from and append to."),
    ] = None,
    memory_dir: Annotated[
        Path | None,
        typer.Option("--memory-dir", help="Enable memory tools over this directory."),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", "-m", help="Gemini model name."),
    ] = None,
    record_mode: Annotated[
        RecordMode | None,
        typer.Option("--record-mode", help="passthrough, record or replay."),
    ] = None,
    cassette_dir: Annotated[
        str | None,
        typer.Option("--cassette-dir", help="Directory holding recorded interactions."),
    ] = None,
    config_file: ConfigOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Send a prompt to Gemini and print the reply.

    With --log the conversation is loaded from (and saved back to) a JSON
    message log, so repeated calls continue the same conversation.

        gemrelay ask "What is in my notes?" --memory-dir ~/.notes --log chat.json
    """
    file_config = _load_file_config(config_file)
    overrides = CLIOverrides(
        model=model,
        record_mode=record_mode,
        cassette_dir=cassette_dir,
        log_level=log_level,
    )
    _configure_logging(file_config, overrides)

    tools: list[BaseTool] = []
    if memory_dir is not None:
        tools = [MemoryReadTool(memory_dir), MemoryWriteTool(memory_dir)]

    try:
        history: list[MessageType] = (
            load_messages_from_log(log, tools) if log is not None and log.exists() else []
        )
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/red] Could not load {log}: {e}")
        raise typer.Exit(code=1) from e

    user_message = UserMessage(message=Turn(role="user", content=prompt))

    async def run() -> AssistantMessage:
        provider = create_provider(ConfigLoader.resolve_llm_config(file_config, overrides))
        orchestrator = QueryOrchestrator(
            provider,
            retry_policy=file_config.retry,
            pricing=file_config.pricing,
            recorder=_build_recorder(file_config, overrides),
        )
        try:
            return await orchestrator.query(
                [*_conversation(history), user_message],
                system_prompt=system or (),
                tools=tools,
            )
        finally:
            await provider.close()

    try:
        reply = asyncio.run(run())
    except GemRelayError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    if reply.is_api_error_message:
        console.print(f"[red]{reply.text}[/red]")
        raise typer.Exit(code=1)

    console.print(Panel(reply.text, title=reply.message.model, border_style="cyan"))
    console.print(
        f"[dim]Tokens: {reply.message.usage.total_tokens} · "
        f"Cost: ${get_total_cost():.6f} · Duration: {get_total_duration_ms()}ms[/dim]"
    )

    if log is not None:
        save_messages_to_log(log, [*history, user_message, *reply.log_records()])
        console.print(f"[dim]Conversation saved to {log}[/dim]")


@app.command(name="verify-key")
def verify_key(
    api_key: Annotated[
        str | None,
        typer.Option(
            "--api-key",
            envvar="GOOGLE_API_KEY",
            help="Key to verify (default: GOOGLE_API_KEY).",
        ),
    ] = None,
    config_file: ConfigOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Check whether Gemini accepts an API key."""
    file_config = _load_file_config(config_file)
    overrides = CLIOverrides(api_key=api_key, log_level=log_level)
    _configure_logging(file_config, overrides)

    llm_config = ConfigLoader.resolve_llm_config(file_config, overrides)
    if llm_config.api_key is None:
        console.print("[red]Error:[/red] No API key given. Set GOOGLE_API_KEY or use --api-key.")
        raise typer.Exit(code=1)

    async def run() -> bool:
        provider = create_provider(llm_config)
        try:
            return await QueryOrchestrator(provider).verify_api_key(
                llm_config.api_key.get_secret_value()
            )
        finally:
            await provider.close()

    try:
        valid = asyncio.run(run())
    except GemRelayError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    if not valid:
        console.print("[red]API key rejected.[/red]")
        raise typer.Exit(code=1)
    console.print("[green]API key is valid.[/green]")


def _cassette_store(config_file: Path | None, cassette_dir: str | None) -> CassetteStore:
    file_config = _load_file_config(config_file)
    try:
        recorder_config = ConfigLoader.resolve_recorder_config(
            file_config, CLIOverrides(cassette_dir=cassette_dir)
        )
    except GemRelayError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e
    return CassetteStore(Path(recorder_config.cassette_dir))


CassetteDirOption = Annotated[
    str | None,
    typer.Option("--cassette-dir", help="Directory holding recorded interactions."),
]


@cassettes_app.command(name="list")
def list_cassettes(
    cassette_dir: CassetteDirOption = None,
    config_file: ConfigOption = None,
) -> None:
    """List recorded interactions."""
    store = _cassette_store(config_file, cassette_dir)
    entries = store.list_entries()
    if not entries:
        console.print(f"[yellow]No recordings in {store.cassette_dir}[/yellow]")
        return

    table = Table(title=f"Recordings in {store.cassette_dir}")
    table.add_column("Fingerprint", style="cyan")
    table.add_column("Model")
    table.add_column("Turns", justify="right")
    table.add_column("Recorded", justify="right")

    for entry in entries:
        table.add_row(
            entry.fingerprint,
            str(entry.request.get("model", "")),
            str(len(entry.request.get("history", []))),
            entry.recorded_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)


@cassettes_app.command(name="clear")
def clear_cassettes(
    cassette_dir: CassetteDirOption = None,
    config_file: ConfigOption = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation.")] = False,
) -> None:
    """Delete every recorded interaction."""
    store = _cassette_store(config_file, cassette_dir)
    if not yes:
        typer.confirm(f"Delete all recordings in {store.cassette_dir}?", abort=True)
    removed = store.clear()
    console.print(f"[green]Removed {removed} recording(s).[/green]")


if __name__ == "__main__":
    app()
