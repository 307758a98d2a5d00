"""
DocVault - CLI Entry Point
---------------------------
Exposes Typer commands for the vault.

Usage:
    python -m docvault.main ingest docs/manual.pdf notes.txt
    python -m docvault.main ask                          # Interactive multi-turn chat
    python -m docvault.main ask --query "..."            # Single-shot question
    python -m docvault.main ask --file manual.pdf        # Scope retrieval to one file
    python -m docvault.main documents                    # List ingested files
"""
from __future__ import annotations

import sys

# Windows cp1252 terminal fix: force UTF-8 so document text with
# emoji does not crash the Rich console renderer.
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

import json
from pathlib import Path
from typing import List, Optional

import typer
from loguru import logger
from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table
from tenacity import (
    RetryError,
    retry,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from docvault.config import DEFAULT_CONFIG_PATH, Settings, load_settings
from docvault.errors import ConfigurationError, DocVaultError
from docvault.schemas import ConversationTurn, IngestResult
from docvault.serving.pipeline import ChatAnswer, VaultAssistant, build_assistant
from docvault.utils.helpers import truncate_text
from docvault.utils.logger import setup_logger

app = typer.Typer(
    name="docvault",
    help="DocVault - question answering over a private document vault",
    add_completion=False,
)
console = Console()


# --- Helpers ------------------------------------------------------------------

def _bootstrap(config: str) -> tuple[Settings, VaultAssistant]:
    try:
        settings = load_settings(config)
        setup_logger(settings.logging.level, settings.logging.file)
        return settings, build_assistant(settings)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(2)


def _ingest_with_retry(assistant: VaultAssistant, data: bytes, name: str, attempts: int) -> IngestResult:
    """The core never retries; the CLI retries rate-limited / transient failures."""

    @retry(
        retry=retry_if_result(lambda result: result.retryable),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=2, max=30),
    )
    def _attempt() -> IngestResult:
        return assistant.ingest(data, name)

    try:
        return _attempt()
    except RetryError as exc:
        return exc.last_attempt.result()


# --- Commands -----------------------------------------------------------------

@app.command()
def ingest(
    paths: List[Path] = typer.Argument(..., help="Files to add to the vault"),
    config: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"),
    attempts: int = typer.Option(3, "--attempts", help="Tries per file on rate limits"),
) -> None:
    """Extract, chunk, embed and index one or more files."""
    _, assistant = _bootstrap(config)

    table = Table("File", "Status", "Chunks", box=box.SIMPLE, header_style="bold dim")
    failures = 0
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("[cyan]Ingesting files...[/cyan]", total=len(paths))
        for path in paths:
            progress.advance(task)
            if not path.is_file():
                table.add_row(str(path), "[red]not found[/red]", "-")
                failures += 1
                continue
            try:
                result = _ingest_with_retry(assistant, path.read_bytes(), path.name, attempts)
            except ConfigurationError as exc:
                console.print(f"[red]Configuration error:[/red] {exc}")
                raise typer.Exit(2)

            if result.success:
                table.add_row(path.name, "[green]indexed[/green]", str(result.chunks_count))
            else:
                table.add_row(path.name, f"[red]{result.error}[/red]", "-")
                failures += 1

    console.print(table)
    if failures:
        raise typer.Exit(1)


@app.command()
def ask(
    query: Optional[str] = typer.Option(
        None, "--query", "-q", help="Single question (omit for interactive chat)"
    ),
    file: Optional[str] = typer.Option(
        None, "--file", "-f", help="Restrict retrieval to one ingested file name"
    ),
    config: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"),
    json_out: bool = typer.Option(
        False, "--json", help="Print result as JSON (single-query mode only)"
    ),
) -> None:
    """Ask questions against the vault, with citations."""
    _, assistant = _bootstrap(config)

    # --- Single-shot mode -----------------------------------------------------
    if query:
        try:
            result = assistant.answer([ConversationTurn(role="user", content=query)], file)
        except DocVaultError as exc:
            console.print(f"[red]{exc.user_message}[/red]")
            raise typer.Exit(1)
        if json_out:
            console.print_json(json.dumps(result.to_dict()))
        else:
            _print_result(result)
        return

    # --- Interactive loop -----------------------------------------------------
    console.print()
    console.print(
        Panel(
            "[bold cyan]DocVault[/bold cyan]\n"
            f"[white]Scope: {file or 'all documents'}[/white]",
            box=box.DOUBLE_EDGE,
            expand=False,
        )
    )
    console.print("[dim]Type 'exit', 'quit', or press Ctrl+C to quit.[/dim]\n")

    history: list[ConversationTurn] = []
    while True:
        try:
            raw = console.input("[bold cyan]You[/bold cyan] > ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n[dim]Goodbye.[/dim]")
            break

        if not raw:
            continue
        if raw.lower() in {"exit", "quit", "q"}:
            console.print("[dim]Goodbye.[/dim]")
            break

        history.append(ConversationTurn(role="user", content=raw))
        try:
            with console.status("[cyan]Thinking...[/cyan]"):
                result = assistant.answer(history, file)
        except ConfigurationError as exc:
            console.print(f"[red]Configuration error:[/red] {exc}")
            raise typer.Exit(2)
        except DocVaultError as exc:
            history.pop()
            console.print(f"[red]{exc.user_message}[/red]")
            continue

        history.append(ConversationTurn(role="assistant", content=result.answer))
        _print_result(result)


@app.command()
def documents(
    config: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to config YAML"),
) -> None:
    """List the file names currently in the vault."""
    _, assistant = _bootstrap(config)
    try:
        names = assistant.list_documents()
    except DocVaultError as exc:
        console.print(f"[red]{exc.user_message}[/red]")
        raise typer.Exit(1)

    if not names:
        console.print("[yellow]The vault is empty.  Run: python -m docvault.main ingest <files>[/yellow]")
        return
    for name in names:
        console.print(f"  {name}")
    logger.debug(f"[CLI] {len(names)} document(s) listed")


def _print_result(result: ChatAnswer) -> None:
    """Render a ChatAnswer to the terminal using Rich."""
    console.print()
    console.print(
        Panel(
            Markdown(result.answer_without_sources),
            title="[bold green]Answer[/bold green]",
            border_style="green",
            expand=True,
        )
    )

    if result.sources:
        table = Table("No.", "File", "Page", box=box.SIMPLE, header_style="bold dim")
        for i, src in enumerate(result.sources, start=1):
            table.add_row(str(i), src.file_name, str(src.page) if src.page is not None else "-")
        console.print(table)

    console.print(
        f"[dim]"
        f"query={truncate_text(result.search_query, 60)!r}  "
        f"top={result.top_score:.2f}  "
        f"{'keyword-fallback  ' if result.used_keyword_fallback else ''}"
        f"retrieve={result.retrieval_ms:.0f}ms  "
        f"generate={result.generation_ms:.0f}ms"
        f"[/dim]\n"
    )


# --- Entry Point --------------------------------------------------------------

if __name__ == "__main__":
    app()
