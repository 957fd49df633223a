"""
CLI Main - Typer command-line interface.
========================================

Commands:
- index: Chunk and index plain-text documents
- ask: Answer a question with a single routing decision
- stream: Stream an answer event by event
- remove: Delete a document's fragments and catalog record
- info: Show configuration and index status
"""

from pathlib import Path
from typing import Optional

import typer
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from library_rag.shared.config import get_settings
from library_rag.shared.logging import get_console, get_logger, setup_logging_from_settings

logger = get_logger(__name__)

app = typer.Typer(
    name="library-rag",
    help="""📚 Library RAG - Retrieval routing for a document library

Answers questions from indexed library documents when they contain the
answer, and from the model's general knowledge when they do not.

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

COMMANDS OVERVIEW:

  index    Chunk and index .txt / .md documents
           -c, --category     Category stored with every fragment
           -r, --rebuild      Clear the collection before indexing

  ask      Answer a question (library, general or greeting route)
           --no-sources       Hide source documents

  stream   Stream an answer as events
           --sse              Print raw server-sent-event frames

  remove   Remove a document by id

  info     Show configuration and index status

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

QUICK START:

  library-rag index docs/*.txt                 # Step 1: Build the index
  library-rag ask "MySQL的默认端口是多少？"      # Step 2: Ask questions

Use 'library-rag <command> --help' for detailed command options.
""",
    add_completion=False,
    rich_markup_mode="rich",
)

# Shared with the log handler so spinners and log lines do not interleave
console = get_console()


@app.callback()
def main() -> None:
    """Configure logging before any command runs."""
    setup_logging_from_settings(get_settings())


# ─────────────────────────────────────────────────────────────────────────────
# Index Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def index(
    paths: list[Path] = typer.Argument(
        ...,
        help="Plain-text (.txt / .md) files to index.",
    ),
    category: str = typer.Option(
        "",
        "--category", "-c",
        help="Category stored with every fragment of these documents.",
    ),
    rebuild: bool = typer.Option(
        False,
        "--rebuild", "-r",
        help="Delete the existing collection before indexing.",
    ),
):
    """
    📊 Chunk documents and add them to the vector index.

    Examples:
        library-rag index docs/mysql_manual.txt -c database
        library-rag index docs/*.md -r
    """
    from library_rag.indexing.catalog import JsonDocumentCatalog
    from library_rag.indexing.vector_store import create_vector_store
    from library_rag.ingestion.pipeline import SUPPORTED_SUFFIXES, DocumentIngestor

    missing = [path for path in paths if not path.exists()]
    if missing:
        for path in missing:
            console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(1)

    store = create_vector_store()
    catalog = JsonDocumentCatalog()
    if rebuild:
        store.clear()
        for record in catalog.list_documents():
            catalog.remove(record.document_id)
        console.print("[yellow]Cleared existing index[/yellow]")

    ingestor = DocumentIngestor(vector_index=store, catalog=catalog)

    table = Table(show_header=True)
    table.add_column("File", style="cyan")
    table.add_column("Document ID")
    table.add_column("Indexed", justify="right")
    table.add_column("Failed", justify="right")

    total_indexed = 0
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        for path in paths:
            if path.suffix.lower() not in SUPPORTED_SUFFIXES:
                console.print(f"[yellow]Skipping unsupported file: {path}[/yellow]")
                continue

            task = progress.add_task(f"Indexing {path.name}...", total=None)
            report = ingestor.ingest_file(path, category=category)
            progress.remove_task(task)

            total_indexed += report.indexed
            failed = f"[red]{report.failed}[/red]" if report.failed else "0"
            table.add_row(path.name, report.document_id, str(report.indexed), failed)

    console.print(table)
    console.print(f"\n[bold green]✓ Indexed {total_indexed} fragments[/bold green]")


# ─────────────────────────────────────────────────────────────────────────────
# Ask Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def ask(
    question: str = typer.Argument(
        ...,
        help="Question to answer (wrap in quotes).",
    ),
    show_sources: bool = typer.Option(
        True,
        "--sources/--no-sources",
        help="Display the documents the answer was grounded on.",
    ),
):
    """
    💬 Ask a question.

    The router greets, answers from the library, or falls back to general
    knowledge when the library has nothing relevant.

    Examples:
        library-rag ask "MySQL的默认端口是多少？"
        library-rag ask "你好"
    """
    from library_rag.rag.router import create_router

    console.print(f"\n[bold]Question:[/bold] {question}\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Thinking...", total=None)
        answer = create_router().answer_query(question)
        progress.remove_task(task)

    border = "green" if answer.relevant else "yellow"
    console.print(Panel(answer.text, title=f"💬 {answer.source_label}", border_style=border))

    if answer.note:
        console.print(f"\n[dim]{answer.note}[/dim]")

    if show_sources and answer.sources:
        console.print("\n[bold]📚 Sources:[/bold]")
        table = Table(show_header=True)
        table.add_column("#", justify="right")
        table.add_column("Document", style="cyan")
        for i, name in enumerate(answer.sources, 1):
            table.add_row(str(i), name)
        console.print(table)


# ─────────────────────────────────────────────────────────────────────────────
# Stream Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def stream(
    question: str = typer.Argument(
        ...,
        help="Question to answer (wrap in quotes).",
    ),
    sse: bool = typer.Option(
        False,
        "--sse",
        help="Print raw 'data: {json}' frames instead of formatted text.",
    ),
    show_thinking: bool = typer.Option(
        False,
        "--thinking/--no-thinking",
        help="Print the model's reasoning as it streams.",
    ),
):
    """
    📡 Stream an answer event by event.

    Examples:
        library-rag stream "什么是数据库索引？"
        library-rag stream "MySQL的默认端口是多少？" --sse
    """
    from library_rag.rag.router import create_router
    from library_rag.shared.schemas import StreamEventType

    for event in create_router().answer_query_stream(question):
        if sse:
            console.out(event.to_sse(), end="", highlight=False)
            continue

        if event.type == StreamEventType.START:
            console.print(f"[bold]Mode:[/bold] {event.source_type}\n")
        elif event.type == StreamEventType.THINKING:
            if show_thinking:
                console.print(event.content, end="", style="dim", markup=False)
        elif event.type == StreamEventType.ANSWER_START:
            if show_thinking:
                console.print()
        elif event.type == StreamEventType.CHUNK:
            console.print(event.content, end="", markup=False, highlight=False)
        elif event.type == StreamEventType.SOURCE:
            console.print("\n\n[bold]📚 Sources:[/bold] " + ", ".join(event.sources or []))
        elif event.type == StreamEventType.NOTE:
            console.print(f"\n\n[dim]{event.note}[/dim]")
        elif event.type == StreamEventType.END:
            console.print()
        elif event.type == StreamEventType.ERROR:
            console.print(f"\n[red]{event.error}[/red]")
            raise typer.Exit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Remove Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def remove(
    document_id: str = typer.Argument(..., help="Document id as shown by 'index'."),
):
    """🗑️ Remove a document's fragments and catalog record."""
    from library_rag.indexing.catalog import JsonDocumentCatalog
    from library_rag.indexing.vector_store import create_vector_store
    from library_rag.ingestion.pipeline import DocumentIngestor

    ingestor = DocumentIngestor(vector_index=create_vector_store(), catalog=JsonDocumentCatalog())
    if ingestor.remove_document(document_id):
        console.print(f"[green]✓ Removed {document_id}[/green]")
    else:
        console.print(f"[yellow]No catalog record for {document_id}; fragments deleted if any[/yellow]")


# ─────────────────────────────────────────────────────────────────────────────
# Info Command
# ─────────────────────────────────────────────────────────────────────────────


@app.command()
def info(
    show_stats: bool = typer.Option(
        True,
        "--stats/--no-stats",
        help="Open the vector store and report fragment counts.",
    ),
):
    """
    ℹ️ Show system information and configuration.

    Displays version, model, retrieval thresholds, data paths and index
    statistics. Useful for debugging and verifying setup.
    """
    from library_rag import __version__
    from library_rag.indexing.catalog import JsonDocumentCatalog

    settings = get_settings()

    console.print(Panel(
        f"[bold]Library RAG[/bold]\n"
        f"Version: {__version__}\n"
        f"Model: {settings.get_effective_model_name()}\n"
        f"API key: {'set' if settings.gemini_api_key else '[red]missing[/red]'}",
        title="ℹ️ Info",
    ))

    console.print("\n[bold]Retrieval:[/bold]")
    table = Table()
    table.add_column("Setting")
    table.add_column("Value", justify="right")
    table.add_row("top_k", str(settings.retrieval.top_k))
    table.add_row("high_threshold", str(settings.retrieval.high_threshold))
    table.add_row("standard_threshold", str(settings.retrieval.standard_threshold))
    table.add_row("context base length", str(settings.context.base_max_length))
    table.add_row("multi-round", str(settings.generation.multi_round_enabled))
    console.print(table)

    console.print("\n[bold]Data Paths:[/bold]")
    resolved_paths = settings.resolved_paths
    path_dict = {
        "data_dir": resolved_paths.data_dir,
        "index_dir": resolved_paths.index_dir,
        "catalog_file": resolved_paths.catalog_file,
    }
    for name, path in path_dict.items():
        exists = "✓" if path.exists() else "✗"
        console.print(f"  {name}: {path} [{exists}]")

    if show_stats:
        from library_rag.indexing.vector_store import create_vector_store

        stats = create_vector_store().get_stats()
        console.print("\n[bold]Index:[/bold]")
        for key, value in stats.items():
            console.print(f"  {key}: {value}")
        console.print(f"  catalog_documents: {len(JsonDocumentCatalog().list_documents())}")


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def cli():
    """CLI entry point."""
    app()


if __name__ == "__main__":
    cli()
