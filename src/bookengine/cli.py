"""Command-line interface for bookengine.

Built with Typer for commands and Rich for output.
"""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .api import default_providers
from .config import get_config
from .db import BookRecord, get_db
from .db.catalog import SqlCatalog
from .db.persistence import SqlBookPersistence
from .discovery import RecommendationEngine, RecommendationStrategyChain
from .errors import BookEngineError, BookNotFoundError, RecommendationPersistenceError
from .search import ResultDeduplicator, SearchPaginationOrchestrator, SearchRequest
from .workers import create_store_executor

# Create the main app
app = typer.Typer(
    name="bookengine",
    help="Search the book catalog and discover similar books.",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def format_book_table(books: list[BookRecord], title: str = "Books", offset: int = 0) -> Table:
    """Create a rich table for displaying books."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Title", style="cyan", no_wrap=False, max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Year", justify="center")
    table.add_column("Source", style="yellow")
    table.add_column("ID", style="dim", max_width=36)

    for position, book in enumerate(books, start=offset + 1):
        table.add_row(
            str(position),
            book.title or "-",
            ", ".join(book.authors) or "-",
            str(book.published_year) if book.published_year else "-",
            "catalog" if book.in_catalog else book.source.value,
            book.id,
        )

    return table


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _check_config() -> bool:
    errors = get_config().validate()
    for error in errors:
        print_error(error)
    return not errors


# ============================================================================
# Search Command
# ============================================================================


async def _run_search(request: SearchRequest):
    config = get_config()
    db = get_db()
    db.create_tables()
    catalog = SqlCatalog(db)
    primary, secondary = default_providers(config)
    executor = create_store_executor(config)
    orchestrator = SearchPaginationOrchestrator(
        catalog=catalog,
        fetcher=catalog,
        deduplicator=ResultDeduplicator(catalog),
        persistence=SqlBookPersistence(db),
        primary_provider=primary,
        secondary_provider=secondary,
        config=config,
        executor=executor,
    )
    try:
        page = await orchestrator.search(request)
        failures = [r for r in await orchestrator.drain_background() if isinstance(r, Exception)]
        return page, failures
    finally:
        executor.shutdown(wait=True)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query (supports isbn:, author:, subject:, intitle:)"),
    start: int = typer.Option(0, "--start", "-s", help="Zero-based offset of the first result"),
    size: int = typer.Option(0, "--size", "-n", help="Page size (0 uses the default)"),
    order_by: str = typer.Option("newest", "--order-by", "-o", help="relevance, newest, title, author or rating"),
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Only books published in this year"),
) -> None:
    """Search the catalog, falling back to external providers."""
    if not _check_config():
        raise typer.Exit(1)

    request = SearchRequest(
        query=query,
        start_index=start,
        max_results=size,
        order_by=order_by,
        published_year=year,
    )
    try:
        page, failures = asyncio.run(_run_search(request))
    except BookEngineError as e:
        print_error(str(e))
        raise typer.Exit(1)

    for failure in failures:
        print_warning(f"Could not store search results: {failure}")

    if not page.page_items:
        console.print(f"[dim]No books found matching: {page.query}[/dim]")
        return

    table = format_book_table(page.page_items, title=f"Search: {page.query}", offset=page.start_index)
    console.print(table)
    print_info(
        f"Showing {page.start_index + 1}-{page.start_index + len(page.page_items)} "
        f"of {page.total_unique} unique results"
    )
    if page.has_more:
        print_info(f"More results: --start {page.next_start_index}")


# ============================================================================
# Similar Books Command
# ============================================================================


async def _run_similar(identifier: str, count: int, regenerate: bool) -> list[BookRecord]:
    config = get_config()
    db = get_db()
    db.create_tables()
    catalog = SqlCatalog(db)
    primary, _ = default_providers(config)
    executor = create_store_executor(config)
    engine = RecommendationEngine(
        lookup=catalog,
        fetcher=catalog,
        strategies=RecommendationStrategyChain(catalog, catalog),
        persistence=SqlBookPersistence(db),
        fallback_provider=primary,
        config=config,
        executor=executor,
    )
    try:
        if regenerate:
            return await engine.regenerate_similar_books(identifier, count)
        return await engine.get_similar_books(identifier, count)
    finally:
        executor.shutdown(wait=True)


@app.command()
def similar(
    identifier: str = typer.Argument(..., help="Book id, slug or ISBN"),
    count: int = typer.Option(6, "--count", "-c", help="Number of recommendations"),
    regenerate: bool = typer.Option(False, "--regenerate", "-r", help="Ignore cached recommendations"),
) -> None:
    """Show books similar to the given book."""
    if not _check_config():
        raise typer.Exit(1)

    try:
        books = asyncio.run(_run_similar(identifier, count, regenerate))
    except BookNotFoundError as e:
        print_error(str(e))
        raise typer.Exit(1)
    except RecommendationPersistenceError as e:
        print_warning(str(e))
        books = e.recommendations
    except BookEngineError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not books:
        console.print(f"[dim]No recommendations for: {identifier}[/dim]")
        return

    console.print(format_book_table(books, title=f"Similar to: {identifier}"))


# ============================================================================
# Version Command
# ============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"bookengine version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
