"""Typer CLI for Daybook."""

import asyncio
from pathlib import Path

import logfire
import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .agents import SynthesizerAgent
from .bulk_import import ImportOrchestrator
from .config import ModelConfig, get_data_dir
from .exceptions import (
    CategoryProtectedError,
    NothingToReportError,
    UniqueConstraintError,
    UnsupportedReportError,
)
from .llm import ModelClient
from .reports import WEEKLY, request_weekly_report
from .schemas import (
    Category,
    CategoryInput,
    CategoryUpdate,
    ReportStatus,
    WeeklyReportContent,
)
from .storage import JsonJournalStore
from .workflow import create_search_workflow, run_search

# Load environment variables from .env file
load_dotenv()

# Configure logfire (disable console output so progress lines stay readable)
logfire.configure(console=False, send_to_logfire=False)
logfire.instrument_openai()

app = typer.Typer(
    name="daybook",
    help="Personal activity journal with LLM-powered import, search and reports",
)
console = Console()


def get_store() -> JsonJournalStore:
    """Open the journal store in the data directory."""
    return JsonJournalStore(get_data_dir() / "daybook.json")


def _line_style(line: str) -> str:
    if "✗" in line:
        return "red"
    if "⚠" in line:
        return "yellow"
    if "✓" in line:
        return "green"
    return ""


@app.command(name="import")
def import_journal(
    path: Path = typer.Argument(..., help="Plain-text journal file to import"),
) -> None:
    """Import a multi-day journal.

    Each day must start with a line holding its date in YYYY-MM-DD format.
    Re-importing a date replaces that date's activities.

    Examples:
        daybook import ./journal.txt
    """
    if not path.is_file():
        typer.echo(f"Error: File does not exist: {path}", err=True)
        raise typer.Exit(1)

    orchestrator = ImportOrchestrator(get_store(), ModelClient(ModelConfig.from_env()))
    text = path.read_text(encoding="utf-8")

    async def run() -> None:
        async for line in orchestrator.stream(text):
            console.print(Text(line, style=_line_style(line)))

    asyncio.run(run())


@app.command()
def search(query: str) -> None:
    """Answer a question about the journal.

    Examples:
        daybook search "how much did I exercise last month?"
    """
    workflow = create_search_workflow(get_store(), ModelClient(ModelConfig.from_env()))

    with console.status("Searching journal..."):
        result = asyncio.run(run_search(query, workflow))

    if result.keywords:
        console.print(f"[dim]Keywords: {', '.join(result.keywords)}[/dim]")
    console.print(Panel(Markdown(result.summary.main_summary), border_style="cyan"))

    for section in result.summary.sections or []:
        console.print(f"\n[bold]{section.title}[/bold]")
        console.print(Markdown(section.content))

    time_spent = result.summary.time_spent
    if time_spent and time_spent.total_minutes is not None:
        console.print(f"\nTotal time: {time_spent.total_minutes:g} minutes")

    if result.activities:
        console.print(f"\n[dim]Based on {len(result.activities)} activities[/dim]")


def _print_report(content: WeeklyReportContent) -> None:
    console.print(Panel(f"[bold]{content.title}[/bold]", border_style="green"))
    console.print(Markdown(content.summary))

    console.print(f"\nTotal time: {content.time_analysis.total_minutes:g} minutes")
    console.print(content.time_analysis.breakdown_ratio)

    table = Table(title="Tags")
    table.add_column("Tag")
    table.add_column("Minutes", justify="right")
    table.add_column("Count", justify="right")
    for stat in content.tag_analysis:
        table.add_row(stat.tag, str(stat.minutes), str(stat.count))
    console.print(table)

    console.print("\n[bold]Key activities[/bold]")
    for activity in content.key_activities:
        console.print(f"  • {activity.description} ({activity.category_name})")

    console.print("\n[bold]Insights[/bold]")
    console.print(Markdown(content.insights_and_trends))


@app.command()
def report(
    date: str = typer.Argument(..., help="Any day in the week to report on (YYYY-MM-DD)"),
) -> None:
    """Show the weekly report for the week containing DATE, generating it if needed."""
    store = get_store()
    synthesizer = SynthesizerAgent(ModelClient(ModelConfig.from_env()))

    try:
        with console.status("Preparing weekly report..."):
            result, generated = asyncio.run(
                request_weekly_report(store, synthesizer, WEEKLY, date)
            )
    except (UnsupportedReportError, NothingToReportError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if result.status == ReportStatus.FAILED or result.content is None:
        typer.echo("Error: Failed to generate report content.", err=True)
        raise typer.Exit(1)

    if not generated:
        console.print("[dim]Using previously generated report[/dim]")
    _print_report(result.content)


@app.command()
def categories() -> None:
    """List all categories."""
    found = asyncio.run(get_store().list_categories())

    if not found:
        typer.echo("No categories found.")
        typer.echo("\nCreate one with: daybook add-category NAME --description '...'")
        return

    table = Table(title="Categories")
    table.add_column("Name")
    table.add_column("Description")
    table.add_column("Default")
    for category in found:
        table.add_row(
            category.name,
            category.description or "",
            "yes" if category.is_default else "",
        )
    console.print(table)


@app.command(name="add-category")
def add_category(
    name: str,
    description: str = typer.Option(
        None,
        "--description",
        "-d",
        help="What belongs in this category (used to classify imported activities)",
    ),
    color: str = typer.Option("#6B7280", "--color", help="Display color, e.g. #10B981"),
) -> None:
    """Create a custom category."""
    try:
        fields = CategoryInput(name=name, description=description, color=color)
    except ValidationError as e:
        typer.echo(f"Error: Invalid category: {e}", err=True)
        raise typer.Exit(1)

    try:
        category = asyncio.run(
            get_store().create_category(
                fields.name, description=fields.description, color=fields.color
            )
        )
    except UniqueConstraintError:
        typer.echo(f"Error: Category already exists: {name}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Created category: {category.name}")
    if not description:
        typer.echo("Warning: imports require every custom category to have a description.")


def _find_category(found: list[Category], name: str) -> Category:
    for category in found:
        if category.name == name:
            return category
    typer.echo(f"Error: Category not found: {name}", err=True)
    raise typer.Exit(1)


@app.command(name="edit-category")
def edit_category(
    name: str = typer.Argument(..., help="Current name of the category"),
    new_name: str = typer.Option(None, "--name", "-n", help="Rename the category"),
    description: str = typer.Option(None, "--description", "-d", help="New description"),
    color: str = typer.Option(None, "--color", help="New display color"),
) -> None:
    """Change a category's name, description or color.

    Examples:
        daybook edit-category Work --description "Paid client work"
        daybook edit-category Work --name Professional
    """
    try:
        changes = CategoryUpdate(name=new_name, description=description, color=color)
    except ValidationError as e:
        typer.echo(f"Error: Invalid category: {e}", err=True)
        raise typer.Exit(1)

    store = get_store()
    category = _find_category(asyncio.run(store.list_categories()), name)

    try:
        updated = asyncio.run(
            store.update_category(
                category.id,
                name=changes.name,
                description=changes.description,
                color=changes.color,
            )
        )
    except UniqueConstraintError:
        typer.echo(f"Error: Category already exists: {new_name}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Updated category: {updated.name}")


@app.command(name="delete-category")
def delete_category(name: str) -> None:
    """Delete a custom category that has no activities."""
    store = get_store()
    category = _find_category(asyncio.run(store.list_categories()), name)

    try:
        asyncio.run(store.delete_category(category.id))
    except CategoryProtectedError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Deleted category: {name}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8080, "--port", "-p", help="Port to bind to"),
) -> None:
    """Start the web server."""
    import uvicorn

    from .web import create_app

    typer.echo(f"Starting Daybook web server at http://{host}:{port}")
    typer.echo("Press Ctrl+C to stop")

    app_instance = create_app(get_store(), ModelConfig.from_env())
    logfire.instrument_starlette(app_instance)
    uvicorn.run(app_instance, host=host, port=port, log_level="info")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
