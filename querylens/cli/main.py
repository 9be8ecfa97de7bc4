import asyncio
import logging
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.json import JSON
from typing import Optional
from pathlib import Path

from querylens.core.config import settings
from querylens.core.errors import QueryLensError
from querylens.core.llm import LLMService
from querylens.core.services import open_run_reader, open_run_service
from querylens.database.mysql import MySQLAdapter

app = typer.Typer(help="Find and analyze expensive MySQL queries with an LLM.")
console = Console()

@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", help="Show debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.logging.level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )

def _run(coro):
    """Run a coroutine and turn domain errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except (QueryLensError, ValueError) as e:
        console.print(Panel(str(e), title="[red]Error[/red]"))
        raise typer.Exit(code=1)

@app.command()
def select(
    instructions: Optional[str] = typer.Option(None, "--instructions", help="Special instructions for the selection"),
    file: Optional[Path] = typer.Option(None, "--file", help="Path to file containing special instructions"),
    use_real_query: bool = typer.Option(False, "--use-real-query", help="Analyze captured SQL instead of normalized digests"),
    use_database_access: bool = typer.Option(False, "--database-access", help="Let the model query the database during analysis"),
):
    """
    Start a new run: let the model select groups of expensive queries.
    """
    if file:
        if not file.exists():
            console.print(f"[red]File {file} not found[/red]")
            raise typer.Exit(code=1)
        instructions = file.read_text().strip()

    async def run_selection():
        async with open_run_service(settings) as service:
            with console.status("[bold green]Selecting candidate queries...[/bold green]"):
                run_id = await service.new_run(instructions, use_real_query, use_database_access)
            run = service.get_run(run_id)
            groups = service.store.get_groups(run_id)
            queries = service.store.get_queries(run_id)

        console.print(f"\n[bold blue]Run {run_id}[/bold blue] ({run.hostname})")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Group")
        table.add_column("Description")
        table.add_column("Queries", justify="right")
        for group in groups:
            count = sum(1 for q in queries if q.group_id == group.id)
            table.add_row(group.name, group.description, str(count))
        console.print(table)
        if run.output:
            console.print(Panel(Markdown(run.output), title="Summary"))

    _run(run_selection())

@app.command()
def show(run_id: int = typer.Argument(..., help="Run id")):
    """
    Show groups and queries of a run.
    """
    async def run_show():
        with open_run_reader(settings) as reader:
            run = reader.get_run(run_id)
            groups = {g.id: g.name for g in reader.get_groups(run_id)}
            queries = reader.get_queries(run_id)

        console.print(f"\n[bold blue]Run {run.id}[/bold blue] {run.created_at:%Y-%m-%d %H:%M} ({run.hostname})")
        table = Table(show_header=True, header_style="bold magenta", expand=True)
        table.add_column("ID", justify="right")
        table.add_column("Group")
        table.add_column("Schema")
        table.add_column("Digest", no_wrap=True)
        table.add_column("Query")
        table.add_column("Real SQL", justify="center")
        table.add_column("Analyzed", justify="center")
        for q in queries:
            table.add_row(
                str(q.id),
                groups.get(q.group_id, ""),
                q.schema_name,
                q.digest[:12],
                q.normalized_query[:80],
                "[green]yes[/green]" if q.real_query else "[yellow]no[/yellow]",
                "[green]yes[/green]" if q.is_analyzed else "-",
            )
        console.print(table)

    _run(run_show())

@app.command("fetch-queries")
def fetch_queries(run_id: int = typer.Argument(..., help="Run id")):
    """
    Look up real SQL text for queries of a run that have none yet.
    """
    async def run_fetch():
        async with open_run_service(settings) as service:
            total, missing = await service.fetch_missing_queries(run_id)
        console.print(f"{total - missing}/{total} queries have real SQL ({missing} missing)")

    _run(run_fetch())

@app.command()
def analyze(
    run_id: Optional[int] = typer.Option(None, "--run", help="Analyze all pending queries of a run"),
    query_id: Optional[int] = typer.Option(None, "--query", help="Analyze a single query"),
    all_queries: bool = typer.Option(False, "--all", help="Re-analyze queries that already have an analysis"),
):
    """
    Run the per-query analysis conversation.
    """
    if (run_id is None) == (query_id is None):
        console.print("[red]Please provide exactly one of --run or --query[/red]")
        raise typer.Exit(code=1)

    async def run_analysis():
        async with open_run_service(settings) as service:
            if query_id is not None:
                with console.status(f"[bold green]Analyzing query {query_id}...[/bold green]"):
                    outcome = await service.analyze(query_id)
                console.print(Markdown(outcome.conversation.last_text or "_No answer_"))
                return

            with console.status(f"[bold green]Analyzing queries of run {run_id}...[/bold green]"):
                report = await service.analyze_run(run_id, only_pending=not all_queries)

        console.print(f"[green]{len(report.outcomes)} analyzed[/green], [red]{len(report.failures)} failed[/red]")
        if report.failures:
            table = Table(title="Failures", expand=True)
            table.add_column("Query", justify="right")
            table.add_column("Kind", style="cyan")
            table.add_column("Message")
            for failed_id, failure in sorted(report.failures.items()):
                table.add_row(str(failed_id), failure.kind.value, failure.message)
            console.print(table)

    _run(run_analysis())

@app.command("follow-up")
def follow_up(
    query_id: int = typer.Argument(..., help="Query id"),
    prompt: str = typer.Argument(..., help="Follow-up question"),
):
    """
    Ask a follow-up question on an analyzed query.
    """
    async def run_follow_up():
        async with open_run_service(settings) as service:
            with console.status("[bold green]Waiting for the model...[/bold green]"):
                outcome = await service.continue_analysis(query_id, prompt)
        console.print(Markdown(outcome.conversation.last_text or "_No answer_"))

    _run(run_follow_up())

@app.command()
def serve():
    """
    Start the HTTP API.
    """
    import uvicorn

    uvicorn.run(
        "querylens.api.app:app",
        host=settings.server.host,
        port=settings.server.port,
        workers=settings.server.workers,
    )

@app.command()
def config():
    """
    Show current configuration.
    """
    console.print(settings.model_dump())

@app.command()
def health():
    """
    Check health of components.
    """
    async def run_check():
        # Check DB
        status = {"database": "unknown", "llm": "unknown"}
        if settings.analyzed_database:
            try:
                db = MySQLAdapter(settings.analyzed_database)
                await db.connect()
                ver = await db.get_version()
                await db.close()
                status["database"] = f"ok (MySQL {ver})"
            except Exception as e:
                status["database"] = f"failed ({e})"
        else:
            status["database"] = "not_configured"

        # Check LLM (basic client init check)
        try:
             LLMService(settings.llm)
             status["llm"] = "ok (initialized)"
        except Exception as e:
             status["llm"] = f"failed ({e})"

        console.print(JSON.from_data(status))

    asyncio.run(run_check())

if __name__ == "__main__":
    app()
