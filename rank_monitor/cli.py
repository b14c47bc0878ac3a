"""Typer CLI application for SEO Rank Monitor.

Provides commands for single and batch position checks, stored history,
the HTTP API server, the Streamlit dashboard, and a status overview.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from rank_monitor.modules.rank_tracker.serp_analyzer import describe_position
from rank_monitor.utils.helpers import truncate_text

console = Console()
app = typer.Typer(
    name="rank-monitor",
    help="SEO Rank Monitor -- keyword positions and recommendations.",
    add_completion=False,
    no_args_is_help=True,
)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging level and format."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context."""
    return asyncio.run(coro)


def _get_monitor(config_path: str):
    """Lazy-import and return an initialised RankMonitor."""
    from rank_monitor.app import RankMonitor
    monitor = RankMonitor(config_path=config_path)
    monitor.initialize()
    return monitor


def _print_state(state) -> None:
    """Pretty-print a finished position check using Rich."""
    if state.error:
        console.print(Panel("[red]✘ " + escape(state.error) + "[/red]", title=state.keyword or "Position check"))
        return

    console.print(
        "[bold]" + str(state.domain) + "[/bold] is "
        + describe_position(state.our_position)
        + " for [bold]" + str(state.keyword) + "[/bold]"
    )

    table = Table(title="Search Results", show_header=True, header_style="bold magenta")
    table.add_column("#", style="cyan", width=4)
    table.add_column("Title", max_width=50)
    table.add_column("URL", max_width=60)
    for index, result in enumerate(state.search_results or (), 1):
        marker = "[green]" if index == state.our_position else ""
        closer = "[/green]" if marker else ""
        table.add_row(str(index), marker + escape(result.title or "Untitled") + closer, result.url)
    console.print(table)

    if state.analysis:
        console.print(Panel(escape(state.analysis), title="Recommendations"))


# ------------------------------------------------------------------
# check
# ------------------------------------------------------------------
@app.command()
def check(
    keyword: str = typer.Argument(..., help="Search query to check."),
    domain: str = typer.Option(..., "--domain", "-d", help="Domain whose position is checked."),
    region: Optional[str] = typer.Option(None, "--region", "-r", help="Optional region tag."),
    as_json: bool = typer.Option(False, "--json", help="Print the final state as JSON."),
    config: str = typer.Option("config/settings.yaml", "--config", "-c", help="Settings file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Check where a domain ranks for a keyword and get recommendations."""
    _setup_logging(verbose)
    monitor = _get_monitor(config)

    async def _run():
        try:
            return await monitor.check(keyword=keyword, domain=domain, region=region)
        finally:
            await monitor.close()

    if as_json:
        state = _run_async(_run())
        typer.echo(json.dumps(state.to_dict(), ensure_ascii=False, indent=2))
    else:
        console.print(Panel("[bold cyan]Position check: " + keyword + " / " + domain + "[/bold cyan]"))
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
            progress.add_task(description="Searching and analysing...", total=None)
            state = _run_async(_run())
        _print_state(state)

    if state.error:
        raise typer.Exit(code=1)


# ------------------------------------------------------------------
# batch
# ------------------------------------------------------------------
@app.command()
def batch(
    file: Path = typer.Argument(..., help="JSON file with a list of {keyword, domain, region} objects."),
    config: str = typer.Option("config/settings.yaml", "--config", "-c", help="Settings file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Run several position checks concurrently."""
    _setup_logging(verbose)
    if not file.exists():
        console.print("[red]✘[/red] File not found: " + str(file))
        raise typer.Exit(code=1)
    requests = json.loads(file.read_text(encoding="utf-8"))
    if not isinstance(requests, list) or not all(isinstance(r, dict) for r in requests):
        console.print("[red]✘[/red] Expected a JSON list of objects.")
        raise typer.Exit(code=1)

    console.print(Panel("[bold cyan]Batch position check: " + str(len(requests)) + " keywords[/bold cyan]"))
    monitor = _get_monitor(config)

    async def _run():
        try:
            return await monitor.check_many(requests)
        finally:
            await monitor.close()

    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
        progress.add_task(description="Running checks...", total=None)
        states = _run_async(_run())

    table = Table(title="Batch Results", show_header=True, header_style="bold magenta")
    table.add_column("Keyword", style="cyan", min_width=20)
    table.add_column("Domain", min_width=15)
    table.add_column("Position", min_width=10)
    table.add_column("Details", max_width=60)
    failures = 0
    for state in states:
        if state.error:
            failures += 1
            table.add_row(str(state.keyword), str(state.domain), "[red]✘ error[/red]", escape(truncate_text(state.error, 80)))
        else:
            position = str(state.our_position) if state.our_position and state.our_position > 0 else "-"
            table.add_row(str(state.keyword), str(state.domain), position, describe_position(state.our_position))
    console.print(table)
    console.print(f"\n[bold]{len(states) - failures}/{len(states)} checks succeeded[/bold]")

    if failures:
        raise typer.Exit(code=1)


# ------------------------------------------------------------------
# history
# ------------------------------------------------------------------
@app.command()
def history(
    keyword: str = typer.Argument(..., help="Tracked keyword."),
    domain: str = typer.Option(..., "--domain", "-d", help="Tracked domain."),
    limit: int = typer.Option(30, "--limit", "-n", help="Number of checks to show."),
    config: str = typer.Option("config/settings.yaml", "--config", "-c", help="Settings file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Show stored position checks for a keyword."""
    _setup_logging(verbose)
    monitor = _get_monitor(config)
    rows = monitor.get_history(keyword, domain, limit=limit)
    if not rows:
        console.print("[yellow]⚠[/yellow] No stored checks for " + keyword + " / " + domain)
        return

    table = Table(title="History: " + keyword, show_header=True, header_style="bold magenta")
    table.add_column("Date", style="cyan", min_width=20)
    table.add_column("Position", min_width=10)
    table.add_column("Results", min_width=8)
    for row in rows:
        position = row["position"]
        table.add_row(row["date"], str(position) if position > 0 else "-", str(row["results"]))
    console.print(table)


# ------------------------------------------------------------------
# serve
# ------------------------------------------------------------------
@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (defaults to api.host)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (defaults to api.port)."),
    config: str = typer.Option("config/settings.yaml", "--config", "-c", help="Settings file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Start the HTTP API server."""
    _setup_logging(verbose)
    from rank_monitor.api.main import run_server

    monitor = _get_monitor(config)
    api_cfg = monitor.config.get("api", {})
    host = host or api_cfg.get("host", "0.0.0.0")
    port = port or api_cfg.get("port", 8000)
    console.print("[bold cyan]Starting API on " + host + ":" + str(port) + "...[/bold cyan]")
    run_server(monitor, host=host, port=port)


# ------------------------------------------------------------------
# dashboard
# ------------------------------------------------------------------
@app.command()
def dashboard(
    port: int = typer.Option(8501, "--port", "-p", help="Streamlit port."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Launch the Streamlit rank monitoring dashboard."""
    _setup_logging(verbose)
    console.print("[bold cyan]Launching dashboard on port " + str(port) + "...[/bold cyan]")
    import subprocess
    subprocess.run(
        ["streamlit", "run", "dashboard/app.py", "--server.port", str(port)],
        check=False,
    )


# ------------------------------------------------------------------
# status
# ------------------------------------------------------------------
@app.command()
def status(
    config: str = typer.Option("config/settings.yaml", "--config", "-c", help="Settings file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Show project status: configuration, API keys, database."""
    _setup_logging(verbose)
    console.print(Panel("[bold cyan]System Status[/bold cyan]"))

    table = Table(title="Component Status", show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan", min_width=25)
    table.add_column("Status", min_width=10)
    table.add_column("Details", max_width=50)

    if Path(config).exists():
        table.add_row("Configuration", "[green]✔ OK[/green]", config + " found")
    else:
        table.add_row("Configuration", "[yellow]⚠ Missing[/yellow]", config + " not found")

    try:
        monitor = _get_monitor(config)
    except Exception as exc:
        table.add_row("Application", "[red]✘ Error[/red]", str(exc)[:50])
        console.print(table)
        raise typer.Exit(code=1)

    info = monitor.get_status()
    if info["search_configured"]:
        table.add_row("Search (Tavily)", "[green]✔ OK[/green]", info["search_engine"])
    else:
        table.add_row("Search (Tavily)", "[red]✘ Missing[/red]", "TAVILY_API_KEY not set")

    usage = info.get("llm_usage", {})
    llm_detail = " / ".join(str(usage[k]) for k in ("provider", "model") if k in usage)
    if info["llm_configured"]:
        table.add_row("LLM", "[green]✔ OK[/green]", llm_detail)
    else:
        missing = "GIGACHAT_ACCESS_TOKEN" if usage.get("provider", "gigachat") == "gigachat" else "OPENAI_API_KEY"
        table.add_row("LLM", "[red]✘ Missing[/red]", missing + " not set")

    if info["persistence"]:
        try:
            from sqlalchemy import text as sa_text

            from rank_monitor.database import get_engine
            with get_engine().connect() as conn:
                conn.execute(sa_text("SELECT 1"))
            table.add_row("Database", "[green]✔ OK[/green]", os.getenv("DATABASE_URL", "") or "configured")
        except Exception as exc:
            table.add_row("Database", "[red]✘ Error[/red]", str(exc)[:50])
    else:
        table.add_row("Database", "[yellow]○ Disabled[/yellow]", "persistence.enabled is false")

    table.add_row("Pipeline", "[green]✔ OK[/green]", " -> ".join(info["stages"]))
    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
