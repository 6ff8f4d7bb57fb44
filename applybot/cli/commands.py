"""CLI commands using Typer."""

import asyncio
import json
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from applybot import __version__
from applybot.automation.models import JobPosting
from applybot.automation.orchestrator import ApplicationOrchestrator, OrchestratorReport
from applybot.automation.platforms import PlatformRegistry, dispatch as dispatch_url
from applybot.browser.session_manager import SessionManager
from applybot.config import settings
from applybot.logging_config import configure_logging
from applybot.storage import ResultSink

app = typer.Typer(
    name="applybot",
    help="Application submission automation CLI",
    add_completion=False,
)

console = Console()


def load_jobs(path: Path) -> list[JobPosting]:
    """Read scored jobs from a JSON list (or an object with a ``jobs`` key)."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"Invalid JSON in {path}: {e}")

    if isinstance(data, dict):
        data = data.get("jobs", [])
    if not isinstance(data, list):
        raise typer.BadParameter(f"Expected a list of jobs in {path}")

    try:
        return [JobPosting.model_validate(item) for item in data]
    except ValidationError as e:
        raise typer.BadParameter(f"Invalid job entry in {path}: {e}")


def render_report(report: OrchestratorReport) -> Table:
    table = Table(title="Application Run")
    table.add_column("Job", style="cyan")
    table.add_column("Company")
    table.add_column("Platform")
    table.add_column("Outcome")
    table.add_column("Detail", style="dim")

    styles = {
        "success": "green",
        "failed": "red",
        "indeterminate": "yellow",
        "manual_action_required": "magenta",
    }
    for attempt in report.attempts:
        outcome = attempt.outcome.value if attempt.outcome else "-"
        style = styles.get(outcome, "white")
        table.add_row(
            attempt.job.title,
            attempt.job.company,
            attempt.platform,
            f"[{style}]{outcome}[/{style}]",
            (attempt.detail or attempt.confirmation_number or "")[:60],
        )
    return table


@app.command()
def run(
    jobs_path: Annotated[Path, typer.Option("--jobs", "-j", help="Path to scored jobs JSON")],
    max_applications: Annotated[
        int | None, typer.Option("--max", "-m", help="Maximum applications this run")
    ] = None,
    min_score: Annotated[
        float | None, typer.Option("--min-score", "-s", help="Composite score floor")
    ] = None,
    discovery_url: Annotated[
        str | None, typer.Option("--discovery-url", help="Discovery surface URL")
    ] = None,
    headless: Annotated[bool, typer.Option("--headless", help="Run the browser headless")] = False,
):
    """
    Apply to scored jobs through the discovery surface.

    Example:
        applybot run --jobs ./jobs.json --max 5 --min-score 70
    """
    if not jobs_path.exists():
        console.print(f"[red]Error:[/red] Jobs file not found: {jobs_path}")
        raise typer.Exit(1)

    configure_logging("DEBUG" if settings.debug else settings.log_level)
    jobs = load_jobs(jobs_path)

    console.print(
        Panel(
            f"[bold]Jobs loaded:[/bold] {len(jobs)}\n"
            f"[dim]Max applications:[/dim] {max_applications or settings.max_applications}\n"
            f"[dim]Min score:[/dim] {settings.min_composite_score if min_score is None else min_score}\n"
            f"[dim]Discovery:[/dim] {discovery_url or settings.discovery_url}",
            title="ApplyBot",
        )
    )

    if headless:
        settings.playwright_headless = True

    async def run_applications() -> OrchestratorReport:
        async with SessionManager(discovery_url=discovery_url) as session:
            if not await session.open_discovery():
                console.print("[yellow]Discovery surface did not load cleanly; continuing[/yellow]")
            orchestrator = ApplicationOrchestrator(
                session,
                min_score=min_score,
                max_applications=max_applications,
            )
            return await orchestrator.run(jobs)

    with console.status("[bold green]Applying...[/bold green]"):
        report = asyncio.run(run_applications())

    console.print()
    console.print(render_report(report))
    console.print(
        f"\n[green]Successful:[/green] {report.successful}  "
        f"[red]Failed:[/red] {report.failed}  "
        f"[yellow]Indeterminate:[/yellow] {report.indeterminate}  "
        f"[magenta]Manual:[/magenta] {report.manual}  "
        f"[dim]Skipped:[/dim] {report.skipped}"
    )


@app.command()
def dispatch(url: Annotated[str, typer.Argument(help="Destination URL to classify")]):
    """Show which platform handler a URL dispatches to."""
    config = dispatch_url(url)
    console.print(
        Panel(
            f"[bold]Platform:[/bold] {config.name}\n"
            f"[dim]Login flow:[/dim] {config.login_flow.value}\n"
            f"[dim]Attempt prefix:[/dim] {config.attempt_prefix}",
            title=url,
        )
    )


@app.command()
def platforms():
    """List registered platform handlers in dispatch order."""
    table = Table(title="Platforms")
    table.add_column("Name", style="cyan")
    table.add_column("URL patterns")
    table.add_column("Login")
    for name in PlatformRegistry.list_platforms():
        config = PlatformRegistry.get(name)
        table.add_row(config.name, ", ".join(config.url_patterns) or "(fallback)", config.login_flow.value)
    console.print(table)


@app.command()
def submissions(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Show the most recent N")] = 20,
):
    """Show the submissions log."""
    records = ResultSink().submissions()
    if not records:
        console.print("[dim]No submissions recorded yet[/dim]")
        return

    table = Table(title=f"Submissions ({len(records)} total)")
    table.add_column("Timestamp", style="dim")
    table.add_column("URL", style="cyan")
    table.add_column("Confirmation #")
    table.add_column("Score", justify="right")
    for record in records[-limit:]:
        table.add_row(
            record.timestamp[:19],
            record.url,
            record.confirmation_number or "-",
            str(record.success_score),
        )
    console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]ApplyBot[/bold] v{__version__}")


@app.command()
def info():
    """Show configuration information."""
    console.print(
        Panel(
            f"[bold]Environment:[/bold] {settings.app_env.value}\n"
            f"[bold]Applicant:[/bold] {settings.full_name or '[red]not set[/red]'}\n"
            f"[bold]Resume:[/bold] {settings.resume_path or '[red]not set[/red]'}\n"
            f"[bold]Claude:[/bold] {'configured' if settings.anthropic_api_key or settings.bedrock_enabled else '[dim]fallback answers[/dim]'}\n"
            f"[bold]2Captcha:[/bold] {'configured' if settings.twocaptcha_api_key else '[dim]manual only[/dim]'}\n"
            f"[bold]Submissions log:[/bold] {settings.submissions_file}",
            title="Configuration",
        )
    )


if __name__ == "__main__":
    app()
