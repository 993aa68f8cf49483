"""Command-line interface for the AI Threat Modeler."""

import asyncio
import logging
import sys
from datetime import date, datetime
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text

from threat_modeler.config.settings import get_settings
from threat_modeler.llm import create_invocation_client
from threat_modeler.models import (
    AnalysisRecord,
    ApplicationType,
    DataClassification,
    ThreatStatus,
)
from threat_modeler.pipeline import (
    EDITABLE_OUTPUTS,
    PipelineController,
    PipelineStage,
    StageError,
    StageErrorKind,
)
from threat_modeler.processing import ImageProcessingError, load_image_file
from threat_modeler.report import LayoutError, export_report, read_local_image, threat_presentation
from threat_modeler.storage import JsonFileRecordStore, RecordNotFoundError, StorageError

# Configure structlog for CLI
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

app = typer.Typer(
    name="threat-modeler",
    help="AI Threat Modeler - STRIDE threat models from architecture descriptions and diagrams",
    add_completion=False,
)
console = Console()

STATUS_STYLES = {
    ThreatStatus.PENDING: "yellow",
    ThreatStatus.ACCEPTED: "green",
    ThreatStatus.REJECTED: "red",
}


def _configure_logging(verbose: bool) -> None:
    # Interactive output stays readable unless --verbose; LOG_LEVEL can only raise the floor
    configured = getattr(logging, get_settings().log_level.upper(), logging.INFO)
    level = logging.DEBUG if verbose else max(configured, logging.WARNING)
    logging.basicConfig(level=level, stream=sys.stderr)


def _store(data_dir: Path | None) -> JsonFileRecordStore:
    return JsonFileRecordStore(data_dir or get_settings().data_dir)


def _print_stage_error(error: StageError) -> None:
    console.print(f"\n[red]{error.stage.label} failed:[/red] {escape(error.message)}")
    if error.excerpt:
        console.print(Panel(Text(error.excerpt), title="Model output excerpt", border_style="red"))


def _print_threats(record: AnalysisRecord) -> None:
    table = Table(title="Identified Threats")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Threat")
    table.add_column("STRIDE Category")
    table.add_column("Status")

    for i, threat in enumerate(record.threats, 1):
        style = STATUS_STYLES[threat.status]
        table.add_row(
            str(i),
            Text(threat.threat_name),
            threat.stride_category.value,
            Text(threat.status.value, style=style),
        )

    console.print(table)


def _print_record(record: AnalysisRecord) -> None:
    console.print(Panel.fit(Text(record.title, style="bold blue"), border_style="blue"))

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("ID", record.id)
    table.add_row("Created", record.created_at.strftime("%Y-%m-%d %H:%M"))
    table.add_row("Application type", record.app_type.value)
    table.add_row("Data classification", record.data_classification.value)
    table.add_row("Diagram", Text(record.image_url or "none"))
    console.print(table)

    console.print(Panel(Text(record.description or "N/A"), title="User-provided description"))
    console.print(Panel(Text(record.ai_description or "N/A"), title="AI-generated description"))
    console.print(Panel(Text(record.dfd_description or "N/A"), title="Data flow description"))

    if record.threats:
        _print_threats(record)
        for i, threat in enumerate(record.threats, 1):
            console.print(f"\n[bold]{i}. {escape(threat.threat_name)}[/bold]")
            console.print(f"[dim]Description:[/dim] {escape(threat.description or 'N/A')}")
            console.print(f"[dim]Mitigation:[/dim] {escape(threat.mitigation or 'N/A')}")
    else:
        console.print("[dim]No threats identified.[/dim]")


# =============================================================================
# Interactive analysis
# =============================================================================


def _review_stage(controller: PipelineController, stage: PipelineStage) -> str:
    """Show a stage's output and ask what to do next.

    Returns:
        "continue", "back" or "quit".
    """
    field = EDITABLE_OUTPUTS[stage]
    while True:
        text = getattr(controller.state, field)
        body = Text(text) if text else Text("(empty)", style="dim")
        console.print(Panel(body, title=stage.label, border_style="cyan"))

        choice = Prompt.ask(
            escape("[c]ontinue, [e]dit, [b]ack or [q]uit"),
            choices=["c", "e", "b", "q"],
            default="c",
        )
        if choice == "e":
            edited = typer.edit(text)
            if edited is not None:
                controller.edit_stage_output(stage, edited.strip())
            continue
        return {"c": "continue", "b": "back", "q": "quit"}[choice]


def _review_threats(controller: PipelineController) -> None:
    for threat in controller.state.threats:
        presentation = threat_presentation(threat.status)
        if not presentation.shows_review_actions:
            continue

        console.print(f"\n[bold]{escape(threat.threat_name)}[/bold] [dim]({threat.stride_category.value})[/dim]")
        console.print(Text(threat.description))
        console.print(f"[dim]Mitigation:[/dim] {escape(threat.mitigation)}")

        choice = Prompt.ask(escape("[a]ccept, [r]eject or [s]kip"), choices=["a", "r", "s"], default="s")
        if choice == "a":
            controller.set_threat_status(threat.threat_id, ThreatStatus.ACCEPTED)
        elif choice == "r":
            controller.set_threat_status(threat.threat_id, ThreatStatus.REJECTED)


async def _run_pipeline(controller: PipelineController) -> bool:
    """Drive the controller to RESULTS interactively.

    Returns:
        False if the user quit or the inputs were rejected.
    """
    rerun = False
    while controller.state.stage != PipelineStage.RESULTS:
        stage = controller.state.stage

        if stage in EDITABLE_OUTPUTS and not rerun:
            action = _review_stage(controller, stage)
            if action == "quit":
                return False
            if action == "back":
                controller.retreat()
                continue
        rerun = False

        with console.status(f"[yellow]Running {stage.label} -> {PipelineStage(stage + 1).label}...[/yellow]"):
            state = await controller.advance()

        if state.error is None:
            continue

        _print_stage_error(state.error)
        if state.error.kind == StageErrorKind.VALIDATION:
            return False

        choice = Prompt.ask(escape("[r]etry, [b]ack or [q]uit"), choices=["r", "b", "q"], default="r")
        if choice == "q":
            return False
        if choice == "b" and state.can_retreat:
            controller.retreat()
        else:
            rerun = True

    return True


async def _analyze(
    controller: PipelineController,
    store: JsonFileRecordStore,
    save: bool,
    export_dir: Path | None,
) -> int:
    if not await _run_pipeline(controller):
        console.print("[yellow]Analysis abandoned.[/yellow]")
        return 1

    record = controller.build_record()
    _print_threats(record)
    _review_threats(controller)

    if save and Confirm.ask("Save this analysis?", default=True):
        state = await controller.save(store)
        if state.error:
            _print_stage_error(state.error)
            return 1
        console.print(f"[green]Saved analysis:[/green] {escape(state.record_id)}")
        record = await store.get(state.record_id)
    else:
        record = controller.build_record()

    if export_dir is not None:
        path = export_report(record, export_dir, generated_on=date.today(), image_loader=read_local_image)
        console.print(f"[green]Report exported to:[/green] {escape(str(path))}")

    return 0


@app.command()
def analyze(
    title: str = typer.Option(..., "--title", "-t", prompt=True, help="Name of the system being analysed"),
    description: str = typer.Option("", "--description", "-d", help="Architecture description"),
    description_file: Path = typer.Option(
        None,
        "--description-file",
        help="Read the architecture description from a text file",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    image: Path = typer.Option(
        None,
        "--image",
        "-i",
        help="Architecture diagram (PNG, JPEG, ...)",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    app_type: ApplicationType = typer.Option(ApplicationType.WEB, "--app-type", help="Application type"),
    data_classification: DataClassification = typer.Option(
        DataClassification.CONFIDENTIAL, "--classification", help="Data classification"
    ),
    save: bool = typer.Option(True, "--save/--no-save", help="Offer to save the finished analysis"),
    export_dir: Path = typer.Option(None, "--export", "-o", help="Directory to write the PDF report to"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Record storage directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Run an interactive three-stage threat model analysis."""
    _configure_logging(verbose)

    console.print(
        Panel.fit(
            "[bold blue]AI Threat Modeler[/bold blue]\n"
            "Architecture description -> data flow -> STRIDE threats",
            border_style="blue",
        )
    )

    if description_file is not None:
        description = description_file.read_text(encoding="utf-8")

    try:
        payload = load_image_file(image) if image is not None else None
    except ImageProcessingError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    controller = PipelineController(create_invocation_client())
    controller.update_inputs(
        title=title,
        description=description,
        app_type=app_type,
        data_classification=data_classification,
        image=payload,
    )

    try:
        code = asyncio.run(_analyze(controller, _store(data_dir), save, export_dir))
    except (StorageError, LayoutError) as e:
        console.print(f"\n[red]Error:[/red] {escape(str(e))}")
        if verbose:
            console.print_exception()
        sys.exit(1)

    if code:
        sys.exit(code)


# =============================================================================
# Stored analyses
# =============================================================================


@app.command("list")
def list_records(
    data_dir: Path = typer.Option(None, "--data-dir", help="Record storage directory"),
) -> None:
    """List saved analyses, newest first."""
    _configure_logging(False)
    summaries = asyncio.run(_store(data_dir).list())

    if not summaries:
        console.print("[dim]No saved analyses.[/dim]")
        return

    table = Table(title="Saved Analyses")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Application type")
    table.add_column("Threats", justify="right")
    table.add_column("Created")

    for summary in summaries:
        table.add_row(
            summary.id,
            Text(summary.title),
            summary.app_type.value,
            str(summary.threat_count),
            summary.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command()
def show(
    record_id: str = typer.Argument(..., help="ID of the saved analysis"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Record storage directory"),
) -> None:
    """Show a saved analysis."""
    _configure_logging(False)
    try:
        record = asyncio.run(_store(data_dir).get(record_id))
    except RecordNotFoundError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    _print_record(record)


@app.command()
def delete(
    record_id: str = typer.Argument(..., help="ID of the saved analysis"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Record storage directory"),
) -> None:
    """Delete a saved analysis and its diagram."""
    _configure_logging(False)
    if not yes and not Confirm.ask(f"Delete analysis {escape(record_id)}?", default=False):
        raise typer.Abort()

    try:
        asyncio.run(_store(data_dir).delete(record_id))
    except StorageError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    console.print(f"[green]Deleted analysis:[/green] {escape(record_id)}")


@app.command()
def export(
    record_id: str = typer.Argument(..., help="ID of the saved analysis"),
    output_dir: Path = typer.Option(Path("."), "--output", "-o", help="Directory to write the PDF to"),
    report_date: datetime = typer.Option(
        None, "--date", formats=["%Y-%m-%d"], help="Date printed on the report (default: today)"
    ),
    data_dir: Path = typer.Option(None, "--data-dir", help="Record storage directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Export a saved analysis as a PDF report."""
    _configure_logging(verbose)
    generated_on = report_date.date() if report_date else date.today()

    try:
        record = asyncio.run(_store(data_dir).get(record_id))
        path = export_report(record, output_dir, generated_on=generated_on, image_loader=read_local_image)
    except (StorageError, LayoutError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        if verbose:
            console.print_exception()
        sys.exit(1)

    console.print(f"[green]Report exported to:[/green] {escape(str(path))}")


@app.command()
def info() -> None:
    """Display system information and configuration."""
    from threat_modeler import __version__
    from threat_modeler.llm.client import get_llm_settings

    settings = get_settings()
    llm_settings = get_llm_settings()

    console.print(Panel.fit("[bold blue]AI Threat Modeler[/bold blue]", border_style="blue"))

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("LLM Model", llm_settings.model_name)
    table.add_row("Ollama URL", llm_settings.ollama_base_url)
    table.add_row("Temperature", str(llm_settings.temperature))
    table.add_row("Retry attempts", str(settings.retry_max_attempts))
    table.add_row("Retry base delay", f"{settings.retry_base_delay_seconds}s x{settings.retry_multiplier}")
    table.add_row("Data directory", str(settings.data_dir))

    console.print(table)


if __name__ == "__main__":
    app()
