"""
Command-line interface for the setup wizard backend.

Provides commands for driving a setup session from a terminal,
importing previous exports and regenerating deployment artifacts.
"""

import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm
from rich.table import Table

from . import __version__
from .config import ConfigLoader, Settings, get_settings
from .config.defaults import PROXY_TYPES, UNBOUND_IP
from .errors import SetupError, ValidationFailed
from .storage import FileStore
from .utils.logging import configure_logging
from .validation import FieldError
from .wizard import SetupOrchestrator

console = Console()


def _fail(message: str) -> None:
    console.print(f"[red]✗ {message}[/red]")
    sys.exit(1)


def _orchestrator(ctx: click.Context) -> SetupOrchestrator:
    obj = ctx.find_object(dict)
    if "orchestrator" not in obj:
        settings: Settings = obj["settings"]
        obj["orchestrator"] = SetupOrchestrator(FileStore(settings.data_dir), settings=settings)
    return obj["orchestrator"]


def _error_table(errors: List[FieldError]) -> Table:
    table = Table(title="Validation Errors")
    table.add_column("Field", style="cyan")
    table.add_column("Message", style="red")
    for error in errors:
        table.add_row(error.field, error.message)
    return table


def _files_panel(title: str, output_dir: Path, files: List[str]) -> Panel:
    files_display = "\n".join(f"  - {f}" for f in files)
    return Panel.fit(
        f"[green]Artifacts written to [cyan]{output_dir}[/cyan][/green]\n\n"
        f"[bold]Files created:[/bold]\n{files_display}",
        title=title,
    )


# ============================================================
# Main CLI Group
# ============================================================

@click.group()
@click.version_option(version=__version__, prog_name="setupkit")
@click.option("--data-dir", type=click.Path(file_okay=False), help="Session document directory")
@click.option("--output-dir", type=click.Path(file_okay=False), help="Artifact output directory")
@click.option("--work-dir", type=click.Path(file_okay=False), help="Staging directory for side files")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level",
)
@click.pass_context
def cli(ctx, data_dir: Optional[str], output_dir: Optional[str], work_dir: Optional[str],
        log_level: Optional[str]):
    """
    Setup Wizard Backend

    Configure a self-hosted deployment and generate its environment,
    compose and reverse proxy files.
    """
    ctx.ensure_object(dict)
    if "settings" in ctx.obj:
        return

    overrides = {
        "data_dir": data_dir,
        "output_dir": output_dir,
        "work_dir": work_dir,
        "log_level": log_level,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    settings = Settings(**overrides) if overrides else get_settings()

    configure_logging(settings.log_level)
    ctx.obj["settings"] = settings


# ============================================================
# Session Commands
# ============================================================

@cli.command()
@click.option("--ip", "client_ip", default=UNBOUND_IP, help="Client address recorded at issue time")
@click.pass_context
def init(ctx, client_ip: str):
    """Start a setup session and print its token."""
    token = _orchestrator(ctx).initialize(client_ip)
    console.print(Panel.fit(
        f"[green]Setup initialized successfully![/green]\n\n"
        f"Token: [bold yellow]{token.token}[/bold yellow]\n"
        f"Expires: {token.expires_at.isoformat()}\n\n"
        f"[dim]The token binds to the first client that uses it.[/dim]",
        title="Setup Token",
    ))


@cli.command()
@click.pass_context
def status(ctx):
    """Show the setup session status."""
    orchestrator = _orchestrator(ctx)
    state = orchestrator.get_status()

    table = Table(title="Setup Status")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Status", state.status.value)
    table.add_row("Step", state.current_step or "-")
    table.add_row("Progress", f"{state.progress}%")
    table.add_row("Message", state.message or "-")
    if state.completed_at:
        table.add_row("Completed", state.completed_at.isoformat())

    token = orchestrator.tokens.current()
    if token is not None:
        table.add_row("Token", f"{token.prefix}... ({'bound to ' + token.bound_ip if token.is_bound else 'unbound'})")
    console.print(table)

    deployment = orchestrator.deployment_status()
    if deployment is not None:
        console.print(f"Deployment {deployment.deployment_id}: {deployment.status.value} ({deployment.progress}%)")


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def reset(ctx, yes: bool):
    """Discard the session, draft and token."""
    if not yes and not Confirm.ask("[yellow]Discard the current setup session?[/yellow]"):
        console.print("[red]Aborted.[/red]")
        return
    _orchestrator(ctx).reset()
    console.print("[green]Setup session reset[/green]")


@cli.command()
@click.pass_context
def complete(ctx):
    """Mark setup completed and invalidate the token."""
    state = _orchestrator(ctx).complete_setup()
    console.print(f"[green]✓ {state.message}[/green]")


# ============================================================
# Configuration Commands
# ============================================================

@cli.command()
@click.option("--file", "-f", "file", type=click.Path(exists=True, dir_okay=False), required=True,
              help="Configuration document (JSON)")
@click.pass_context
def configure(ctx, file: str):
    """Validate and save a configuration draft."""
    try:
        cfg = ConfigLoader(file).load()
        _orchestrator(ctx).save_configuration(cfg)
    except ValidationFailed as e:
        console.print(_error_table(e.errors))
        _fail(f"Configuration rejected: {len(e.errors)} field(s) need attention")
    except SetupError as e:
        _fail(str(e))
    console.print(f"[green]✓ Configuration saved (step: {cfg.current_step or '-'})[/green]")


@cli.command()
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False),
              help="Configuration to validate (defaults to the saved draft)")
@click.pass_context
def validate(ctx, config: Optional[str]):
    """Validate a configuration up to its current step."""
    orchestrator = _orchestrator(ctx)
    try:
        cfg = ConfigLoader(config).load() if config else orchestrator.get_configuration()
    except SetupError as e:
        _fail(str(e))
    if cfg is None:
        _fail("No configuration has been saved")

    console.print(f"\n[bold blue]Validating configuration up to step '{cfg.current_step or '-'}'[/bold blue]\n")
    errors = orchestrator.validate_configuration(cfg)
    if errors:
        console.print(_error_table(errors))
        _fail(f"Validation failed: {len(errors)} error(s)")
    console.print("[green]✓ Configuration is valid![/green]")


@cli.command("test-connections")
@click.pass_context
def test_connections(ctx):
    """Check the service parameters of the saved draft."""
    try:
        results = _orchestrator(ctx).test_connections()
    except SetupError as e:
        _fail(str(e))

    table = Table(title="Connection Tests")
    table.add_column("Service", style="cyan")
    table.add_column("Status")
    table.add_column("Message", style="white")
    for r in results:
        table.add_row(r.service, "[green]PASS[/green]" if r.success else "[red]FAIL[/red]", r.message)
    console.print(table)

    if not all(r.success for r in results):
        sys.exit(1)


@cli.command("import")
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False),
              help="Configuration document to import")
@click.option("--input", "-i", "input_dir", type=click.Path(exists=True, file_okay=False),
              help="Previous output directory to import")
@click.pass_context
def import_(ctx, config: Optional[str], input_dir: Optional[str]):
    """Import a configuration document or a previous output directory."""
    if bool(config) == bool(input_dir):
        _fail("Specify exactly one of --config or --input")

    orchestrator = _orchestrator(ctx)
    try:
        if config:
            result = orchestrator.import_configuration(Path(config).read_bytes())
        else:
            result = orchestrator.import_from_output_dir(input_dir)
    except SetupError as e:
        _fail(str(e))

    console.print(f"[green]✓ {result.message}[/green]")
    if result.warnings:
        console.print(_error_table(result.warnings))
        console.print(f"[yellow]{len(result.warnings)} field(s) need attention in the wizard[/yellow]")


@cli.command()
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write to a file instead of stdout")
@click.pass_context
def export(ctx, output: Optional[str]):
    """Export the saved draft with every secret removed."""
    try:
        document = _orchestrator(ctx).export_sanitized()
    except SetupError as e:
        _fail(str(e))

    if output:
        Path(output).write_text(document, encoding="utf-8")
        console.print(f"[green]✓ Sanitized configuration written to {output}[/green]")
    else:
        click.echo(document, nl=False)


# ============================================================
# Generation Commands
# ============================================================

@cli.command()
@click.option("--output", "-o", type=click.Path(file_okay=False), help="Output directory")
@click.pass_context
def generate(ctx, output: Optional[str]):
    """Generate deployment artifacts from the saved draft."""
    orchestrator = _orchestrator(ctx)
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Generating configuration files...", total=None)
            result = orchestrator.generate_artifacts(output_dir=output)
            progress.update(task, description="[green]Artifacts generated!")
    except SetupError as e:
        _fail(str(e))

    console.print(_files_panel("Generation Complete", result.output_dir, result.files))


@cli.command()
@click.option("--input", "-i", "input_dir", type=click.Path(exists=True, file_okay=False), required=True,
              help="Previous output directory")
@click.option("--output", "-o", type=click.Path(), help="New output directory (must not exist)")
@click.option("--reverse-proxy", type=click.Choice(list(PROXY_TYPES)), help="Override the reverse proxy")
@click.pass_context
def regen(ctx, input_dir: str, output: Optional[str], reverse_proxy: Optional[str]):
    """Regenerate artifacts from a previous output directory."""
    console.print(f"\n[bold blue]Regenerating from {input_dir}...[/bold blue]\n")
    try:
        result = _orchestrator(ctx).regenerate(input_dir, output, reverse_proxy)
    except SetupError as e:
        _fail(str(e))

    console.print(_files_panel("Regeneration Complete", result.output_dir, result.files))


# ============================================================
# Entry Point
# ============================================================

if __name__ == "__main__":
    cli()
