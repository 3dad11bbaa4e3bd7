#!/usr/bin/env python3
"""
Configuration management commands for the CLI.

Provides commands to:
- Display current configuration (show-config)
- Initialize a config file (init-config)
"""

import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tft_extract.cli.config import CONFIG_FILENAME, AnalysisConfig, load_config_with_precedence
from tft_extract.cli.plugin_system import cli_command


console = Console()


@cli_command(name="show-config", group="config", description="Display current configuration settings")
def show_config_command(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file to display (default: auto-detect)"
    ),
    show_sources: bool = typer.Option(
        True,
        "--show-sources/--no-sources",
        help="Show source of each setting"
    )
):
    """
    Display current configuration in a formatted table.

    Shows every setting with its value and, optionally, where it came from
    (default/env/override), followed by the derived gate capacitance.
    """
    try:
        config = load_config_with_precedence(config_file=config_file)
    except (FileNotFoundError, json.JSONDecodeError, ValidationError) as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        raise typer.Exit(1)

    table = Table(
        title="Current Configuration",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Setting", style="bold", no_wrap=True)
    table.add_column("Value", style="green")
    if show_sources:
        table.add_column("Source", style="yellow")

    for field_name in AnalysisConfig.model_fields:
        value = getattr(config, field_name)
        if isinstance(value, bool):
            value_str = "✓ enabled" if value else "✗ disabled"
        else:
            value_str = str(value)

        if show_sources:
            table.add_row(field_name, value_str, config.get_field_source(field_name))
        else:
            table.add_row(field_name, value_str)

    console.print(table)

    geometry = config.device_geometry()
    console.print(
        f"\n[cyan]Cox:[/cyan] {geometry.cox * 1e-4:.3e} F/cm²  "
        f"[cyan]W/L:[/cyan] {geometry.W / geometry.L:.3g}"
    )

    console.print("\n[bold]Configuration Files:[/bold]")
    user_config = Path.home() / CONFIG_FILENAME
    project_config = Path.cwd() / CONFIG_FILENAME

    if user_config.exists():
        console.print(f"  ✓ User config: [cyan]{user_config}[/cyan]")
    else:
        console.print(f"  ✗ User config: [dim]{user_config} (not found)[/dim]")

    if project_config.exists() and project_config != user_config:
        console.print(f"  ✓ Project config: [cyan]{project_config}[/cyan]")
    else:
        console.print(f"  ✗ Project config: [dim]{project_config} (not found)[/dim]")

    if config_file:
        console.print(f"  ✓ Specified config: [cyan]{config_file}[/cyan]")

    console.print("\n[dim]Tip: Use 'init-config' to create a config file[/dim]")


@cli_command(name="init-config", group="config", description="Initialize a configuration file")
def init_config_command(
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help=f"Output location (default: ./{CONFIG_FILENAME})"
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing config file"
    ),
    width_um: Optional[float] = typer.Option(None, "--width", help="Channel width W (µm)"),
    length_um: Optional[float] = typer.Option(None, "--length", help="Channel length L (µm)"),
    tox_nm: Optional[float] = typer.Option(None, "--tox", help="Oxide thickness (nm)"),
):
    """
    Generate a configuration file with default settings.

    Geometry options are written into the file so later runs pick them up
    without repeating them on the command line.
    """
    output = Path(output) if output is not None else Path.cwd() / CONFIG_FILENAME

    if output.exists() and not force:
        console.print(f"[yellow]Config file already exists: {output}[/yellow]")
        console.print("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(1)

    overrides = {
        "channel_width_um": width_um,
        "channel_length_um": length_um,
        "oxide_thickness_nm": tox_nm,
    }
    try:
        config = AnalysisConfig(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        console.print(f"[red]Invalid setting: {e}[/red]")
        raise typer.Exit(1)

    try:
        config.save(output, pretty=True)
    except OSError as e:
        console.print(f"[red]Error saving config: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Configuration file created: [cyan]{output}[/cyan]")

    panel = Panel(
        f"""[bold]Configuration file created successfully![/bold]

Location: [cyan]{output}[/cyan]

You can now:
  1. Edit the file to set your device geometry
  2. Run [bold]show-config[/bold] to verify changes""",
        title="Next Steps",
        border_style="green"
    )
    console.print(panel)
