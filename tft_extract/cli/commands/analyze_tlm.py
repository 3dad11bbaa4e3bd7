"""TLM contact analysis command: analyze-tlm."""

from pathlib import Path
from typing import Dict, List, Optional

import polars as pl
import typer
from rich.console import Console

from tft_extract.cli.plugin_system import cli_command

console = Console()


@cli_command(
    name="analyze-tlm",
    group="analysis",
    description="Extract contact and sheet resistance from TLM samples",
    priority=5,
)
def analyze_tlm_command(
    directories: List[Path] = typer.Argument(
        ...,
        help="One directory per TLM sample, holding one CSV per worksheet (file stem = sheet name)"
    ),
    contact_width_mm: Optional[float] = typer.Option(
        None,
        "--contact-width",
        help="Contact width in mm (default: from config)"
    ),
    distance_step_mm: Optional[float] = typer.Option(
        None,
        "--distance-step",
        help="Pad spacing increment in mm used to read distances from sheet names"
    ),
    export: Optional[Path] = typer.Option(
        None,
        "--export",
        "-e",
        help="Write measurements and parameters to this CSV file"
    ),
    output_format: str = typer.Option(
        "table",
        "--format",
        help="Output format: table or json"
    ),
):
    """
    Extract contact and sheet resistance from TLM samples.

    Each worksheet's I-V sweep (AV, AI columns, |V| <= 2 V) gives one
    resistance; the resistances against pad distance give Rc, Rsh, LT and ρc.
    A sample that cannot be analyzed is reported and the rest still run.

    Examples:
        tft-extract analyze-tlm tlm/sample_A tlm/sample_B --contact-width 1.0
        tft-extract analyze-tlm tlm/* --export results/tlm.csv
    """
    from tft_extract.cli.formatters import get_formatter
    from tft_extract.cli.logging_config import setup_logging
    from tft_extract.cli.main import get_config
    from tft_extract.core.errors import MalformedInputError
    from tft_extract.core.export import write_tlm_csv
    from tft_extract.core.loaders import read_tlm_sample
    from tft_extract.derived.tlm import analyze_tlm_batch

    config = get_config()
    overrides = {
        "contact_width_mm": contact_width_mm,
        "distance_step_mm": distance_step_mm,
    }
    config = config.merge_with(**{k: v for k, v in overrides.items() if v is not None})
    setup_logging(config.log_dir, config.verbose)

    try:
        formatter = get_formatter(output_format)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    samples: Dict[str, Dict[str, pl.DataFrame]] = {}
    unreadable: Dict[str, str] = {}
    for directory in directories:
        try:
            samples[directory.name] = read_tlm_sample(directory)
        except MalformedInputError as e:
            unreadable[directory.name] = str(e)

    batch = analyze_tlm_batch(
        samples,
        contact_width_mm=config.contact_width_mm,
        distance_step_mm=config.distance_step_mm,
    )
    if unreadable:
        batch = batch.model_copy(update={"failures": {**batch.failures, **unreadable}})

    typer.echo(formatter.format_tlm(batch), nl=False)

    if export is not None:
        path = write_tlm_csv(batch, export)
        if output_format.strip().lower() != "json":
            console.print(f"[green]✓[/green] Exported to [cyan]{path}[/cyan]")

    if not batch.results:
        raise typer.Exit(1)
