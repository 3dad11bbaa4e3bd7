"""TFT analysis command: analyze-tft."""

from pathlib import Path
from typing import List, Optional, Tuple

import typer
from rich.console import Console

from tft_extract.cli.plugin_system import cli_command

console = Console()


def _range_or_none(ss_range: Tuple[Optional[float], Optional[float]]) -> Optional[Tuple[float, float]]:
    if ss_range is None or ss_range[0] is None or ss_range[1] is None:
        return None
    return float(ss_range[0]), float(ss_range[1])


@cli_command(
    name="analyze-tft",
    group="analysis",
    description="Extract and fuse TFT parameters from IDVG/IDVD sweeps",
    priority=10,
)
def analyze_tft_command(
    paths: List[Path] = typer.Argument(
        ...,
        help="Measurement CSV files, or directories containing them"
    ),
    width_um: Optional[float] = typer.Option(
        None,
        "--width",
        help="Channel width W in µm (default: from config)"
    ),
    length_um: Optional[float] = typer.Option(
        None,
        "--length",
        help="Channel length L in µm (default: from config)"
    ),
    tox_nm: Optional[float] = typer.Option(
        None,
        "--tox",
        help="Gate oxide thickness in nm (default: from config)"
    ),
    ss_range: Tuple[float, float] = typer.Option(
        (None, None),
        "--ss-range",
        help="Custom VG window START END (V) for the subthreshold-swing fit"
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        "-w",
        help="Number of parallel worker processes for fusion"
    ),
    output_format: str = typer.Option(
        "table",
        "--format",
        help="Output format: table or json"
    ),
    export: Optional[Path] = typer.Option(
        None,
        "--export",
        "-e",
        help="Also write the fused parameters to this CSV file"
    ),
):
    """
    Extract and fuse TFT parameters from IDVG/IDVD sweeps.

    File names decide the measurement kind (IDVD, IDVG_Lin, IDVG_Sat,
    IDVG_Lin_Hys) and, with those keywords removed, the sample each file
    belongs to. Every sample gets one fused parameter set with a quality
    grade and the list of fallbacks that were needed.

    Examples:
        tft-extract analyze-tft data/0616_*.csv --width 100 --length 50 --tox 20
        tft-extract analyze-tft data/ --ss-range -1 1 --format json
    """
    from tft_extract.cli.formatters import get_formatter
    from tft_extract.cli.logging_config import setup_logging
    from tft_extract.cli.main import get_config
    from tft_extract.core.analysis import analyze_files
    from tft_extract.core.export import write_fused_csv
    from tft_extract.core.loaders import discover_measurement_files

    config = get_config()
    overrides = {
        "channel_width_um": width_um,
        "channel_length_um": length_um,
        "oxide_thickness_nm": tox_nm,
        "parallel_workers": workers,
    }
    config = config.merge_with(**{k: v for k, v in overrides.items() if v is not None})
    setup_logging(config.log_dir, config.verbose)

    try:
        formatter = get_formatter(output_format)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    files = discover_measurement_files(paths)
    if not files:
        console.print("[red]Error:[/red] No measurement files found")
        raise typer.Exit(1)

    vg_range = _range_or_none(ss_range)
    if vg_range is not None and vg_range[0] >= vg_range[1]:
        console.print(f"[red]Error:[/red] --ss-range start must be below end, got {vg_range}")
        raise typer.Exit(1)

    geometry = config.device_geometry()
    outcome = analyze_files(files, geometry, ss_range=vg_range, workers=config.parallel_workers)

    typer.echo(formatter.format_fused(outcome.fused), nl=False)

    if output_format.strip().lower() != "json":
        for name, reason in outcome.skipped.items():
            console.print(f"[yellow]⚠ Skipped {name}:[/yellow] {reason}")
        console.print(
            f"[green]✓[/green] {len(outcome.results)} file(s), {len(outcome.fused)} sample(s), "
            f"{len(outcome.skipped)} skipped"
        )

    if export is not None:
        path = write_fused_csv(outcome.fused, export)
        if output_format.strip().lower() != "json":
            console.print(f"[green]✓[/green] Exported to [cyan]{path}[/cyan]")

    if not outcome.fused:
        raise typer.Exit(1)
