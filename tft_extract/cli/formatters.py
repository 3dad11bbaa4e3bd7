"""
Output formatters for CLI commands.

Decouples result presentation from command logic so the same fused TFT
parameters or TLM batch can be rendered as Rich tables or as JSON for
scripting.

Usage:
    >>> from tft_extract.cli.formatters import get_formatter
    >>> formatter = get_formatter("json")
    >>> print(formatter.format_fused(outcome.fused))

Available Formats:
    - table: Rich terminal tables (default)
    - json: Machine-readable JSON
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Type

from rich import box
from rich.console import Console
from rich.table import Table

from tft_extract import __version__
from tft_extract.core.export import FUSED_FIELDS
from tft_extract.models.quantities import Quantity
from tft_extract.models.results import FusedParameterSet, TLMBatchResult

# Display labels for fused parameters
PARAMETER_LABELS: Dict[str, str] = {
    "vth": "Vth",
    "ss": "SS",
    "dit": "Dit",
    "gm_max": "gm,max",
    "mu_fe": "μFE",
    "mu0": "μ0",
    "theta": "θ",
    "mu_eff": "μeff",
    "ron": "Ron",
    "ion": "Ion",
    "ioff": "Ioff",
    "on_off_ratio": "Ion/Ioff",
    "delta_vth": "ΔVth",
    "vg_at_gm_max": "VG @ gm,max",
    "vds_linear": "VDS (linear)",
}

STATUS_STYLES = {
    "measured": "green",
    "estimated": "yellow",
    "unmeasurable": "dim",
}

GRADE_STYLES = {"A": "bold green", "B": "green", "C": "yellow", "D": "red", "F": "bold red"}


# ============================================================================
# Abstract Base Class
# ============================================================================

class OutputFormatter(ABC):
    """Renders analysis results for stdout."""

    @abstractmethod
    def format_fused(self, fused: Mapping[str, FusedParameterSet]) -> str:
        pass

    @abstractmethod
    def format_tlm(self, batch: TLMBatchResult) -> str:
        pass


# ============================================================================
# Rich Table Formatter
# ============================================================================

def _format_value(q: Quantity) -> str:
    if q.value is None:
        return "[dim]—[/dim]"
    text = f"{q.value:.4g}"
    return f"{text} {q.unit}".strip()


class RichTableFormatter(OutputFormatter):
    """
    Rich tables for terminal output.

    One table per sample with value, status and provenance for every
    parameter, followed by the quality grade and the warning list.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def _sample_table(self, f: FusedParameterSet) -> Table:
        grade_style = GRADE_STYLES.get(f.quality.grade, "")
        table = Table(
            title=f"{f.sample}  [{grade_style}]{f.quality.grade} ({f.quality.score})[/{grade_style}]",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("Parameter", style="bold", no_wrap=True)
        table.add_column("Value", justify="right")
        table.add_column("Status")
        table.add_column("Method / reason", style="dim")

        for field_name in FUSED_FIELDS:
            q: Quantity = getattr(f, field_name)
            style = STATUS_STYLES[q.status]
            detail = q.reason if q.status == "unmeasurable" else (q.method or "")
            if q.status == "estimated" and q.reason:
                detail = f"{q.method}: {q.reason}"
            table.add_row(
                PARAMETER_LABELS[field_name],
                _format_value(q),
                f"[{style}]{q.status}[/{style}]",
                detail or "",
            )

        table.add_row("Stability", f.stability, "", "")
        table.add_row("Y-function", f.y_function_quality, "", "")
        if f.ss_range is not None:
            table.add_row("SS fit range", f"{f.ss_range[0]:g} to {f.ss_range[1]:g} V", "", "custom")
        return table

    def format_fused(self, fused: Mapping[str, FusedParameterSet]) -> str:
        with self.console.capture() as capture:
            if not fused:
                self.console.print("[yellow]No samples to display[/yellow]")
            for f in fused.values():
                self.console.print(self._sample_table(f))
                self.console.print(f"[cyan]Sources:[/cyan] {', '.join(f.data_sources) or 'none'}")
                for w in f.warnings:
                    self.console.print(f"  [yellow]⚠[/yellow] {w}")
                self.console.print()
        return capture.get()

    def format_tlm(self, batch: TLMBatchResult) -> str:
        table = Table(
            title=f"TLM results (contact width {batch.contact_width_mm} mm)",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("Sample", style="bold")
        table.add_column("Rc (Ω)", justify="right", style="green")
        table.add_column("Rsh (Ω/sq)", justify="right", style="green")
        table.add_column("LT (cm)", justify="right")
        table.add_column("ρc (Ω·cm²)", justify="right")
        table.add_column("R²", justify="right")
        table.add_column("Points", justify="right")

        for sample in batch.results:
            p = sample.parameters
            table.add_row(
                sample.sample_name,
                f"{p.rc:.2f}",
                f"{p.rsh:.2f}",
                f"{p.lt_cm:.3f}",
                f"{p.rho_c:.2e}",
                f"{p.r_squared:.4f}",
                str(p.n_points),
            )
        for name, reason in batch.failures.items():
            table.add_row(name, "[dim]—[/dim]", "[dim]—[/dim]", "[dim]—[/dim]", "[dim]—[/dim]", "[dim]—[/dim]", "0")

        with self.console.capture() as capture:
            self.console.print(table)
            for sample in batch.results:
                for sheet in sample.skipped_sheets:
                    self.console.print(f"  [yellow]⚠[/yellow] {sample.sample_name}: skipped sheet '{sheet}'")
            for name, reason in batch.failures.items():
                self.console.print(f"  [red]✗[/red] {name}: {reason}")
        return capture.get()


# ============================================================================
# JSON Formatter
# ============================================================================

class JSONFormatter(OutputFormatter):
    """
    JSON output with a metadata header.

    Output Structure:
        {
            "metadata": {...},
            "data": [{...}, {...}, ...]
        }
    """

    def __init__(self, indent: int = 2, ensure_ascii: bool = False):
        self.indent = indent
        self.ensure_ascii = ensure_ascii

    def _metadata(self, **extra: Any) -> Dict[str, Any]:
        return {
            "generated": datetime.now().isoformat(),
            "version": __version__,
            **extra,
        }

    def _dump(self, payload: Dict[str, Any]) -> str:
        return json.dumps(payload, indent=self.indent, ensure_ascii=self.ensure_ascii)

    def format_fused(self, fused: Mapping[str, FusedParameterSet]) -> str:
        return self._dump({
            "metadata": self._metadata(samples=len(fused)),
            "data": [f.model_dump(mode="json") for f in fused.values()],
        })

    def format_tlm(self, batch: TLMBatchResult) -> str:
        dumped = batch.model_dump(mode="json")
        return self._dump({
            "metadata": self._metadata(
                contact_width_mm=batch.contact_width_mm,
                distance_step_mm=batch.distance_step_mm,
                timestamp=dumped["timestamp"],
            ),
            "data": dumped["results"],
            "failures": dumped["failures"],
        })


# ============================================================================
# Formatter Registry and Factory
# ============================================================================

FORMATTERS: Dict[str, Type[OutputFormatter]] = {
    "table": RichTableFormatter,
    "json": JSONFormatter,
}

FORMATTER_ALIASES: Dict[str, str] = {
    "rich": "table",
    "terminal": "table",
    "text": "table",
}


def get_formatter(format_name: str) -> OutputFormatter:
    """
    Get formatter instance by name.

    Raises
    ------
    ValueError
        If format name is unknown
    """
    format_name = format_name.strip().lower()
    format_name = FORMATTER_ALIASES.get(format_name, format_name)

    if format_name not in FORMATTERS:
        valid_formats = list(FORMATTERS.keys()) + list(FORMATTER_ALIASES.keys())
        raise ValueError(
            f"Unknown format: '{format_name}'. "
            f"Valid formats: {', '.join(sorted(set(valid_formats)))}"
        )

    return FORMATTERS[format_name]()


def list_formatters() -> List[str]:
    return sorted(FORMATTERS.keys())
