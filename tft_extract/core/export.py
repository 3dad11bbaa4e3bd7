"""
Export of TLM and fused TFT results.

TLM CSV layout::

    File,Distance (mm),Resistance (Ω),Conductance (S),R²
    <one row per sheet measurement>

    TLM parameters per file
    File,Rc (Ω),Rsh (Ω/sq),LT (cm),ρc (Ω·cm²),R²,Points
    <one row per file; N/A for files that failed>

    Analysis time: <ISO timestamp>
    Contact width: <w> mm
    Distance step: <s> mm
"""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import Mapping, Union

import polars as pl

from tft_extract.models.results import FusedParameterSet, TLMBatchResult

logger = logging.getLogger(__name__)

MEASUREMENT_HEADER = ["File", "Distance (mm)", "Resistance (Ω)", "Conductance (S)", "R²"]
PARAMETER_HEADER = ["File", "Rc (Ω)", "Rsh (Ω/sq)", "LT (cm)", "ρc (Ω·cm²)", "R²", "Points"]

FUSED_FIELDS = (
    "vth", "ss", "dit", "gm_max", "mu_fe", "mu0", "theta", "mu_eff",
    "ron", "ion", "ioff", "on_off_ratio", "delta_vth", "vg_at_gm_max", "vds_linear",
)


def tlm_results_to_csv(batch: TLMBatchResult) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")

    writer.writerow(MEASUREMENT_HEADER)
    for sample in batch.results:
        for m in sample.measurements:
            writer.writerow([
                sample.file_name,
                f"{m.distance_mm:.1f}",
                f"{m.resistance:.2f}",
                f"{m.conductance:.4e}",
                f"{m.r_squared:.4f}" if m.r_squared is not None else "N/A",
            ])

    writer.writerow([])
    writer.writerow(["TLM parameters per file"])
    writer.writerow(PARAMETER_HEADER)
    for sample in batch.results:
        p = sample.parameters
        writer.writerow([
            sample.file_name,
            f"{p.rc:.2f}",
            f"{p.rsh:.2f}",
            f"{p.lt_cm:.3f}",
            f"{p.rho_c:.2e}",
            f"{p.r_squared:.4f}",
            len(sample.measurements),
        ])
    for file_name in batch.failures:
        writer.writerow([file_name, "N/A", "N/A", "N/A", "N/A", "N/A", 0])

    writer.writerow([])
    writer.writerow([f"Analysis time: {batch.timestamp.isoformat()}"])
    writer.writerow([f"Contact width: {batch.contact_width_mm} mm"])
    writer.writerow([f"Distance step: {batch.distance_step_mm} mm"])

    return buf.getvalue()


def write_tlm_csv(batch: TLMBatchResult, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(tlm_results_to_csv(batch), encoding="utf-8")
    logger.info(f"Wrote TLM results for {len(batch.results)} sample(s) to {path}")
    return path


def fused_to_frame(fused: Mapping[str, FusedParameterSet]) -> pl.DataFrame:
    """
    One row per sample; each parameter gets a value column and a status column.

    Unmeasurable values are null, so downstream tools see them as missing
    rather than as zero.
    """
    rows = []
    for name, f in fused.items():
        row = {"sample": name}
        for field_name in FUSED_FIELDS:
            q = getattr(f, field_name)
            row[field_name] = q.value
            row[f"{field_name}_status"] = q.status
        row["stability"] = f.stability
        row["y_function_quality"] = f.y_function_quality
        row["quality_score"] = f.quality.score
        row["quality_grade"] = f.quality.grade
        row["data_sources"] = ", ".join(f.data_sources)
        row["warnings"] = " | ".join(f.warnings)
        rows.append(row)

    schema = {"sample": pl.Utf8}
    for field_name in FUSED_FIELDS:
        schema[field_name] = pl.Float64
        schema[f"{field_name}_status"] = pl.Utf8
    schema.update({
        "stability": pl.Utf8,
        "y_function_quality": pl.Utf8,
        "quality_score": pl.Int64,
        "quality_grade": pl.Utf8,
        "data_sources": pl.Utf8,
        "warnings": pl.Utf8,
    })
    return pl.DataFrame(rows, schema=schema)


def write_fused_csv(fused: Mapping[str, FusedParameterSet], path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fused_to_frame(fused).write_csv(path)
    logger.info(f"Wrote {len(fused)} fused sample(s) to {path}")
    return path
