"""
IDVD analyzer: output curves and on-resistance.

An IDVD export holds one 5-column block per gate-voltage condition. A block
starts at a header labelled "DrainI"; the block's gate voltage is read from
the first data row at block offset + 3. The drain voltage is shared by all
blocks (column 1) and keeps its sign, so each curve is ordered by signed VD
while the drain current is taken as |ID|.

Ron is the inverse slope of ID vs VD over points [1, 6) of the output curve at
the highest gate voltage, i.e. the low-VD ohmic part of the curve with the
VD = 0 point left out.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Tuple

import numpy as np
import polars as pl

from tft_extract.core.errors import MalformedInputError
from tft_extract.derived.algorithms.linear_fit import fit_linear
from tft_extract.derived.extractors.base import (
    MeasurementAnalyzer,
    build_flags,
    column_values,
    compute_confidence,
    floor_current,
)
from tft_extract.models.measurements import DeviceGeometry, MeasurementKind, MeasurementSeries
from tft_extract.models.quantities import Quantity
from tft_extract.models.results import AnalysisResult

logger = logging.getLogger(__name__)

BLOCK_WIDTH = 5
GATE_VOLTAGE_OFFSET = 3
DRAIN_VOLTAGE_COLUMN = 1
RON_WINDOW = (1, 6)
RON_MIN_POINTS = 3


def find_gate_blocks(table: pl.DataFrame) -> List[Tuple[int, float]]:
    """
    (drain-current column, gate voltage) for every block in the table.

    Blocks whose gate-voltage cell is missing or not numeric are skipped.
    """
    blocks = []
    if table.height == 0:
        return blocks
    first_row = table.row(0)
    for start in range(0, table.width, BLOCK_WIDTH):
        if "draini" not in str(table.columns[start]).lower():
            continue
        gate_idx = start + GATE_VOLTAGE_OFFSET
        if gate_idx >= table.width:
            continue
        try:
            vg = float(first_row[gate_idx])
        except (TypeError, ValueError):
            continue
        if np.isfinite(vg):
            blocks.append((start, vg))
    return blocks


def on_resistance(curve: MeasurementSeries) -> Quantity:
    """Ron from the low-VD window of one output curve."""
    lo, hi = RON_WINDOW
    vd = curve.vd[lo:hi]
    id_ = curve.id[lo:hi]
    if len(vd) < RON_MIN_POINTS:
        return Quantity.unmeasurable(
            f"{len(vd)} points in the Ron window (need {RON_MIN_POINTS})", "Ω"
        )
    fit = fit_linear(vd, id_)
    if fit['degenerate'] or fit['slope'] <= 0:
        return Quantity.unmeasurable("ID does not increase with VD in the ohmic window", "Ω")
    return Quantity.measured(1.0 / fit['slope'], "Ω", method="inverse_slope_low_vd")


class IDVDAnalyzer(MeasurementAnalyzer):
    """Extract Ron from a family of output curves."""

    @property
    def kind(self) -> MeasurementKind:
        return MeasurementKind.IDVD

    def analyze(
        self,
        table: pl.DataFrame,
        geometry: DeviceGeometry,
        source: str,
    ) -> AnalysisResult:
        if table.height == 0:
            raise MalformedInputError("IDVD table has no data rows")
        if table.width <= DRAIN_VOLTAGE_COLUMN:
            raise MalformedInputError(f"IDVD table has {table.width} column(s); no drain-voltage column")

        blocks = find_gate_blocks(table)
        vd = column_values(table, DRAIN_VOLTAGE_COLUMN)

        curves: Dict[float, MeasurementSeries] = {}
        for start, vg in blocks:
            id_ = floor_current(column_values(table, start))
            curves[vg] = MeasurementSeries.from_arrays(
                MeasurementKind.IDVD, np.full(len(vd), vg), id_, vd
            )

        warnings = []
        if not curves:
            reason = "no DrainI-labelled blocks with a gate voltage"
            warnings.append(f"{source}: {reason}")
            logger.warning(f"{source}: {reason}")
            ron = Quantity.unmeasurable(reason, "Ω")
            top = None
        else:
            top_vg = max(curves)
            top = curves[top_vg]
            ron = on_resistance(top)

        checks = {
            "BLOCKS_FOUND": bool(curves),
            "RON_FITTED": ron.is_available,
        }
        penalties = {"BLOCKS_FOUND": 0.2, "RON_FITTED": 0.5}

        logger.debug(f"{source}: {len(curves)} gate-voltage blocks, Ron={ron}")

        return AnalysisResult(
            kind=self.kind,
            source=source,
            parameters={"ron": ron},
            warnings=tuple(warnings),
            confidence=compute_confidence(checks, penalties),
            flags=build_flags(checks),
            series=top,
            extras={"gate_voltages": tuple(sorted(curves)), "curves": curves},
        )
