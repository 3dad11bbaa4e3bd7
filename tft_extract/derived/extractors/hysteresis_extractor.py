"""
IDVG-Hysteresis analyzer: forward/backward Vth shift and stability class.

The raw sweep is split at the row of maximum gate voltage; rows up to and
including that row form the forward branch, rows from it to the end the
backward branch. Each branch is deduplicated by VG and stored ascending. Its
Vth is the x-intercept of a √|ID| vs VG fit over the 30%-70% index window,
counted in sweep order: ascending VG forward, descending VG backward.
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np
import polars as pl

from tft_extract.core.errors import MalformedInputError
from tft_extract.derived.algorithms.linear_fit import fit_linear, x_intercept
from tft_extract.derived.columns import resolution_confidence, resolve_columns
from tft_extract.derived.extractors.base import (
    MeasurementAnalyzer,
    build_flags,
    column_values,
    compute_confidence,
    floor_current,
)
from tft_extract.models.measurements import DeviceGeometry, MeasurementKind, MeasurementSeries
from tft_extract.models.quantities import Quantity
from tft_extract.models.results import AnalysisResult, StabilityClass

logger = logging.getLogger(__name__)

BRANCH_MIN_POINTS = 11  # strictly more than 10
FIT_WINDOW = (0.3, 0.7)

# Upper bounds (exclusive) of ΔVth in volts for each class; anything above is "Very Poor"
STABILITY_THRESHOLDS = (
    (0.5, "Excellent"),
    (1.0, "Good"),
    (2.0, "Fair"),
    (3.0, "Poor"),
)


def classify_stability(delta_vth: float) -> StabilityClass:
    """
    Map ΔVth (V) to a stability class.

    >>> classify_stability(0.8)
    'Good'
    """
    for limit, label in STABILITY_THRESHOLDS:
        if delta_vth < limit:
            return label
    return "Very Poor"


def sqrt_extrapolated_vth(branch: MeasurementSeries, descending: bool = False) -> Quantity:
    """
    x-intercept of √|ID| vs VG over the middle index window of a branch.

    The window is taken in sweep order: ascending VG for the forward branch,
    descending VG (``descending=True``) for the backward branch.
    """
    n = len(branch)
    if n < BRANCH_MIN_POINTS:
        return Quantity.unmeasurable(f"{n} points in branch (need more than 10)", "V")

    vg, sqrt_id = branch.vg, branch.sqrt_id
    if descending:
        vg, sqrt_id = vg[::-1], sqrt_id[::-1]

    start = int(np.floor(n * FIT_WINDOW[0]))
    end = int(np.floor(n * FIT_WINDOW[1]))
    fit = fit_linear(vg[start:end], sqrt_id[start:end])
    vth = x_intercept(fit)
    if not np.isfinite(vth):
        return Quantity.unmeasurable("√ID is flat over the fit window", "V")
    return Quantity.measured(vth, "V", method="sqrt_id_extrapolation")


def split_branches(
    vg: np.ndarray,
    id_: np.ndarray,
    vd: np.ndarray,
) -> Tuple[MeasurementSeries, MeasurementSeries]:
    """Forward and backward branches of a round-trip gate sweep."""
    turn = int(np.argmax(vg))
    kind = MeasurementKind.IDVG_HYSTERESIS
    forward = MeasurementSeries.from_arrays(kind, vg[: turn + 1], id_[: turn + 1], vd[: turn + 1])
    backward = MeasurementSeries.from_arrays(kind, vg[turn:], id_[turn:], vd[turn:])
    return forward, backward


class HysteresisAnalyzer(MeasurementAnalyzer):
    """Extract forward/backward Vth, ΔVth and a stability class."""

    @property
    def kind(self) -> MeasurementKind:
        return MeasurementKind.IDVG_HYSTERESIS

    def analyze(
        self,
        table: pl.DataFrame,
        geometry: DeviceGeometry,
        source: str,
    ) -> AnalysisResult:
        if table.height == 0:
            raise MalformedInputError("IDVG-Hysteresis table has no data rows")

        matches = resolve_columns(table.columns)
        if matches["vg"] is None or matches["id"] is None:
            raise MalformedInputError(
                f"IDVG-Hysteresis table needs labelled VG/ID columns, got {table.columns}"
            )

        vg = column_values(table, matches["vg"].index)
        id_ = floor_current(column_values(table, matches["id"].index))
        vd = (
            np.abs(np.nan_to_num(column_values(table, matches["vd"].index), nan=0.0))
            if matches["vd"] is not None
            else np.zeros(table.height)
        )

        keep = np.isfinite(vg)
        if not np.any(keep):
            raise MalformedInputError("IDVG-Hysteresis table has no finite gate-voltage values")
        forward, backward = split_branches(vg[keep], id_[keep], vd[keep])

        vth_forward = sqrt_extrapolated_vth(forward)
        vth_backward = sqrt_extrapolated_vth(backward, descending=True)

        if vth_forward.is_available and vth_backward.is_available:
            delta = abs(vth_forward.value - vth_backward.value)
            delta_vth = Quantity.measured(delta, "V", method="forward_minus_backward")
            stability = classify_stability(delta)
        else:
            missing = "forward" if not vth_forward.is_available else "backward"
            delta_vth = Quantity.unmeasurable(f"{missing} branch Vth not available", "V")
            stability = "N/A"

        checks = {
            "COLUMNS_LABELLED": resolution_confidence(matches, ("vg", "id")) >= 0.8,
            "FORWARD_VTH": vth_forward.is_available,
            "BACKWARD_VTH": vth_backward.is_available,
        }
        penalties = {"COLUMNS_LABELLED": 0.7, "FORWARD_VTH": 0.5, "BACKWARD_VTH": 0.5}

        logger.debug(
            f"{source}: forward {len(forward)} pts Vth={vth_forward}, "
            f"backward {len(backward)} pts Vth={vth_backward}, ΔVth={delta_vth} ({stability})"
        )

        return AnalysisResult(
            kind=self.kind,
            source=source,
            parameters={
                "vth_forward": vth_forward,
                "vth_backward": vth_backward,
                "delta_vth": delta_vth,
            },
            confidence=compute_confidence(checks, penalties),
            flags=build_flags(checks),
            forward=forward,
            backward=backward,
            extras={"stability": stability},
        )
