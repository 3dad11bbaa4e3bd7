"""
Transconductance (gm = dID/dVG) by central difference.

The derivative is taken only at interior points, so a sweep of n points
yields n - 2 gm values keyed by the exact gate voltage of each interior point.
"""

from __future__ import annotations

import numpy as np
from numba import jit

from tft_extract.models.measurements import GmSeries, MeasurementSeries


@jit(nopython=True)
def central_difference_numba(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    |Δy/Δx| using neighbours i-1 and i+1, for i = 1 .. n-2.

    Points whose neighbours share the same x get 0.
    """
    n = len(x)
    if n < 3:
        return np.empty(0, dtype=np.float64)

    out = np.empty(n - 2, dtype=np.float64)
    for i in range(1, n - 1):
        dx = x[i + 1] - x[i - 1]
        if dx == 0.0:
            out[i - 1] = 0.0
        else:
            out[i - 1] = abs((y[i + 1] - y[i - 1]) / dx)
    return out


def central_difference(series: MeasurementSeries) -> GmSeries:
    """
    Transconductance of a gate sweep.

    Parameters
    ----------
    series : MeasurementSeries
        Sorted, deduplicated gate sweep

    Returns
    -------
    GmSeries
        gm at VG[1:-1]; empty when the sweep has fewer than 3 points

    Examples
    --------
    >>> vg = np.linspace(0, 5, 51)
    >>> s = MeasurementSeries.from_arrays(MeasurementKind.IDVG_LINEAR, vg, vg**2, np.full(51, 0.1))
    >>> gm = central_difference(s)
    >>> len(gm) == len(s) - 2
    True
    """
    gm = central_difference_numba(series.vg, series.id)
    vg = np.array(series.vg[1:-1], dtype=np.float64) if len(series) >= 3 else np.empty(0)
    vg.setflags(write=False)
    gm.setflags(write=False)
    return GmSeries(vg=vg, gm=gm)


def measured_gm(series: MeasurementSeries) -> GmSeries | None:
    """
    gm from an instrument-provided column, if it carries anything non-trivial.

    Returns None when the sweep has no gm column or every value is <= 0, so the
    caller falls back to :func:`central_difference`.
    """
    if series.gm_measured is None:
        return None

    gm = np.abs(np.asarray(series.gm_measured, dtype=np.float64))
    finite = np.isfinite(gm)
    if not np.any(gm[finite] > 0):
        return None

    vg = np.array(series.vg[finite], dtype=np.float64)
    gm = gm[finite]
    vg.setflags(write=False)
    gm.setflags(write=False)
    return GmSeries(vg=vg, gm=gm)


def transconductance(series: MeasurementSeries) -> tuple[GmSeries, str]:
    """Measured gm when available, else central difference; returns (gm, method)."""
    gm = measured_gm(series)
    if gm is not None:
        return gm, "measured_column"
    return central_difference(series), "central_difference"
