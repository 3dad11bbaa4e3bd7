"""
Low-field mobility (μ0) by the Y-function method.

In strong inversion the linear-region drain current with mobility degradation
is ID = β·(VG - Vth)/(1 + θ·(VG - Vth)) with β = (W/L)·Cox·μ0·VDS, and
gm = β/(1 + θ·(VG - Vth))². The Y-function

    Y = ID / √gm = √β · (VG - Vth)

is free of θ, so the slope A of Y vs (VG - Vth) gives

    μ0 = A² · L / (Cox · VDS · W)        (×1e4 for m² -> cm²)

The fit is gated: at least 10 strong-inversion points, R² >= 0.90, a positive
slope and μ0 in (0, 200] cm²/V·s. Anything else comes back as a Poor result
with the reason in ``error``.
"""

from __future__ import annotations

import logging

import numpy as np

from tft_extract.constants import M2_TO_CM2, MIN_CURRENT_A, MU0_MAX_CM2
from tft_extract.derived.algorithms.linear_fit import fit_linear
from tft_extract.models.measurements import DeviceGeometry, GmSeries, MeasurementSeries
from tft_extract.models.results import YFunctionResult

logger = logging.getLogger(__name__)


class YFunctionMobilityExtractor:
    """
    Extract μ0 from a linear-region transfer curve and its transconductance.

    Parameters
    ----------
    min_overdrive_v : float
        Only points with VG > Vth + min_overdrive_v are used (default: 0.5 V)
    min_points : int
        Minimum number of qualifying points (default: 10)
    min_r_squared : float
        Fits below this R² are rejected (default: 0.90)
    gm_tolerance_v : float
        Max VG distance when pairing a sweep point with a gm point (default: 0.05 V)
    """

    def __init__(
        self,
        min_overdrive_v: float = 0.5,
        min_points: int = 10,
        min_r_squared: float = 0.90,
        gm_tolerance_v: float = 0.05,
    ):
        self.min_overdrive_v = min_overdrive_v
        self.min_points = min_points
        self.min_r_squared = min_r_squared
        self.gm_tolerance_v = gm_tolerance_v

    def extract(
        self,
        series: MeasurementSeries,
        gm: GmSeries,
        geometry: DeviceGeometry,
        vth: float,
        vds: float,
    ) -> YFunctionResult:
        if vth is None or not np.isfinite(vth):
            return YFunctionResult(error="Vth not available")
        if vds is None or not vds > 0:
            return YFunctionResult(error=f"Invalid VDS: {vds}")

        x_vals = []
        y_vals = []
        for point in series.points():
            if not point.vg > vth + self.min_overdrive_v or not point.id > MIN_CURRENT_A:
                continue
            g = gm.lookup(point.vg, self.gm_tolerance_v)
            if g is None or not g > MIN_CURRENT_A or not np.isfinite(g):
                continue
            y = point.id / np.sqrt(g)
            if np.isfinite(y) and y > 0:
                x_vals.append(point.vg - vth)
                y_vals.append(y)

        n = len(x_vals)
        if n < self.min_points:
            return YFunctionResult(error=f"Insufficient data points: {n}", data_points=n)

        fit = fit_linear(np.array(x_vals), np.array(y_vals))
        slope = fit['slope']
        r_squared = fit['r_squared']

        if r_squared < self.min_r_squared:
            return YFunctionResult(
                error=f"Poor linearity: R² = {r_squared:.3f}",
                r_squared=r_squared,
                data_points=n,
            )

        if fit['degenerate'] or slope <= 0:
            return YFunctionResult(error="Invalid slope", r_squared=r_squared, slope=slope, data_points=n)

        mu0 = slope * slope * geometry.L / (geometry.cox * vds * geometry.W) * M2_TO_CM2
        if not (0.0 < mu0 <= MU0_MAX_CM2):
            return YFunctionResult(
                error=f"Unphysical μ0 value: {mu0:.2f} cm²/V·s",
                r_squared=r_squared,
                slope=slope,
                data_points=n,
            )

        if r_squared > 0.98 and n >= 15:
            quality = "Excellent"
        elif r_squared < 0.95 or n < 12:
            quality = "Fair"
        else:
            quality = "Good"

        logger.debug(f"Y-function: μ0={mu0:.3f} cm²/V·s, R²={r_squared:.4f}, n={n}, quality={quality}")

        return YFunctionResult(
            mu0=mu0,
            quality=quality,
            r_squared=r_squared,
            slope=slope,
            data_points=n,
        )
