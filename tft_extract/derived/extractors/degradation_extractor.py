"""
Mobility-degradation factor (θ) extraction.

With μ0 known, the linear-region current ID = β·Vgt/(1 + θ·Vgt) rearranges to

    μ0·W·Cox·VDS / (ID·L) = 1/Vgt + θ

so θ is the y-intercept of y = μ0·W·Cox·VDS/(ID·L) regressed against
x = 1/(VG - Vth) over the strong-inversion points (VG > Vth + 1 V).

Inputs are range-checked first so that a unit mistake (µm passed as m, μ0 in
m²/V·s) comes back as a named diagnostic instead of a silently wrong θ.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from tft_extract.constants import CM2_TO_M2, MIN_CURRENT_A, MU0_MAX_CM2, THETA_MAX
from tft_extract.derived.algorithms.linear_fit import fit_linear
from tft_extract.models.measurements import DeviceGeometry, MeasurementSeries
from tft_extract.models.results import ThetaResult

logger = logging.getLogger(__name__)

MAX_ABS_VTH = 50.0      # V
MAX_VDS = 1.0           # V, θ needs the linear region
MAX_DIMENSION_M = 0.01  # 1 cm
MAX_L_OVER_W = 1000.0
TOX_RANGE_M = (1e-9, 1e-6)


def validate_theta_inputs(
    mu0: float,
    geometry: DeviceGeometry,
    vth: float,
    vds: float,
) -> Optional[ThetaResult]:
    """Diagnostic ThetaResult for the first out-of-range input, or None if all pass."""
    if mu0 is None or not np.isfinite(mu0) or mu0 <= 0:
        return ThetaResult(method="Invalid μ0 value", error=f"μ0: {mu0}")
    if mu0 > MU0_MAX_CM2:
        return ThetaResult(method="μ0 too high - check units", error=f"μ0: {mu0} cm²/V·s")

    if vth is None or not np.isfinite(vth):
        return ThetaResult(method="Invalid Vth value", error=f"Vth: {vth}")
    if abs(vth) > MAX_ABS_VTH:
        return ThetaResult(method="Vth too extreme", error=f"Vth: {vth} V")

    if vds is None or not np.isfinite(vds) or vds <= 0:
        return ThetaResult(method="Invalid VDS value", error=f"VDS: {vds}")
    if vds > MAX_VDS:
        return ThetaResult(method="VDS too high for θ calculation", error=f"VDS: {vds} V (should be <= 1 V)")

    W, L, tox = geometry.W, geometry.L, geometry.tox
    if W > MAX_DIMENSION_M:
        return ThetaResult(method="W too large - check units", error=f"W: {W} m")
    if L > MAX_DIMENSION_M:
        return ThetaResult(method="L too large - check units", error=f"L: {L} m")
    if L > W * MAX_L_OVER_W:
        return ThetaResult(method="L/W ratio unrealistic", error=f"W: {W * 1e6:.3g} µm, L: {L * 1e6:.3g} µm")
    if tox > TOX_RANGE_M[1]:
        return ThetaResult(method="tox too large - check units", error=f"tox: {tox} m")
    if tox < TOX_RANGE_M[0]:
        return ThetaResult(method="tox too small - unrealistic", error=f"tox: {tox * 1e9:.3g} nm")
    return None


class DegradationFactorExtractor:
    """
    Extract θ (V⁻¹) given μ0.

    Parameters
    ----------
    min_overdrive_v : float
        Regression uses points with VG > Vth + min_overdrive_v (default: 1.0 V)
    min_total_points : int
        Minimum sweep length (default: 10)
    min_fit_points : int
        Minimum high-VG, valid-current and regression points (default: 3)
    """

    def __init__(
        self,
        min_overdrive_v: float = 1.0,
        min_total_points: int = 10,
        min_fit_points: int = 3,
    ):
        self.min_overdrive_v = min_overdrive_v
        self.min_total_points = min_total_points
        self.min_fit_points = min_fit_points

    def extract(
        self,
        mu0: float,
        geometry: DeviceGeometry,
        series: MeasurementSeries,
        vth: float,
        vds: float,
    ) -> ThetaResult:
        invalid = validate_theta_inputs(mu0, geometry, vth, vds)
        if invalid is not None:
            logger.debug(f"θ skipped: {invalid.method} ({invalid.error})")
            return invalid

        total = len(series)
        if total < self.min_total_points:
            return ThetaResult(
                method="Insufficient total data",
                error=f"Only {total} data points (need {self.min_total_points})",
                total_points=total,
            )

        vg = series.vg
        id_ = series.id
        finite = np.isfinite(vg) & np.isfinite(id_)
        high_vg = finite & (vg > vth + self.min_overdrive_v)
        valid_current = high_vg & (id_ > MIN_CURRENT_A)
        n_high = int(np.count_nonzero(high_vg))
        n_current = int(np.count_nonzero(valid_current))

        if n_high < self.min_fit_points:
            return ThetaResult(
                method="Cannot measure - insufficient high VG data",
                error=f"Only {n_high} points with VG > {vth + self.min_overdrive_v:.1f} V",
                valid_vg_points=n_high,
                total_points=total,
            )
        if n_current < self.min_fit_points:
            return ThetaResult(
                method="Cannot measure - insufficient valid current data",
                error=f"Only {n_current} points with valid current",
                valid_vg_points=n_high,
                total_points=total,
            )

        mu0_si = mu0 * CM2_TO_M2
        x = 1.0 / (vg[valid_current] - vth)
        y = (mu0_si * geometry.W * geometry.cox * vds) / (id_[valid_current] * geometry.L)
        ok = np.isfinite(x) & np.isfinite(y) & (x > 0) & (y > 0)
        x, y = x[ok], y[ok]

        if len(x) < self.min_fit_points:
            return ThetaResult(
                method="Cannot measure - calculation failed",
                error=f"Only {len(x)} valid calculation points",
                valid_vg_points=n_high,
                total_points=total,
            )

        fit = fit_linear(x, y)
        if fit['degenerate']:
            return ThetaResult(
                method="Linear regression failed",
                error="1/(VG - Vth) does not vary over the fit points",
                data_points=len(x),
                valid_vg_points=n_high,
                total_points=total,
            )

        theta = fit['intercept']
        if theta <= 0:
            return ThetaResult(
                method="Cannot measure - negative θ",
                error=f"θ = {theta:.3e} (should be > 0)",
                data_points=len(x),
                valid_vg_points=n_high,
                total_points=total,
            )
        if theta > THETA_MAX:
            return ThetaResult(
                method="Cannot measure - θ too high",
                error=f"θ = {theta:.3e} V⁻¹ (should be <= {THETA_MAX})",
                data_points=len(x),
                valid_vg_points=n_high,
                total_points=total,
            )

        logger.debug(f"θ={theta:.4g} V⁻¹ from {len(x)} points (R²={fit['r_squared']:.4f})")

        return ThetaResult(
            theta=theta,
            method="Calculated",
            data_points=len(x),
            valid_vg_points=n_high,
            total_points=total,
        )
