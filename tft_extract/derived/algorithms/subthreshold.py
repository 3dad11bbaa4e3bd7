"""
Subthreshold swing, interface-trap density and fit-range helpers.

SS is reported in V/decade throughout the package:

    SS = |dVG / d(log10 ID)| = |1 / slope|

where the slope comes from a linear fit of log10|ID| vs VG, either over the
default subthreshold current window (log10 ID in (-10, -6)) or over a
user-chosen VG range.

Dit follows from SS and the gate capacitance:

    Dit = (Cox / q) * (SS / (2.3 * kT/q) - 1)      [cm⁻² eV⁻¹, Cox in F/cm²]
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from tft_extract.constants import (
    CM2_TO_M2,
    ELEMENTARY_CHARGE,
    LN10_APPROX,
    SUBTHRESHOLD_LOG_WINDOW,
    THERMAL_VOLTAGE_300K,
)
from tft_extract.derived.algorithms.linear_fit import fit_linear
from tft_extract.models.measurements import DeviceGeometry, MeasurementSeries
from tft_extract.models.quantities import Quantity

logger = logging.getLogger(__name__)

SS_UNIT = "V/decade"
DIT_UNIT = "cm⁻²eV⁻¹"

MIN_POINTS_DEFAULT_WINDOW = 6   # strictly more than 5
MIN_POINTS_CUSTOM_RANGE = 3
DIT_MAX = 1e15

# Candidate VG windows tried by suggest_ss_range, (start, end, name)
SS_RANGE_CANDIDATES: List[Tuple[float, float, str]] = [
    (-2.0, 2.0, "Wide Switching"),
    (-1.0, 1.0, "Standard Switching"),
    (-1.5, 0.5, "Asymmetric Range"),
    (-0.5, 1.5, "Positive Biased"),
]


def _finite_log_points(series: MeasurementSeries) -> Tuple[np.ndarray, np.ndarray]:
    log_id = series.log_id
    mask = np.isfinite(log_id)
    return series.vg[mask], log_id[mask]


def fit_subthreshold_swing(
    series: MeasurementSeries,
    vg_range: Optional[Tuple[float, float]] = None,
) -> Dict:
    """
    Fit the subthreshold slope of a gate sweep.

    Parameters
    ----------
    series : MeasurementSeries
        Gate sweep (ID as |ID|)
    vg_range : tuple of float, optional
        (start, end) in volts. When given, only points with start <= VG <= end
        are used and at least 3 are required; otherwise the default current
        window is used and more than 5 points are required.

    Returns
    -------
    dict
        - 'ss': SS in V/decade, or None when no fit is possible
        - 'reason': why 'ss' is None
        - 'slope', 'intercept', 'r_squared', 'n_points'
        - 'method': 'subthreshold_window' or 'custom_range'
        - 'vg_range': the range used, or None
    """
    vg, log_id = _finite_log_points(series)

    if vg_range is not None:
        start, end = float(min(vg_range)), float(max(vg_range))
        mask = (vg >= start) & (vg <= end)
        method = "custom_range"
        min_points = MIN_POINTS_CUSTOM_RANGE
        vg_range = (start, end)
    else:
        lo, hi = SUBTHRESHOLD_LOG_WINDOW
        mask = (log_id > lo) & (log_id < hi)
        method = "subthreshold_window"
        min_points = MIN_POINTS_DEFAULT_WINDOW

    x, y = vg[mask], log_id[mask]
    result = {
        'ss': None,
        'reason': None,
        'slope': None,
        'intercept': None,
        'r_squared': None,
        'n_points': int(len(x)),
        'method': method,
        'vg_range': vg_range,
    }

    if len(x) < min_points:
        result['reason'] = f"{len(x)} points in subthreshold fit window (need {min_points})"
        logger.debug(result['reason'])
        return result

    fit = fit_linear(x, y)
    result.update(slope=fit['slope'], intercept=fit['intercept'], r_squared=fit['r_squared'])

    if fit['degenerate'] or fit['slope'] == 0.0:
        result['reason'] = "log10(ID) does not vary with VG in the fit window"
        return result

    result['ss'] = abs(1.0 / fit['slope'])
    return result


def subthreshold_swing_quantity(fit: Dict) -> Quantity:
    """Wrap a :func:`fit_subthreshold_swing` result as a Quantity."""
    if fit['ss'] is None:
        return Quantity.unmeasurable(fit['reason'] or "no subthreshold fit", unit=SS_UNIT)
    return Quantity.measured(fit['ss'], SS_UNIT, method=fit['method'])


def compute_dit(ss: float, geometry: DeviceGeometry) -> Optional[float]:
    """
    Interface-trap density from SS (V/decade).

    Returns None when SS is not positive or the result falls outside
    (0, 1e15) cm⁻²eV⁻¹ (SS below the thermal limit gives a negative Dit).

    Examples
    --------
    >>> geom = DeviceGeometry(W=1e-4, L=1e-5, tox=20e-9)
    >>> f"{compute_dit(0.25, geom):.3e}"
    '3.445e+12'
    """
    if ss is None or not ss > 0:
        return None
    cox_cm2 = geometry.cox * CM2_TO_M2
    dit = (cox_cm2 / ELEMENTARY_CHARGE) * (ss / (LN10_APPROX * THERMAL_VOLTAGE_300K) - 1.0)
    if 0.0 < dit < DIT_MAX:
        return float(dit)
    return None


def dit_quantity(ss: Quantity, geometry: DeviceGeometry) -> Quantity:
    """Dit carried with the provenance of the SS it was derived from."""
    if not ss.is_available:
        return Quantity.unmeasurable("SS not available", unit=DIT_UNIT)
    dit = compute_dit(ss.value, geometry)
    if dit is None:
        return Quantity.unmeasurable(
            f"Dit outside (0, {DIT_MAX:.0e}) for SS = {ss.value:.4g} V/decade", unit=DIT_UNIT
        )
    if ss.is_measured:
        return Quantity.measured(dit, DIT_UNIT, method="from_ss")
    return Quantity.estimated(dit, DIT_UNIT, method="from_ss", reason="SS is an estimate")


# ══════════════════════════════════════════════════════════════════════
# Fit-range Assessment
# ══════════════════════════════════════════════════════════════════════

def evaluate_ss_quality(
    series: MeasurementSeries,
    vg_range: Tuple[float, float],
    ss: Optional[float] = None,
) -> Dict:
    """
    Score a subthreshold fit range out of 100.

    R² contributes up to 40 points, point count up to 30 and the SS value
    itself up to 30. Grades: Excellent >= 80, Good >= 60, Fair >= 40, else Poor.
    ``ss`` defaults to the SS fitted over the same range.
    """
    start, end = vg_range
    if start >= end:
        return {'quality': 'Invalid', 'score': 0, 'issues': ['Invalid range'], 'r_squared': None, 'n_points': 0}

    fit = fit_subthreshold_swing(series, (start, end))
    n = fit['n_points']
    if fit['r_squared'] is None:
        return {'quality': 'Poor', 'score': 0, 'issues': ['Insufficient data points'], 'r_squared': None, 'n_points': n}

    if ss is None:
        ss = fit['ss'] if fit['ss'] is not None else float('inf')

    r2 = fit['r_squared']
    score = 0
    issues = []

    if r2 >= 0.95:
        score += 40
    elif r2 >= 0.90:
        score += 30
    elif r2 >= 0.85:
        score += 20
    else:
        issues.append(f"Low linearity (R² = {r2:.3f})")

    if n >= 15:
        score += 30
    elif n >= 10:
        score += 20
    elif n >= 5:
        score += 10
    else:
        issues.append(f"Too few data points ({n})")

    if ss < 0.1:
        score += 30
    elif ss < 0.3:
        score += 20
    elif ss < 1.0:
        score += 10
    else:
        issues.append(f"High SS ({ss:.3f} V/decade)")

    if score >= 80:
        quality = 'Excellent'
    elif score >= 60:
        quality = 'Good'
    elif score >= 40:
        quality = 'Fair'
    else:
        quality = 'Poor'

    return {
        'quality': quality,
        'score': score,
        'issues': issues,
        'r_squared': r2,
        'n_points': n,
        'slope': fit['slope'],
        'intercept': fit['intercept'],
    }


def suggest_ss_range(series: MeasurementSeries) -> Dict:
    """
    Pick the candidate VG window with the most linear log10(ID) vs VG.

    Windows with fewer than 5 points are skipped. Confidence is High for
    R² > 0.95, Medium for R² > 0.90, else Low. Falls back to (-1, 1) with Low
    confidence when the sweep is shorter than 10 points or nothing fits.
    """
    best = {'vg_range': (-1.0, 1.0), 'confidence': 'Low', 'r_squared': 0.0, 'n_points': 0, 'name': None}
    if len(series) < 10:
        return best

    vg, log_id = _finite_log_points(series)
    for start, end, name in SS_RANGE_CANDIDATES:
        mask = (vg >= start) & (vg <= end)
        if np.count_nonzero(mask) < 5:
            continue
        fit = fit_linear(vg[mask], log_id[mask])
        if fit['degenerate']:
            continue
        r2 = fit['r_squared']
        if r2 > best['r_squared']:
            best = {
                'vg_range': (start, end),
                'confidence': 'High' if r2 > 0.95 else 'Medium' if r2 > 0.90 else 'Low',
                'r_squared': r2,
                'n_points': int(np.count_nonzero(mask)),
                'name': name,
            }
    return best
