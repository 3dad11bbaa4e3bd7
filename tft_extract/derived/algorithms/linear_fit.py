"""
Linear fitting used by every extraction step.

Uses Numba-accelerated least squares for fast fitting of linear models:
f(x) = a*x + b

Every regression in the package (threshold extrapolation, subthreshold swing,
Y-function, θ, on-resistance, TLM) goes through :func:`fit_linear`, so the
degenerate-input policy lives in one place:

- all x equal: slope = 0, R² = 0, ``degenerate`` = True (callers treat this as
  "no fit possible"; nothing is divided by zero)
- all y equal (x not degenerate): R² = 1 regardless of slope
"""

from __future__ import annotations

import warnings

import numpy as np
from numba import jit
from typing import Tuple


# ══════════════════════════════════════════════════════════════════════
# Numba-Accelerated Core Functions
# ══════════════════════════════════════════════════════════════════════

@jit(nopython=True)
def linear_model(x: np.ndarray, a: float, b: float) -> np.ndarray:
    """
    Evaluate linear model.

    f(x) = a*x + b
    """
    return a * x + b


@jit(nopython=True)
def fit_linear_least_squares(x: np.ndarray, y: np.ndarray) -> Tuple[float, float, float, float, bool]:
    """
    Fit linear model using the closed-form least squares solution.

    minimize: Σ(y - (a*x + b))²

    Solution:
        a = (n*Σxy - Σx*Σy) / (n*Σx² - (Σx)²)
        b = (Σy - a*Σx) / n

    Parameters
    ----------
    x : np.ndarray
        Independent variable
    y : np.ndarray
        Dependent variable

    Returns
    -------
    a : float
        Slope
    b : float
        Intercept
    r_squared : float
        Coefficient of determination
    stderr : float
        Standard error of regression
    degenerate : bool
        True when all x are equal and no fit is possible
    """
    n = len(x)

    sum_x = 0.0
    sum_y = 0.0
    sum_xx = 0.0
    sum_xy = 0.0

    for i in range(n):
        sum_x += x[i]
        sum_y += y[i]
        sum_xx += x[i] * x[i]
        sum_xy += x[i] * y[i]

    denom = n * sum_xx - sum_x * sum_x

    # Relative test: x may be tiny (1/V) or large (mm) depending on the caller
    if denom <= 1e-12 * n * sum_xx or denom == 0.0:
        a = 0.0
        b = sum_y / n
        return a, b, 0.0, 0.0, True

    a = (n * sum_xy - sum_x * sum_y) / denom
    b = (sum_y - a * sum_x) / n

    mean_y = sum_y / n
    ss_tot = 0.0
    ss_res = 0.0

    for i in range(n):
        y_pred = a * x[i] + b
        ss_tot += (y[i] - mean_y) ** 2
        ss_res += (y[i] - y_pred) ** 2

    if ss_tot > 0.0:
        r_squared = 1.0 - ss_res / ss_tot
        if r_squared < 0.0:
            r_squared = 0.0
    else:
        r_squared = 1.0
    stderr = np.sqrt(ss_res / n)

    return a, b, r_squared, stderr, False


# ══════════════════════════════════════════════════════════════════════
# High-Level Python Interface
# ══════════════════════════════════════════════════════════════════════

def fit_linear(x: np.ndarray, y: np.ndarray) -> dict:
    """
    Fit linear model to data.

    Python wrapper around Numba-accelerated least squares solver.

    Parameters
    ----------
    x : np.ndarray
        Independent variable (e.g., gate voltage)
    y : np.ndarray
        Dependent variable (e.g., sqrt(ID), log10(ID))

    Returns
    -------
    dict
        Fitting results:
        - 'slope': Slope parameter (a)
        - 'intercept': Intercept parameter (b)
        - 'r_squared': Coefficient of determination
        - 'stderr': Standard error of regression
        - 'degenerate': True when all x are equal (slope/R² are sentinels)
        - 'fitted_curve': Fitted values (same length as the finite input)
        - 'n_points': Number of points used

    Raises
    ------
    ValueError
        If x and y differ in length or fewer than 2 points remain.

    Examples
    --------
    >>> vg = np.linspace(2, 10, 50)
    >>> result = fit_linear(vg, 3e-4 * (vg - 1.5))
    >>> round(-result['intercept'] / result['slope'], 6)
    1.5
    """
    if len(x) != len(y):
        raise ValueError("x and y must have same length")

    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)

    valid_mask = np.isfinite(x) & np.isfinite(y)
    if not np.all(valid_mask):
        warnings.warn(f"Removed {np.sum(~valid_mask)} NaN/Inf values before fitting")
        x = x[valid_mask]
        y = y[valid_mask]

    if len(x) < 2:
        raise ValueError("Need at least 2 data points for linear fit")

    a, b, r_squared, stderr, degenerate = fit_linear_least_squares(x, y)

    return {
        'slope': float(a),
        'intercept': float(b),
        'r_squared': float(r_squared),
        'stderr': float(stderr),
        'degenerate': bool(degenerate),
        'fitted_curve': linear_model(x, a, b),
        'n_points': len(x),
    }


def x_intercept(fit: dict) -> float:
    """
    Root of a fitted line, NaN when the slope is zero or the fit is degenerate.
    """
    if fit['degenerate'] or fit['slope'] == 0.0:
        return float('nan')
    return -fit['intercept'] / fit['slope']
