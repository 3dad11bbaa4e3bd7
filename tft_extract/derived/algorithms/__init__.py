"""
Numerical algorithms for parameter extraction.

This module contains the Numba-accelerated regression and differentiation
kernels every extractor builds on, plus the subthreshold-swing fits.
"""

from .linear_fit import fit_linear, x_intercept
from .transconductance import central_difference, transconductance
from .subthreshold import (
    compute_dit,
    evaluate_ss_quality,
    fit_subthreshold_swing,
    suggest_ss_range,
)

__all__ = [
    'fit_linear',
    'x_intercept',
    'central_difference',
    'transconductance',
    'compute_dit',
    'evaluate_ss_quality',
    'fit_subthreshold_swing',
    'suggest_ss_range',
]
