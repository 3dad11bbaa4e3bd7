"""
Transfer Length Method (TLM) contact analysis.

Each TLM sample is a workbook with one worksheet per pad spacing. For every
worksheet:

1. The pad distance is resolved from the sheet name (exact candidate match,
   then substring match, then a bare number that is a multiple of the step).
2. The I-V sweep is restricted to |V| <= 2 V and fitted as I = V/R + c,
   so R = 1/slope (|slope| < 1e-12 marks an open circuit, R = inf).

The (distance, R) points are then fitted as R_T(d) = 2·Rc + (Rsh/W)·d:

    Rc   = intercept / 2                     (Ω)
    Rsh  = slope · W                         (Ω/sq, W = contact width in mm)
    LT   = |intercept / (2·slope)|           (mm, reported in cm)
    ρc   = Rsh · LT²                         (Ω·cm²)

Sheet names that do not resolve to a distance are skipped. A sample with fewer
than two distinct valid distances raises TLMInsufficientDataError; in batch
mode that fails the one sample only.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np
import polars as pl

from tft_extract.constants import MM_TO_CM
from tft_extract.core.errors import ExtractionError, MalformedInputError, TLMInsufficientDataError
from tft_extract.derived.algorithms.linear_fit import fit_linear
from tft_extract.models.results import (
    TLMBatchResult,
    TLMMeasurement,
    TLMParameters,
    TLMSampleResult,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTACT_WIDTH_MM = 1.0
DEFAULT_DISTANCE_STEP_MM = 0.5
MAX_DISTANCE_MM = 10.0
VOLTAGE_WINDOW = (-2.0, 2.0)
MIN_SLOPE = 1e-12
MIN_IV_POINTS = 2
MULTIPLE_TOLERANCE = 0.01

_NUMBER_RE = re.compile(r"(\d+\.?\d*)")


# ══════════════════════════════════════════════════════════════════════
# Distance Resolution
# ══════════════════════════════════════════════════════════════════════

def _step_decimals(step: float) -> int:
    text = f"{step:.6f}".rstrip("0")
    decimals = len(text.split(".")[1]) if "." in text else 0
    return max(1, decimals)


def generate_potential_distances(step: float = DEFAULT_DISTANCE_STEP_MM, max_distance: float = MAX_DISTANCE_MM) -> List[str]:
    """
    Candidate distance labels step, 2·step, ... up to ``max_distance``.

    >>> generate_potential_distances(0.5, 2.0)
    ['0.5', '1.0', '1.5', '2.0']
    """
    if step <= 0:
        raise ValueError(f"distance step must be positive, got {step}")
    decimals = _step_decimals(step)
    count = int(np.floor(max_distance / step + 1e-9))
    return [f"{i * step:.{decimals}f}" for i in range(1, count + 1)]


def parse_distance_from_sheet_name(sheet_name: str, step: float = DEFAULT_DISTANCE_STEP_MM) -> Optional[float]:
    """
    Pad distance (mm) encoded in a worksheet name, or None.

    Resolution order: exact candidate, candidate substring (longest label
    first), then the first number in the name if it lies in [step, 10] and is
    a multiple of ``step``. Comma decimals are accepted.

    >>> parse_distance_from_sheet_name("1,5mm", 0.5)
    1.5
    >>> parse_distance_from_sheet_name("Summary", 0.5) is None
    True
    """
    candidates = generate_potential_distances(step)
    normalized = str(sheet_name).strip().replace(",", ".")

    for label in candidates:
        if normalized == label:
            return float(label)

    for label in sorted(candidates, key=len, reverse=True):
        if label in normalized:
            return float(label)

    match = _NUMBER_RE.search(normalized)
    if match:
        value = float(match.group(1))
        ratio = value / step
        if abs(ratio - round(ratio)) < MULTIPLE_TOLERANCE and step <= value <= MAX_DISTANCE_MM:
            return value

    return None


# ══════════════════════════════════════════════════════════════════════
# Per-sheet Resistance
# ══════════════════════════════════════════════════════════════════════

def iv_from_table(table: pl.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
    """
    (AV, AI) columns of a TLM worksheet as float arrays.

    Raises
    ------
    MalformedInputError
        If either column is missing.
    """
    by_name = {str(c).strip().upper(): c for c in table.columns}
    if "AV" not in by_name or "AI" not in by_name:
        raise MalformedInputError(f"TLM sheet needs AV and AI columns, got {table.columns}")
    av = table[by_name["AV"]].cast(pl.Float64, strict=False).to_numpy().astype(np.float64)
    ai = table[by_name["AI"]].cast(pl.Float64, strict=False).to_numpy().astype(np.float64)
    return av, ai


def calculate_resistance_from_iv(voltage: np.ndarray, current: np.ndarray) -> Tuple[float, float, int]:
    """
    Two-terminal resistance from an I-V sweep.

    Returns
    -------
    (resistance, r_squared, n_points)
        resistance is NaN with fewer than 2 usable points and inf when the
        fitted conductance is below 1e-12 S.
    """
    voltage = np.asarray(voltage, dtype=np.float64)
    current = np.asarray(current, dtype=np.float64)
    lo, hi = VOLTAGE_WINDOW
    mask = (
        np.isfinite(voltage)
        & np.isfinite(current)
        & (voltage >= lo)
        & (voltage <= hi)
        & (current != 0.0)
    )
    n = int(np.count_nonzero(mask))
    if n < MIN_IV_POINTS:
        return float("nan"), float("nan"), n

    fit = fit_linear(voltage[mask], current[mask])
    if fit['degenerate']:
        return float("nan"), float("nan"), n
    if abs(fit['slope']) < MIN_SLOPE:
        return float("inf"), fit['r_squared'], n
    return 1.0 / fit['slope'], fit['r_squared'], n


# ══════════════════════════════════════════════════════════════════════
# Resistance vs Distance
# ══════════════════════════════════════════════════════════════════════

def calculate_tlm_parameters(
    measurements: List[TLMMeasurement],
    contact_width_mm: float,
    sample: str = "",
) -> TLMParameters:
    """
    Rc, Rsh, LT and ρc from resistance vs pad distance.

    Raises
    ------
    TLMInsufficientDataError
        Fewer than two distinct distances with a finite resistance.
    ExtractionError
        Resistance does not change with distance (LT undefined).
    """
    valid = [m for m in measurements if m.is_valid]
    distances = np.array([m.distance_mm for m in valid], dtype=np.float64)
    if len(np.unique(distances)) < 2:
        raise TLMInsufficientDataError(sample, len(np.unique(distances)))

    resistances = np.array([m.resistance for m in valid], dtype=np.float64)
    fit = fit_linear(distances, resistances)
    slope = fit['slope']
    intercept = fit['intercept']
    if slope == 0.0:
        raise ExtractionError(f"TLM sample '{sample}': resistance does not change with distance")

    rsh = slope * contact_width_mm
    lt_cm = abs(intercept / (2.0 * slope)) * MM_TO_CM

    return TLMParameters(
        rc=intercept / 2.0,
        rsh=rsh,
        lt_cm=lt_cm,
        rho_c=rsh * lt_cm ** 2,
        r_squared=fit['r_squared'],
        slope=slope,
        intercept=intercept,
        n_points=len(valid),
    )


def sample_name_from_file(file_name: str) -> str:
    """Workbook name without its .xls/.xlsx/.csv extension."""
    return re.sub(r"\.(xlsx?|csv)$", "", file_name, flags=re.IGNORECASE)


def analyze_tlm_sample(
    sheets: Mapping[str, pl.DataFrame],
    file_name: str,
    contact_width_mm: float = DEFAULT_CONTACT_WIDTH_MM,
    distance_step_mm: float = DEFAULT_DISTANCE_STEP_MM,
) -> TLMSampleResult:
    """
    Analyze one TLM workbook.

    Parameters
    ----------
    sheets : mapping
        Worksheet name -> I-V table (AV, AI columns)
    file_name : str
        Workbook file name; the sample name is derived from it

    Raises
    ------
    TLMInsufficientDataError
        Fewer than two distinct distances yielded a finite resistance.
    """
    sample_name = sample_name_from_file(file_name)
    measurements: List[TLMMeasurement] = []
    skipped: List[str] = []

    for sheet_name, table in sheets.items():
        distance = parse_distance_from_sheet_name(sheet_name, distance_step_mm)
        if distance is None:
            logger.debug(f"{file_name}: sheet '{sheet_name}' has no distance in its name, skipped")
            skipped.append(sheet_name)
            continue

        try:
            av, ai = iv_from_table(table)
        except MalformedInputError as e:
            logger.warning(f"{file_name}: sheet '{sheet_name}' skipped: {e}")
            skipped.append(sheet_name)
            continue

        resistance, r_squared, n = calculate_resistance_from_iv(av, ai)
        if not np.isfinite(resistance):
            logger.warning(f"{file_name}: sheet '{sheet_name}' ({distance} mm) gave R={resistance}, skipped")
            skipped.append(sheet_name)
            continue

        measurements.append(
            TLMMeasurement(
                sheet_name=sheet_name,
                distance_mm=distance,
                resistance=resistance,
                r_squared=r_squared if np.isfinite(r_squared) else None,
                n_points=n,
            )
        )

    measurements.sort(key=lambda m: m.distance_mm)
    parameters = calculate_tlm_parameters(measurements, contact_width_mm, sample=sample_name)

    logger.info(
        f"{file_name}: {len(measurements)} distances, Rc={parameters.rc:.4g} Ω, "
        f"Rsh={parameters.rsh:.4g} Ω/sq, R²={parameters.r_squared:.4f}"
    )

    return TLMSampleResult(
        file_name=file_name,
        sample_name=sample_name,
        measurements=tuple(measurements),
        parameters=parameters,
        skipped_sheets=tuple(skipped),
    )


def analyze_tlm_batch(
    samples: Mapping[str, Mapping[str, pl.DataFrame]],
    contact_width_mm: float = DEFAULT_CONTACT_WIDTH_MM,
    distance_step_mm: float = DEFAULT_DISTANCE_STEP_MM,
) -> TLMBatchResult:
    """
    Analyze many TLM workbooks; one failing sample never stops the batch.

    Parameters
    ----------
    samples : mapping
        Workbook file name -> {sheet name -> I-V table}
    """
    results: List[TLMSampleResult] = []
    failures: Dict[str, str] = {}

    for i, (file_name, sheets) in enumerate(samples.items(), 1):
        try:
            results.append(analyze_tlm_sample(sheets, file_name, contact_width_mm, distance_step_mm))
        except ExtractionError as e:
            logger.error(f"[{i}/{len(samples)}] TLM analysis failed for {file_name}: {e}")
            failures[file_name] = str(e)

    logger.info(f"TLM batch: {len(results)} analyzed, {len(failures)} failed")

    return TLMBatchResult(
        contact_width_mm=contact_width_mm,
        distance_step_mm=distance_step_mm,
        results=tuple(results),
        failures=failures,
        timestamp=datetime.now(timezone.utc),
    )
