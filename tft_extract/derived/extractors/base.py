"""
Base class for measurement analyzers.

All analyzers must inherit from MeasurementAnalyzer and implement the
abstract members to declare which measurement kind they handle and how to
turn one parsed table into an AnalysisResult.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Optional

import numpy as np
import polars as pl

from tft_extract.constants import MIN_CURRENT_A
from tft_extract.core.errors import MalformedInputError
from tft_extract.derived.columns import ColumnMatch, resolve_columns
from tft_extract.models.measurements import DeviceGeometry, MeasurementKind, MeasurementSeries
from tft_extract.models.results import AnalysisResult


class MeasurementAnalyzer(ABC):
    """
    Abstract base class for all measurement analyzers.

    Analyzers compute a per-file parameter set from one measurement table.
    Each analyzer handles exactly one measurement kind and never raises for
    weak data: missing or implausible parameters come back as unmeasurable
    Quantities with a reason.

    Subclasses must implement:
    - kind: MeasurementKind this analyzer handles
    - analyze: Core extraction logic

    Example
    -------
    >>> class OnCurrentAnalyzer(MeasurementAnalyzer):
    ...     @property
    ...     def kind(self) -> MeasurementKind:
    ...         return MeasurementKind.IDVG_LINEAR
    ...
    ...     def analyze(self, table, geometry, source):
    ...         series, matches = self.series_from_table(table)
    ...         ion = Quantity.measured(float(series.id.max()), "A")
    ...         return AnalysisResult(self.kind, source, {"ion": ion}, series=series)
    """

    # ═══════════════════════════════════════════════════════════════════
    # Abstract Members (Must be implemented by subclasses)
    # ═══════════════════════════════════════════════════════════════════

    @property
    @abstractmethod
    def kind(self) -> MeasurementKind:
        """Measurement kind this analyzer handles."""
        pass

    @abstractmethod
    def analyze(
        self,
        table: pl.DataFrame,
        geometry: DeviceGeometry,
        source: str,
    ) -> AnalysisResult:
        """
        Extract parameters from a single measurement table.

        Parameters
        ----------
        table : pl.DataFrame
            Parsed measurement; column names are the instrument header labels
        geometry : DeviceGeometry
            Channel geometry in metres
        source : str
            File/sheet name the table came from

        Returns
        -------
        AnalysisResult
            Parameters keyed by name, each a Quantity

        Raises
        ------
        MalformedInputError
            If the table has no rows or the required columns cannot be found
        """
        pass

    # ═══════════════════════════════════════════════════════════════════
    # Helpers shared by subclasses
    # ═══════════════════════════════════════════════════════════════════

    def can_analyze(self, kind: MeasurementKind) -> bool:
        return kind == self.kind

    def series_from_table(
        self,
        table: pl.DataFrame,
    ) -> tuple[MeasurementSeries, Dict[str, Optional[ColumnMatch]]]:
        """
        Build a deduplicated, sorted series from a gate-sweep table.

        ID is taken as |ID| with zero/missing values floored at 1e-12 A; VD as
        |VD|. Rows with a missing gate voltage are dropped.
        """
        if table.height == 0:
            raise MalformedInputError(f"{self.kind.value} table has no data rows")

        matches = resolve_columns(table.columns)
        if matches["vg"] is None or matches["id"] is None:
            raise MalformedInputError(
                f"{self.kind.value} table needs at least 4 columns or labelled VG/ID columns, "
                f"got {table.columns}"
            )

        vg = column_values(table, matches["vg"].index)
        id_ = floor_current(column_values(table, matches["id"].index))
        vd = (
            np.abs(np.nan_to_num(column_values(table, matches["vd"].index), nan=0.0))
            if matches["vd"] is not None
            else np.zeros(table.height)
        )
        ig = column_values(table, matches["ig"].index) if matches["ig"] is not None else None
        gm = column_values(table, matches["gm"].index) if matches["gm"] is not None else None

        series = MeasurementSeries.from_arrays(self.kind, vg, id_, vd, ig=ig, gm_measured=gm)
        if len(series) == 0:
            raise MalformedInputError(f"{self.kind.value} table has no finite gate-voltage values")
        return series, matches

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind='{self.kind.value}')"


# ══════════════════════════════════════════════════════════════════════
# Helper Functions for Analyzers
# ══════════════════════════════════════════════════════════════════════

def column_values(table: pl.DataFrame, index: int) -> np.ndarray:
    """
    Column by position as float64, with unparseable cells as NaN.

    Examples
    --------
    >>> vg = column_values(measurement, 3)
    """
    col = table.to_series(index)
    return col.cast(pl.Float64, strict=False).to_numpy().astype(np.float64)


def floor_current(current: np.ndarray) -> np.ndarray:
    """|I| with zeros and NaNs replaced by the 1e-12 A floor."""
    out = np.abs(np.asarray(current, dtype=np.float64))
    out[~np.isfinite(out) | (out == 0.0)] = MIN_CURRENT_A
    return out


def compute_confidence(
    checks: Dict[str, bool],
    penalties: Dict[str, float]
) -> float:
    """
    Compute confidence score from quality checks.

    Starts at 1.0 and multiplies by penalty for each failed check.

    Parameters
    ----------
    checks : Dict[str, bool]
        Dictionary of check name -> passed (True/False)
    penalties : Dict[str, float]
        Dictionary of check name -> penalty multiplier (e.g., 0.7 = 30% penalty)

    Returns
    -------
    float
        Confidence score (0.0-1.0)

    Examples
    --------
    >>> checks = {"GM_COMPUTED": False, "COLUMNS_LABELLED": True}
    >>> penalties = {"GM_COMPUTED": 0.9, "COLUMNS_LABELLED": 0.5}
    >>> compute_confidence(checks, penalties)
    0.9
    """
    confidence = 1.0
    for check_name, passed in checks.items():
        if not passed and check_name in penalties:
            confidence *= penalties[check_name]
    return max(0.0, min(1.0, confidence))


def build_flags(checks: Dict[str, bool]) -> Optional[str]:
    """
    Build comma-separated flag string from failed checks.

    Examples
    --------
    >>> build_flags({"FEW_POINTS": False, "COLUMNS_LABELLED": True})
    'FEW_POINTS'
    """
    failed = [name for name, passed in checks.items() if not passed]
    return ",".join(failed) if failed else None
