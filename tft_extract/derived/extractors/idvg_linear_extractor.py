"""
IDVG-Linear analyzer: transfer curve at low drain bias.

This is the designated source for Vth, SS and Dit. It also provides the
on/off currents, gm_max and the field-effect mobility:

    μFE = L / (W · Cox · VDS) · gm_max          (×1e4 for m² -> cm²)
    Vth = VG(gm_max) - ID(gm_max) / gm_max       (linear extrapolation at gm_max)
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

import numpy as np
import polars as pl

from tft_extract.constants import DEFAULT_VDS_LINEAR, IOFF_FLOOR_COUNT, M2_TO_CM2
from tft_extract.derived.algorithms.subthreshold import (
    dit_quantity,
    fit_subthreshold_swing,
    subthreshold_swing_quantity,
)
from tft_extract.derived.algorithms.transconductance import transconductance
from tft_extract.derived.columns import resolution_confidence
from tft_extract.derived.extractors.base import MeasurementAnalyzer, build_flags, compute_confidence
from tft_extract.models.measurements import DeviceGeometry, GmSeries, MeasurementKind, MeasurementSeries
from tft_extract.models.quantities import Quantity
from tft_extract.models.results import AnalysisResult

logger = logging.getLogger(__name__)

MOBILITY_UNIT = "cm²/V·s"
ID_LOOKUP_TOLERANCE_V = 0.1


# ══════════════════════════════════════════════════════════════════════
# Shared Formulas (also used by the saturation analyzer and fusion)
# ══════════════════════════════════════════════════════════════════════

def field_effect_mobility(gm_max: float, geometry: DeviceGeometry, vds: float) -> Optional[float]:
    """μFE in cm²/V·s, or None when gm_max or VDS is not positive."""
    if not gm_max > 0 or not vds > 0:
        return None
    return geometry.L / (geometry.W * geometry.cox * vds) * gm_max * M2_TO_CM2


def drain_bias(series: MeasurementSeries, default: float) -> Quantity:
    """|VD| of the first row, or ``default`` as an estimate when it is 0/missing."""
    vd0 = abs(float(series.vd[0])) if len(series) else 0.0
    if np.isfinite(vd0) and vd0 > 0:
        return Quantity.measured(vd0, "V", method="first_row")
    return Quantity.estimated(
        default, "V", method="default", reason=f"drain voltage not recorded, assuming {default} V"
    )


def gm_max_quantity(gm: GmSeries, method: str) -> Tuple[Quantity, Quantity]:
    """(gm_max, VG at gm_max) as Quantities."""
    peak = gm.max_point()
    if peak is None or not peak[1] > 0:
        reason = "fewer than 3 sweep points" if peak is None else "gm is zero everywhere"
        return Quantity.unmeasurable(reason, "S"), Quantity.unmeasurable(reason, "V")
    vg, gm_max = peak
    return Quantity.measured(gm_max, "S", method=method), Quantity.measured(vg, "V", method=method)


def current_at(series: MeasurementSeries, vg: float, tolerance: float = ID_LOOKUP_TOLERANCE_V) -> Optional[float]:
    """ID at the sweep point nearest ``vg`` if within ``tolerance``."""
    if len(series) == 0:
        return None
    i = int(np.argmin(np.abs(series.vg - vg)))
    if abs(series.vg[i] - vg) < tolerance:
        return float(series.id[i])
    return None


def off_current(series: MeasurementSeries, count: int = IOFF_FLOOR_COUNT) -> Optional[float]:
    """Mean of the ``count`` smallest positive |ID| values."""
    positive = np.sort(series.id[series.id > 0])
    if positive.size == 0:
        return None
    return float(np.mean(positive[:count]))


# ══════════════════════════════════════════════════════════════════════
# Analyzer
# ══════════════════════════════════════════════════════════════════════

class IDVGLinearAnalyzer(MeasurementAnalyzer):
    """
    Extract Ion, Ioff, Ion/Ioff, gm_max, μFE, Vth, SS and Dit.

    Parameters
    ----------
    ss_range : tuple of float, optional
        Custom VG window (V) for the subthreshold fit. Default uses the
        log10(ID) in (-10, -6) current window.
    """

    def __init__(self, ss_range: Optional[Tuple[float, float]] = None):
        self.ss_range = ss_range

    @property
    def kind(self) -> MeasurementKind:
        return MeasurementKind.IDVG_LINEAR

    def analyze(
        self,
        table: pl.DataFrame,
        geometry: DeviceGeometry,
        source: str,
    ) -> AnalysisResult:
        series, matches = self.series_from_table(table)
        gm, gm_method = transconductance(series)
        params = self.extract_parameters(series, gm, gm_method, geometry, self.ss_range)

        checks = {
            "COLUMNS_LABELLED": resolution_confidence(matches, ("vg", "id", "vd")) >= 0.8,
            "ENOUGH_POINTS": len(series) >= 20,
            "SS_FITTED": params["ss"].is_available,
            "VTH_FOUND": params["vth"].is_available,
        }
        penalties = {"COLUMNS_LABELLED": 0.7, "ENOUGH_POINTS": 0.7, "SS_FITTED": 0.9, "VTH_FOUND": 0.5}

        logger.debug(
            f"{source}: {len(series)} points, gm from {gm_method}, "
            f"gm_max={params['gm_max']}, Vth={params['vth']}, SS={params['ss']}"
        )

        return AnalysisResult(
            kind=self.kind,
            source=source,
            parameters=params,
            confidence=compute_confidence(checks, penalties),
            flags=build_flags(checks),
            series=series,
            gm=gm,
            extras={"gm_method": gm_method},
        )

    @staticmethod
    def extract_parameters(
        series: MeasurementSeries,
        gm: GmSeries,
        gm_method: str,
        geometry: DeviceGeometry,
        ss_range: Optional[Tuple[float, float]] = None,
    ) -> Dict[str, Quantity]:
        """Parameter set of a linear-region sweep whose gm is already known."""
        vds = drain_bias(series, DEFAULT_VDS_LINEAR)

        ion = Quantity.measured(float(np.max(series.id)), "A", method="max_abs_id")
        ioff_value = off_current(series)
        if ioff_value is None:
            ioff = Quantity.unmeasurable("no positive drain current", "A")
            ratio = Quantity.unmeasurable("Ioff not available")
        else:
            ioff = Quantity.measured(ioff_value, "A", method=f"mean_of_{IOFF_FLOOR_COUNT}_smallest")
            ratio = Quantity.measured(ion.value / ioff_value, "", method="ion_over_ioff")

        gm_max, vg_at_gm_max = gm_max_quantity(gm, gm_method)

        mu_fe = Quantity.unmeasurable("gm_max not available", MOBILITY_UNIT)
        vth = Quantity.unmeasurable("gm_max not available", "V")
        if gm_max.is_available:
            mu = field_effect_mobility(gm_max.value, geometry, vds.value)
            if mu is not None:
                mu_fe = (
                    Quantity.measured(mu, MOBILITY_UNIT, method="gm_max")
                    if vds.is_measured
                    else Quantity.estimated(mu, MOBILITY_UNIT, method="gm_max", reason=vds.reason)
                )
            id_at = current_at(series, vg_at_gm_max.value)
            if id_at is None:
                vth = Quantity.unmeasurable("no drain current recorded near VG at gm_max", "V")
            else:
                vth = Quantity.measured(
                    vg_at_gm_max.value - id_at / gm_max.value, "V", method="linear_extrapolation_at_gm_max"
                )

        ss = subthreshold_swing_quantity(fit_subthreshold_swing(series, ss_range))
        dit = dit_quantity(ss, geometry)

        return {
            "vds": vds,
            "ion": ion,
            "ioff": ioff,
            "on_off_ratio": ratio,
            "gm_max": gm_max,
            "vg_at_gm_max": vg_at_gm_max,
            "mu_fe": mu_fe,
            "vth": vth,
            "ss": ss,
            "dit": dit,
        }
