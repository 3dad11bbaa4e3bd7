"""
IDVG-Saturation analyzer: transfer curve at high drain bias.

Provides ID_sat, ID_sat per channel width and gm_max. Vth, SS and Dit are
deliberately not computed here; the linear-region sweep is their source.
"""

from __future__ import annotations

import logging

import numpy as np
import polars as pl

from tft_extract.constants import DEFAULT_VDS_SATURATION
from tft_extract.derived.algorithms.transconductance import transconductance
from tft_extract.derived.columns import resolution_confidence
from tft_extract.derived.extractors.base import MeasurementAnalyzer, build_flags, compute_confidence
from tft_extract.derived.extractors.idvg_linear_extractor import drain_bias, gm_max_quantity
from tft_extract.models.measurements import DeviceGeometry, MeasurementKind
from tft_extract.models.quantities import Quantity
from tft_extract.models.results import AnalysisResult

logger = logging.getLogger(__name__)


class IDVGSaturationAnalyzer(MeasurementAnalyzer):
    """Extract ID_sat, ID_sat/W and gm_max."""

    @property
    def kind(self) -> MeasurementKind:
        return MeasurementKind.IDVG_SATURATION

    def analyze(
        self,
        table: pl.DataFrame,
        geometry: DeviceGeometry,
        source: str,
    ) -> AnalysisResult:
        series, matches = self.series_from_table(table)
        gm, gm_method = transconductance(series)

        vds = drain_bias(series, DEFAULT_VDS_SATURATION)
        id_sat_value = float(np.max(series.id))
        id_sat = Quantity.measured(id_sat_value, "A", method="max_abs_id")
        width_mm = geometry.W * 1e3
        id_sat_per_width = Quantity.measured(id_sat_value / width_mm, "A/mm", method="id_sat_over_width")
        gm_max, vg_at_gm_max = gm_max_quantity(gm, gm_method)

        checks = {
            "COLUMNS_LABELLED": resolution_confidence(matches, ("vg", "id", "vd")) >= 0.8,
            "ENOUGH_POINTS": len(series) >= 20,
            "GM_FOUND": gm_max.is_available,
        }
        penalties = {"COLUMNS_LABELLED": 0.7, "ENOUGH_POINTS": 0.7, "GM_FOUND": 0.5}

        logger.debug(f"{source}: ID_sat={id_sat}, gm_max={gm_max}, VDS={vds}")

        return AnalysisResult(
            kind=self.kind,
            source=source,
            parameters={
                "vds": vds,
                "id_sat": id_sat,
                "id_sat_per_width": id_sat_per_width,
                "gm_max": gm_max,
                "vg_at_gm_max": vg_at_gm_max,
            },
            confidence=compute_confidence(checks, penalties),
            flags=build_flags(checks),
            series=series,
            gm=gm,
            extras={"gm_method": gm_method},
        )
