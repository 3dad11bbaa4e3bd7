"""
Measurement analyzers and fit-based extractors.

Each analyzer implements the MeasurementAnalyzer interface and turns one
measurement table into an AnalysisResult.

Available analyzers:
- IDVDAnalyzer: Ron from output curves
- IDVGLinearAnalyzer: Ion/Ioff, gm_max, μFE, Vth, SS, Dit
- IDVGSaturationAnalyzer: ID_sat, ID_sat/W, gm_max
- HysteresisAnalyzer: forward/backward Vth, ΔVth, stability

Fit-based extractors used during fusion:
- YFunctionMobilityExtractor: μ0
- DegradationFactorExtractor: θ
"""

from typing import Dict

from tft_extract.models.measurements import MeasurementKind

from .base import MeasurementAnalyzer
from .degradation_extractor import DegradationFactorExtractor
from .hysteresis_extractor import HysteresisAnalyzer
from .idvd_extractor import IDVDAnalyzer
from .idvg_linear_extractor import IDVGLinearAnalyzer
from .idvg_saturation_extractor import IDVGSaturationAnalyzer
from .mobility_extractor import YFunctionMobilityExtractor


def default_analyzers() -> Dict[MeasurementKind, MeasurementAnalyzer]:
    """One analyzer instance per transistor measurement kind."""
    analyzers = [IDVDAnalyzer(), IDVGLinearAnalyzer(), IDVGSaturationAnalyzer(), HysteresisAnalyzer()]
    return {a.kind: a for a in analyzers}


__all__ = [
    "MeasurementAnalyzer",
    "DegradationFactorExtractor",
    "HysteresisAnalyzer",
    "IDVDAnalyzer",
    "IDVGLinearAnalyzer",
    "IDVGSaturationAnalyzer",
    "YFunctionMobilityExtractor",
    "default_analyzers",
]
