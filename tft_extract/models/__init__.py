"""Data model for TFT/TLM parameter extraction."""

from .quantities import Quantity
from .measurements import (
    DeviceGeometry,
    GmSeries,
    MeasurementKind,
    MeasurementSeries,
    SampleIdentity,
    SweepPoint,
    oxide_capacitance,
)
from .results import (
    AnalysisResult,
    FusedParameterSet,
    QualityAssessment,
    SampleGroup,
    ThetaResult,
    TLMBatchResult,
    TLMMeasurement,
    TLMParameters,
    TLMSampleResult,
    YFunctionResult,
)

__all__ = [
    "Quantity",
    "DeviceGeometry",
    "GmSeries",
    "MeasurementKind",
    "MeasurementSeries",
    "SampleIdentity",
    "SweepPoint",
    "oxide_capacitance",
    "AnalysisResult",
    "FusedParameterSet",
    "QualityAssessment",
    "SampleGroup",
    "ThetaResult",
    "TLMBatchResult",
    "TLMMeasurement",
    "TLMParameters",
    "TLMSampleResult",
    "YFunctionResult",
]
