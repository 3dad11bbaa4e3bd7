"""
Result models: per-file analysis results, fused per-sample parameter sets,
Y-function / degradation fits and TLM results.

Per-file results hold numpy series and are frozen dataclasses; everything
that is pure numbers is a frozen pydantic model so it validates its own
invariants (score range, θ range, point counts).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tft_extract.models.measurements import (
    GmSeries,
    MeasurementKind,
    MeasurementSeries,
    SampleIdentity,
)
from tft_extract.models.quantities import Quantity

FitQuality = Literal["Excellent", "Good", "Fair", "Poor", "Failed", "N/A"]
QualityGrade = Literal["A", "B", "C", "D", "F"]
StabilityClass = Literal["Excellent", "Good", "Fair", "Poor", "Very Poor", "N/A"]


# ══════════════════════════════════════════════════════════════════════
# Per-file Analysis
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class AnalysisResult:
    """Parameters extracted from one measurement file."""

    kind: MeasurementKind
    source: str
    parameters: Mapping[str, Quantity]
    sample: Optional[SampleIdentity] = None
    warnings: Tuple[str, ...] = ()
    confidence: float = 1.0
    flags: Optional[str] = None
    series: Optional[MeasurementSeries] = None
    gm: Optional[GmSeries] = None
    forward: Optional[MeasurementSeries] = None
    backward: Optional[MeasurementSeries] = None
    extras: Mapping[str, Any] = field(default_factory=dict)

    def get(self, name: str) -> Quantity:
        """Parameter by name; unmeasurable when the analyzer did not produce it."""
        q = self.parameters.get(name)
        if q is None:
            return Quantity.unmeasurable(f"{name} not produced by {self.kind.value} analysis")
        return q


@dataclass(frozen=True, eq=False)
class SampleGroup:
    """All per-file results for one sample, at most one per measurement kind."""

    identity: SampleIdentity
    results: Mapping[MeasurementKind, AnalysisResult]
    collisions: Tuple[str, ...] = ()

    def get(self, kind: MeasurementKind) -> Optional[AnalysisResult]:
        return self.results.get(kind)

    @property
    def kinds(self) -> List[MeasurementKind]:
        return sorted(self.results, key=lambda k: k.value)


# ══════════════════════════════════════════════════════════════════════
# Mobility and Degradation Fits
# ══════════════════════════════════════════════════════════════════════

class YFunctionResult(BaseModel):
    """Outcome of the Y-function low-field mobility extraction."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    mu0: float = Field(default=0.0, ge=0.0, description="Low-field mobility (cm²/V·s); 0 on failure")
    quality: FitQuality = "Poor"
    r_squared: Optional[float] = None
    slope: Optional[float] = None
    data_points: int = 0
    error: Optional[str] = None
    method: str = "Y-function"

    @property
    def succeeded(self) -> bool:
        return self.mu0 > 0 and self.quality not in ("Poor", "Failed")


class ThetaResult(BaseModel):
    """Outcome of the mobility-degradation factor extraction."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    theta: float = Field(default=0.0, ge=0.0, description="θ (V⁻¹); 0 when not measurable")
    method: str = "Calculated"
    error: Optional[str] = None
    data_points: int = 0
    valid_vg_points: int = 0
    total_points: int = 0

    @property
    def succeeded(self) -> bool:
        return self.theta > 0 and self.error is None


# ══════════════════════════════════════════════════════════════════════
# Fused per-sample Parameters
# ══════════════════════════════════════════════════════════════════════

class QualityAssessment(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    score: int = Field(..., ge=0, le=100)
    grade: QualityGrade
    issues: Tuple[str, ...] = ()


class FusedParameterSet(BaseModel):
    """
    Sample-level parameter set fused from up to four measurement kinds.

    Recomputed wholesale whenever a contributing input changes; never
    patched field by field.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    sample: str = Field(..., min_length=1)

    vth: Quantity
    ss: Quantity
    dit: Quantity
    gm_max: Quantity
    mu_fe: Quantity
    mu0: Quantity
    theta: Quantity
    mu_eff: Quantity
    ron: Quantity
    ion: Quantity
    ioff: Quantity
    on_off_ratio: Quantity
    delta_vth: Quantity
    vg_at_gm_max: Quantity
    vds_linear: Quantity

    stability: StabilityClass = "N/A"
    y_function_quality: FitQuality = "N/A"
    quality: QualityAssessment

    data_sources: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    ss_range: Optional[Tuple[float, float]] = None

    @field_validator("theta")
    @classmethod
    def _theta_in_range(cls, v: Quantity) -> Quantity:
        if v.is_available and not (0.0 < v.value <= 2.0):
            raise ValueError(f"θ must lie in (0, 2] V⁻¹, got {v.value}")
        return v


# ══════════════════════════════════════════════════════════════════════
# TLM
# ══════════════════════════════════════════════════════════════════════

class TLMMeasurement(BaseModel):
    """Resistance extracted from one worksheet at one pad distance."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    sheet_name: str
    distance_mm: float = Field(..., gt=0)
    resistance: float
    r_squared: Optional[float] = None
    n_points: int = 0

    @property
    def conductance(self) -> float:
        return 1.0 / self.resistance if self.resistance not in (0.0, float("inf")) else 0.0

    @property
    def is_valid(self) -> bool:
        return self.resistance == self.resistance and abs(self.resistance) != float("inf")


class TLMParameters(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    rc: float = Field(..., description="Contact resistance (Ω)")
    rsh: float = Field(..., description="Sheet resistance (Ω/sq)")
    lt_cm: float = Field(..., ge=0, description="Transfer length (cm)")
    rho_c: float = Field(..., description="Specific contact resistivity (Ω·cm²)")
    r_squared: float
    slope: float
    intercept: float
    n_points: int = Field(..., ge=2)


class TLMSampleResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    file_name: str
    sample_name: str
    measurements: Tuple[TLMMeasurement, ...]
    parameters: TLMParameters
    skipped_sheets: Tuple[str, ...] = ()


class TLMBatchResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    contact_width_mm: float = Field(..., gt=0)
    distance_step_mm: float = Field(..., gt=0)
    results: Tuple[TLMSampleResult, ...] = ()
    failures: Dict[str, str] = Field(default_factory=dict)
    timestamp: datetime
