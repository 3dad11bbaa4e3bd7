"""
Tagged numeric results for extracted device parameters.

Every extracted parameter is carried as a Quantity rather than a bare float,
so downstream scoring and display can tell a measured value from an assumed
one and can report why a value is absent.

Status values
-------------
- measured: value came straight out of a fit or formula on measured data
- estimated: value is a fallback or a corrected value (``method`` says which)
- unmeasurable: no value; ``reason`` says why
"""

from __future__ import annotations

import math
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

QuantityStatus = Literal["measured", "estimated", "unmeasurable"]


class Quantity(BaseModel):
    """
    A single physical value with unit, provenance and confidence.

    Example
    -------
    >>> vth = Quantity.measured(1.25, "V", method="linear_extrapolation")
    >>> vth.is_available
    True
    >>> Quantity.unmeasurable("no IDVD measurement", unit="Ω").value is None
    True
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: QuantityStatus = Field(..., description="measured, estimated or unmeasurable")
    value: Optional[float] = Field(default=None, description="Numeric value in `unit`")
    unit: str = Field(default="", max_length=50, description="Physical unit (V, S, cm²/V·s, ...)")
    method: Optional[str] = Field(default=None, max_length=200, description="Extraction or fallback method")
    reason: Optional[str] = Field(default=None, max_length=500, description="Why the value is absent or estimated")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_value_matches_status(self) -> "Quantity":
        if self.status == "unmeasurable":
            if self.value is not None:
                raise ValueError("unmeasurable quantity cannot carry a value")
        else:
            if self.value is None or not math.isfinite(self.value):
                raise ValueError(f"{self.status} quantity needs a finite value, got {self.value!r}")
        return self

    # ═══════════════════════════════════════════════════════════════════
    # Constructors
    # ═══════════════════════════════════════════════════════════════════

    @classmethod
    def measured(
        cls,
        value: float,
        unit: str = "",
        method: Optional[str] = None,
        confidence: float = 1.0,
    ) -> "Quantity":
        return cls(status="measured", value=float(value), unit=unit, method=method, confidence=confidence)

    @classmethod
    def estimated(
        cls,
        value: float,
        unit: str = "",
        method: Optional[str] = None,
        reason: Optional[str] = None,
        confidence: float = 0.5,
    ) -> "Quantity":
        return cls(
            status="estimated",
            value=float(value),
            unit=unit,
            method=method,
            reason=reason,
            confidence=confidence,
        )

    @classmethod
    def unmeasurable(cls, reason: str, unit: str = "") -> "Quantity":
        return cls(status="unmeasurable", value=None, unit=unit, reason=reason, confidence=0.0)

    # ═══════════════════════════════════════════════════════════════════
    # Accessors
    # ═══════════════════════════════════════════════════════════════════

    @property
    def is_available(self) -> bool:
        return self.status != "unmeasurable"

    @property
    def is_measured(self) -> bool:
        return self.status == "measured"

    def value_or(self, default: float) -> float:
        """Return the value, or ``default`` when unmeasurable."""
        return self.value if self.value is not None else default

    def __str__(self) -> str:
        if self.value is None:
            return "N/A"
        text = f"{self.value:.4g} {self.unit}".strip()
        if self.status == "estimated":
            text += " (est.)"
        return text
