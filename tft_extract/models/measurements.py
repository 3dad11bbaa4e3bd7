"""
Measurement data model: sweeps, transconductance series, device geometry.

Series are immutable once built. Derived columns (log10|ID|, sqrt|ID|) are
computed lazily on first access and never passed in at construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Iterator, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tft_extract.constants import EPSILON_0, EPSILON_R_SIO2


class MeasurementKind(str, Enum):
    """Kind of electrical measurement a file/sheet holds."""

    IDVD = "IDVD"
    IDVG_LINEAR = "IDVG-Linear"
    IDVG_SATURATION = "IDVG-Saturation"
    IDVG_HYSTERESIS = "IDVG-Hysteresis"
    TLM = "TLM"

    @property
    def sweep_key(self) -> str:
        """Primary sweep variable: VD for output curves, VG otherwise."""
        return "vd" if self is MeasurementKind.IDVD else "vg"


# ══════════════════════════════════════════════════════════════════════
# Sweep Data
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SweepPoint:
    """One row of a measurement."""

    vg: float
    id: float
    vd: float
    ig: Optional[float] = None

    @property
    def log_id(self) -> float:
        return float(np.log10(abs(self.id))) if self.id != 0 else float("-inf")

    @property
    def sqrt_id(self) -> float:
        return float(np.sqrt(abs(self.id)))


@dataclass(frozen=True, eq=False)
class MeasurementSeries:
    """
    Ordered sweep for one file/sheet.

    Always build through :meth:`from_arrays`, which enforces the invariant:
    deduplicated by the sweep key (first occurrence wins) and sorted ascending
    by it.
    """

    kind: MeasurementKind
    vg: np.ndarray
    id: np.ndarray
    vd: np.ndarray
    ig: Optional[np.ndarray] = None
    gm_measured: Optional[np.ndarray] = None

    @classmethod
    def from_arrays(
        cls,
        kind: MeasurementKind,
        vg: np.ndarray,
        id: np.ndarray,
        vd: np.ndarray,
        ig: Optional[np.ndarray] = None,
        gm_measured: Optional[np.ndarray] = None,
    ) -> "MeasurementSeries":
        vg = np.asarray(vg, dtype=np.float64)
        id = np.asarray(id, dtype=np.float64)
        vd = np.asarray(vd, dtype=np.float64)
        if not (len(vg) == len(id) == len(vd)):
            raise ValueError("vg, id and vd must have the same length")

        key = vd if kind.sweep_key == "vd" else vg
        finite = np.isfinite(key)
        row_idx = np.flatnonzero(finite)

        # np.unique returns sorted keys with the index of the first occurrence
        _, first = np.unique(key[finite], return_index=True)
        keep = row_idx[first]

        def _take(arr: Optional[np.ndarray]) -> Optional[np.ndarray]:
            if arr is None:
                return None
            out = np.asarray(arr, dtype=np.float64)[keep]
            out.setflags(write=False)
            return out

        return cls(
            kind=kind,
            vg=_take(vg),
            id=_take(id),
            vd=_take(vd),
            ig=_take(ig),
            gm_measured=_take(gm_measured),
        )

    def __len__(self) -> int:
        return len(self.vg)

    @cached_property
    def log_id(self) -> np.ndarray:
        with np.errstate(divide="ignore"):
            return np.log10(np.abs(self.id))

    @cached_property
    def sqrt_id(self) -> np.ndarray:
        return np.sqrt(np.abs(self.id))

    def points(self) -> Iterator[SweepPoint]:
        for i in range(len(self)):
            ig = float(self.ig[i]) if self.ig is not None else None
            yield SweepPoint(float(self.vg[i]), float(self.id[i]), float(self.vd[i]), ig)


@dataclass(frozen=True, eq=False)
class GmSeries:
    """Transconductance vs gate voltage."""

    vg: np.ndarray
    gm: np.ndarray

    def __len__(self) -> int:
        return len(self.vg)

    def max_point(self) -> Optional[Tuple[float, float]]:
        """(VG, gm) at the transconductance maximum, or None when empty."""
        if len(self.gm) == 0:
            return None
        i = int(np.argmax(self.gm))
        return float(self.vg[i]), float(self.gm[i])

    def lookup(self, vg: float, tolerance: float = 0.05) -> Optional[float]:
        """gm at the nearest gate voltage within ``tolerance``, else None."""
        if len(self.vg) == 0:
            return None
        i = int(np.argmin(np.abs(self.vg - vg)))
        if abs(self.vg[i] - vg) < tolerance:
            return float(self.gm[i])
        return None


# ══════════════════════════════════════════════════════════════════════
# Device Geometry
# ══════════════════════════════════════════════════════════════════════

def oxide_capacitance(tox: float, epsilon_r: float = EPSILON_R_SIO2) -> float:
    """
    Gate-oxide capacitance per unit area, Cox = ε0·εr/tox (F/m²).

    Parameters
    ----------
    tox : float
        Oxide thickness in metres, > 0
    epsilon_r : float
        Relative permittivity of the dielectric (default SiO2, 3.9)
    """
    if not tox > 0 or not epsilon_r > 0:
        raise ValueError(f"tox and epsilon_r must be positive, got tox={tox}, epsilon_r={epsilon_r}")
    return EPSILON_0 * epsilon_r / tox


class DeviceGeometry(BaseModel):
    """
    Channel geometry and gate dielectric, all lengths in metres.

    Example
    -------
    >>> geom = DeviceGeometry.from_user_units(width_um=100, length_um=10, tox_nm=20)
    >>> round(geom.cox, 6)
    0.001727
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    W: float = Field(..., gt=0, description="Channel width (m)")
    L: float = Field(..., gt=0, description="Channel length (m)")
    tox: float = Field(..., gt=0, description="Gate oxide thickness (m)")
    epsilon_r: float = Field(default=EPSILON_R_SIO2, gt=0, description="Relative permittivity")

    @property
    def cox(self) -> float:
        """Gate capacitance per unit area (F/m²)."""
        return oxide_capacitance(self.tox, self.epsilon_r)

    @classmethod
    def from_user_units(
        cls,
        width_um: float,
        length_um: float,
        tox_nm: float,
        epsilon_r: float = EPSILON_R_SIO2,
    ) -> "DeviceGeometry":
        return cls(W=width_um * 1e-6, L=length_um * 1e-6, tox=tox_nm * 1e-9, epsilon_r=epsilon_r)


class SampleIdentity(BaseModel):
    """Join key that ties per-file results to one physical sample."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)

    @field_validator("name", mode="before")
    @classmethod
    def _strip(cls, v: str) -> str:
        if not isinstance(v, str):
            raise TypeError("sample name must be a string")
        v = v.strip()
        if not v:
            raise ValueError("sample name cannot be empty")
        return v

    def __str__(self) -> str:
        return self.name
