"""
Synthetic device data shared by the test suite.

The reference transistor (W = 100 µm, L = 1 µm, tox = 20 nm, SiO2) has
Vth = 1 V, SS = 0.25 V/decade below threshold and, above threshold, the
linear-region model

    ID = β·Vgt / (1 + θ·Vgt),   β = (W/L)·Cox·μ0·VDS

with μ0 = 10 cm²/V·s, θ = 0.1 V⁻¹ and VDS = 0.1 V.
"""

import numpy as np
import polars as pl
import pytest

from tft_extract.models.measurements import DeviceGeometry

VTH = 1.0
SS = 0.25
MU0_CM2 = 10.0
THETA = 0.1
VDS_LINEAR = 0.1
I_AT_VTH = 1e-7
FLOOR = 1e-12

GEOMETRY = DeviceGeometry.from_user_units(width_um=100, length_um=1, tox_nm=20)


def beta(geometry=GEOMETRY, mu0_cm2=MU0_CM2, vds=VDS_LINEAR):
    return geometry.W / geometry.L * geometry.cox * (mu0_cm2 * 1e-4) * vds


def gate_voltages(start=-5.0, stop=10.0, n=151):
    return np.round(np.linspace(start, stop, n), 6)


def transfer_current(vg, vth=VTH, ss=SS, theta=THETA, vds=VDS_LINEAR, mu0_cm2=MU0_CM2):
    """Subthreshold exponential up to Vth, degraded linear current above it."""
    b = beta(mu0_cm2=mu0_cm2, vds=vds)
    vgt = vg - vth
    sub = np.maximum(I_AT_VTH * 10.0 ** (vgt / ss), FLOOR)
    on = b * vgt / (1.0 + theta * np.maximum(vgt, 0.0))
    return np.where(vg <= vth, sub, on)


def transfer_table(vg=None, vds=VDS_LINEAR, **kwargs):
    """Instrument-style IDVG table: DrainI, DrainV, GateI, GateV."""
    vg = gate_voltages() if vg is None else vg
    id_ = transfer_current(vg, vds=vds, **kwargs)
    return pl.DataFrame({
        "DrainI": id_,
        "DrainV": np.full(len(vg), vds),
        "GateI": np.full(len(vg), 1e-13),
        "GateV": vg,
    })


def output_table(gate_voltages_v=(5.0, 10.0), ron=(20000.0, 5000.0)):
    """IDVD table, one 5-column block per gate voltage, ohmic ID = VD / R."""
    vd = np.linspace(0.0, 10.0, 21)
    columns = {}
    for i, (vg, r) in enumerate(zip(gate_voltages_v, ron)):
        suffix = "" if i == 0 else f"_{i}"
        columns[f"DrainI{suffix}"] = vd / r
        columns[f"DrainV{suffix}"] = vd
        columns[f"GateI{suffix}"] = np.full(len(vd), 1e-13)
        columns[f"GateV{suffix}"] = np.full(len(vd), vg)
        columns[f"Time{suffix}"] = np.arange(len(vd), dtype=float)
    return pl.DataFrame(columns)


def hysteresis_table(vth_forward=1.0, vth_backward=1.8, k=1e-6):
    """Round-trip sweep 0 -> 10 -> 0 V with square-law current on each branch."""
    up = np.round(np.linspace(0.0, 10.0, 21), 6)
    down = up[::-1][1:]

    def square_law(vg, vth):
        return np.where(vg > vth, k * (vg - vth) ** 2, FLOOR)

    vg = np.concatenate([up, down])
    id_ = np.concatenate([square_law(up, vth_forward), square_law(down, vth_backward)])
    return pl.DataFrame({
        "DrainI": id_,
        "DrainV": np.full(len(vg), VDS_LINEAR),
        "GateI": np.full(len(vg), 1e-13),
        "GateV": vg,
    })


def tlm_sheet(resistance, v_max=3.0, n=61):
    av = np.linspace(-v_max, v_max, n)
    return pl.DataFrame({"AV": av, "AI": av / resistance})


@pytest.fixture
def geometry():
    return GEOMETRY


@pytest.fixture
def linear_table():
    return transfer_table()


@pytest.fixture
def saturation_table():
    return transfer_table(vds=20.0)


@pytest.fixture
def idvd_table():
    return output_table()


@pytest.fixture
def hys_table():
    return hysteresis_table()


@pytest.fixture
def tlm_sheets():
    """Rc = 10 Ω, Rsh/W = 100 Ω/mm at distances 0.5 - 2.0 mm."""
    return {f"{d}mm": tlm_sheet(20.0 + 100.0 * d) for d in (0.5, 1.0, 1.5, 2.0)}
