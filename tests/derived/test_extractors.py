import numpy as np
import polars as pl
import pytest

from conftest import (
    FLOOR,
    GEOMETRY,
    MU0_CM2,
    THETA,
    VDS_LINEAR,
    beta,
    gate_voltages,
    output_table,
    transfer_current,
)
from tft_extract.core.errors import MalformedInputError
from tft_extract.derived.algorithms.transconductance import transconductance
from tft_extract.derived.extractors import (
    DegradationFactorExtractor,
    HysteresisAnalyzer,
    IDVDAnalyzer,
    IDVGLinearAnalyzer,
    IDVGSaturationAnalyzer,
    YFunctionMobilityExtractor,
    default_analyzers,
)
from tft_extract.derived.extractors.base import build_flags, compute_confidence, floor_current
from tft_extract.derived.extractors.degradation_extractor import validate_theta_inputs
from tft_extract.derived.extractors.hysteresis_extractor import classify_stability, split_branches
from tft_extract.derived.extractors.idvd_extractor import find_gate_blocks
from tft_extract.models.measurements import DeviceGeometry, MeasurementKind, MeasurementSeries


def linear_series():
    vg = gate_voltages()
    return MeasurementSeries.from_arrays(
        MeasurementKind.IDVG_LINEAR, vg, transfer_current(vg), np.full(len(vg), VDS_LINEAR)
    )


class TestBaseHelpers:
    def test_floor_current(self):
        out = floor_current(np.array([-2e-6, 0.0, np.nan, 3e-9]))
        assert np.allclose(out, [2e-6, FLOOR, FLOOR, 3e-9])

    def test_confidence_multiplies_failed_penalties(self):
        checks = {"A": False, "B": False, "C": True}
        penalties = {"A": 0.5, "B": 0.8, "C": 0.1}
        assert np.isclose(compute_confidence(checks, penalties), 0.4)

    def test_flags(self):
        assert build_flags({"A": True}) is None
        assert build_flags({"A": False, "B": True, "C": False}) == "A,C"

    def test_default_analyzers_cover_every_transistor_kind(self):
        analyzers = default_analyzers()
        assert set(analyzers) == {
            MeasurementKind.IDVD,
            MeasurementKind.IDVG_LINEAR,
            MeasurementKind.IDVG_SATURATION,
            MeasurementKind.IDVG_HYSTERESIS,
        }
        for kind, analyzer in analyzers.items():
            assert analyzer.can_analyze(kind)


class TestIDVGLinearAnalyzer:
    def test_parameters(self, linear_table, geometry):
        result = IDVGLinearAnalyzer().analyze(linear_table, geometry, "0616_IDVG_Lin_1sccm_100")
        p = result.parameters

        assert result.kind == MeasurementKind.IDVG_LINEAR
        assert p["vds"].is_measured and p["vds"].value == pytest.approx(VDS_LINEAR)

        # gm peaks one step above threshold, so extrapolated Vth sits just below 1 V
        assert p["vg_at_gm_max"].value == pytest.approx(1.2)
        assert p["vth"].value == pytest.approx(1.0, abs=0.01)
        assert p["gm_max"].value == pytest.approx(0.96126 * beta(), rel=1e-3)
        assert p["mu_fe"].value == pytest.approx(9.6126, rel=1e-3)
        assert p["mu_fe"].unit == "cm²/V·s"

        assert p["ss"].value == pytest.approx(0.25)
        assert p["dit"].value == pytest.approx(3.445e12, rel=1e-3)

        assert p["ion"].value == pytest.approx(beta() * 9.0 / 1.9)
        assert p["ioff"].value == pytest.approx(FLOOR)
        assert p["on_off_ratio"].value == pytest.approx(beta() * 9.0 / 1.9 / FLOOR)

    def test_clean_sweep_has_full_confidence(self, linear_table, geometry):
        result = IDVGLinearAnalyzer().analyze(linear_table, geometry, "lin")
        assert result.confidence == 1.0
        assert result.flags is None
        assert result.extras["gm_method"] == "central_difference"
        assert len(result.gm) == len(result.series) - 2

    def test_custom_ss_range(self, linear_table, geometry):
        result = IDVGLinearAnalyzer(ss_range=(0.5, 0.9)).analyze(linear_table, geometry, "lin")
        ss = result.parameters["ss"]
        assert ss.value == pytest.approx(0.25)
        assert ss.method == "custom_range"

    def test_missing_drain_voltage_is_estimated(self, linear_table, geometry):
        table = linear_table.with_columns(pl.lit(0.0).alias("DrainV"))
        p = IDVGLinearAnalyzer().analyze(table, geometry, "lin").parameters

        assert p["vds"].status == "estimated"
        assert p["vds"].value == pytest.approx(0.1)
        assert p["mu_fe"].status == "estimated"

    def test_duplicate_gate_voltages_keep_first(self, geometry):
        table = pl.DataFrame({
            "DrainI": [1e-9, 2e-9, 5e-9, 9e-9],
            "DrainV": [0.1] * 4,
            "GateI": [0.0] * 4,
            "GateV": [0.0, 1.0, 1.0, 2.0],
        })
        series = IDVGLinearAnalyzer().analyze(table, geometry, "dup").series

        assert list(series.vg) == [0.0, 1.0, 2.0]
        assert list(series.id) == [1e-9, 2e-9, 9e-9]

    def test_empty_table_raises(self, geometry):
        table = pl.DataFrame(
            schema={c: pl.Float64 for c in ("DrainI", "DrainV", "GateI", "GateV")},
        )
        with pytest.raises(MalformedInputError):
            IDVGLinearAnalyzer().analyze(table, geometry, "empty")

    def test_unresolvable_columns_raise(self, geometry):
        table = pl.DataFrame({"a": [1.0, 2.0], "b": [3.0, 4.0]})
        with pytest.raises(MalformedInputError):
            IDVGLinearAnalyzer().analyze(table, geometry, "two_columns")


class TestIDVGSaturationAnalyzer:
    def test_parameters(self, saturation_table, geometry):
        result = IDVGSaturationAnalyzer().analyze(saturation_table, geometry, "sat")
        p = result.parameters
        id_sat = beta(vds=20.0) * 9.0 / 1.9

        assert p["vds"].value == pytest.approx(20.0)
        assert p["id_sat"].value == pytest.approx(id_sat)
        # W = 100 µm = 0.1 mm
        assert p["id_sat_per_width"].value == pytest.approx(id_sat / 0.1)
        assert p["id_sat_per_width"].unit == "A/mm"
        assert p["gm_max"].is_available

    def test_no_threshold_parameters(self, saturation_table, geometry):
        result = IDVGSaturationAnalyzer().analyze(saturation_table, geometry, "sat")
        for name in ("vth", "ss", "dit"):
            assert name not in result.parameters
            assert not result.get(name).is_available


class TestIDVDAnalyzer:
    def test_blocks_detected(self, idvd_table):
        assert find_gate_blocks(idvd_table) == [(0, 5.0), (5, 10.0)]

    def test_ron_from_highest_gate_voltage(self, idvd_table, geometry):
        result = IDVDAnalyzer().analyze(idvd_table, geometry, "idvd")

        assert result.parameters["ron"].value == pytest.approx(5000.0)
        assert result.extras["gate_voltages"] == (5.0, 10.0)
        assert result.confidence == 1.0

    def test_curves_sorted_by_drain_voltage(self, geometry):
        table = output_table(gate_voltages_v=(3.0,), ron=(1000.0,)).reverse()
        # reversing rows moves VD = 10 to the first row; blocks read VG from row 0
        result = IDVDAnalyzer().analyze(table, geometry, "idvd")
        curve = result.extras["curves"][3.0]

        assert np.all(np.diff(curve.vd) > 0)
        assert result.parameters["ron"].value == pytest.approx(1000.0)

    def test_no_blocks_is_unmeasurable(self, geometry):
        table = pl.DataFrame({"I": [0.0, 1e-6], "V": [0.0, 1.0], "X": [1.0, 1.0]})
        result = IDVDAnalyzer().analyze(table, geometry, "idvd")

        assert not result.parameters["ron"].is_available
        assert result.warnings
        assert result.flags == "BLOCKS_FOUND,RON_FITTED"

    def test_non_ohmic_curve_is_unmeasurable(self, geometry):
        table = output_table(gate_voltages_v=(5.0,), ron=(1000.0,))
        table = table.with_columns((1e-3 - pl.col("DrainV") * 1e-5).alias("DrainI"))
        result = IDVDAnalyzer().analyze(table, geometry, "idvd")
        assert not result.parameters["ron"].is_available

    def test_negative_drain_sweep_keeps_sign(self, geometry):
        """Curves are ordered by signed VD; only the current is taken as |ID|."""
        table = output_table(gate_voltages_v=(5.0,), ron=(1000.0,))
        table = table.with_columns((-pl.col("DrainV")).alias("DrainV"))
        result = IDVDAnalyzer().analyze(table, geometry, "idvd")
        curve = result.extras["curves"][5.0]

        assert curve.vd[0] == pytest.approx(-10.0)
        assert curve.vd[-1] == pytest.approx(0.0)
        assert np.all(curve.id > 0)
        # the [1, 6) window now sits at the high-|VD| end where |ID| falls with VD
        assert not result.parameters["ron"].is_available


class TestHysteresisAnalyzer:
    def test_branch_thresholds(self, hys_table, geometry):
        result = HysteresisAnalyzer().analyze(hys_table, geometry, "hys")
        p = result.parameters

        assert p["vth_forward"].value == pytest.approx(1.0)
        assert p["vth_backward"].value == pytest.approx(1.8)
        assert p["delta_vth"].value == pytest.approx(0.8)
        assert result.extras["stability"] == "Good"

    def test_split_at_maximum_gate_voltage(self, hys_table):
        vg = hys_table["GateV"].to_numpy()
        id_ = hys_table["DrainI"].to_numpy()
        forward, backward = split_branches(vg, id_, np.zeros(len(vg)))

        assert len(forward) == 21
        assert len(backward) == 21
        assert np.all(np.diff(backward.vg) > 0)

    def test_short_branch_is_unmeasurable(self, geometry):
        up = np.linspace(0.0, 5.0, 8)
        vg = np.concatenate([up, up[::-1][1:]])
        table = pl.DataFrame({
            "DrainI": 1e-6 * vg ** 2,
            "DrainV": np.full(len(vg), 0.1),
            "GateI": np.zeros(len(vg)),
            "GateV": vg,
        })
        result = HysteresisAnalyzer().analyze(table, geometry, "hys")

        assert not result.parameters["delta_vth"].is_available
        assert result.extras["stability"] == "N/A"

    def test_backward_window_counted_in_sweep_order(self, geometry):
        """The backward 30%-70% window starts from the turning point, not from VG = 0."""
        up = np.round(np.linspace(0.0, 10.0, 21), 6)
        down = up[::-1][1:]
        vg = np.concatenate([up, down])
        forward_id = np.where(up > 1.0, 1e-6 * (up - 1.0) ** 2, FLOOR)
        backward_id = 1e-6 * down ** 3  # √ID ∝ VG^1.5, not linear in VG
        table = pl.DataFrame({
            "DrainI": np.concatenate([forward_id, backward_id]),
            "DrainV": np.full(len(vg), VDS_LINEAR),
            "GateI": np.full(len(vg), 1e-13),
            "GateV": vg,
        })

        result = HysteresisAnalyzer().analyze(table, geometry, "hys")

        def intercept(x):
            slope, offset = np.polyfit(x, 1e-3 * x ** 1.5, 1)
            return -offset / slope

        # 21 backward points swept 10 -> 0 V: indices 6..13 are VG 7.0 down to 3.5
        swept_window = 10.0 - 0.5 * np.arange(6, 14)
        ascending_window = 0.5 * np.arange(6, 14)
        vth_backward = result.parameters["vth_backward"].value

        assert vth_backward == pytest.approx(intercept(swept_window), rel=1e-9)
        assert vth_backward != pytest.approx(intercept(ascending_window), rel=1e-3)
        assert result.parameters["vth_forward"].value == pytest.approx(1.0)

    @pytest.mark.parametrize("delta, expected", [
        (0.0, "Excellent"),
        (0.49, "Excellent"),
        (0.5, "Good"),
        (0.8, "Good"),
        (1.0, "Fair"),
        (2.5, "Poor"),
        (3.0, "Very Poor"),
    ])
    def test_stability_classes(self, delta, expected):
        assert classify_stability(delta) == expected


class TestYFunctionMobility:
    def test_recovers_low_field_mobility(self, geometry):
        series = linear_series()
        gm, _ = transconductance(series)
        result = YFunctionMobilityExtractor().extract(series, gm, geometry, vth=1.0, vds=VDS_LINEAR)

        assert result.succeeded
        assert result.mu0 == pytest.approx(MU0_CM2, rel=1e-3)
        assert result.quality == "Excellent"
        assert result.r_squared > 0.999

    def test_needs_ten_points(self, geometry):
        series = linear_series()
        gm, _ = transconductance(series)
        result = YFunctionMobilityExtractor().extract(series, gm, geometry, vth=9.0, vds=VDS_LINEAR)

        assert not result.succeeded
        assert result.mu0 == 0.0
        assert "Insufficient data points" in result.error

    def test_missing_inputs(self, geometry):
        series = linear_series()
        gm, _ = transconductance(series)
        extractor = YFunctionMobilityExtractor()

        assert extractor.extract(series, gm, geometry, vth=None, vds=0.1).error == "Vth not available"
        assert "Invalid VDS" in extractor.extract(series, gm, geometry, vth=1.0, vds=0.0).error

    def test_unphysical_mobility_rejected(self):
        """Same currents on a 1000x narrower device imply μ0 far above 200 cm²/V·s."""
        narrow = DeviceGeometry.from_user_units(width_um=0.1, length_um=1, tox_nm=20)
        series = linear_series()
        gm, _ = transconductance(series)
        result = YFunctionMobilityExtractor().extract(series, gm, narrow, vth=1.0, vds=VDS_LINEAR)

        assert not result.succeeded
        assert "Unphysical" in result.error


class TestDegradationFactor:
    def test_recovers_theta(self, geometry):
        result = DegradationFactorExtractor().extract(MU0_CM2, geometry, linear_series(), 1.0, VDS_LINEAR)

        assert result.succeeded
        assert result.method == "Calculated"
        assert result.theta == pytest.approx(THETA, rel=1e-6)
        assert result.total_points == 151
        assert result.valid_vg_points == 80

    def test_too_few_strong_inversion_points(self, geometry):
        result = DegradationFactorExtractor().extract(MU0_CM2, geometry, linear_series(), 9.8, VDS_LINEAR)
        assert not result.succeeded
        assert result.method == "Cannot measure - insufficient high VG data"

    def test_short_sweep(self, geometry):
        vg = np.linspace(0, 5, 6)
        series = MeasurementSeries.from_arrays(
            MeasurementKind.IDVG_LINEAR, vg, transfer_current(vg), np.full(6, VDS_LINEAR)
        )
        result = DegradationFactorExtractor().extract(MU0_CM2, geometry, series, 1.0, VDS_LINEAR)
        assert result.method == "Insufficient total data"

    @pytest.mark.parametrize("mu0, geom, vth, vds, method", [
        (0.0, GEOMETRY, 1.0, 0.1, "Invalid μ0 value"),
        (500.0, GEOMETRY, 1.0, 0.1, "μ0 too high - check units"),
        (10.0, GEOMETRY, float("nan"), 0.1, "Invalid Vth value"),
        (10.0, GEOMETRY, 80.0, 0.1, "Vth too extreme"),
        (10.0, GEOMETRY, 1.0, 20.0, "VDS too high for θ calculation"),
        (10.0, DeviceGeometry(W=100.0, L=1e-6, tox=20e-9), 1.0, 0.1, "W too large - check units"),
        (10.0, DeviceGeometry(W=1e-4, L=0.05, tox=20e-9), 1.0, 0.1, "L too large - check units"),
        (10.0, DeviceGeometry(W=1e-7, L=1e-3, tox=20e-9), 1.0, 0.1, "L/W ratio unrealistic"),
        (10.0, DeviceGeometry(W=1e-4, L=1e-6, tox=20e-6), 1.0, 0.1, "tox too large - check units"),
        (10.0, DeviceGeometry(W=1e-4, L=1e-6, tox=5e-10), 1.0, 0.1, "tox too small - unrealistic"),
    ])
    def test_input_diagnostics(self, mu0, geom, vth, vds, method):
        diagnostic = validate_theta_inputs(mu0, geom, vth, vds)

        assert diagnostic is not None
        assert diagnostic.method == method
        assert diagnostic.theta == 0.0
        assert not diagnostic.succeeded

    def test_valid_inputs_pass(self, geometry):
        assert validate_theta_inputs(10.0, geometry, 1.0, 0.1) is None
