import numpy as np
import pytest
from scipy import stats

from conftest import GEOMETRY, SS, gate_voltages, transfer_current
from tft_extract.derived.algorithms.linear_fit import fit_linear, x_intercept
from tft_extract.derived.algorithms.subthreshold import (
    compute_dit,
    dit_quantity,
    evaluate_ss_quality,
    fit_subthreshold_swing,
    subthreshold_swing_quantity,
    suggest_ss_range,
)
from tft_extract.derived.algorithms.transconductance import (
    central_difference,
    measured_gm,
    transconductance,
)
from tft_extract.derived.columns import resolution_confidence, resolve_columns
from tft_extract.models.measurements import (
    DeviceGeometry,
    MeasurementKind,
    MeasurementSeries,
    oxide_capacitance,
)
from tft_extract.models.quantities import Quantity


def linear_series(vg, id_, vd=0.1, gm=None):
    return MeasurementSeries.from_arrays(
        MeasurementKind.IDVG_LINEAR, vg, id_, np.full(len(vg), vd), gm_measured=gm
    )


class TestLinearFit:
    def test_matches_scipy_linregress(self):
        """Slope, intercept and R² agree with an independent implementation."""
        rng = np.random.default_rng(7)
        x = np.linspace(0, 10, 40)
        y = 2.5 * x - 1.0 + rng.normal(0, 0.3, x.size)

        fit = fit_linear(x, y)
        ref = stats.linregress(x, y)

        assert np.isclose(fit['slope'], ref.slope)
        assert np.isclose(fit['intercept'], ref.intercept)
        assert np.isclose(fit['r_squared'], ref.rvalue ** 2)
        assert fit['n_points'] == 40
        assert not fit['degenerate']

    def test_all_x_equal_is_degenerate(self):
        """Vertical data gives slope 0 and R² 0 instead of dividing by zero."""
        fit = fit_linear(np.full(5, 2.0), np.arange(5.0))

        assert fit['degenerate']
        assert fit['slope'] == 0.0
        assert fit['r_squared'] == 0.0
        assert np.isnan(x_intercept(fit))

    def test_all_y_equal_has_unit_r_squared(self):
        """A flat line is a perfect fit."""
        fit = fit_linear(np.arange(6.0), np.full(6, 3.0))

        assert not fit['degenerate']
        assert fit['r_squared'] == 1.0
        assert np.isclose(fit['slope'], 0.0)

    def test_small_x_scale_is_not_degenerate(self):
        """x in 1/V units around 1e-3 still fits."""
        x = np.linspace(1e-3, 2e-3, 10)
        fit = fit_linear(x, 5.0 * x + 1.0)

        assert not fit['degenerate']
        assert np.isclose(fit['slope'], 5.0)

    def test_x_intercept(self):
        vg = np.linspace(2, 10, 50)
        fit = fit_linear(vg, 3e-4 * (vg - 1.5))
        assert np.isclose(x_intercept(fit), 1.5)

    def test_non_finite_values_removed(self):
        x = np.array([0.0, 1.0, 2.0, np.nan, 4.0])
        y = np.array([1.0, 3.0, 5.0, 7.0, np.inf])

        with pytest.warns(UserWarning):
            fit = fit_linear(x, y)

        assert fit['n_points'] == 3
        assert np.isclose(fit['slope'], 2.0)

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            fit_linear(np.arange(3.0), np.arange(4.0))

    def test_single_point_raises(self):
        with pytest.raises(ValueError):
            fit_linear(np.array([1.0]), np.array([2.0]))


class TestOxideCapacitance:
    def test_cox_formula(self):
        geometry = DeviceGeometry(W=100e-6, L=50e-6, tox=20e-9)
        assert geometry.cox == pytest.approx(3.9 * 8.854e-12 / 20e-9, rel=1e-12)

    def test_user_units(self):
        geometry = DeviceGeometry.from_user_units(width_um=100, length_um=50, tox_nm=20)
        assert geometry.W == pytest.approx(100e-6)
        assert geometry.L == pytest.approx(50e-6)
        assert geometry.cox == pytest.approx(3.9 * 8.854e-12 / 20e-9)

    def test_custom_permittivity(self):
        # HfO2-like dielectric, εr = 25
        assert oxide_capacitance(20e-9, epsilon_r=25.0) == pytest.approx(25.0 * 8.854e-12 / 20e-9, rel=1e-12)
        assert oxide_capacitance(20e-9) == DeviceGeometry(W=1e-4, L=5e-5, tox=20e-9).cox

    @pytest.mark.parametrize("tox, epsilon_r", [(0.0, 3.9), (-1e-9, 3.9), (20e-9, 0.0)])
    def test_non_positive_inputs_rejected(self, tox, epsilon_r):
        with pytest.raises(ValueError):
            oxide_capacitance(tox, epsilon_r)


class TestTransconductance:
    def test_central_difference_interior_points(self):
        """n points give n - 2 gm values at the interior gate voltages."""
        vg = np.linspace(0, 5, 51)
        series = linear_series(vg, vg ** 2)
        gm = central_difference(series)

        assert len(gm) == len(series) - 2
        assert np.allclose(gm.vg, vg[1:-1])
        # d(VG²)/dVG = 2·VG exactly for a central difference of a quadratic
        assert np.allclose(gm.gm, 2 * vg[1:-1])

    def test_decreasing_current_gives_positive_gm(self):
        vg = np.linspace(0, 5, 11)
        gm = central_difference(linear_series(vg, 10.0 - vg))
        assert np.all(gm.gm > 0)

    def test_short_series_gives_empty_gm(self):
        gm = central_difference(linear_series(np.array([0.0, 1.0]), np.array([1e-9, 1e-8])))
        assert len(gm) == 0
        assert gm.max_point() is None

    def test_measured_column_preferred(self):
        vg = np.linspace(0, 5, 11)
        gm_col = np.full(11, 3e-6)
        gm, method = transconductance(linear_series(vg, vg * 1e-6, gm=gm_col))

        assert method == "measured_column"
        assert len(gm) == 11
        assert np.isclose(gm.max_point()[1], 3e-6)

    def test_all_zero_measured_column_falls_back(self):
        vg = np.linspace(0, 5, 11)
        series = linear_series(vg, vg * 1e-6, gm=np.zeros(11))

        assert measured_gm(series) is None
        gm, method = transconductance(series)
        assert method == "central_difference"
        assert np.allclose(gm.gm, 1e-6)


class TestSubthresholdSwing:
    def test_default_window_recovers_ss(self):
        """log10(ID) in (-10, -6) is a clean exponential with SS = 0.25 V/dec."""
        vg = gate_voltages()
        fit = fit_subthreshold_swing(linear_series(vg, transfer_current(vg)))

        assert fit['method'] == "subthreshold_window"
        assert fit['n_points'] == 8
        assert np.isclose(fit['ss'], SS)
        assert np.isclose(fit['r_squared'], 1.0)

    def test_ss_is_reported_in_volts_per_decade(self):
        vg = gate_voltages()
        q = subthreshold_swing_quantity(fit_subthreshold_swing(linear_series(vg, transfer_current(vg))))
        assert q.unit == "V/decade"
        assert q.is_measured

    def test_too_few_points_in_window(self):
        """Five points in the window are not enough."""
        vg = np.linspace(0, 1, 5)
        id_ = 1e-9 * 10 ** vg
        fit = fit_subthreshold_swing(linear_series(vg, id_))

        assert fit['ss'] is None
        assert "need 6" in fit['reason']
        assert not subthreshold_swing_quantity(fit).is_available

    def test_custom_range_uses_only_points_inside(self):
        vg = gate_voltages()
        fit = fit_subthreshold_swing(linear_series(vg, transfer_current(vg)), (0.5, 0.9))

        assert fit['method'] == "custom_range"
        assert fit['vg_range'] == (0.5, 0.9)
        assert fit['n_points'] == 5
        assert np.isclose(fit['ss'], SS)

    def test_custom_range_needs_three_points(self):
        vg = gate_voltages()
        fit = fit_subthreshold_swing(linear_series(vg, transfer_current(vg)), (0.5, 0.6))
        assert fit['ss'] is None
        assert fit['n_points'] == 2

    def test_flat_current_is_unmeasurable(self):
        vg = np.linspace(0, 1, 11)
        fit = fit_subthreshold_swing(linear_series(vg, np.full(11, 1e-8)))
        assert fit['ss'] is None


class TestInterfaceTrapDensity:
    def test_dit_value(self):
        """Cox/q·(SS/(2.3·kT/q) - 1) with Cox in F/cm²."""
        dit = compute_dit(0.25, GEOMETRY)
        cox_cm2 = GEOMETRY.cox * 1e-4
        expected = cox_cm2 / 1.602e-19 * (0.25 / (2.3 * 0.0259) - 1)

        assert np.isclose(dit, expected)
        assert np.isclose(dit, 3.445e12, rtol=1e-3)

    def test_ss_below_thermal_limit_gives_no_dit(self):
        """SS < 2.3·kT/q makes Dit negative, which is rejected."""
        assert compute_dit(0.05, GEOMETRY) is None

    def test_implausibly_large_dit_rejected(self):
        thin = DeviceGeometry(W=1e-4, L=1e-5, tox=1e-9)
        assert compute_dit(50.0, thin) is None

    def test_dit_inherits_estimated_status(self):
        ss = Quantity.estimated(0.25, "V/decade", method="manual", reason="test")
        dit = dit_quantity(ss, GEOMETRY)
        assert dit.status == "estimated"

    def test_dit_unmeasurable_without_ss(self):
        dit = dit_quantity(Quantity.unmeasurable("no fit", "V/decade"), GEOMETRY)
        assert not dit.is_available
        assert dit.reason == "SS not available"


class TestSubthresholdRangeHelpers:
    def test_quality_of_a_clean_range(self):
        """R² 1 (40) + 5 points (10) + SS 0.25 (20) = 70 -> Good."""
        vg = gate_voltages()
        result = evaluate_ss_quality(linear_series(vg, transfer_current(vg)), (0.5, 0.9))

        assert result['score'] == 70
        assert result['quality'] == "Good"
        assert result['n_points'] == 5

    def test_inverted_range_is_invalid(self):
        vg = gate_voltages()
        result = evaluate_ss_quality(linear_series(vg, transfer_current(vg)), (1.0, 0.0))
        assert result['quality'] == "Invalid"
        assert result['score'] == 0

    def test_suggestion_prefers_most_linear_window(self):
        """Exponential only over -1..1 V, flattening beyond: the standard window wins."""
        vg = np.round(np.linspace(-3, 3, 61), 6)
        log_id = -10.0 + np.clip(2.0 * vg, -2.0, 2.0) + 0.2 * (vg - np.clip(vg, -1.0, 1.0))
        best = suggest_ss_range(linear_series(vg, 10.0 ** log_id))

        assert best['vg_range'] == (-1.0, 1.0)
        assert best['name'] == "Standard Switching"
        assert best['confidence'] == "High"
        assert np.isclose(best['r_squared'], 1.0)

    def test_short_sweep_gets_default_suggestion(self):
        vg = np.linspace(-1, 1, 5)
        best = suggest_ss_range(linear_series(vg, 1e-9 * 10 ** vg))
        assert best['vg_range'] == (-1.0, 1.0)
        assert best['confidence'] == "Low"


class TestColumnResolution:
    def test_instrument_labels(self):
        m = resolve_columns(["DrainI", "DrainV", "GateI", "GateV"])

        assert (m["id"].index, m["vd"].index, m["ig"].index, m["vg"].index) == (0, 1, 2, 3)
        assert resolution_confidence(m, ("vg", "id", "vd")) == 1.0
        assert m["gm"] is None

    def test_generic_labels_any_order(self):
        m = resolve_columns(["Vg (V)", "Id (A)", "Vd (V)"])

        assert (m["vg"].index, m["id"].index, m["vd"].index) == (0, 1, 2)
        assert resolution_confidence(m, ("vg", "id", "vd")) == 0.8

    def test_positional_fallback(self):
        m = resolve_columns(["a", "b", "c", "d"])

        assert (m["id"].index, m["vd"].index, m["vg"].index) == (0, 1, 3)
        assert m["vg"].confidence == 0.3

    def test_positional_fallback_needs_enough_columns(self):
        m = resolve_columns(["a", "b"])
        assert m["vg"] is None
        assert resolution_confidence(m, ("vg", "id")) == 0.0

    def test_header_claimed_once(self):
        """A specific match is not reused by a generic token."""
        m = resolve_columns(["DrainI", "DrainV", "GateV", "Id_extra"])
        assert m["id"].index == 0
        assert m["vg"].index == 2
