"""
Sample-level fusion of per-file analysis results.

Per sample, the four transistor measurements contribute:

- IDVG-Linear:      Vth, SS, Dit, gm_max, μFE, Ion/Ioff, VDS, and the series
                    used for the Y-function (μ0) and θ fits
- IDVG-Saturation:  gm_max fallback when the linear sweep has none
- IDVD:             Ron
- IDVG-Hysteresis:  ΔVth and stability

Derived quantities:

    μ0   = Y-function fit; fallback μFE × (1.3 if VDS < 0.2 else 1.2)
    θ    = degradation fit; fallback 0.1 V⁻¹
    μeff = μ0 / (1 + θ · max(0, VG(gm_max) - Vth))

μeff within 1% of μFE is reported as unmeasurable; μeff above 1.05·μFE is
clamped to 0.95·μFE. Every fallback or correction is an estimated Quantity
plus a warning.

Fusion is a pure function of (SampleGroup, DeviceGeometry, ss_range). It never
patches an existing FusedParameterSet: any change to a sample's inputs
produces a new one.
"""

from __future__ import annotations

import logging
import multiprocessing
import threading
from concurrent.futures import ProcessPoolExecutor, as_completed
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from tft_extract.constants import THETA_FALLBACK
from tft_extract.derived.algorithms.subthreshold import (
    dit_quantity,
    fit_subthreshold_swing,
    subthreshold_swing_quantity,
)
from tft_extract.derived.extractors.degradation_extractor import DegradationFactorExtractor
from tft_extract.derived.extractors.idvg_linear_extractor import MOBILITY_UNIT, field_effect_mobility
from tft_extract.derived.extractors.mobility_extractor import YFunctionMobilityExtractor
from tft_extract.derived.quality import assess_quality
from tft_extract.models.measurements import DeviceGeometry, MeasurementKind, SampleIdentity
from tft_extract.models.quantities import Quantity
from tft_extract.models.results import AnalysisResult, FusedParameterSet, SampleGroup

logger = logging.getLogger(__name__)

MU0_FALLBACK_LOW_VDS = 1.3
MU0_FALLBACK_HIGH_VDS = 1.2
MU0_FALLBACK_VDS_SPLIT = 0.2     # V
MU_EFF_DEGENERATE_TOL = 0.01     # relative to μFE
MU_EFF_MAX_RATIO = 1.05
MU_EFF_CLAMP_RATIO = 0.95

THETA_UNIT = "V⁻¹"

# What each missing kind costs, for the warning text
MISSING_KIND_EFFECT = {
    MeasurementKind.IDVG_LINEAR: "Vth, SS, Dit, μFE and Ion/Ioff unavailable",
    MeasurementKind.IDVG_SATURATION: "no gm_max fallback",
    MeasurementKind.IDVD: "Ron unavailable",
    MeasurementKind.IDVG_HYSTERESIS: "ΔVth and stability unavailable",
}


def missing_kind_warning(kind: MeasurementKind) -> str:
    return f"Missing {kind.value} measurement: {MISSING_KIND_EFFECT[kind]}"


# ══════════════════════════════════════════════════════════════════════
# Grouping
# ══════════════════════════════════════════════════════════════════════

def group_by_sample(results: Iterable[AnalysisResult]) -> Dict[str, SampleGroup]:
    """
    Group per-file results by sample identity.

    At most one result per (sample, kind) is kept; when two files resolve to
    the same pair, the later one wins and the collision is logged and
    recorded on the group. Groups hold plain dicts so they can be sent to
    worker processes.

    Raises
    ------
    ValueError
        If a result carries no sample identity.
    """
    by_sample: Dict[str, Dict[MeasurementKind, AnalysisResult]] = {}
    identities: Dict[str, SampleIdentity] = {}
    collisions: Dict[str, List[str]] = {}

    for result in results:
        if result.sample is None:
            raise ValueError(f"Result from {result.source} has no sample identity")
        name = result.sample.name
        identities.setdefault(name, result.sample)
        kinds = by_sample.setdefault(name, {})
        previous = kinds.get(result.kind)
        if previous is not None:
            msg = (
                f"Duplicate {result.kind.value} data for sample '{name}': "
                f"'{result.source}' replaces '{previous.source}'"
            )
            logger.warning(msg)
            collisions.setdefault(name, []).append(msg)
        kinds[result.kind] = result

    return {
        name: SampleGroup(
            identity=identities[name],
            results=dict(kinds),
            collisions=tuple(collisions.get(name, ())),
        )
        for name, kinds in by_sample.items()
    }


# ══════════════════════════════════════════════════════════════════════
# Fusion
# ══════════════════════════════════════════════════════════════════════

def _derived_status(value: float, unit: str, method: str, *inputs: Quantity) -> Quantity:
    """Measured if every input is measured, else estimated."""
    estimated_inputs = [q for q in inputs if not q.is_measured]
    if not estimated_inputs:
        return Quantity.measured(value, unit, method=method)
    reasons = "; ".join(q.reason or q.method or "estimate" for q in estimated_inputs)
    return Quantity.estimated(value, unit, method=method, reason=f"derived from estimates ({reasons})")


class SampleFusionEngine:
    """
    Fuse one sample's per-file results into a FusedParameterSet.

    Parameters
    ----------
    mobility_extractor : YFunctionMobilityExtractor, optional
    degradation_extractor : DegradationFactorExtractor, optional
    """

    def __init__(
        self,
        mobility_extractor: Optional[YFunctionMobilityExtractor] = None,
        degradation_extractor: Optional[DegradationFactorExtractor] = None,
    ):
        self.mobility_extractor = mobility_extractor or YFunctionMobilityExtractor()
        self.degradation_extractor = degradation_extractor or DegradationFactorExtractor()

    def fuse(
        self,
        group: SampleGroup,
        geometry: DeviceGeometry,
        ss_range: Optional[Tuple[float, float]] = None,
    ) -> FusedParameterSet:
        warnings: List[str] = list(group.collisions)

        linear = group.get(MeasurementKind.IDVG_LINEAR)
        saturation = group.get(MeasurementKind.IDVG_SATURATION)
        idvd = group.get(MeasurementKind.IDVD)
        hysteresis = group.get(MeasurementKind.IDVG_HYSTERESIS)

        for result in (linear, saturation, idvd, hysteresis):
            if result is not None:
                warnings.extend(result.warnings)

        # ─── Linear-region parameters ───────────────────────────────
        if linear is not None:
            vth = linear.get("vth")
            vds = linear.get("vds")
            ion = linear.get("ion")
            ioff = linear.get("ioff")
            on_off = linear.get("on_off_ratio")
            vg_at_gm_max = linear.get("vg_at_gm_max")
            if ss_range is not None and linear.series is not None:
                ss = subthreshold_swing_quantity(fit_subthreshold_swing(linear.series, ss_range))
            else:
                ss = linear.get("ss")
            dit = dit_quantity(ss, geometry)
        else:
            warnings.append(missing_kind_warning(MeasurementKind.IDVG_LINEAR))
            reason = "no IDVG-Linear measurement"
            vth = Quantity.unmeasurable(reason, "V")
            vds = Quantity.unmeasurable(reason, "V")
            ion = Quantity.unmeasurable(reason, "A")
            ioff = Quantity.unmeasurable(reason, "A")
            on_off = Quantity.unmeasurable(reason)
            vg_at_gm_max = Quantity.unmeasurable(reason, "V")
            ss = Quantity.unmeasurable(reason, "V/decade")
            dit = Quantity.unmeasurable(reason, "cm⁻²eV⁻¹")

        # ─── gm_max: linear first, saturation as fallback ───────────
        gm_max = linear.get("gm_max") if linear is not None else Quantity.unmeasurable("no IDVG-Linear measurement", "S")
        if not gm_max.is_available:
            if saturation is not None and saturation.get("gm_max").is_available:
                sat_gm = saturation.get("gm_max")
                gm_max = Quantity.measured(sat_gm.value, "S", method="saturation_gm_max")
                logger.debug(f"{group.identity}: gm_max taken from IDVG-Saturation")
            elif saturation is None:
                warnings.append(missing_kind_warning(MeasurementKind.IDVG_SATURATION))

        # ─── μFE ────────────────────────────────────────────────────
        mu_fe = Quantity.unmeasurable("gm_max or linear-region VDS not available", MOBILITY_UNIT)
        if gm_max.is_available and vds.is_available:
            mu = field_effect_mobility(gm_max.value, geometry, vds.value)
            if mu is not None:
                mu_fe = _derived_status(mu, MOBILITY_UNIT, "gm_max", gm_max, vds)

        # ─── μ0: Y-function, else corrected μFE ─────────────────────
        mu0, y_quality = self._low_field_mobility(linear, geometry, vth, vds, mu_fe, warnings)

        # ─── θ: degradation fit, else default ───────────────────────
        theta = self._degradation_factor(linear, geometry, vth, vds, mu0, warnings)

        # ─── μeff with physical clamps ──────────────────────────────
        mu_eff = self._effective_mobility(mu0, theta, vg_at_gm_max, vth, mu_fe, warnings)

        # ─── Ron, hysteresis ────────────────────────────────────────
        if idvd is not None:
            ron = idvd.get("ron")
        else:
            warnings.append(missing_kind_warning(MeasurementKind.IDVD))
            ron = Quantity.unmeasurable("no IDVD measurement", "Ω")

        if hysteresis is not None:
            delta_vth = hysteresis.get("delta_vth")
            stability = hysteresis.extras.get("stability", "N/A")
        else:
            warnings.append(missing_kind_warning(MeasurementKind.IDVG_HYSTERESIS))
            delta_vth = Quantity.unmeasurable("no IDVG-Hysteresis measurement", "V")
            stability = "N/A"

        quality = assess_quality(vth, gm_max, mu_fe, y_quality, warnings)

        logger.debug(
            f"{group.identity}: fused {len(group.results)} measurement(s), "
            f"score {quality.score} ({quality.grade}), {len(warnings)} warning(s)"
        )

        return FusedParameterSet(
            sample=group.identity.name,
            vth=vth,
            ss=ss,
            dit=dit,
            gm_max=gm_max,
            mu_fe=mu_fe,
            mu0=mu0,
            theta=theta,
            mu_eff=mu_eff,
            ron=ron,
            ion=ion,
            ioff=ioff,
            on_off_ratio=on_off,
            delta_vth=delta_vth,
            vg_at_gm_max=vg_at_gm_max,
            vds_linear=vds,
            stability=stability,
            y_function_quality=y_quality,
            quality=quality,
            data_sources=tuple(k.value for k in group.kinds),
            warnings=tuple(warnings),
            ss_range=tuple(ss_range) if ss_range is not None else None,
        )

    # ═══════════════════════════════════════════════════════════════════
    # Derived mobility chain
    # ═══════════════════════════════════════════════════════════════════

    def _low_field_mobility(
        self,
        linear: Optional[AnalysisResult],
        geometry: DeviceGeometry,
        vth: Quantity,
        vds: Quantity,
        mu_fe: Quantity,
        warnings: List[str],
    ) -> Tuple[Quantity, str]:
        if linear is None or linear.series is None or linear.gm is None:
            # Missing linear data is already warned about; nothing to fit or fall back on
            return Quantity.unmeasurable("no IDVG-Linear measurement", MOBILITY_UNIT), "N/A"

        result = self.mobility_extractor.extract(
            linear.series, linear.gm, geometry, vth.value, vds.value
        )
        if result.succeeded:
            mu0 = Quantity.measured(
                result.mu0, MOBILITY_UNIT, method=f"Y-function (R²={result.r_squared:.3f})"
            )
            if not (vth.is_measured and vds.is_measured):
                mu0 = _derived_status(result.mu0, MOBILITY_UNIT, mu0.method, vth, vds)
            return mu0, result.quality

        error = result.error or "poor fit quality"
        if not mu_fe.is_available:
            warnings.append(f"Y-function failed ({error}) and μFE is not available: μ0 not measurable")
            return Quantity.unmeasurable(f"Y-function failed: {error}", MOBILITY_UNIT), result.quality

        factor = MU0_FALLBACK_LOW_VDS if vds.value < MU0_FALLBACK_VDS_SPLIT else MU0_FALLBACK_HIGH_VDS
        warnings.append(f"Y-function failed ({error}): μ0 estimated as μFE × {factor}")
        logger.warning(f"{linear.source}: Y-function failed ({error}); using μFE × {factor}")
        mu0 = Quantity.estimated(
            mu_fe.value * factor,
            MOBILITY_UNIT,
            method=f"mu_fe_x_{factor}",
            reason=f"Y-function failed: {error}",
            confidence=0.4,
        )
        return mu0, "Failed"

    def _degradation_factor(
        self,
        linear: Optional[AnalysisResult],
        geometry: DeviceGeometry,
        vth: Quantity,
        vds: Quantity,
        mu0: Quantity,
        warnings: List[str],
    ) -> Quantity:
        if not mu0.is_available:
            return Quantity.unmeasurable("μ0 not available", THETA_UNIT)

        if linear is not None and linear.series is not None and vth.is_available and vds.is_available:
            result = self.degradation_extractor.extract(mu0.value, geometry, linear.series, vth.value, vds.value)
            if result.succeeded:
                return _derived_status(result.theta, THETA_UNIT, "degradation_fit", mu0, vth, vds)
            diagnostic = f"{result.method}: {result.error}"
        else:
            diagnostic = "no linear-region sweep with Vth and VDS"

        warnings.append(f"θ not measurable ({diagnostic}): using default {THETA_FALLBACK} {THETA_UNIT}")
        return Quantity.estimated(
            THETA_FALLBACK, THETA_UNIT, method="default", reason=diagnostic, confidence=0.3
        )

    def _effective_mobility(
        self,
        mu0: Quantity,
        theta: Quantity,
        vg_at_gm_max: Quantity,
        vth: Quantity,
        mu_fe: Quantity,
        warnings: List[str],
    ) -> Quantity:
        needed = {"μ0": mu0, "θ": theta, "VG at gm_max": vg_at_gm_max, "Vth": vth}
        missing = [name for name, q in needed.items() if not q.is_available]
        if missing:
            return Quantity.unmeasurable(f"{', '.join(missing)} not available", MOBILITY_UNIT)

        overdrive = max(0.0, vg_at_gm_max.value - vth.value)
        value = mu0.value / (1.0 + theta.value * overdrive)
        mu_eff = _derived_status(value, MOBILITY_UNIT, "mu0_over_degradation", mu0, theta, vg_at_gm_max, vth)

        if not mu_fe.is_available:
            return mu_eff

        if abs(value - mu_fe.value) / mu_fe.value < MU_EFF_DEGENERATE_TOL:
            warnings.append("μeff ≈ μFE (within 1%): mobility degradation too small to measure")
            return Quantity.unmeasurable("μeff indistinguishable from μFE", MOBILITY_UNIT)

        if value > MU_EFF_MAX_RATIO * mu_fe.value:
            warnings.append(
                f"μeff ({value:.3g}) exceeds 1.05 × μFE ({mu_fe.value:.3g}): clamped to 0.95 × μFE"
            )
            return Quantity.estimated(
                MU_EFF_CLAMP_RATIO * mu_fe.value,
                MOBILITY_UNIT,
                method="clamped_to_0.95_mu_fe",
                reason=f"computed μeff {value:.4g} > 1.05 × μFE",
                confidence=0.3,
            )

        return mu_eff


# ══════════════════════════════════════════════════════════════════════
# Batch fusion
# ══════════════════════════════════════════════════════════════════════

def _fuse_one(
    group: SampleGroup,
    geometry: DeviceGeometry,
    ss_range: Optional[Tuple[float, float]],
) -> FusedParameterSet:
    """Module-level worker so it can be pickled for ProcessPoolExecutor."""
    return SampleFusionEngine().fuse(group, geometry, ss_range)


def fuse_all(
    groups: Mapping[str, SampleGroup],
    geometry: DeviceGeometry,
    workers: int = 1,
    ss_ranges: Optional[Mapping[str, Tuple[float, float]]] = None,
) -> Dict[str, FusedParameterSet]:
    """
    Fuse every sample group.

    Samples are independent, so with ``workers > 1`` they are fused in a
    process pool and joined as they complete. A sample that fails is logged
    and left out; it never stops the others.

    Returns
    -------
    dict
        Sample name -> FusedParameterSet, in sample-name order
    """
    ss_ranges = ss_ranges or {}
    fused: Dict[str, FusedParameterSet] = {}

    if workers <= 1 or len(groups) <= 1:
        engine = SampleFusionEngine()
        for i, (name, group) in enumerate(groups.items(), 1):
            try:
                fused[name] = engine.fuse(group, geometry, ss_ranges.get(name))
            except Exception as e:
                logger.error(f"[{i}/{len(groups)}] Failed to fuse {name}: {e}", exc_info=True)
        return dict(sorted(fused.items()))

    logger.info(f"Fusing {len(groups)} samples with {workers} workers")
    mp_context = multiprocessing.get_context('spawn')

    with ProcessPoolExecutor(max_workers=workers, mp_context=mp_context) as executor:
        future_to_name = {
            executor.submit(_fuse_one, group, geometry, ss_ranges.get(name)): name
            for name, group in groups.items()
        }

        completed = 0
        total = len(future_to_name)
        for future in as_completed(future_to_name):
            completed += 1
            name = future_to_name[future]
            try:
                fused[name] = future.result()
                logger.info(f"[{completed}/{total}] Fused {name}")
            except Exception as e:
                logger.error(f"[{completed}/{total}] Failed to fuse {name}: {e}")

    return dict(sorted(fused.items()))


# ══════════════════════════════════════════════════════════════════════
# Copy-on-write result store
# ══════════════════════════════════════════════════════════════════════

class FusionStore:
    """
    Versioned, copy-on-write store of fused results.

    Readers call :meth:`snapshot` and get an immutable mapping that never
    changes underneath them. Writers recompute one sample and publish a new
    mapping with a bumped version; a reader holding an older snapshot keeps
    seeing the old, complete FusedParameterSet.

    Example
    -------
    >>> store = FusionStore(groups, geometry)
    >>> before = store.snapshot()
    >>> store.refit_subthreshold("0616_1sccm_100", (-1.0, 1.0))
    >>> store.snapshot()["0616_1sccm_100"].ss_range
    (-1.0, 1.0)
    >>> before["0616_1sccm_100"].ss_range is None
    True
    """

    def __init__(
        self,
        groups: Mapping[str, SampleGroup],
        geometry: DeviceGeometry,
        workers: int = 1,
    ):
        self._groups: Dict[str, SampleGroup] = dict(groups)
        self._geometry = geometry
        self._ss_ranges: Dict[str, Tuple[float, float]] = {}
        self._engine = SampleFusionEngine()
        self._write_lock = threading.Lock()
        self._version = 0
        self._snapshot: Mapping[str, FusedParameterSet] = MappingProxyType(
            fuse_all(self._groups, geometry, workers=workers)
        )

    @property
    def version(self) -> int:
        return self._version

    @property
    def geometry(self) -> DeviceGeometry:
        return self._geometry

    def snapshot(self) -> Mapping[str, FusedParameterSet]:
        return self._snapshot

    def get(self, sample: str) -> Optional[FusedParameterSet]:
        return self._snapshot.get(sample)

    def _publish(self, sample: str, fused: FusedParameterSet) -> None:
        updated = dict(self._snapshot)
        updated[sample] = fused
        self._snapshot = MappingProxyType(dict(sorted(updated.items())))
        self._version += 1

    def refit_subthreshold(
        self,
        sample: str,
        vg_range: Optional[Tuple[float, float]],
    ) -> FusedParameterSet:
        """
        Recompute one sample with a custom SS fit range (None restores the default).

        Raises
        ------
        KeyError
            If the sample is not in the store.
        """
        with self._write_lock:
            group = self._groups[sample]
            if vg_range is None:
                self._ss_ranges.pop(sample, None)
            else:
                self._ss_ranges[sample] = (float(vg_range[0]), float(vg_range[1]))
            fused = self._engine.fuse(group, self._geometry, self._ss_ranges.get(sample))
            self._publish(sample, fused)
        logger.info(f"Refit SS for {sample} over {vg_range}: SS={fused.ss}, grade {fused.quality.grade}")
        return fused

    def replace_group(self, group: SampleGroup) -> FusedParameterSet:
        """Add or replace a sample's inputs and recompute only that sample."""
        with self._write_lock:
            name = group.identity.name
            self._groups[name] = group
            fused = self._engine.fuse(group, self._geometry, self._ss_ranges.get(name))
            self._publish(name, fused)
        return fused
