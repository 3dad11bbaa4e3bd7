"""
File-level orchestration: detect kind, load, analyze, group and fuse.

Bad files never stop a batch. A file with an undetectable kind, a malformed
table or a failed analysis is logged and reported in ``BatchOutcome.skipped``;
every other file still contributes to its sample.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from tft_extract.core.errors import ExtractionError, MalformedInputError
from tft_extract.core.loaders import read_measurement_table
from tft_extract.core.sample_naming import detect_measurement_kind, sample_identity
from tft_extract.derived.extractors import IDVGLinearAnalyzer, MeasurementAnalyzer, default_analyzers
from tft_extract.derived.fusion import fuse_all, group_by_sample
from tft_extract.models.measurements import DeviceGeometry, MeasurementKind
from tft_extract.models.results import AnalysisResult, FusedParameterSet, SampleGroup

logger = logging.getLogger(__name__)


@dataclass
class BatchOutcome:
    """Everything produced by one analyze run."""

    results: List[AnalysisResult] = field(default_factory=list)
    groups: Dict[str, SampleGroup] = field(default_factory=dict)
    fused: Dict[str, FusedParameterSet] = field(default_factory=dict)
    skipped: Dict[str, str] = field(default_factory=dict)


def analyze_file(
    path: Union[str, Path],
    geometry: DeviceGeometry,
    kind: Optional[MeasurementKind] = None,
    analyzers: Optional[Mapping[MeasurementKind, MeasurementAnalyzer]] = None,
) -> AnalysisResult:
    """
    Analyze one measurement file.

    Raises
    ------
    MalformedInputError
        If the kind cannot be determined or the table cannot be analyzed.
    """
    path = Path(path)
    kind = kind or detect_measurement_kind(path)
    if kind is None or kind is MeasurementKind.TLM:
        raise MalformedInputError(f"Cannot determine measurement kind of {path.name}")

    analyzers = analyzers or default_analyzers()
    table = read_measurement_table(path)
    result = analyzers[kind].analyze(table, geometry, path.name)
    return dataclasses.replace(result, sample=sample_identity(path))


def analyze_files(
    paths: Sequence[Union[str, Path]],
    geometry: DeviceGeometry,
    ss_range: Optional[Tuple[float, float]] = None,
    workers: int = 1,
) -> BatchOutcome:
    """
    Analyze a batch of files and fuse them per sample.

    ``ss_range`` overrides the subthreshold fit window for every sample.
    """
    analyzers = default_analyzers()
    if ss_range is not None:
        analyzers[MeasurementKind.IDVG_LINEAR] = IDVGLinearAnalyzer(ss_range=ss_range)

    outcome = BatchOutcome()
    total = len(paths)
    for i, p in enumerate(paths, 1):
        p = Path(p)
        try:
            result = analyze_file(p, geometry, analyzers=analyzers)
        except MalformedInputError as e:
            logger.warning(f"[{i}/{total}] Skipping {p.name}: {e}")
            outcome.skipped[p.name] = str(e)
            continue
        except (ExtractionError, ValueError) as e:
            logger.error(f"[{i}/{total}] Analysis of {p.name} failed: {e}", exc_info=True)
            outcome.skipped[p.name] = f"analysis failed: {e}"
            continue
        logger.info(f"[{i}/{total}] {p.name}: {result.kind.value} -> sample '{result.sample}'")
        outcome.results.append(result)

    outcome.groups = group_by_sample(outcome.results)
    ranges = {name: ss_range for name in outcome.groups} if ss_range is not None else None
    outcome.fused = fuse_all(outcome.groups, geometry, workers=workers, ss_ranges=ranges)

    logger.info(
        f"Analyzed {len(outcome.results)} file(s) into {len(outcome.fused)} sample(s), "
        f"{len(outcome.skipped)} skipped"
    )
    return outcome
