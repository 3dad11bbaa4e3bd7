"""
Parameter extraction and fusion for TFT and TLM measurements.

Main components:
- MeasurementAnalyzer: Base class for per-file analyzers
- SampleFusionEngine: Fuses per-file results into per-sample parameter sets
- FusionStore: Copy-on-write store of fused results
- analyze_tlm_sample / analyze_tlm_batch: TLM contact analysis
"""

from .extractors.base import MeasurementAnalyzer
from .fusion import FusionStore, SampleFusionEngine, fuse_all, group_by_sample
from .quality import assess_quality
from .tlm import analyze_tlm_batch, analyze_tlm_sample

__all__ = [
    "MeasurementAnalyzer",
    "FusionStore",
    "SampleFusionEngine",
    "fuse_all",
    "group_by_sample",
    "assess_quality",
    "analyze_tlm_batch",
    "analyze_tlm_sample",
]
