"""
Core layer: ingestion, sample naming, batch orchestration and export.

Key Functions
-------------
- detect_measurement_kind / generate_sample_name: file-name conventions
- read_measurement_table / read_tlm_sample: CSV ingestion (polars)
- analyze_files: detect, analyze, group and fuse a batch of files
- write_tlm_csv / write_fused_csv: result export

Usage
-----
    >>> from tft_extract.core.analysis import analyze_files
    >>> from tft_extract.models import DeviceGeometry
    >>> geom = DeviceGeometry.from_user_units(width_um=100, length_um=10, tox_nm=20)
    >>> outcome = analyze_files(sorted(Path("data").glob("*.csv")), geom)
    >>> outcome.fused["0616_1sccm_100"].quality.grade
    'B'
"""

from .errors import ExtractionError, MalformedInputError, TLMInsufficientDataError
from .sample_naming import detect_measurement_kind, generate_sample_name, sample_identity

__all__ = [
    "ExtractionError",
    "MalformedInputError",
    "TLMInsufficientDataError",
    "detect_measurement_kind",
    "generate_sample_name",
    "sample_identity",
]
