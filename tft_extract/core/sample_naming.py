"""
Measurement-kind detection and sample naming from file names.

Files of the same device share a sample name once the measurement keywords
are removed, e.g.::

    0616_IDVG_Lin_1sccm_100.csv   -> IDVG-Linear,      sample 0616_1sccm_100
    0616_IDVG_Sat_1sccm_100.csv   -> IDVG-Saturation,  sample 0616_1sccm_100
    0616_IDVD_1sccm_100.csv       -> IDVD,             sample 0616_1sccm_100
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional, Union

from tft_extract.models.measurements import MeasurementKind, SampleIdentity

# Longer keywords first so "Linear" is not left as "ear"
SAMPLE_NAME_KEYWORDS = (
    "IDVG",
    "Linear",
    "Lin",
    "Saturation",
    "Sat",
    "Hysteresis",
    "Hys",
    "IDVD",
)

_KEYWORD_PATTERNS = [re.compile(rf"_?{kw}_?", re.IGNORECASE) for kw in SAMPLE_NAME_KEYWORDS]


def detect_measurement_kind(filename: Union[str, Path]) -> Optional[MeasurementKind]:
    """
    Measurement kind from keywords in a file name, or None if unknown.

    >>> detect_measurement_kind("0616_IDVG_Lin_Hys_A1.csv").value
    'IDVG-Hysteresis'
    >>> detect_measurement_kind("notes.csv") is None
    True
    """
    name = Path(filename).name.lower()

    if "idvd" in name:
        return MeasurementKind.IDVD
    if "idvg" in name:
        is_linear = "lin" in name
        if is_linear and "hys" in name:
            return MeasurementKind.IDVG_HYSTERESIS
        if is_linear:
            return MeasurementKind.IDVG_LINEAR
        if "sat" in name:
            return MeasurementKind.IDVG_SATURATION
    return None


def strip_extension(filename: Union[str, Path]) -> str:
    name = Path(filename).name
    return re.sub(r"\.[^/.]+$", "", name)


def generate_sample_name(filename: Union[str, Path]) -> str:
    """
    Sample name with measurement keywords and the extension removed.

    >>> generate_sample_name("0616_IDVG_Lin_1sccm_100.xls")
    '0616_1sccm_100'
    """
    name = strip_extension(filename)
    for pattern in _KEYWORD_PATTERNS:
        name = pattern.sub("_", name)
    name = re.sub(r"__+", "_", name)
    return name.strip("_")


def sample_identity(filename: Union[str, Path]) -> SampleIdentity:
    """
    SampleIdentity for a file; falls back to the bare file stem when removing
    keywords leaves nothing (e.g. a file called "IDVG_Lin.csv").
    """
    name = generate_sample_name(filename)
    if not name:
        name = strip_extension(filename)
    return SampleIdentity(name=name)
