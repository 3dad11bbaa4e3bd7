"""
Reading measurement tables from disk.

Transistor measurements are one CSV per file with the instrument header row
kept as column names. A TLM sample is a directory holding one CSV per
worksheet; the file stem is the worksheet name (e.g. ``1.5mm.csv``).

All cells are read as text and cast to float non-strictly, so stray labels or
units inside the data become nulls instead of failing the whole file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Union

import polars as pl

from tft_extract.core.errors import MalformedInputError

logger = logging.getLogger(__name__)


def _read_text_table(path: Path) -> pl.DataFrame:
    return pl.read_csv(
        path,
        comment_prefix="#",
        has_header=True,
        infer_schema_length=0,
        try_parse_dates=False,
        truncate_ragged_lines=True,
    )


def read_measurement_table(path: Union[str, Path]) -> pl.DataFrame:
    """
    Load one measurement CSV as a float table.

    Fully empty rows are dropped; non-numeric cells become null. Duplicate
    header labels (repeated IDVD blocks) are kept as separate columns.

    Raises
    ------
    MalformedInputError
        If the file cannot be parsed or has no data rows.
    """
    path = Path(path)
    try:
        df = _read_text_table(path)
    except (pl.exceptions.PolarsError, OSError, UnicodeDecodeError) as e:
        raise MalformedInputError(f"Cannot read {path.name}: {e}") from e

    if df.width == 0:
        raise MalformedInputError(f"{path.name} has no columns")

    df = df.with_columns(pl.all().str.strip_chars().cast(pl.Float64, strict=False))
    df = df.filter(~pl.all_horizontal(pl.all().is_null()))

    if df.height == 0:
        raise MalformedInputError(f"{path.name} has no numeric data rows")

    logger.debug(f"Loaded {path.name}: {df.height} rows x {df.width} columns")
    return df


def discover_measurement_files(paths: List[Union[str, Path]], pattern: str = "*.csv") -> List[Path]:
    """Expand directories into their CSV files (sorted); files are kept as given."""
    found: List[Path] = []
    for p in map(Path, paths):
        if p.is_dir():
            found.extend(sorted(p.glob(pattern)))
        elif p.exists():
            found.append(p)
        else:
            logger.warning(f"Path not found, skipped: {p}")
    return found


def read_tlm_sample(directory: Union[str, Path]) -> Dict[str, pl.DataFrame]:
    """
    Load a TLM sample directory as {sheet name: table}.

    Sheets that cannot be read are logged and left out.

    Raises
    ------
    MalformedInputError
        If the directory does not exist or holds no readable CSV.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise MalformedInputError(f"TLM sample {directory} is not a directory")

    sheets: Dict[str, pl.DataFrame] = {}
    for csv_path in sorted(directory.glob("*.csv")):
        try:
            sheets[csv_path.stem] = read_measurement_table(csv_path)
        except MalformedInputError as e:
            logger.warning(f"{directory.name}: {e}")

    if not sheets:
        raise MalformedInputError(f"TLM sample {directory.name} has no readable CSV sheets")
    return sheets
