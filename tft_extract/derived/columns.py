"""
Column resolution for instrument tables.

Instrument exports label columns inconsistently ("DrainI", "ID(A)", "GateV",
"Vg"...). :func:`resolve_columns` maps header labels to semantic fields with a
case-insensitive substring match and reports how each match was made, so
every analyzer resolves columns the same way.

Matching rules, per field, in order:
1. Specific token ("gatev", "draini", "drainv", "gatei") -> confidence 1.0
2. Generic token ("vg", "id", "vd", "ig")                -> confidence 0.8
3. Positional fallback (VG=3, ID=0, VD=1)               -> confidence 0.3

A header is claimed by at most one field, and fields with a specific match are
resolved before generic ones. Generic tokens are short, so labels such as
"Vgid" can still match the wrong field; a low confidence is how callers find out.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

CONFIDENCE_SPECIFIC = 1.0
CONFIDENCE_GENERIC = 0.8
CONFIDENCE_POSITIONAL = 0.3

# field -> (specific tokens, generic tokens, positional fallback)
COLUMN_RULES: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...], Optional[int]]] = {
    "vg": (("gatev",), ("vg",), 3),
    "id": (("draini",), ("id",), 0),
    "vd": (("drainv",), ("vd",), 1),
    "ig": (("gatei",), ("ig",), None),
    "gm": (("transconductance",), ("gm",), None),
}


@dataclass(frozen=True)
class ColumnMatch:
    index: int
    confidence: float
    label: Optional[str] = None


def _normalize(label) -> str:
    return str(label).strip().lower() if label is not None else ""


def _first_match(labels: List[str], tokens: Sequence[str], taken: set) -> Optional[int]:
    for idx, label in enumerate(labels):
        if idx in taken:
            continue
        if any(token in label for token in tokens):
            return idx
    return None


def resolve_columns(
    headers: Sequence,
    n_columns: Optional[int] = None,
) -> Dict[str, Optional[ColumnMatch]]:
    """
    Resolve semantic fields to column indices.

    Parameters
    ----------
    headers : sequence
        Header labels (non-string entries are treated as empty)
    n_columns : int, optional
        Table width; positional fallbacks beyond it resolve to None.
        Defaults to ``len(headers)``.

    Returns
    -------
    dict
        Field name ("vg", "id", "vd", "ig", "gm") -> ColumnMatch or None

    Examples
    --------
    >>> m = resolve_columns(["DrainI", "DrainV", "GateI", "GateV"])
    >>> m["vg"].index, m["id"].index, m["ig"].index
    (3, 0, 2)
    >>> resolve_columns(["a", "b", "c", "d"])["vg"].confidence
    0.3
    """
    labels = [_normalize(h) for h in headers]
    width = len(labels) if n_columns is None else n_columns
    taken: set = set()
    matches: Dict[str, Optional[ColumnMatch]] = {name: None for name in COLUMN_RULES}

    for name, (specific, _, _) in COLUMN_RULES.items():
        idx = _first_match(labels, specific, taken)
        if idx is not None:
            matches[name] = ColumnMatch(idx, CONFIDENCE_SPECIFIC, str(headers[idx]))
            taken.add(idx)

    for name, (_, generic, _) in COLUMN_RULES.items():
        if matches[name] is not None:
            continue
        idx = _first_match(labels, generic, taken)
        if idx is not None:
            matches[name] = ColumnMatch(idx, CONFIDENCE_GENERIC, str(headers[idx]))
            taken.add(idx)

    for name, (_, _, position) in COLUMN_RULES.items():
        if matches[name] is None and position is not None and position < width:
            label = str(headers[position]) if position < len(headers) else None
            matches[name] = ColumnMatch(position, CONFIDENCE_POSITIONAL, label)

    return matches


def resolution_confidence(matches: Dict[str, Optional[ColumnMatch]], fields: Sequence[str]) -> float:
    """Lowest confidence over the fields an analyzer needs; 0 if any is missing."""
    values = [matches[f].confidence if matches.get(f) is not None else 0.0 for f in fields]
    return min(values) if values else 0.0
