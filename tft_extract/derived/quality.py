"""
Deterministic quality score and grade for a fused parameter set.

    score = 100 - 20·[Vth N/A] - 20·[gm_max N/A] - 15·[μFE N/A]
                - 10·[Y-function quality in {Poor, Failed}]
                - WARNING_PENALTY·len(warnings)

clamped to [0, 100]. Grades: A >= 90, B >= 80, C >= 70, D >= 60, else F.
"""

from __future__ import annotations

from typing import Sequence

from tft_extract.models.quantities import Quantity
from tft_extract.models.results import QualityAssessment, QualityGrade

WARNING_PENALTY = 5

MISSING_VTH_PENALTY = 20
MISSING_GM_MAX_PENALTY = 20
MISSING_MU_FE_PENALTY = 15
POOR_Y_FUNCTION_PENALTY = 10

GRADE_BOUNDARIES = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))


def grade_for(score: int) -> QualityGrade:
    """
    Letter grade for a 0-100 score.

    >>> [grade_for(s) for s in (90, 89, 80, 70, 60, 59)]
    ['A', 'B', 'B', 'C', 'D', 'F']
    """
    for floor, grade in GRADE_BOUNDARIES:
        if score >= floor:
            return grade
    return "F"


def assess_quality(
    vth: Quantity,
    gm_max: Quantity,
    mu_fe: Quantity,
    y_function_quality: str,
    warnings: Sequence[str],
) -> QualityAssessment:
    score = 100
    issues = []

    if not vth.is_available:
        score -= MISSING_VTH_PENALTY
        issues.append("Vth not available")
    if not gm_max.is_available:
        score -= MISSING_GM_MAX_PENALTY
        issues.append("gm_max not available")
    if not mu_fe.is_available:
        score -= MISSING_MU_FE_PENALTY
        issues.append("μFE not available")
    if y_function_quality in ("Poor", "Failed"):
        score -= POOR_Y_FUNCTION_PENALTY
        issues.append(f"Y-function quality {y_function_quality}")

    score -= WARNING_PENALTY * len(warnings)
    score = max(0, min(100, score))

    return QualityAssessment(score=score, grade=grade_for(score), issues=tuple(issues))
