"""Five-level diabetic retinopathy grading table.

Every classification engine maps its output severity through this table, so
label, description, recommendation and display tier always agree with the
severity. Severities outside 0-4 have no row and are rejected.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from core.utils import (
    ClassificationResult,
    DRGrade,
    EngineError,
    EngineErrorKind,
    RetinalFeatures,
)


@dataclass(frozen=True)
class GradeInfo:
    """One row of the grading table."""
    severity: int
    label: DRGrade
    description: str
    recommendation: str
    tier: str
    nominal_confidence: float


GRADING_TABLE: List[GradeInfo] = [
    GradeInfo(
        severity=0,
        label=DRGrade.NO_DR,
        description="No signs of diabetic retinopathy detected",
        recommendation="Continue routine eye exams annually",
        tier="green",
        nominal_confidence=0.92,
    ),
    GradeInfo(
        severity=1,
        label=DRGrade.MILD_NPDR,
        description="Early microaneurysms, minimal impact",
        recommendation="Recheck in 6–12 months, manage blood sugar",
        tier="yellow",
        nominal_confidence=0.87,
    ),
    GradeInfo(
        severity=2,
        label=DRGrade.MODERATE_NPDR,
        description="Hemorrhages and exudates present",
        recommendation="Ophthalmologist visit in 3–6 months",
        tier="orange",
        nominal_confidence=0.83,
    ),
    GradeInfo(
        severity=3,
        label=DRGrade.SEVERE_NPDR,
        description="Extensive hemorrhages, cotton-wool spots",
        recommendation="Retinal specialist consult within 1–3 months",
        tier="red",
        nominal_confidence=0.89,
    ),
    GradeInfo(
        severity=4,
        label=DRGrade.PROLIFERATIVE_DR,
        description="Abnormal vessel growth, retinal damage",
        recommendation="Immediate referral and treatment",
        tier="dark-red",
        nominal_confidence=0.94,
    ),
]

_BY_LABEL: Dict[DRGrade, GradeInfo] = {row.label: row for row in GRADING_TABLE}

MAX_SEVERITY = len(GRADING_TABLE) - 1


def grade_for_severity(severity: int) -> GradeInfo:
    """Look up the table row for a severity, rejecting unknown values."""
    if isinstance(severity, bool) or not isinstance(severity, int):
        raise EngineError(EngineErrorKind.FAILURE, f"Severity must be an integer, got {severity!r}")
    if not 0 <= severity <= MAX_SEVERITY:
        raise EngineError(EngineErrorKind.FAILURE, f"Severity {severity} is outside 0-{MAX_SEVERITY}")
    return GRADING_TABLE[severity]


def grade_for_label(label: DRGrade) -> GradeInfo:
    """Look up the table row for a grade label."""
    return _BY_LABEL[label]


def build_result(
    severity: int,
    confidence: float,
    features: RetinalFeatures,
    timestamp: Optional[datetime] = None,
) -> ClassificationResult:
    """Build a ClassificationResult whose text fields come from the table."""
    row = grade_for_severity(severity)

    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise EngineError(EngineErrorKind.FAILURE, f"Confidence must be a number, got {confidence!r}")
    if not 0.0 <= confidence <= 1.0:
        raise EngineError(EngineErrorKind.FAILURE, f"Confidence {confidence} is outside [0, 1]")

    # Neovascularization is the defining sign of proliferative DR
    if features.neovascularization and severity != MAX_SEVERITY:
        raise EngineError(
            EngineErrorKind.FAILURE,
            f"Neovascularization reported for severity {severity}",
        )

    return ClassificationResult(
        label=row.label,
        confidence=float(confidence),
        severity=row.severity,
        description=row.description,
        recommendation=row.recommendation,
        features=features,
        timestamp=timestamp or datetime.now(timezone.utc),
    )
