"""Plain-text screening report rendering."""

import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from core.utils import ClassificationResult, RetinalFeatures

DISCLAIMER = (
    "This AI screening tool is for educational purposes and should not replace "
    "professional medical diagnosis. Please consult with a qualified "
    "ophthalmologist for definitive diagnosis and treatment."
)

REPORT_TITLE = "DIABETIC RETINOPATHY SCREENING REPORT"

# Report order and wording of the feature lines
FEATURE_LINES: Tuple[Tuple[str, str], ...] = (
    ("microaneurysms", "Microaneurysms"),
    ("hemorrhages", "Hemorrhages"),
    ("exudates", "Hard Exudates"),
    ("cotton_wool_spots", "Cotton Wool Spots"),
    ("neovascularization", "Neovascularization"),
)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_patient_id(length: int = 9) -> str:
    """Random opaque identifier, lowercase base-36."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class ReportMetadata:
    """Per-report details that are not part of the classification result."""
    patient_id: str = field(default_factory=generate_patient_id)
    generated_at: datetime = field(default_factory=datetime.now)
    analysis_type: str = "AI-Assisted Screening"
    image_name: Optional[str] = None


def _section(title: str) -> List[str]:
    heading = f"{title}:"
    return [heading, "-" * len(heading)]


def feature_lines(features: RetinalFeatures) -> List[str]:
    """One line per feature, always all five."""
    return [
        f"• {label}: {'Present' if getattr(features, name) else 'Not detected'}"
        for name, label in FEATURE_LINES
    ]


def render(result: ClassificationResult, metadata: Optional[ReportMetadata] = None) -> str:
    """Render a fixed-layout text report for a classification result."""
    meta = metadata or ReportMetadata()

    lines = [
        REPORT_TITLE,
        "=" * len(REPORT_TITLE),
        "",
        f"Patient ID: {meta.patient_id}",
        f"Date: {meta.generated_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"Analysis: {meta.analysis_type}",
    ]
    if meta.image_name:
        lines.append(f"Image: {meta.image_name}")

    lines.append("")
    lines.extend(_section("RESULTS"))
    lines.extend([
        f"Diagnosis: {result.label.value}",
        f"Confidence: {result.confidence * 100:.1f}%",
        f"Severity Level: {result.severity}/4",
        "",
    ])

    lines.extend(_section("DETECTED FEATURES"))
    lines.extend(feature_lines(result.features))
    lines.append("")

    lines.extend(_section("RECOMMENDATION"))
    lines.extend([result.recommendation, ""])

    lines.extend(_section("DISCLAIMER"))
    lines.append(DISCLAIMER)

    return "\n".join(lines) + "\n"


def suggested_filename(metadata: ReportMetadata, extension: str = "txt") -> str:
    return f"DR_Report_{metadata.patient_id}.{extension}"
