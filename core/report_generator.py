"""Report export for screening results: plain text, JSON, and PDF."""

import json
import logging
from typing import Optional
from xml.sax.saxutils import escape

from core.report_formatter import (
    DISCLAIMER,
    FEATURE_LINES,
    REPORT_TITLE,
    ReportMetadata,
    render,
)
from core.utils import ClassificationResult, ProgressCallback

logger = logging.getLogger(__name__)


class ReportGenerator:
    """Writes reports for a classification result to disk."""

    def generate_txt(
        self,
        result: ClassificationResult,
        output_path: str,
        metadata: Optional[ReportMetadata] = None,
    ) -> bool:
        """Write the plain text report."""
        try:
            with open(output_path, "w", encoding="utf-8") as f:
                f.write(render(result, metadata))
            return True
        except OSError:
            logger.exception("Failed to write text report to %s", output_path)
            return False

    def generate_json(
        self,
        result: ClassificationResult,
        output_path: str,
        metadata: Optional[ReportMetadata] = None,
    ) -> bool:
        """Write a JSON export of the result."""
        meta = metadata or ReportMetadata()
        data = {
            "tool": "DR Detect",
            "patient_id": meta.patient_id,
            "generated_at": meta.generated_at.isoformat(),
            "analysis_type": meta.analysis_type,
            "image_name": meta.image_name,
            "diagnosis": result.label.value,
            "confidence": result.confidence,
            "severity": result.severity,
            "description": result.description,
            "recommendation": result.recommendation,
            "features": {name: getattr(result.features, name) for name, _ in FEATURE_LINES},
            "analyzed_at": result.timestamp.isoformat(),
            "disclaimer": DISCLAIMER,
        }
        try:
            with open(output_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            return True
        except OSError:
            logger.exception("Failed to write JSON report to %s", output_path)
            return False

    def generate_pdf(
        self,
        result: ClassificationResult,
        output_path: str,
        metadata: Optional[ReportMetadata] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bool:
        """Write a PDF with the same sections as the text report."""
        from reportlab.lib import colors
        from reportlab.lib.pagesizes import A4
        from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
        from reportlab.lib.units import mm
        from reportlab.platypus import (
            Paragraph,
            SimpleDocTemplate,
            Spacer,
            Table,
            TableStyle,
        )

        meta = metadata or ReportMetadata()

        def report(step, total, msg):
            if on_progress:
                on_progress(step, total, msg)

        try:
            report(1, 4, "Creating PDF layout...")

            doc = SimpleDocTemplate(
                output_path,
                pagesize=A4,
                leftMargin=20 * mm,
                rightMargin=20 * mm,
                topMargin=20 * mm,
                bottomMargin=20 * mm,
            )
            styles = getSampleStyleSheet()
            meta_style = ParagraphStyle("Meta", parent=styles["Normal"], fontSize=10, textColor=colors.grey)

            elements = [
                Paragraph(REPORT_TITLE.title(), styles["Title"]),
                Spacer(1, 4 * mm),
                Paragraph(f"Patient ID: {escape(meta.patient_id)}", meta_style),
                Paragraph(f"Date: {meta.generated_at.strftime('%Y-%m-%d %H:%M:%S')}", meta_style),
                Paragraph(f"Analysis: {meta.analysis_type}", meta_style),
            ]
            if meta.image_name:
                elements.append(Paragraph(f"Image: {escape(meta.image_name)}", meta_style))
            elements.append(Spacer(1, 6 * mm))

            report(2, 4, "Adding results...")

            elements.append(Paragraph("Results", styles["Heading2"]))
            elements.append(Paragraph(f"Diagnosis: <b>{result.label.value}</b>", styles["Normal"]))
            elements.append(Paragraph(f"Confidence: {result.confidence * 100:.1f}%", styles["Normal"]))
            elements.append(Paragraph(f"Severity Level: {result.severity}/4", styles["Normal"]))
            elements.append(Spacer(1, 6 * mm))

            report(3, 4, "Adding detected features...")

            elements.append(Paragraph("Detected Features", styles["Heading2"]))
            table_data = [["Feature", "Status"]]
            for name, label in FEATURE_LINES:
                table_data.append([label, "Present" if getattr(result.features, name) else "Not detected"])
            table = Table(table_data, colWidths=[200, 120])
            table.setStyle(TableStyle([
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2563EB")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#E5E7EB")),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F9FAFB")]),
                ("TOPPADDING", (0, 0), (-1, -1), 6),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ]))
            elements.append(table)
            elements.append(Spacer(1, 6 * mm))

            elements.append(Paragraph("Recommendation", styles["Heading2"]))
            elements.append(Paragraph(result.recommendation, styles["Normal"]))
            elements.append(Spacer(1, 10 * mm))

            disclaimer_style = ParagraphStyle(
                "Disclaimer",
                parent=styles["Normal"],
                fontSize=9,
                textColor=colors.HexColor("#92400E"),
                backColor=colors.HexColor("#FEF3C7"),
                borderColor=colors.HexColor("#F59E0B"),
                borderWidth=1,
                borderPadding=8,
            )
            elements.append(Paragraph("Disclaimer", styles["Heading2"]))
            elements.append(Paragraph(DISCLAIMER, disclaimer_style))

            report(4, 4, "Writing PDF...")

            doc.build(elements)
            return True

        except Exception:
            logger.exception("Failed to write PDF report to %s", output_path)
            return False

    def generate(
        self,
        result: ClassificationResult,
        output_path: str,
        format: str = "txt",
        metadata: Optional[ReportMetadata] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bool:
        """Dispatch to the writer for ``format``."""
        if format == "pdf":
            return self.generate_pdf(result, output_path, metadata, on_progress=on_progress)
        elif format == "json":
            return self.generate_json(result, output_path, metadata)
        elif format == "txt":
            return self.generate_txt(result, output_path, metadata)
        raise ValueError(f"Unknown report format: {format}")
