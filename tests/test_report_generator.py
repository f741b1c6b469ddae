"""Tests for core.report_generator module."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from core.report_formatter import DISCLAIMER, ReportMetadata, render
from core.report_generator import ReportGenerator


@pytest.fixture
def metadata():
    return ReportMetadata(patient_id="abc123def", image_name="fundus.png")


class TestGenerateTxt:
    def test_creates_file(self, tmp_dir, sample_result, metadata):
        output = str(tmp_dir / "report.txt")
        assert ReportGenerator().generate_txt(sample_result, output, metadata) is True
        assert Path(output).exists()

    def test_content_matches_render(self, tmp_dir, sample_result, metadata):
        output = tmp_dir / "report.txt"
        ReportGenerator().generate_txt(sample_result, str(output), metadata)
        assert output.read_text(encoding="utf-8") == render(sample_result, metadata)

    def test_unwritable_path(self, tmp_dir, sample_result, metadata):
        output = str(tmp_dir / "missing" / "report.txt")
        assert ReportGenerator().generate_txt(sample_result, output, metadata) is False


class TestGenerateJson:
    def test_json_structure(self, tmp_dir, sample_result, metadata):
        output = tmp_dir / "report.json"
        assert ReportGenerator().generate_json(sample_result, str(output), metadata)

        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["tool"] == "DR Detect"
        assert data["patient_id"] == "abc123def"
        assert data["diagnosis"] == "Moderate NPDR"
        assert data["severity"] == 2
        assert data["confidence"] == 0.83
        assert data["disclaimer"] == DISCLAIMER
        assert data["features"] == {
            "microaneurysms": True,
            "hemorrhages": True,
            "exudates": False,
            "cotton_wool_spots": False,
            "neovascularization": False,
        }

    def test_unwritable_path(self, tmp_dir, sample_result):
        output = str(tmp_dir / "missing" / "report.json")
        assert ReportGenerator().generate_json(sample_result, output) is False


class TestGeneratePdf:
    def test_pdf_magic_bytes(self, tmp_dir, sample_result, metadata):
        output = tmp_dir / "report.pdf"
        assert ReportGenerator().generate_pdf(sample_result, str(output), metadata)
        with open(output, "rb") as f:
            assert f.read(4) == b"%PDF"

    def test_progress_callback(self, tmp_dir, sample_result, metadata):
        steps = []
        ReportGenerator().generate_pdf(
            sample_result, str(tmp_dir / "report.pdf"), metadata,
            on_progress=lambda s, t, m: steps.append((s, t, m)),
        )
        assert [s for s, _, _ in steps] == [1, 2, 3, 4]

    def test_layout_error_returns_false(self, tmp_dir, sample_result, metadata):
        with patch("reportlab.platypus.SimpleDocTemplate.build", side_effect=RuntimeError("bad layout")):
            assert ReportGenerator().generate_pdf(sample_result, str(tmp_dir / "report.pdf"), metadata) is False


class TestGenerate:
    @pytest.mark.parametrize("fmt", ["txt", "json", "pdf"])
    def test_dispatch(self, tmp_dir, sample_result, fmt):
        output = tmp_dir / f"report.{fmt}"
        assert ReportGenerator().generate(sample_result, str(output), format=fmt)
        assert output.stat().st_size > 0

    def test_unknown_format(self, tmp_dir, sample_result):
        with pytest.raises(ValueError):
            ReportGenerator().generate(sample_result, str(tmp_dir / "r.doc"), format="doc")
