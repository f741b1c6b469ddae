"""Shared test fixtures for DR Detect."""

import asyncio
import io
import os
import tempfile
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from core.engines import ClassificationEngine
from core.grading import build_result
from core.utils import (
    ClassificationResult,
    DRGrade,
    IncomingFile,
    RetinalFeatures,
    UploadedImage,
)


def make_fundus_png(size: int = 64) -> bytes:
    """A dark disc on black, roughly the look of a fundus photograph."""
    yy, xx = np.mgrid[0:size, 0:size]
    radius = np.hypot(yy - size / 2, xx - size / 2)
    pixels = np.zeros((size, size, 3), dtype=np.uint8)
    disc = radius < size * 0.45
    pixels[disc] = (180, 70, 30)
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()


class GatedEngine(ClassificationEngine):
    """Engine whose classification stays in flight until released."""

    name = "gated"

    def __init__(self, severity: int = 2, confidence: float = 0.8):
        self._severity = severity
        self._confidence = confidence
        self.calls = 0
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def classify(self, image: UploadedImage) -> ClassificationResult:
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return build_result(self._severity, self._confidence, RetinalFeatures(hemorrhages=True))


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def fundus_png():
    return make_fundus_png()


@pytest.fixture
def fundus_file(fundus_png):
    """A small valid PNG upload."""
    return IncomingFile(name="fundus.png", mime_type="image/png", data=fundus_png)


@pytest.fixture
def fundus_path(tmp_dir, fundus_png):
    path = tmp_dir / "fundus.png"
    path.write_bytes(fundus_png)
    return str(path)


@pytest.fixture
def uploaded_image(fundus_png):
    return UploadedImage(
        name="fundus.png",
        mime_type="image/png",
        size_bytes=len(fundus_png),
        data=fundus_png,
        preview_uri="data:image/png;base64,",
        width=64,
        height=64,
    )


@pytest.fixture
def sample_result():
    """A moderate NPDR result with two features present."""
    result = build_result(
        2,
        0.83,
        RetinalFeatures(microaneurysms=True, hemorrhages=True),
    )
    assert result.label is DRGrade.MODERATE_NPDR
    return result


@pytest.fixture
def settings(tmp_dir):
    """An isolated INI-backed QSettings."""
    from PyQt6.QtCore import QSettings
    return QSettings(str(tmp_dir / "settings.ini"), QSettings.Format.IniFormat)


@pytest.fixture
def qt_app():
    from PyQt6.QtCore import QCoreApplication
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture(autouse=True)
def _init_i18n():
    """Use English catalogs for all tests."""
    import i18n
    i18n.init(language="en")
