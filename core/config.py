"""Application settings persisted through QSettings."""

from dataclasses import dataclass
from typing import Optional

from PyQt6.QtCore import QSettings

from core.utils import HISTORY_CAPACITY, MAX_UPLOAD_BYTES

ORGANIZATION = "DR Detect"
APP_NAME = "DRDetect"

REPORT_FORMATS = ("txt", "json", "pdf")


@dataclass
class ScreeningConfig:
    """Tunable knobs for the screening pipeline."""
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    history_capacity: int = HISTORY_CAPACITY
    mock_latency_s: float = 2.0
    mock_seed: Optional[int] = None
    analysis_timeout_s: Optional[float] = None
    report_format: str = "txt"
    language: str = "en"


def _settings(settings: Optional[QSettings]) -> QSettings:
    return settings if settings is not None else QSettings(ORGANIZATION, APP_NAME)


def load_config(settings: Optional[QSettings] = None) -> ScreeningConfig:
    """Read the pipeline configuration, falling back to defaults.

    Values that cannot be used (negative sizes, unknown report formats) are
    replaced by their defaults rather than rejected.
    """
    s = _settings(settings)
    defaults = ScreeningConfig()

    max_upload = s.value("pipeline/max_upload_bytes", defaults.max_upload_bytes, type=int)
    capacity = s.value("pipeline/history_capacity", defaults.history_capacity, type=int)
    latency = s.value("engine/mock_latency_s", defaults.mock_latency_s, type=float)
    seed = s.value("engine/mock_seed", -1, type=int)
    timeout = s.value("engine/analysis_timeout_s", 0.0, type=float)
    report_format = s.value("report/format", defaults.report_format, type=str)
    language = s.value("language", defaults.language, type=str)

    return ScreeningConfig(
        max_upload_bytes=max_upload if max_upload > 0 else defaults.max_upload_bytes,
        history_capacity=capacity if capacity > 0 else defaults.history_capacity,
        mock_latency_s=max(0.0, latency),
        mock_seed=seed if seed >= 0 else None,
        analysis_timeout_s=timeout if timeout > 0 else None,
        report_format=report_format if report_format in REPORT_FORMATS else defaults.report_format,
        language=language or defaults.language,
    )


def save_config(config: ScreeningConfig, settings: Optional[QSettings] = None):
    """Persist the configuration. Unset optional values are stored as sentinels."""
    s = _settings(settings)
    s.setValue("pipeline/max_upload_bytes", config.max_upload_bytes)
    s.setValue("pipeline/history_capacity", config.history_capacity)
    s.setValue("engine/mock_latency_s", config.mock_latency_s)
    s.setValue("engine/mock_seed", config.mock_seed if config.mock_seed is not None else -1)
    s.setValue("engine/analysis_timeout_s", config.analysis_timeout_s or 0.0)
    s.setValue("report/format", config.report_format)
    s.setValue("language", config.language)
    s.sync()
