"""Shared dataclasses, enums, errors, and platform-specific paths."""

import mimetypes
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional


# --- Type aliases ---

ProgressCallback = Callable[[int, int, str], None]  # (step, total, message)


# --- Limits ---

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
HISTORY_CAPACITY = 10


# --- Enums ---

class SessionState(Enum):
    IDLE = "idle"
    IMAGE_SELECTED = "image_selected"
    ANALYZING = "analyzing"
    RESULT_READY = "result_ready"


class DRGrade(Enum):
    """Diabetic retinopathy grade, ordered by severity."""
    NO_DR = "No DR"
    MILD_NPDR = "Mild NPDR"
    MODERATE_NPDR = "Moderate NPDR"
    SEVERE_NPDR = "Severe NPDR"
    PROLIFERATIVE_DR = "Proliferative DR"


class IngestErrorKind(Enum):
    INVALID_TYPE = "invalid_type"
    TOO_LARGE = "too_large"


class EngineErrorKind(Enum):
    TIMEOUT = "timeout"
    FAILURE = "failure"
    CANCELLED = "cancelled"


# --- Errors ---

class ScreeningError(Exception):
    """Base class for recoverable screening pipeline errors."""


class IngestError(ScreeningError):
    """An uploaded file was rejected before analysis."""

    def __init__(self, kind: IngestErrorKind, message: str = ""):
        super().__init__(message or kind.value)
        self.kind = kind


class EngineError(ScreeningError):
    """A classification engine did not produce a usable result."""

    def __init__(self, kind: EngineErrorKind, message: str = ""):
        super().__init__(message or kind.value)
        self.kind = kind


class InvalidTransitionError(ScreeningError):
    """An operation was requested in a session state that does not allow it."""

    def __init__(self, operation: str, state: SessionState):
        from i18n import t
        super().__init__(t("errors.invalid_transition", operation=operation, state=state.value))
        self.operation = operation
        self.state = state


# --- Dataclasses ---

@dataclass(frozen=True)
class IncomingFile:
    """A file handed to the pipeline by the caller, before validation."""
    name: str
    mime_type: str
    data: bytes = field(repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, file_path: str) -> "IncomingFile":
        """Read a file from disk, guessing its MIME type from the extension."""
        path = Path(file_path)
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            mime_type=mime_type or "application/octet-stream",
            data=path.read_bytes(),
        )


@dataclass(frozen=True)
class UploadedImage:
    """A validated image, ready for preview and analysis."""
    name: str
    mime_type: str
    size_bytes: int
    data: bytes = field(repr=False)
    preview_uri: str = field(default="", repr=False)
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class RetinalFeatures:
    """Lesion findings reported alongside a grade."""
    microaneurysms: bool = False
    hemorrhages: bool = False
    exudates: bool = False
    cotton_wool_spots: bool = False
    neovascularization: bool = False


@dataclass(frozen=True)
class ClassificationResult:
    """Result of a single retinal image classification."""
    label: DRGrade
    confidence: float
    severity: int
    description: str
    recommendation: str
    features: RetinalFeatures
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def display_tier(self) -> str:
        from core.grading import grade_for_severity
        return grade_for_severity(self.severity).tier


@dataclass(frozen=True)
class HistoryEntry:
    """A completed analysis kept in the session history."""
    id: str
    image: UploadedImage
    result: ClassificationResult
    filename: str


@dataclass
class Session:
    """State of the single live screening session."""
    current_image: Optional[UploadedImage] = None
    current_result: Optional[ClassificationResult] = None
    state: SessionState = SessionState.IDLE
    last_error: Optional[str] = None


# --- Platform-specific paths ---

def get_data_dir() -> Path:
    """Get the platform-specific application data directory."""
    if sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support" / "DRDetect"
    elif sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home())) / "DRDetect"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "drdetect"
    base.mkdir(parents=True, exist_ok=True)
    return base


def get_reports_dir() -> Path:
    """Get the default directory for exported reports."""
    reports_dir = get_data_dir() / "reports"
    reports_dir.mkdir(parents=True, exist_ok=True)
    return reports_dir


# --- Formatting ---

def format_file_size(size_bytes: int) -> str:
    """Format byte count as human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"
