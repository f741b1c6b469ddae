"""Classification engines for retinal images.

``ClassificationEngine`` is the contract the session controller depends on.
``MockEngine`` simulates a model with table-driven random output, and
``RemoteEngine`` adapts an injected transport to the same contract, validating
whatever the remote side returns.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import numpy as np

from core.grading import MAX_SEVERITY, build_result, grade_for_severity
from core.utils import (
    ClassificationResult,
    DRGrade,
    EngineError,
    EngineErrorKind,
    RetinalFeatures,
    UploadedImage,
)

logger = logging.getLogger(__name__)

Transport = Callable[[bytes, str], Awaitable[Mapping[str, Any]]]

# Probability threshold each flag's uniform draw must exceed to be reported
FEATURE_THRESHOLDS: Dict[str, float] = {
    "microaneurysms": 0.6,
    "hemorrhages": 0.7,
    "exudates": 0.8,
    "cotton_wool_spots": 0.9,
}

# Remote payload key -> RetinalFeatures field
REMOTE_FEATURE_KEYS: Dict[str, str] = {
    "microaneurysms": "microaneurysms",
    "hemorrhages": "hemorrhages",
    "exudates": "exudates",
    "cottonWoolSpots": "cotton_wool_spots",
    "neovascularization": "neovascularization",
}

REQUIRED_FIELDS = ("label", "confidence", "severity", "description", "recommendation", "features")


class ClassificationEngine(ABC):
    """Grades a retinal image into one of five DR severity levels."""

    name: str = "engine"

    @abstractmethod
    async def classify(self, image: UploadedImage) -> ClassificationResult:
        """Return exactly one result, or raise EngineError."""


class MockEngine(ClassificationEngine):
    """Stand-in engine that picks a grading table row at random.

    Latency is simulated with ``asyncio.sleep`` so callers see the same
    suspension behaviour as a real engine. Pass ``seed`` for reproducible
    output.
    """

    name = "mock"

    def __init__(self, latency_s: float = 2.0, seed: Optional[int] = None):
        self._latency_s = latency_s
        self._rng = np.random.default_rng(seed)
        self.calls = 0

    async def classify(self, image: UploadedImage) -> ClassificationResult:
        self.calls += 1
        logger.debug("Mock classification of %s started", image.name)
        if self._latency_s > 0:
            await asyncio.sleep(self._latency_s)

        row = grade_for_severity(int(self._rng.integers(0, MAX_SEVERITY + 1)))
        draws = {name: float(self._rng.random()) > threshold for name, threshold in FEATURE_THRESHOLDS.items()}
        features = RetinalFeatures(
            neovascularization=row.severity == MAX_SEVERITY,
            **draws,
        )

        result = build_result(row.severity, row.nominal_confidence, features)
        logger.debug("Mock classification of %s -> %s", image.name, result.label.value)
        return result


class RemoteEngine(ClassificationEngine):
    """Engine backed by a remote model reached through ``transport``.

    The transport receives the raw image bytes and MIME type and returns the
    decoded response mapping; framing is the transport's business.
    """

    name = "remote"

    def __init__(self, transport: Transport, timeout_s: Optional[float] = None):
        self._transport = transport
        self._timeout_s = timeout_s

    async def classify(self, image: UploadedImage) -> ClassificationResult:
        from i18n import t

        try:
            call = self._transport(image.data, image.mime_type)
            if self._timeout_s is not None:
                payload = await asyncio.wait_for(call, timeout=self._timeout_s)
            else:
                payload = await call
        except asyncio.TimeoutError:
            if self._timeout_s is None:
                logger.warning("Remote engine transport timed out for %s", image.name)
                raise EngineError(EngineErrorKind.TIMEOUT, t("errors.transport_timeout"))
            raise EngineError(EngineErrorKind.TIMEOUT, t("errors.timeout", seconds=self._timeout_s))
        except EngineError:
            raise
        except Exception as e:
            logger.error("Remote engine transport failed for %s: %s", image.name, e)
            raise EngineError(EngineErrorKind.FAILURE, t("errors.engine_failure", reason=str(e))) from e

        return parse_engine_response(payload)


def _parse_label(raw: Any) -> DRGrade:
    if isinstance(raw, str):
        for grade in DRGrade:
            if raw in (grade.value, grade.name):
                return grade
    raise EngineError(EngineErrorKind.FAILURE, f"Unknown label {raw!r}")


def _parse_timestamp(raw: Any) -> datetime:
    if raw is None:
        return datetime.now(timezone.utc)
    if isinstance(raw, str):
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            raise EngineError(EngineErrorKind.FAILURE, f"Malformed timestamp {raw!r}")
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise EngineError(EngineErrorKind.FAILURE, f"Malformed timestamp {raw!r}")


def parse_engine_response(payload: Mapping[str, Any]) -> ClassificationResult:
    """Validate a remote response and convert it into a ClassificationResult.

    Any missing field, wrong type, out-of-range value or label that disagrees
    with the severity is a contract violation and raises
    ``EngineError(FAILURE)``. Description and recommendation must be present
    but the stored text always comes from the grading table.
    """
    if not isinstance(payload, Mapping):
        raise EngineError(EngineErrorKind.FAILURE, "Response is not an object")

    missing = [key for key in REQUIRED_FIELDS if key not in payload]
    if missing:
        raise EngineError(EngineErrorKind.FAILURE, f"Response is missing {', '.join(missing)}")

    for key in ("description", "recommendation"):
        if not isinstance(payload[key], str):
            raise EngineError(EngineErrorKind.FAILURE, f"Field {key} must be a string")

    raw_features = payload["features"]
    if not isinstance(raw_features, Mapping):
        raise EngineError(EngineErrorKind.FAILURE, "Field features must be an object")
    flags = {}
    for remote_key, field_name in REMOTE_FEATURE_KEYS.items():
        value = raw_features.get(remote_key)
        if not isinstance(value, bool):
            raise EngineError(EngineErrorKind.FAILURE, f"Feature {remote_key} must be a boolean")
        flags[field_name] = value

    label = _parse_label(payload["label"])
    result = build_result(
        payload["severity"],
        payload["confidence"],
        RetinalFeatures(**flags),
        timestamp=_parse_timestamp(payload.get("timestamp")),
    )
    if result.label is not label:
        raise EngineError(
            EngineErrorKind.FAILURE,
            f"Label {label.value} does not match severity {result.severity}",
        )
    return result
