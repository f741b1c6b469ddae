"""Single-session state machine sequencing upload, analysis and history.

States and transitions::

    IDLE           --upload-->   IMAGE_SELECTED
    IMAGE_SELECTED --upload-->   IMAGE_SELECTED   (image replaced)
    IMAGE_SELECTED --analyze-->  ANALYZING
    ANALYZING      --success-->  RESULT_READY     (history entry appended)
    ANALYZING      --failure-->  IMAGE_SELECTED   (error kept in last_error)
    ANALYZING      --upload-->   IMAGE_SELECTED   (in-flight analysis cancelled)
    RESULT_READY   --upload-->   IMAGE_SELECTED   (result cleared)
    RESULT_READY   --analyze-->  ANALYZING
    any            --clear-->    IDLE

All mutation happens on one event loop; the only suspension points are the
image decode and the engine call, and every transition that depends on them
happens after they are awaited.
"""

import asyncio
import logging
import uuid
from typing import Optional

from core.engines import ClassificationEngine
from core.grading import MAX_SEVERITY, grade_for_severity
from core.image_ingestor import ImageIngestor
from core.report_formatter import ReportMetadata, render
from core.session_history import SessionHistory
from core.utils import (
    ClassificationResult,
    EngineError,
    EngineErrorKind,
    HistoryEntry,
    IncomingFile,
    InvalidTransitionError,
    Session,
    SessionState,
    UploadedImage,
)

logger = logging.getLogger(__name__)

_ANALYZABLE = (SessionState.IMAGE_SELECTED, SessionState.RESULT_READY)


class SessionController:
    """Owns the live Session and drives it through its state machine."""

    def __init__(
        self,
        engine: ClassificationEngine,
        ingestor: Optional[ImageIngestor] = None,
        history: Optional[SessionHistory] = None,
        timeout_s: Optional[float] = None,
        session: Optional[Session] = None,
    ):
        self._engine = engine
        self._ingestor = ingestor or ImageIngestor()
        self._history = history if history is not None else SessionHistory()
        self._timeout_s = timeout_s
        self._session = session or Session()
        self._inflight: Optional[asyncio.Task] = None

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def history(self) -> SessionHistory:
        return self._history

    @property
    def engine(self) -> ClassificationEngine:
        return self._engine

    def _set_state(self, state: SessionState):
        if state is not self._session.state:
            logger.info("Session %s -> %s", self._session.state.value, state.value)
        self._session.state = state

    # --- Operations ---

    async def upload(self, file: IncomingFile) -> UploadedImage:
        """Validate ``file`` and make it the current image.

        IngestError propagates with the session untouched. A successful
        upload during analysis cancels the in-flight classification.
        """
        image = await self._ingestor.validate(file)

        if self._session.state is SessionState.ANALYZING:
            logger.info("Upload of %s supersedes in-flight analysis", image.name)
            self._cancel_inflight()

        self._session.current_image = image
        self._session.current_result = None
        self._session.last_error = None
        self._set_state(SessionState.IMAGE_SELECTED)
        return image

    async def analyze(self) -> ClassificationResult:
        """Classify the current image and record the result in history."""
        session = self._session
        if session.state not in _ANALYZABLE:
            logger.warning("Rejected analyze while %s", session.state.value)
            raise InvalidTransitionError("analyze", session.state)

        image = session.current_image
        session.current_result = None
        session.last_error = None
        self._set_state(SessionState.ANALYZING)

        task = asyncio.ensure_future(self._classify(image))
        self._inflight = task
        try:
            result = await task
        except asyncio.CancelledError:
            if self._inflight is task:
                # The caller cancelled analyze() itself
                self._inflight = None
                self._set_state(SessionState.IMAGE_SELECTED)
                raise
            raise self._superseded(image) from None
        except EngineError as e:
            if self._inflight is not task:
                raise self._superseded(image) from e
            self._fail(image, e)
            raise
        except Exception as e:
            from i18n import t
            if self._inflight is not task:
                raise self._superseded(image) from e
            error = EngineError(EngineErrorKind.FAILURE, t("errors.engine_failure", reason=str(e) or type(e).__name__))
            self._fail(image, error)
            raise error from e

        if self._inflight is not task:
            # Finished just as a newer upload replaced the image
            raise self._superseded(image)

        self._inflight = None
        session.current_result = result
        self._set_state(SessionState.RESULT_READY)
        self._history.append(HistoryEntry(
            id=uuid.uuid4().hex,
            image=image,
            result=result,
            filename=image.name,
        ))
        logger.info(
            "Analysis of %s: %s (%.1f%%)",
            image.name, result.label.value, result.confidence * 100,
        )
        return result

    def clear(self):
        """Drop the current image and result, cancelling any analysis."""
        if self._session.state is SessionState.ANALYZING:
            self._cancel_inflight()
        self._session.current_image = None
        self._session.current_result = None
        self._session.last_error = None
        self._set_state(SessionState.IDLE)

    def render_report(self, metadata: Optional[ReportMetadata] = None) -> str:
        """Render the text report for the current result."""
        result = self._session.current_result
        if result is None:
            raise InvalidTransitionError("render a report", self._session.state)
        if metadata is None:
            metadata = ReportMetadata(image_name=self._session.current_image.name)
        return render(result, metadata)

    # --- Internals ---

    async def _classify(self, image: UploadedImage) -> ClassificationResult:
        if self._timeout_s is None:
            result = await self._engine.classify(image)
        else:
            try:
                result = await asyncio.wait_for(self._engine.classify(image), timeout=self._timeout_s)
            except asyncio.TimeoutError:
                from i18n import t
                raise EngineError(EngineErrorKind.TIMEOUT, t("errors.timeout", seconds=self._timeout_s))
        self._check_contract(result)
        return result

    @staticmethod
    def _check_contract(result: ClassificationResult):
        """Reject results that break the engine contract."""
        if not isinstance(result, ClassificationResult):
            raise EngineError(EngineErrorKind.FAILURE, f"Engine returned {type(result).__name__}")
        row = grade_for_severity(result.severity)
        if result.label is not row.label:
            raise EngineError(EngineErrorKind.FAILURE, f"Label {result.label.value} does not match severity {result.severity}")
        if not 0.0 <= result.confidence <= 1.0:
            raise EngineError(EngineErrorKind.FAILURE, f"Confidence {result.confidence} is outside [0, 1]")
        if result.features.neovascularization and result.severity != MAX_SEVERITY:
            raise EngineError(EngineErrorKind.FAILURE, "Neovascularization reported below proliferative grade")

    def _cancel_inflight(self):
        task, self._inflight = self._inflight, None
        if task is not None:
            task.cancel()

    def _fail(self, image: UploadedImage, error: EngineError):
        logger.error("Analysis of %s failed (%s): %s", image.name, error.kind.value, error)
        self._inflight = None
        self._session.last_error = str(error)
        self._set_state(SessionState.IMAGE_SELECTED)

    @staticmethod
    def _superseded(image: UploadedImage) -> EngineError:
        from i18n import t
        logger.info("Discarded analysis of %s after a newer upload", image.name)
        return EngineError(EngineErrorKind.CANCELLED, t("errors.cancelled"))
