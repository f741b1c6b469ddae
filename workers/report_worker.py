"""Background worker for report export."""

from typing import Optional

from PyQt6.QtCore import QThread, pyqtSignal

from core.report_formatter import ReportMetadata
from core.report_generator import ReportGenerator
from core.utils import ClassificationResult


class ReportWorker(QThread):
    """Writes a report in a background thread."""

    progress = pyqtSignal(int, int, str)
    finished = pyqtSignal(str)            # output_path
    error = pyqtSignal(str)

    def __init__(
        self,
        result: ClassificationResult,
        output_path: str,
        format: str = "txt",
        metadata: Optional[ReportMetadata] = None,
        parent=None,
    ):
        super().__init__(parent)
        self._result = result
        self._output_path = output_path
        self._format = format
        self._metadata = metadata or ReportMetadata()

    def run(self):
        try:
            success = ReportGenerator().generate(
                self._result,
                self._output_path,
                format=self._format,
                metadata=self._metadata,
                on_progress=lambda s, t, m: self.progress.emit(s, t, m),
            )
        except Exception as e:
            self.error.emit(str(e))
            return

        if success:
            self.finished.emit(self._output_path)
        else:
            self.error.emit(f"Failed to generate {self._format.upper()} report.")
