"""Runs a SessionController on its own asyncio loop in a background thread."""

import asyncio
from concurrent.futures import Future

from PyQt6.QtCore import QThread, pyqtSignal

from core.session_controller import SessionController
from core.utils import IncomingFile, ScreeningError


class SessionWorker(QThread):
    """Keeps the GUI thread free while the session uploads and analyzes.

    Every controller operation is submitted to the same event loop, so the
    session still has exactly one mutator. Each submit returns a
    ``concurrent.futures.Future``; the signals mirror the outcomes.
    """

    state_changed = pyqtSignal(str)        # SessionState value
    result_ready = pyqtSignal(object)      # ClassificationResult
    error = pyqtSignal(str)                # error message

    def __init__(self, controller: SessionController, parent=None):
        super().__init__(parent)
        self._controller = controller
        self._loop = asyncio.new_event_loop()

    @property
    def controller(self) -> SessionController:
        return self._controller

    def run(self):
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self._loop.run_until_complete(self._loop.shutdown_default_executor())
            self._loop.close()

    def stop(self, timeout_ms: int = 5000) -> bool:
        """Stop the loop and wait for the thread to finish."""
        if self._loop.is_closed():
            return True
        self._loop.call_soon_threadsafe(self._loop.stop)
        return self.wait(timeout_ms)

    def upload(self, file: IncomingFile) -> Future:
        return asyncio.run_coroutine_threadsafe(self._upload(file), self._loop)

    def analyze(self) -> Future:
        return asyncio.run_coroutine_threadsafe(self._analyze(), self._loop)

    def clear(self) -> Future:
        return asyncio.run_coroutine_threadsafe(self._clear(), self._loop)

    async def _upload(self, file: IncomingFile):
        try:
            image = await self._controller.upload(file)
        except ScreeningError as e:
            self.error.emit(str(e))
            raise
        self.state_changed.emit(self._controller.state.value)
        return image

    async def _analyze(self):
        try:
            result = await self._controller.analyze()
        except ScreeningError as e:
            self.error.emit(str(e))
            self.state_changed.emit(self._controller.state.value)
            raise
        self.state_changed.emit(self._controller.state.value)
        self.result_ready.emit(result)
        return result

    async def _clear(self):
        self._controller.clear()
        self.state_changed.emit(self._controller.state.value)
