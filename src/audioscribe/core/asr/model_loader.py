"""Qt thread that warms the shared local model before the first transcription."""

from PySide6.QtCore import QThread, Signal

from ...utils.logger import get_logger
from .local_backend import LocalModelBackend

logger = get_logger(__name__)


class ModelLoaderThread(QThread):
    """
    Runs ``LocalModelBackend.preload`` off the UI thread.

    ``progress`` carries download/initialization progress in [0, 1];
    ``finished`` carries (ok, human readable message).
    """

    finished = Signal(bool, str)
    progress = Signal(float)

    def __init__(self, backend: LocalModelBackend, parent=None):
        super().__init__(parent)
        self.backend = backend

    def run(self):
        model_id = self.backend.model_id
        logger.info(f"Preloading {model_id}")
        try:
            self.backend.preload(on_progress=self.progress.emit)
        except Exception as e:
            logger.exception(f"Preloading {model_id} failed")
            self.finished.emit(False, f"Error loading model: {e}")
        else:
            logger.info(f"Preloaded {model_id}")
            self.finished.emit(True, f"Model {model_id} ready")
