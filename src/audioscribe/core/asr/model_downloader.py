"""
Fetches model archives from the catalogue and unpacks them into the models
directory.

The archive is streamed to a temporary file first so a cancelled or broken
transfer never leaves a half-extracted model behind.
"""

import tarfile
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional

import requests

from ...utils.logger import get_logger
from .file_utils import get_models_dir
from .model_registry import get_model_by_id

ProgressCallback = Callable[[int, int], None]
StatusCallback = Callable[[str], None]

CHUNK_BYTES = 64 * 1024

logger = get_logger(__name__)


class ModelDownloader:
    def __init__(self, timeout: float = 30.0):
        self._timeout = timeout
        self._cancel = threading.Event()

    def cancel(self) -> None:
        self._cancel.set()

    def download(
        self,
        model_id: str,
        on_progress: Optional[ProgressCallback] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> bool:
        """
        Make ``model_id`` available locally.

        Returns False if cancel() was called before the transfer finished.
        Unknown ids raise ValueError; transfer failures propagate as
        requests exceptions and corrupt archives as tarfile.TarError.
        """
        info = get_model_by_id(model_id)
        if info is None:
            raise ValueError(f"Unknown model: {model_id}")

        self._cancel.clear()
        target = Path(get_models_dir())
        target.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix="audioscribe-") as scratch:
            archive = Path(scratch) / f"{model_id}.tar.bz2"

            if on_status:
                on_status("Downloading...")
            logger.info(f"Fetching {model_id} from {info.url}")
            if not self._fetch(info.url, archive, on_progress):
                logger.info(f"Download of {model_id} cancelled")
                return False

            if on_status:
                on_status("Extracting files...")
            with tarfile.open(archive, "r:bz2") as tar:
                tar.extractall(path=target, filter="data")

        logger.info(f"Model {model_id} installed under {target}")
        return True

    def _fetch(
        self, url: str, destination: Path, on_progress: Optional[ProgressCallback]
    ) -> bool:
        try:
            with requests.get(url, stream=True, timeout=self._timeout) as response:
                response.raise_for_status()
                expected = int(response.headers.get("content-length", 0))
                received = 0
                with destination.open("wb") as out:
                    for chunk in response.iter_content(chunk_size=CHUNK_BYTES):
                        if self._cancel.is_set():
                            return False
                        out.write(chunk)
                        received += len(chunk)
                        if on_progress and expected > 0:
                            on_progress(received, expected)
        except requests.RequestException as e:
            logger.error(f"Fetching {url} failed: {e}")
            raise
        return not self._cancel.is_set()
