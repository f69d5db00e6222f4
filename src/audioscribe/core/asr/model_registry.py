"""
Catalogue of sherpa-onnx models the pipeline knows how to fetch and run.

Entries come from the bundled ``models/models.json``; every archive is hosted
on the sherpa-onnx GitHub release page under the model's id.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple

from ...utils.logger import get_logger
from .file_utils import ONLINE_TRANSDUCER, get_model_path, is_valid_model_dir

logger = get_logger(__name__)

RELEASE_URL = "https://github.com/k2-fsa/sherpa-onnx/releases/download/asr-models"
CATALOGUE_PATH = Path(__file__).parent / "models" / "models.json"

DownloadStatus = Literal["downloaded", "not_downloaded"]


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    type: str

    @property
    def url(self) -> str:
        return f"{RELEASE_URL}/{self.id}.tar.bz2"

    @property
    def is_streaming(self) -> bool:
        return self.type == ONLINE_TRANSDUCER


def _read_catalogue(path: Path = CATALOGUE_PATH) -> List[ModelInfo]:
    try:
        entries = json.loads(path.read_text(encoding="utf-8"))
        return [ModelInfo(**entry) for entry in entries]
    except (OSError, json.JSONDecodeError, TypeError) as e:
        logger.error(f"Model catalogue {path} is unusable: {e}")
        return []


AVAILABLE_MODELS: List[ModelInfo] = _read_catalogue()
_BY_ID: Dict[str, ModelInfo] = {model.id: model for model in AVAILABLE_MODELS}


def get_model_by_id(model_id: str) -> Optional[ModelInfo]:
    return _BY_ID.get(model_id)


def get_model_type(model_id: str) -> str:
    """Type of a catalogued model; ``model_id`` may also be a model directory path."""
    model = get_model_by_id(os.path.basename(model_id))
    if model is None:
        raise ValueError(
            f"Model '{model_id}' is not listed in models.json; "
            f"add an entry with 'id', 'name' and 'type'."
        )
    return model.type


def is_model_downloaded(model_id: str) -> bool:
    model = get_model_by_id(model_id)
    return model is not None and is_valid_model_dir(get_model_path(model_id), model.type)


def get_all_models_with_status(
    streaming: Optional[bool] = None,
) -> List[Tuple[ModelInfo, DownloadStatus]]:
    selected = [m for m in AVAILABLE_MODELS if streaming is None or m.is_streaming == streaming]
    return [
        (model, "downloaded" if is_model_downloaded(model.id) else "not_downloaded")
        for model in selected
    ]
