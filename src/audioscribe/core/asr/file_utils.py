import os
from typing import Dict, Optional

from ..settings.settings import get_data_dir

WHISPER = "whisper"
TRANSDUCER = "transducer"
ONLINE_TRANSDUCER = "online_transducer"


def get_models_dir() -> str:
    return os.path.join(get_data_dir(), "models")


def get_model_path(model_id: str) -> str:
    if os.path.isabs(model_id):
        return model_id
    return os.path.join(get_models_dir(), model_id)


def find_file_by_suffix(directory: str, *suffixes: str) -> Optional[str]:
    try:
        for filename in sorted(os.listdir(directory)):
            for suffix in suffixes:
                if filename.endswith(suffix):
                    return os.path.join(directory, filename)
    except OSError:
        pass
    return None


def find_file_by_prefix(
    directory: str, prefix: str, suffix: str = ".onnx", prefer_int8: bool = False
) -> Optional[str]:
    """Find e.g. ``encoder-epoch-99-avg-1.onnx``; int8 exports sorted per preference."""
    try:
        candidates = [
            f
            for f in sorted(os.listdir(directory))
            if f.startswith(prefix) and f.endswith(suffix)
        ]
    except OSError:
        return None
    if not candidates:
        return None
    candidates.sort(key=lambda f: (".int8." in f) != prefer_int8)
    return os.path.join(directory, candidates[0])


def find_file_exact(directory: str, candidates: list[str]) -> Optional[str]:
    for name in candidates:
        path = os.path.join(directory, name)
        if os.path.exists(path):
            return path
    return None


def whisper_model_files(model_path: str) -> Dict[str, Optional[str]]:
    return {
        "encoder": find_file_by_suffix(model_path, "-encoder.int8.onnx", "-encoder.onnx"),
        "decoder": find_file_by_suffix(model_path, "-decoder.int8.onnx", "-decoder.onnx"),
        "tokens": find_file_by_suffix(model_path, "-tokens.txt", "tokens.txt"),
    }


def transducer_model_files(model_path: str) -> Dict[str, Optional[str]]:
    return {
        "encoder": find_file_exact(
            model_path, ["encoder.int8.onnx", "encoder.onnx", "encoder.fp16.onnx"]
        ),
        "decoder": find_file_exact(
            model_path, ["decoder.int8.onnx", "decoder.onnx", "decoder.fp16.onnx"]
        ),
        "joiner": find_file_exact(
            model_path, ["joiner.int8.onnx", "joiner.onnx", "joiner.fp16.onnx"]
        ),
        "tokens": find_file_exact(model_path, ["tokens.txt"]),
    }


def online_transducer_model_files(model_path: str) -> Dict[str, Optional[str]]:
    return {
        "encoder": find_file_by_prefix(model_path, "encoder"),
        "decoder": find_file_by_prefix(model_path, "decoder"),
        "joiner": find_file_by_prefix(model_path, "joiner"),
        "tokens": find_file_exact(model_path, ["tokens.txt"]),
    }


_FILE_FINDERS = {
    WHISPER: whisper_model_files,
    TRANSDUCER: transducer_model_files,
    ONLINE_TRANSDUCER: online_transducer_model_files,
}


def model_files(model_path: str, model_type: str) -> Dict[str, Optional[str]]:
    try:
        finder = _FILE_FINDERS[model_type]
    except KeyError:
        raise ValueError(f"Unknown model type '{model_type}'") from None
    return finder(model_path)


def missing_model_files(model_path: str, model_type: str) -> list[str]:
    return [role for role, path in model_files(model_path, model_type).items() if not path]


def is_valid_model_dir(model_path: str, model_type: str) -> bool:
    return os.path.isdir(model_path) and not missing_model_files(model_path, model_type)
