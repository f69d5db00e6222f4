"""
Persistent pipeline settings.

Settings live in ``settings.json`` under the platform config directory. A file
that is missing, unreadable or not a JSON object yields the defaults; a file
with some bad values keeps the good ones and resets only the offenders.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from platformdirs import user_config_path, user_data_path
from pydantic import BaseModel, Field, ValidationError, field_validator

from ...utils.logger import get_logger

logger = get_logger(__name__)

APP_NAME = "audioscribe"
SETTINGS_FILE_NAME = "settings.json"

BACKEND_NAMES = ("local", "remote", "static")


def get_config_dir() -> Path:
    return user_config_path(APP_NAME, appauthor=False, ensure_exists=True)


def get_data_dir() -> Path:
    return user_data_path(APP_NAME, appauthor=False, ensure_exists=True)


def _settings_path() -> Path:
    return get_config_dir() / SETTINGS_FILE_NAME


def _read_json_object(path: Path) -> Optional[Dict[str, Any]]:
    """Parsed contents of ``path``, or None when it cannot be used at all."""
    if not path.exists():
        return None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.warning(f"Ignoring unreadable settings file {path}: {e}")
        return None
    if not isinstance(raw, dict):
        logger.warning(f"Ignoring settings file {path}: top level is {type(raw).__name__}")
        return None
    return raw


class Settings(BaseModel):
    sample_rate: int = Field(default=16000, ge=8000, le=192000)
    input_device: Optional[str] = None

    primary_backend: str = "local"
    fallback_backends: List[str] = Field(default_factory=lambda: ["remote"])
    language: str = "th"

    model_id: str = "sherpa-onnx-whisper-tiny"
    wait_for_model: bool = True
    num_threads: int = Field(default=4, ge=1, le=64)

    remote_endpoint: str = ""
    remote_api_key: Optional[str] = None
    remote_timeout: float = Field(default=120.0, gt=0)

    streaming_model_id: str = "sherpa-onnx-streaming-zipformer-en-2023-06-26"
    interim_results: bool = True
    drain_grace_seconds: float = Field(default=1.5, ge=0.0, le=30.0)

    @field_validator("model_id", "streaming_model_id")
    @classmethod
    def _require_model_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("model id must not be blank")
        return value

    @field_validator("primary_backend")
    @classmethod
    def _check_primary(cls, value: str) -> str:
        if value not in BACKEND_NAMES:
            raise ValueError(f"expected one of {', '.join(BACKEND_NAMES)}, got {value!r}")
        return value

    @field_validator("fallback_backends")
    @classmethod
    def _check_fallbacks(cls, value: List[str]) -> List[str]:
        for name in value:
            if name not in BACKEND_NAMES:
                raise ValueError(f"unknown fallback backend {name!r}")
        return value

    @property
    def backend_chain(self) -> List[str]:
        """Primary backend followed by fallbacks, each name at most once."""
        return list(dict.fromkeys([self.primary_backend, *self.fallback_backends]))

    @classmethod
    def load(cls) -> "Settings":
        stored = _read_json_object(_settings_path())
        if stored is None:
            return cls()
        known = {key: value for key, value in stored.items() if key in cls.model_fields}
        return cls._load_with_fallbacks(known)

    @classmethod
    def _load_with_fallbacks(cls, data: Dict[str, Any]) -> "Settings":
        """Validate ``data`` as a whole, then field by field if that fails."""
        try:
            return cls.model_validate(data)
        except ValidationError:
            pass

        accepted: Dict[str, Any] = {}
        for name, value in data.items():
            try:
                cls.model_validate({name: value})
            except ValidationError as e:
                default = cls.model_fields[name].get_default(call_default_factory=True)
                logger.warning(
                    f"Setting {name}={value!r} rejected ({e.errors()[0]['msg']}); "
                    f"using {default!r}"
                )
                continue
            accepted[name] = value
        return cls.model_validate(accepted)

    def save(self) -> None:
        _settings_path().write_text(self.model_dump_json(indent=2), encoding="utf-8")

    def reset_to_defaults(self) -> None:
        for name, value in type(self)():
            setattr(self, name, value)


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.load()
    return _settings_instance
