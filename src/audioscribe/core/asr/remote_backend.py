"""
Remote transcription service client.

Submits the original encoded clip (not PCM) as a multipart upload and adapts
the service's response into a TranscriptResult. Retries are the
orchestrator's concern, never this backend's.
"""

from typing import Any, Dict, Optional

import requests
from pydantic import BaseModel, ConfigDict, ValidationError

from ...errors import InvalidResponse, NetworkError, ServiceError
from ...utils.logger import get_logger
from .backends import TranscriptionRequest, TranscriptResult
from .progress import CancellationToken, ProgressReporter, ProgressStage

logger = get_logger(__name__)

TEXT_FIELD_PRECEDENCE = ("processed_text", "cleaned_text", "raw_text", "text")


class RemoteTranscription(BaseModel):
    model_config = ConfigDict(extra="ignore")

    processed_text: Optional[str] = None
    cleaned_text: Optional[str] = None
    raw_text: Optional[str] = None
    text: Optional[str] = None

    def best_text(self) -> Optional[str]:
        for field_name in TEXT_FIELD_PRECEDENCE:
            value = getattr(self, field_name)
            if value is not None:
                return value
        return None


class RemoteTranscriptionResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool
    transcription: Optional[RemoteTranscription] = None
    error: Optional[str] = None


class RemoteAPIBackend:
    name = "remote"
    requires_pcm = False

    def __init__(
        self,
        endpoint: str,
        language: str = "th",
        api_key: Optional[str] = None,
        timeout: float = 120.0,
        options: Optional[Dict[str, Any]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint
        self.language = language
        self.api_key = api_key
        self.timeout = timeout
        self.options = dict(options or {})
        self._session = session or requests.Session()

    def is_ready(self) -> bool:
        return bool(self.endpoint)

    def transcribe(
        self,
        request: TranscriptionRequest,
        progress: ProgressReporter,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TranscriptResult:
        clip = request.clip
        data = {"language": request.language or self.language}
        data.update({k: str(v) for k, v in self.options.items()})
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        progress.report(ProgressStage.PROCESSING, 0.0)
        logger.info(f"Uploading '{clip.name}' ({clip.size} bytes) to {self.endpoint}")

        try:
            response = self._session.post(
                self.endpoint,
                files={"audio_file": (clip.name, clip.data, clip.mime_type)},
                data=data,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise NetworkError(f"Could not reach transcription service: {e}") from e
        except requests.RequestException as e:
            raise ServiceError(f"Transcription request failed: {e}") from e

        if not response.ok:
            raise ServiceError(
                f"Transcription service returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        result = self._parse(response)
        progress.report(ProgressStage.PROCESSING, 1.0)
        return result

    def _parse(self, response: requests.Response) -> TranscriptResult:
        try:
            payload = RemoteTranscriptionResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise InvalidResponse(f"Malformed transcription response: {e}") from e

        if not payload.success:
            raise ServiceError(
                payload.error or "Transcription service reported failure",
                status_code=response.status_code,
            )

        text = payload.transcription.best_text() if payload.transcription else None
        if text is None:
            raise InvalidResponse("Transcription response contains no text field")

        return TranscriptResult(text=text.strip(), backend=self.name)
