"""
Speech-to-text client for voice submissions.

Sends recorded audio to an OpenAI-compatible transcription endpoint and
returns the recognized text.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from ..config import settings

logger = logging.getLogger("stories.speech")


class TranscriptionError(RuntimeError):
    """Raised when audio could not be transcribed."""


class _TranscriptionResponse(BaseModel):
    text: str


class Transcriber:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
    ) -> None:
        if api_key is None and settings.speech_api_key is not None:
            api_key = settings.speech_api_key.get_secret_value()
        self.api_key = api_key or ""
        self.model = model or settings.speech_model
        self.base_url = base_url or settings.speech_base_url
        self.timeout = timeout

    async def transcribe(
        self,
        audio: bytes,
        language: str = "en",
        filename: str = "audio.webm",
        content_type: str = "audio/webm",
    ) -> str:
        """
        Transcribe ``audio``.

        Raises
        ------
        TranscriptionError
            On empty input, transport failures or a malformed response.
        """
        if not audio:
            raise TranscriptionError("No audio data provided.")

        # The provider expects ISO-639-1, so "pt-BR" becomes "pt"
        iso_language = (language or "en").split("-")[0].lower()

        logger.info(
            "Transcribing audio: name=%s type=%s size=%d language=%s",
            filename,
            content_type,
            len(audio),
            iso_language,
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.base_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    data={
                        "model": self.model,
                        "language": iso_language,
                        "response_format": "json",
                    },
                    files={"file": (filename, audio, content_type)},
                )
            resp.raise_for_status()
            result = _TranscriptionResponse.model_validate(resp.json())
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            logger.error("Transcription failed (%s): %s", type(exc).__name__, str(exc))
            raise TranscriptionError(f"Transcription failed: {type(exc).__name__}") from exc

        return result.text.strip()
