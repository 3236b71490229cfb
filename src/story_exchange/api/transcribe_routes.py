from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from .models import TranscriptionResponse
from .dependencies import get_transcriber
from ..auth.models import UserContext
from ..auth.security import get_current_user
from ..speech.transcriber import TranscriptionError, Transcriber

router = APIRouter(tags=["transcribe"])

# Recordings above this size are refused before they reach the provider
MAX_AUDIO_BYTES = 25 * 1024 * 1024


@router.post("/transcribe", response_model=TranscriptionResponse)
async def transcribe(
    user: Annotated[UserContext, Depends(get_current_user)],
    transcriber: Annotated[Transcriber, Depends(get_transcriber)],
    audio: UploadFile = File(...),
    language: str = Form("en"),
):
    """
    Turn a recorded voice story into text. The text is returned to the
    caller for review; it is not submitted.
    """
    data = await audio.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No audio file provided")
    if len(data) > MAX_AUDIO_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Audio file too large",
        )

    try:
        text = await transcriber.transcribe(
            data,
            language=language,
            filename=audio.filename or "audio.webm",
            content_type=audio.content_type or "audio/webm",
        )
    except TranscriptionError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Transcription failed",
        )

    return TranscriptionResponse(text=text)
