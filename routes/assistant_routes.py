from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
import logging

from models.assistant_models import AudiobookRequest, ChatReply, ChatRequest, ExtractedText
from ai_service import ai_service, AssistantError, AssistantNotConfigured, AssistantRateLimited
from utils import get_current_user
import document_service
import tts_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assistant", tags=["assistant"])

RATE_LIMIT_REPLY = "I'm receiving too many requests. Please try again in a moment."
ERROR_REPLY = "Sorry, I encountered an error. Please try again."


@router.post("/chat", response_model=ChatReply)
async def chat(request: ChatRequest):
    """Chat failures are answered in-band so the widget always has something to show."""
    messages = [m.model_dump() for m in request.messages]
    try:
        reply = await run_in_threadpool(ai_service.chat, messages)
    except AssistantRateLimited:
        return {"message": RATE_LIMIT_REPLY}
    except AssistantError as e:
        logger.error("Assistant chat failed: %s", e)
        return {"message": ERROR_REPLY}
    return {"message": reply}


@router.post("/extract-text", response_model=ExtractedText)
async def extract_text(file: UploadFile = File(...), current_user: dict = Depends(get_current_user)):
    data = await file.read(document_service.MAX_UPLOAD_BYTES + 1)
    if len(data) > document_service.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File size must be less than 10MB")
    try:
        text = await run_in_threadpool(document_service.extract_text, file.filename, data)
    except document_service.DocumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AssistantNotConfigured:
        raise HTTPException(status_code=503, detail="Scanned PDF extraction is not configured")
    except AssistantError as e:
        logger.error("Model extraction failed for %s: %s", file.filename, e)
        raise HTTPException(status_code=502, detail="Could not read text from this PDF")

    if not text:
        raise HTTPException(status_code=422, detail="No readable text was found in this file")
    return {"filename": file.filename, "text": text, "characters": len(text)}


@router.get("/voices")
async def list_voices():
    return {
        "default": "alloy",
        "voices": [{"id": voice, "description": desc} for voice, desc in tts_service.VOICES.items()],
    }


@router.post("/audiobook")
async def create_audiobook(request: AudiobookRequest, current_user: dict = Depends(get_current_user)):
    try:
        audio = await run_in_threadpool(tts_service.generate_speech, request.text, request.voice)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except tts_service.SpeechNotConfigured:
        raise HTTPException(status_code=503, detail="Text-to-speech is not configured")
    except tts_service.SpeechError as e:
        raise HTTPException(status_code=502, detail=str(e))

    logger.info("Generated %d bytes of audio for %s", len(audio), current_user["id"])
    return Response(
        content=audio,
        media_type="audio/mpeg",
        headers={"Content-Disposition": 'attachment; filename="audiobook.mp3"'},
    )
