import logging
import os

import requests

logger = logging.getLogger(__name__)

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_SPEECH_URL = "https://api.openai.com/v1/audio/speech"
TTS_MODEL = "tts-1"
REQUEST_TIMEOUT = 120  # seconds

# The speech endpoint rejects longer inputs
MAX_TTS_CHARS = 4096
MIN_TTS_CHARS = 10

VOICES = {
    "alloy": "Neutral, balanced voice",
    "echo": "Warm, narrative male voice",
    "fable": "British, storytelling voice",
    "onyx": "Deep, authoritative male voice",
    "nova": "Bright, friendly female voice",
    "shimmer": "Soft, clear female voice",
}


class SpeechError(Exception):
    """The speech provider failed to produce audio."""


class SpeechNotConfigured(SpeechError):
    pass


def prepare_text(text: str) -> str:
    """Validate and trim text for a single speech request."""
    text = (text or "").strip()
    if not text:
        raise ValueError("Please provide text to convert to audio")
    if len(text) < MIN_TTS_CHARS:
        raise ValueError("Text is too short. Please provide more content.")
    return text[:MAX_TTS_CHARS]


def generate_speech(text: str, voice: str = "alloy", api_key: str = None) -> bytes:
    """Convert text to MP3 audio; returns the raw bytes."""
    text = prepare_text(text)
    if voice not in VOICES:
        raise ValueError(f"Unknown voice '{voice}'")
    api_key = api_key or OPENAI_API_KEY
    if not api_key:
        raise SpeechNotConfigured("OPENAI_API_KEY is not configured")

    logger.info("Generating audio for %d characters with voice %s", len(text), voice)

    try:
        response = requests.post(
            OPENAI_SPEECH_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": TTS_MODEL,
                "input": text,
                "voice": voice,
                "response_format": "mp3",
            },
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.error("OpenAI TTS request failed: %s", e)
        raise SpeechError("Could not reach the speech provider") from e

    if not response.ok:
        logger.error("OpenAI TTS API error: %s %s", response.status_code, response.text)
        raise SpeechError(f"OpenAI TTS API error: {response.status_code}")

    return response.content
