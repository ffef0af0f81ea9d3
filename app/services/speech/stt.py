"""Speech-to-text service."""
import logging
from typing import Optional

import httpx

from app.core.config import settings
from app.services.speech.audio import MULAW_SAMPLE_RATE

logger = logging.getLogger(__name__)

DEEPGRAM_LISTEN_URL = "https://api.deepgram.com/v1/listen"


class SpeechToTextService:
    """Service for converting carrier audio to text with Deepgram."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        language: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.deepgram_api_key
        self.model = model or settings.stt_model
        self.language = language or settings.stt_language
        self.client = httpx.AsyncClient(
            timeout=settings.service_timeout_seconds,
            transport=transport,
        )

    async def transcribe_audio(self, audio_data: bytes) -> str:
        """
        Transcribe a buffer of carrier audio.

        The bytes are sent exactly as received from the carrier (mu-law,
        8kHz, mono, no container). Failures are logged and reported as an
        empty transcript so that one bad buffer does not end the call.

        Args:
            audio_data: Raw mu-law audio bytes

        Returns:
            Recognized text, or "" when nothing was recognized
        """
        if not audio_data:
            return ""

        logger.debug(f"[STT] Transcribing audio buffer - Size: {len(audio_data)} bytes")
        try:
            response = await self.client.post(
                DEEPGRAM_LISTEN_URL,
                headers={
                    "Authorization": f"Token {self.api_key}",
                    "Content-Type": "application/octet-stream",
                },
                params={
                    "model": self.model,
                    "language": self.language,
                    "smart_format": "true",
                    "punctuate": "true",
                    "encoding": "mulaw",
                    "sample_rate": str(MULAW_SAMPLE_RATE),
                    "channels": "1",
                },
                content=audio_data,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[STT] Transcription failed: {type(e).__name__}: {e}")
            return ""

        transcript = _extract_transcript(payload)
        if transcript:
            logger.info(f"[STT] Transcript: '{transcript}'")
        else:
            logger.debug("[STT] No speech detected")
        return transcript

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()


def _extract_transcript(payload: dict) -> str:
    """Pull the top alternative out of a Deepgram response body."""
    try:
        channels = payload["results"]["channels"]
        transcript = channels[0]["alternatives"][0].get("transcript") or ""
    except (KeyError, IndexError, TypeError):
        logger.warning("[STT] Deepgram returned an empty or unexpected result")
        return ""
    return transcript.strip()
