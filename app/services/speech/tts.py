"""Text-to-speech service."""
import logging
from typing import Optional

import httpx

from app.core.config import settings
from app.services.speech.audio import MULAW_SAMPLE_RATE
from app.services.speech.exceptions import SpeechSynthesisError

logger = logging.getLogger(__name__)

DEEPGRAM_SPEAK_URL = "https://api.deepgram.com/v1/speak"


class TextToSpeechService:
    """Service for converting text to carrier audio with Deepgram."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        voice: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.deepgram_api_key
        self.voice = voice or settings.tts_voice
        self.client = httpx.AsyncClient(
            timeout=settings.service_timeout_seconds,
            transport=transport,
        )

    async def synthesize_speech(self, text: str) -> bytes:
        """
        Synthesize speech in the carrier's wire format.

        Args:
            text: Text to convert to speech

        Returns:
            Raw mu-law 8kHz mono bytes, ready to stream back to the carrier

        Raises:
            SpeechSynthesisError: If the service fails or returns no audio
        """
        if not text or not text.strip():
            raise SpeechSynthesisError("Nothing to synthesize")

        logger.debug(f"[TTS] Synthesizing reply - Text length: {len(text)}")
        try:
            response = await self.client.post(
                DEEPGRAM_SPEAK_URL,
                headers={
                    "Authorization": f"Token {self.api_key}",
                    "Content-Type": "application/json",
                },
                params={
                    "model": self.voice,
                    "encoding": "mulaw",
                    "sample_rate": str(MULAW_SAMPLE_RATE),
                    "container": "none",
                },
                json={"text": text},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SpeechSynthesisError(f"TTS synthesis failed: {e}") from e

        audio = response.content
        if not audio:
            raise SpeechSynthesisError("TTS synthesis returned no audio")

        logger.info(f"[TTS] Synthesis complete - Audio size: {len(audio)} bytes")
        return audio

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()
