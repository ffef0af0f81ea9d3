"""FastAPI dependencies."""
from functools import lru_cache

from app.core.config import settings
from app.db.database import AsyncSessionLocal
from app.services.agent.responder import ResponseGenerator
from app.services.call_session.manager import StreamSessionManager
from app.services.persistence.calls import CallRecordSink
from app.services.persistence.context_loader import ContextLoader
from app.services.persistence.records import RecordUpdater
from app.services.speech.stt import SpeechToTextService
from app.services.speech.tts import TextToSpeechService


@lru_cache
def get_stream_manager() -> StreamSessionManager:
    """Get the process-wide stream session manager."""
    return StreamSessionManager(
        context_loader=ContextLoader(AsyncSessionLocal),
        record_sink=CallRecordSink(AsyncSessionLocal),
        record_updater=RecordUpdater(AsyncSessionLocal),
        transcriber=SpeechToTextService(),
        responder=ResponseGenerator(),
        synthesizer=TextToSpeechService(),
        audio_buffer_ms=settings.audio_buffer_ms,
        playback_padding_seconds=settings.playback_padding_seconds,
        turn_timeout_seconds=settings.turn_timeout_seconds,
        history_turns=settings.history_turns,
        record_flush_timeout_seconds=settings.record_flush_timeout_seconds,
    )
