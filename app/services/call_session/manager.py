"""Stream session manager."""
import logging
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, Dict, List, Optional

from app.services.agent.context import resolve_routing
from app.services.agent.responder import ResponseGenerator
from app.services.call_session.models import CallSession
from app.services.call_session.protocol import (
    OutboundChannel,
    ProtocolError,
    StreamEventType,
    decode_payload,
    parse_message,
)
from app.services.call_session.recorder import CallRecorder
from app.services.call_session.turn_controller import TurnController
from app.services.persistence.calls import CallRecordSink
from app.services.persistence.context_loader import ContextLoader, ContextNotFound
from app.services.persistence.records import RecordUpdater
from app.services.speech.audio import bytes_for_duration
from app.services.speech.stt import SpeechToTextService
from app.services.speech.tts import TextToSpeechService

logger = logging.getLogger(__name__)


class SessionStore:
    """Live call sessions keyed by transport stream id."""

    def __init__(self):
        self._sessions: Dict[str, CallSession] = {}

    def insert(self, stream_sid: str, session: CallSession) -> None:
        self._sessions[stream_sid] = session

    def get(self, stream_sid: str) -> Optional[CallSession]:
        return self._sessions.get(stream_sid)

    def remove(self, stream_sid: Optional[str]) -> Optional[CallSession]:
        if stream_sid is None:
            return None
        return self._sessions.pop(stream_sid, None)

    def all(self) -> List[CallSession]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, stream_sid: str) -> bool:
        return stream_sid in self._sessions


class StreamSessionManager:
    """Terminates carrier media streams and runs one conversation per call."""

    def __init__(
        self,
        context_loader: ContextLoader,
        record_sink: CallRecordSink,
        record_updater: RecordUpdater,
        transcriber: SpeechToTextService,
        responder: ResponseGenerator,
        synthesizer: TextToSpeechService,
        audio_buffer_ms: int = 960,
        playback_padding_seconds: float = 0.5,
        turn_timeout_seconds: Optional[float] = 8.0,
        history_turns: int = 6,
        record_flush_timeout_seconds: float = 5.0,
    ):
        self.context_loader = context_loader
        self.record_sink = record_sink
        self.record_updater = record_updater
        self.transcriber = transcriber
        self.responder = responder
        self.synthesizer = synthesizer
        self.buffer_threshold_bytes = max(bytes_for_duration(audio_buffer_ms), 1)
        self.playback_padding_seconds = playback_padding_seconds
        self.turn_timeout_seconds = turn_timeout_seconds
        self.history_turns = history_turns
        self.record_flush_timeout_seconds = record_flush_timeout_seconds
        self.store = SessionStore()
        self._controllers: Dict[str, TurnController] = {}
        self._recorders: Dict[str, CallRecorder] = {}

    def controller_for(self, session: CallSession) -> Optional[TurnController]:
        return self._controllers.get(session.connection_id)

    def recorder_for(self, session: CallSession) -> Optional[CallRecorder]:
        return self._recorders.get(session.connection_id)

    def on_connection_open(self, send_text: Callable[[str], Awaitable[None]]) -> CallSession:
        """Allocate a contextless session for a new connection."""
        session = CallSession(OutboundChannel(send_text), history_turns=self.history_turns)
        logger.info(f"[STREAM] Connection opened - Connection: {session.connection_id}")
        return session

    async def handle_message(self, session: CallSession, raw_message) -> None:
        """Dispatch one raw carrier message. Malformed messages are dropped."""
        try:
            event = parse_message(raw_message)
        except ProtocolError as e:
            logger.warning(f"[STREAM] Dropping malformed message: {e} - Call: {session.label}")
            return

        if event.type == StreamEventType.START:
            await self.on_stream_start(
                session,
                event.start.stream_sid,
                event.start.call_sid,
                event.start.custom_parameters,
            )
        elif event.type == StreamEventType.MEDIA:
            if event.media.track not in ("inbound", "inbound_track"):
                return
            self.on_audio_frame(session, event.media.payload)
        elif event.type == StreamEventType.STOP:
            await self.on_stream_stop(session)
        elif event.type == StreamEventType.MARK:
            logger.debug(f"[STREAM] Playback mark '{event.mark_name}' - Call: {session.label}")
        else:
            logger.debug(f"[STREAM] Ignoring {event.type.value} event - Call: {session.label}")

    async def on_stream_start(
        self,
        session: CallSession,
        stream_sid: str,
        call_sid: str,
        routing_parameters: Optional[dict] = None,
    ) -> None:
        """Load the call's context and register the session."""
        if session.closed:
            return
        if session.stream_sid:
            logger.warning(f"[STREAM] Duplicate start ignored - Call: {session.label}")
            return

        session.stream_sid = stream_sid
        session.call_sid = call_sid
        session.routing_parameters = dict(routing_parameters or {})
        session.started_at = datetime.utcnow()
        session.outbound.stream_sid = stream_sid
        logger.info(
            f"[STREAM] Stream started - StreamSid: {stream_sid}, CallSid: {call_sid}, "
            f"Parameters: {session.routing_parameters}"
        )

        routing = resolve_routing(session.routing_parameters)
        if routing is None:
            logger.warning(f"[STREAM] No routing parameters, audio will be ignored - Call: {session.label}")
        else:
            kind, record_id = routing
            try:
                session.context = await self.context_loader.load_context(kind, record_id)
            except ContextNotFound as e:
                logger.warning(f"[STREAM] {e}, audio will be ignored - Call: {session.label}")
            except Exception as e:
                logger.error(
                    f"[STREAM] Error loading context - Call: {session.label}, "
                    f"Error: {type(e).__name__}: {e}",
                    exc_info=True,
                )

        if session.closed:
            # Stopped while the context was loading
            return

        recorder = CallRecorder(session.label)
        self._recorders[session.connection_id] = recorder
        if call_sid:
            recorder.submit("start call", partial(self.record_sink.start_call, call_sid, session.context))

        if session.context is not None:
            self._controllers[session.connection_id] = TurnController(
                session,
                self.transcriber,
                self.responder,
                self.synthesizer,
                recorder,
                self.record_sink,
                self.record_updater,
                playback_padding_seconds=self.playback_padding_seconds,
                turn_timeout_seconds=self.turn_timeout_seconds,
            )

        self.store.insert(stream_sid, session)
        logger.info(
            f"[STREAM] Session ready - Context: "
            f"{session.context.kind.value if session.context else 'none'}, State: {session.turn_state}, "
            f"Active sessions: {len(self.store)}"
        )

    def on_audio_frame(self, session: CallSession, payload: str) -> None:
        """
        Buffer one inbound frame and hand full buffers to the turn controller.

        Never waits: the buffer is reset on every handoff whether or not the
        controller accepts it.
        """
        if session.closed:
            return
        controller = self.controller_for(session)
        if controller is None:
            # No stream start yet, or no context for this call
            return

        try:
            frame = decode_payload(payload)
        except ProtocolError as e:
            logger.warning(f"[STREAM] Dropping malformed frame: {e} - Call: {session.label}")
            return

        session.audio_buffer.extend(frame)
        if len(session.audio_buffer) < self.buffer_threshold_bytes:
            return

        audio = bytes(session.audio_buffer)
        session.audio_buffer = bytearray()
        controller.offer(audio)

    async def on_stream_stop(self, session: CallSession) -> None:
        """Carrier ended the stream."""
        await self._teardown(session, "stream stopped")

    async def on_connection_close(self, session: CallSession) -> None:
        """Transport connection went away."""
        await self._teardown(session, "connection closed")

    async def _teardown(self, session: CallSession, reason: str) -> None:
        if session.closed:
            return
        session.closed = True
        session.stopped_at = datetime.utcnow()
        session.audio_buffer = bytearray()

        controller = self._controllers.pop(session.connection_id, None)
        if controller is not None:
            controller.shutdown()
        else:
            session.outbound.close()

        recorder = self._recorders.pop(session.connection_id, None)
        if recorder is not None:
            if session.call_sid:
                recorder.submit(
                    "final status",
                    partial(self.record_sink.update_status, session.call_sid, "completed", session.stopped_at),
                )
            await recorder.close(self.record_flush_timeout_seconds)

        self.store.remove(session.stream_sid)
        logger.info(
            f"[STREAM] Session ended ({reason}) - Call: {session.label}, Turns: {session.turn_count}, "
            f"Discarded buffers: {session.buffers_discarded}, Active sessions: {len(self.store)}"
        )

    async def aclose(self) -> None:
        """Tear down every live session and close the service clients."""
        for session in self.store.all():
            await self._teardown(session, "shutdown")
        await self.transcriber.aclose()
        await self.synthesizer.aclose()
