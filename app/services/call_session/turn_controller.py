"""Turn-taking state machine for one call."""
import asyncio
import logging
from datetime import datetime
from functools import partial
from typing import Optional

from app.services.agent.intent import analyze_sentiment, detect_intent
from app.services.agent.responder import ResponseGenerator
from app.services.call_session.models import CallSession, TurnState
from app.services.call_session.protocol import OutboundChannelClosed
from app.services.call_session.recorder import CallRecorder
from app.services.persistence.calls import ASSISTANT, CALLER, CallRecordSink
from app.services.persistence.records import RecordUpdater
from app.services.speech.audio import audio_duration_seconds, playback_duration_seconds
from app.services.speech.exceptions import SpeechSynthesisError
from app.services.speech.stt import SpeechToTextService
from app.services.speech.tts import TextToSpeechService

logger = logging.getLogger(__name__)


class TurnController:
    """
    Coordinates listen -> think -> speak for one call.

    The session's turn state is the only concurrency guard. ``offer`` checks
    and sets it without yielding to the event loop, so two buffer handoffs
    can never both start a pipeline. Buffers offered while THINKING or
    SPEAKING are discarded, not queued.
    """

    def __init__(
        self,
        session: CallSession,
        transcriber: SpeechToTextService,
        responder: ResponseGenerator,
        synthesizer: TextToSpeechService,
        recorder: CallRecorder,
        record_sink: CallRecordSink,
        record_updater: RecordUpdater,
        playback_padding_seconds: float = 0.5,
        turn_timeout_seconds: Optional[float] = 8.0,
    ):
        self.session = session
        self.transcriber = transcriber
        self.responder = responder
        self.synthesizer = synthesizer
        self.recorder = recorder
        self.record_sink = record_sink
        self.record_updater = record_updater
        self.playback_padding_seconds = playback_padding_seconds
        self.turn_timeout_seconds = turn_timeout_seconds if turn_timeout_seconds and turn_timeout_seconds > 0 else None
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> TurnState:
        return self.session.turn_state

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def offer(self, audio: bytes) -> bool:
        """
        Hand over one buffer of caller audio.

        Returns:
            True if a turn was started for it, False if it was discarded
        """
        session = self.session
        if session.closed or session.context is None:
            return False
        if session.turn_state != TurnState.LISTENING:
            session.buffers_discarded += 1
            logger.debug(
                f"[TURN] Dropping audio, assistant is {session.turn_state} - Call: {session.label}"
            )
            return False

        session.turn_state = TurnState.THINKING
        session.turn_count += 1
        session.buffers_accepted += 1
        turn_number = session.turn_count
        logger.info(f"[TURN] Turn {turn_number} started - State: THINKING, Call: {session.label}")
        self._task = asyncio.create_task(self._run_turn(bytes(audio), turn_number))
        return True

    async def _run_turn(self, audio: bytes, turn_number: int) -> None:
        session = self.session
        try:
            try:
                reply_audio = await asyncio.wait_for(
                    self._think(audio, turn_number), self.turn_timeout_seconds
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"[TURN] Turn {turn_number} aborted after {self.turn_timeout_seconds}s - "
                    f"Call: {session.label}"
                )
                return

            if reply_audio is None or session.closed:
                return
            await self._speak(reply_audio, turn_number)
        except SpeechSynthesisError as e:
            logger.error(f"[TURN] Turn {turn_number} abandoned, no audio: {e} - Call: {session.label}")
        except OutboundChannelClosed as e:
            logger.warning(f"[TURN] Turn {turn_number} send aborted: {e} - Call: {session.label}")
        except Exception as e:
            logger.error(
                f"[TURN] Turn {turn_number} failed - Call: {session.label}, "
                f"Error: {type(e).__name__}: {e}",
                exc_info=True,
            )
        finally:
            session.outbound_in_flight = False
            if not session.closed:
                # Frames heard while busy may hold our own reply; start clean
                session.audio_buffer = bytearray()
                session.turn_state = TurnState.LISTENING
                logger.info(f"[TURN] Turn {turn_number} finished - State: LISTENING, Call: {session.label}")

    async def _think(self, audio: bytes, turn_number: int) -> Optional[bytes]:
        """Transcribe, generate and synthesize. Returns None to skip speaking."""
        session = self.session

        transcript = (await self.transcriber.transcribe_audio(audio)).strip()
        if not transcript:
            logger.debug(f"[TURN] Turn {turn_number} had no speech - Call: {session.label}")
            return None

        self._record_caller_turn(transcript)

        reply = await self.responder.generate_response(
            transcript, session.context, session.get_history()
        )
        session.add_exchange(transcript, reply)
        self.recorder.submit(
            "assistant turn",
            partial(self.record_sink.append_turn, session.call_sid, ASSISTANT, reply, datetime.utcnow()),
        )

        return await self.synthesizer.synthesize_speech(reply)

    def _record_caller_turn(self, transcript: str) -> None:
        session = self.session
        intent = detect_intent(transcript)
        sentiment = analyze_sentiment(transcript)
        logger.info(
            f"[TURN] Caller said '{transcript}' - Intent: {intent.intent} "
            f"({intent.confidence}), Sentiment: {sentiment.sentiment}, Call: {session.label}"
        )

        self.recorder.submit(
            "caller turn",
            partial(self.record_sink.append_turn, session.call_sid, CALLER, transcript, datetime.utcnow()),
        )
        self.recorder.submit(
            "intent",
            partial(self.record_sink.record_intent, session.call_sid, intent.intent.value, intent.confidence),
        )
        self.recorder.submit(
            "record update",
            partial(
                self.record_updater.apply_intent,
                session.context,
                intent.intent,
                sentiment.sentiment,
                transcript,
            ),
        )

    async def _speak(self, audio: bytes, turn_number: int) -> None:
        session = self.session
        session.turn_state = TurnState.SPEAKING
        session.outbound_in_flight = True
        logger.info(
            f"[TURN] Turn {turn_number} speaking - Audio: {len(audio)} bytes "
            f"({audio_duration_seconds(len(audio)):.2f}s), Call: {session.label}"
        )

        await session.outbound.send_audio(audio, mark_name=f"turn-{turn_number}")
        session.outbound_in_flight = False

        # Stay deaf until the caller has heard the whole reply
        await asyncio.sleep(playback_duration_seconds(len(audio), self.playback_padding_seconds))

    def shutdown(self) -> None:
        """Stop immediately; any in-flight result is discarded."""
        self.session.closed = True
        self.session.outbound.close()
        if self.busy:
            self._task.cancel()

    async def join(self) -> None:
        """Wait for the current turn, if any, to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
