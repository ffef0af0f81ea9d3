"""Shared test fixtures and configuration."""
import asyncio
import base64
import json
import os
from datetime import datetime
from types import SimpleNamespace
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("DEEPGRAM_API_KEY", "test-deepgram-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CLINIC_NAME", "Test Clinic")

from app.db.models import Base, Appointment, Doctor, FollowUp, Patient
from app.services.agent.context import (
    AppointmentContext,
    AppointmentInfo,
    DoctorInfo,
    FollowUpContext,
    FollowUpInfo,
    PatientContext,
    PatientInfo,
)
from app.services.call_session.manager import StreamSessionManager
from app.services.persistence.calls import CallRecordSink
from app.services.persistence.context_loader import ContextLoader, ContextNotFound
from app.services.persistence.records import RecordUpdater
from app.services.speech.audio import FRAME_SIZE
from app.services.speech.exceptions import SpeechSynthesisError


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def test_db_engine(tmp_path):
    """Create test database engine (file-backed so concurrent sessions work)."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def clinic_records(test_db) -> Dict[str, int]:
    """Seed one doctor, patient, appointment and follow-up."""
    doctor = Doctor(name="Mehta", specialization="Cardiology")
    test_db.add(doctor)
    await test_db.flush()

    patient = Patient(
        name="Asha Rao",
        phone="+919876543210",
        conditions=["hypertension"],
        allergies=["penicillin"],
        medications=["amlodipine"],
        assigned_doctor_id=doctor.id,
    )
    test_db.add(patient)
    await test_db.flush()

    appointment = Appointment(
        patient_id=patient.id,
        doctor_id=doctor.id,
        appointment_date=datetime(2026, 11, 3, 10, 30),
        appointment_time="10:30 AM",
        type="consultation",
        reason="Blood pressure review",
    )
    test_db.add(appointment)
    await test_db.flush()

    follow_up = FollowUp(
        patient_id=patient.id,
        doctor_id=doctor.id,
        appointment_id=appointment.id,
        purpose="Check blood pressure after medication change",
        doctor_report="Increase amlodipine to 10mg",
        scheduled_date=datetime(2026, 11, 10, 9, 0),
    )
    test_db.add(follow_up)
    await test_db.commit()

    return {
        "doctor": doctor.id,
        "patient": patient.id,
        "appointment": appointment.id,
        "follow_up": follow_up.id,
    }


# ---------------------------------------------------------------------------
# Contexts
# ---------------------------------------------------------------------------

@pytest.fixture
def patient_info():
    return PatientInfo(
        id=1,
        name="Asha Rao",
        conditions=["diabetes"],
        allergies=[],
        medications=["metformin"],
    )


@pytest.fixture
def doctor_info():
    return DoctorInfo(id=1, name="Mehta", specialization="Cardiology")


@pytest.fixture
def appointment_context(patient_info, doctor_info):
    return AppointmentContext(
        patient=patient_info,
        doctor=doctor_info,
        appointment=AppointmentInfo(
            id=7, date=datetime(2026, 11, 3, 10, 30), time="10:30 AM"
        ),
    )


@pytest.fixture
def follow_up_context(patient_info, doctor_info):
    return FollowUpContext(
        patient=patient_info,
        doctor=doctor_info,
        follow_up=FollowUpInfo(
            id=3, purpose="Post-visit check", doctor_report="Monitor sugar levels"
        ),
    )


@pytest.fixture
def patient_context(patient_info):
    return PatientContext(patient=patient_info)


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

class FakeTranscriber:
    """Transcriber returning scripted text, optionally held until released."""

    def __init__(self, transcripts: Optional[List[str]] = None, default: str = "", gate: Optional[asyncio.Event] = None):
        self.transcripts = list(transcripts or [])
        self.default = default
        self.gate = gate
        self.calls = 0
        self.received: List[bytes] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    async def transcribe_audio(self, audio_data: bytes) -> str:
        self.calls += 1
        self.received.append(audio_data)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            return self.transcripts.pop(0) if self.transcripts else self.default
        finally:
            self.active -= 1

    async def aclose(self):
        self.closed = True


class FakeResponder:
    """Responder returning a fixed reply and remembering its inputs."""

    def __init__(self, reply: str = "Thank you, your appointment is confirmed."):
        self.reply = reply
        self.calls = []

    async def generate_response(self, user_input, context, history=None):
        self.calls.append((user_input, context, list(history or [])))
        return self.reply


class FakeSynthesizer:
    """Synthesizer returning silence of a fixed size, or failing."""

    def __init__(self, audio_size: int = FRAME_SIZE * 2, fail: bool = False):
        self.audio_size = audio_size
        self.fail = fail
        self.calls = []
        self.closed = False

    async def synthesize_speech(self, text: str) -> bytes:
        self.calls.append(text)
        if self.fail:
            raise SpeechSynthesisError("TTS synthesis failed: boom")
        return b"\xff" * self.audio_size

    async def aclose(self):
        self.closed = True


class FakeOutbound:
    """Collects messages written to the carrier."""

    def __init__(self, fail_after: Optional[int] = None):
        self.messages: List[dict] = []
        self.fail_after = fail_after

    async def send_text(self, text: str) -> None:
        if self.fail_after is not None and len(self.messages) >= self.fail_after:
            raise RuntimeError("socket closed")
        self.messages.append(json.loads(text))

    @property
    def media(self) -> List[dict]:
        return [m for m in self.messages if m["event"] == "media"]

    @property
    def audio_bytes(self) -> int:
        return sum(len(base64.b64decode(m["media"]["payload"])) for m in self.media)


class FakeContextLoader:
    """Context loader over a fixed map of (kind, id) -> context."""

    def __init__(self, contexts=None):
        self.contexts = contexts or {}
        self.calls = []

    async def load_context(self, kind, record_id):
        self.calls.append((kind, record_id))
        try:
            return self.contexts[(kind, str(record_id))]
        except KeyError:
            raise ContextNotFound(kind, record_id)


class FakeSink:
    """In-memory call record sink."""

    def __init__(self):
        self.started = []
        self.turns = []
        self.intents = []
        self.statuses = []

    async def start_call(self, call_sid, context=None):
        self.started.append(call_sid)

    async def append_turn(self, call_sid, speaker, text, timestamp):
        self.turns.append((call_sid, speaker, text, timestamp))

    async def record_intent(self, call_sid, intent, confidence):
        self.intents.append((call_sid, intent, confidence))

    async def update_status(self, call_sid, status, end_time=None):
        self.statuses.append((call_sid, status, end_time))


class FakeRecordUpdater:
    """Remembers intents instead of writing records."""

    def __init__(self):
        self.applied = []

    async def apply_intent(self, context, intent, sentiment, transcript, now=None):
        self.applied.append((intent, sentiment, transcript))
        return None


@pytest.fixture
def fakes():
    """Fake collaborator classes, for tests that build their own."""
    return SimpleNamespace(
        Transcriber=FakeTranscriber,
        Responder=FakeResponder,
        Synthesizer=FakeSynthesizer,
        Outbound=FakeOutbound,
        ContextLoader=FakeContextLoader,
        Sink=FakeSink,
        RecordUpdater=FakeRecordUpdater,
    )


@pytest.fixture
def fake_outbound():
    return FakeOutbound()


@pytest.fixture
def make_manager():
    """Build a stream manager with fast timings; collaborators can be swapped."""

    def _make(**overrides) -> StreamSessionManager:
        options = dict(
            context_loader=FakeContextLoader(),
            record_sink=FakeSink(),
            record_updater=FakeRecordUpdater(),
            transcriber=FakeTranscriber(),
            responder=FakeResponder(),
            synthesizer=FakeSynthesizer(),
            audio_buffer_ms=100,  # 5 carrier frames
            playback_padding_seconds=0.0,
            turn_timeout_seconds=2.0,
            history_turns=6,
            record_flush_timeout_seconds=2.0,
        )
        options.update(overrides)
        return StreamSessionManager(**options)

    return _make


@pytest.fixture
def db_manager(make_manager, session_factory):
    """Stream manager backed by the real loader, sink and record updater."""

    def _make(**overrides) -> StreamSessionManager:
        options = dict(
            context_loader=ContextLoader(session_factory),
            record_sink=CallRecordSink(session_factory),
            record_updater=RecordUpdater(session_factory),
        )
        options.update(overrides)
        return make_manager(**options)

    return _make


# ---------------------------------------------------------------------------
# Carrier messages
# ---------------------------------------------------------------------------

STREAM_SID = "MZ00000000000000000000000000000001"
CALL_SID = "CA00000000000000000000000000000001"


def start_message(parameters=None, stream_sid=STREAM_SID, call_sid=CALL_SID) -> str:
    return json.dumps({
        "event": "start",
        "sequenceNumber": "1",
        "streamSid": stream_sid,
        "start": {
            "streamSid": stream_sid,
            "callSid": call_sid,
            "accountSid": "AC000",
            "tracks": ["inbound"],
            "customParameters": parameters or {},
            "mediaFormat": {"encoding": "audio/x-mulaw", "sampleRate": 8000, "channels": 1},
        },
    })


def media_message(audio: bytes = b"\xff" * FRAME_SIZE, stream_sid=STREAM_SID) -> str:
    return json.dumps({
        "event": "media",
        "streamSid": stream_sid,
        "media": {
            "track": "inbound",
            "chunk": "1",
            "timestamp": "20",
            "payload": base64.b64encode(audio).decode("ascii"),
        },
    })


def stop_message(stream_sid=STREAM_SID, call_sid=CALL_SID) -> str:
    return json.dumps({
        "event": "stop",
        "streamSid": stream_sid,
        "stop": {"accountSid": "AC000", "callSid": call_sid},
    })


@pytest.fixture
def carrier():
    """Builders for carrier messages."""
    return SimpleNamespace(
        start=start_message,
        media=media_message,
        stop=stop_message,
        stream_sid=STREAM_SID,
        call_sid=CALL_SID,
        frame=base64.b64encode(b"\xff" * FRAME_SIZE).decode("ascii"),
    )


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds, yielding to running tasks."""
    return _wait_until


@pytest.fixture
def mock_openai():
    """Mock OpenAI API client."""
    mock_client = Mock()
    mock_completion = Mock()
    mock_completion.choices = [
        Mock(message=Mock(content="Thank you, Asha. Your appointment is confirmed."))
    ]
    mock_client.chat.completions.create = AsyncMock(return_value=mock_completion)
    return mock_client
