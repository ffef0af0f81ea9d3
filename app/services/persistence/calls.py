"""Call persistence service."""
import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.db.models import CallLog, ConversationTurn
from app.services.agent.context import AppointmentContext, FollowUpContext, PatientContext
from app.services.agent.intent import derive_outcome

logger = logging.getLogger(__name__)

CALLER = "caller"
ASSISTANT = "assistant"


def _call_links(context) -> dict:
    """Record links and call type for a conversation context."""
    if isinstance(context, AppointmentContext):
        return {
            "patient_id": context.patient.id,
            "appointment_id": context.appointment.id,
            "call_type": "appointment-confirmation",
        }
    if isinstance(context, FollowUpContext):
        return {
            "patient_id": context.patient.id,
            "follow_up_id": context.follow_up.id,
            "call_type": "follow-up",
        }
    if isinstance(context, PatientContext):
        return {
            "patient_id": context.patient.id,
            "follow_up_id": context.follow_up.id if context.follow_up else None,
            "call_type": "follow-up",
        }
    return {"call_type": "general"}


class CallPersistenceService:
    """Service for persisting call data."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_call(self, call_sid: str, context=None) -> CallLog:
        """Create a new call record or return existing one."""
        existing_call = await self.get_call_by_sid(call_sid)
        if existing_call:
            return existing_call

        call = CallLog(call_sid=call_sid, status="answered", **_call_links(context))
        self.db.add(call)
        await self.db.commit()
        await self.db.refresh(call)
        return call

    async def get_call_by_sid(self, call_sid: str) -> Optional[CallLog]:
        """Get call by carrier call SID."""
        result = await self.db.execute(
            select(CallLog).where(CallLog.call_sid == call_sid)
        )
        return result.scalar_one_or_none()

    async def get_turns(self, call_sid: str) -> List[ConversationTurn]:
        """Get the transcript turns of a call in production order."""
        result = await self.db.execute(
            select(ConversationTurn)
            .join(CallLog)
            .where(CallLog.call_sid == call_sid)
            .order_by(ConversationTurn.id)
        )
        return list(result.scalars().all())

    async def append_turn(
        self, call_sid: str, speaker: str, text: str, timestamp: datetime
    ) -> Optional[ConversationTurn]:
        """Append one transcript turn to a call."""
        call = await self.get_call_by_sid(call_sid)
        if not call:
            logger.warning(f"[CALLS] Cannot append turn, unknown call - CallSid: {call_sid}")
            return None

        turn = ConversationTurn(
            call_log_id=call.id, speaker=speaker, text=text, timestamp=timestamp
        )
        self.db.add(turn)
        await self.db.commit()
        await self.db.refresh(turn)
        return turn

    async def record_intent(
        self, call_sid: str, intent: str, confidence: float
    ) -> Optional[CallLog]:
        """Store the latest detected intent on a call."""
        call = await self.get_call_by_sid(call_sid)
        if call:
            call.intent = intent
            call.intent_confidence = confidence
            await self.db.commit()
            await self.db.refresh(call)
        return call

    async def update_call_status(
        self, call_sid: str, status: str, ended_at: Optional[datetime] = None
    ) -> Optional[CallLog]:
        """
        Update call status.

        When an end time is given the call is also summarized: duration,
        compiled transcript, outcome and overall sentiment.
        """
        result = await self.db.execute(
            select(CallLog)
            .where(CallLog.call_sid == call_sid)
            .options(selectinload(CallLog.turns))
        )
        call = result.scalar_one_or_none()
        if not call:
            return None

        call.status = status
        if ended_at:
            call.ended_at = ended_at
            call.duration = max(int((ended_at - call.started_at).total_seconds()), 0)
            self._summarize(call)
        await self.db.commit()
        await self.db.refresh(call)
        return call

    def _summarize(self, call: CallLog) -> None:
        if not call.turns:
            return
        call.transcript = "\n".join(
            f"{turn.speaker.upper()}: {turn.text}" for turn in call.turns
        )
        if call.appointment_id:
            kind = "appointment"
        elif call.follow_up_id or call.patient_id:
            kind = "follow_up"
        else:
            kind = ""
        outcome, sentiment = derive_outcome(
            [turn.text for turn in call.turns if turn.speaker == CALLER], kind
        )
        call.outcome = outcome
        call.sentiment = sentiment.sentiment.value
        call.sentiment_score = sentiment.score


class CallRecordSink:
    """
    Append/update-only store for call records.

    Every operation runs in its own database session so that it can be
    issued from any task of any call.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def start_call(self, call_sid: str, context=None) -> None:
        async with self.session_factory() as db:
            await CallPersistenceService(db).create_call(call_sid, context)

    async def append_turn(
        self, call_sid: str, speaker: str, text: str, timestamp: datetime
    ) -> None:
        async with self.session_factory() as db:
            await CallPersistenceService(db).append_turn(call_sid, speaker, text, timestamp)

    async def record_intent(self, call_sid: str, intent: str, confidence: float) -> None:
        async with self.session_factory() as db:
            await CallPersistenceService(db).record_intent(call_sid, intent, confidence)

    async def update_status(
        self, call_sid: str, status: str, end_time: Optional[datetime] = None
    ) -> None:
        async with self.session_factory() as db:
            call = await CallPersistenceService(db).update_call_status(
                call_sid, status, ended_at=end_time
            )
        if call:
            logger.info(
                f"[CALLS] Call status updated - CallSid: {call_sid}, Status: {status}, "
                f"Duration: {call.duration}s, Outcome: {call.outcome}"
            )
