"""Apply what the caller said to the clinic records."""
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.db.models import Appointment, FollowUp, Patient
from app.services.agent.context import AppointmentContext, FollowUpContext, PatientContext
from app.services.agent.intent import Intent, Sentiment, mentions_recovery

logger = logging.getLogger(__name__)

APPOINTMENT_STATUS_BY_INTENT = {
    Intent.CONFIRM: "confirmed",
    Intent.RESCHEDULE: "rescheduled",
    Intent.CANCEL: "cancelled",
}

# Appointments in these states are no longer changed by a call
FINAL_APPOINTMENT_STATUSES = {"cancelled", "completed", "no-show"}


class RecordUpdater:
    """Updates appointment, follow-up and patient records from detected intents."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def apply_intent(
        self,
        context,
        intent: Intent,
        sentiment: Sentiment,
        transcript: str,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Apply one caller utterance to the record the call is about.

        Returns:
            The change written (a new status, or "action_required" for a
            follow-up that needs staff attention), or None if nothing changed
        """
        now = now or datetime.utcnow()
        if isinstance(context, AppointmentContext):
            return await self._update_appointment(context.appointment.id, intent, now)
        if isinstance(context, FollowUpContext):
            return await self._update_follow_up(
                context.follow_up.id, intent, sentiment, transcript, now
            )
        if isinstance(context, PatientContext):
            return await self._update_patient(context.patient.id, intent, transcript, now)
        return None

    async def _update_appointment(
        self, appointment_id: int, intent: Intent, now: datetime
    ) -> Optional[str]:
        new_status = APPOINTMENT_STATUS_BY_INTENT.get(intent)
        if new_status is None:
            return None

        async with self.session_factory() as db:
            appointment = await db.get(Appointment, appointment_id)
            if appointment is None:
                return None
            if appointment.status in FINAL_APPOINTMENT_STATUSES or appointment.status == new_status:
                return None

            appointment.status = new_status
            appointment.last_call_date = now
            if intent == Intent.CONFIRM:
                appointment.confirmation_method = "ai-call"
            elif intent == Intent.CANCEL:
                appointment.cancelled_by = "patient"
            await db.commit()

        logger.info(f"[RECORDS] Appointment {appointment_id} marked {new_status}")
        return new_status

    async def _update_follow_up(
        self,
        follow_up_id: int,
        intent: Intent,
        sentiment: Sentiment,
        transcript: str,
        now: datetime,
    ) -> Optional[str]:
        async with self.session_factory() as db:
            follow_up = await db.get(FollowUp, follow_up_id)
            if follow_up is None:
                return None

            if intent == Intent.CONFIRM or mentions_recovery(transcript):
                if follow_up.status == "completed":
                    return None
                follow_up.status = "completed"
                follow_up.completed_date = now
                change = "completed"
            elif sentiment == Sentiment.NEGATIVE:
                if follow_up.action_required:
                    return None
                follow_up.action_required = True
                change = "action_required"
            else:
                return None
            await db.commit()

        logger.info(f"[RECORDS] Follow-up {follow_up_id} updated - Change: {change}")
        return change

    async def _update_patient(
        self, patient_id: int, intent: Intent, transcript: str, now: datetime
    ) -> Optional[str]:
        if intent != Intent.CONFIRM and not mentions_recovery(transcript):
            return None

        async with self.session_factory() as db:
            patient = await db.get(Patient, patient_id)
            if patient is None:
                return None
            note = (
                f"Follow-up: Patient confirmed feeling better via AI call on "
                f"{now.strftime('%d/%m/%Y')}"
            )
            if patient.notes and note in patient.notes:
                return None
            patient.status = "active"
            patient.notes = f"{patient.notes}\n{note}" if patient.notes else note
            await db.commit()

        logger.info(f"[RECORDS] Patient {patient_id} marked active after follow-up")
        return "active"
