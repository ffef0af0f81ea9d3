"""Load the conversation context a call is about."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.db.models import Appointment, Doctor, FollowUp, Patient
from app.services.agent.context import (
    AppointmentContext,
    AppointmentInfo,
    ContextKind,
    DoctorInfo,
    FollowUpContext,
    FollowUpInfo,
    PatientContext,
    PatientInfo,
)

logger = logging.getLogger(__name__)


class ContextNotFound(Exception):
    """Raised when a routing id does not resolve to a record."""

    def __init__(self, kind: ContextKind, record_id):
        super().__init__(f"No {kind.value} with id {record_id!r}")
        self.kind = kind
        self.record_id = record_id


def _patient_info(patient: Patient) -> PatientInfo:
    return PatientInfo(
        id=patient.id,
        name=patient.name,
        language=patient.language or "english",
        conditions=patient.conditions or [],
        allergies=patient.allergies or [],
        medications=patient.medications or [],
    )


def _doctor_info(doctor: Optional[Doctor]) -> Optional[DoctorInfo]:
    if doctor is None:
        return None
    return DoctorInfo(id=doctor.id, name=doctor.name, specialization=doctor.specialization)


def _follow_up_info(follow_up: FollowUp) -> FollowUpInfo:
    return FollowUpInfo(
        id=follow_up.id,
        type=follow_up.type,
        purpose=follow_up.purpose,
        doctor_report=follow_up.doctor_report or follow_up.notes,
        appointment_date=(
            follow_up.appointment.appointment_date if follow_up.appointment else None
        ),
    )


class ContextLoader:
    """Read-only lookup of patient, follow-up and appointment records."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def load_context(self, kind: ContextKind, record_id):
        """
        Build the conversation context for one record.

        Raises:
            ContextNotFound: If ``record_id`` does not resolve
        """
        try:
            key = int(record_id)
        except (TypeError, ValueError):
            raise ContextNotFound(kind, record_id)

        async with self.session_factory() as db:
            if kind == ContextKind.PATIENT:
                context = await self._load_patient(db, key)
            elif kind == ContextKind.FOLLOW_UP:
                context = await self._load_follow_up(db, key)
            elif kind == ContextKind.APPOINTMENT:
                context = await self._load_appointment(db, key)
            else:
                raise ValueError(f"Unknown context kind: {kind}")

        if context is None:
            raise ContextNotFound(kind, record_id)
        logger.info(f"[CONTEXT] Loaded {kind.value} context for id {key}")
        return context

    async def _load_patient(self, db: AsyncSession, patient_id: int) -> Optional[PatientContext]:
        result = await db.execute(
            select(Patient)
            .where(Patient.id == patient_id)
            .options(selectinload(Patient.assigned_doctor))
        )
        patient = result.scalar_one_or_none()
        if patient is None:
            return None

        result = await db.execute(
            select(FollowUp)
            .where(FollowUp.patient_id == patient_id)
            .order_by(FollowUp.scheduled_date.desc(), FollowUp.id.desc())
            .limit(1)
            .options(selectinload(FollowUp.doctor), selectinload(FollowUp.appointment))
        )
        latest = result.scalar_one_or_none()

        doctor = patient.assigned_doctor or (latest.doctor if latest else None)
        return PatientContext(
            patient=_patient_info(patient),
            doctor=_doctor_info(doctor),
            follow_up=_follow_up_info(latest) if latest else None,
        )

    async def _load_follow_up(self, db: AsyncSession, follow_up_id: int) -> Optional[FollowUpContext]:
        result = await db.execute(
            select(FollowUp)
            .where(FollowUp.id == follow_up_id)
            .options(
                selectinload(FollowUp.patient),
                selectinload(FollowUp.doctor),
                selectinload(FollowUp.appointment),
            )
        )
        follow_up = result.scalar_one_or_none()
        if follow_up is None or follow_up.patient is None:
            return None
        return FollowUpContext(
            patient=_patient_info(follow_up.patient),
            doctor=_doctor_info(follow_up.doctor),
            follow_up=_follow_up_info(follow_up),
        )

    async def _load_appointment(self, db: AsyncSession, appointment_id: int) -> Optional[AppointmentContext]:
        result = await db.execute(
            select(Appointment)
            .where(Appointment.id == appointment_id)
            .options(selectinload(Appointment.patient), selectinload(Appointment.doctor))
        )
        appointment = result.scalar_one_or_none()
        if appointment is None or appointment.patient is None:
            return None
        return AppointmentContext(
            patient=_patient_info(appointment.patient),
            doctor=_doctor_info(appointment.doctor),
            appointment=AppointmentInfo(
                id=appointment.id,
                date=appointment.appointment_date,
                time=appointment.appointment_time,
                type=appointment.type,
                reason=appointment.reason,
            ),
        )
