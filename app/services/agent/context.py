"""Conversation context for a single call.

A context is a read-once snapshot of the clinic records a call is about.
Exactly one of three cases applies, tagged by ``kind``.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ContextKind(str, Enum):
    """Which record a call is about."""

    PATIENT = "patient"
    FOLLOW_UP = "follow_up"
    APPOINTMENT = "appointment"

    def __str__(self) -> str:
        return self.value


class PatientInfo(BaseModel):
    """Patient snapshot."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    language: str = "english"
    conditions: List[str] = []
    allergies: List[str] = []
    medications: List[str] = []


class DoctorInfo(BaseModel):
    """Doctor snapshot."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    specialization: Optional[str] = None


class AppointmentInfo(BaseModel):
    """Appointment snapshot."""

    model_config = ConfigDict(frozen=True)

    id: int
    date: datetime
    time: str
    type: str = "consultation"
    reason: Optional[str] = None


class FollowUpInfo(BaseModel):
    """Follow-up snapshot."""

    model_config = ConfigDict(frozen=True)

    id: int
    type: str = "post-visit"
    purpose: str
    doctor_report: Optional[str] = None
    appointment_date: Optional[datetime] = None


class AppointmentContext(BaseModel):
    """Appointment confirmation call."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[ContextKind.APPOINTMENT] = ContextKind.APPOINTMENT
    patient: PatientInfo
    doctor: Optional[DoctorInfo] = None
    appointment: AppointmentInfo


class FollowUpContext(BaseModel):
    """Post-visit follow-up call placed for a specific follow-up record."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[ContextKind.FOLLOW_UP] = ContextKind.FOLLOW_UP
    patient: PatientInfo
    doctor: Optional[DoctorInfo] = None
    follow_up: FollowUpInfo


class PatientContext(BaseModel):
    """Follow-up call placed for a patient (latest follow-up, if any)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[ContextKind.PATIENT] = ContextKind.PATIENT
    patient: PatientInfo
    doctor: Optional[DoctorInfo] = None
    follow_up: Optional[FollowUpInfo] = None


ConversationContext = Annotated[
    Union[AppointmentContext, FollowUpContext, PatientContext],
    Field(discriminator="kind"),
]

# Custom stream parameters, in lookup precedence order
ROUTING_PARAMETERS = (
    ("patientId", ContextKind.PATIENT),
    ("followUpId", ContextKind.FOLLOW_UP),
    ("appointmentId", ContextKind.APPOINTMENT),
)


def resolve_routing(parameters: Optional[dict]) -> Optional[tuple]:
    """
    Work out which record the stream's custom parameters point at.

    Returns:
        ``(ContextKind, record_id)`` or None when no usable id is present
    """
    if not parameters:
        return None
    for name, kind in ROUTING_PARAMETERS:
        value = parameters.get(name)
        if value is None or str(value).strip() == "":
            continue
        return kind, str(value).strip()
    return None
