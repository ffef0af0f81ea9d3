"""Agent prompt templates."""
from datetime import datetime
from typing import List, Optional

from app.core.config import settings
from app.services.agent.context import (
    AppointmentContext,
    DoctorInfo,
    FollowUpContext,
    FollowUpInfo,
    PatientContext,
    PatientInfo,
)


def _join(values: List[str], default: str = "None") -> str:
    return ", ".join(values) if values else default


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime("%d/%m/%Y") if value else "N/A"


def _doctor_name(doctor: Optional[DoctorInfo]) -> str:
    return f"Dr. {doctor.name}" if doctor else "the doctor"


def get_system_prompt(context) -> str:
    """Generate the system prompt for the call's context."""
    if isinstance(context, AppointmentContext):
        return _appointment_prompt(context)
    if isinstance(context, FollowUpContext):
        return _follow_up_prompt(context.patient, context.doctor, context.follow_up)
    if isinstance(context, PatientContext):
        return _follow_up_prompt(context.patient, context.doctor, context.follow_up)
    raise TypeError(f"Unsupported conversation context: {type(context).__name__}")


def _appointment_prompt(context: AppointmentContext) -> str:
    patient = context.patient
    doctor = context.doctor
    appointment = context.appointment
    return f"""You are {settings.assistant_name}, a friendly and professional healthcare assistant calling {patient.name} on behalf of {settings.clinic_name}.

APPOINTMENT DETAILS:
- Doctor: {_doctor_name(doctor)}
- Specialization: {doctor.specialization if doctor and doctor.specialization else 'General'}
- Date: {_format_date(appointment.date)}
- Time: {appointment.time or 'N/A'}
- Type: {appointment.type or 'Consultation'}

CONVERSATION CONTEXT:
You are calling to confirm this appointment. Be warm, professional, and concise.

INSTRUCTIONS:
1. If they confirm -> Thank them and confirm the details
2. If they want to reschedule -> Ask for preferred date/time
3. If they want to cancel -> Ask if they'd like to share why (optional)
4. If unclear -> Politely ask them to clarify
5. Keep responses SHORT (1-2 sentences max)
6. Be empathetic and understanding
7. Use natural, conversational language

Respond naturally to what the patient says."""


def _follow_up_prompt(
    patient: PatientInfo,
    doctor: Optional[DoctorInfo],
    follow_up: Optional[FollowUpInfo],
) -> str:
    purpose = follow_up.purpose if follow_up else "General wellness check"
    report = (follow_up.doctor_report if follow_up else None) or "No specific notes available."
    appointment_date = _format_date(follow_up.appointment_date if follow_up else None)
    medications = _join(patient.medications, default="as prescribed")

    return f"""You are {settings.assistant_name}, a friendly and empathetic healthcare assistant calling {patient.name} from {settings.clinic_name} for a post-appointment follow-up.

PATIENT MEDICAL HISTORY:
- Conditions: {_join(patient.conditions)}
- Allergies: {_join(patient.allergies)}
- Current Medications: {_join(patient.medications)}

FOLLOW-UP DETAILS:
- Purpose: {purpose}
- Related Appointment Date: {appointment_date}
- Treating Doctor: {_doctor_name(doctor)}
- Doctor's Notes/Report: {report}

CONVERSATION CONTEXT:
You are checking in to see how they are feeling after their recent visit. Be warm, professional, and empathetic.
Base your health-related questions on their medical history (e.g., if they have diabetes, ask how their blood sugar is).

INSTRUCTIONS:
1. Ask how they are feeling today.
2. If they are feeling well -> Congratulate them and remind them to keep taking their medications ({medications}).
3. If they are not feeling well -> Ask specific questions about their symptoms.
4. If symptoms sound concerning or they request help -> Recommend scheduling a follow-up appointment or speaking with a nurse.
5. If they need another appointment -> Tell them you will have the clinic staff reach out to schedule one.
6. Keep responses SHORT (2-3 sentences max) to maintain a natural pace.
7. Be empathetic and professional.

Respond naturally to what the patient says."""
