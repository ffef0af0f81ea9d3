"""Database models."""
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, DateTime, Float, ForeignKey, Text, JSON
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Doctor(Base):
    """Doctor model."""

    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    specialization = Column(String, nullable=True)
    phone = Column(String, nullable=True)


class Patient(Base):
    """Patient model."""

    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    language = Column(String, default="english", nullable=False)
    conditions = Column(JSON, nullable=True)  # List of condition strings
    allergies = Column(JSON, nullable=True)
    medications = Column(JSON, nullable=True)
    assigned_doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=True)
    status = Column(String, default="active", nullable=False)  # active, inactive, archived
    notes = Column(Text, nullable=True)

    # Relationships
    assigned_doctor = relationship("Doctor")
    follow_ups = relationship("FollowUp", back_populates="patient")


class Appointment(Base):
    """Appointment model."""

    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    appointment_date = Column(DateTime, nullable=False)
    appointment_time = Column(String, nullable=False)
    type = Column(String, default="consultation", nullable=False)
    # scheduled, confirmed, rescheduled, cancelled, completed, no-show
    status = Column(String, default="scheduled", nullable=False)
    reason = Column(Text, nullable=True)
    confirmation_method = Column(String, nullable=True)
    cancelled_by = Column(String, nullable=True)
    last_call_date = Column(DateTime, nullable=True)

    # Relationships
    patient = relationship("Patient")
    doctor = relationship("Doctor")


class FollowUp(Base):
    """Post-visit follow-up model."""

    __tablename__ = "follow_ups"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    type = Column(String, default="post-visit", nullable=False)
    purpose = Column(Text, nullable=False)
    doctor_report = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    scheduled_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    # scheduled, in-progress, completed, failed, cancelled
    status = Column(String, default="scheduled", nullable=False)
    action_required = Column(Boolean, default=False, nullable=False)
    completed_date = Column(DateTime, nullable=True)

    # Relationships
    patient = relationship("Patient", back_populates="follow_ups")
    doctor = relationship("Doctor")
    appointment = relationship("Appointment")


class CallLog(Base):
    """Call metadata model."""

    __tablename__ = "call_logs"

    id = Column(Integer, primary_key=True, index=True)
    call_sid = Column(String, unique=True, index=True, nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    follow_up_id = Column(Integer, ForeignKey("follow_ups.id"), nullable=True)
    call_type = Column(String, default="general", nullable=False)
    status = Column(String, default="answered", nullable=False)  # answered, completed, failed
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    duration = Column(Integer, default=0, nullable=False)  # seconds
    transcript = Column(Text, nullable=True)
    intent = Column(String, nullable=True)
    intent_confidence = Column(Float, nullable=True)
    sentiment = Column(String, default="neutral", nullable=False)
    sentiment_score = Column(Float, default=0.0, nullable=False)
    outcome = Column(String, nullable=True)

    # Relationships
    turns = relationship(
        "ConversationTurn",
        back_populates="call_log",
        cascade="all, delete-orphan",
        order_by="ConversationTurn.id",
    )


class ConversationTurn(Base):
    """One transcript turn of a call (append-only)."""

    __tablename__ = "conversation_turns"

    id = Column(Integer, primary_key=True, index=True)
    call_log_id = Column(Integer, ForeignKey("call_logs.id"), nullable=False)
    speaker = Column(String, nullable=False)  # caller, assistant
    text = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False)

    # Relationships
    call_log = relationship("CallLog", back_populates="turns")
