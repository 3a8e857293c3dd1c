"""Appointment model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Time, text

from medicare_backend.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Appointment(Base):
    """Represents a booked appointment between a patient and a doctor.

    Rows are never deleted; cancelling only flips ``status``. The partial
    unique index keeps at most one non-cancelled appointment per doctor,
    date and time.
    """
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    doctor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(Time, nullable=False)
    reason = Column(String, nullable=False)
    notes = Column(String, default="")
    status = Column(String, nullable=False, default="confirmed")
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index(
            "uq_appointments_active_slot",
            "doctor_id",
            "appointment_date",
            "appointment_time",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )
